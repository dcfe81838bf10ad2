"""Token-budgeted selection of conversation history and model context assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from store_assistant.ai.tokens import TokenBudgetEstimator
from store_assistant.core.types import HistoryMessage, Role
from store_assistant.log import get_logger

logger = get_logger(__name__)

_MODEL_ROLES = frozenset({Role.USER.value, Role.ASSISTANT.value})


def coerce_history(raw: Iterable[HistoryMessage | Mapping[str, Any]] | None) -> list[HistoryMessage]:
    """Normalize client-supplied history into ``HistoryMessage`` items.

    Entries with a role the model does not accept, or with empty content, are skipped.
    """
    messages: list[HistoryMessage] = []
    for item in raw or []:
        if isinstance(item, HistoryMessage):
            role, content = item.role, item.content
        else:
            role, content = str(item.get("role", "")), item.get("content") or ""
        role = role.strip().lower()
        if role not in _MODEL_ROLES or not isinstance(content, str) or not content.strip():
            continue
        messages.append(HistoryMessage(role=role, content=content))
    return messages


class HistorySelector:
    """Select the newest suffix of a conversation that fits a token budget."""

    def __init__(
        self,
        estimator: TokenBudgetEstimator,
        max_history_messages: int = 40,
        max_single_message_tokens: int = 2000,
    ):
        self._estimator = estimator
        self._max_messages = max_history_messages
        self._max_single = max_single_message_tokens

    def _clip(self, message: HistoryMessage) -> HistoryMessage:
        """Truncate one message so its full cost stays within the single-message ceiling."""
        est = self._estimator
        if est.count_message_tokens(message.role, message.content) <= self._max_single:
            return message
        room = self._max_single - est.message_overhead
        return HistoryMessage(message.role, est.truncate_to_token_limit(message.content, room))

    def cost(self, message: HistoryMessage) -> int:
        return self._estimator.count_message_tokens(message.role, message.content)

    def select(self, history: list[HistoryMessage], token_budget: int) -> list[HistoryMessage]:
        """Return a contiguous, chronologically ordered suffix of ``history`` within ``token_budget``.

        Walks from newest to oldest and stops at the first message that does not
        fit; older messages are dropped. If even the newest message does not fit,
        it is truncated to the budget instead of being dropped.
        """
        if token_budget <= 0 or not history:
            return []

        windowed = [self._clip(m) for m in history[-self._max_messages :]]
        selected: list[HistoryMessage] = []
        used = 0

        for index in range(len(windowed) - 1, -1, -1):
            message = windowed[index]
            cost = self.cost(message)
            if used + cost <= token_budget:
                selected.append(message)
                used += cost
                continue

            dropped = index + 1
            if not selected:
                room = token_budget - self._estimator.message_overhead
                content = self._estimator.truncate_to_token_limit(message.content, room) if room > 0 else ""
                if content:
                    selected.append(HistoryMessage(message.role, content))
                    dropped -= 1
            if dropped:
                logger.info("history_truncated", dropped=dropped, kept=len(selected), budget=token_budget)
            break

        selected.reverse()
        return selected


@dataclass
class BuiltContext:
    """Messages ready for the model plus the token accounting used to size them."""

    system_prompt: str
    messages: list[dict[str, Any]]
    system_tokens: int
    history_tokens: int
    user_tokens: int
    function_tokens: int
    safety_margin: int
    history: list[HistoryMessage] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return (
            self.system_tokens
            + self.history_tokens
            + self.user_tokens
            + self.function_tokens
            + self.safety_margin
        )


@dataclass(frozen=True)
class ContextStatus:
    total_tokens_used: int
    total_budget: int
    usage_percent: float
    message_count: int
    is_near_limit: bool
    is_critical: bool


class ContextBuilder:
    """Assemble system prompt + budgeted history + new user message.

    The history budget is whatever is left of the context window after the
    output reservation, system prompt, user message, tool schemas and safety
    margin have been subtracted.
    """

    def __init__(
        self,
        estimator: TokenBudgetEstimator,
        selector: HistorySelector,
        context_window: int = 32000,
        max_output_tokens: int = 4000,
        safety_margin: int = 500,
    ):
        self._estimator = estimator
        self._selector = selector
        self.context_window = context_window
        self.max_output_tokens = max_output_tokens
        self.safety_margin = safety_margin

    @property
    def input_budget(self) -> int:
        return self.context_window - self.max_output_tokens

    def history_budget(self, system_prompt: str, user_message: str, tool_count: int) -> int:
        est = self._estimator
        return (
            self.input_budget
            - est.count_message_tokens(Role.SYSTEM, system_prompt)
            - est.count_message_tokens(Role.USER, user_message)
            - est.estimate_function_tokens(tool_count)
            - self.safety_margin
        )

    def build(
        self,
        system_prompt: str,
        history: Iterable[HistoryMessage | Mapping[str, Any]] | None,
        user_message: str,
        tool_count: int,
    ) -> BuiltContext:
        est = self._estimator
        budget = self.history_budget(system_prompt, user_message, tool_count)
        selected = self._selector.select(coerce_history(history), budget)

        messages: list[dict[str, Any]] = [{"role": m.role, "content": m.content} for m in selected]
        messages.append({"role": Role.USER.value, "content": user_message})

        context = BuiltContext(
            system_prompt=system_prompt,
            messages=messages,
            system_tokens=est.count_message_tokens(Role.SYSTEM, system_prompt),
            history_tokens=sum(self._selector.cost(m) for m in selected),
            user_tokens=est.count_message_tokens(Role.USER, user_message),
            function_tokens=est.estimate_function_tokens(tool_count),
            safety_margin=self.safety_margin,
            history=selected,
        )
        logger.debug(
            "context_built",
            messages=len(messages),
            total_tokens=context.total_tokens,
            history_budget=budget,
        )
        return context

    def status(
        self,
        system_prompt: str,
        history: Iterable[HistoryMessage | Mapping[str, Any]] | None,
        user_message: str,
    ) -> ContextStatus:
        """Report how full the context would be if the whole history were sent."""
        est = self._estimator
        messages = coerce_history(history)
        used = (
            est.count_tokens(system_prompt)
            + est.count_tokens(user_message)
            + sum(est.count_tokens(m.content) for m in messages)
        )
        budget = self.input_budget
        percent = used / budget * 100 if budget > 0 else 100.0
        return ContextStatus(
            total_tokens_used=used,
            total_budget=budget,
            usage_percent=percent,
            message_count=len(messages) + 1,
            is_near_limit=percent > 80,
            is_critical=percent > 95,
        )

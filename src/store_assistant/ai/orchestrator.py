"""Chat orchestrator: validates a turn, then alternates model generation and tool execution."""

from __future__ import annotations

import asyncio
import re
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence

import structlog

from store_assistant.ai.client import ModelClient, TextDelta, ToolCallRequest, describe_generation_error
from store_assistant.ai.events import (
    ChatEvent,
    ConversationIdMarker,
    ErrorFragment,
    TextChunk,
    ToolCompleteMarker,
    ToolProgressMarker,
    ValidationWarning,
)
from store_assistant.ai.history import ContextBuilder, ContextStatus
from store_assistant.ai.rate_limiter import RateLimiter
from store_assistant.ai.tools.args import parse_arguments
from store_assistant.ai.tools.executor import ToolCallResult, ToolExecutor
from store_assistant.config import ModelConfig, PersonaConfig
from store_assistant.core.types import CallerContext, HistoryMessage, Persona, Role
from store_assistant.errors import GenerationError, PreparationError, ValidationError
from store_assistant.log import get_logger
from store_assistant.storage.conversation_repo import ConversationRepository
from store_assistant.storage.models import Conversation

logger = get_logger(__name__)

EMPTY_MESSAGE = "Please enter a message."
RATE_LIMITED = "You are sending messages too quickly. Please wait a moment and try again."
HISTORY_TOO_LONG = "This conversation is too long. Please start a new conversation."
CONVERSATION_NOT_FOUND = "Conversation not found."
PERSIST_FAILED = "Your message could not be saved. Please try again."

_WHITESPACE = re.compile(r"\s+")

ExecutorFactory = Callable[[CallerContext], ToolExecutor]
PromptFactory = Callable[[CallerContext], str]
History = Sequence[HistoryMessage | Mapping[str, Any]]


def make_title(message: str, length: int = 50) -> str:
    """Conversation title from the first ``length`` characters, whitespace collapsed."""
    text = _WHITESPACE.sub(" ", message).strip()
    return text[:length] + "..." if len(text) > length else text


class ChatOrchestrator:
    """Runs conversation turns for one persona.

    A turn is an async stream of ``ChatEvent`` objects. Validation and
    preparation failures end the turn before any model call; generation
    failures end it with an ``ErrorFragment`` and nothing is persisted for
    the assistant. Tool failures never end a turn.
    """

    def __init__(
        self,
        persona: Persona,
        settings: PersonaConfig,
        model_client: ModelClient,
        model: ModelConfig,
        repository: ConversationRepository,
        rate_limiter: RateLimiter,
        context_builder: ContextBuilder,
        executor_factory: ExecutorFactory,
        prompt_factory: PromptFactory,
        max_tool_rounds: int = 10,
        title_length: int = 50,
    ):
        self.persona = persona
        self._settings = settings
        self._model_client = model_client
        self._model = model
        self._repo = repository
        self._rate_limiter = rate_limiter
        self._context_builder = context_builder
        self._executor_factory = executor_factory
        self._prompt_factory = prompt_factory
        self._max_tool_rounds = max_tool_rounds
        self._title_length = title_length

    # -- Turn --

    async def stream_turn(
        self,
        caller: CallerContext,
        message: str,
        conversation_id: Optional[int] = None,
        history: Optional[History] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Process one user message, yielding events in emission order."""
        self._check_persona(caller)
        structlog.contextvars.bind_contextvars(persona=caller.persona.value, caller_id=caller.caller_id)
        try:
            try:
                self._validate(caller, message, history)
            except ValidationError as e:
                logger.info("turn_rejected", reason=str(e))
                yield ValidationWarning(str(e))
                return

            try:
                conversation_id = await self._prepare(caller, message, conversation_id)
            except PreparationError as e:
                yield ErrorFragment(str(e))
                return

            structlog.contextvars.bind_contextvars(conversation_id=conversation_id)
            yield ConversationIdMarker(conversation_id)

            text_parts: list[str] = []
            completed = True
            try:
                async for event in self._generate(caller, message, history, text_parts, cancel_event):
                    yield event
            except GenerationError as e:
                logger.warning("generation_failed", error=str(e))
                yield ErrorFragment(str(e))
                completed = False
            except asyncio.CancelledError:
                logger.info("turn_cancelled")
                raise
            except Exception as e:
                logger.exception("generation_error")
                yield ErrorFragment(describe_generation_error(e))
                completed = False

            if completed and not (cancel_event and cancel_event.is_set()):
                await self._persist_reply(conversation_id, "".join(text_parts))
        finally:
            structlog.contextvars.unbind_contextvars("persona", "caller_id", "conversation_id")

    def _check_persona(self, caller: CallerContext) -> None:
        if caller.persona is not self.persona:
            raise ValueError(f"{self.persona} orchestrator cannot serve a {caller.persona} caller")

    def _validate(self, caller: CallerContext, message: str, history: Optional[History]) -> None:
        if not message or not message.strip():
            raise ValidationError(EMPTY_MESSAGE)
        limit = self._settings.max_message_length
        if len(message) > limit:
            raise ValidationError(f"Message is too long (maximum {limit} characters).")
        cap = self._settings.max_client_history
        if cap is not None and history is not None and len(history) > cap:
            raise ValidationError(HISTORY_TOO_LONG)
        if not self._rate_limiter.check_and_record(caller.caller_id):
            raise ValidationError(RATE_LIMITED)

    async def _prepare(self, caller: CallerContext, message: str, conversation_id: Optional[int]) -> int:
        """Resolve the conversation and persist the user's message."""
        try:
            if conversation_id is None:
                conversation = await self._repo.create_conversation(
                    caller.caller_id, make_title(message, self._title_length)
                )
                conversation_id = conversation.id
            elif not await self._repo.is_owned_by(conversation_id, caller.caller_id):
                logger.warning("conversation_not_owned", conversation_id=conversation_id)
                raise PreparationError(CONVERSATION_NOT_FOUND)

            await self._repo.append_message(conversation_id, Role.USER.value, message)  # type: ignore[arg-type]
        except PreparationError:
            raise
        except Exception as e:
            logger.exception("turn_preparation_failed")
            raise PreparationError(PERSIST_FAILED) from e
        return conversation_id  # type: ignore[return-value]

    async def _generate(
        self,
        caller: CallerContext,
        message: str,
        history: Optional[History],
        text_parts: list[str],
        cancel_event: Optional[asyncio.Event],
    ) -> AsyncIterator[ChatEvent]:
        executor = self._executor_factory(caller)
        registry = executor.registry
        tools = registry.api_tools()
        context = self._context_builder.build(
            self._prompt_factory(caller), history, message, tool_count=len(tools)
        )
        messages = list(context.messages)

        for round_no in range(1, self._max_tool_rounds + 1):
            if cancel_event and cancel_event.is_set():
                logger.info("turn_cancelled", round=round_no)
                return

            round_text: list[str] = []
            calls: list[ToolCallRequest] = []
            stream = self._model_client.stream(
                system=context.system_prompt,
                messages=messages,
                tools=tools,
                model=self._model.name,
                max_tokens=self._model.max_output_tokens,
                temperature=self._model.temperature,
            )
            async with aclosing(stream):
                async for item in stream:
                    if isinstance(item, TextDelta):
                        if item.text:
                            round_text.append(item.text)
                            yield TextChunk(item.text)
                    elif isinstance(item, ToolCallRequest):
                        calls.append(item)
                    if cancel_event and cancel_event.is_set():
                        logger.info("turn_cancelled", round=round_no, stage="streaming")
                        return

            text_parts.extend(round_text)
            if not calls:
                logger.info("turn_completed", rounds=round_no)
                return

            names = tuple(c.name for c in calls)
            logger.info("tool_round", round=round_no, tools=list(names))
            yield ToolProgressMarker(names, tuple(registry.label(n) for n in names))

            messages.append(_assistant_tool_turn("".join(round_text), calls))
            results = await _run_tools(executor, calls, caller, cancel_event)
            if results is None:
                logger.info("turn_cancelled", round=round_no, stage="tools")
                return
            messages.append(_tool_results_turn(results))
            yield ToolCompleteMarker()

        logger.warning("tool_round_cap_reached", rounds=self._max_tool_rounds)

    async def _persist_reply(self, conversation_id: int, text: str) -> None:
        if not text:
            return
        try:
            await self._repo.append_message(conversation_id, Role.ASSISTANT.value, text)
        except Exception:
            logger.exception("assistant_message_persist_failed")

    # -- Conversation passthroughs --

    async def list_conversations(self, caller: CallerContext, limit: int = 50) -> list[Conversation]:
        return await self._repo.list_conversations(caller.caller_id, limit)

    async def get_conversation(self, caller: CallerContext, conversation_id: int) -> Optional[Conversation]:
        return await self._repo.get_conversation(conversation_id, caller.caller_id)

    async def delete_conversation(self, caller: CallerContext, conversation_id: int) -> bool:
        return await self._repo.delete_conversation(conversation_id, caller.caller_id)

    def context_status(self, caller: CallerContext, message: str, history: Optional[History] = None) -> ContextStatus:
        return self._context_builder.status(self._prompt_factory(caller), history, message)


def _assistant_tool_turn(text: str, calls: Sequence[ToolCallRequest]) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for call in calls:
        content.append(
            {"type": "tool_use", "id": call.id, "name": call.name, "input": parse_arguments(call.arguments)}
        )
    return {"role": Role.ASSISTANT.value, "content": content}


def _tool_results_turn(results: Sequence[ToolCallResult]) -> dict[str, Any]:
    return {
        "role": Role.USER.value,
        "content": [
            {"type": "tool_result", "tool_use_id": r.call_id, "content": r.content, "is_error": r.is_error}
            for r in results
        ],
    }


async def _run_tools(
    executor: ToolExecutor,
    calls: Sequence[ToolCallRequest],
    caller: CallerContext,
    cancel_event: Optional[asyncio.Event],
) -> Optional[list[ToolCallResult]]:
    """Execute a round's tool calls, or return None if ``cancel_event`` fires first.

    On cancellation the pending tool calls are cancelled and awaited, so every
    unit of work is closed before the turn ends.
    """
    work = executor.execute_many(((c.id, c.name, c.arguments) for c in calls), caller)
    if cancel_event is None:
        return await work

    tools_task = asyncio.ensure_future(work)
    cancel_task = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({tools_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [t for t in (tools_task, cancel_task) if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if cancel_event.is_set():
        return None
    return tools_task.result()

"""Tool executor: the single chokepoint between the model and backend data."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Iterable

from store_assistant.ai.tokens import TokenBudgetEstimator
from store_assistant.ai.tools.args import parse_arguments
from store_assistant.ai.tools.cache import ToolResultCache
from store_assistant.ai.tools.registry import ToolRegistry, unsupported
from store_assistant.core.types import CallerContext
from store_assistant.errors import AuthorizationError, ToolTimeoutError
from store_assistant.log import get_logger
from store_assistant.storage.database import Database
from store_assistant.storage.store_queries import StoreQueries

logger = get_logger(__name__)

GENERIC_TOOL_ERROR = "The data query failed. Please try again."


@dataclass
class ToolCallResult:
    call_id: str
    tool_name: str
    content: str
    is_error: bool = False


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _is_error_result(result: Any) -> bool:
    return isinstance(result, dict) and "error" in result


class ToolExecutor:
    """Runs tool calls with caching, a per-call timeout and an isolated unit of work.

    ``execute`` never raises for tool-level failures: timeouts, handler
    exceptions and authorization failures all come back as ``{"error": ...}``
    JSON so the model can react to them.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        database: Database,
        cache: ToolResultCache,
        estimator: TokenBudgetEstimator,
        timeout_seconds: float = 30.0,
        max_result_tokens: int = 8000,
    ):
        self.registry = registry
        self._database = database
        self._cache = cache
        self._estimator = estimator
        self._timeout = timeout_seconds
        self._max_result_tokens = max_result_tokens

    async def execute(self, tool_name: str, arguments_json: str | None, caller: CallerContext) -> str:
        content, _ = await self._execute(tool_name, arguments_json, caller)
        return content

    async def _execute(
        self, tool_name: str, arguments_json: str | None, caller: CallerContext
    ) -> tuple[str, bool]:
        """Return the serialized result and whether it is an error payload."""
        args = parse_arguments(arguments_json)

        if not self.registry.supports(tool_name):
            logger.warning("tool_not_supported", tool=tool_name, persona=caller.persona)
            return _dumps(unsupported(tool_name)), True

        key = ToolResultCache.make_key(tool_name, args, caller.scope)
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("tool_cache_hit", tool=tool_name, persona=caller.persona)
            return cached, False

        try:
            result = await asyncio.wait_for(self._run(tool_name, args), timeout=self._timeout)
        except asyncio.TimeoutError:
            error = ToolTimeoutError(tool_name, self._timeout)
            logger.warning("tool_timeout", tool=tool_name, timeout=self._timeout)
            return _dumps({"error": str(error)}), True
        except AuthorizationError as e:
            return _dumps({"error": str(e)}), True
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("tool_execution_error", tool=tool_name, persona=caller.persona)
            return _dumps({"error": GENERIC_TOOL_ERROR}), True

        content = self._estimator.truncate_with_marker(_dumps(result), self._max_result_tokens)
        if _is_error_result(result):
            logger.info("tool_returned_error", tool=tool_name, persona=caller.persona)
            return content, True
        self._cache.set(key, content)
        logger.debug("tool_executed", tool=tool_name, chars=len(content))
        return content, False

    async def _run(self, tool_name: str, args: dict[str, Any]) -> Any:
        async with self._database.unit_of_work() as conn:
            return await self.registry.dispatch(tool_name, args, StoreQueries(conn))

    async def execute_many(
        self, calls: Iterable[tuple[str, str, str | None]], caller: CallerContext
    ) -> list[ToolCallResult]:
        """Run ``(call_id, tool_name, arguments_json)`` calls concurrently, preserving order."""
        calls = list(calls)
        outcomes = await asyncio.gather(
            *(self._execute(name, arguments, caller) for _, name, arguments in calls)
        )
        return [
            ToolCallResult(call_id=call_id, tool_name=name, content=content, is_error=is_error)
            for (call_id, name, _), (content, is_error) in zip(calls, outcomes)
        ]

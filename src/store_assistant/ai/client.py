"""Model client abstraction with a streaming Anthropic API backend."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Union

import anthropic

from store_assistant.config import AnthropicConfig
from store_assistant.errors import GenerationError
from store_assistant.log import get_logger

logger = get_logger(__name__)

BUSY_MESSAGE = "The assistant is busy right now. Please try again in a moment."
SLOW_MESSAGE = "The connection to the assistant is slow. Please try again."
UNAVAILABLE_MESSAGE = "The assistant service is unavailable (authentication failed). Please contact an administrator."
CONNECT_MESSAGE = "Cannot connect to the assistant service. Please check the network and try again."
GENERIC_MESSAGE = "Something went wrong while generating a response. Please try again."


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: str  # raw JSON object text, parsed defensively by the executor


StreamItem = Union[TextDelta, ToolCallRequest]


class ModelClient(ABC):
    """One generation round: stream text, then report any requested tool calls."""

    @abstractmethod
    def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> AsyncGenerator[StreamItem, None]:
        """Yield ``TextDelta`` items as they arrive, then one ``ToolCallRequest`` per call.

        Tools are declared to the provider but never invoked by it.
        """
        ...


def describe_generation_error(exc: BaseException) -> str:
    """Map a model failure to a short message that is safe to show a user."""
    if isinstance(exc, GenerationError):
        return str(exc)
    if isinstance(exc, anthropic.RateLimitError):
        return BUSY_MESSAGE
    if isinstance(exc, anthropic.APITimeoutError):
        return SLOW_MESSAGE
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return UNAVAILABLE_MESSAGE
    if isinstance(exc, anthropic.APIConnectionError):
        return CONNECT_MESSAGE
    if isinstance(exc, anthropic.APIStatusError) and exc.status_code in (429, 529):
        return BUSY_MESSAGE
    if isinstance(exc, TimeoutError):
        return SLOW_MESSAGE
    if isinstance(exc, ConnectionError):
        return CONNECT_MESSAGE

    text = str(exc).lower()
    if "rate limit" in text or "429" in text:
        return BUSY_MESSAGE
    if "timeout" in text or "timed out" in text:
        return SLOW_MESSAGE
    if "401" in text or "403" in text or "unauthorized" in text:
        return UNAVAILABLE_MESSAGE
    if "connect" in text:
        return CONNECT_MESSAGE
    return GENERIC_MESSAGE


class AnthropicClient(ModelClient):
    """Anthropic API backend using the official SDK's streaming helper."""

    def __init__(self, config: AnthropicConfig):
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> AsyncGenerator[StreamItem, None]:
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": messages,
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = tools

        logger.debug("api_request", model=model, message_count=len(messages), tools=len(tools))
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    if event.type == "text":
                        yield TextDelta(event.text)
                final = await stream.get_final_message()
        except anthropic.APIError as e:
            logger.error("api_error", model=model, error_type=type(e).__name__, error=str(e))
            raise GenerationError(describe_generation_error(e)) from e

        logger.debug(
            "api_response",
            model=model,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
            stop_reason=final.stop_reason,
        )
        for block in final.content:
            if block.type == "tool_use":
                yield ToolCallRequest(id=block.id, name=block.name, arguments=json.dumps(block.input))

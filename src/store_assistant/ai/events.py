"""Events yielded by a chat turn, and their text/SSE framing for transports."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import AsyncIterator, Union

TOOL_COMPLETE = "[TOOL_COMPLETE]"
SSE_DONE = "data: [DONE]\n\n"


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class ConversationIdMarker:
    conversation_id: int


@dataclass(frozen=True)
class ToolProgressMarker:
    tool_names: tuple[str, ...]
    labels: tuple[str, ...]


@dataclass(frozen=True)
class ToolCompleteMarker:
    pass


@dataclass(frozen=True)
class ErrorFragment:
    message: str


@dataclass(frozen=True)
class ValidationWarning:
    message: str


ChatEvent = Union[
    TextChunk,
    ConversationIdMarker,
    ToolProgressMarker,
    ToolCompleteMarker,
    ErrorFragment,
    ValidationWarning,
]


def frame_event(event: ChatEvent) -> str:
    """Render an event as the opaque text fragment a chunked transport writes."""
    match event:
        case TextChunk(text=text):
            return text
        case ConversationIdMarker(conversation_id=conversation_id):
            return f"convId:{conversation_id}|"
        case ToolProgressMarker(labels=labels):
            return f"\n\n⏳ *Querying: {', '.join(labels)}...*\n\n"
        case ToolCompleteMarker():
            return TOOL_COMPLETE
        case ErrorFragment(message=message):
            return f"\n\n❌ Error: {message}"
        case ValidationWarning(message=message):
            return f"⚠️ {message}"
    raise TypeError(f"Unknown chat event: {event!r}")


async def sse_stream(events: AsyncIterator[ChatEvent]) -> AsyncIterator[str]:
    """Adapt a turn's events to server-sent-event frames, ending with ``[DONE]``."""
    async for event in events:
        payload = json.dumps({"content": frame_event(event)}, ensure_ascii=False)
        yield f"data: {payload}\n\n"
    yield SSE_DONE

"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class Message:
    conversation_id: int
    role: str  # "user" | "assistant" | "system"
    content: str
    function_called: Optional[str] = None
    function_data: Optional[Any] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Conversation:
    user_id: int
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None
    messages: list[Message] = field(default_factory=list)


@dataclass
class UsageStats:
    total_conversations: int = 0
    total_messages: int = 0
    unique_users: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    average_messages_per_conversation: float = 0.0


@dataclass
class Page:
    """One page of a filtered backend query."""

    items: list[dict[str, Any]]
    total: int

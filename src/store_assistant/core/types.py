"""Shared types and enumerations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional


class Persona(StrEnum):
    STAFF = "staff"
    CUSTOMER = "customer"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class CallerContext:
    """Authenticated identity of whoever is driving a turn.

    ``caller_id`` owns conversations and is the rate-limit key. ``customer_id``
    is only set for signed-in customers and is what scopes order lookups.
    """

    persona: Persona
    caller_id: int
    customer_id: Optional[int] = None

    @property
    def scope(self) -> str:
        """Cache scoping token. Staff results are store-wide, customer results are per customer."""
        if self.persona is Persona.STAFF:
            return "staff"
        if self.customer_id is None:
            return "customer:guest"
        return f"customer:{self.customer_id}"


@dataclass(frozen=True, slots=True)
class HistoryMessage:
    role: str
    content: str

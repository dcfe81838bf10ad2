"""Short-lived cache for serialized tool results."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Mapping

from store_assistant.log import get_logger

logger = get_logger(__name__)


def canonical_arguments(arguments: Mapping[str, Any] | None) -> str:
    """Stable JSON rendering of tool arguments (sorted keys, no whitespace)."""
    return json.dumps(
        arguments or {},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


class ToolResultCache:
    """TTL cache of tool-result JSON keyed by a SHA-256 digest.

    Concurrent misses for the same key simply compute twice; the last write wins.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 2000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def make_key(tool_name: str, arguments: Mapping[str, Any] | None, scope: str | None) -> str:
        # Hash a structured payload so attacker-controlled values cannot collide
        # by embedding separators.
        payload = json.dumps(
            [tool_name, canonical_arguments(arguments), scope],
            ensure_ascii=False,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def get(self, key: str) -> str | None:
        now = self._clock()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= now:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str) -> None:
        expires_at = self._clock() + self.ttl_seconds
        with self._lock:
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("tool_cache_purged", purged=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

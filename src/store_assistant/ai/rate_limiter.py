"""Per-caller sliding-window rate limiter."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Hashable

from store_assistant.log import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitEntry:
    request_times: deque[float] = field(default_factory=deque)
    last_activity: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def prune(self, now: float, window: float) -> None:
        times = self.request_times
        while times and now - times[0] > window:
            times.popleft()


class RateLimiter:
    """Sliding-window request counter keyed by caller identity.

    Each caller entry has its own lock, so checks for unrelated callers never
    contend. A separate coarse lock only decides who runs the periodic sweep
    that evicts idle callers.
    """

    def __init__(
        self,
        requests_per_minute: int = 30,
        window_seconds: float = 60.0,
        cleanup_interval_seconds: float = 300.0,
        entry_expiration_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.entry_expiration_seconds = entry_expiration_seconds
        self._clock = clock
        self._entries: dict[Hashable, RateLimitEntry] = {}
        self._cleanup_lock = threading.Lock()
        self._last_cleanup = clock()

    def check_and_record(self, caller_id: Hashable) -> bool:
        """Return True and record the request if ``caller_id`` is under its ceiling."""
        self.cleanup()
        now = self._clock()
        while True:
            entry = self._entries.setdefault(caller_id, RateLimitEntry(last_activity=now))
            with entry.lock:
                # A sweep may have evicted this entry between lookup and lock.
                if self._entries.get(caller_id) is not entry:
                    continue
                entry.last_activity = now
                entry.prune(now, self.window_seconds)
                if len(entry.request_times) >= self.requests_per_minute:
                    logger.info("rate_limited", caller_id=caller_id, requests=len(entry.request_times))
                    return False
                entry.request_times.append(now)
                return True

    def cleanup(self, force: bool = False) -> int:
        """Prune stale timestamps and evict idle callers. Returns the number evicted.

        Unless ``force`` is set, this is a no-op until the cleanup interval has
        elapsed since the previous sweep.
        """
        now = self._clock()
        if not force and now - self._last_cleanup < self.cleanup_interval_seconds:
            return 0

        with self._cleanup_lock:
            if not force and now - self._last_cleanup < self.cleanup_interval_seconds:
                return 0

            evicted = 0
            for caller_id, entry in list(self._entries.items()):
                with entry.lock:
                    entry.prune(now, self.window_seconds)
                    idle = now - entry.last_activity
                    if entry.request_times or idle <= self.entry_expiration_seconds:
                        continue
                    if self._entries.get(caller_id) is entry:
                        del self._entries[caller_id]
                        evicted += 1

            self._last_cleanup = now

        if evicted:
            logger.info("rate_limit_entries_evicted", evicted=evicted, remaining=len(self._entries))
        return evicted

    def remaining(self, caller_id: Hashable) -> int:
        """Requests ``caller_id`` may still make in the current window."""
        entry = self._entries.get(caller_id)
        if entry is None:
            return self.requests_per_minute
        with entry.lock:
            entry.prune(self._clock(), self.window_seconds)
            return max(0, self.requests_per_minute - len(entry.request_times))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, caller_id: object) -> bool:
        return caller_id in self._entries

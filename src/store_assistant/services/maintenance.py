"""Periodic housekeeping for the assistant's in-memory state and stored conversations."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from store_assistant.ai.rate_limiter import RateLimiter
from store_assistant.ai.tools.cache import ToolResultCache
from store_assistant.config import MaintenanceConfig
from store_assistant.log import get_logger
from store_assistant.storage.conversation_repo import ConversationRepository

logger = get_logger(__name__)


class MaintenanceService:
    """Sweeps idle rate-limit entries and expired cache entries, and prunes old conversations.

    Started and stopped with the application; ``health_check`` is True while
    the scheduler is running.
    """

    def __init__(
        self,
        config: MaintenanceConfig,
        rate_limiter: RateLimiter,
        cache: ToolResultCache,
        repository: ConversationRepository,
        retention_days: int = 30,
    ):
        self._config = config
        self._rate_limiter = rate_limiter
        self._cache = cache
        self._repo = repository
        self._retention_days = retention_days
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    async def start(self) -> None:
        self._scheduler.add_job(
            self.sweep,
            IntervalTrigger(seconds=self._config.sweep_interval_seconds),
            id="maintenance_sweep",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.prune_conversations,
            IntervalTrigger(hours=self._config.retention_interval_hours),
            id="maintenance_retention",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "maintenance_started",
            sweep_interval=self._config.sweep_interval_seconds,
            retention_days=self._retention_days,
        )

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("maintenance_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    async def sweep(self) -> None:
        evicted = self._rate_limiter.cleanup(force=True)
        purged = self._cache.purge_expired()
        logger.debug("maintenance_sweep", rate_limit_evicted=evicted, cache_purged=purged)

    async def prune_conversations(self) -> int:
        try:
            return await self._repo.cleanup_old_conversations(self._retention_days)
        except Exception:
            logger.exception("conversation_retention_failed")
            return 0

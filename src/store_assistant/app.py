"""Application wiring: builds shared state and both persona orchestrators."""

from __future__ import annotations

from typing import Optional

from store_assistant.ai.client import AnthropicClient, ModelClient
from store_assistant.ai.history import ContextBuilder, HistorySelector
from store_assistant.ai.orchestrator import ChatOrchestrator
from store_assistant.ai.prompts import customer_prompt, staff_prompt
from store_assistant.ai.rate_limiter import RateLimiter
from store_assistant.ai.tokens import TokenBudgetEstimator
from store_assistant.ai.tools.cache import ToolResultCache
from store_assistant.ai.tools.executor import ToolExecutor
from store_assistant.ai.tools.registry import ToolRegistry, build_customer_registry, build_staff_registry
from store_assistant.config import AppConfig
from store_assistant.core.types import CallerContext, Persona
from store_assistant.log import get_logger
from store_assistant.services.maintenance import MaintenanceService
from store_assistant.storage.conversation_repo import ConversationRepository
from store_assistant.storage.database import Database

logger = get_logger(__name__)


class StoreAssistantApp:
    """Top-level container for one process.

    Rate limiter, tool cache and database are created once here and injected
    everywhere else, so tests can build isolated instances.
    """

    def __init__(self, config: AppConfig, model_client: Optional[ModelClient] = None):
        self.config = config
        limits = config.assistant

        self.db = Database(config.storage.db_path)
        self.conversation_repo = ConversationRepository(self.db)
        self.estimator = TokenBudgetEstimator(
            chars_per_token=config.model.chars_per_token,
            message_overhead=limits.message_overhead_tokens,
            tokens_per_tool=limits.tokens_per_tool,
        )
        self.context_builder = ContextBuilder(
            self.estimator,
            HistorySelector(self.estimator, limits.max_history_messages, limits.max_single_message_tokens),
            context_window=config.model.context_window,
            max_output_tokens=config.model.max_output_tokens,
            safety_margin=limits.safety_margin_tokens,
        )
        rl = config.rate_limit
        self.rate_limiter = RateLimiter(
            requests_per_minute=rl.requests_per_minute,
            window_seconds=rl.window_seconds,
            cleanup_interval_seconds=rl.cleanup_interval_seconds,
            entry_expiration_seconds=rl.entry_expiration_seconds,
        )
        self.cache = ToolResultCache(ttl_seconds=limits.cache_ttl_seconds, max_entries=limits.cache_max_entries)
        self.model_client = model_client or self._create_model_client()
        self.maintenance = MaintenanceService(
            config.maintenance,
            self.rate_limiter,
            self.cache,
            self.conversation_repo,
            retention_days=config.storage.conversation_retention_days,
        )

        # Staff tools are caller-independent, so one registry serves every turn.
        self._staff_registry = build_staff_registry()
        self.staff = self._orchestrator(Persona.STAFF)
        self.customer = self._orchestrator(Persona.CUSTOMER)

    def _create_model_client(self) -> ModelClient:
        if not self.config.anthropic:
            raise ValueError("No 'anthropic' section in config")
        return AnthropicClient(self.config.anthropic)

    def _executor(self, registry: ToolRegistry) -> ToolExecutor:
        return ToolExecutor(
            registry,
            self.db,
            self.cache,
            self.estimator,
            timeout_seconds=self.config.assistant.tool_timeout_seconds,
            max_result_tokens=self.config.assistant.max_tool_result_tokens,
        )

    def _staff_executor(self, caller: CallerContext) -> ToolExecutor:
        return self._executor(self._staff_registry)

    def _customer_executor(self, caller: CallerContext) -> ToolExecutor:
        return self._executor(build_customer_registry(caller.customer_id))

    def _orchestrator(self, persona: Persona) -> ChatOrchestrator:
        if persona is Persona.STAFF:
            settings = self.config.personas.staff
            executor_factory = self._staff_executor

            def prompt_factory(caller: CallerContext) -> str:
                return staff_prompt(settings.prompt_addendum)

        else:
            settings = self.config.personas.customer
            executor_factory = self._customer_executor

            def prompt_factory(caller: CallerContext) -> str:
                return customer_prompt(caller.customer_id is not None, settings.prompt_addendum)

        return ChatOrchestrator(
            persona=persona,
            settings=settings,
            model_client=self.model_client,
            model=self.config.model,
            repository=self.conversation_repo,
            rate_limiter=self.rate_limiter,
            context_builder=self.context_builder,
            executor_factory=executor_factory,
            prompt_factory=prompt_factory,
            max_tool_rounds=self.config.assistant.max_tool_rounds,
            title_length=self.config.assistant.title_length,
        )

    def orchestrator_for(self, persona: Persona) -> ChatOrchestrator:
        return self.staff if persona is Persona.STAFF else self.customer

    async def start(self) -> None:
        """Open the database and start background maintenance."""
        await self.db.initialize()
        if self.config.maintenance.enabled:
            await self.maintenance.start()
        logger.info("store_assistant_started", model=self.config.model.name)

    async def stop(self) -> None:
        if self.config.maintenance.enabled:
            await self.maintenance.stop()
        await self.db.close()
        logger.info("store_assistant_stopped")

    async def health_check(self) -> dict[str, bool]:
        return {"maintenance": await self.maintenance.health_check()}

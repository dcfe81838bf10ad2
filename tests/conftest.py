"""Shared fixtures: temporary databases with store data and a scripted model client."""

from __future__ import annotations

import copy
from datetime import timedelta
from typing import Any, AsyncGenerator, AsyncIterator, Optional

import pytest

from store_assistant.ai.client import ModelClient, StreamItem
from store_assistant.ai.history import ContextBuilder, HistorySelector
from store_assistant.ai.orchestrator import ChatOrchestrator
from store_assistant.ai.prompts import customer_prompt, staff_prompt
from store_assistant.ai.rate_limiter import RateLimiter
from store_assistant.ai.tokens import TokenBudgetEstimator
from store_assistant.ai.tools.cache import ToolResultCache
from store_assistant.ai.tools.executor import ToolExecutor
from store_assistant.ai.tools.registry import build_customer_registry, build_staff_registry
from store_assistant.config import ModelConfig, PersonaConfig
from store_assistant.core.types import CallerContext, Persona
from store_assistant.storage.conversation_repo import ConversationRepository
from store_assistant.storage.database import Database
from store_assistant.storage.store_queries import iso, utcnow


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


async def seed_store(database: Database) -> None:
    now = utcnow()
    conn = database.conn
    await conn.executemany(
        "INSERT INTO categories (id, name, description, is_active) VALUES (?, ?, ?, ?)",
        [(1, "Drinks", "Hot and cold drinks", 1), (2, "Snacks", "Chips and bars", 1), (3, "Archived", None, 0)],
    )
    await conn.executemany(
        "INSERT INTO suppliers (id, name, phone) VALUES (?, ?, ?)",
        [(1, "Fresh Co", "0901"), (2, "Snack Corp", "0902")],
    )
    await conn.executemany(
        """INSERT INTO products (id, product_name, sku, description, price, category_id, supplier_id, is_active)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            (1, "Green Tea", "GT-01", "Jasmine green tea", 2.5, 1, 1, 1),
            (2, "Coffee Beans", "CB-01", "Arabica 500g", 12.0, 1, 1, 1),
            (3, "Potato Chips", "PC-01", "Salted", 1.5, 2, 2, 1),
            (4, "Old Soda", "OS-01", "Discontinued", 1.0, 1, 1, 0),
        ],
    )
    await conn.executemany(
        "INSERT INTO inventory (product_id, quantity) VALUES (?, ?)",
        [(1, 100), (2, 5), (3, 0), (4, 50)],
    )
    await conn.executemany(
        "INSERT INTO customers (id, full_name, phone, email) VALUES (?, ?, ?, ?)",
        [(1, "Alice Nguyen", "0911", "alice@example.com"), (2, "Bob Tran", "0922", "bob@example.com")],
    )
    await conn.executemany(
        """INSERT INTO orders (id, order_number, customer_id, status, subtotal, discount, total_amount, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            (1, "ORD-001", 1, "completed", 15.0, 0.0, 15.0, iso(now - timedelta(days=2))),
            (2, "ORD-002", 2, "completed", 24.0, 4.0, 20.0, iso(now - timedelta(days=1))),
            (3, "ORD-003", 1, "pending", 2.5, 0.0, 2.5, iso(now)),
        ],
    )
    await conn.executemany(
        "INSERT INTO order_items (order_id, product_id, quantity, price, subtotal) VALUES (?, ?, ?, ?, ?)",
        [(1, 1, 6, 2.5, 15.0), (2, 2, 2, 12.0, 24.0), (3, 1, 1, 2.5, 2.5)],
    )
    future, past = iso(now + timedelta(days=30)), iso(now - timedelta(days=1))
    start = iso(now - timedelta(days=60))
    await conn.executemany(
        """INSERT INTO promotions (code, description, type, value, min_order_amount, max_discount,
                                   start_date, end_date, usage_limit, used_count, active)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            ("SAVE10", "10% off everything", "percent", 10, 0, 50, start, future, 100, 3, 1),
            ("OLD5", "5 off, ended", "fixed", 5, 20, None, start, past, None, 0, 1),
            ("MAXED", "Fully redeemed", "fixed", 2, 0, None, start, future, 10, 10, 1),
            ("OFF", "Switched off", "percent", 5, 0, None, start, future, None, 0, 0),
        ],
    )
    await conn.commit()


@pytest.fixture
async def store_db(db):
    await seed_store(db)
    return db


class ScriptedModelClient(ModelClient):
    """Replays one scripted list of stream items per generation round.

    An item that is an exception instance is raised at that point in the stream.
    """

    def __init__(self, rounds: list[list[Any]]):
        self.rounds = rounds
        self.calls: list[dict[str, Any]] = []
        self.closed_early = 0

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> AsyncGenerator[StreamItem, None]:
        self.calls.append({"system": system, "messages": copy.deepcopy(messages), "tools": tools})
        index = len(self.calls) - 1
        script = self.rounds[index] if index < len(self.rounds) else []
        try:
            for item in script:
                if isinstance(item, BaseException):
                    raise item
                yield item
        except GeneratorExit:
            self.closed_early += 1
            raise


@pytest.fixture
def estimator():
    return TokenBudgetEstimator()


@pytest.fixture
def make_orchestrator(estimator):
    """Build an orchestrator over ``database`` with isolated limiter and cache."""

    def _make(
        database: Database,
        model_client: ModelClient,
        persona: Persona = Persona.STAFF,
        rate_limiter: Optional[RateLimiter] = None,
        settings: Optional[PersonaConfig] = None,
        max_tool_rounds: int = 10,
        tool_timeout: float = 5.0,
    ) -> ChatOrchestrator:
        cache = ToolResultCache()

        def executor_factory(caller: CallerContext) -> ToolExecutor:
            registry = (
                build_staff_registry()
                if persona is Persona.STAFF
                else build_customer_registry(caller.customer_id)
            )
            return ToolExecutor(registry, database, cache, estimator, timeout_seconds=tool_timeout)

        def prompt_factory(caller: CallerContext) -> str:
            if persona is Persona.STAFF:
                return staff_prompt()
            return customer_prompt(caller.customer_id is not None)

        if settings is None:
            settings = (
                PersonaConfig()
                if persona is Persona.STAFF
                else PersonaConfig(max_message_length=2000, max_client_history=20)
            )

        return ChatOrchestrator(
            persona=persona,
            settings=settings,
            model_client=model_client,
            model=ModelConfig(),
            repository=ConversationRepository(database),
            rate_limiter=rate_limiter if rate_limiter is not None else RateLimiter(),
            context_builder=ContextBuilder(estimator, HistorySelector(estimator)),
            executor_factory=executor_factory,
            prompt_factory=prompt_factory,
            max_tool_rounds=max_tool_rounds,
        )

    return _make


async def collect(events: AsyncIterator[Any]) -> list[Any]:
    return [event async for event in events]

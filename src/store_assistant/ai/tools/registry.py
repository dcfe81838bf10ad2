"""Per-persona tool registries with a closed, startup-validated dispatch table."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Iterable, Optional

from store_assistant.ai.tools.base import Tool, ToolDefinition
from store_assistant.ai.tools.customer import build_customer_tools
from store_assistant.ai.tools.staff import STAFF_TOOLS
from store_assistant.errors import ToolRegistrationError
from store_assistant.log import get_logger
from store_assistant.storage.store_queries import StoreQueries

logger = get_logger(__name__)


class StaffTool(StrEnum):
    QUERY_PRODUCTS = "query_products"
    QUERY_CATEGORIES = "query_categories"
    QUERY_CUSTOMERS = "query_customers"
    QUERY_ORDERS = "query_orders"
    QUERY_PROMOTIONS = "query_promotions"
    QUERY_SUPPLIERS = "query_suppliers"
    GET_STATISTICS = "get_statistics"
    GET_REPORTS = "get_reports"
    GET_INVENTORY_STATUS = "get_inventory_status"


class CustomerTool(StrEnum):
    SEARCH_PRODUCTS = "search_products"
    GET_PRODUCT_DETAIL = "get_product_detail"
    GET_CATEGORIES = "get_categories"
    CHECK_PROMOTION = "check_promotion"
    GET_MY_ORDERS = "get_my_orders"
    GET_ORDER_DETAIL = "get_order_detail"


def unsupported(name: str) -> dict[str, str]:
    return {"error": f"Function '{name}' is not supported"}


class ToolRegistry:
    """Maps every tag of a closed enumeration to exactly one tool.

    Construction fails with ``ToolRegistrationError`` if a tag has no tool, a
    tool has no tag, or two tools share a name, so an unregistered tag can never
    reach :meth:`dispatch`.
    """

    def __init__(self, tags: type[StrEnum], tools: Iterable[Tool]):
        self._tags = tags
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ToolRegistrationError(f"Duplicate tool name: {tool.name}")
            if tool.name not in tags._value2member_map_:
                raise ToolRegistrationError(f"Tool '{tool.name}' has no {tags.__name__} tag")
            self._tools[tool.name] = tool

        missing = [tag.value for tag in tags if tag.value not in self._tools]
        if missing:
            raise ToolRegistrationError(f"No tool registered for: {', '.join(missing)}")
        logger.debug("tool_registry_built", tags=tags.__name__, tools=len(self._tools))

    def __len__(self) -> int:
        return len(self._tools)

    def supports(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def list_definitions(self) -> list[ToolDefinition]:
        return [tool.definition for tool in self._tools.values()]

    def api_tools(self) -> list[dict[str, Any]]:
        return [tool.to_api_dict() for tool in self._tools.values()]

    def label(self, name: str) -> str:
        tool = self._tools.get(name)
        return tool.label if tool and tool.label else name

    async def dispatch(self, name: str, args: dict[str, Any], queries: StoreQueries) -> Any:
        """Run the named tool. Unknown names produce a "not supported" result, not an exception."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("tool_not_supported", tool=name)
            return unsupported(name)
        return await tool.execute(queries, args)


def build_staff_registry() -> ToolRegistry:
    return ToolRegistry(StaffTool, (cls() for cls in STAFF_TOOLS))


def build_customer_registry(customer_id: Optional[int]) -> ToolRegistry:
    """Customer tools bound to ``customer_id`` (None for a guest)."""
    return ToolRegistry(CustomerTool, build_customer_tools(customer_id))

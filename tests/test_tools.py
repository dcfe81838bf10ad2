"""Tests for the staff and customer tool catalogs and the registry."""

import pytest

from store_assistant.ai.tools.args import (
    clamp_limit,
    clamp_page,
    get_int,
    get_nullable_bool,
    get_nullable_float,
    get_nullable_int,
    parse_arguments,
)
from store_assistant.ai.tools.customer import (
    ORDER_NOT_ACCESSIBLE,
    SIGN_IN_REQUIRED,
    GetMyOrdersTool,
    GetOrderDetailTool,
)
from store_assistant.ai.tools.registry import (
    CustomerTool,
    StaffTool,
    ToolRegistry,
    build_customer_registry,
    build_staff_registry,
)
from store_assistant.ai.tools.staff import STAFF_TOOLS, QueryProductsTool
from store_assistant.errors import AuthorizationError, ToolRegistrationError
from store_assistant.storage.store_queries import StoreQueries


@pytest.fixture
async def queries(store_db):
    async with store_db.unit_of_work() as conn:
        yield StoreQueries(conn)


class TestArgs:
    def test_parse_arguments_is_defensive(self):
        assert parse_arguments('{"page": 2}') == {"page": 2}
        assert parse_arguments("{not json") == {}
        assert parse_arguments("[1, 2]") == {}
        assert parse_arguments("") == {}
        assert parse_arguments(None) == {}

    def test_numeric_coercion(self):
        args = {"a": "12", "b": 3.9, "c": "abc", "d": True, "e": "4.0"}
        assert get_nullable_int(args, "a") == 12
        assert get_nullable_int(args, "b") == 3
        assert get_nullable_int(args, "c") is None
        assert get_nullable_int(args, "d") is None
        assert get_nullable_int(args, "e") == 4
        assert get_int(args, "missing", 7) == 7
        assert get_nullable_float({"p": "2.5"}, "p") == 2.5

    def test_non_finite_numbers_fall_back_to_defaults(self):
        args = parse_arguments('{"limit": 1e999, "page": -Infinity, "min_price": NaN, "x": "1e999"}')
        assert clamp_limit(args, 20, 50) == 20
        assert clamp_page(args) == 1
        assert get_nullable_int(args, "x") is None
        assert get_nullable_float(args, "min_price") is None
        assert get_nullable_float({"big": 10**400}, "big") is None

    def test_bool_coercion(self):
        assert get_nullable_bool({"x": "true"}, "x") is True
        assert get_nullable_bool({"x": "0"}, "x") is False
        assert get_nullable_bool({"x": False}, "x") is False
        assert get_nullable_bool({"x": "maybe"}, "x") is None


class TestRegistry:
    def test_staff_registry_covers_every_tag(self):
        registry = build_staff_registry()
        assert {d.name for d in registry.list_definitions()} == {t.value for t in StaffTool}

    def test_customer_registry_covers_every_tag(self):
        registry = build_customer_registry(1)
        assert {d.name for d in registry.list_definitions()} == {t.value for t in CustomerTool}

    def test_missing_tool_fails_at_construction(self):
        with pytest.raises(ToolRegistrationError):
            ToolRegistry(StaffTool, [QueryProductsTool()])

    def test_foreign_tool_fails_at_construction(self):
        tools = [cls() for cls in STAFF_TOOLS] + [GetMyOrdersTool(1)]
        with pytest.raises(ToolRegistrationError):
            ToolRegistry(StaffTool, tools)

    def test_duplicate_tool_fails_at_construction(self):
        tools = [cls() for cls in STAFF_TOOLS] + [QueryProductsTool()]
        with pytest.raises(ToolRegistrationError):
            ToolRegistry(StaffTool, tools)

    async def test_unknown_tool_is_not_supported_result(self, queries):
        result = await build_staff_registry().dispatch("drop_tables", {}, queries)
        assert result == {"error": "Function 'drop_tables' is not supported"}

    def test_api_tools_shape(self):
        tools = build_staff_registry().api_tools()
        stats = next(t for t in tools if t["name"] == "get_statistics")
        assert stats["input_schema"]["required"] == ["type"]
        assert "best_sellers" in stats["input_schema"]["properties"]["type"]["enum"]

    def test_customer_id_is_never_a_tool_parameter(self):
        for tool in build_customer_registry(5).api_tools():
            assert "customer_id" not in tool["input_schema"]["properties"]

    def test_labels(self):
        registry = build_staff_registry()
        assert registry.label("query_products") == "products"
        assert registry.label("unknown") == "unknown"


class TestStaffTools:
    async def test_query_products_caps_limit(self, queries):
        registry = build_staff_registry()
        result = await registry.dispatch("query_products", {"limit": 500}, queries)
        assert result["total"] == 4
        assert len(result["products"]) == 4
        assert set(result["products"][0]) == {
            "id", "name", "sku", "price", "category", "supplier", "quantity", "is_active"
        }

    async def test_overflowing_limit_uses_default(self, queries):
        args = parse_arguments('{"limit": 1e999}')
        result = await build_staff_registry().dispatch("query_products", args, queries)
        assert len(result["products"]) == 4

    async def test_query_orders_single(self, queries):
        result = await build_staff_registry().dispatch("query_orders", {"order_id": "2"}, queries)
        assert result["order"]["order_number"] == "ORD-002"
        assert result["order"]["items"][0]["product_name"] == "Coffee Beans"

    async def test_query_orders_missing(self, queries):
        result = await build_staff_registry().dispatch("query_orders", {"order_id": 404}, queries)
        assert result == {"error": "Order #404 not found"}

    async def test_statistics_unknown_type(self, queries):
        result = await build_staff_registry().dispatch("get_statistics", {"type": "weather"}, queries)
        assert "not supported" in result["error"]

    async def test_statistics_best_sellers(self, queries):
        result = await build_staff_registry().dispatch(
            "get_statistics", {"type": "best_sellers", "days": 30}, queries
        )
        assert result["best_sellers"][0]["product_name"] == "Green Tea"

    async def test_reports_default_window(self, queries):
        result = await build_staff_registry().dispatch("get_reports", {"type": "sales_summary"}, queries)
        assert result["sales_summary"]["orders"] == 2

    async def test_inventory_status(self, queries):
        result = await build_staff_registry().dispatch("get_inventory_status", {"threshold": 10}, queries)
        assert result["summary"] == {
            "total_products": 4,
            "out_of_stock_count": 1,
            "low_stock_count": 2,
            "total_inventory_value": pytest.approx(360.0),
        }
        assert [p["product_name"] for p in result["low_stock_products"]] == ["Potato Chips", "Coffee Beans"]

    async def test_promotion_by_code(self, queries):
        result = await build_staff_registry().dispatch("query_promotions", {"code": "NOPE"}, queries)
        assert result == {"error": "No promotion found with code 'NOPE'"}


class TestCustomerTools:
    async def test_search_only_active_in_stock(self, queries):
        result = await build_customer_registry(None).dispatch("search_products", {}, queries)
        assert {p["name"] for p in result["products"]} == {"Green Tea", "Coffee Beans"}

    async def test_product_detail_hides_inactive(self, queries):
        result = await build_customer_registry(None).dispatch("get_product_detail", {"product_id": 4}, queries)
        assert "error" in result

    async def test_product_detail_by_name(self, queries):
        result = await build_customer_registry(None).dispatch(
            "get_product_detail", {"product_name": "coffee"}, queries
        )
        assert [p["name"] for p in result["products"]] == ["Coffee Beans"]

    async def test_categories_active_only(self, queries):
        result = await build_customer_registry(None).dispatch("get_categories", {}, queries)
        assert {c["name"] for c in result["categories"]} == {"Drinks", "Snacks"}

    async def test_check_promotion_validity(self, queries):
        registry = build_customer_registry(None)
        assert (await registry.dispatch("check_promotion", {"code": "SAVE10"}, queries))["valid"] is True

        expired = await registry.dispatch("check_promotion", {"code": "OLD5"}, queries)
        assert expired["valid"] is False and expired["promotion"]["is_expired"] is True

        used_up = await registry.dispatch("check_promotion", {"code": "MAXED"}, queries)
        assert used_up["valid"] is False and used_up["promotion"]["is_used_up"] is True

        missing = await registry.dispatch("check_promotion", {"code": "GHOST"}, queries)
        assert missing["valid"] is False

    async def test_list_active_promotions(self, queries):
        result = await build_customer_registry(None).dispatch("check_promotion", {"list_active": "true"}, queries)
        assert [p["code"] for p in result["promotions"]] == ["SAVE10"]

    async def test_guest_cannot_see_orders(self, queries):
        registry = build_customer_registry(None)
        assert await registry.dispatch("get_my_orders", {}, queries) == {"error": SIGN_IN_REQUIRED}
        assert await registry.dispatch("get_order_detail", {"order_id": 1}, queries) == {"error": SIGN_IN_REQUIRED}

    async def test_my_orders_are_scoped(self, queries):
        result = await build_customer_registry(1).dispatch("get_my_orders", {"limit": 50}, queries)
        assert [o["order_number"] for o in result["orders"]] == ["ORD-003", "ORD-001"]

    async def test_own_order_detail(self, queries):
        result = await build_customer_registry(1).dispatch(
            "get_order_detail", {"order_number": "ORD-001"}, queries
        )
        assert result["order"]["items"] == [{"product": "Green Tea", "quantity": 6, "price": 2.5}]

    async def test_foreign_order_is_refused(self, queries):
        tool = GetOrderDetailTool(customer_id=1)
        with pytest.raises(AuthorizationError) as exc_info:
            await tool.execute(queries, {"order_id": 2})
        assert str(exc_info.value) == ORDER_NOT_ACCESSIBLE

    async def test_missing_order_looks_like_foreign_order(self, queries):
        result = await GetOrderDetailTool(customer_id=1).execute(queries, {"order_id": 999})
        assert result == {"error": ORDER_NOT_ACCESSIBLE}

    async def test_customer_id_argument_is_ignored(self, queries):
        result = await build_customer_registry(1).dispatch(
            "get_my_orders", {"customer_id": 2}, queries
        )
        assert all(o["order_number"] != "ORD-002" for o in result["orders"])

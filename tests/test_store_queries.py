"""Tests for backend store queries over seeded data."""

from datetime import timedelta

import pytest

from store_assistant.storage.store_queries import StoreQueries, utcnow


@pytest.fixture
async def queries(store_db):
    async with store_db.unit_of_work() as conn:
        yield StoreQueries(conn)


class TestProducts:
    async def test_keyword_search(self, queries):
        page = await queries.search_products(keyword="tea")
        assert page.total == 1
        assert page.items[0]["product_name"] == "Green Tea"
        assert page.items[0]["category_name"] == "Drinks"

    async def test_active_in_stock_filter(self, queries):
        page = await queries.search_products(in_stock=True, active=True)
        assert {p["product_name"] for p in page.items} == {"Green Tea", "Coffee Beans"}

    async def test_sort_and_paging(self, queries):
        page = await queries.search_products(sort_by="price_desc", page=1, page_size=2)
        assert page.total == 4
        assert [p["product_name"] for p in page.items] == ["Coffee Beans", "Green Tea"]
        second = await queries.search_products(sort_by="price_desc", page=2, page_size=2)
        assert [p["product_name"] for p in second.items] == ["Potato Chips", "Old Soda"]

    async def test_price_range(self, queries):
        page = await queries.search_products(min_price=2, max_price=3)
        assert [p["id"] for p in page.items] == [1]

    async def test_get_product(self, queries):
        product = await queries.get_product(2)
        assert product["quantity"] == 5
        assert await queries.get_product(99) is None


class TestOrders:
    async def test_list_for_customer_newest_first(self, queries):
        page = await queries.list_orders(customer_id=1)
        assert page.total == 2
        assert [o["order_number"] for o in page.items] == ["ORD-003", "ORD-001"]

    async def test_status_and_keyword(self, queries):
        page = await queries.list_orders(status="completed", keyword="Bob")
        assert [o["order_number"] for o in page.items] == ["ORD-002"]

    async def test_date_range(self, queries):
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        page = await queries.list_orders(date_from=today - timedelta(days=30), date_to=today)
        assert page.total == 3

    async def test_by_number_and_items(self, queries):
        order = await queries.get_order_by_number("ORD-002")
        assert order["customer_id"] == 2
        items = await queries.get_order_items(order["id"])
        assert items == [
            {"product_id": 2, "product_name": "Coffee Beans", "quantity": 2, "price": 12.0, "subtotal": 24.0}
        ]


class TestPromotions:
    async def test_by_code_is_case_insensitive(self, queries):
        promo = await queries.get_promotion_by_code("save10")
        assert promo["code"] == "SAVE10"

    async def test_status_filters(self, queries):
        active = await queries.list_promotions(status="active")
        assert {p["code"] for p in active.items} == {"SAVE10", "MAXED"}
        expired = await queries.list_promotions(status="expired")
        assert [p["code"] for p in expired.items] == ["OLD5"]
        inactive = await queries.list_promotions(status="inactive")
        assert [p["code"] for p in inactive.items] == ["OFF"]


class TestStatistics:
    async def test_overview(self, queries):
        overview = await queries.overview_stats()
        assert overview["orders"] == 3
        assert overview["customers"] == 2
        assert overview["active_products"] == 3
        assert overview["total_revenue"] == pytest.approx(35.0)

    async def test_best_sellers_counts_completed_orders_only(self, queries):
        rows = await queries.best_sellers(limit=10, days=7)
        assert [(r["product_name"], r["quantity_sold"]) for r in rows] == [("Green Tea", 6), ("Coffee Beans", 2)]

    async def test_low_stock(self, queries):
        rows = await queries.low_stock(10)
        assert [r["product_name"] for r in rows] == ["Potato Chips", "Coffee Beans"]

    async def test_order_stats(self, queries):
        stats = await queries.order_stats(7)
        assert stats["total"] == 3
        assert {r["status"]: r["count"] for r in stats["by_status"]} == {"completed": 2, "pending": 1}

    async def test_inventory_summary(self, queries):
        summary = await queries.inventory_summary()
        assert summary["total_products"] == 4
        assert summary["out_of_stock_count"] == 1
        assert summary["total_inventory_value"] == pytest.approx(360.0)


class TestReports:
    async def test_sales_summary(self, queries):
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        summary = await queries.sales_summary(today - timedelta(days=30), today)
        assert summary["orders"] == 2
        assert summary["gross_sales"] == pytest.approx(39.0)
        assert summary["discounts"] == pytest.approx(4.0)
        assert summary["net_sales"] == pytest.approx(35.0)

    async def test_top_customers(self, queries):
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        rows = await queries.top_customers(today - timedelta(days=30), today, limit=5)
        assert [r["full_name"] for r in rows] == ["Bob Tran", "Alice Nguyen"]

    async def test_revenue_by_day(self, queries):
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        rows = await queries.revenue_by_day(today - timedelta(days=30), today)
        assert len(rows) == 2
        assert sum(r["revenue"] for r in rows) == pytest.approx(35.0)

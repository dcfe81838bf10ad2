"""Read-only backend queries over the store catalog, orders and promotions.

All methods run on the connection handed in by the caller, normally a
``Database.unit_of_work()`` connection owned by a single tool invocation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import aiosqlite

from store_assistant.storage.models import Page

_PRODUCT_SORTS = {
    "price_asc": "p.price ASC",
    "price_desc": "p.price DESC",
    "name_asc": "p.product_name ASC",
    "name_desc": "p.product_name DESC",
    "newest": "p.created_at DESC",
}

_PRODUCT_SELECT = """
    SELECT p.id, p.product_name, p.sku, p.description, p.price, p.image_url, p.is_active,
           p.category_id, c.name AS category_name,
           p.supplier_id, s.name AS supplier_name,
           COALESCE(i.quantity, 0) AS quantity
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
    LEFT JOIN suppliers s ON s.id = p.supplier_id
    LEFT JOIN inventory i ON i.product_id = p.id
"""

_ORDER_SELECT = """
    SELECT o.id, o.order_number, o.customer_id, cu.full_name AS customer_name,
           o.status, o.subtotal, o.discount, o.total_amount, o.created_at
    FROM orders o
    LEFT JOIN customers cu ON cu.id = o.customer_id
"""

# Orders that count toward revenue.
_SOLD = "o.status = 'completed'"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def _offset(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size


class _Where:
    """Accumulates AND-ed filter clauses with their parameters."""

    def __init__(self) -> None:
        self.clauses: list[str] = []
        self.params: list[Any] = []

    def add(self, clause: str, *params: Any) -> None:
        self.clauses.append(clause)
        self.params.extend(params)

    def sql(self) -> str:
        return f" WHERE {' AND '.join(self.clauses)}" if self.clauses else ""


class StoreQueries:
    """Paginated, filtered reads returning plain dict records."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def _all(self, sql: str, params: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        cursor = await self._conn.execute(sql, params)
        return [dict(row) for row in await cursor.fetchall()]

    async def _one(self, sql: str, params: list[Any] | tuple[Any, ...] = ()) -> Optional[dict[str, Any]]:
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def _page(self, select: str, count_from: str, where: _Where, order_by: str, page: int, page_size: int) -> Page:
        total_row = await self._one(f"SELECT COUNT(*) AS n {count_from}{where.sql()}", where.params)
        items = await self._all(
            f"{select}{where.sql()} ORDER BY {order_by} LIMIT ? OFFSET ?",
            [*where.params, page_size, _offset(page, page_size)],
        )
        return Page(items=items, total=total_row["n"] if total_row else 0)

    # -- Products --

    async def search_products(
        self,
        page: int = 1,
        page_size: int = 20,
        keyword: Optional[str] = None,
        category_id: Optional[int] = None,
        supplier_id: Optional[int] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        in_stock: Optional[bool] = None,
        active: Optional[bool] = None,
        sort_by: Optional[str] = None,
    ) -> Page:
        where = _Where()
        if keyword:
            where.add("(p.product_name LIKE ? OR p.sku LIKE ?)", f"%{keyword}%", f"%{keyword}%")
        if category_id is not None:
            where.add("p.category_id = ?", category_id)
        if supplier_id is not None:
            where.add("p.supplier_id = ?", supplier_id)
        if min_price is not None:
            where.add("p.price >= ?", min_price)
        if max_price is not None:
            where.add("p.price <= ?", max_price)
        if in_stock is not None:
            where.add("COALESCE(i.quantity, 0) > 0" if in_stock else "COALESCE(i.quantity, 0) <= 0")
        if active is not None:
            where.add("p.is_active = ?", 1 if active else 0)

        order_by = _PRODUCT_SORTS.get(sort_by or "", "p.id ASC")
        count_from = "FROM products p LEFT JOIN inventory i ON i.product_id = p.id"
        return await self._page(_PRODUCT_SELECT, count_from, where, order_by, page, page_size)

    async def get_product(self, product_id: int) -> Optional[dict[str, Any]]:
        return await self._one(f"{_PRODUCT_SELECT} WHERE p.id = ?", (product_id,))

    # -- Categories, customers, suppliers --

    async def list_categories(
        self, page: int = 1, page_size: int = 50, keyword: Optional[str] = None, active: Optional[bool] = None
    ) -> Page:
        where = _Where()
        if keyword:
            where.add("c.name LIKE ?", f"%{keyword}%")
        if active is not None:
            where.add("c.is_active = ?", 1 if active else 0)
        select = """
            SELECT c.id, c.name, c.description, c.is_active,
                   (SELECT COUNT(*) FROM products p WHERE p.category_id = c.id) AS product_count
            FROM categories c
        """
        return await self._page(select, "FROM categories c", where, "c.name ASC", page, page_size)

    async def search_customers(
        self, page: int = 1, page_size: int = 20, keyword: Optional[str] = None, active: Optional[bool] = None
    ) -> Page:
        where = _Where()
        if keyword:
            like = f"%{keyword}%"
            where.add("(cu.full_name LIKE ? OR cu.phone LIKE ? OR cu.email LIKE ?)", like, like, like)
        if active is not None:
            where.add("cu.is_active = ?", 1 if active else 0)
        select = "SELECT cu.id, cu.full_name, cu.phone, cu.email, cu.address, cu.is_active FROM customers cu"
        return await self._page(select, "FROM customers cu", where, "cu.id ASC", page, page_size)

    async def list_suppliers(self, page: int = 1, page_size: int = 50, keyword: Optional[str] = None) -> Page:
        where = _Where()
        if keyword:
            where.add("s.name LIKE ?", f"%{keyword}%")
        select = "SELECT s.id, s.name, s.phone, s.email, s.address FROM suppliers s"
        return await self._page(select, "FROM suppliers s", where, "s.name ASC", page, page_size)

    # -- Orders --

    async def get_order(self, order_id: int) -> Optional[dict[str, Any]]:
        return await self._one(f"{_ORDER_SELECT} WHERE o.id = ?", (order_id,))

    async def get_order_by_number(self, order_number: str) -> Optional[dict[str, Any]]:
        return await self._one(f"{_ORDER_SELECT} WHERE o.order_number = ?", (order_number,))

    async def get_order_items(self, order_id: int) -> list[dict[str, Any]]:
        return await self._all(
            """SELECT oi.product_id, p.product_name, oi.quantity, oi.price, oi.subtotal
               FROM order_items oi LEFT JOIN products p ON p.id = oi.product_id
               WHERE oi.order_id = ? ORDER BY oi.id""",
            (order_id,),
        )

    async def list_orders(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        keyword: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> Page:
        where = _Where()
        if customer_id is not None:
            where.add("o.customer_id = ?", customer_id)
        if status:
            where.add("o.status = ?", status)
        if date_from is not None:
            where.add("o.created_at >= ?", iso(date_from))
        if date_to is not None:
            where.add("o.created_at < ?", iso(date_to + timedelta(days=1)))
        if keyword:
            like = f"%{keyword}%"
            where.add("(cu.full_name LIKE ? OR cu.phone LIKE ? OR o.order_number LIKE ?)", like, like, like)
        count_from = "FROM orders o LEFT JOIN customers cu ON cu.id = o.customer_id"
        return await self._page(_ORDER_SELECT, count_from, where, "o.created_at DESC, o.id DESC", page, page_size)

    # -- Promotions --

    async def get_promotion_by_code(self, code: str) -> Optional[dict[str, Any]]:
        return await self._one("SELECT * FROM promotions WHERE code = ? COLLATE NOCASE", (code,))

    async def list_promotions(
        self,
        page: int = 1,
        page_size: int = 20,
        keyword: Optional[str] = None,
        status: Optional[str] = None,
        discount_type: Optional[str] = None,
    ) -> Page:
        now = iso(utcnow())
        where = _Where()
        if keyword:
            where.add("(pr.code LIKE ? OR pr.description LIKE ?)", f"%{keyword}%", f"%{keyword}%")
        if status == "active":
            where.add("pr.active = 1 AND pr.end_date >= ?", now)
        elif status == "inactive":
            where.add("pr.active = 0")
        elif status == "expired":
            where.add("pr.end_date < ?", now)
        if discount_type:
            where.add("pr.type = ?", discount_type)
        return await self._page("SELECT * FROM promotions pr", "FROM promotions pr", where, "pr.end_date DESC", page, page_size)

    # -- Statistics --

    async def overview_stats(self) -> dict[str, Any]:
        today = iso(utcnow().replace(hour=0, minute=0, second=0, microsecond=0))
        row = await self._one(
            f"""SELECT
                   (SELECT COUNT(*) FROM products WHERE is_active = 1) AS active_products,
                   (SELECT COUNT(*) FROM customers) AS customers,
                   (SELECT COUNT(*) FROM orders) AS orders,
                   (SELECT COALESCE(SUM(total_amount), 0) FROM orders o WHERE {_SOLD}) AS total_revenue,
                   (SELECT COUNT(*) FROM orders o WHERE o.created_at >= ?) AS orders_today,
                   (SELECT COALESCE(SUM(total_amount), 0) FROM orders o
                        WHERE {_SOLD} AND o.created_at >= ?) AS revenue_today""",
            (today, today),
        )
        return row or {}

    async def revenue_by_period(self, days: int) -> dict[str, Any]:
        since = iso(utcnow() - timedelta(days=days))
        row = await self._one(
            f"""SELECT COUNT(*) AS orders, COALESCE(SUM(total_amount), 0) AS revenue,
                       COALESCE(AVG(total_amount), 0) AS average_order_value
                FROM orders o WHERE {_SOLD} AND o.created_at >= ?""",
            (since,),
        )
        return {"days": days, **(row or {})}

    async def best_sellers(self, limit: int, days: int) -> list[dict[str, Any]]:
        since = iso(utcnow() - timedelta(days=days))
        return await self._all(
            f"""SELECT p.id, p.product_name, SUM(oi.quantity) AS quantity_sold, SUM(oi.subtotal) AS revenue
                FROM order_items oi
                JOIN orders o ON o.id = oi.order_id
                JOIN products p ON p.id = oi.product_id
                WHERE {_SOLD} AND o.created_at >= ?
                GROUP BY p.id ORDER BY quantity_sold DESC LIMIT ?""",
            (since, limit),
        )

    async def low_stock(self, threshold: int, category_id: Optional[int] = None) -> list[dict[str, Any]]:
        where = _Where()
        where.add("p.is_active = 1")
        where.add("COALESCE(i.quantity, 0) <= ?", threshold)
        if category_id is not None:
            where.add("p.category_id = ?", category_id)
        return await self._all(
            f"""SELECT p.id, p.product_name, COALESCE(i.quantity, 0) AS quantity
                FROM products p LEFT JOIN inventory i ON i.product_id = p.id
                {where.sql()} ORDER BY quantity ASC, p.id ASC""",
            where.params,
        )

    async def order_stats(self, days: int) -> dict[str, Any]:
        since = iso(utcnow() - timedelta(days=days))
        rows = await self._all(
            """SELECT status, COUNT(*) AS count, COALESCE(SUM(total_amount), 0) AS amount
               FROM orders o WHERE o.created_at >= ? GROUP BY status""",
            (since,),
        )
        return {"days": days, "by_status": rows, "total": sum(r["count"] for r in rows)}

    # -- Reports --

    async def sales_summary(self, date_from: datetime, date_to: datetime) -> dict[str, Any]:
        row = await self._one(
            f"""SELECT COUNT(*) AS orders,
                       COALESCE(SUM(subtotal), 0) AS gross_sales,
                       COALESCE(SUM(discount), 0) AS discounts,
                       COALESCE(SUM(total_amount), 0) AS net_sales
                FROM orders o WHERE {_SOLD} AND o.created_at >= ? AND o.created_at < ?""",
            (iso(date_from), iso(date_to + timedelta(days=1))),
        )
        return {"date_from": iso(date_from)[:10], "date_to": iso(date_to)[:10], **(row or {})}

    async def top_products(self, date_from: datetime, date_to: datetime, limit: int) -> list[dict[str, Any]]:
        return await self._all(
            f"""SELECT p.id, p.product_name, SUM(oi.quantity) AS quantity_sold, SUM(oi.subtotal) AS revenue
                FROM order_items oi
                JOIN orders o ON o.id = oi.order_id
                JOIN products p ON p.id = oi.product_id
                WHERE {_SOLD} AND o.created_at >= ? AND o.created_at < ?
                GROUP BY p.id ORDER BY revenue DESC LIMIT ?""",
            (iso(date_from), iso(date_to + timedelta(days=1)), limit),
        )

    async def top_customers(self, date_from: datetime, date_to: datetime, limit: int) -> list[dict[str, Any]]:
        return await self._all(
            f"""SELECT cu.id, cu.full_name, COUNT(o.id) AS orders, SUM(o.total_amount) AS total_spent
                FROM orders o JOIN customers cu ON cu.id = o.customer_id
                WHERE {_SOLD} AND o.created_at >= ? AND o.created_at < ?
                GROUP BY cu.id ORDER BY total_spent DESC LIMIT ?""",
            (iso(date_from), iso(date_to + timedelta(days=1)), limit),
        )

    async def revenue_by_day(self, date_from: datetime, date_to: datetime) -> list[dict[str, Any]]:
        return await self._all(
            f"""SELECT substr(o.created_at, 1, 10) AS day, COUNT(*) AS orders, SUM(o.total_amount) AS revenue
                FROM orders o
                WHERE {_SOLD} AND o.created_at >= ? AND o.created_at < ?
                GROUP BY day ORDER BY day""",
            (iso(date_from), iso(date_to + timedelta(days=1))),
        )

    # -- Inventory --

    async def inventory_summary(self, category_id: Optional[int] = None) -> dict[str, Any]:
        where = _Where()
        if category_id is not None:
            where.add("p.category_id = ?", category_id)
        row = await self._one(
            f"""SELECT COUNT(*) AS total_products,
                       SUM(CASE WHEN COALESCE(i.quantity, 0) <= 0 THEN 1 ELSE 0 END) AS out_of_stock_count,
                       COALESCE(SUM(COALESCE(i.quantity, 0) * p.price), 0) AS total_inventory_value
                FROM products p LEFT JOIN inventory i ON i.product_id = p.id{where.sql()}""",
            where.params,
        )
        return row or {}

"""Store-wide query tools available to the staff persona."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from store_assistant.ai.tools.args import (
    clamp_limit,
    clamp_page,
    get_date,
    get_int,
    get_nullable_bool,
    get_nullable_float,
    get_nullable_int,
    get_str,
)
from store_assistant.ai.tools.base import Tool, ToolParam
from store_assistant.storage.store_queries import StoreQueries, utcnow

STATISTIC_TYPES = ("overview", "revenue", "best_sellers", "low_stock", "order_stats")
REPORT_TYPES = ("sales_summary", "top_products", "top_customers", "revenue_by_day")

_PAGE = ToolParam("integer", "Page number (default 1)")


def _product_row(p: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": p["id"],
        "name": p["product_name"],
        "sku": p["sku"],
        "price": p["price"],
        "category": p["category_name"],
        "supplier": p["supplier_name"],
        "quantity": p["quantity"],
        "is_active": bool(p["is_active"]),
    }


class QueryProductsTool(Tool):
    name = "query_products"
    label = "products"
    description = (
        "Search the product catalog with filters. Use for questions about products, "
        "prices, stock levels of specific items or what a category or supplier carries."
    )
    parameters = {
        "keyword": ToolParam("string", "Match against product name or SKU"),
        "category_id": ToolParam("integer", "Only products in this category"),
        "supplier_id": ToolParam("integer", "Only products from this supplier"),
        "min_price": ToolParam("number", "Minimum price"),
        "max_price": ToolParam("number", "Maximum price"),
        "in_stock": ToolParam("boolean", "true = only in stock, false = only out of stock"),
        "is_active": ToolParam("boolean", "true = only active products, false = only inactive"),
        "page": _PAGE,
        "limit": ToolParam("integer", "Results per page (default 20, max 50)"),
        "sort_by": ToolParam(
            "string", "Sort order", enum=("price_asc", "price_desc", "name_asc", "name_desc")
        ),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        page = clamp_page(args)
        result = await queries.search_products(
            page=page,
            page_size=clamp_limit(args, 20, 50),
            keyword=get_str(args, "keyword"),
            category_id=get_nullable_int(args, "category_id"),
            supplier_id=get_nullable_int(args, "supplier_id"),
            min_price=get_nullable_float(args, "min_price"),
            max_price=get_nullable_float(args, "max_price"),
            in_stock=get_nullable_bool(args, "in_stock"),
            active=get_nullable_bool(args, "is_active"),
            sort_by=get_str(args, "sort_by"),
        )
        return {"total": result.total, "page": page, "products": [_product_row(p) for p in result.items]}


class QueryCategoriesTool(Tool):
    name = "query_categories"
    label = "categories"
    description = "List product categories with their product counts."
    parameters = {
        "keyword": ToolParam("string", "Match against category name"),
        "is_active": ToolParam("boolean", "Filter by active flag"),
        "page": _PAGE,
        "limit": ToolParam("integer", "Results per page (default 50, max 100)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        page = clamp_page(args)
        result = await queries.list_categories(
            page=page,
            page_size=clamp_limit(args, 50, 100),
            keyword=get_str(args, "keyword"),
            active=get_nullable_bool(args, "is_active"),
        )
        categories = [
            {
                "id": c["id"],
                "name": c["name"],
                "description": c["description"],
                "is_active": bool(c["is_active"]),
                "product_count": c["product_count"],
            }
            for c in result.items
        ]
        return {"total": result.total, "page": page, "categories": categories}


class QueryCustomersTool(Tool):
    name = "query_customers"
    label = "customers"
    description = "Search customers by name, phone or email."
    parameters = {
        "keyword": ToolParam("string", "Match against name, phone or email"),
        "is_active": ToolParam("boolean", "Filter by active flag"),
        "page": _PAGE,
        "limit": ToolParam("integer", "Results per page (default 20, max 50)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        page = clamp_page(args)
        result = await queries.search_customers(
            page=page,
            page_size=clamp_limit(args, 20, 50),
            keyword=get_str(args, "keyword"),
            active=get_nullable_bool(args, "is_active"),
        )
        customers = [
            {"id": c["id"], "name": c["full_name"], "phone": c["phone"], "email": c["email"]}
            for c in result.items
        ]
        return {"total": result.total, "page": page, "customers": customers}


class QueryOrdersTool(Tool):
    name = "query_orders"
    label = "orders"
    description = (
        "Look up a single order by id, or list orders filtered by status, date range "
        "or a keyword matching customer name, phone or order number."
    )
    parameters = {
        "order_id": ToolParam("integer", "Fetch one order with its line items"),
        "status": ToolParam("string", "Order status", enum=("pending", "completed", "cancelled")),
        "date_from": ToolParam("string", "Start date, YYYY-MM-DD"),
        "date_to": ToolParam("string", "End date (inclusive), YYYY-MM-DD"),
        "keyword": ToolParam("string", "Customer name, phone or order number"),
        "page": _PAGE,
        "limit": ToolParam("integer", "Results per page (default 20, max 50)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        order_id = get_nullable_int(args, "order_id")
        if order_id is not None:
            order = await queries.get_order(order_id)
            if order is None:
                return {"error": f"Order #{order_id} not found"}
            items = await queries.get_order_items(order_id)
            return {"order": {**order, "items": items}}

        page = clamp_page(args)
        result = await queries.list_orders(
            page=page,
            page_size=clamp_limit(args, 20, 50),
            status=get_str(args, "status"),
            date_from=get_date(args, "date_from"),
            date_to=get_date(args, "date_to"),
            keyword=get_str(args, "keyword"),
        )
        orders = [
            {
                "id": o["id"],
                "order_number": o["order_number"],
                "customer": o["customer_name"],
                "status": o["status"],
                "total_amount": o["total_amount"],
                "created_at": o["created_at"],
            }
            for o in result.items
        ]
        return {"total": result.total, "page": page, "orders": orders}


class QueryPromotionsTool(Tool):
    name = "query_promotions"
    label = "promotions"
    description = "Look up a promotion by code or list promotions by status and discount type."
    parameters = {
        "code": ToolParam("string", "Exact promotion code"),
        "keyword": ToolParam("string", "Match against code or description"),
        "status": ToolParam("string", "Promotion status", enum=("active", "inactive", "expired")),
        "type": ToolParam("string", "Discount type", enum=("percent", "fixed")),
        "page": _PAGE,
        "limit": ToolParam("integer", "Results per page (default 20, max 50)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        code = get_str(args, "code")
        if code is not None:
            promotion = await queries.get_promotion_by_code(code)
            if promotion is None:
                return {"error": f"No promotion found with code '{code}'"}
            return {"promotion": promotion}

        page = clamp_page(args)
        result = await queries.list_promotions(
            page=page,
            page_size=clamp_limit(args, 20, 50),
            keyword=get_str(args, "keyword"),
            status=get_str(args, "status"),
            discount_type=get_str(args, "type"),
        )
        promotions = [
            {
                "code": p["code"],
                "description": p["description"],
                "type": p["type"],
                "value": p["value"],
                "end_date": p["end_date"],
                "active": bool(p["active"]),
                "used_count": p["used_count"],
                "usage_limit": p["usage_limit"],
            }
            for p in result.items
        ]
        return {"total": result.total, "page": page, "promotions": promotions}


class QuerySuppliersTool(Tool):
    name = "query_suppliers"
    label = "suppliers"
    description = "List suppliers, optionally filtered by name."
    parameters = {
        "keyword": ToolParam("string", "Match against supplier name"),
        "page": _PAGE,
        "limit": ToolParam("integer", "Results per page (default 50, max 100)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        page = clamp_page(args)
        result = await queries.list_suppliers(
            page=page, page_size=clamp_limit(args, 50, 100), keyword=get_str(args, "keyword")
        )
        return {"total": result.total, "page": page, "suppliers": result.items}


class GetStatisticsTool(Tool):
    name = "get_statistics"
    label = "statistics"
    description = (
        "Business statistics: overview (store totals and today), revenue over the last N days, "
        "best_sellers, low_stock products, or order_stats by status."
    )
    parameters = {
        "type": ToolParam("string", "Statistic to compute", required=True, enum=STATISTIC_TYPES),
        "days": ToolParam("integer", "Look-back window in days (default 7)"),
        "limit": ToolParam("integer", "Rows for best_sellers (default 10, max 50)"),
        "threshold": ToolParam("integer", "Stock threshold for low_stock (default 10)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        kind = get_str(args, "type")
        days = max(get_int(args, "days", 7), 1)
        match kind:
            case "overview":
                return {"overview": await queries.overview_stats()}
            case "revenue":
                return {"revenue": await queries.revenue_by_period(days)}
            case "best_sellers":
                limit = clamp_limit(args, 10, 50)
                return {"days": days, "best_sellers": await queries.best_sellers(limit, days)}
            case "low_stock":
                threshold = get_int(args, "threshold", 10)
                return {"threshold": threshold, "low_stock": await queries.low_stock(threshold)}
            case "order_stats":
                return {"order_stats": await queries.order_stats(days)}
            case _:
                return {
                    "error": f"Statistic type '{kind}' is not supported. "
                    f"Use one of: {', '.join(STATISTIC_TYPES)}"
                }


class GetReportsTool(Tool):
    name = "get_reports"
    label = "reports"
    description = (
        "Reports over a date range (default: the last 30 days): sales_summary, top_products, "
        "top_customers or revenue_by_day."
    )
    parameters = {
        "type": ToolParam("string", "Report to build", required=True, enum=REPORT_TYPES),
        "date_from": ToolParam("string", "Start date, YYYY-MM-DD"),
        "date_to": ToolParam("string", "End date (inclusive), YYYY-MM-DD"),
        "limit": ToolParam("integer", "Rows for top_* reports (default 10, max 50)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        kind = get_str(args, "type")
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        date_to = get_date(args, "date_to") or today
        date_from = get_date(args, "date_from") or date_to - timedelta(days=30)
        limit = clamp_limit(args, 10, 50)
        match kind:
            case "sales_summary":
                return {"sales_summary": await queries.sales_summary(date_from, date_to)}
            case "top_products":
                return {"top_products": await queries.top_products(date_from, date_to, limit)}
            case "top_customers":
                return {"top_customers": await queries.top_customers(date_from, date_to, limit)}
            case "revenue_by_day":
                return {"revenue_by_day": await queries.revenue_by_day(date_from, date_to)}
            case _:
                return {
                    "error": f"Report type '{kind}' is not supported. "
                    f"Use one of: {', '.join(REPORT_TYPES)}"
                }


class GetInventoryStatusTool(Tool):
    name = "get_inventory_status"
    label = "inventory"
    description = "Inventory overview: product counts, stock value and products at or below a stock threshold."
    parameters = {
        "threshold": ToolParam("integer", "Low-stock threshold (default 10)"),
        "category_id": ToolParam("integer", "Restrict to one category"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        threshold = get_int(args, "threshold", 10)
        category_id = get_nullable_int(args, "category_id")
        summary = await queries.inventory_summary(category_id)
        low_stock = await queries.low_stock(threshold, category_id)
        return {
            "summary": {
                "total_products": summary.get("total_products") or 0,
                "out_of_stock_count": summary.get("out_of_stock_count") or 0,
                "low_stock_count": len(low_stock),
                "total_inventory_value": summary.get("total_inventory_value") or 0,
            },
            "threshold": threshold,
            "low_stock_products": low_stock[:20],
        }


STAFF_TOOLS: tuple[type[Tool], ...] = (
    QueryProductsTool,
    QueryCategoriesTool,
    QueryCustomersTool,
    QueryOrdersTool,
    QueryPromotionsTool,
    QuerySuppliersTool,
    GetStatisticsTool,
    GetReportsTool,
    GetInventoryStatusTool,
)

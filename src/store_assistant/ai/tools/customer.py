"""Customer-facing tools.

Order tools are constructed with the authenticated customer's id. The id is
never part of a tool's input schema, so the model cannot ask for somebody
else's orders; every order record is additionally checked against it before
being returned.
"""

from __future__ import annotations

from typing import Any, Optional

from store_assistant.ai.tools.args import (
    clamp_limit,
    clamp_page,
    get_nullable_bool,
    get_nullable_float,
    get_nullable_int,
    get_str,
)
from store_assistant.ai.tools.base import Tool, ToolParam
from store_assistant.errors import AuthorizationError
from store_assistant.log import get_logger
from store_assistant.storage.store_queries import StoreQueries, iso, utcnow

logger = get_logger(__name__)

SIGN_IN_REQUIRED = "Please sign in to view your orders."
# Returned for both missing and foreign orders so existence is never confirmed.
ORDER_NOT_ACCESSIBLE = "Order not found or you do not have access to it."


def _is_expired(promotion: dict[str, Any]) -> bool:
    return promotion["end_date"] < iso(utcnow())


def _is_used_up(promotion: dict[str, Any]) -> bool:
    limit = promotion["usage_limit"]
    return limit is not None and promotion["used_count"] >= limit


class SearchProductsTool(Tool):
    name = "search_products"
    label = "products"
    description = "Search products that are currently for sale and in stock."
    parameters = {
        "keyword": ToolParam("string", "Product name or SKU to look for"),
        "category_id": ToolParam("integer", "Only products in this category"),
        "min_price": ToolParam("number", "Minimum price"),
        "max_price": ToolParam("number", "Maximum price"),
        "sort_by": ToolParam("string", "Sort order", enum=("price_asc", "price_desc", "name_asc", "newest")),
        "page": ToolParam("integer", "Page number (default 1)"),
        "limit": ToolParam("integer", "Results per page (default 10, max 20)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        page = clamp_page(args)
        result = await queries.search_products(
            page=page,
            page_size=clamp_limit(args, 10, 20),
            keyword=get_str(args, "keyword"),
            category_id=get_nullable_int(args, "category_id"),
            min_price=get_nullable_float(args, "min_price"),
            max_price=get_nullable_float(args, "max_price"),
            in_stock=True,
            active=True,
            sort_by=get_str(args, "sort_by"),
        )
        products = [
            {
                "id": p["id"],
                "name": p["product_name"],
                "price": p["price"],
                "category": p["category_name"],
                "in_stock": p["quantity"] > 0,
                "image_url": p["image_url"],
            }
            for p in result.items
        ]
        return {"total": result.total, "page": page, "products": products}


class GetProductDetailTool(Tool):
    name = "get_product_detail"
    label = "product details"
    description = "Details of one product, by id or by (partial) name."
    parameters = {
        "product_id": ToolParam("integer", "Product id"),
        "product_name": ToolParam("string", "Product name; the closest matches are returned"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        product_id = get_nullable_int(args, "product_id")
        product_name = get_str(args, "product_name")

        if product_id is not None:
            product = await queries.get_product(product_id)
            if product is None or not product["is_active"]:
                return {"error": f"No product found with id {product_id}"}
            return {
                "product": {
                    "id": product["id"],
                    "name": product["product_name"],
                    "description": product["description"],
                    "price": product["price"],
                    "category": product["category_name"],
                    "in_stock": product["quantity"] > 0,
                    "quantity": product["quantity"],
                    "image_url": product["image_url"],
                }
            }

        if product_name is not None:
            result = await queries.search_products(page=1, page_size=5, keyword=product_name, active=True)
            if not result.items:
                return {"error": f"No product found matching '{product_name}'"}
            return {
                "products": [
                    {
                        "id": p["id"],
                        "name": p["product_name"],
                        "description": p["description"],
                        "price": p["price"],
                        "category": p["category_name"],
                        "in_stock": p["quantity"] > 0,
                    }
                    for p in result.items
                ]
            }

        return {"error": "Provide either product_id or product_name"}


class GetCategoriesTool(Tool):
    name = "get_categories"
    label = "categories"
    description = "List the store's active product categories."
    parameters: dict[str, ToolParam] = {}

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        result = await queries.list_categories(page=1, page_size=100, active=True)
        return {
            "categories": [
                {"id": c["id"], "name": c["name"], "description": c["description"]} for c in result.items
            ]
        }


class CheckPromotionTool(Tool):
    name = "check_promotion"
    label = "promotions"
    description = "Check whether a promotion code is valid, or list the promotions currently running."
    parameters = {
        "code": ToolParam("string", "Promotion code to check"),
        "list_active": ToolParam("boolean", "true to list currently active promotions"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        code = get_str(args, "code")
        if code is not None:
            promotion = await queries.get_promotion_by_code(code)
            if promotion is None:
                return {"valid": False, "error": f"Code '{code}' does not exist"}
            expired = _is_expired(promotion)
            used_up = _is_used_up(promotion)
            return {
                "valid": bool(promotion["active"]) and not expired and not used_up,
                "promotion": {
                    "code": promotion["code"],
                    "description": promotion["description"],
                    "discount_type": promotion["type"],
                    "discount_value": promotion["value"],
                    "min_order_value": promotion["min_order_amount"],
                    "max_discount": promotion["max_discount"],
                    "end_date": promotion["end_date"],
                    "is_expired": expired,
                    "is_used_up": used_up,
                },
            }

        if get_nullable_bool(args, "list_active"):
            result = await queries.list_promotions(page=1, page_size=10, status="active")
            return {
                "promotions": [
                    {
                        "code": p["code"],
                        "description": p["description"],
                        "discount_type": p["type"],
                        "discount_value": p["value"],
                        "min_order_value": p["min_order_amount"],
                        "end_date": p["end_date"],
                    }
                    for p in result.items
                    if not _is_used_up(p)
                ]
            }

        return {"error": "Provide a promotion code or set list_active to true"}


class _OwnedOrderTool(Tool):
    """Base for tools that read the signed-in customer's own orders."""

    def __init__(self, customer_id: Optional[int]):
        self._customer_id = customer_id

    @property
    def customer_id(self) -> Optional[int]:
        return self._customer_id

    def _owns(self, order: dict[str, Any]) -> bool:
        if order["customer_id"] == self._customer_id:
            return True
        logger.warning(
            "order_access_denied",
            tool=self.name,
            customer_id=self._customer_id,
            order_id=order["id"],
        )
        return False


class GetMyOrdersTool(_OwnedOrderTool):
    name = "get_my_orders"
    label = "your orders"
    description = "List the signed-in customer's own orders, newest first."
    parameters = {
        "status": ToolParam("string", "Order status", enum=("pending", "completed", "cancelled")),
        "page": ToolParam("integer", "Page number (default 1)"),
        "limit": ToolParam("integer", "Results per page (default 10, max 10)"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        if self._customer_id is None:
            return {"error": SIGN_IN_REQUIRED}
        page = clamp_page(args)
        result = await queries.list_orders(
            page=page,
            page_size=clamp_limit(args, 10, 10),
            status=get_str(args, "status"),
            customer_id=self._customer_id,
        )
        orders = [
            {
                "id": o["id"],
                "order_number": o["order_number"],
                "status": o["status"],
                "total_amount": o["total_amount"],
                "created_at": o["created_at"],
            }
            for o in result.items
            if self._owns(o)
        ]
        return {"total": result.total, "page": page, "orders": orders}


class GetOrderDetailTool(_OwnedOrderTool):
    name = "get_order_detail"
    label = "order details"
    description = "Details of one of the signed-in customer's orders, by id or order number."
    parameters = {
        "order_id": ToolParam("integer", "Order id"),
        "order_number": ToolParam("string", "Order number as printed on the receipt"),
    }

    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        if self._customer_id is None:
            return {"error": SIGN_IN_REQUIRED}

        order_id = get_nullable_int(args, "order_id")
        order_number = get_str(args, "order_number")
        if order_id is None and order_number is None:
            return {"error": "Provide either order_id or order_number"}

        if order_id is not None:
            order = await queries.get_order(order_id)
        else:
            order = await queries.get_order_by_number(order_number)  # type: ignore[arg-type]

        if order is None:
            return {"error": ORDER_NOT_ACCESSIBLE}
        if not self._owns(order):
            raise AuthorizationError(ORDER_NOT_ACCESSIBLE)

        items = await queries.get_order_items(order["id"])
        return {
            "order": {
                "id": order["id"],
                "order_number": order["order_number"],
                "status": order["status"],
                "subtotal": order["subtotal"],
                "discount": order["discount"],
                "total_amount": order["total_amount"],
                "created_at": order["created_at"],
                "items": [
                    {"product": i["product_name"], "quantity": i["quantity"], "price": i["price"]}
                    for i in items
                ],
            }
        }


def build_customer_tools(customer_id: Optional[int]) -> list[Tool]:
    return [
        SearchProductsTool(),
        GetProductDetailTool(),
        GetCategoriesTool(),
        CheckPromotionTool(),
        GetMyOrdersTool(customer_id),
        GetOrderDetailTool(customer_id),
    ]


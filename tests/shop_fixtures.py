"""
Canned shop payloads and a fake shop client.

Builders produce GraphQL order nodes and REST order resources in the shapes
the Admin API returns, so tests exercise the real normalization code.
"""

import re
from typing import Dict, List, Optional

GID_PRODUCT = "gid://shopify/Product/{}"
GID_LINE = "gid://shopify/LineItem/{}"
GID_ORDER = "gid://shopify/Order/{}"


def money(amount) -> Dict:
    return {"shopMoney": {"amount": str(amount), "currencyCode": "GBP"}}


def gql_line(product_id, amount, quantity=1, line_id=None, variant_id=None, variant_title=None) -> Dict:
    line_id = line_id or f"{product_id}-{amount}"
    return {
        "id": GID_LINE.format(line_id),
        "title": f"Product {product_id}",
        "quantity": quantity,
        "product": {"id": GID_PRODUCT.format(product_id), "title": f"Product {product_id}"},
        "variant": {"id": variant_id, "title": variant_title, "price": None},
        "discountedTotalSet": money(amount),
        "originalTotalSet": money(amount),
    }


def gql_refund(*items, refund_id="r1") -> Dict:
    """items: (product_id, subtotal[, line_id]) tuples."""
    edges = []
    for item in items:
        product_id, subtotal = item[0], item[1]
        line_id = item[2] if len(item) > 2 else f"{product_id}-line"
        edges.append({"node": {
            "quantity": 1,
            "lineItem": {"id": GID_LINE.format(line_id), "product": {"id": GID_PRODUCT.format(product_id)}},
            "subtotalSet": {"shopMoney": {"amount": str(subtotal)}},
        }})
    return {
        "id": f"gid://shopify/Refund/{refund_id}",
        "createdAt": "2026-01-20T10:00:00Z",
        "refundLineItems": {"edges": edges},
    }


def gql_order(
    order_id,
    lines: List[Dict],
    created_at: str = "2026-01-15T12:00:00Z",
    status: str = "PAID",
    refunds: List[Dict] = None,
    total: Optional[str] = None,
) -> Dict:
    return {
        "id": GID_ORDER.format(order_id),
        "name": f"#{order_id}",
        "createdAt": created_at,
        "displayFinancialStatus": status,
        "totalPriceSet": money(total) if total is not None else None,
        "totalShippingPriceSet": money("4.99"),
        "customer": {"displayName": "Jane Buyer", "email": "jane@example.com"},
        "lineItems": {"edges": [{"node": line} for line in lines]},
        "refunds": refunds or [],
    }


def rest_order(
    order_id,
    lines: List[Dict],
    created_at: str = "2026-01-15T12:00:00Z",
    status: str = "paid",
    refunds: List[Dict] = None,
) -> Dict:
    return {
        "id": order_id,
        "name": f"#{order_id}",
        "created_at": created_at,
        "financial_status": status,
        "total_price": str(sum(float(line["price"]) * line["quantity"] for line in lines)),
        "currency": "GBP",
        "email": "jane@example.com",
        "customer": {"first_name": "Jane", "last_name": "Buyer"},
        "line_items": lines,
        "refunds": refunds or [],
        "shipping_lines": [{"price": "4.99"}],
    }


def rest_line(product_id, price, quantity=1, line_id=None, discount="0.00") -> Dict:
    return {
        "id": line_id or int(f"9{product_id}"),
        "product_id": int(product_id),
        "variant_id": None,
        "title": f"Product {product_id}",
        "variant_title": None,
        "quantity": quantity,
        "price": str(price),
        "total_discount": discount,
    }


class FakeShopClient:
    """
    Stands in for ShopClient.

    `pages` maps a product id to a list of pages; each page is a list of
    GraphQL order nodes. `errors` maps a product id to an exception raised
    on the given page index (0-based), or on every page when the index is None.
    """

    def __init__(
        self,
        pages: Dict[str, List[List[Dict]]] = None,
        errors: Dict[str, tuple] = None,
        rest_pages: List[List[Dict]] = None,
    ):
        self.pages = pages or {}
        self.errors = errors or {}
        self.rest_pages = rest_pages or []
        self.queries: List[Dict] = []
        self.rest_calls: List[Dict] = []
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def query_orders(self, query_string: str, first: int, cursor: Optional[str] = None) -> Dict:
        product_id = re.search(r"line_items_product_id:(\S+)", query_string).group(1)
        index = int(cursor) if cursor else 0
        self.queries.append({"product_id": product_id, "first": first, "cursor": cursor, "query": query_string})

        if product_id in self.errors:
            error, on_page = self.errors[product_id]
            if on_page is None or on_page == index:
                raise error

        product_pages = self.pages.get(product_id, [])
        page = product_pages[index] if index < len(product_pages) else []
        has_next = index + 1 < len(product_pages)
        return {
            "edges": [{"node": node} for node in page],
            "pageInfo": {"hasNextPage": has_next, "endCursor": str(index + 1) if has_next else None},
        }

    async def list_orders(self, limit: int, created_at_min: str = None, created_at_max: str = None) -> List[Dict]:
        index = len(self.rest_calls)
        self.rest_calls.append({"limit": limit, "created_at_min": created_at_min, "created_at_max": created_at_max})
        return self.rest_pages[index] if index < len(self.rest_pages) else []


class SleepRecorder:
    """Async sleep replacement recording requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

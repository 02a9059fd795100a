"""
Order normalization.

The platform returns the same concepts in two shapes: GraphQL connection
nodes (camelCase, money wrapped in `...Set.shopMoney`) and REST resources
(snake_case, plain strings). Payloads are wrapped in a source type as soon as
they are received and converted here into the canonical Order / LineItem /
Refund dataclasses, so nothing downstream inspects raw response shapes.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class LineItem:
    """One order line, revenue already resolved to a single figure."""
    line_item_id: str
    external_product_id: Optional[str]
    title: str
    quantity: int
    unit_price: Decimal
    line_revenue: Decimal
    variant_id: Optional[str] = None
    variant_title: Optional[str] = None


@dataclass
class RefundLineItem:
    line_item_id: Optional[str]
    external_product_id: Optional[str]
    refunded_subtotal: Decimal
    quantity: int = 0


@dataclass
class Refund:
    refund_id: str
    created_at: Optional[datetime]
    refunded_line_items: List[RefundLineItem] = field(default_factory=list)


@dataclass
class Order:
    """Canonical order, independent of the API it was fetched from."""
    external_order_id: str
    order_number: str
    created_at: Optional[datetime]
    raw_created_at: Optional[str]
    financial_status: str
    line_items: List[LineItem] = field(default_factory=list)
    refunds: List[Refund] = field(default_factory=list)
    total_price: Decimal = ZERO
    total_shipping_amount: Decimal = ZERO
    currency: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None

    @property
    def gross_total(self) -> Decimal:
        """Sum of all line revenue (excludes shipping)."""
        return sum((item.line_revenue for item in self.line_items), ZERO)

    def references_product(self, product_id: str) -> bool:
        return any(item.external_product_id == product_id for item in self.line_items)


@dataclass
class GraphQLOrderPayload:
    """An order node from the cursor-paginated GraphQL query."""
    node: Dict[str, Any]


@dataclass
class RestOrderPayload:
    """An order resource from the REST orders.json listing."""
    resource: Dict[str, Any]


OrderSource = Union[GraphQLOrderPayload, RestOrderPayload]


# ==================== Field helpers ====================

def normalize_product_id(value: Any) -> Optional[str]:
    """
    Reduce a product id to its numeric part.

    GraphQL ids look like "gid://shopify/Product/12345"; REST ids are ints.
    """
    if value is None or value == "":
        return None
    text = str(value).strip()
    if "/" in text:
        text = text.rsplit("/", 1)[-1]
    return text or None


def parse_money(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Unparseable money amount: {value!r}")
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; None when missing or malformed."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _shop_money(money_set: Optional[Dict]) -> Optional[Decimal]:
    if not money_set:
        return None
    shop_money = money_set.get("shopMoney") or {}
    return parse_money(shop_money.get("amount"))


def _shop_currency(money_set: Optional[Dict]) -> Optional[str]:
    if not money_set:
        return None
    return (money_set.get("shopMoney") or {}).get("currencyCode")


def _edges(connection: Optional[Dict]) -> List[Dict]:
    if not connection:
        return []
    return [edge.get("node") or {} for edge in connection.get("edges") or []]


# ==================== GraphQL ====================

def _graphql_line_item(node: Dict) -> LineItem:
    quantity = int(node.get("quantity") or 0)
    product = node.get("product") or {}
    variant = node.get("variant") or {}
    variant_price = parse_money(variant.get("price"))

    line_revenue = _shop_money(node.get("discountedTotalSet"))
    if line_revenue is None:
        line_revenue = _shop_money(node.get("originalTotalSet"))
    if line_revenue is None:
        line_revenue = (variant_price or ZERO) * quantity

    if quantity > 0:
        unit_price = line_revenue / quantity
    else:
        unit_price = variant_price or ZERO

    return LineItem(
        line_item_id=str(node.get("id") or ""),
        external_product_id=normalize_product_id(product.get("id")),
        title=node.get("title") or product.get("title") or "",
        quantity=quantity,
        unit_price=unit_price,
        line_revenue=line_revenue,
        variant_id=variant.get("id"),
        variant_title=variant.get("title"),
    )


def _graphql_refund_line_item(node: Dict) -> Optional[RefundLineItem]:
    subtotal = _shop_money(node.get("subtotalSet"))
    if subtotal is None:
        return None
    line_item = node.get("lineItem") or {}
    product = line_item.get("product") or {}
    return RefundLineItem(
        line_item_id=line_item.get("id"),
        external_product_id=normalize_product_id(product.get("id")),
        refunded_subtotal=subtotal,
        quantity=int(node.get("quantity") or 0),
    )


def _graphql_refund(node: Dict) -> Refund:
    items = [_graphql_refund_line_item(edge) for edge in _edges(node.get("refundLineItems"))]
    return Refund(
        refund_id=str(node.get("id") or ""),
        created_at=parse_timestamp(node.get("createdAt")),
        refunded_line_items=[item for item in items if item is not None],
    )


def _normalize_graphql(node: Dict) -> Order:
    customer = node.get("customer") or {}
    total_price_set = node.get("totalPriceSet")
    line_items = [_graphql_line_item(item) for item in _edges(node.get("lineItems"))]
    total_price = _shop_money(total_price_set)

    return Order(
        external_order_id=str(node.get("id") or ""),
        order_number=node.get("name") or "",
        created_at=parse_timestamp(node.get("createdAt")),
        raw_created_at=node.get("createdAt"),
        financial_status=(node.get("displayFinancialStatus") or "").upper(),
        line_items=line_items,
        refunds=[_graphql_refund(refund) for refund in node.get("refunds") or []],
        total_price=total_price if total_price is not None else sum((i.line_revenue for i in line_items), ZERO),
        total_shipping_amount=_shop_money(node.get("totalShippingPriceSet")) or ZERO,
        currency=_shop_currency(total_price_set),
        customer_name=customer.get("displayName"),
        customer_email=customer.get("email"),
    )


# ==================== REST ====================

def _rest_line_item(item: Dict) -> LineItem:
    quantity = int(item.get("quantity") or 0)
    unit_price = parse_money(item.get("price")) or ZERO
    line_revenue = unit_price * quantity
    discount = parse_money(item.get("total_discount"))
    if discount:
        line_revenue = max(ZERO, line_revenue - discount)

    return LineItem(
        line_item_id=str(item.get("id") or ""),
        external_product_id=normalize_product_id(item.get("product_id")),
        title=item.get("title") or "",
        quantity=quantity,
        unit_price=unit_price,
        line_revenue=line_revenue,
        variant_id=normalize_product_id(item.get("variant_id")),
        variant_title=item.get("variant_title"),
    )


def _rest_refund(refund: Dict, product_by_line: Dict[str, Optional[str]]) -> Refund:
    items = []
    for refund_line in refund.get("refund_line_items") or []:
        subtotal = parse_money(refund_line.get("subtotal"))
        if subtotal is None:
            continue
        line_item = refund_line.get("line_item") or {}
        line_item_id = refund_line.get("line_item_id") or line_item.get("id")
        line_item_id = str(line_item_id) if line_item_id is not None else None
        product_id = normalize_product_id(line_item.get("product_id"))
        if product_id is None and line_item_id is not None:
            product_id = product_by_line.get(line_item_id)
        items.append(RefundLineItem(
            line_item_id=line_item_id,
            external_product_id=product_id,
            refunded_subtotal=subtotal,
            quantity=int(refund_line.get("quantity") or 0),
        ))
    return Refund(
        refund_id=str(refund.get("id") or ""),
        created_at=parse_timestamp(refund.get("created_at")),
        refunded_line_items=items,
    )


def _rest_shipping(resource: Dict) -> Decimal:
    shipping_set = resource.get("total_shipping_price_set")
    if shipping_set:
        amount = parse_money((shipping_set.get("shop_money") or {}).get("amount"))
        if amount is not None:
            return amount
    return sum(
        (parse_money(line.get("price")) or ZERO for line in resource.get("shipping_lines") or []),
        ZERO,
    )


def _normalize_rest(resource: Dict) -> Order:
    customer = resource.get("customer") or {}
    full_name = " ".join(
        part for part in (customer.get("first_name"), customer.get("last_name")) if part
    )
    line_items = [_rest_line_item(item) for item in resource.get("line_items") or []]
    product_by_line = {item.line_item_id: item.external_product_id for item in line_items}
    total_price = parse_money(resource.get("total_price"))
    order_number = resource.get("name") or (
        f"#{resource['order_number']}" if resource.get("order_number") else ""
    )

    return Order(
        external_order_id=str(resource.get("id") or ""),
        order_number=order_number,
        created_at=parse_timestamp(resource.get("created_at")),
        raw_created_at=resource.get("created_at"),
        financial_status=(resource.get("financial_status") or "").upper(),
        line_items=line_items,
        refunds=[_rest_refund(refund, product_by_line) for refund in resource.get("refunds") or []],
        total_price=total_price if total_price is not None else sum((i.line_revenue for i in line_items), ZERO),
        total_shipping_amount=_rest_shipping(resource),
        currency=resource.get("currency"),
        customer_name=full_name or None,
        customer_email=resource.get("email") or customer.get("email"),
    )


def normalize_order(source: OrderSource) -> Order:
    """Convert a raw payload from either API into a canonical Order."""
    if isinstance(source, GraphQLOrderPayload):
        return _normalize_graphql(source.node)
    if isinstance(source, RestOrderPayload):
        return _normalize_rest(source.resource)
    raise TypeError(f"Unsupported order source: {type(source).__name__}")

"""
Revenue aggregation.

Folds sale records into:
- per-product running totals (sales, gross, refunds, net revenue, commission)
- one summary per distinct order, merging every product of the run
- a fixed six-month trend keyed by (year, month)
- per-month earnings for a calendar year
- dashboard totals

Net revenue is derived once, in the reconciler. Nothing here subtracts
refunds from it again; `total_refunds` is a reporting figure only.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.config import Settings, settings as default_settings
from app.services.order_normalizer import LineItem, Order
from app.services.refund_reconciler import (
    RefundAttribution,
    SaleRecord,
    has_refund_status,
    order_refund_total,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
TREND_MONTHS = 6
RECENT_ORDERS_LIMIT = 50

MonthKey = Tuple[int, int]


@dataclass
class ProductAggregate:
    external_product_id: str
    title: Optional[str] = None
    sales_count: int = 0
    gross_revenue: Decimal = ZERO
    refunds: Decimal = ZERO
    revenue: Decimal = ZERO  # Sum of net revenue
    commission: Decimal = ZERO
    orders_count: int = 0
    recent_orders: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def add(self, record: SaleRecord, commission_rate: Decimal) -> None:
        self.sales_count += record.quantity
        self.gross_revenue += record.gross_revenue
        self.refunds += record.effective_refund
        self.revenue += record.net_revenue
        self.commission = self.revenue * commission_rate
        self.orders_count += 1
        if len(self.recent_orders) < RECENT_ORDERS_LIMIT:
            self.recent_orders.append(record.order_id)


@dataclass
class OrderSummary:
    """An order as seen by one run: the matched lines plus order-level figures."""
    order_id: str
    order_number: str
    created_at: Optional[datetime]
    raw_created_at: Optional[str]
    financial_status: str
    customer_name: Optional[str]
    customer_email: Optional[str]
    order_gross: Decimal
    order_refund: Decimal
    total_price: Decimal
    shipping_amount: Decimal
    line_items: List[LineItem] = field(default_factory=list)
    product_refund: Decimal = ZERO
    product_net: Decimal = ZERO
    folded_products: Set[str] = field(default_factory=set, repr=False)

    @property
    def order_net(self) -> Decimal:
        return max(ZERO, self.order_gross - self.order_refund)

    @property
    def creator_gross(self) -> Decimal:
        return sum((item.line_revenue for item in self.line_items), ZERO)

    @property
    def quantity(self) -> int:
        return sum(item.quantity for item in self.line_items)

    @property
    def is_refund_flagged(self) -> bool:
        return has_refund_status(self.financial_status)


@dataclass
class MonthlyTrendPoint:
    year: int
    month: int
    sales: int = 0
    revenue: Decimal = ZERO
    refunds: Decimal = ZERO
    net_revenue: Decimal = ZERO

    @property
    def key(self) -> MonthKey:
        return (self.year, self.month)

    @property
    def label(self) -> str:
        """Abbreviated month name in the process locale."""
        return date(self.year, self.month, 1).strftime("%b")


@dataclass
class DashboardTotals:
    total_revenue: Decimal = ZERO
    net_revenue: Decimal = ZERO
    total_sales: int = 0
    total_commission: Decimal = ZERO
    total_refunds: Decimal = ZERO
    average_order_value: Decimal = ZERO
    orders_count: int = 0
    refunded_orders_count: int = 0
    products_count: int = 0
    approved_products_count: int = 0


def trend_window(today: date, months: int = TREND_MONTHS) -> List[MonthKey]:
    """The trailing calendar months ending with today's month, oldest first."""
    keys = []
    for offset in range(months - 1, -1, -1):
        index = today.year * 12 + (today.month - 1) - offset
        keys.append((index // 12, index % 12 + 1))
    return keys


def allocate_proportionally(amount: Decimal, part: Decimal, whole: Decimal) -> Decimal:
    """Share of `amount` that `part` represents of `whole`."""
    if whole <= ZERO:
        return ZERO
    return amount * part / whole


class RevenueAggregator:
    """
    Accumulates sale records for one run.

    Usage:
        aggregator = RevenueAggregator()
        aggregator.register_product("123", "Poster title")
        aggregator.add(order, record)
        products = aggregator.products
        trend = aggregator.trend(today)
    """

    def __init__(
        self,
        commission_rate: Decimal = None,
        policy: RefundAttribution = None,
        config: Settings = None,
    ):
        config = config or default_settings
        self.commission_rate = commission_rate if commission_rate is not None else config.COMMISSION_RATE
        self.policy = policy or RefundAttribution(config.REFUND_ATTRIBUTION)
        self._products: Dict[str, ProductAggregate] = {}
        self._orders: Dict[str, OrderSummary] = {}

    @property
    def products(self) -> List[ProductAggregate]:
        return list(self._products.values())

    @property
    def orders(self) -> List[OrderSummary]:
        """Order summaries, newest first; undated orders last."""
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            self._orders.values(),
            key=lambda summary: summary.created_at or epoch,
            reverse=True,
        )

    def register_product(self, product_id: str, title: Optional[str] = None) -> ProductAggregate:
        aggregate = self._products.get(product_id)
        if aggregate is None:
            aggregate = ProductAggregate(external_product_id=product_id, title=title)
            self._products[product_id] = aggregate
        elif title and not aggregate.title:
            aggregate.title = title
        return aggregate

    def record_error(self, product_id: str, error: str) -> None:
        self.register_product(product_id).error = error

    def add(self, order: Order, record: SaleRecord) -> None:
        """Fold one order's record for one product."""
        if not record.matched:
            return

        summary = self._orders.get(order.external_order_id)
        if summary is None:
            summary = OrderSummary(
                order_id=order.external_order_id,
                order_number=order.order_number,
                created_at=order.created_at,
                raw_created_at=order.raw_created_at,
                financial_status=order.financial_status,
                customer_name=order.customer_name,
                customer_email=order.customer_email,
                order_gross=order.gross_total,
                order_refund=order_refund_total(order, self.policy),
                total_price=order.total_price,
                shipping_amount=order.total_shipping_amount,
            )
            self._orders[order.external_order_id] = summary

        if record.external_product_id in summary.folded_products:
            # Same order fetched twice for the same product
            logger.debug(f"Order {order.order_number} already folded for product {record.external_product_id}")
            return

        summary.folded_products.add(record.external_product_id)
        self.register_product(record.external_product_id).add(record, self.commission_rate)
        summary.line_items.extend(record.line_items)
        summary.product_refund += record.effective_refund
        summary.product_net += record.net_revenue

    def fold(self, pairs: Iterable[Tuple[Order, SaleRecord]]) -> "RevenueAggregator":
        for order, record in pairs:
            self.add(order, record)
        return self

    def trend(self, today: date = None) -> List[MonthlyTrendPoint]:
        """
        Six monthly buckets, zero-filled, oldest first.

        Each matched line lands in its order's creation month. Net revenue and
        refunds are split across lines by their share of the order's gross
        total, so an order spanning several creators' products is never
        counted twice.
        """
        today = today or datetime.now(timezone.utc).date()
        buckets = {key: MonthlyTrendPoint(year=key[0], month=key[1]) for key in trend_window(today)}

        for summary in self._orders.values():
            if summary.created_at is None:
                logger.warning(
                    f"Order {summary.order_number} has invalid date {summary.raw_created_at!r}, "
                    f"skipping from trend"
                )
                continue
            key = (summary.created_at.year, summary.created_at.month)
            point = buckets.get(key)
            if point is None:
                logger.info(
                    f"Order {summary.order_number} ({calendar.month_abbr[key[1]]} {key[0]}) "
                    f"is outside trend window, skipping"
                )
                continue

            for item in summary.line_items:
                point.sales += item.quantity
                point.revenue += item.line_revenue
                if summary.order_gross > ZERO:
                    point.net_revenue += allocate_proportionally(summary.order_net, item.line_revenue, summary.order_gross)
                    point.refunds += allocate_proportionally(summary.order_refund, item.line_revenue, summary.order_gross)
                else:
                    point.net_revenue += item.line_revenue

        return list(buckets.values())

    def monthly(self, year: int = None) -> List[MonthlyTrendPoint]:
        """
        The creator's own sales per calendar month, oldest first.

        Unlike the trend, each order contributes its product-level net revenue
        and refunds, so the months add up to the product totals. With a year,
        only that year is kept and all twelve months are returned.
        """
        buckets: Dict[MonthKey, MonthlyTrendPoint] = {}
        if year is not None:
            buckets = {(year, month): MonthlyTrendPoint(year=year, month=month) for month in range(1, 13)}

        for summary in self._orders.values():
            if summary.created_at is None:
                logger.warning(
                    f"Order {summary.order_number} has invalid date {summary.raw_created_at!r}, "
                    f"skipping from monthly earnings"
                )
                continue
            key = (summary.created_at.year, summary.created_at.month)
            if year is not None and key[0] != year:
                continue
            point = buckets.setdefault(key, MonthlyTrendPoint(year=key[0], month=key[1]))
            point.sales += summary.quantity
            point.revenue += summary.creator_gross
            point.refunds += summary.product_refund
            point.net_revenue += summary.product_net

        return [buckets[key] for key in sorted(buckets)]

    def totals(self, products_count: int = None, approved_products_count: int = None) -> DashboardTotals:
        products = self.products
        orders = list(self._orders.values())
        totals = DashboardTotals(
            total_revenue=sum((p.gross_revenue for p in products), ZERO),
            net_revenue=sum((p.revenue for p in products), ZERO),
            total_sales=sum(p.sales_count for p in products),
            total_commission=sum((p.commission for p in products), ZERO),
            orders_count=len(orders),
            products_count=products_count if products_count is not None else len(products),
            approved_products_count=(
                approved_products_count if approved_products_count is not None else len(products)
            ),
        )

        for summary in orders:
            if summary.is_refund_flagged:
                totals.total_refunds += summary.creator_gross
                totals.refunded_orders_count += 1
            elif summary.product_refund > ZERO:
                totals.total_refunds += summary.product_refund

        if orders:
            totals.average_order_value = sum((s.creator_gross for s in orders), ZERO) / len(orders)
        return totals

"""
Creator dashboard statistics.

Runs the same fetch / reconcile / aggregate pipeline as the payout batch,
for one creator and an arbitrary date range, and reads the creator's payout
history. Also builds the yearly earnings view, single-product stats and the
admin overview.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.models.creator import Creator, CreatorRole, Product, ProductStatus
from app.models.payout import Payout
from app.services.order_fetcher import DateRange, OrderPageFetcher
from app.services.order_normalizer import normalize_product_id
from app.services.refund_reconciler import RefundReconciler
from app.services.revenue_aggregator import (
    DashboardTotals,
    MonthlyTrendPoint,
    OrderSummary,
    ProductAggregate,
    RevenueAggregator,
)
from app.services.shop_client import ShopClient

logger = logging.getLogger(__name__)

TOP_SELLING_LIMIT = 5


class DashboardNotFoundError(Exception):
    """Base for lookups that should map to 404."""


class CreatorNotFoundError(DashboardNotFoundError):
    """No creator profile for the given id."""


class ProductNotFoundError(DashboardNotFoundError):
    """The creator has no product with the given shop id."""


class InvalidRangeError(ValueError):
    """The requested dates select no days."""


def clip_to_year(date_range: DateRange, year: int) -> DateRange:
    """Intersect a range with one calendar year."""
    first, last = date(year, 1, 1), date(year, 12, 31)
    start = max(date_range.start, first) if date_range.start else first
    end = min(date_range.end, last) if date_range.end else last
    if start > end:
        raise InvalidRangeError(f"The requested dates fall outside {year}")
    return DateRange(start, end)


@dataclass
class ProductStats:
    product: Product
    aggregate: Optional[ProductAggregate]


@dataclass
class DashboardStats:
    creator: Creator
    products: List[ProductStats]
    orders: List[OrderSummary]
    totals: DashboardTotals
    trend: List[MonthlyTrendPoint]
    date_range: DateRange


@dataclass
class EarningsSummary:
    """Commission earned over a range, per month and per top-selling product."""
    earnings: Decimal
    sales: int
    commission_rate: Decimal
    monthly: List[MonthlyTrendPoint]
    top_selling: List[ProductStats]
    date_range: DateRange
    year: Optional[int] = None


@dataclass
class PayoutHistory:
    payouts: List[Payout] = field(default_factory=list)
    lifetime_earnings: Decimal = Decimal("0")


@dataclass
class PayoutTotal:
    currency: str
    status: str
    count: int
    amount: Decimal


@dataclass
class AdminOverview:
    approved_creators_count: int = 0
    pending_creators_count: int = 0
    pending_products_count: int = 0
    payouts_count: int = 0
    payout_totals: List[PayoutTotal] = field(default_factory=list)


class DashboardStatsService:
    """
    Usage:
        async with ShopClient() as client:
            service = DashboardStatsService(db, client)
            stats = await service.get_stats(creator_id, DateRange(start, end))

    Payout history and the admin overview only read the database and work
    without a shop client.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: ShopClient = None,
        config: Settings = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.client = client
        self.config = config or default_settings
        self._sleep = sleep

    async def get_creator(self, creator_id: uuid.UUID) -> Creator:
        result = await self.db.execute(select(Creator).where(Creator.id == creator_id))
        creator = result.scalar_one_or_none()
        if creator is None:
            raise CreatorNotFoundError(f"Creator {creator_id} not found")
        return creator

    @staticmethod
    def _approved(creator: Creator) -> List[Product]:
        return [
            p for p in creator.products
            if p.status == ProductStatus.APPROVED.value and p.external_product_id
        ]

    async def _collect(self, products: List[Product], date_range: DateRange) -> RevenueAggregator:
        """Fetch and fold the orders of each product, pausing between products."""
        aggregator = RevenueAggregator(config=self.config)
        reconciler = RefundReconciler(config=self.config)

        for index, product in enumerate(products):
            if index > 0:
                await self._sleep(self.config.SHOP_REQUEST_INTERVAL)
            aggregator.register_product(product.external_product_id, product.title)
            fetcher = OrderPageFetcher(self.client, self.config, sleep=self._sleep)
            async for order in fetcher.fetch(product.external_product_id, date_range):
                aggregator.add(order, reconciler.reconcile(order, product.external_product_id))
            if fetcher.outcome.error:
                aggregator.record_error(product.external_product_id, fetcher.outcome.error)

        return aggregator

    async def get_stats(
        self,
        creator_id: uuid.UUID,
        date_range: DateRange = None,
        today: date = None,
    ) -> DashboardStats:
        date_range = date_range or DateRange()
        creator = await self.get_creator(creator_id)

        approved = self._approved(creator)
        aggregator = await self._collect(approved, date_range)

        aggregates = {a.external_product_id: a for a in aggregator.products}
        products = [
            ProductStats(product=p, aggregate=aggregates.get(p.external_product_id))
            for p in sorted(creator.products, key=lambda p: p.uploaded_at, reverse=True)
            if p.status != ProductStatus.REJECTED.value
        ]
        totals = aggregator.totals(
            products_count=len(products),
            approved_products_count=len(approved),
        )

        logger.info(
            f"Dashboard stats for creator {creator_id}: {totals.orders_count} orders across "
            f"{len(approved)} approved products"
        )
        return DashboardStats(
            creator=creator,
            products=products,
            orders=aggregator.orders,
            totals=totals,
            trend=aggregator.trend(today),
            date_range=date_range,
        )

    async def get_earnings(
        self,
        creator_id: uuid.UUID,
        date_range: DateRange = None,
        year: int = None,
        top: int = TOP_SELLING_LIMIT,
    ) -> EarningsSummary:
        """
        Commission earned by a creator.

        With a year the range is narrowed to that year and the monthly series
        has all twelve months. Top-selling products are ranked by units sold.
        """
        date_range = date_range or DateRange()
        if year is not None:
            date_range = clip_to_year(date_range, year)
        creator = await self.get_creator(creator_id)

        approved = self._approved(creator)
        aggregator = await self._collect(approved, date_range)
        totals = aggregator.totals()

        aggregates = {a.external_product_id: a for a in aggregator.products}
        ranked = sorted(
            (ProductStats(product=p, aggregate=aggregates.get(p.external_product_id)) for p in approved),
            key=lambda item: item.aggregate.sales_count if item.aggregate else 0,
            reverse=True,
        )
        return EarningsSummary(
            earnings=totals.total_commission,
            sales=totals.total_sales,
            commission_rate=aggregator.commission_rate,
            monthly=aggregator.monthly(year),
            top_selling=ranked[:top],
            date_range=date_range,
            year=year,
        )

    async def get_product_stats(
        self,
        creator_id: uuid.UUID,
        product_id: str,
        date_range: DateRange = None,
    ) -> ProductStats:
        """Sales of one of the creator's products over a range."""
        date_range = date_range or DateRange()
        creator = await self.get_creator(creator_id)

        wanted = normalize_product_id(product_id)
        product = None
        if wanted is not None:
            product = next(
                (p for p in creator.products if normalize_product_id(p.external_product_id) == wanted),
                None,
            )
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found for creator {creator_id}")

        aggregator = await self._collect([product], date_range)
        return ProductStats(product=product, aggregate=aggregator.products[0])

    async def get_payout_history(
        self,
        creator_id: uuid.UUID,
        date_range: DateRange = None,
    ) -> PayoutHistory:
        """Payouts overlapping the range, newest first; lifetime earnings ignore the range."""
        await self.get_creator(creator_id)
        date_range = date_range or DateRange()

        query = select(Payout).where(Payout.creator_id == creator_id)
        if date_range.start is not None:
            query = query.where(Payout.period_end >= date_range.start)
        if date_range.end is not None:
            query = query.where(Payout.period_start <= date_range.end)
        result = await self.db.execute(query.order_by(Payout.period_start.desc()))

        lifetime = await self.db.execute(
            select(func.coalesce(func.sum(Payout.amount), 0)).where(Payout.creator_id == creator_id)
        )
        return PayoutHistory(
            payouts=list(result.scalars().all()),
            lifetime_earnings=Decimal(str(lifetime.scalar() or 0)),
        )

    async def get_admin_overview(self) -> AdminOverview:
        """Creator approval counts and payout totals per currency and status."""
        overview = AdminOverview()

        creators = await self.db.execute(
            select(Creator.is_approved, func.count(Creator.id))
            .where(Creator.role == CreatorRole.CREATOR.value)
            .group_by(Creator.is_approved)
        )
        for is_approved, count in creators.all():
            if is_approved:
                overview.approved_creators_count = count
            else:
                overview.pending_creators_count = count

        pending_products = await self.db.execute(
            select(func.count(Product.id)).where(Product.status == ProductStatus.PENDING.value)
        )
        overview.pending_products_count = pending_products.scalar() or 0

        currency = func.coalesce(Payout.currency, self.config.SHOP_BASE_CURRENCY)
        payouts = await self.db.execute(
            select(currency, Payout.status, func.count(Payout.id), func.sum(Payout.amount))
            .group_by(currency, Payout.status)
            .order_by(currency, Payout.status)
        )
        for currency_code, status, count, amount in payouts.all():
            overview.payout_totals.append(PayoutTotal(
                currency=currency_code,
                status=status,
                count=count,
                amount=Decimal(str(amount or 0)),
            ))
            overview.payouts_count += count

        return overview

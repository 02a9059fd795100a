"""
Payout Service

Monthly creator payouts:
- Period and manual-amount parsing for the batch endpoints
- PayoutCalculator: threshold and manual override decision per creator
- PayoutBatchGenerator: sequential run over approved creators, preview or
  persist, one row per creator per period

Creators are processed one at a time and products one at a time, with a
fixed pause between product fetches to stay inside the shop's request
budget. A failure for one creator never stops the batch.
"""
import asyncio
import calendar
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.models.creator import Creator, CreatorRole, ProductStatus
from app.models.payout import Payout, PayoutStatus
from app.services.order_fetcher import DateRange, OrderPageFetcher
from app.services.refund_reconciler import RefundReconciler
from app.services.revenue_aggregator import ProductAggregate, RevenueAggregator
from app.services.shop_client import ShopClient, ShopConfigurationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

MESSAGE_ALREADY_EXISTS = "Payout already exists for this period"
MESSAGE_BELOW_THRESHOLD = "No earnings above threshold"
MESSAGE_PREVIEW = "Payout would be created"
MESSAGE_CREATED = "Payout created"


class PayoutError(ValueError):
    """Invalid payout request input (period or manual amounts)."""


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


# ==================== Request parsing ====================

@dataclass(frozen=True)
class PayoutPeriod:
    """A calendar month, both bounds inclusive."""
    start: date
    end: date

    @classmethod
    def for_month(cls, year: int, month: int) -> "PayoutPeriod":
        last_day = calendar.monthrange(year, month)[1]
        return cls(date(year, month, 1), date(year, month, last_day))

    @classmethod
    def previous_month(cls, today: date = None) -> "PayoutPeriod":
        today = today or datetime.now(timezone.utc).date()
        if today.month == 1:
            return cls.for_month(today.year - 1, 12)
        return cls.for_month(today.year, today.month - 1)

    def as_date_range(self) -> DateRange:
        return DateRange(self.start, self.end)


def parse_period(value: Optional[str], today: date = None) -> PayoutPeriod:
    """
    Parse `YYYY-MM` or `YYYY-MM-DD` into the calendar month it names.

    An empty value means the previous calendar month.
    """
    if value is None or not value.strip():
        return PayoutPeriod.previous_month(today)

    text = value.strip()
    for fmt in ("%Y-%m", "%Y-%m-%d"):
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return PayoutPeriod.for_month(parsed.year, parsed.month)

    raise PayoutError(f"Invalid period '{value}'. Use YYYY-MM or YYYY-MM-DD")


def _parse_amount(creator_id: str, raw) -> Decimal:
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise PayoutError(f"Invalid manual amount for creator {creator_id}: {raw!r}")
    if not amount.is_finite() or amount < 0:
        raise PayoutError(f"Invalid manual amount for creator {creator_id}: {raw!r}")
    return quantize_money(amount)


def parse_manual_amounts(value: Optional[str]) -> Dict[str, Decimal]:
    """
    Parse manual payout overrides.

    Accepts `creatorId:amount,creatorId:amount` or a JSON object
    `{"creatorId": amount}`. Amounts are in the creator's currency.
    """
    if value is None or not value.strip():
        return {}

    text = value.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PayoutError(f"Invalid manual_amounts JSON: {e}")
        if not isinstance(data, dict):
            raise PayoutError("manual_amounts JSON must be an object")
        return {str(key).strip(): _parse_amount(str(key), raw) for key, raw in data.items()}

    amounts = {}
    for pair in text.split(","):
        if not pair.strip():
            continue
        creator_id, sep, raw = pair.partition(":")
        if not sep or not creator_id.strip():
            raise PayoutError(f"Invalid manual amount entry '{pair.strip()}'. Use creatorId:amount")
        amounts[creator_id.strip()] = _parse_amount(creator_id.strip(), raw)
    return amounts


# ==================== Decision ====================

class PayoutState(str, Enum):
    BELOW_THRESHOLD = "below_threshold"
    ELIGIBLE = "eligible"


@dataclass
class PayoutDecision:
    creator_id: uuid.UUID
    state: PayoutState
    net_revenue: Decimal
    commission: Decimal
    amount: Decimal
    currency: str
    is_manual: bool = False

    @property
    def eligible(self) -> bool:
        return self.state == PayoutState.ELIGIBLE


class PayoutCalculator:
    """
    Turns a creator's product aggregates into a payout decision.

    Computed commissions are in the shop base currency and must reach the
    minimum threshold. A manual amount replaces the computed commission,
    skips the threshold, and is paid in the creator's own currency.
    """

    def __init__(self, config: Settings = None):
        self.config = config or default_settings

    def decide(
        self,
        creator: Creator,
        aggregates: Iterable[ProductAggregate],
        manual_amount: Optional[Decimal] = None,
    ) -> PayoutDecision:
        aggregates = list(aggregates)
        net_revenue = sum((a.revenue for a in aggregates), ZERO)
        commission = quantize_money(sum((a.commission for a in aggregates), ZERO))

        if manual_amount is not None:
            return PayoutDecision(
                creator_id=creator.id,
                state=PayoutState.ELIGIBLE,
                net_revenue=net_revenue,
                commission=commission,
                amount=quantize_money(manual_amount),
                currency=creator.currency or self.config.SHOP_BASE_CURRENCY,
                is_manual=True,
            )

        state = (
            PayoutState.ELIGIBLE
            if commission >= self.config.PAYOUT_MIN_THRESHOLD
            else PayoutState.BELOW_THRESHOLD
        )
        return PayoutDecision(
            creator_id=creator.id,
            state=state,
            net_revenue=net_revenue,
            commission=commission,
            amount=commission if state == PayoutState.ELIGIBLE else ZERO,
            currency=self.config.SHOP_BASE_CURRENCY,
        )


# ==================== Batch ====================

@dataclass
class ProductPayoutLine:
    """Per-product breakdown shown with each creator result."""
    product_id: str
    title: Optional[str]
    revenue: Decimal
    sales: int
    commission: Decimal
    refunds: Decimal
    error: Optional[str] = None


@dataclass
class CreatorPayoutResult:
    creator_id: uuid.UUID
    creator_name: Optional[str]
    amount: Decimal = ZERO
    currency: Optional[str] = None
    success: bool = True
    error: Optional[str] = None
    message: Optional[str] = None
    manual_amount: Optional[Decimal] = None
    computed_amount: Optional[Decimal] = None
    payout_id: Optional[uuid.UUID] = None
    products: List[ProductPayoutLine] = field(default_factory=list)

    @property
    def revenue_products(self) -> int:
        return sum(1 for product in self.products if product.revenue > 0)


class PayoutBatchGenerator:
    """
    Runs one payout batch for a period.

    Usage:
        generator = PayoutBatchGenerator(db)
        results = await generator.run(period, manual_amounts, preview=True)

    In preview mode nothing is written. In generate mode each eligible
    creator gets one payout row. In both modes creators already paid for the
    period are reported with their stored payout before any order is fetched.
    """

    def __init__(
        self,
        db: AsyncSession,
        config: Settings = None,
        client_factory: Callable[[Settings], ShopClient] = ShopClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.config = config or default_settings
        self.client_factory = client_factory
        self.calculator = PayoutCalculator(self.config)
        self._sleep = sleep
        self._fetches = 0

    async def run(
        self,
        period: PayoutPeriod,
        manual_amounts: Dict[str, Decimal] = None,
        preview: bool = True,
    ) -> List[CreatorPayoutResult]:
        if not self.config.shop_configured:
            raise ShopConfigurationError(
                "Shop API credentials are not configured (SHOP_DOMAIN / SHOP_ACCESS_TOKEN)"
            )

        manual_amounts = manual_amounts or {}
        creators = await self._approved_creators()
        mode = "preview" if preview else "generate"
        logger.info(
            f"Payout {mode} for {period.start}..{period.end}: {len(creators)} approved creators, "
            f"{len(manual_amounts)} manual amount(s)"
        )

        results = []
        self._fetches = 0
        client = self.client_factory(self.config)
        async with client:
            for creator in creators:
                try:
                    result = await self._process_creator(
                        client, creator, period, manual_amounts.get(str(creator.id)), preview
                    )
                except Exception as e:
                    logger.error(f"Payout {mode} failed for creator {creator.id}: {e}")
                    result = CreatorPayoutResult(
                        creator_id=creator.id,
                        creator_name=creator.name,
                        success=False,
                        error=str(e),
                    )
                results.append(result)

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Payout {mode} for {period.start}..{period.end} finished: {succeeded}/{len(results)} succeeded")
        return results

    async def _approved_creators(self) -> List[Creator]:
        result = await self.db.execute(
            select(Creator)
            .where(
                Creator.is_approved.is_(True),
                Creator.role == CreatorRole.CREATOR.value,
            )
            .order_by(Creator.created_at, Creator.id)
        )
        return list(result.scalars().all())

    async def _existing_payout(self, creator: Creator, period: PayoutPeriod) -> Optional[Payout]:
        result = await self.db.execute(
            select(Payout).where(
                Payout.creator_id == creator.id,
                Payout.period_start == period.start,
                Payout.period_end == period.end,
            )
        )
        return result.scalar_one_or_none()

    def _already_exists(self, creator: Creator, existing: Payout) -> CreatorPayoutResult:
        return CreatorPayoutResult(
            creator_id=creator.id,
            creator_name=creator.name,
            amount=existing.amount,
            currency=existing.currency or self.config.SHOP_BASE_CURRENCY,
            message=MESSAGE_ALREADY_EXISTS,
            payout_id=existing.id,
        )

    async def _collect(self, client: ShopClient, creator: Creator, period: PayoutPeriod):
        """Fetch and fold every approved product; returns (aggregator, failed product ids)."""
        aggregator = RevenueAggregator(config=self.config)
        reconciler = RefundReconciler(config=self.config)
        failed = []

        products = [
            p for p in creator.products
            if p.status == ProductStatus.APPROVED.value and p.external_product_id
        ]
        for product in products:
            if self._fetches > 0:
                await self._sleep(self.config.SHOP_REQUEST_INTERVAL)
            self._fetches += 1

            aggregator.register_product(product.external_product_id, product.title)
            fetcher = OrderPageFetcher(client, self.config, sleep=self._sleep)
            async for order in fetcher.fetch(product.external_product_id, period.as_date_range()):
                aggregator.add(order, reconciler.reconcile(order, product.external_product_id))

            outcome = fetcher.outcome
            if outcome.error:
                aggregator.record_error(product.external_product_id, outcome.error)
            if outcome.failed:
                failed.append(product.external_product_id)

        return aggregator, failed

    async def _process_creator(
        self,
        client: ShopClient,
        creator: Creator,
        period: PayoutPeriod,
        manual_amount: Optional[Decimal],
        preview: bool,
    ) -> CreatorPayoutResult:
        existing = await self._existing_payout(creator, period)
        if existing is not None:
            logger.info(f"Payout already exists for creator {creator.id} in {period.start}..{period.end}, skipping")
            return self._already_exists(creator, existing)

        aggregator, failed = await self._collect(client, creator, period)
        decision = self.calculator.decide(creator, aggregator.products, manual_amount)

        result = CreatorPayoutResult(
            creator_id=creator.id,
            creator_name=creator.name,
            amount=decision.amount,
            currency=decision.currency,
            manual_amount=manual_amount,
            computed_amount=decision.commission,
            products=[
                ProductPayoutLine(
                    product_id=a.external_product_id,
                    title=a.title,
                    revenue=quantize_money(a.revenue),
                    sales=a.sales_count,
                    commission=quantize_money(a.commission),
                    refunds=quantize_money(a.refunds),
                    error=a.error,
                )
                for a in aggregator.products
            ],
        )

        if not preview and failed and not decision.is_manual:
            result.success = False
            result.amount = ZERO
            result.error = f"Order fetch failed for {len(failed)} product(s)"
            logger.warning(f"Not persisting payout for creator {creator.id}: {result.error}")
            return result

        if not decision.eligible:
            result.amount = ZERO
            result.message = MESSAGE_BELOW_THRESHOLD
            return result

        if preview:
            result.message = MESSAGE_PREVIEW
            return result

        payout = await self._insert_payout(creator, period, decision)
        if payout is None:
            existing = await self._existing_payout(creator, period)
            if existing is None:
                raise RuntimeError("Payout insert conflicted but no existing payout was found")
            return self._already_exists(creator, existing)

        result.payout_id = payout.id
        result.message = MESSAGE_CREATED
        logger.info(
            f"Created payout {payout.id} for creator {creator.id}: {decision.amount} {decision.currency}"
            + (" (manual)" if decision.is_manual else "")
        )
        return result

    async def _insert_payout(
        self,
        creator: Creator,
        period: PayoutPeriod,
        decision: PayoutDecision,
    ) -> Optional[Payout]:
        """Insert inside a SAVEPOINT; None when the period is already paid."""
        payout = Payout(
            creator_id=creator.id,
            creator_name=creator.name,
            amount=decision.amount,
            currency=decision.currency,
            computed_amount=decision.commission,
            is_manual_amount=decision.is_manual,
            status=PayoutStatus.PENDING.value,
            method=creator.payment_method or self.config.DEFAULT_PAYOUT_METHOD,
            period_start=period.start,
            period_end=period.end,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(payout)
                await self.db.flush()
        except IntegrityError:
            logger.warning(f"Payout for creator {creator.id} in {period.start}..{period.end} already exists, skipping")
            return None

        await self.db.commit()
        return payout

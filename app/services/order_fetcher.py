"""
Order page fetcher.

Streams the paid orders that reference one product within a date range.
Pages come from the cursor-paginated GraphQL query; if that query is rejected
outright the fetcher falls back to the REST listing paginated by created_at.

Large ranges (> 90 days) trade completeness for bounded run time: smaller
pages, a lower page ceiling, a fixed delay between pages and an early stop
once more than 30 orders have been yielded.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from app.config import Settings, settings as default_settings
from app.services.order_normalizer import (
    GraphQLOrderPayload,
    Order,
    RestOrderPayload,
    normalize_order,
    normalize_product_id,
)
from app.services.shop_client import ShopClient, ShopGraphQLError

logger = logging.getLogger(__name__)

EARLIEST_ORDER_DATE = date(2000, 1, 1)


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range; a missing bound means open-ended."""
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return self.start is None or self.end is None

    @property
    def is_all_time(self) -> bool:
        return self.start is None and self.end is None

    def resolved(self, today: date = None) -> "DateRange":
        """Fill open bounds: earliest supported date and today."""
        today = today or datetime.now(timezone.utc).date()
        return DateRange(self.start or EARLIEST_ORDER_DATE, self.end or today)

    def span_days(self) -> Optional[int]:
        if self.is_open:
            return None
        return (self.end - self.start).days


class OrderSourceMode(str, Enum):
    CURSOR = "cursor"
    REST = "rest"


@dataclass(frozen=True)
class FetchPlan:
    """Page size and limits chosen for one fetch."""
    page_size: int
    max_pages: int
    is_large: bool
    max_orders: Optional[int] = None
    page_delay: float = 0.0

    @classmethod
    def for_range(cls, date_range: DateRange, config: Settings) -> "FetchPlan":
        span = date_range.span_days()
        if span is not None and span > config.LARGE_RANGE_DAYS:
            return cls(
                page_size=config.LARGE_RANGE_PAGE_SIZE,
                max_pages=config.LARGE_RANGE_MAX_PAGES,
                is_large=True,
                max_orders=config.LARGE_RANGE_MAX_ORDERS,
                page_delay=config.LARGE_RANGE_PAGE_DELAY,
            )
        return cls(
            page_size=config.ORDERS_PAGE_SIZE,
            max_pages=config.ORDERS_MAX_PAGES,
            is_large=False,
        )


@dataclass
class FetchOutcome:
    """What happened during one fetch; read after the stream is exhausted."""
    product_id: str
    source: OrderSourceMode = OrderSourceMode.CURSOR
    pages: int = 0
    orders: int = 0
    skipped_unpaid: int = 0
    truncated: bool = False
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        """The fetch produced nothing because of an error."""
        return self.error is not None and self.orders == 0 and self.pages == 0


PAID_STATUSES = {"PAID", "PARTIALLY_PAID", "PARTIALLY_REFUNDED"}


def is_paid_status(status: Optional[str]) -> bool:
    normalized = (status or "").upper()
    return (
        normalized in PAID_STATUSES
        or "PAID" in normalized
        or "COMPLETE" in normalized
    )


def build_order_query(product_id: str, date_range: DateRange) -> str:
    resolved = date_range.resolved()
    return (
        f"status:any line_items_product_id:{product_id} "
        f"created_at:>={resolved.start.isoformat()} created_at:<={resolved.end.isoformat()}"
    )


class OrderPageFetcher:
    """
    Lazily fetches paid orders for one product.

    Usage:
        fetcher = OrderPageFetcher(client)
        async for order in fetcher.fetch("12345", DateRange(start, end)):
            ...
        if fetcher.outcome.failed:
            ...

    The stream is finite and cannot be restarted; call fetch() again for a new
    run. Page-level errors never escape the stream: they end it early and are
    recorded on `outcome`.
    """

    def __init__(
        self,
        client: ShopClient,
        config: Settings = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.config = config or default_settings
        self._sleep = sleep
        self.outcome: Optional[FetchOutcome] = None

    async def fetch(
        self,
        product_id: str,
        date_range: DateRange = None,
        mode: OrderSourceMode = OrderSourceMode.CURSOR,
    ) -> AsyncIterator[Order]:
        product_id = normalize_product_id(product_id)
        date_range = date_range or DateRange()
        plan = FetchPlan.for_range(date_range, self.config)
        outcome = FetchOutcome(product_id=product_id, source=mode)
        self.outcome = outcome

        if plan.is_large:
            logger.info(f"Large date range for product {product_id} - using reduced page size {plan.page_size}")

        if mode == OrderSourceMode.CURSOR:
            pages = self._cursor_pages(product_id, date_range, plan, outcome)
        else:
            pages = self._rest_pages(product_id, date_range, plan, outcome)

        async for page in pages:
            for order in page:
                if not is_paid_status(order.financial_status):
                    outcome.skipped_unpaid += 1
                    logger.debug(f"Skipping order {order.order_number} with status {order.financial_status}")
                    continue
                outcome.orders += 1
                yield order

        logger.info(
            f"Product {product_id}: {outcome.orders} paid orders from {outcome.pages} page(s) "
            f"via {outcome.source.value}"
            + (" (truncated)" if outcome.truncated else "")
        )

    async def _pace(self, plan: FetchPlan, page_number: int) -> None:
        if plan.is_large and page_number > 1 and plan.page_delay > 0:
            await self._sleep(plan.page_delay)

    def _should_stop_early(self, plan: FetchPlan, outcome: FetchOutcome) -> bool:
        if plan.max_orders is not None and outcome.orders > plan.max_orders:
            logger.info(f"Collected {outcome.orders} orders for large range, stopping pagination")
            outcome.truncated = True
            return True
        return False

    def _record_error(self, outcome: FetchOutcome, error: Exception) -> None:
        outcome.error = str(error)
        if outcome.pages > 0:
            logger.warning(
                f"Order fetch for product {outcome.product_id} failed on page {outcome.pages + 1}; "
                f"keeping {outcome.orders} orders already collected: {error}"
            )
        else:
            logger.error(f"Order fetch for product {outcome.product_id} failed: {error}")

    async def _cursor_pages(
        self,
        product_id: str,
        date_range: DateRange,
        plan: FetchPlan,
        outcome: FetchOutcome,
    ) -> AsyncIterator[List[Order]]:
        query_string = build_order_query(product_id, date_range)
        cursor: Optional[str] = None
        has_next_page = True
        page_number = 0

        while has_next_page and page_number < plan.max_pages:
            if self._should_stop_early(plan, outcome):
                return
            page_number += 1
            await self._pace(plan, page_number)

            try:
                connection = await self.client.query_orders(query_string, first=plan.page_size, cursor=cursor)
            except ShopGraphQLError as e:
                if outcome.pages == 0:
                    logger.warning(f"Cursor query rejected for product {product_id}, falling back to REST: {e}")
                    outcome.source = OrderSourceMode.REST
                    async for page in self._rest_pages(product_id, date_range, plan, outcome):
                        yield page
                    return
                self._record_error(outcome, e)
                return
            except Exception as e:
                self._record_error(outcome, e)
                return

            outcome.pages += 1
            edges = connection.get("edges") or []
            yield [normalize_order(GraphQLOrderPayload(edge.get("node") or {})) for edge in edges]

            page_info = connection.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            cursor = page_info.get("endCursor")
            if has_next_page and not cursor:
                has_next_page = False

        if has_next_page:
            outcome.truncated = True

    async def _rest_pages(
        self,
        product_id: str,
        date_range: DateRange,
        plan: FetchPlan,
        outcome: FetchOutcome,
    ) -> AsyncIterator[List[Order]]:
        resolved = date_range.resolved()
        created_at_min = f"{resolved.start.isoformat()}T00:00:00Z"
        created_at_max = f"{resolved.end.isoformat()}T23:59:59Z"
        seen_ids = set()
        has_next_page = True
        page_number = 0

        while has_next_page and page_number < plan.max_pages:
            if self._should_stop_early(plan, outcome):
                return
            page_number += 1
            await self._pace(plan, page_number)

            try:
                resources = await self.client.list_orders(
                    limit=plan.page_size,
                    created_at_min=created_at_min,
                    created_at_max=created_at_max,
                )
            except Exception as e:
                self._record_error(outcome, e)
                return

            outcome.pages += 1
            orders = [normalize_order(RestOrderPayload(resource)) for resource in resources]
            # The upper bound is inclusive, so the previous page's oldest orders come back
            fresh = [order for order in orders if order.external_order_id not in seen_ids]
            seen_ids.update(order.external_order_id for order in orders)
            yield [order for order in fresh if order.references_product(product_id)]

            oldest = min((o.created_at for o in orders if o.created_at is not None), default=None)
            if len(resources) < plan.page_size or oldest is None:
                has_next_page = False
            elif not fresh:
                logger.warning(
                    f"Page {page_number} for product {product_id} holds only orders already seen at "
                    f"{created_at_max}, stopping"
                )
                break
            else:
                created_at_max = oldest.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        if has_next_page:
            outcome.truncated = True

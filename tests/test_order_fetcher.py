"""Tests for order normalization and the order page fetcher."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.services.order_fetcher import (
    DateRange,
    FetchPlan,
    OrderPageFetcher,
    OrderSourceMode,
    build_order_query,
    is_paid_status,
)
from app.services.order_normalizer import (
    GraphQLOrderPayload,
    RestOrderPayload,
    normalize_order,
    normalize_product_id,
    parse_timestamp,
)
from app.services.shop_client import ShopAPIError, ShopGraphQLError

from shop_fixtures import FakeShopClient, gql_line, gql_order, gql_refund, rest_line, rest_order


async def collect(fetcher, product_id, date_range=None, **kwargs):
    return [order async for order in fetcher.fetch(product_id, date_range, **kwargs)]


# ===================================================================
# Normalization
# ===================================================================

class TestNormalization:

    def test_product_id_from_gid(self):
        assert normalize_product_id("gid://shopify/Product/12345") == "12345"
        assert normalize_product_id(12345) == "12345"
        assert normalize_product_id(None) is None

    def test_timestamp_parsing(self):
        assert parse_timestamp("2026-01-15T12:00:00Z") == datetime(2026, 1, 15, 12, tzinfo=timezone.utc)
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    def test_graphql_order(self):
        node = gql_order(
            1,
            [gql_line("101", "90.00", quantity=2, variant_id="gid://shopify/ProductVariant/7", variant_title="A3")],
            status="partially_refunded",
            refunds=[gql_refund(("101", "20.00"))],
            total="94.99",
        )
        order = normalize_order(GraphQLOrderPayload(node))

        assert order.external_order_id == "gid://shopify/Order/1"
        assert order.order_number == "#1"
        assert order.financial_status == "PARTIALLY_REFUNDED"
        assert order.total_price == Decimal("94.99")
        assert order.total_shipping_amount == Decimal("4.99")
        line = order.line_items[0]
        assert line.external_product_id == "101"
        assert line.line_revenue == Decimal("90.00")
        assert line.unit_price == Decimal("45.00")
        assert line.variant_title == "A3"
        assert order.refunds[0].refunded_line_items[0].refunded_subtotal == Decimal("20.00")
        assert order.refunds[0].refunded_line_items[0].external_product_id == "101"

    def test_graphql_line_falls_back_to_variant_price(self):
        line = gql_line("101", "0")
        line["discountedTotalSet"] = None
        line["originalTotalSet"] = None
        line["variant"]["price"] = "12.50"
        line["quantity"] = 3
        order = normalize_order(GraphQLOrderPayload(gql_order(1, [line])))
        assert order.line_items[0].line_revenue == Decimal("37.50")

    def test_rest_order(self):
        resource = rest_order(
            55,
            [rest_line("101", "30.00", quantity=2, line_id=900, discount="5.00")],
            refunds=[{"id": 1, "created_at": "2026-01-16T00:00:00Z", "refund_line_items": [
                {"line_item_id": 900, "quantity": 1, "subtotal": "25.00"},
            ]}],
        )
        order = normalize_order(RestOrderPayload(resource))

        assert order.financial_status == "PAID"
        assert order.customer_name == "Jane Buyer"
        assert order.line_items[0].line_revenue == Decimal("55.00")
        refund_line = order.refunds[0].refunded_line_items[0]
        assert refund_line.external_product_id == "101"
        assert refund_line.refunded_subtotal == Decimal("25.00")
        assert order.total_shipping_amount == Decimal("4.99")

    def test_unknown_source(self):
        with pytest.raises(TypeError):
            normalize_order({"id": 1})


# ===================================================================
# Plans, queries, statuses
# ===================================================================

class TestFetchPlan:

    def test_open_range_is_not_large(self, config):
        plan = FetchPlan.for_range(DateRange(start=date(2020, 1, 1)), config)
        assert not plan.is_large
        assert (plan.page_size, plan.max_pages) == (50, 20)

    def test_ninety_days_is_not_large(self, config):
        plan = FetchPlan.for_range(DateRange(date(2026, 1, 1), date(2026, 4, 1)), config)
        assert (date(2026, 4, 1) - date(2026, 1, 1)).days == 90
        assert not plan.is_large

    def test_long_range_is_large(self, config):
        plan = FetchPlan.for_range(DateRange(date(2025, 1, 1), date(2026, 1, 1)), config)
        assert plan.is_large
        assert (plan.page_size, plan.max_pages, plan.max_orders, plan.page_delay) == (20, 10, 30, 1.0)

    def test_open_range_resolves_defaults(self):
        resolved = DateRange().resolved(today=date(2026, 3, 4))
        assert resolved == DateRange(date(2000, 1, 1), date(2026, 3, 4))

    def test_query_string(self):
        query = build_order_query("101", DateRange(date(2026, 1, 1), date(2026, 1, 31)))
        assert query == "status:any line_items_product_id:101 created_at:>=2026-01-01 created_at:<=2026-01-31"


class TestPaidStatus:

    @pytest.mark.parametrize("status", ["PAID", "paid", "PARTIALLY_PAID", "PARTIALLY_REFUNDED", "COMPLETED"])
    def test_paid(self, status):
        assert is_paid_status(status)

    @pytest.mark.parametrize("status", ["PENDING", "REFUNDED", "VOIDED", "AUTHORIZED", "", None])
    def test_not_paid(self, status):
        assert not is_paid_status(status)


# ===================================================================
# Cursor pagination
# ===================================================================

class TestCursorFetch:

    @pytest.mark.asyncio
    async def test_yields_paid_orders_across_pages(self, config, sleep):
        client = FakeShopClient(pages={"101": [
            [gql_order(1, [gql_line("101", "10.00")]), gql_order(2, [gql_line("101", "10.00")], status="PENDING")],
            [gql_order(3, [gql_line("101", "10.00")], status="PARTIALLY_REFUNDED")],
        ]})
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "gid://shopify/Product/101")

        assert [o.order_number for o in orders] == ["#1", "#3"]
        assert fetcher.outcome.pages == 2
        assert fetcher.outcome.orders == 2
        assert fetcher.outcome.skipped_unpaid == 1
        assert not fetcher.outcome.truncated
        assert [q["cursor"] for q in client.queries] == [None, "1"]
        assert all(q["first"] == 50 for q in client.queries)
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_page_ceiling(self, config, sleep):
        config.ORDERS_MAX_PAGES = 2
        pages = [[gql_order(i, [gql_line("101", "5.00")])] for i in range(5)]
        fetcher = OrderPageFetcher(FakeShopClient(pages={"101": pages}), config, sleep=sleep)

        orders = await collect(fetcher, "101")

        assert len(orders) == 2
        assert fetcher.outcome.truncated

    @pytest.mark.asyncio
    async def test_large_range_limits_and_delay(self, config, sleep):
        pages = [[gql_order(p * 20 + i, [gql_line("101", "5.00")]) for i in range(20)] for p in range(5)]
        client = FakeShopClient(pages={"101": pages})
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101", DateRange(date(2025, 1, 1), date(2026, 1, 1)))

        # Two pages of 20 exceed the 30-order cap; no third page is requested
        assert len(orders) == 40
        assert len(client.queries) == 2
        assert all(q["first"] == 20 for q in client.queries)
        assert sleep.delays == [1.0]
        assert fetcher.outcome.truncated

    @pytest.mark.asyncio
    async def test_error_after_first_page_keeps_orders(self, config, sleep):
        client = FakeShopClient(
            pages={"101": [[gql_order(1, [gql_line("101", "10.00")])], [gql_order(2, [gql_line("101", "10.00")])]]},
            errors={"101": (ShopAPIError("Server error", status_code=502), 1)},
        )
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101")

        assert [o.order_number for o in orders] == ["#1"]
        assert fetcher.outcome.error == "Server error"
        assert not fetcher.outcome.failed

    @pytest.mark.asyncio
    async def test_error_on_first_page_is_empty_stream(self, config, sleep):
        client = FakeShopClient(errors={"101": (ShopAPIError("Unauthorized", status_code=401), None)})
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101")

        assert orders == []
        assert fetcher.outcome.failed


# ===================================================================
# REST fallback
# ===================================================================

class TestRestFetch:

    @pytest.mark.asyncio
    async def test_falls_back_to_rest_on_graphql_error(self, config, sleep):
        client = FakeShopClient(
            errors={"101": (ShopGraphQLError("GraphQL errors: access denied"), None)},
            rest_pages=[[
                rest_order(1, [rest_line("101", "20.00")], created_at="2026-01-20T10:00:00Z"),
                rest_order(2, [rest_line("999", "20.00")], created_at="2026-01-19T10:00:00Z"),
            ]],
        )
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101", DateRange(date(2026, 1, 1), date(2026, 1, 31)))

        assert [o.order_number for o in orders] == ["#1"]
        assert fetcher.outcome.source == OrderSourceMode.REST
        assert client.rest_calls[0]["created_at_min"] == "2026-01-01T00:00:00Z"
        assert client.rest_calls[0]["created_at_max"] == "2026-01-31T23:59:59Z"

    @pytest.mark.asyncio
    async def test_rest_pages_by_created_at(self, config, sleep):
        config.ORDERS_PAGE_SIZE = 2
        client = FakeShopClient(rest_pages=[
            [
                rest_order(1, [rest_line("101", "20.00")], created_at="2026-01-20T10:00:00Z"),
                rest_order(2, [rest_line("101", "20.00")], created_at="2026-01-18T10:00:00Z"),
            ],
            [rest_order(3, [rest_line("101", "20.00")], created_at="2026-01-10T10:00:00Z")],
        ])
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101", mode=OrderSourceMode.REST)

        assert len(orders) == 3
        assert len(client.rest_calls) == 2
        assert client.rest_calls[1]["created_at_max"] == "2026-01-18T10:00:00Z"

    @pytest.mark.asyncio
    async def test_rest_orders_sharing_boundary_second_not_lost(self, config, sleep):
        config.ORDERS_PAGE_SIZE = 2
        client = FakeShopClient(rest_pages=[
            [
                rest_order(1, [rest_line("101", "20.00")], created_at="2026-01-20T10:00:00Z"),
                rest_order(2, [rest_line("101", "20.00")], created_at="2026-01-18T10:00:00Z"),
            ],
            # Order 3 shares order 2's timestamp but did not fit on the first page
            [
                rest_order(2, [rest_line("101", "20.00")], created_at="2026-01-18T10:00:00Z"),
                rest_order(3, [rest_line("101", "20.00")], created_at="2026-01-18T10:00:00Z"),
            ],
            [rest_order(4, [rest_line("101", "20.00")], created_at="2026-01-02T08:00:00Z")],
        ])
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101", mode=OrderSourceMode.REST)

        assert [o.order_number for o in orders] == ["#1", "#2", "#3", "#4"]
        assert client.rest_calls[2]["created_at_max"] == "2026-01-18T10:00:00Z"
        assert not fetcher.outcome.truncated

    @pytest.mark.asyncio
    async def test_rest_stops_on_page_of_seen_orders(self, config, sleep):
        config.ORDERS_PAGE_SIZE = 2
        page = [
            rest_order(1, [rest_line("101", "20.00")], created_at="2026-01-18T10:00:00Z"),
            rest_order(2, [rest_line("101", "20.00")], created_at="2026-01-18T10:00:00Z"),
        ]
        client = FakeShopClient(rest_pages=[page, page, page])
        fetcher = OrderPageFetcher(client, config, sleep=sleep)

        orders = await collect(fetcher, "101", mode=OrderSourceMode.REST)

        assert len(orders) == 2
        assert len(client.rest_calls) == 2
        assert fetcher.outcome.truncated

"""Tests for refund attribution and sale records."""

from decimal import Decimal

import pytest

from app.services.order_normalizer import GraphQLOrderPayload, normalize_order
from app.services.refund_reconciler import (
    RefundAttribution,
    RefundReconciler,
    RefundSource,
    has_refund_status,
    line_item_refund_total,
    order_refund_total,
)

from shop_fixtures import gql_line, gql_order, gql_refund


def order(lines, status="PAID", refunds=None):
    return normalize_order(GraphQLOrderPayload(gql_order(1, lines, status=status, refunds=refunds)))


@pytest.fixture
def reconciler(config):
    return RefundReconciler(config=config)


class TestRefundStatus:

    @pytest.mark.parametrize("status,expected", [
        ("REFUNDED", True),
        ("partially_refunded", True),
        ("PAID", False),
        (None, False),
    ])
    def test_has_refund_status(self, status, expected):
        assert has_refund_status(status) is expected


class TestReconcile:

    def test_plain_sale(self, reconciler):
        """100.00 paid, no refunds: net 100.00, commission 30.00."""
        record = reconciler.reconcile(order([gql_line("101", "100.00")]), "101")

        assert record.gross_revenue == Decimal("100.00")
        assert record.refund_amount == 0
        assert record.net_revenue == Decimal("100.00")
        assert record.commission == Decimal("30.00")
        assert record.refund_source == RefundSource.NONE

    def test_status_overrides_line_item_refund(self, reconciler):
        """partially_refunded with a 20.00 line refund still nets to zero by default."""
        record = reconciler.reconcile(
            order(
                [gql_line("101", "80.00")],
                status="partially_refunded",
                refunds=[gql_refund(("101", "20.00"))],
            ),
            "101",
        )

        assert record.gross_revenue == Decimal("80.00")
        assert record.refund_amount == Decimal("80.00")
        assert record.net_revenue == Decimal("0.00")
        assert record.commission == 0
        assert record.refund_source == RefundSource.STATUS

    def test_line_item_first_policy(self, config):
        reconciler = RefundReconciler(policy=RefundAttribution.LINE_ITEM_FIRST, config=config)
        record = reconciler.reconcile(
            order(
                [gql_line("101", "80.00")],
                status="PARTIALLY_REFUNDED",
                refunds=[gql_refund(("101", "20.00"))],
            ),
            "101",
        )

        assert record.refund_amount == Decimal("20.00")
        assert record.net_revenue == Decimal("60.00")
        assert record.commission == Decimal("18.00")
        assert record.refund_source == RefundSource.LINE_ITEMS

    def test_line_item_first_falls_back_to_status(self, config):
        reconciler = RefundReconciler(policy=RefundAttribution.LINE_ITEM_FIRST, config=config)
        record = reconciler.reconcile(order([gql_line("101", "50.00")], status="REFUNDED"), "101")

        assert record.refund_amount == Decimal("50.00")
        assert record.net_revenue == 0
        assert record.refund_source == RefundSource.STATUS

    def test_line_refund_without_status(self, reconciler):
        record = reconciler.reconcile(
            order([gql_line("101", "60.00")], refunds=[gql_refund(("101", "15.00"))]),
            "101",
        )

        assert record.net_revenue == Decimal("45.00")
        assert record.refund_source == RefundSource.LINE_ITEMS

    def test_refund_larger_than_gross_never_goes_negative(self, reconciler):
        record = reconciler.reconcile(
            order([gql_line("101", "10.00")], refunds=[gql_refund(("101", "25.00"))]),
            "101",
        )

        assert record.refund_amount == Decimal("25.00")
        assert record.effective_refund == Decimal("10.00")
        assert record.net_revenue == 0

    def test_refunds_of_other_products_ignored(self, reconciler):
        record = reconciler.reconcile(
            order(
                [gql_line("101", "40.00"), gql_line("202", "60.00")],
                refunds=[gql_refund(("202", "60.00"))],
            ),
            "gid://shopify/Product/101",
        )

        assert record.gross_revenue == Decimal("40.00")
        assert record.net_revenue == Decimal("40.00")

    def test_no_matching_line_items(self, reconciler):
        record = reconciler.reconcile(order([gql_line("202", "60.00")]), "101")

        assert not record.matched
        assert record.quantity == 0
        assert record.gross_revenue == 0
        assert record.net_revenue == 0

    def test_quantities_summed(self, reconciler):
        record = reconciler.reconcile(
            order([gql_line("101", "20.00", quantity=2, line_id="a"), gql_line("101", "10.00", line_id="b")]),
            "101",
        )

        assert record.quantity == 3
        assert record.gross_revenue == Decimal("30.00")


class TestOrderLevelRefund:

    def test_line_item_refund_total_none_without_refund_lines(self):
        assert line_item_refund_total(order([gql_line("101", "10.00")]), "101") is None

    def test_order_refund_spans_products(self):
        o = order(
            [gql_line("101", "90.00"), gql_line("202", "60.00")],
            refunds=[gql_refund(("202", "30.00"))],
        )
        assert order_refund_total(o, RefundAttribution.STATUS_OVERRIDE) == Decimal("30.00")

    def test_flagged_order_refunds_whole_gross(self):
        o = order(
            [gql_line("101", "90.00"), gql_line("202", "60.00")],
            status="PARTIALLY_REFUNDED",
            refunds=[gql_refund(("202", "30.00"))],
        )
        assert order_refund_total(o, RefundAttribution.STATUS_OVERRIDE) == Decimal("150.00")
        assert order_refund_total(o, RefundAttribution.LINE_ITEM_FIRST) == Decimal("30.00")

"""
Refund reconciliation.

Turns one order into a net-of-refund sale record for one product:
gross revenue from the product's line items, refunds attributed either from
refunded line items or from the order's refund status, and the creator
commission on what is left.

Two attribution policies exist because they disagree whenever an order
carries a refund status flag:

- STATUS_OVERRIDE: any REFUNDED / PARTIALLY_REFUNDED flag counts as a full
  refund of the product's gross, even when line-item refund amounts are
  known. This reproduces historical payout figures and is the default.
- LINE_ITEM_FIRST: line-item refund amounts win whenever they exist; the
  full-gross rule only applies to flagged orders with no line-item refund
  data for the product.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from app.config import Settings, settings as default_settings
from app.services.order_normalizer import LineItem, Order, normalize_product_id

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class RefundAttribution(str, Enum):
    STATUS_OVERRIDE = "status_override"
    LINE_ITEM_FIRST = "line_item_first"


class RefundSource(str, Enum):
    NONE = "none"
    LINE_ITEMS = "line_items"
    STATUS = "status"


@dataclass
class SaleRecord:
    """One order's contribution to one product."""
    external_product_id: str
    order_id: str
    order_number: str
    created_at: Optional[datetime]
    financial_status: str
    gross_revenue: Decimal = ZERO
    refund_amount: Decimal = ZERO  # Uncapped, for diagnostics
    net_revenue: Decimal = ZERO
    quantity: int = 0
    commission: Decimal = ZERO
    refund_source: RefundSource = RefundSource.NONE
    line_items: List[LineItem] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.line_items)

    @property
    def effective_refund(self) -> Decimal:
        """Refund actually netted out, never more than gross."""
        return min(self.refund_amount, self.gross_revenue)


def has_refund_status(financial_status: Optional[str]) -> bool:
    """REFUNDED and PARTIALLY_REFUNDED (and their lowercase REST forms)."""
    return "REFUNDED" in (financial_status or "").upper()


def line_item_refund_total(order: Order, product_id: str) -> Optional[Decimal]:
    """
    Sum of refunded subtotals for the product across all refunds.

    None when the order carries no refunded line items for the product at
    all, as opposed to a zero-amount refund.
    """
    amounts = [
        item.refunded_subtotal
        for refund in order.refunds
        for item in refund.refunded_line_items
        if item.external_product_id == product_id
    ]
    if not amounts:
        return None
    return sum(amounts, ZERO)


def order_refund_total(order: Order, policy: RefundAttribution) -> Decimal:
    """
    Order-level refund across every product, under the same policy.

    Used for proportional allocation when an order spans products of
    several creators.
    """
    gross = order.gross_total
    line_refunds = [
        item.refunded_subtotal
        for refund in order.refunds
        for item in refund.refunded_line_items
    ]
    flagged = has_refund_status(order.financial_status)
    if flagged and (policy == RefundAttribution.STATUS_OVERRIDE or not line_refunds):
        return gross
    return sum(line_refunds, ZERO)


class RefundReconciler:
    """
    Computes SaleRecords from normalized orders.

    Usage:
        reconciler = RefundReconciler()
        record = reconciler.reconcile(order, "12345")
    """

    def __init__(
        self,
        policy: RefundAttribution = None,
        commission_rate: Decimal = None,
        config: Settings = None,
    ):
        config = config or default_settings
        self.policy = policy or RefundAttribution(config.REFUND_ATTRIBUTION)
        self.commission_rate = commission_rate if commission_rate is not None else config.COMMISSION_RATE

    def reconcile(self, order: Order, target_product_id: str) -> SaleRecord:
        product_id = normalize_product_id(target_product_id)
        record = SaleRecord(
            external_product_id=product_id,
            order_id=order.external_order_id,
            order_number=order.order_number,
            created_at=order.created_at,
            financial_status=order.financial_status,
        )

        matched = [item for item in order.line_items if item.external_product_id == product_id]
        if not matched:
            return record

        record.line_items = matched
        record.quantity = sum(item.quantity for item in matched)
        record.gross_revenue = sum((item.line_revenue for item in matched), ZERO)

        refund, source = self._attribute_refund(order, product_id, record.gross_revenue)
        record.refund_amount = refund
        record.refund_source = source
        record.net_revenue = max(ZERO, record.gross_revenue - refund)
        record.commission = record.net_revenue * self.commission_rate
        return record

    def _attribute_refund(self, order: Order, product_id: str, gross: Decimal):
        line_refund = line_item_refund_total(order, product_id)
        flagged = has_refund_status(order.financial_status)

        if self.policy == RefundAttribution.STATUS_OVERRIDE:
            if flagged:
                if line_refund is not None and line_refund != gross:
                    logger.warning(
                        f"Order {order.order_number}: status {order.financial_status} overrides "
                        f"line-item refund {line_refund} with full gross {gross} for product {product_id}"
                    )
                return gross, RefundSource.STATUS
            if line_refund is not None:
                return line_refund, RefundSource.LINE_ITEMS
            return ZERO, RefundSource.NONE

        if line_refund is not None:
            return line_refund, RefundSource.LINE_ITEMS
        if flagged:
            return gross, RefundSource.STATUS
        return ZERO, RefundSource.NONE

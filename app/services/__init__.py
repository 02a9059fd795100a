# Services module
from app.services.shop_client import (
    RateLimitedClient,
    RetryPolicy,
    ShopClient,
    ShopAPIError,
    ShopConfigurationError,
)
from app.services.order_fetcher import DateRange, OrderPageFetcher
from app.services.refund_reconciler import RefundReconciler, RefundAttribution
from app.services.revenue_aggregator import RevenueAggregator

# Payouts / dashboard
from app.services.payout_service import PayoutBatchGenerator, PayoutCalculator
from app.services.dashboard_service import DashboardStatsService

__all__ = [
    "RateLimitedClient",
    "RetryPolicy",
    "ShopClient",
    "ShopAPIError",
    "ShopConfigurationError",
    "DateRange",
    "OrderPageFetcher",
    "RefundReconciler",
    "RefundAttribution",
    "RevenueAggregator",
    # Payouts / dashboard
    "PayoutBatchGenerator",
    "PayoutCalculator",
    "DashboardStatsService",
]

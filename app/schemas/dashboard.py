"""Pydantic schemas for the creator dashboard."""
from datetime import datetime, date
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, Money
from app.schemas.payout import PayoutResponse


class ProductStatsSchema(BaseResponseSchema):
    """A creator product with its sales figures for the requested range."""
    id: UUID
    external_product_id: Optional[str] = None
    title: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    uploaded_at: datetime
    sales_count: int = 0
    gross_revenue: Money = 0
    refunds: Money = 0
    revenue: Money = 0
    commission: Money = 0
    orders_count: int = 0
    recent_orders: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class OrderLineSchema(BaseResponseSchema):
    line_item_id: str
    external_product_id: Optional[str] = None
    title: str
    quantity: int
    unit_price: Money
    line_revenue: Money
    variant_id: Optional[str] = None
    variant_title: Optional[str] = None


class OrderSummarySchema(BaseResponseSchema):
    order_id: str
    order_number: str
    created_at: Optional[datetime] = None
    financial_status: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Money
    quantity: int
    refund_amount: Money
    net_amount: Money
    shipping_amount: Money
    line_items: List[OrderLineSchema]


class DashboardTotalsSchema(BaseResponseSchema):
    total_revenue: Money
    net_revenue: Money
    total_sales: int
    total_commission: Money
    total_refunds: Money
    average_order_value: Money
    orders_count: int
    refunded_orders_count: int
    products_count: int
    approved_products_count: int


class TrendPointSchema(BaseModel):
    month: str
    year: int
    sales: int
    revenue: Money
    refunds: Money
    net_revenue: Money


class DateRangeSchema(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_all_time: bool


class DashboardStatsResponse(BaseModel):
    products: List[ProductStatsSchema]
    orders: List[OrderSummarySchema]
    stats: DashboardTotalsSchema
    sales_trend: List[TrendPointSchema]
    date_range: DateRangeSchema


class PayoutHistoryResponse(BaseModel):
    payouts: List[PayoutResponse]
    lifetime_earnings: Money


# ==================== Earnings ====================

class EarningsPointSchema(BaseModel):
    month: str
    year: int
    sales: int
    revenue: Money
    earnings: Money


class EarningsResponse(BaseModel):
    """Commission earned over a range or a calendar year."""
    earnings: Money
    sales: int
    commission_rate: float
    chart: List[EarningsPointSchema]
    top_selling: List[ProductStatsSchema]
    date_range: DateRangeSchema
    year: Optional[int] = None


# ==================== Admin ====================

class PayoutTotalSchema(BaseResponseSchema):
    currency: str
    status: str
    count: int
    amount: Money


class AdminOverviewResponse(BaseResponseSchema):
    approved_creators_count: int
    pending_creators_count: int
    pending_products_count: int
    payouts_count: int
    payout_totals: List[PayoutTotalSchema]

"""Pydantic schemas for creator payouts."""
from datetime import datetime, date
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.schemas.base import BaseResponseSchema, BaseUpdateSchema, Money
from app.models.payout import PayoutStatus


# ==================== Payout Schemas ====================

class PayoutResponse(BaseResponseSchema):
    """Response schema for a stored payout."""
    id: UUID
    creator_id: UUID
    creator_name: Optional[str] = None
    amount: Money
    currency: Optional[str] = None
    computed_amount: Optional[Money] = None
    is_manual_amount: bool = False
    status: str
    method: str
    period_start: date
    period_end: date
    created_at: datetime
    updated_at: datetime

    @field_validator("currency")
    @classmethod
    def default_currency(cls, v: Optional[str]) -> str:
        return v or settings.SHOP_BASE_CURRENCY


class PayoutListResponse(BaseModel):
    """Paginated payout listing."""
    items: List[PayoutResponse]
    total: int
    skip: int
    limit: int


class PayoutStatusUpdate(BaseUpdateSchema):
    """Admin toggle between pending and completed."""
    status: PayoutStatus


# ==================== Batch Schemas ====================

class PayoutPeriodSchema(BaseResponseSchema):
    start: date
    end: date


class ProductPayoutLineSchema(BaseResponseSchema):
    product_id: str
    title: Optional[str] = None
    revenue: Money
    sales: int
    commission: Money
    refunds: Money
    error: Optional[str] = None


class CreatorPayoutResultSchema(BaseResponseSchema):
    """One creator's outcome in a preview or generate run."""
    creator_id: UUID
    creator_name: Optional[str] = None
    amount: Money
    currency: Optional[str] = None
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    manual_amount: Optional[Money] = None
    computed_amount: Optional[Money] = None
    payout_id: Optional[UUID] = None
    revenue_products: int = 0
    products: List[ProductPayoutLineSchema] = Field(default_factory=list)


class PayoutBatchResponse(BaseModel):
    message: str
    preview: bool
    period: PayoutPeriodSchema
    results: List[CreatorPayoutResultSchema]

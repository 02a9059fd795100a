"""Payout model.

One row per creator per payout period. Rows are created by the monthly batch
and only ever mutated (status) by admins; the batch never deletes them.
"""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, Date, ForeignKey
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from app.models.creator import Creator


class PayoutStatus(str, Enum):
    """Payout status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"


class Payout(Base):
    """
    Creator payout for a calendar-month period.

    The (creator_id, period_start, period_end) unique constraint is what makes
    batch generation idempotent.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        UniqueConstraint(
            "creator_id", "period_start", "period_end",
            name="uq_payout_creator_period"
        ),
        Index("ix_payouts_period", "period_start", "period_end"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    creator_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Creator name at generation time"
    )

    # Amount
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(
        String(3),
        nullable=True,
        comment="NULL reads as the shop base currency"
    )
    computed_amount: Mapped[Optional[Decimal]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Commission computed from net revenue, kept when a manual amount is used"
    )
    is_manual_amount: Mapped[bool] = mapped_column(Boolean, default=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayoutStatus.PENDING.value,
        index=True,
        comment="pending, completed"
    )
    method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="iban",
        comment="iban, paypal"
    )

    # Period
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped["Creator"] = relationship("Creator", back_populates="payouts")

    def __repr__(self) -> str:
        return f"<Payout {self.creator_id} {self.period_start}..{self.period_end} {self.amount}>"

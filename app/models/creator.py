"""Creator and Product models.

Creators sell their products through the shop. Both tables are maintained by
the upload/approval workflow; the payout engine only reads them.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.payout import Payout


class CreatorRole(str, Enum):
    """Profile role enumeration."""
    CREATOR = "creator"
    ADMIN = "admin"


class PaymentMethod(str, Enum):
    """How a creator receives payouts."""
    IBAN = "iban"
    PAYPAL = "paypal"


class ProductStatus(str, Enum):
    """Product review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Creator(Base):
    """
    Creator profile.

    `currency` is the creator's chosen payout currency; manual payout
    overrides are expressed in it. NULL means the shop base currency.
    """
    __tablename__ = "creators"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CreatorRole.CREATOR.value,
        comment="creator, admin"
    )
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    # Payout preferences
    payment_method: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="iban, paypal"
    )
    currency: Mapped[Optional[str]] = mapped_column(
        String(3),
        nullable=True,
        comment="ISO-4217 payout currency e.g., GBP, EUR, USD, DKK"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    products: Mapped[List["Product"]] = relationship(
        "Product",
        back_populates="creator",
        lazy="selectin"
    )
    payouts: Mapped[List["Payout"]] = relationship(
        "Payout",
        back_populates="creator",
        lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<Creator {self.email}>"


class Product(Base):
    """A creator's product listed in the shop."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    external_product_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Shop product id, numeric or gid://shopify/Product/<n>"
    )
    title: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProductStatus.PENDING.value,
        index=True,
        comment="pending, approved, rejected"
    )

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    creator: Mapped["Creator"] = relationship("Creator", back_populates="products")

    def __repr__(self) -> str:
        return f"<Product {self.external_product_id} ({self.status})>"

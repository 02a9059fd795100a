"""
Base Schema Classes for Pydantic Models

This module provides base classes and shared field types so every response
serializes IDs, dates and money the same way.

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated
from pydantic import BaseModel, ConfigDict, PlainSerializer


def _money_to_float(value: Decimal) -> float:
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# Money is kept as Decimal internally and rounded to cents only on the way out
Money = Annotated[Decimal, PlainSerializer(_money_to_float, return_type=float)]


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models or
    service dataclasses.

    Features:
    - Enables from_attributes for ORM / dataclass compatibility
    - Allows population by field name or alias

    Usage:
        class PayoutResponse(BaseResponseSchema):
            id: UUID
            amount: Money
            currency: Optional[str] = None
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    Unknown fields are ignored.
    """
    model_config = ConfigDict(
        extra='ignore',
    )

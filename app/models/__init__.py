from app.models.creator import Creator, Product, CreatorRole, PaymentMethod, ProductStatus
from app.models.payout import Payout, PayoutStatus

__all__ = [
    "Creator",
    "Product",
    "CreatorRole",
    "PaymentMethod",
    "ProductStatus",
    "Payout",
    "PayoutStatus",
]

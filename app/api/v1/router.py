from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Payout batches & admin
    payouts,
    # Creator dashboard
    dashboard,
)

api_router = APIRouter(prefix="/api/v1")

# ==================== Payouts ====================
api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["Payouts"]
)

# ==================== Creator Dashboard ====================
api_router.include_router(
    dashboard.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)

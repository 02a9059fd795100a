"""API endpoints for monthly creator payouts."""
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy import select, func, and_

from app.api.deps import DB, AppSettings, AdminCreator, CronAuthorized
from app.models.payout import Payout, PayoutStatus
from app.schemas.payout import (
    PayoutResponse,
    PayoutListResponse,
    PayoutStatusUpdate,
    PayoutBatchResponse,
    PayoutPeriodSchema,
    CreatorPayoutResultSchema,
)
from app.services.payout_service import (
    MESSAGE_CREATED,
    PayoutBatchGenerator,
    PayoutError,
    parse_manual_amounts,
    parse_period,
)

router = APIRouter()


def get_batch_generator(db: DB, settings: AppSettings) -> PayoutBatchGenerator:
    return PayoutBatchGenerator(db, settings)


BatchGenerator = Annotated[PayoutBatchGenerator, Depends(get_batch_generator)]


async def _run_batch(
    generator: PayoutBatchGenerator,
    period: Optional[str],
    manual_amounts: Optional[str],
    preview: bool,
) -> PayoutBatchResponse:
    try:
        payout_period = parse_period(period)
        overrides = parse_manual_amounts(manual_amounts)
    except PayoutError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    results = await generator.run(payout_period, overrides, preview=preview)

    if preview:
        message = f"Payout preview for {len(results)} creator(s)"
    else:
        created = sum(1 for r in results if r.message == MESSAGE_CREATED)
        message = f"Generated {created} payout(s) for {len(results)} creator(s)"

    return PayoutBatchResponse(
        message=message,
        preview=preview,
        period=PayoutPeriodSchema(start=payout_period.start, end=payout_period.end),
        results=[CreatorPayoutResultSchema.model_validate(r) for r in results],
    )


# ==================== Batch ====================

@router.get("/preview", response_model=PayoutBatchResponse, dependencies=[CronAuthorized])
async def preview_payouts(
    generator: BatchGenerator,
    period: Optional[str] = Query(None, description="YYYY-MM or YYYY-MM-DD; defaults to the previous month"),
    manual_amounts: Optional[str] = Query(None, description="creatorId:amount,... or a JSON object"),
):
    """
    Compute the payouts for a period without storing anything.

    Each creator result carries the per-product breakdown.
    """
    return await _run_batch(generator, period, manual_amounts, preview=True)


@router.get("/generate", response_model=PayoutBatchResponse, dependencies=[CronAuthorized])
async def generate_payouts(
    generator: BatchGenerator,
    period: Optional[str] = Query(None, description="YYYY-MM or YYYY-MM-DD; defaults to the previous month"),
    manual_amounts: Optional[str] = Query(None, description="creatorId:amount,... or a JSON object"),
):
    """
    Generate and store payouts for a period.

    Safe to call repeatedly: creators already paid for the period are skipped.
    """
    return await _run_batch(generator, period, manual_amounts, preview=False)


# ==================== Admin ====================

@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    db: DB,
    admin: AdminCreator,
    creator_id: Optional[UUID] = None,
    payout_status: Optional[PayoutStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List payouts, newest period first."""
    query = select(Payout)
    count_query = select(func.count(Payout.id))

    filters = []
    if creator_id:
        filters.append(Payout.creator_id == creator_id)
    if payout_status:
        filters.append(Payout.status == payout_status.value)

    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    query = query.order_by(Payout.period_start.desc(), Payout.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    payouts = result.scalars().all()

    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.patch("/{payout_id}/status", response_model=PayoutResponse)
async def update_payout_status(
    payout_id: UUID,
    data: PayoutStatusUpdate,
    db: DB,
    admin: AdminCreator,
):
    """Mark a payout pending or completed."""
    result = await db.execute(select(Payout).where(Payout.id == payout_id))
    payout = result.scalar_one_or_none()

    if not payout:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payout not found")

    payout.status = data.status.value
    await db.commit()
    await db.refresh(payout)

    return PayoutResponse.model_validate(payout)

"""API endpoints for the creator dashboard."""
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query

from app.api.deps import DB, AdminCreator, AppSettings, CurrentCreatorId, Shop
from app.schemas.dashboard import (
    AdminOverviewResponse,
    DashboardStatsResponse,
    DashboardTotalsSchema,
    DateRangeSchema,
    EarningsPointSchema,
    EarningsResponse,
    OrderLineSchema,
    OrderSummarySchema,
    PayoutHistoryResponse,
    ProductStatsSchema,
    TrendPointSchema,
)
from app.schemas.payout import PayoutResponse
from app.services.dashboard_service import (
    DashboardNotFoundError,
    DashboardStats,
    DashboardStatsService,
    EarningsSummary,
    InvalidRangeError,
    ProductStats,
    TOP_SELLING_LIMIT,
)
from app.services.order_fetcher import DateRange
from app.services.revenue_aggregator import OrderSummary

router = APIRouter()


def get_dashboard_service(
    db: DB,
    settings: AppSettings,
    client: Shop,
) -> DashboardStatsService:
    return DashboardStatsService(db, client, settings)


def get_local_service(db: DB, settings: AppSettings) -> DashboardStatsService:
    """Dashboard service without a shop client, for database-only views."""
    return DashboardStatsService(db, config=settings)


def _date_range(start_date: Optional[date], end_date: Optional[date]) -> DateRange:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must be on or before end_date",
        )
    return DateRange(start_date, end_date)


def _date_range_schema(date_range: DateRange) -> DateRangeSchema:
    return DateRangeSchema(
        start_date=date_range.start,
        end_date=date_range.end,
        is_all_time=date_range.is_all_time,
    )


def _product_schema(item: ProductStats) -> ProductStatsSchema:
    product = item.product
    schema = ProductStatsSchema(
        id=product.id,
        external_product_id=product.external_product_id,
        title=product.title,
        image_url=product.image_url,
        status=product.status,
        uploaded_at=product.uploaded_at,
    )
    aggregate = item.aggregate
    if aggregate is not None:
        schema.sales_count = aggregate.sales_count
        schema.gross_revenue = aggregate.gross_revenue
        schema.refunds = aggregate.refunds
        schema.revenue = aggregate.revenue
        schema.commission = aggregate.commission
        schema.orders_count = aggregate.orders_count
        schema.recent_orders = aggregate.recent_orders
        schema.error = aggregate.error
    return schema


def _order_schema(summary: OrderSummary) -> OrderSummarySchema:
    return OrderSummarySchema(
        order_id=summary.order_id,
        order_number=summary.order_number,
        created_at=summary.created_at,
        financial_status=summary.financial_status,
        customer_name=summary.customer_name,
        customer_email=summary.customer_email,
        total_amount=summary.creator_gross,
        quantity=summary.quantity,
        refund_amount=summary.product_refund,
        net_amount=summary.product_net,
        shipping_amount=summary.shipping_amount,
        line_items=[OrderLineSchema.model_validate(item) for item in summary.line_items],
    )


def _stats_response(stats: DashboardStats) -> DashboardStatsResponse:
    return DashboardStatsResponse(
        products=[_product_schema(item) for item in stats.products],
        orders=[_order_schema(summary) for summary in stats.orders],
        stats=DashboardTotalsSchema.model_validate(stats.totals),
        sales_trend=[
            TrendPointSchema(
                month=point.label,
                year=point.year,
                sales=point.sales,
                revenue=point.revenue,
                refunds=point.refunds,
                net_revenue=point.net_revenue,
            )
            for point in stats.trend
        ],
        date_range=_date_range_schema(stats.date_range),
    )


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    creator_id: CurrentCreatorId,
    service: Annotated[DashboardStatsService, Depends(get_dashboard_service)],
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """
    Sales statistics for the calling creator.

    Without dates the whole order history is used. The sales trend always
    covers the last six calendar months.
    """
    date_range = _date_range(start_date, end_date)
    try:
        stats = await service.get_stats(creator_id, date_range)
    except DashboardNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _stats_response(stats)


@router.get("/payouts", response_model=PayoutHistoryResponse)
async def get_payout_history(
    creator_id: CurrentCreatorId,
    service: Annotated[DashboardStatsService, Depends(get_local_service)],
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """The calling creator's payouts plus lifetime earnings."""
    date_range = _date_range(start_date, end_date)
    try:
        history = await service.get_payout_history(creator_id, date_range)
    except DashboardNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return PayoutHistoryResponse(
        payouts=[PayoutResponse.model_validate(p) for p in history.payouts],
        lifetime_earnings=history.lifetime_earnings,
    )


def _earnings_response(summary: EarningsSummary) -> EarningsResponse:
    return EarningsResponse(
        earnings=summary.earnings,
        sales=summary.sales,
        commission_rate=summary.commission_rate,
        chart=[
            EarningsPointSchema(
                month=point.label,
                year=point.year,
                sales=point.sales,
                revenue=point.net_revenue,
                earnings=point.net_revenue * summary.commission_rate,
            )
            for point in summary.monthly
        ],
        top_selling=[_product_schema(item) for item in summary.top_selling],
        date_range=_date_range_schema(summary.date_range),
        year=summary.year,
    )


@router.get("/earnings", response_model=EarningsResponse)
async def get_earnings(
    creator_id: CurrentCreatorId,
    service: Annotated[DashboardStatsService, Depends(get_dashboard_service)],
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Restrict to one calendar year"),
    top: int = Query(TOP_SELLING_LIMIT, ge=1, le=50, description="Number of top-selling products"),
):
    """
    Commission earned by the calling creator.

    The chart holds one point per month with sales; with `year` it holds all
    twelve months of that year, zero-filled.
    """
    date_range = _date_range(start_date, end_date)
    try:
        summary = await service.get_earnings(creator_id, date_range, year=year, top=top)
    except InvalidRangeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DashboardNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _earnings_response(summary)


@router.get("/stats/product/{product_id}", response_model=ProductStatsSchema)
async def get_product_stats(
    product_id: str,
    creator_id: CurrentCreatorId,
    service: Annotated[DashboardStatsService, Depends(get_dashboard_service)],
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """Sales statistics for one of the calling creator's products, by shop product id."""
    date_range = _date_range(start_date, end_date)
    try:
        stats = await service.get_product_stats(creator_id, product_id, date_range)
    except DashboardNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _product_schema(stats)


@router.get("/admin", response_model=AdminOverviewResponse)
async def get_admin_overview(
    admin: AdminCreator,
    service: Annotated[DashboardStatsService, Depends(get_local_service)],
):
    """Creator approval counts and payout totals across all creators."""
    overview = await service.get_admin_overview()
    return AdminOverviewResponse.model_validate(overview)

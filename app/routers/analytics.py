from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.cache import get_summary_cache, set_summary_cache
from app.deps import (
    CurrentUser,
    can_manage_booking,
    can_view_analytics,
    get_booking_service,
)
from app.schemas import FinancialSummary
from app.services import BookingService

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _period(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = _as_utc(start), _as_utc(end)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end must be after start",
        )
    return start, end


async def _summary(
    service: BookingService,
    start: datetime,
    end: datetime,
    provider_id: UUID | None = None,
) -> FinancialSummary:
    cached = await get_summary_cache(start, end, provider_id)
    if cached is not None:
        logger.debug("Cache hit for analytics summary: provider_id={}", provider_id)
        return FinancialSummary(**cached)

    logger.debug("Cache miss for analytics summary: provider_id={}", provider_id)
    summary = await service.financial_summary(start, end, provider_id=provider_id)
    await set_summary_cache(
        start, end, summary.model_dump(mode="json"), provider_id=provider_id
    )
    return summary


@router.get("/financial", response_model=FinancialSummary)
async def financial_summary(
    start: datetime,
    end: datetime,
    _: CurrentUser = Depends(can_view_analytics),
    service: BookingService = Depends(get_booking_service),
) -> FinancialSummary:
    """Platform revenue, commission and growth over completed bookings in [start, end)."""
    start, end = _period(start, end)
    return await _summary(service, start, end)


@router.get("/earnings", response_model=FinancialSummary)
async def provider_earnings(
    start: datetime,
    end: datetime,
    current_user: CurrentUser = Depends(can_manage_booking),
    service: BookingService = Depends(get_booking_service),
) -> FinancialSummary:
    """The calling provider's completed-booking revenue and net earnings."""
    start, end = _period(start, end)
    return await _summary(service, start, end, provider_id=current_user.id)

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from app.cache import invalidate_summary_cache
from app.deps import (
    CatalogClient,
    CurrentUser,
    can_read_or_manage_booking,
    can_write_booking,
    get_booking_service,
    get_catalog_client,
    get_current_user,
)
from app.errors import Failure, to_http_exception
from app.schemas import (
    BookingCreate,
    BookingFilters,
    BookingHistoryEntry,
    BookingReschedule,
    BookingResponse,
    BookingStatus,
    BookingStatusUpdate,
)
from app.scopes import BookingScope
from app.services import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])

# Transitions that change completed-booking revenue
_REVENUE_STATUSES = {BookingStatus.COMPLETED, BookingStatus.DISPUTED}


def _can_see(booking: BookingResponse, current_user: CurrentUser) -> bool:
    return current_user.is_admin or current_user.id in (
        booking.customer_id,
        booking.provider_id,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
    service: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    is_manager = BookingScope.MANAGE in current_user.scopes
    is_reader = BookingScope.READ in current_user.scopes

    if current_user.is_admin:
        return await service.list_bookings(filters=filters)
    if is_manager and not is_reader:
        return await service.list_bookings(
            filters=filters, provider_id=current_user.id
        )
    return await service.list_bookings(filters=filters, customer_id=current_user.id)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
    catalog_client: CatalogClient = Depends(get_catalog_client),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    # 1. Resolve the service and the address from catalog-ms
    offered = await catalog_client.get_service(payload.service_id, current_user)
    if offered is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Service not found"
        )
    address = await catalog_client.get_address(payload.address_id, current_user)
    if address is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Address not found"
        )

    # 2. Price, redeem the promo code and persist
    result = await service.create_booking(current_user.id, payload, offered, address)
    if isinstance(result, Failure):
        raise to_http_exception(result)
    return result


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await service.get_booking(booking_id)
    # Non-parties get the same 404 as a missing booking
    if not booking or not _can_see(booking, current_user):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


@router.get("/{booking_id}/history", response_model=list[BookingHistoryEntry])
async def get_booking_history(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
    service: BookingService = Depends(get_booking_service),
) -> list[BookingHistoryEntry]:
    booking = await service.get_booking(booking_id)
    if not booking or not _can_see(booking, current_user):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return await service.get_booking_history(booking_id)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    # Party and transition checks happen in the state machine
    result = await service.transition_booking(
        booking_id,
        payload.status,
        actor_id=current_user.id,
        reason=payload.reason,
        expected_version=payload.version,
    )
    if isinstance(result, Failure):
        raise to_http_exception(result)

    if payload.status in _REVENUE_STATUSES:
        await invalidate_summary_cache()
    return result


@router.patch("/{booking_id}/schedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: UUID,
    payload: BookingReschedule,
    current_user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    result = await service.reschedule_booking(
        booking_id,
        payload.scheduled_at,
        actor_id=current_user.id,
        reason=payload.reason,
        expected_version=payload.version,
    )
    if isinstance(result, Failure):
        raise to_http_exception(result)
    return result

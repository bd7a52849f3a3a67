from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.deps import (
    CurrentUser,
    can_admin_promo_codes,
    can_write_booking,
    get_booking_service,
)
from app.errors import Failure, to_http_exception
from app.schemas import (
    PromoCodeCreate,
    PromoCodeResponse,
    PromoCodeStatusUpdate,
    PromoValidation,
    PromoValidationRequest,
)
from app.services import BookingService

router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])


@router.post("/validate", response_model=PromoValidation)
async def validate_promo_code(
    payload: PromoValidationRequest,
    current_user: CurrentUser = Depends(can_write_booking),
    service: BookingService = Depends(get_booking_service),
) -> PromoValidation:
    """
    Preview the discount a code would give on an order. Always 200: an
    inapplicable code comes back with is_valid=false and a reason.
    """
    return await service.validate_promo_code(current_user.id, payload)


@router.post("/", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_promo_code(
    payload: PromoCodeCreate,
    current_user: CurrentUser = Depends(can_admin_promo_codes),
    service: BookingService = Depends(get_booking_service),
) -> PromoCodeResponse:
    result = await service.create_promo_code(payload, admin_id=current_user.id)
    if isinstance(result, Failure):
        raise to_http_exception(result)
    return result


@router.get("/", response_model=list[PromoCodeResponse])
async def list_promo_codes(
    is_active: bool | None = None,
    _: CurrentUser = Depends(can_admin_promo_codes),
    service: BookingService = Depends(get_booking_service),
) -> list[PromoCodeResponse]:
    return await service.list_promo_codes(is_active=is_active)


@router.patch("/{promo_code_id}/status", response_model=PromoCodeResponse)
async def update_promo_code_status(
    promo_code_id: UUID,
    payload: PromoCodeStatusUpdate,
    current_user: CurrentUser = Depends(can_admin_promo_codes),
    service: BookingService = Depends(get_booking_service),
) -> PromoCodeResponse:
    result = await service.set_promo_code_status(
        promo_code_id, payload.is_active, admin_id=current_user.id
    )
    if isinstance(result, Failure):
        raise to_http_exception(result)
    return result

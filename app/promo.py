from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from app.pricing import quantize_money, to_money
from app.schemas import (
    DiscountType,
    PromoCodeResponse,
    PromoRejection,
    PromoValidation,
    Region,
)

# User-displayable text per rejection reason
REJECTION_MESSAGES: dict[PromoRejection, str] = {
    PromoRejection.NOT_FOUND: "Invalid promo code",
    PromoRejection.INACTIVE: "This promo code is no longer active",
    PromoRejection.NOT_YET_VALID: "This promo code is not yet valid",
    PromoRejection.EXPIRED: "This promo code has expired",
    PromoRejection.TOTAL_LIMIT_REACHED: "This promo code has reached its usage limit",
    PromoRejection.PER_CUSTOMER_LIMIT_REACHED: (
        "You have already used this promo code the maximum number of times"
    ),
    PromoRejection.NOT_FIRST_ORDER: (
        "This promo code is only valid for first-time customers"
    ),
    PromoRejection.MINIMUM_NOT_MET: "Minimum order amount of {minimum} required",
    PromoRejection.SERVICE_NOT_APPLICABLE: (
        "This promo code is not applicable to the selected service"
    ),
    PromoRejection.CATEGORY_NOT_APPLICABLE: (
        "This promo code is not applicable to this service category"
    ),
    PromoRejection.REGION_NOT_APPLICABLE: (
        "This promo code is not applicable in your region"
    ),
}


def normalize_code(code: str) -> str:
    """Promo codes are case-insensitive and carry no whitespace: ' summer 10 ' -> 'SUMMER10'."""
    return "".join(code.split()).upper()


def compute_discount(promo: PromoCodeResponse, order_amount: Decimal) -> Decimal:
    """
    Discount in cents, never above the order amount or the code's cap.

    The result is rounded half-up to two places here, ahead of the VAT step,
    so the discount persisted on the booking and its usage row is exactly the
    amount taken off the pre-tax price.
    """
    order = to_money(order_amount)
    match promo.discount_type:
        case DiscountType.PERCENTAGE:
            discount = order * promo.discount_value / Decimal("100")
            if promo.max_discount_amount is not None:
                discount = min(discount, promo.max_discount_amount)
        case DiscountType.FIXED_AMOUNT:
            discount = promo.discount_value
        case _:
            raise ValueError(f"Unknown discount type: {promo.discount_type!r}")
    return quantize_money(max(Decimal("0"), min(discount, order)))


def _rejected(
    reason: PromoRejection,
    order_amount: Decimal,
    promo: PromoCodeResponse | None = None,
    **fmt: object,
) -> PromoValidation:
    return PromoValidation(
        is_valid=False,
        final_amount=order_amount,
        reason=reason,
        message=REJECTION_MESSAGES[reason].format(**fmt),
        promo_code_id=promo.id if promo else None,
        code=promo.code if promo else None,
    )


def _not_in(allow_list: list | None, value: object) -> bool:
    """An empty or missing allow-list allows everything."""
    if not allow_list:
        return False
    return value is None or value not in allow_list


def validate_promo_code(
    promo: PromoCodeResponse | None,
    *,
    order_amount: Decimal,
    service_id: UUID | None = None,
    category_id: UUID | None = None,
    region: Region | None = None,
    prior_customer_redemptions: int = 0,
    prior_customer_completed_orders: int = 0,
    now: datetime | None = None,
) -> PromoValidation:
    """
    Run the eligibility checks in order; the first failing check decides the
    reason. Reads nothing: the caller supplies the promo record and the
    customer's prior counts.
    """
    order = to_money(order_amount)
    now = now or datetime.now(timezone.utc)

    if promo is None:
        return _rejected(PromoRejection.NOT_FOUND, order)
    if not promo.is_active:
        return _rejected(PromoRejection.INACTIVE, order, promo)
    if now < promo.valid_from:
        return _rejected(PromoRejection.NOT_YET_VALID, order, promo)
    if now > promo.valid_until:
        return _rejected(PromoRejection.EXPIRED, order, promo)
    if (
        promo.max_total_uses is not None
        and promo.current_total_uses >= promo.max_total_uses
    ):
        return _rejected(PromoRejection.TOTAL_LIMIT_REACHED, order, promo)
    if (
        promo.max_uses_per_customer is not None
        and prior_customer_redemptions >= promo.max_uses_per_customer
    ):
        return _rejected(PromoRejection.PER_CUSTOMER_LIMIT_REACHED, order, promo)
    if promo.is_for_first_order_only and prior_customer_completed_orders > 0:
        return _rejected(PromoRejection.NOT_FIRST_ORDER, order, promo)
    if promo.min_order_amount is not None and order < promo.min_order_amount:
        return _rejected(
            PromoRejection.MINIMUM_NOT_MET, order, promo, minimum=promo.min_order_amount
        )
    if _not_in(promo.applicable_service_ids, service_id):
        return _rejected(PromoRejection.SERVICE_NOT_APPLICABLE, order, promo)
    if _not_in(promo.applicable_category_ids, category_id):
        return _rejected(PromoRejection.CATEGORY_NOT_APPLICABLE, order, promo)
    if _not_in(promo.applicable_regions, region):
        return _rejected(PromoRejection.REGION_NOT_APPLICABLE, order, promo)

    discount = compute_discount(promo, order)
    return PromoValidation(
        is_valid=True,
        discount_amount=discount,
        final_amount=order - discount,
        promo_code_id=promo.id,
        code=promo.code,
    )

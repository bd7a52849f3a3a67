"""
All test-data builders in one place.
Import from here in every test file — never define dummy data inline.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from app.deps import CurrentUser
from app.schemas import (
    AddressSnapshot,
    BookingResponse,
    DiscountType,
    PromoCodeResponse,
    Region,
    ServiceSnapshot,
)
from app.scopes import BookingScope

# ---------------------------------------------------------------------------
# Stable IDs — use these when a specific, repeatable UUID is needed.
# Call uuid4() inline when you need a fresh one per test.
# ---------------------------------------------------------------------------

CUSTOMER_ID: UUID = uuid4()
PROVIDER_ID: UUID = uuid4()
ADMIN_ID: UUID = uuid4()
OTHER_USER_ID: UUID = uuid4()

BOOKING_ID: UUID = uuid4()
SERVICE_ID: UUID = uuid4()
CATEGORY_ID: UUID = uuid4()
ADDRESS_ID: UUID = uuid4()
PROMO_CODE_ID: UUID = uuid4()

NOW = datetime(2026, 6, 1, 10, 0, 0, tzinfo=UTC)
LATER = NOW + timedelta(days=2)
FAR_FUTURE = datetime(2099, 1, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# User factories
# ---------------------------------------------------------------------------


def make_customer(
    user_id: UUID = CUSTOMER_ID,
    scopes: list[str] | None = None,
) -> CurrentUser:
    """Customer with read/write booking scopes."""
    if scopes is None:
        scopes = [BookingScope.READ, BookingScope.WRITE]
    return CurrentUser(id=user_id, username=f"customer_{user_id}", scopes=scopes)


def make_provider(
    user_id: UUID = PROVIDER_ID,
    scopes: list[str] | None = None,
) -> CurrentUser:
    """Service provider with the manage booking scope."""
    if scopes is None:
        scopes = [BookingScope.MANAGE]
    return CurrentUser(id=user_id, username=f"provider_{user_id}", scopes=scopes)


def make_admin() -> CurrentUser:
    """Admin with every admin scope."""
    return CurrentUser(
        id=ADMIN_ID,
        username="admin",
        scopes=[
            BookingScope.READ,
            BookingScope.ADMIN,
            BookingScope.ADMIN_READ,
            BookingScope.ADMIN_PROMO_CODES,
            BookingScope.ADMIN_ANALYTICS,
        ],
    )


# ---------------------------------------------------------------------------
# Model factories  (what the repository hands back)
# ---------------------------------------------------------------------------


def booking_model(**overrides) -> BookingResponse:
    base = dict(
        id=BOOKING_ID,
        customer_id=CUSTOMER_ID,
        service_id=SERVICE_ID,
        provider_id=PROVIDER_ID,
        address_id=ADDRESS_ID,
        region=Region.SAUDI_ARABIA,
        status="pending",
        scheduled_at=LATER,
        created_at=NOW,
        base_price=Decimal("100.00"),
        vat_percentage=Decimal("15"),
        vat_amount=Decimal("15.00"),
        total_amount=Decimal("115.00"),
        currency="SAR",
        version=0,
    )
    return BookingResponse(**{**base, **overrides})


def completed_booking(total: str, region: Region = Region.SAUDI_ARABIA, **overrides):
    """A completed booking with a given total, for analytics tests."""
    base = dict(
        id=uuid4(),
        status="completed",
        region=region,
        total_amount=Decimal(total),
        started_at=NOW,
        completed_at=NOW,
    )
    return booking_model(**{**base, **overrides})


def promo_code_model(**overrides) -> PromoCodeResponse:
    base = dict(
        id=PROMO_CODE_ID,
        code="SUMMER10",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        valid_from=NOW - timedelta(days=30),
        valid_until=FAR_FUTURE,
        current_total_uses=0,
        is_active=True,
        created_at=NOW - timedelta(days=30),
    )
    return PromoCodeResponse(**{**base, **overrides})


def service_snapshot(**overrides) -> ServiceSnapshot:
    base = dict(
        id=SERVICE_ID,
        provider_id=PROVIDER_ID,
        category_id=CATEGORY_ID,
        base_price=Decimal("100.00"),
        currency="SAR",
        is_active=True,
    )
    return ServiceSnapshot(**{**base, **overrides})


def address_snapshot(**overrides) -> AddressSnapshot:
    base = dict(id=ADDRESS_ID, user_id=CUSTOMER_ID, region="saudi_arabia")
    return AddressSnapshot(**{**base, **overrides})


# ---------------------------------------------------------------------------
# Upstream response dicts  (what catalog-ms returns)
# ---------------------------------------------------------------------------


def service_dict(**overrides) -> dict:
    base = dict(
        id=str(SERVICE_ID),
        provider_id=str(PROVIDER_ID),
        category_id=str(CATEGORY_ID),
        base_price="100.00",
        currency="SAR",
        is_active=True,
    )
    return {**base, **overrides}


def address_dict(**overrides) -> dict:
    base = dict(id=str(ADDRESS_ID), user_id=str(CUSTOMER_ID), region="saudi_arabia")
    return {**base, **overrides}


# ---------------------------------------------------------------------------
# Request payload factories
# ---------------------------------------------------------------------------


def booking_create_payload(**overrides) -> dict:
    base = dict(
        service_id=str(SERVICE_ID),
        address_id=str(ADDRESS_ID),
        scheduled_at=LATER.isoformat(),
        promo_code=None,
        special_instructions=None,
    )
    return {**base, **overrides}


def promo_code_create_payload(**overrides) -> dict:
    base = dict(
        code="summer10",
        description="Summer campaign",
        discount_type="percentage",
        discount_value="10",
        valid_from=(NOW - timedelta(days=1)).isoformat(),
        valid_until=FAR_FUTURE.isoformat(),
    )
    return {**base, **overrides}

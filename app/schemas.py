from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BookingStatus(StrEnum):
    PENDING = "pending"  # just created, awaiting provider confirmation
    CONFIRMED = "confirmed"  # provider accepted
    IN_PROGRESS = "in_progress"  # provider started the job
    COMPLETED = "completed"
    CANCELLED = "cancelled"  # by customer or provider, reason required
    DISPUTED = "disputed"


class Region(StrEnum):
    SAUDI_ARABIA = "saudi_arabia"
    EGYPT = "egypt"


class DiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class PromoRejection(StrEnum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    TOTAL_LIMIT_REACHED = "total_limit_reached"
    PER_CUSTOMER_LIMIT_REACHED = "per_customer_limit_reached"
    NOT_FIRST_ORDER = "not_first_order"
    MINIMUM_NOT_MET = "minimum_not_met"
    SERVICE_NOT_APPLICABLE = "service_not_applicable"
    CATEGORY_NOT_APPLICABLE = "category_not_applicable"
    REGION_NOT_APPLICABLE = "region_not_applicable"


def _require_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        raise ValueError("datetime must be timezone-aware (include UTC offset)")
    return v.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    service_id: UUID
    address_id: UUID
    scheduled_at: datetime
    promo_code: str | None = Field(default=None, max_length=50)
    special_instructions: str | None = Field(default=None, max_length=1000)

    @field_validator("scheduled_at", mode="after")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return _require_utc(v)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    reason: str | None = Field(default=None, max_length=500)
    # Concurrency token the caller read the booking with
    version: int | None = Field(default=None, ge=0)


class BookingReschedule(BaseModel):
    scheduled_at: datetime
    reason: str | None = Field(default=None, max_length=500)
    version: int | None = Field(default=None, ge=0)

    @field_validator("scheduled_at", mode="after")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return _require_utc(v)


class BookingResponse(BaseModel):
    id: UUID
    customer_id: UUID
    service_id: UUID
    provider_id: UUID | None
    address_id: UUID
    region: Region
    status: BookingStatus
    scheduled_at: datetime
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    base_price: Decimal
    discount_amount: Decimal | None = None
    vat_percentage: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    currency: str
    promo_code_id: UUID | None = None
    promo_code: str | None = None
    special_instructions: str | None = None
    version: int = 0
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BookingHistoryEntry(BaseModel):
    booking_id: UUID
    status: BookingStatus
    changed_by_id: UUID | None
    change_reason: str | None = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------------------
# Upstream catalog snapshots
# ---------------------------------------------------------------------------


class ServiceSnapshot(BaseModel):
    """The parts of a catalog service a booking needs, resolved by the caller."""

    id: UUID
    provider_id: UUID | None = None
    category_id: UUID | None = None
    # booking money columns store two places; finer prices are refused
    base_price: Decimal = Field(ge=0, decimal_places=2)
    currency: str | None = None
    is_active: bool = True


class AddressSnapshot(BaseModel):
    id: UUID
    user_id: UUID
    # Left as a plain string: an unsupported region is a pricing configuration
    # error, not a payload error.
    region: str


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class PriceBreakdown(BaseModel):
    region: Region
    base_price: Decimal
    vat_percentage: Decimal
    vat_amount: Decimal
    total: Decimal


class CommissionSplit(BaseModel):
    amount: Decimal
    rate: Decimal
    commission: Decimal
    net_earnings: Decimal


class RegionRevenue(BaseModel):
    region: Region
    bookings: int
    revenue: Decimal
    commission: Decimal
    net_earnings: Decimal


class FinancialSummary(BaseModel):
    period_start: datetime
    period_end: datetime
    commission_rate: Decimal
    completed_bookings: int
    total_revenue: Decimal
    total_commission: Decimal
    provider_net_earnings: Decimal
    by_region: list[RegionRevenue]
    previous_period_revenue: Decimal
    growth_percentage: Decimal


# ---------------------------------------------------------------------------
# Promo codes
# ---------------------------------------------------------------------------


class PromoCodeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0, decimal_places=2)
    max_discount_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    min_order_amount: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    valid_from: datetime
    valid_until: datetime
    max_total_uses: int | None = Field(default=None, ge=1)
    max_uses_per_customer: int | None = Field(default=None, ge=1)
    applicable_service_ids: list[UUID] | None = None
    applicable_category_ids: list[UUID] | None = None
    applicable_regions: list[Region] | None = None
    is_for_first_order_only: bool = False
    is_active: bool = True

    @field_validator("valid_from", "valid_until", mode="after")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return _require_utc(v)

    @model_validator(mode="after")
    def validate_rules(self) -> PromoCodeCreate:
        if self.valid_from >= self.valid_until:
            raise ValueError("valid_from must be before valid_until")
        if (
            self.discount_type == DiscountType.PERCENTAGE
            and self.discount_value > 100
        ):
            raise ValueError("Percentage discount must be between 0 and 100")
        if (
            self.discount_type == DiscountType.FIXED_AMOUNT
            and self.max_discount_amount is not None
        ):
            raise ValueError("max_discount_amount only applies to percentage codes")
        return self


class PromoCodeResponse(BaseModel):
    id: UUID
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    max_discount_amount: Decimal | None = None
    min_order_amount: Decimal | None = None
    valid_from: datetime
    valid_until: datetime
    max_total_uses: int | None = None
    max_uses_per_customer: int | None = None
    current_total_uses: int = 0
    applicable_service_ids: list[UUID] | None = None
    applicable_category_ids: list[UUID] | None = None
    applicable_regions: list[Region] | None = None
    is_for_first_order_only: bool = False
    is_active: bool = True
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("valid_from", "valid_until", mode="after")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # some backends hand naive datetimes back
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class PromoCodeStatusUpdate(BaseModel):
    is_active: bool


class PromoValidationRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    order_amount: Decimal = Field(ge=0, decimal_places=2)
    service_id: UUID | None = None
    category_id: UUID | None = None
    region: Region | None = None


class PromoValidation(BaseModel):
    is_valid: bool
    discount_amount: Decimal = Decimal("0")
    final_amount: Decimal
    reason: PromoRejection | None = None
    message: str | None = None
    promo_code_id: UUID | None = None
    code: str | None = None

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from tortoise.expressions import F
from tortoise.transactions import in_transaction

from app.models import Booking, BookingHistory, BookingStatus, PromoCode, PromoCodeUsage
from app.repository import BookingRepository
from app.schemas import (
    BookingFilters,
    BookingHistoryEntry,
    BookingResponse,
    PromoCodeCreate,
    PromoCodeResponse,
)

# Fields a status change or a reschedule may change; the rest is fixed at creation
_MUTABLE_FIELDS = (
    "status",
    "scheduled_at",
    "started_at",
    "completed_at",
    "cancelled_at",
    "cancellation_reason",
)


def _to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware, handling both aware and naive inputs."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_json_list(values: list | None) -> list[str] | None:
    if values is None:
        return None
    return [str(v) for v in values]


class BookingCRUD(BookingRepository):
    def atomic(self):
        return in_transaction()

    # Bookings ---------------------------------------------------------------

    async def get_booking(self, booking_id: UUID) -> BookingResponse | None:
        inst = await Booking.get_or_none(id=booking_id)
        if not inst:
            return None
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_bookings(
        self,
        filters: BookingFilters,
        customer_id: UUID | None = None,
        provider_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if customer_id is not None:
            qs = qs.filter(customer_id=customer_id)
        if provider_id is not None:
            qs = qs.filter(provider_id=provider_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size)

        bookings = await qs
        return [
            BookingResponse.model_validate(b, from_attributes=True) for b in bookings
        ]

    async def add_booking(self, booking: BookingResponse) -> BookingResponse:
        inst = await Booking.create(**booking.model_dump())
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def save_booking(
        self, booking: BookingResponse, expected_version: int
    ) -> BookingResponse | None:
        # Compare-and-swap on the version: a concurrent writer makes this a no-op
        changes = {name: getattr(booking, name) for name in _MUTABLE_FIELDS}
        updated = await Booking.filter(
            id=booking.id, version=expected_version
        ).update(
            **changes,
            version=expected_version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        if not updated:
            return None
        return await self.get_booking(booking.id)

    async def add_history(self, entry: BookingHistoryEntry) -> None:
        await BookingHistory.create(**entry.model_dump())

    async def list_history(self, booking_id: UUID) -> list[BookingHistoryEntry]:
        rows = await BookingHistory.filter(booking_id=booking_id)
        return [BookingHistoryEntry.model_validate(r, from_attributes=True) for r in rows]

    async def count_customer_completed_bookings(self, customer_id: UUID) -> int:
        return await Booking.filter(
            customer_id=customer_id, status=BookingStatus.COMPLETED
        ).count()

    async def list_completed_bookings(
        self,
        start: datetime,
        end: datetime,
        provider_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.filter(
            status=BookingStatus.COMPLETED,
            completed_at__gte=_to_utc(start),
            completed_at__lt=_to_utc(end),
        )
        if provider_id is not None:
            qs = qs.filter(provider_id=provider_id)
        return [BookingResponse.model_validate(b, from_attributes=True) for b in await qs]

    # Promo codes ------------------------------------------------------------

    async def get_promo_code_by_code(self, code: str) -> PromoCodeResponse | None:
        inst = await PromoCode.get_or_none(code=code)
        if not inst:
            return None
        return PromoCodeResponse.model_validate(inst, from_attributes=True)

    async def get_promo_code(self, promo_code_id: UUID) -> PromoCodeResponse | None:
        inst = await PromoCode.get_or_none(id=promo_code_id)
        if not inst:
            return None
        return PromoCodeResponse.model_validate(inst, from_attributes=True)

    async def list_promo_codes(
        self, is_active: bool | None = None
    ) -> list[PromoCodeResponse]:
        qs = PromoCode.all()
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        return [PromoCodeResponse.model_validate(p, from_attributes=True) for p in await qs]

    async def add_promo_code(
        self, code: str, payload: PromoCodeCreate
    ) -> PromoCodeResponse:
        data = payload.model_dump(
            exclude={
                "code",
                "applicable_service_ids",
                "applicable_category_ids",
                "applicable_regions",
            }
        )
        inst = await PromoCode.create(
            **data,
            code=code,
            applicable_service_ids=_as_json_list(payload.applicable_service_ids),
            applicable_category_ids=_as_json_list(payload.applicable_category_ids),
            applicable_regions=_as_json_list(payload.applicable_regions),
        )
        return PromoCodeResponse.model_validate(inst, from_attributes=True)

    async def set_promo_code_active(
        self, promo_code_id: UUID, is_active: bool
    ) -> PromoCodeResponse | None:
        inst = await PromoCode.get_or_none(id=promo_code_id)
        if not inst:
            return None
        inst.is_active = is_active
        await inst.save(update_fields=["is_active", "updated_at"])
        return PromoCodeResponse.model_validate(inst, from_attributes=True)

    async def increment_promo_code_usage_if_available(
        self, promo_code_id: UUID
    ) -> bool:
        # The cap is never edited after creation, only the counter moves.
        # The WHERE clause re-checks the live counter, so two callers racing
        # for the last redemption cannot both match.
        cap = await PromoCode.filter(id=promo_code_id).values_list(
            "max_total_uses", flat=True
        )
        if not cap:
            return False
        qs = PromoCode.filter(id=promo_code_id)
        if cap[0] is not None:
            qs = qs.filter(current_total_uses__lt=cap[0])
        updated = await qs.update(current_total_uses=F("current_total_uses") + 1)
        return updated == 1

    async def record_promo_code_usage(
        self,
        promo_code_id: UUID,
        customer_id: UUID,
        booking_id: UUID,
        discount_amount: Decimal,
        used_at: datetime,
        max_uses_per_customer: int | None = None,
    ) -> bool:
        if max_uses_per_customer is not None:
            # Row lock on the code until the surrounding transaction commits
            await PromoCode.filter(id=promo_code_id).select_for_update().first()
            used = await PromoCodeUsage.filter(
                promo_code_id=promo_code_id, customer_id=customer_id
            ).count()
            if used >= max_uses_per_customer:
                return False
        await PromoCodeUsage.create(
            promo_code_id=promo_code_id,
            customer_id=customer_id,
            booking_id=booking_id,
            discount_amount=discount_amount,
            used_at=used_at,
        )
        return True

    async def count_customer_redemptions(
        self, promo_code_id: UUID, customer_id: UUID
    ) -> int:
        return await PromoCodeUsage.filter(
            promo_code_id=promo_code_id, customer_id=customer_id
        ).count()


booking_crud = BookingCRUD()

"""
Tests for app/crud.py: the Tortoise repository against in-memory SQLite.

Each test initialises its own database inside asyncio.run.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from tortoise import Tortoise, connections

from app.crud import BookingCRUD
from app.schemas import (
    BookingCreate,
    BookingFilters,
    BookingHistoryEntry,
    BookingStatus,
    PromoCodeCreate,
    Region,
)
from app.services import BookingService

from .factories import (
    ADDRESS_ID,
    BOOKING_ID,
    CUSTOMER_ID,
    LATER,
    NOW,
    PROVIDER_ID,
    SERVICE_ID,
    address_snapshot,
    booking_model,
    completed_booking,
    promo_code_create_payload,
    service_snapshot,
)


def run_db(test):
    """Run `test(crud)` against a fresh schema."""

    async def _inner():
        await Tortoise.init(
            db_url="sqlite://:memory:",
            modules={"models": ["app.models"]},
            use_tz=True,
            timezone="UTC",
        )
        await Tortoise.generate_schemas()
        try:
            await test(BookingCRUD())
        finally:
            await connections.close_all()

    asyncio.run(_inner())


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class TestBookings:
    def test_add_and_get(self):
        async def _test(crud):
            await crud.add_booking(booking_model())
            found = await crud.get_booking(BOOKING_ID)
            assert found.id == BOOKING_ID
            assert found.region == Region.SAUDI_ARABIA
            assert found.total_amount == Decimal("115.00")
            assert found.version == 0
            assert await crud.get_booking(uuid4()) is None

        run_db(_test)

    def test_list_filters_by_party_and_status(self):
        async def _test(crud):
            await crud.add_booking(booking_model())
            await crud.add_booking(
                booking_model(id=uuid4(), customer_id=uuid4(), provider_id=uuid4())
            )
            await crud.add_booking(
                booking_model(id=uuid4(), status=BookingStatus.CONFIRMED)
            )

            mine = await crud.list_bookings(BookingFilters(), customer_id=CUSTOMER_ID)
            assert len(mine) == 2
            assigned = await crud.list_bookings(
                BookingFilters(), provider_id=PROVIDER_ID
            )
            assert len(assigned) == 2
            confirmed = await crud.list_bookings(
                BookingFilters(status=BookingStatus.CONFIRMED)
            )
            assert len(confirmed) == 1
            page = await crud.list_bookings(BookingFilters(page=2, page_size=2))
            assert len(page) == 1

        run_db(_test)

    def test_save_is_compare_and_swap_on_version(self):
        async def _test(crud):
            booking = await crud.add_booking(booking_model())
            confirmed = booking.model_copy(update={"status": BookingStatus.CONFIRMED})

            saved = await crud.save_booking(confirmed, expected_version=0)
            assert saved.status == BookingStatus.CONFIRMED
            assert saved.version == 1
            assert saved.updated_at is not None

            # a writer still holding version 0 loses
            cancelled = booking.model_copy(
                update={
                    "status": BookingStatus.CANCELLED,
                    "cancelled_at": NOW,
                    "cancellation_reason": "late",
                }
            )
            assert await crud.save_booking(cancelled, expected_version=0) is None
            stored = await crud.get_booking(BOOKING_ID)
            assert stored.status == BookingStatus.CONFIRMED
            assert stored.cancelled_at is None

        run_db(_test)

    def test_history_round_trip(self):
        async def _test(crud):
            for status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                await crud.add_history(
                    BookingHistoryEntry(
                        booking_id=BOOKING_ID,
                        status=status,
                        changed_by_id=CUSTOMER_ID,
                        changed_at=NOW,
                    )
                )
            history = await crud.list_history(BOOKING_ID)
            assert [h.status for h in history] == [
                BookingStatus.PENDING,
                BookingStatus.CONFIRMED,
            ]
            assert await crud.list_history(uuid4()) == []

        run_db(_test)

    def test_completed_bookings_window(self):
        async def _test(crud):
            await crud.add_booking(completed_booking("100.00", completed_at=NOW))
            await crud.add_booking(
                completed_booking("200.00", completed_at=NOW + timedelta(days=1))
            )
            await crud.add_booking(booking_model())

            rows = await crud.list_completed_bookings(NOW, NOW + timedelta(days=1))
            assert [r.total_amount for r in rows] == [Decimal("100.00")]
            assert await crud.count_customer_completed_bookings(CUSTOMER_ID) == 2

            other = await crud.list_completed_bookings(
                NOW, NOW + timedelta(days=2), provider_id=uuid4()
            )
            assert other == []

        run_db(_test)

    def test_atomic_rolls_back_on_error(self):
        async def _test(crud):
            with pytest.raises(RuntimeError):
                async with crud.atomic():
                    await crud.add_booking(booking_model())
                    raise RuntimeError("boom")
            assert await crud.get_booking(BOOKING_ID) is None

        run_db(_test)


# ---------------------------------------------------------------------------
# Promo codes
# ---------------------------------------------------------------------------


class TestPromoCodes:
    def test_add_and_lookup_by_code(self):
        async def _test(crud):
            payload = PromoCodeCreate(
                **promo_code_create_payload(
                    applicable_service_ids=[str(SERVICE_ID)],
                    applicable_regions=["egypt"],
                    max_total_uses=5,
                )
            )
            created = await crud.add_promo_code("SUMMER10", payload)
            found = await crud.get_promo_code_by_code("SUMMER10")
            assert found.id == created.id
            assert found.applicable_service_ids == [SERVICE_ID]
            assert found.applicable_regions == [Region.EGYPT]
            assert found.current_total_uses == 0
            assert await crud.get_promo_code_by_code("OTHER") is None

        run_db(_test)

    def test_set_active_and_list(self):
        async def _test(crud):
            promo = await crud.add_promo_code(
                "SUMMER10", PromoCodeCreate(**promo_code_create_payload())
            )
            updated = await crud.set_promo_code_active(promo.id, False)
            assert updated.is_active is False
            assert await crud.list_promo_codes(is_active=True) == []
            assert len(await crud.list_promo_codes()) == 1
            assert await crud.set_promo_code_active(uuid4(), True) is None

        run_db(_test)

    def test_increment_stops_at_cap(self):
        async def _test(crud):
            promo = await crud.add_promo_code(
                "ONCE",
                PromoCodeCreate(**promo_code_create_payload(code="once", max_total_uses=1)),
            )
            assert await crud.increment_promo_code_usage_if_available(promo.id) is True
            assert await crud.increment_promo_code_usage_if_available(promo.id) is False
            assert (await crud.get_promo_code(promo.id)).current_total_uses == 1

        run_db(_test)

    def test_concurrent_last_redemption_only_one_succeeds(self):
        async def _test(crud):
            promo = await crud.add_promo_code(
                "LAST",
                PromoCodeCreate(**promo_code_create_payload(code="last", max_total_uses=1)),
            )
            results = await asyncio.gather(
                crud.increment_promo_code_usage_if_available(promo.id),
                crud.increment_promo_code_usage_if_available(promo.id),
            )
            assert sorted(results) == [False, True]
            assert (await crud.get_promo_code(promo.id)).current_total_uses == 1

        run_db(_test)

    def test_uncapped_code_always_increments(self):
        async def _test(crud):
            promo = await crud.add_promo_code(
                "OPEN", PromoCodeCreate(**promo_code_create_payload(code="open"))
            )
            for _ in range(3):
                assert await crud.increment_promo_code_usage_if_available(promo.id)
            assert (await crud.get_promo_code(promo.id)).current_total_uses == 3

        run_db(_test)

    def test_increment_missing_code(self):
        async def _test(crud):
            assert await crud.increment_promo_code_usage_if_available(uuid4()) is False

        run_db(_test)

    def test_redemptions_counted_per_customer(self):
        async def _test(crud):
            promo = await crud.add_promo_code(
                "SUMMER10", PromoCodeCreate(**promo_code_create_payload())
            )
            for customer in (CUSTOMER_ID, CUSTOMER_ID, uuid4()):
                await crud.record_promo_code_usage(
                    promo.id, customer, uuid4(), Decimal("10.00"), NOW
                )
            assert await crud.count_customer_redemptions(promo.id, CUSTOMER_ID) == 2

        run_db(_test)

    def test_usage_refused_at_per_customer_cap(self):
        async def _test(crud):
            promo = await crud.add_promo_code(
                "SUMMER10",
                PromoCodeCreate(**promo_code_create_payload(max_uses_per_customer=1)),
            )
            async with crud.atomic():
                assert await crud.record_promo_code_usage(
                    promo.id, CUSTOMER_ID, uuid4(), Decimal("10.00"), NOW, 1
                )
            async with crud.atomic():
                assert not await crud.record_promo_code_usage(
                    promo.id, CUSTOMER_ID, uuid4(), Decimal("10.00"), NOW, 1
                )
            assert await crud.record_promo_code_usage(
                promo.id, uuid4(), uuid4(), Decimal("10.00"), NOW, 1
            )
            assert await crud.count_customer_redemptions(promo.id, CUSTOMER_ID) == 1

        run_db(_test)


# ---------------------------------------------------------------------------
# BookingService over the Tortoise repository
# ---------------------------------------------------------------------------


class TestServiceOnDatabase:
    def test_stored_total_matches_its_parts(self):
        async def _test(crud):
            await crud.add_promo_code(
                "SUMMER10",
                PromoCodeCreate(**promo_code_create_payload(max_uses_per_customer=1)),
            )
            service = BookingService(crud, Decimal("0.15"))
            created = await service.create_booking(
                CUSTOMER_ID,
                BookingCreate(
                    service_id=SERVICE_ID,
                    address_id=ADDRESS_ID,
                    scheduled_at=LATER,
                    promo_code="summer10",
                ),
                service_snapshot(base_price=Decimal("33.33")),
                address_snapshot(region="egypt"),
                now=NOW,
            )
            stored = await crud.get_booking(created.id)
            assert stored.base_price == Decimal("33.33")
            assert stored.discount_amount == Decimal("3.33")
            assert stored.vat_amount == Decimal("4.20")
            assert stored.total_amount == Decimal("34.20")
            assert stored.total_amount == (
                stored.base_price - stored.discount_amount + stored.vat_amount
            )
            assert created.total_amount == stored.total_amount

        run_db(_test)

    def test_reschedule_persists_new_time(self):
        async def _test(crud):
            await crud.add_booking(booking_model())
            service = BookingService(crud, Decimal("0.15"))
            new_time = LATER + timedelta(days=1)
            result = await service.reschedule_booking(
                BOOKING_ID, new_time, CUSTOMER_ID, now=NOW
            )
            assert result.scheduled_at == new_time
            stored = await crud.get_booking(BOOKING_ID)
            assert stored.scheduled_at == new_time
            assert stored.status == BookingStatus.PENDING
            assert stored.version == 1
            [entry] = await crud.list_history(BOOKING_ID)
            assert entry.status == BookingStatus.PENDING

        run_db(_test)

"""Persistence boundary used by BookingService."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from app.schemas import (
    BookingFilters,
    BookingHistoryEntry,
    BookingResponse,
    PromoCodeCreate,
    PromoCodeResponse,
)


class BookingRepository(ABC):
    """
    Abstract repository / unit of work for bookings and promo codes.

    Writes issued inside `atomic()` commit or roll back together.
    """

    @abstractmethod
    def atomic(self) -> AbstractAsyncContextManager:
        ...

    # Bookings ---------------------------------------------------------------

    @abstractmethod
    async def get_booking(self, booking_id: UUID) -> BookingResponse | None:
        ...

    @abstractmethod
    async def list_bookings(
        self,
        filters: BookingFilters,
        customer_id: UUID | None = None,
        provider_id: UUID | None = None,
    ) -> list[BookingResponse]:
        ...

    @abstractmethod
    async def add_booking(self, booking: BookingResponse) -> BookingResponse:
        ...

    @abstractmethod
    async def save_booking(
        self, booking: BookingResponse, expected_version: int
    ) -> BookingResponse | None:
        """
        Persist the booking's status and schedule fields only if the stored
        version still equals `expected_version`, bumping the version. None on
        a version mismatch.
        """

    @abstractmethod
    async def add_history(self, entry: BookingHistoryEntry) -> None:
        ...

    @abstractmethod
    async def list_history(self, booking_id: UUID) -> list[BookingHistoryEntry]:
        ...

    @abstractmethod
    async def count_customer_completed_bookings(self, customer_id: UUID) -> int:
        ...

    @abstractmethod
    async def list_completed_bookings(
        self,
        start: datetime,
        end: datetime,
        provider_id: UUID | None = None,
    ) -> list[BookingResponse]:
        """Bookings completed within [start, end)."""

    # Promo codes ------------------------------------------------------------

    @abstractmethod
    async def get_promo_code_by_code(self, code: str) -> PromoCodeResponse | None:
        ...

    @abstractmethod
    async def get_promo_code(self, promo_code_id: UUID) -> PromoCodeResponse | None:
        ...

    @abstractmethod
    async def list_promo_codes(
        self, is_active: bool | None = None
    ) -> list[PromoCodeResponse]:
        ...

    @abstractmethod
    async def add_promo_code(
        self, code: str, payload: PromoCodeCreate
    ) -> PromoCodeResponse:
        ...

    @abstractmethod
    async def set_promo_code_active(
        self, promo_code_id: UUID, is_active: bool
    ) -> PromoCodeResponse | None:
        ...

    @abstractmethod
    async def increment_promo_code_usage_if_available(
        self, promo_code_id: UUID
    ) -> bool:
        """
        Atomically increment the redemption counter unless the total cap is
        reached. True when this call took a redemption.
        """

    @abstractmethod
    async def record_promo_code_usage(
        self,
        promo_code_id: UUID,
        customer_id: UUID,
        booking_id: UUID,
        discount_amount: Decimal,
        used_at: datetime,
        max_uses_per_customer: int | None = None,
    ) -> bool:
        """
        Insert a usage row unless the customer already holds
        `max_uses_per_customer` redemptions of the code. The count and the
        insert are serialized per promo code, so concurrent bookings by one
        customer cannot both pass. False when the limit was reached.
        """

    @abstractmethod
    async def count_customer_redemptions(
        self, promo_code_id: UUID, customer_id: UUID
    ) -> int:
        ...

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from loguru import logger

from app import settings
from app.commission import summarize
from app.crud import booking_crud
from app.errors import ConfigurationError, ErrorKind, Failure
from app.pricing import compute_price, default_currency_for
from app.promo import REJECTION_MESSAGES, normalize_code, validate_promo_code
from app.repository import BookingRepository
from app.schemas import (
    AddressSnapshot,
    BookingCreate,
    BookingFilters,
    BookingHistoryEntry,
    BookingResponse,
    BookingStatus,
    FinancialSummary,
    PromoCodeCreate,
    PromoCodeResponse,
    PromoRejection,
    PromoValidation,
    PromoValidationRequest,
    Region,
    ServiceSnapshot,
)
from app.state_machine import request_reschedule, request_transition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedemptionRefused(Exception):
    """Rolls back a booking's unit of work when a promo limit is hit at write time."""

    def __init__(self, reason: PromoRejection):
        super().__init__(reason)
        self.reason = reason


class BookingService:
    """
    Booking use cases: create, transition, reschedule, promo preview, promo
    admin and financial analytics. Business-rule violations come back as
    `Failure`; only collaborator errors raise.
    """

    def __init__(self, repository: BookingRepository, commission_rate: Decimal):
        self._repo = repository
        self._commission_rate = commission_rate

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get_booking(self, booking_id: UUID) -> BookingResponse | None:
        return await self._repo.get_booking(booking_id)

    async def list_bookings(
        self,
        filters: BookingFilters,
        customer_id: UUID | None = None,
        provider_id: UUID | None = None,
    ) -> list[BookingResponse]:
        return await self._repo.list_bookings(
            filters, customer_id=customer_id, provider_id=provider_id
        )

    async def get_booking_history(self, booking_id: UUID) -> list[BookingHistoryEntry]:
        return await self._repo.list_history(booking_id)

    # -----------------------------------------------------------------------
    # Promo codes
    # -----------------------------------------------------------------------

    async def _validate(
        self,
        code: str,
        customer_id: UUID,
        order_amount: Decimal,
        service_id: UUID | None,
        category_id: UUID | None,
        region: Region | None,
        now: datetime,
    ) -> tuple[PromoValidation, PromoCodeResponse | None]:
        promo = await self._repo.get_promo_code_by_code(normalize_code(code))
        redemptions = completed = 0
        if promo is not None:
            if promo.max_uses_per_customer is not None:
                redemptions = await self._repo.count_customer_redemptions(
                    promo.id, customer_id
                )
            if promo.is_for_first_order_only:
                completed = await self._repo.count_customer_completed_bookings(
                    customer_id
                )
        validation = validate_promo_code(
            promo,
            order_amount=order_amount,
            service_id=service_id,
            category_id=category_id,
            region=region,
            prior_customer_redemptions=redemptions,
            prior_customer_completed_orders=completed,
            now=now,
        )
        return validation, promo

    async def validate_promo_code(
        self,
        customer_id: UUID,
        request: PromoValidationRequest,
        now: datetime | None = None,
    ) -> PromoValidation:
        """Read-only discount preview; nothing is redeemed."""
        validation, _ = await self._validate(
            request.code,
            customer_id,
            request.order_amount,
            request.service_id,
            request.category_id,
            request.region,
            now or _utcnow(),
        )
        return validation

    async def create_promo_code(
        self, payload: PromoCodeCreate, admin_id: UUID
    ) -> PromoCodeResponse | Failure:
        code = normalize_code(payload.code)
        if not code:
            return Failure(ErrorKind.VALIDATION_FAILED, "Promo code is required")
        if await self._repo.get_promo_code_by_code(code) is not None:
            return Failure(
                ErrorKind.CONFLICT, "A promo code with this code already exists"
            )
        promo = await self._repo.add_promo_code(code, payload)
        logger.info("Promo code {} created by admin {}", promo.code, admin_id)
        return promo

    async def list_promo_codes(
        self, is_active: bool | None = None
    ) -> list[PromoCodeResponse]:
        return await self._repo.list_promo_codes(is_active=is_active)

    async def set_promo_code_status(
        self, promo_code_id: UUID, is_active: bool, admin_id: UUID
    ) -> PromoCodeResponse | Failure:
        promo = await self._repo.get_promo_code(promo_code_id)
        if promo is None:
            return Failure(ErrorKind.NOT_FOUND, "Promo code not found")
        if promo.is_active == is_active:
            return promo
        promo = await self._repo.set_promo_code_active(promo_code_id, is_active)
        if promo is None:
            return Failure(ErrorKind.NOT_FOUND, "Promo code not found")
        logger.info(
            "Promo code {} {} by admin {}",
            promo.code,
            "activated" if is_active else "deactivated",
            admin_id,
        )
        return promo

    # -----------------------------------------------------------------------
    # Booking lifecycle
    # -----------------------------------------------------------------------

    async def create_booking(
        self,
        customer_id: UUID,
        payload: BookingCreate,
        service: ServiceSnapshot,
        address: AddressSnapshot,
        now: datetime | None = None,
    ) -> BookingResponse | Failure:
        """
        Price and persist a new pending booking.

        The promo redemption, the booking row, the usage row and the first
        history row are written in one unit of work.
        """
        now = now or _utcnow()

        if address.user_id != customer_id:
            return Failure(
                ErrorKind.UNAUTHORIZED, "Address does not belong to the customer"
            )
        if not service.is_active:
            return Failure(ErrorKind.NOT_FOUND, "Service is not available for booking")

        try:
            # Fails fast on an unsupported region before any promo work
            default_currency = default_currency_for(address.region)
        except ConfigurationError:
            logger.error(
                "No pricing configuration for region {!r} (address {})",
                address.region,
                address.id,
            )
            return Failure(
                ErrorKind.CONFIGURATION_ERROR,
                f"No pricing configuration for region {address.region!r}",
            )
        region = Region(address.region)

        promo: PromoValidation | None = None
        per_customer_cap: int | None = None
        discount = Decimal("0")
        if payload.promo_code:
            promo, code = await self._validate(
                payload.promo_code,
                customer_id,
                service.base_price,
                service.id,
                service.category_id,
                region,
                now,
            )
            if not promo.is_valid:
                logger.warning(
                    "Promo code {!r} rejected for customer {}: {}",
                    payload.promo_code,
                    customer_id,
                    promo.reason,
                )
                return Failure(
                    ErrorKind.VALIDATION_FAILED, promo.message or "", promo.reason
                )
            discount = promo.discount_amount
            per_customer_cap = code.max_uses_per_customer

        # Discount comes off the pre-tax price; VAT is never discounted
        price = compute_price(service.base_price - discount, region)

        booking = BookingResponse(
            id=uuid4(),
            customer_id=customer_id,
            service_id=service.id,
            provider_id=service.provider_id,
            address_id=address.id,
            region=region,
            status=BookingStatus.PENDING,
            scheduled_at=payload.scheduled_at,
            created_at=now,
            base_price=service.base_price,
            discount_amount=discount if promo is not None else None,
            vat_percentage=price.vat_percentage,
            vat_amount=price.vat_amount,
            total_amount=price.total,
            currency=service.currency or default_currency,
            promo_code_id=promo.promo_code_id if promo is not None else None,
            promo_code=promo.code if promo is not None else None,
            special_instructions=payload.special_instructions,
        )

        # Both promo limits are re-checked at the storage boundary; the
        # validation above ran on reads that a concurrent booking can outdate.
        try:
            async with self._repo.atomic():
                if promo is not None and promo.promo_code_id is not None:
                    taken = await self._repo.increment_promo_code_usage_if_available(
                        promo.promo_code_id
                    )
                    if not taken:
                        raise RedemptionRefused(PromoRejection.TOTAL_LIMIT_REACHED)
                created = await self._repo.add_booking(booking)
                if promo is not None and promo.promo_code_id is not None:
                    recorded = await self._repo.record_promo_code_usage(
                        promo.promo_code_id,
                        customer_id,
                        created.id,
                        discount,
                        now,
                        max_uses_per_customer=per_customer_cap,
                    )
                    if not recorded:
                        raise RedemptionRefused(
                            PromoRejection.PER_CUSTOMER_LIMIT_REACHED
                        )
                await self._repo.add_history(
                    BookingHistoryEntry(
                        booking_id=created.id,
                        status=BookingStatus.PENDING,
                        changed_by_id=customer_id,
                        changed_at=now,
                    )
                )
        except RedemptionRefused as refused:
            logger.warning(
                "Promo code {} refused at redemption for customer {}: {}",
                promo.code,
                customer_id,
                refused.reason,
            )
            return Failure(
                ErrorKind.VALIDATION_FAILED,
                REJECTION_MESSAGES[refused.reason],
                refused.reason,
            )

        logger.info(
            "Booking {} created for customer {} (total {} {})",
            created.id,
            customer_id,
            created.total_amount,
            created.currency,
        )
        return created

    async def transition_booking(
        self,
        booking_id: UUID,
        requested: BookingStatus,
        actor_id: UUID,
        reason: str | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> BookingResponse | Failure:
        now = now or _utcnow()
        booking = await self._repo.get_booking(booking_id)
        if booking is None:
            return Failure(ErrorKind.NOT_FOUND, "Booking not found")

        if expected_version is not None and expected_version != booking.version:
            return Failure(
                ErrorKind.CONFLICT,
                "Booking was modified by another request; re-read and retry",
            )

        result = request_transition(booking, requested, actor_id, reason=reason, now=now)
        if isinstance(result, Failure):
            return result

        async with self._repo.atomic():
            saved = await self._repo.save_booking(result, expected_version=booking.version)
            if saved is None:
                logger.warning(
                    "Concurrent update on booking {} (version {}), rejecting '{}'",
                    booking_id,
                    booking.version,
                    requested,
                )
                return Failure(
                    ErrorKind.CONFLICT,
                    "Booking was modified by another request; re-read and retry",
                )
            await self._repo.add_history(
                BookingHistoryEntry(
                    booking_id=booking_id,
                    status=requested,
                    changed_by_id=actor_id,
                    change_reason=reason,
                    changed_at=now,
                )
            )

        logger.info(
            "Booking {} status {} -> {} by {}",
            booking_id,
            booking.status,
            requested,
            actor_id,
        )
        return saved

    async def reschedule_booking(
        self,
        booking_id: UUID,
        new_scheduled_at: datetime,
        actor_id: UUID,
        reason: str | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> BookingResponse | Failure:
        """
        Move a pending or confirmed booking to a new visit time.

        Saved through the same version guard as status changes; the history
        row repeats the current status and records the old and new times.
        """
        now = now or _utcnow()
        booking = await self._repo.get_booking(booking_id)
        if booking is None:
            return Failure(ErrorKind.NOT_FOUND, "Booking not found")

        if expected_version is not None and expected_version != booking.version:
            return Failure(
                ErrorKind.CONFLICT,
                "Booking was modified by another request; re-read and retry",
            )

        result = request_reschedule(booking, new_scheduled_at, actor_id, now=now)
        if isinstance(result, Failure):
            return result

        note = (
            f"Rescheduled from {booking.scheduled_at:%Y-%m-%d %H:%M} "
            f"to {new_scheduled_at:%Y-%m-%d %H:%M} UTC"
        )
        if reason and reason.strip():
            note += f". Reason: {reason.strip()}"

        async with self._repo.atomic():
            saved = await self._repo.save_booking(result, expected_version=booking.version)
            if saved is None:
                logger.warning(
                    "Concurrent update on booking {} (version {}), rejecting reschedule",
                    booking_id,
                    booking.version,
                )
                return Failure(
                    ErrorKind.CONFLICT,
                    "Booking was modified by another request; re-read and retry",
                )
            await self._repo.add_history(
                BookingHistoryEntry(
                    booking_id=booking_id,
                    status=booking.status,
                    changed_by_id=actor_id,
                    change_reason=note,
                    changed_at=now,
                )
            )

        logger.info(
            "Booking {} rescheduled from {} to {} by {}",
            booking_id,
            booking.scheduled_at,
            new_scheduled_at,
            actor_id,
        )
        return saved

    # -----------------------------------------------------------------------
    # Analytics
    # -----------------------------------------------------------------------

    async def financial_summary(
        self,
        start: datetime,
        end: datetime,
        provider_id: UUID | None = None,
    ) -> FinancialSummary:
        """Completed-booking revenue for [start, end) against the period before it."""
        length = end - start
        current = await self._repo.list_completed_bookings(start, end, provider_id)
        previous = await self._repo.list_completed_bookings(
            start - length, start, provider_id
        )
        return summarize(current, previous, self._commission_rate, start, end)


booking_service = BookingService(booking_crud, settings.PLATFORM_COMMISSION_RATE)

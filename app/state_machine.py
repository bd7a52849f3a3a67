from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from app.errors import ErrorKind, Failure
from app.schemas import BookingResponse, BookingStatus

VALID_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}
    ),
    BookingStatus.IN_PROGRESS: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.DISPUTED}
    ),
    BookingStatus.COMPLETED: frozenset({BookingStatus.DISPUTED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.DISPUTED: frozenset(),
}

# Timestamp stamped when a booking enters the status
_STAMPED_FIELD: dict[BookingStatus, str] = {
    BookingStatus.IN_PROGRESS: "started_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
}


def allowed_targets(current: BookingStatus) -> frozenset[BookingStatus]:
    return VALID_TRANSITIONS[current]


def is_party(booking: BookingResponse, actor_id: UUID) -> bool:
    return actor_id == booking.customer_id or (
        booking.provider_id is not None and actor_id == booking.provider_id
    )


def request_transition(
    booking: BookingResponse,
    requested: BookingStatus,
    actor_id: UUID,
    reason: str | None = None,
    now: datetime | None = None,
) -> BookingResponse | Failure:
    """
    Validate and apply a status change to a booking snapshot.

    Returns the updated copy, or a Failure. The input booking is never
    modified, so a rejected request leaves it exactly as it was.
    """
    if not is_party(booking, actor_id):
        return Failure(
            ErrorKind.UNAUTHORIZED,
            "Only the booking's customer or provider can change its status",
        )

    allowed = allowed_targets(booking.status)
    if requested not in allowed:
        return Failure(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot transition from '{booking.status}' to '{requested}'. "
            f"Allowed: {sorted(s.value for s in allowed)}",
        )

    update: dict[str, object] = {"status": requested}
    field = _STAMPED_FIELD.get(requested)
    if field is not None:
        if getattr(booking, field) is not None:
            # set-once timestamps; unreachable with the current table
            return Failure(
                ErrorKind.INVALID_TRANSITION,
                f"Booking already has {field} set",
            )
        update[field] = now or datetime.now(timezone.utc)

    if requested == BookingStatus.CANCELLED:
        if not reason or not reason.strip():
            return Failure(
                ErrorKind.VALIDATION_FAILED,
                "A cancellation reason is required",
            )
        update["cancellation_reason"] = reason.strip()

    return booking.model_copy(update=update)


RESCHEDULABLE: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)

# No moves this close to the currently scheduled visit
RESCHEDULE_NOTICE = timedelta(hours=2)


def request_reschedule(
    booking: BookingResponse,
    new_scheduled_at: datetime,
    actor_id: UUID,
    now: datetime | None = None,
) -> BookingResponse | Failure:
    """
    Validate and apply a new visit time. The status is left as it is.

    Like request_transition, returns an updated copy or a Failure and never
    touches the input booking.
    """
    now = now or datetime.now(timezone.utc)

    if not is_party(booking, actor_id):
        return Failure(
            ErrorKind.UNAUTHORIZED,
            "Only the booking's customer or provider can reschedule it",
        )
    if booking.status not in RESCHEDULABLE:
        return Failure(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot reschedule a booking with status '{booking.status}'. "
            f"Allowed: {sorted(s.value for s in RESCHEDULABLE)}",
        )
    if new_scheduled_at <= now:
        return Failure(
            ErrorKind.VALIDATION_FAILED, "New scheduled time must be in the future"
        )
    if new_scheduled_at == booking.scheduled_at:
        return Failure(
            ErrorKind.VALIDATION_FAILED,
            "New scheduled time is the same as the current one",
        )
    if booking.scheduled_at - now < RESCHEDULE_NOTICE:
        return Failure(
            ErrorKind.VALIDATION_FAILED,
            "Cannot reschedule less than 2 hours before the scheduled time",
        )

    return booking.model_copy(update={"scheduled_at": new_scheduled_at})

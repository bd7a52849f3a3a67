from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from fastapi import HTTPException, status


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"  # actor is not a party to the booking
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"  # concurrent write; re-read and retry
    VALIDATION_FAILED = "validation_failed"
    CONFIGURATION_ERROR = "configuration_error"


class ConfigurationError(RuntimeError):
    """Unsupported region or missing rate configuration. Never defaulted."""


@dataclass(frozen=True)
class Failure:
    """
    Business-rule violation returned (not raised) by the state machine and
    the booking service. `reason` carries the promo rejection code when the
    failure comes from promo-code validation.
    """

    kind: ErrorKind
    detail: str
    reason: str | None = None


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFIGURATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_exception(failure: Failure) -> HTTPException:
    if failure.kind is ErrorKind.CONFIGURATION_ERROR:
        # internal detail stays in the logs
        return HTTPException(
            status_code=_HTTP_STATUS[failure.kind],
            detail="The request could not be processed",
        )
    if failure.kind is ErrorKind.VALIDATION_FAILED:
        return HTTPException(
            status_code=_HTTP_STATUS[failure.kind],
            detail={
                "kind": failure.kind.value,
                "reason": failure.reason,
                "message": failure.detail,
            },
        )
    return HTTPException(status_code=_HTTP_STATUS[failure.kind], detail=failure.detail)

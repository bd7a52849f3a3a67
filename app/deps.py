from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status
from pydantic import ValidationError

from app import settings
from app.scopes import BOOKING_SCOPE_DESCRIPTIONS, BookingScope
from app.schemas import AddressSnapshot, ServiceSnapshot
from app.services import BookingService, booking_service


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return (
            BookingScope.ADMIN in self.scopes
            or BookingScope.ADMIN_READ in self.scopes
        )


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the headers injected by the gateway after forwardAuth validation.
    The JWT has already been verified — we just trust these headers.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(id=user_id, username=unquote(x_username), scopes=scopes)


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("bookings:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Missing required scopes: "
                + ", ".join(
                    f"{s} ({BOOKING_SCOPE_DESCRIPTIONS[s]})"
                    if s in BOOKING_SCOPE_DESCRIPTIONS
                    else s
                    for s in missing
                ),
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_booking = require_scopes(BookingScope.WRITE)
can_manage_booking = require_scopes(BookingScope.MANAGE)
can_admin_promo_codes = require_scopes(BookingScope.ADMIN_PROMO_CODES)
can_view_analytics = require_scopes(BookingScope.ADMIN_ANALYTICS)


async def can_read_or_manage_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Passes if the user can read bookings (customer/admin) OR manage bookings (provider).
    - bookings:read   → customer sees own bookings
    - bookings:manage → provider sees bookings assigned to them
    - admin:bookings* → admin sees all
    """
    has_read = BookingScope.READ in current_user.scopes
    has_manage = BookingScope.MANAGE in current_user.scopes
    if not (has_read or has_manage or current_user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{BookingScope.READ}' (customers), "
                f"'{BookingScope.MANAGE}' (providers), "
                f"or '{BookingScope.ADMIN_READ}' (admin)."
            ),
        )
    return current_user


def get_booking_service() -> BookingService:
    return booking_service


# ---------------------------------------------------------------------------
# CatalogClient — thin async wrapper around catalog-ms internal API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_catalog_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.catalog_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class CatalogClient:
    """
    Thin async wrapper around the catalog-ms internal API (services and
    customer addresses). Forwards gateway-injected user headers so catalog-ms
    auth deps work normally.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_catalog_http_client()

    def _headers(self, user: CurrentUser) -> dict[str, str]:
        return {
            "X-User-Id": str(user.id),
            "X-Username": quote(user.username),
            "X-User-Scopes": " ".join(user.scopes),
        }

    async def _get(self, path: str, user: CurrentUser) -> dict | None:
        resp = await self._client.get(path, headers=self._headers(user))
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"catalog-ms returned {resp.status_code}",
            )
        return resp.json()

    async def get_service(
        self, service_id: UUID, user: CurrentUser
    ) -> ServiceSnapshot | None:
        """Returns the bookable service or None if 404. Raises HTTPException on other errors."""
        data = await self._get(f"/services/{service_id}", user)
        if data is None:
            return None
        try:
            return ServiceSnapshot.model_validate(data)
        except ValidationError:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="catalog-ms returned a malformed service",
            ) from None

    async def get_address(
        self, address_id: UUID, user: CurrentUser
    ) -> AddressSnapshot | None:
        data = await self._get(f"/addresses/{address_id}", user)
        if data is None:
            return None
        try:
            return AddressSnapshot.model_validate(data)
        except ValidationError:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="catalog-ms returned a malformed address",
            ) from None


_catalog_client = CatalogClient()


def get_catalog_client() -> CatalogClient:
    return _catalog_client

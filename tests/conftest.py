"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files — pytest discovers this by convention.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.deps import (
    can_admin_promo_codes,
    can_manage_booking,
    can_read_or_manage_booking,
    can_view_analytics,
    can_write_booking,
    get_booking_service,
    get_catalog_client,
    get_current_user,
)
from app.routers import analytics, booking, promo_codes
from app.services import BookingService

from .factories import make_admin, make_customer, make_provider
from .fakes import InMemoryBookingRepository

COMMISSION_RATE = Decimal("0.15")

# ---------------------------------------------------------------------------
# Default no-op client mocks — prevent real HTTP calls in tests
# ---------------------------------------------------------------------------


def _noop_catalog_client():
    mock = MagicMock()
    mock.get_service = AsyncMock(return_value=None)
    mock.get_address = AsyncMock(return_value=None)
    return mock


# ---------------------------------------------------------------------------
# App builder — used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user, catalog_client=None, service=None) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally.

    Pass `service` to share a BookingService (and its in-memory repository)
    with the test. Defaults to one backed by an empty repository.
    """
    app = FastAPI()
    app.include_router(booking.router)
    app.include_router(promo_codes.router)
    app.include_router(analytics.router)

    async def _user():
        return current_user

    for dep in (
        can_read_or_manage_booking,
        can_write_booking,
        can_manage_booking,
        can_admin_promo_codes,
        can_view_analytics,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    cc = catalog_client if catalog_client is not None else _noop_catalog_client()
    svc = (
        service
        if service is not None
        else BookingService(InMemoryBookingRepository(), COMMISSION_RATE)
    )
    app.dependency_overrides[get_catalog_client] = lambda: cc
    app.dependency_overrides[get_booking_service] = lambda: svc

    return app


# ---------------------------------------------------------------------------
# Redis is never reachable in tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def no_redis():
    with (
        patch("app.routers.booking.invalidate_summary_cache", new=AsyncMock()) as inv,
        patch(
            "app.routers.analytics.get_summary_cache", new=AsyncMock(return_value=None)
        ) as get,
        patch("app.routers.analytics.set_summary_cache", new=AsyncMock()) as set_,
    ):
        yield MagicMock(invalidate=inv, get=get, set=set_)


# ---------------------------------------------------------------------------
# Repository / service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def repo():
    return InMemoryBookingRepository()


@pytest.fixture()
def service(repo):
    return BookingService(repo, COMMISSION_RATE)


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_client(service):
    return TestClient(build_app(make_customer(), service=service))


@pytest.fixture()
def provider_client(service):
    return TestClient(build_app(make_provider(), service=service))


@pytest.fixture()
def admin_client(service):
    return TestClient(build_app(make_admin(), service=service))


@pytest.fixture()
def anon_app(service):
    """
    App with only the booking service overridden.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    app.include_router(booking.router)
    app.include_router(promo_codes.router)
    app.include_router(analytics.router)
    app.dependency_overrides[get_booking_service] = lambda: service
    return app


@pytest.fixture()
def client_factory(service):
    def _make(current_user, catalog_client=None) -> TestClient:
        return TestClient(
            build_app(current_user, catalog_client=catalog_client, service=service),
            raise_server_exceptions=True,
        )

    return _make

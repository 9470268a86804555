"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files: pytest discovers this by convention.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise

from app.crud import BookingCRUD
from app.deps import (
    can_cancel_booking,
    can_confirm_booking,
    can_manage_booking,
    can_read_or_manage_booking,
    can_view_earnings,
    can_write_booking,
    get_current_user,
    get_models_client,
)
from app.engine import BookingEngine
from app.routers.booking import router

from .factories import FakeClock, make_customer, make_model

# ---------------------------------------------------------------------------
# Default no-op client mocks: prevent real HTTP calls in tests
# ---------------------------------------------------------------------------


def _noop_models_client():
    mock = MagicMock()
    mock.get_model = AsyncMock(return_value=None)
    return mock


# ---------------------------------------------------------------------------
# App builder: used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user, models_client=None) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally.

    Pass `models_client` to inject a custom model-directory mock.
    Defaults to a no-op mock that finds no model, avoiding real HTTP calls.
    """
    app = FastAPI()
    app.include_router(router)

    async def _user():
        return current_user

    for dep in (
        can_read_or_manage_booking,
        can_write_booking,
        can_cancel_booking,
        can_confirm_booking,
        can_manage_booking,
        can_view_earnings,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    mc = models_client if models_client is not None else _noop_models_client()
    app.dependency_overrides[get_models_client] = lambda: mc

    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_client():
    return TestClient(build_app(make_customer()), raise_server_exceptions=True)


@pytest.fixture()
def model_client():
    return TestClient(build_app(make_model()), raise_server_exceptions=True)


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    app.include_router(router)
    return app


@pytest.fixture()
def client_factory():
    def _make(current_user, models_client=None) -> TestClient:
        return TestClient(
            build_app(current_user, models_client=models_client),
            raise_server_exceptions=True,
        )

    return _make


# ---------------------------------------------------------------------------
# Database-backed engine fixtures
# ---------------------------------------------------------------------------


def run_in_db(scenario: Callable[[], Awaitable]):
    """
    Run an async scenario against a fresh in-memory SQLite database.
    Each call gets its own event loop and an empty schema.
    """

    async def _main():
        await Tortoise.init(
            db_url="sqlite://:memory:",
            modules={"models": ["app.models"]},
            use_tz=True,
        )
        await Tortoise.generate_schemas()
        try:
            return await scenario()
        finally:
            await Tortoise.close_connections()

    return asyncio.run(_main())


@pytest.fixture()
def in_db():
    return run_in_db


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return AsyncMock(return_value=None)


@pytest.fixture()
def engine(clock, notifier) -> BookingEngine:
    return BookingEngine(crud=BookingCRUD(), notifier=notifier, clock=clock)

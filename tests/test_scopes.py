"""Tests for BookingScope values and descriptions."""

from fastapi import FastAPI

from app.routers.booking import router
from app.scopes import BOOKING_SCOPE_DESCRIPTIONS, BookingScope


class TestBookingScopeValues:
    def test_customer_read_scope(self):
        assert BookingScope.READ == "bookings:read"

    def test_customer_write_scope(self):
        assert BookingScope.WRITE == "bookings:write"

    def test_customer_cancel_scope(self):
        assert BookingScope.CANCEL == "bookings:cancel"

    def test_confirm_scope(self):
        assert BookingScope.CONFIRM == "bookings:confirm"

    def test_model_manage_scope(self):
        assert BookingScope.MANAGE == "bookings:manage"

    def test_model_earnings_scope(self):
        assert BookingScope.EARNINGS == "bookings:earnings"

    def test_all_scopes_are_strings(self):
        for scope in BookingScope:
            assert isinstance(scope, str)


class TestBookingScopeDescriptions:
    def test_every_scope_has_a_description(self):
        for scope in BookingScope:
            assert scope in BOOKING_SCOPE_DESCRIPTIONS

    def test_all_description_values_are_non_empty_strings(self):
        for key, value in BOOKING_SCOPE_DESCRIPTIONS.items():
            assert isinstance(key, str)
            assert isinstance(value, str)
            assert len(value) > 0

    def test_descriptions_published_in_openapi(self):
        app = FastAPI()
        app.include_router(router)
        schemes = app.openapi()["components"]["securitySchemes"]
        flow = schemes["OAuth2PasswordBearer"]["flows"]["password"]
        assert flow["scopes"] == {str(k): v for k, v in BOOKING_SCOPE_DESCRIPTIONS.items()}
        assert flow["tokenUrl"].endswith("/auth/token")

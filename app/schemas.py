from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import BookingStatus

__all__ = [
    "BookingCreate",
    "BookingDecision",
    "BookingDecisionUpdate",
    "BookingFilters",
    "BookingResponse",
    "BookingStatus",
    "CancellationReceipt",
    "EarningsResponse",
    "ModelBookingView",
    "PriceQuote",
    "SettlementResponse",
    "UserBookingView",
]


class BookingDecision(StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BookingCreate(BaseModel):
    model_id: UUID
    date: str = Field(min_length=1, max_length=32)
    time: str = Field(min_length=1, max_length=32)
    user_location: str = Field(min_length=1, max_length=500)
    live_location_link: str = Field(min_length=1, max_length=1000)
    caller_line: str = Field(min_length=1, max_length=64)
    total_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)

    # pydantic reserves the "model_" prefix
    model_config = ConfigDict(protected_namespaces=())

    @field_validator(
        "date", "time", "user_location", "live_location_link", "caller_line"
    )
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class BookingDecisionUpdate(BaseModel):
    decision: BookingDecision


class BookingResponse(BaseModel):
    id: UUID
    model_id: UUID
    user_id: UUID
    model_name: str | None
    user_name: str | None
    model_price: Decimal | None
    date: str
    time: str
    status: BookingStatus
    total_price: Decimal
    is_paid: bool
    user_confirmed: bool
    model_confirmed: bool
    user_location: str
    live_location_link: str
    caller_line: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class ModelBookingView(BaseModel):
    """What a model sees in their booking list."""

    id: UUID
    user_id: UUID
    user_name: str | None
    date: str
    time: str
    status: BookingStatus
    total_price: Decimal
    is_paid: bool
    user_confirmed: bool
    model_confirmed: bool
    user_location: str
    live_location_link: str
    caller_line: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class UserBookingView(BaseModel):
    """What a customer sees in their booking history."""

    id: UUID
    model_id: UUID
    model_name: str | None
    date: str
    time: str
    status: BookingStatus
    price: Decimal | None = Field(validation_alias="model_price")
    total_price: Decimal
    is_paid: bool
    user_confirmed: bool
    model_confirmed: bool
    user_location: str
    live_location_link: str
    caller_line: str
    created_at: datetime

    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, protected_namespaces=()
    )


class SettlementResponse(BaseModel):
    booking_id: UUID
    model_id: UUID
    total_price: Decimal
    net_amount: Decimal
    commission_amount: Decimal
    settled_at: datetime

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class CancellationReceipt(BaseModel):
    booking_id: UUID
    status: BookingStatus
    total_price: Decimal
    refund_amount: Decimal
    commission_amount: Decimal


class PriceQuote(BaseModel):
    model_id: UUID
    net_price: Decimal
    gross_price: Decimal
    commission_rate: Decimal

    model_config = ConfigDict(protected_namespaces=())


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class EarningsResponse(BaseModel):
    model_id: UUID
    earnings: Decimal

    model_config = ConfigDict(protected_namespaces=())

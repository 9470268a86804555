from enum import StrEnum

from tortoise import fields
from tortoise.models import Model


class BookingStatus(StrEnum):
    PENDING = "pending"  # just created and paid, awaiting the model's decision
    ACCEPTED = "accepted"  # model accepted, waiting for both confirmations
    REJECTED = "rejected"  # model refused
    USER_CANCELLED = "user_cancelled"  # cancelled by the customer
    CANCELLED_AUTO = "cancelled_auto"  # expired while still pending
    COMPLETED_PAYMENT_RELEASED = "completed_payment_released"  # settled


class Booking(Model):
    id = fields.UUIDField(primary_key=True)

    model_id = fields.UUIDField(db_index=True)
    user_id = fields.UUIDField(db_index=True)  # the customer who made the booking

    # display snapshots copied at creation time
    model_name = fields.CharField(max_length=150, null=True)
    user_name = fields.CharField(max_length=150, null=True)
    model_price = fields.DecimalField(max_digits=10, decimal_places=2, null=True)

    date = fields.CharField(max_length=32)
    time = fields.CharField(max_length=32)

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)

    total_price = fields.DecimalField(max_digits=10, decimal_places=2)  # gross
    is_paid = fields.BooleanField(default=False)
    user_confirmed = fields.BooleanField(default=False)
    model_confirmed = fields.BooleanField(default=False)
    settled_at = fields.DatetimeField(null=True)

    user_location = fields.TextField()
    live_location_link = fields.TextField()
    caller_line = fields.CharField(max_length=64)

    created_at = fields.DatetimeField(db_index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class ModelAccount(Model):
    model_id = fields.UUIDField(primary_key=True)
    earnings = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "model_accounts"


class Settlement(Model):
    id = fields.IntField(primary_key=True)
    booking_id = fields.UUIDField(unique=True)
    model_id = fields.UUIDField(db_index=True)
    total_price = fields.DecimalField(max_digits=10, decimal_places=2)
    net_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    commission_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    settled_at = fields.DatetimeField()

    class Meta:  # type: ignore
        table = "settlements"

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from app.models import Booking, BookingStatus, ModelAccount, Settlement
from app.schemas import BookingFilters, BookingResponse


def _to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware, handling both aware and naive inputs."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class BookingCRUD:
    """
    Storage for bookings, model earnings and settlements.

    Read helpers return BookingResponse snapshots. The ``lock_*`` and write
    helpers work on ORM instances and are meant to be called inside an
    ``in_transaction()`` block owned by the lifecycle engine.
    """

    async def create_booking(
        self,
        model_id: UUID,
        user_id: UUID,
        model_name: str | None,
        user_name: str | None,
        model_price: Decimal | None,
        date: str,
        time: str,
        total_price: Decimal,
        user_location: str,
        live_location_link: str,
        caller_line: str,
        created_at: datetime,
    ) -> BookingResponse:
        inst = await Booking.create(
            model_id=model_id,
            user_id=user_id,
            model_name=model_name,
            user_name=user_name,
            model_price=model_price,
            date=date,
            time=time,
            status=BookingStatus.PENDING,
            total_price=total_price,
            is_paid=True,
            user_confirmed=False,
            model_confirmed=False,
            user_location=user_location,
            live_location_link=live_location_link,
            caller_line=caller_line,
            created_at=_to_utc(created_at),
        )
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def get_booking(
        self,
        booking_id: UUID,
        user_id: UUID | None = None,
        model_id: UUID | None = None,
    ) -> BookingResponse | None:
        if user_id is not None:
            inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        elif model_id is not None:
            inst = await Booking.get_or_none(id=booking_id, model_id=model_id)
        else:
            inst = await Booking.get_or_none(id=booking_id)

        if not inst:
            return None
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_bookings(
        self,
        filters: BookingFilters,
        user_id: UUID | None = None,
        model_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if model_id is not None:
            qs = qs.filter(model_id=model_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size)

        bookings = await qs
        return [
            BookingResponse.model_validate(b, from_attributes=True) for b in bookings
        ]

    async def list_stale_pending_ids(self, cutoff: datetime) -> list[UUID]:
        """Ids of bookings still pending that were created at or before cutoff."""
        rows = await Booking.filter(
            status=BookingStatus.PENDING,
            created_at__lte=_to_utc(cutoff),
        ).values_list("id", flat=True)
        return [r if isinstance(r, UUID) else UUID(str(r)) for r in rows]

    async def lock_booking(self, booking_id: UUID) -> Booking | None:
        """SELECT ... FOR UPDATE the booking row (no-op lock on SQLite)."""
        return await Booking.filter(id=booking_id).select_for_update().first()

    async def save(self, inst: Booking, *update_fields: str) -> None:
        await inst.save(update_fields=[*update_fields, "updated_at"])

    async def mark_settled(self, booking_id: UUID, settled_at: datetime) -> bool:
        """
        Compare-and-set the settlement marker.
        Returns True only for the single caller that flips it.
        """
        updated = await Booking.filter(
            id=booking_id,
            status=BookingStatus.ACCEPTED,
            settled_at__isnull=True,
            is_paid=True,
            user_confirmed=True,
            model_confirmed=True,
        ).update(
            settled_at=_to_utc(settled_at),
            status=BookingStatus.COMPLETED_PAYMENT_RELEASED,
            updated_at=_to_utc(settled_at),
        )
        return updated == 1

    async def credit_earnings(self, model_id: UUID, amount: Decimal) -> Decimal:
        account = (
            await ModelAccount.filter(model_id=model_id).select_for_update().first()
        )
        if account is None:
            account = await ModelAccount.create(
                model_id=model_id, earnings=Decimal("0.00")
            )
        account.earnings = Decimal(account.earnings) + amount
        await account.save(update_fields=["earnings", "updated_at"])
        return account.earnings

    async def get_earnings(self, model_id: UUID) -> Decimal:
        account = await ModelAccount.get_or_none(model_id=model_id)
        if account is None:
            return Decimal("0.00")
        return Decimal(account.earnings)

    async def record_settlement(
        self,
        booking_id: UUID,
        model_id: UUID,
        total_price: Decimal,
        net_amount: Decimal,
        commission_amount: Decimal,
        settled_at: datetime,
    ) -> Settlement:
        return await Settlement.create(
            booking_id=booking_id,
            model_id=model_id,
            total_price=total_price,
            net_amount=net_amount,
            commission_amount=commission_amount,
            settled_at=_to_utc(settled_at),
        )

    async def get_settlement(self, booking_id: UUID) -> Settlement | None:
        return await Settlement.get_or_none(booking_id=booking_id)


booking_crud = BookingCRUD()

"""
Booking lifecycle and settlement.

    pending  → accepted | rejected | user_cancelled | cancelled_auto
    accepted → completed_payment_released | user_cancelled

Every mutation runs under a per-booking asyncio lock and inside one database
transaction, then notifies the view-invalidation hook. Settlement is a
compare-and-set on ``Booking.settled_at`` so earnings are credited once.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from tortoise.transactions import in_transaction

from app import money, settings
from app.cache import invalidate_booking_views
from app.crud import BookingCRUD, _to_utc, booking_crud
from app.errors import (
    InvalidStateError,
    NotFoundError,
    NotReadyError,
    UnauthorizedError,
    ValidationError,
)
from app.models import Booking, BookingStatus
from app.schemas import (
    BookingCreate,
    BookingDecision,
    BookingFilters,
    BookingResponse,
    CancellationReceipt,
    PriceQuote,
    SettlementResponse,
)

Notifier = Callable[[UUID, UUID], Awaitable[None]]

_VALID_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.ACCEPTED,
        BookingStatus.REJECTED,
        BookingStatus.USER_CANCELLED,
        BookingStatus.CANCELLED_AUTO,
    },
    BookingStatus.ACCEPTED: {
        BookingStatus.COMPLETED_PAYMENT_RELEASED,
        BookingStatus.USER_CANCELLED,
    },
    BookingStatus.REJECTED: set(),
    BookingStatus.USER_CANCELLED: set(),
    BookingStatus.CANCELLED_AUTO: set(),
    BookingStatus.COMPLETED_PAYMENT_RELEASED: set(),
}

_REQUIRED_TEXT_FIELDS = (
    "date",
    "time",
    "user_location",
    "live_location_link",
    "caller_line",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(old: BookingStatus, new: BookingStatus) -> bool:
    return new in _VALID_TRANSITIONS.get(old, set())


class BookingLocks:
    """
    asyncio.Lock per booking id.

    An entry lives only while some caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def __call__(self, booking_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.get(booking_id)
        if lock is None:
            lock = self._locks[booking_id] = asyncio.Lock()
        self._users[booking_id] = self._users.get(booking_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[booking_id] -= 1
            if not self._users[booking_id]:
                del self._users[booking_id]
                del self._locks[booking_id]


class BookingEngine:
    def __init__(
        self,
        crud: BookingCRUD = booking_crud,
        notifier: Notifier = invalidate_booking_views,
        clock: Callable[[], datetime] = _utcnow,
        commission_rate: Decimal = settings.COMMISSION_RATE,
        expiry_threshold: timedelta = timedelta(
            minutes=settings.BOOKING_EXPIRY_MINUTES
        ),
    ) -> None:
        self.crud = crud
        self.notifier = notifier
        self.clock = clock
        self.commission_rate = commission_rate
        self.expiry_threshold = expiry_threshold
        self._locks = BookingLocks()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _notify(self, booking: Booking | BookingResponse) -> None:
        await self.notifier(booking.model_id, booking.user_id)

    async def _locked(self, booking_id: UUID) -> Booking:
        inst = await self.crud.lock_booking(booking_id)
        if inst is None:
            raise NotFoundError("Booking not found")
        return inst

    def _transition(self, inst: Booking, new_status: BookingStatus) -> None:
        if not can_transition(inst.status, new_status):
            allowed = sorted(s.value for s in _VALID_TRANSITIONS.get(inst.status, set()))
            raise InvalidStateError(
                f"Cannot transition from '{inst.status}' to '{new_status}'. "
                f"Allowed: {allowed}"
            )
        inst.status = new_status  # type: ignore

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def quote(self, model_id: UUID, net_price: Decimal | None) -> PriceQuote:
        if net_price is None:
            raise ValidationError("Model has no price")
        net_price = money.parse_amount(net_price, "Model price")
        return PriceQuote(
            model_id=model_id,
            net_price=net_price,
            gross_price=money.gross(net_price, self.commission_rate),
            commission_rate=self.commission_rate,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_booking(
        self,
        payload: BookingCreate,
        user_id: UUID,
        user_name: str | None,
        model: dict[str, Any] | None,
    ) -> BookingResponse:
        """
        Insert a paid, pending booking.

        ``model`` is the model-directory record for ``payload.model_id``.
        Payment is settled by the gateway before this is called.
        """
        if model is None:
            raise NotFoundError("Model not found")

        missing = [
            name
            for name in _REQUIRED_TEXT_FIELDS
            if not str(getattr(payload, name) or "").strip()
        ]
        if missing:
            raise ValidationError(
                f"All booking details are required (missing: {', '.join(missing)})"
            )
        if payload.total_price is None or payload.total_price <= 0:
            raise ValidationError("total_price must be greater than zero")

        model_price = model.get("price_per_hour")
        booking = await self.crud.create_booking(
            model_id=payload.model_id,
            user_id=user_id,
            model_name=model.get("name"),
            user_name=user_name,
            model_price=(
                money.parse_amount(model_price, "Model price")
                if model_price is not None
                else None
            ),
            date=payload.date,
            time=payload.time,
            total_price=payload.total_price,
            user_location=payload.user_location,
            live_location_link=payload.live_location_link,
            caller_line=payload.caller_line,
            created_at=self.clock(),
        )
        logger.info(
            "Booking {} created: model={} user={} total={}",
            booking.id,
            booking.model_id,
            booking.user_id,
            booking.total_price,
        )
        await self._notify(booking)
        return booking

    # ------------------------------------------------------------------
    # Model decision
    # ------------------------------------------------------------------

    async def decide(
        self,
        booking_id: UUID,
        decision: BookingDecision,
        acting_model_id: UUID,
    ) -> BookingResponse:
        try:
            new_status = BookingStatus(BookingDecision(decision).value)
        except ValueError:
            raise ValidationError(
                f"Decision must be one of {[d.value for d in BookingDecision]}"
            ) from None

        async with self._locks(booking_id):
            async with in_transaction():
                inst = await self._locked(booking_id)
                if inst.model_id != acting_model_id:
                    raise UnauthorizedError("Unauthorized action.")
                if inst.status != BookingStatus.PENDING:
                    raise InvalidStateError(
                        f"Booking is '{inst.status}', only pending bookings "
                        "can be accepted or rejected."
                    )
                self._transition(inst, new_status)
                await self.crud.save(inst, "status")

        logger.info("Booking {} {} by model {}", booking_id, new_status, acting_model_id)
        await self._notify(inst)
        return BookingResponse.model_validate(inst, from_attributes=True)

    # ------------------------------------------------------------------
    # Dual confirmation
    # ------------------------------------------------------------------

    async def confirm_by_user(
        self, booking_id: UUID, acting_user_id: UUID
    ) -> BookingResponse:
        return await self._confirm(booking_id, acting_user_id, side="user")

    async def confirm_by_model(
        self, booking_id: UUID, acting_model_id: UUID
    ) -> BookingResponse:
        return await self._confirm(booking_id, acting_model_id, side="model")

    async def _confirm(
        self, booking_id: UUID, acting_id: UUID, side: str
    ) -> BookingResponse:
        owner_field = f"{side}_id"
        flag_field = f"{side}_confirmed"
        other_flag = "model_confirmed" if side == "user" else "user_confirmed"

        async with self._locks(booking_id):
            async with in_transaction():
                inst = await self._locked(booking_id)
                if getattr(inst, owner_field) != acting_id:
                    raise UnauthorizedError("Unauthorized action.")
                if inst.status != BookingStatus.ACCEPTED or not inst.is_paid:
                    raise InvalidStateError(
                        "Booking is not in a state to be confirmed or not paid."
                    )
                setattr(inst, flag_field, True)
                await self.crud.save(inst, flag_field)
                logger.info(
                    "Booking {} confirmed by {} {}", booking_id, side, acting_id
                )

                # the second confirmation releases the payment
                if getattr(inst, other_flag):
                    await self._release(inst)

        await self._notify(inst)
        booking = await self.crud.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def settle_payment(self, booking_id: UUID) -> SettlementResponse:
        """
        Release a paid, doubly-confirmed booking's money to the model.
        Calling it again after a successful settlement returns the existing
        settlement and credits nothing.
        """
        async with self._locks(booking_id):
            async with in_transaction():
                inst = await self._locked(booking_id)
                settlement = await self._release(inst)
        await self._notify(inst)
        return settlement

    async def _release(self, inst: Booking) -> SettlementResponse:
        """Settle a locked booking. Must run inside the caller's transaction."""
        if not (inst.is_paid and inst.user_confirmed and inst.model_confirmed):
            raise NotReadyError("Booking not ready for payment release.")

        now = self.clock()
        if not await self.crud.mark_settled(inst.id, now):
            existing = await self.crud.get_settlement(inst.id)
            if existing is None:
                raise InvalidStateError(
                    f"Booking is '{inst.status}' and cannot be settled."
                )
            logger.warning("Booking {} already settled, skipping", inst.id)
            return SettlementResponse.model_validate(existing, from_attributes=True)

        inst.status = BookingStatus.COMPLETED_PAYMENT_RELEASED  # type: ignore
        inst.settled_at = now

        total = Decimal(inst.total_price)
        net_amount, commission_amount = money.split(total, self.commission_rate)
        earnings = await self.crud.credit_earnings(inst.model_id, net_amount)
        settlement = await self.crud.record_settlement(
            booking_id=inst.id,
            model_id=inst.model_id,
            total_price=total,
            net_amount=net_amount,
            commission_amount=commission_amount,
            settled_at=now,
        )

        logger.info(
            "Payment released for booking {}: total={} commission={} net={} "
            "(model {} earnings now {})",
            inst.id,
            total,
            commission_amount,
            net_amount,
            inst.model_id,
            earnings,
        )
        return SettlementResponse.model_validate(settlement, from_attributes=True)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_by_user(
        self, booking_id: UUID, acting_user_id: UUID
    ) -> CancellationReceipt:
        """
        Cancel a pending or accepted booking on the customer's behalf.

        A paid booking reports the net part as refund and the commission as
        retained; an unpaid one reports the full total as refund, which is
        informational only since nothing was collected. Earnings are not
        touched either way.
        """
        async with self._locks(booking_id):
            async with in_transaction():
                inst = await self._locked(booking_id)
                if inst.user_id != acting_user_id:
                    raise UnauthorizedError("Unauthorized action.")
                if not can_transition(inst.status, BookingStatus.USER_CANCELLED):
                    raise InvalidStateError(
                        "Booking cannot be cancelled at this stage."
                    )

                total = Decimal(inst.total_price)
                if inst.is_paid:
                    refund, commission_amount = money.split(
                        total, self.commission_rate
                    )
                else:
                    refund, commission_amount = total, Decimal("0.00")

                self._transition(inst, BookingStatus.USER_CANCELLED)
                await self.crud.save(inst, "status")

        logger.info(
            "Booking {} cancelled by user {}: refund={} commission={}",
            booking_id,
            acting_user_id,
            refund,
            commission_amount,
        )
        await self._notify(inst)
        return CancellationReceipt(
            booking_id=booking_id,
            status=BookingStatus.USER_CANCELLED,
            total_price=total,
            refund_amount=refund,
            commission_amount=commission_amount,
        )

    # ------------------------------------------------------------------
    # Auto-expiry
    # ------------------------------------------------------------------

    async def expire_stale(self, now: datetime | None = None) -> list[UUID]:
        """
        Move pending bookings older than the expiry threshold to
        cancelled_auto. Failures on one booking do not stop the sweep.
        """
        now = _to_utc(now or self.clock())
        cutoff = now - self.expiry_threshold
        expired: list[UUID] = []

        for booking_id in await self.crud.list_stale_pending_ids(cutoff):
            try:
                if await self._expire_one(booking_id, cutoff):
                    expired.append(booking_id)
            except Exception:
                logger.exception("Auto-expiry failed for booking {}", booking_id)

        if expired:
            logger.info("Auto-expired {} pending booking(s)", len(expired))
        return expired

    async def _expire_one(self, booking_id: UUID, cutoff: datetime) -> bool:
        async with self._locks(booking_id):
            async with in_transaction():
                inst = await self._locked(booking_id)
                # accepted or cancelled since the scan
                if inst.status != BookingStatus.PENDING:
                    return False
                if _to_utc(inst.created_at) > cutoff:
                    return False
                self._transition(inst, BookingStatus.CANCELLED_AUTO)
                await self.crud.save(inst, "status")

        logger.info("Booking {} auto-cancelled after expiry", booking_id)
        await self._notify(inst)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(
        self, booking_id: UUID, acting_id: UUID, role: str
    ) -> BookingResponse:
        if role == "model":
            booking = await self.crud.get_booking(booking_id, model_id=acting_id)
        else:
            booking = await self.crud.get_booking(booking_id, user_id=acting_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def list_for_model(
        self, model_id: UUID, filters: BookingFilters | None = None
    ) -> list[BookingResponse]:
        return await self.crud.list_bookings(
            filters=filters or BookingFilters(), model_id=model_id
        )

    async def list_for_user(
        self, user_id: UUID, filters: BookingFilters | None = None
    ) -> list[BookingResponse]:
        return await self.crud.list_bookings(
            filters=filters or BookingFilters(), user_id=user_id
        )

    async def get_earnings(self, model_id: UUID) -> Decimal:
        return await self.crud.get_earnings(model_id)


booking_engine = BookingEngine()

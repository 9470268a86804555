"""Tests for the background expiry sweep in app/expiry.py."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from app.expiry import ExpiryScheduler
from app.models import Booking, BookingStatus

from .factories import CUSTOMER_ID, booking_create, model_dict


def _engine_mock(**kwargs) -> MagicMock:
    engine = MagicMock()
    engine.expire_stale = AsyncMock(**kwargs)
    engine.expiry_threshold = "0:30:00"
    return engine


class TestTick:
    def test_tick_returns_expired_ids(self):
        booking_id = uuid4()
        scheduler = ExpiryScheduler(_engine_mock(return_value=[booking_id]))
        assert asyncio.run(scheduler.tick()) == [booking_id]

    def test_tick_swallows_sweep_failure(self):
        scheduler = ExpiryScheduler(_engine_mock(side_effect=RuntimeError("db down")))
        assert asyncio.run(scheduler.tick()) == []


class TestLifecycle:
    def test_start_runs_sweep_and_stop_ends_task(self):
        engine = _engine_mock(return_value=[])
        scheduler = ExpiryScheduler(engine, interval_seconds=0.01)

        async def scenario():
            scheduler.start()
            assert scheduler.running
            await asyncio.sleep(0.05)
            await scheduler.stop()
            assert not scheduler.running

        asyncio.run(scenario())
        assert engine.expire_stale.await_count >= 2

    def test_start_is_idempotent(self):
        scheduler = ExpiryScheduler(_engine_mock(return_value=[]), interval_seconds=10)

        async def scenario():
            scheduler.start()
            task = scheduler._task
            scheduler.start()
            assert scheduler._task is task
            await scheduler.stop()

        asyncio.run(scenario())

    def test_stop_without_start_is_noop(self):
        scheduler = ExpiryScheduler(_engine_mock(return_value=[]))
        asyncio.run(scheduler.stop())
        assert not scheduler.running


class TestMissedTicks:
    def test_next_tick_catches_bookings_that_expired_meanwhile(
        self, in_db, engine, clock
    ):
        """Expiry is decided on booking age, not on how many ticks ran."""
        scheduler = ExpiryScheduler(engine, interval_seconds=60)

        async def scenario():
            booking = await engine.create_booking(
                booking_create(), user_id=CUSTOMER_ID, user_name="u", model=model_dict()
            )
            clock.advance(minutes=10)
            assert await scheduler.tick() == []

            # process slept through many ticks
            clock.advance(hours=3)
            assert await scheduler.tick() == [booking.id]
            stored = await Booking.get(id=booking.id)
            assert stored.status == BookingStatus.CANCELLED_AUTO

        in_db(scenario)

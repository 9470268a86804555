import asyncio

from loguru import logger

from app import settings
from app.engine import BookingEngine


class ExpiryScheduler:
    """
    Background sweep that auto-cancels stale pending bookings.

    Expiry is decided on absolute booking age, so a tick missed while the
    process was busy or asleep is caught up by the next one.
    """

    def __init__(
        self,
        engine: BookingEngine,
        interval_seconds: float = settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> list:
        try:
            return await self.engine.expire_stale()
        except Exception:
            logger.exception("Booking expiry sweep failed: retrying next tick")
            return []

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_seconds
                )
            except asyncio.TimeoutError:
                continue

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="booking-expiry")
        logger.info(
            "Booking expiry sweep started (every {}s, threshold {})",
            self.interval_seconds,
            self.engine.expiry_threshold,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Booking expiry sweep stopped")

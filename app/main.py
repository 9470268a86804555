from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from app import settings
from app.engine import booking_engine
from app.expiry import ExpiryScheduler
from app.routers.booking import router

TORTOISE_ORM = {
    "connections": {"default": settings.db_url},
    "apps": {"models": {"models": ["app.models"], "default_connection": "default"}},
    "use_tz": True,
    "timezone": "UTC",
}

expiry_scheduler = ExpiryScheduler(booking_engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        config=TORTOISE_ORM,
        generate_schemas=settings.db_url.startswith("sqlite"),
    ):
        expiry_scheduler.start()
        logger.info("Bookings service started")
        try:
            yield
        finally:
            await expiry_scheduler.stop()


app = FastAPI(title="Bookings", lifespan=lifespan)
app.include_router(router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "expiry_sweep": expiry_scheduler.running}

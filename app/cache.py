import json
from uuid import UUID

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import WatchError

from app.settings import BOOKING_VIEWS_TTL, REDIS_URL

# Version counters outlive the cached lists so a reader that started before
# an invalidation still sees the bump when it tries to write back.
_VERSION_TTL = 24 * 60 * 60

_redis: Redis | None = None


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _model_view_key(model_id: UUID) -> str:
    return f"bookings:model:{model_id}"


def _user_view_key(user_id: UUID) -> str:
    return f"bookings:user:{user_id}"


def _view_key(role: str, owner_id: UUID) -> str:
    return _model_view_key(owner_id) if role == "model" else _user_view_key(owner_id)


def _version_key(view_key: str) -> str:
    return f"{view_key}:version"


async def get_bookings_cache(role: str, owner_id: UUID) -> list | None:
    try:
        data = await get_redis().get(_view_key(role, owner_id))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed: skipping bookings cache", exc_info=True)
        return None


async def get_views_version(role: str, owner_id: UUID) -> str | None:
    """
    Current invalidation counter of a view, read before loading it from the
    database. None means Redis is unavailable and the result must not be cached.
    """
    try:
        version = await get_redis().get(_version_key(_view_key(role, owner_id)))
        return version or "0"
    except Exception:
        logger.warning("Redis get failed: skipping bookings cache", exc_info=True)
        return None


async def set_bookings_cache(
    role: str, owner_id: UUID, bookings: list, version: str | None = None
) -> None:
    """
    Store a freshly loaded view. With ``version`` the write only lands if no
    invalidation happened since that version was read.
    """
    key = _view_key(role, owner_id)
    payload = json.dumps(bookings)
    try:
        if version is None:
            await get_redis().setex(key, BOOKING_VIEWS_TTL, payload)
            return
        async with get_redis().pipeline(transaction=True) as pipe:
            await pipe.watch(_version_key(key))
            current = await pipe.get(_version_key(key))
            if (current or "0") != version:
                logger.debug("Bookings view {} changed while loading, not cached", key)
                return
            pipe.multi()
            pipe.setex(key, BOOKING_VIEWS_TTL, payload)
            await pipe.execute()
    except WatchError:
        logger.debug("Bookings view {} changed while loading, not cached", key)
    except Exception:
        logger.warning("Redis set failed: skipping bookings cache", exc_info=True)


async def invalidate_booking_views(model_id: UUID, user_id: UUID) -> None:
    """Drop the model-side list and the user-side history after a mutation."""
    model_key, user_key = _model_view_key(model_id), _user_view_key(user_id)
    try:
        async with get_redis().pipeline(transaction=True) as pipe:
            pipe.delete(model_key, user_key)
            for key in (model_key, user_key):
                pipe.incr(_version_key(key))
                pipe.expire(_version_key(key), _VERSION_TTL)
            await pipe.execute()
    except Exception:
        logger.warning("Redis invalidate failed for booking views", exc_info=True)

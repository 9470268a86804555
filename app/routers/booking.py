from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Security, status
from loguru import logger

from app.cache import get_bookings_cache, get_views_version, set_bookings_cache
from app.deps import (
    CurrentUser,
    ModelsClient,
    can_cancel_booking,
    can_confirm_booking,
    can_manage_booking,
    can_read_or_manage_booking,
    can_view_earnings,
    can_write_booking,
    get_current_user,
    get_models_client,
    oauth2_scheme,
)
from app.engine import booking_engine
from app.errors import BookingError
from app.schemas import (
    BookingCreate,
    BookingDecisionUpdate,
    BookingFilters,
    BookingResponse,
    CancellationReceipt,
    EarningsResponse,
    ModelBookingView,
    PriceQuote,
    UserBookingView,
)

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    dependencies=[Security(oauth2_scheme)],
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _domain_errors() -> Iterator[None]:
    """Report lifecycle failures to the caller as HTTP errors."""
    try:
        yield
    except BookingError as exc:
        logger.debug("Booking operation rejected: {}", exc.message)
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from None


def _is_default_page(filters: BookingFilters) -> bool:
    return filters == BookingFilters()


def _project(bookings: list[BookingResponse], role: str) -> list[dict]:
    """Model-side list or user-side history projection of the same records."""
    view = ModelBookingView if role == "model" else UserBookingView
    return [
        view.model_validate(b, from_attributes=True).model_dump(mode="json")
        for b in bookings
    ]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/quote/{model_id}", response_model=PriceQuote)
async def quote_model_price(
    model_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    models_client: ModelsClient = Depends(get_models_client),
) -> PriceQuote:
    """User-facing hourly price for a model, commission included."""
    model = await models_client.get_model(model_id, current_user)
    if model is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Model not found"
        )
    with _domain_errors():
        return booking_engine.quote(model_id, model.get("price_per_hour"))


@router.get("/earnings/me", response_model=EarningsResponse)
async def my_earnings(
    current_user: CurrentUser = Depends(can_view_earnings),
) -> EarningsResponse:
    earnings = await booking_engine.get_earnings(current_user.id)
    return EarningsResponse(model_id=current_user.id, earnings=earnings)


@router.get("/", response_model=None)
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
) -> list[dict]:
    """
    Models get the bookings made with them; customers get their history.
    The unfiltered first page is served from cache.
    """
    cacheable = _is_default_page(filters)
    version: str | None = None
    if cacheable:
        cached = await get_bookings_cache(current_user.role, current_user.id)
        if cached is not None:
            logger.debug("Cache hit for bookings: {} {}", current_user.role, current_user.id)
            return cached
        logger.debug("Cache miss for bookings: {} {}", current_user.role, current_user.id)
        version = await get_views_version(current_user.role, current_user.id)

    if current_user.is_model:
        bookings = await booking_engine.list_for_model(current_user.id, filters)
    else:
        bookings = await booking_engine.list_for_user(current_user.id, filters)

    result = _project(bookings, current_user.role)
    if version is not None:
        await set_bookings_cache(
            current_user.role, current_user.id, result, version=version
        )
    return result


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
    models_client: ModelsClient = Depends(get_models_client),
) -> BookingResponse:
    # Payment has already gone through the gateway at this point
    model = await models_client.get_model(payload.model_id, current_user)
    with _domain_errors():
        return await booking_engine.create_booking(
            payload,
            user_id=current_user.id,
            user_name=current_user.username,
            model=model,
        )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_or_manage_booking),
) -> BookingResponse:
    with _domain_errors():
        return await booking_engine.get_booking(
            booking_id, current_user.id, current_user.role
        )


@router.patch("/{booking_id}/decision", response_model=BookingResponse)
async def decide_booking(
    booking_id: UUID,
    payload: BookingDecisionUpdate,
    current_user: CurrentUser = Depends(can_manage_booking),
) -> BookingResponse:
    with _domain_errors():
        return await booking_engine.decide(
            booking_id, payload.decision, current_user.id
        )


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_confirm_booking),
) -> BookingResponse:
    """
    Confirm the service took place, on behalf of the caller's side.
    The second confirmation releases the payment to the model.
    """
    with _domain_errors():
        if current_user.is_model:
            return await booking_engine.confirm_by_model(booking_id, current_user.id)
        return await booking_engine.confirm_by_user(booking_id, current_user.id)


@router.post("/{booking_id}/cancel", response_model=CancellationReceipt)
async def cancel_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_cancel_booking),
) -> CancellationReceipt:
    with _domain_errors():
        return await booking_engine.cancel_by_user(booking_id, current_user.id)

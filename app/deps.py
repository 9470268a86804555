from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app import settings
from app.scopes import BOOKING_SCOPE_DESCRIPTIONS, BookingScope

ROLES = ("user", "model")

# Documents the gateway login flow in OpenAPI. Identity itself comes from the
# headers read by get_current_user, so a missing token is not an error here.
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.users_ms_url}/auth/token",
    scopes=BOOKING_SCOPE_DESCRIPTIONS,
    auto_error=False,
)


@dataclass
class CurrentUser:
    id: UUID
    username: str
    role: str = "user"
    scopes: list[str] = field(default_factory=list)

    @property
    def is_model(self) -> bool:
        return self.role == "model"


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_role: str = Header(default="user"),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the identity headers injected by the gateway after authentication.
    The session has already been verified upstream, so we just trust these headers.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    role = x_user_role.strip().lower()
    if role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid role from gateway: {x_user_role!r}",
        )

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(
        id=user_id, username=unquote(x_username), role=role, scopes=scopes
    )


def require_scopes(*required: str, role: str | None = None):
    """
    Factory that returns a dependency enforcing one or more scopes and,
    optionally, the caller's role.

    Usage:
        @router.post("/{booking_id}/cancel")
        async def route(user = Depends(require_scopes("bookings:cancel", role="user"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if role is not None and current_user.role != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only a {role} account can do this.",
            )
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {', '.join(missing)}",
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_booking = require_scopes(BookingScope.WRITE, role="user")
can_cancel_booking = require_scopes(BookingScope.CANCEL, role="user")
can_confirm_booking = require_scopes(BookingScope.CONFIRM)
can_manage_booking = require_scopes(BookingScope.MANAGE, role="model")
can_view_earnings = require_scopes(BookingScope.EARNINGS, role="model")


async def can_read_or_manage_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    - bookings:read   → a customer sees their booking history
    - bookings:manage → a model sees the bookings made with them
    """
    needed = BookingScope.MANAGE if current_user.is_model else BookingScope.READ
    if needed not in current_user.scopes:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{BookingScope.READ}' (customers) "
                f"or '{BookingScope.MANAGE}' (models)."
            ),
        )
    return current_user


# ---------------------------------------------------------------------------
# ModelsClient: thin async wrapper around the model directory API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_models_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.models_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class ModelsClient:
    """
    Thin async wrapper around the model directory.
    Forwards the gateway identity headers so the directory's auth works normally.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_models_http_client()

    def _headers(self, user: CurrentUser) -> dict[str, str]:
        return {
            "X-User-Id": str(user.id),
            "X-Username": quote(user.username),
            "X-User-Role": user.role,
            "X-User-Scopes": " ".join(user.scopes),
        }

    async def get_model(self, model_id: UUID, user: CurrentUser) -> dict | None:
        """
        Returns the model record (name, price_per_hour, is_online) or None if 404.
        Raises HTTPException on other errors.
        """
        try:
            resp = await self._client.get(
                f"/models/{model_id}", headers=self._headers(user)
            )
        except httpx.RequestError:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Model directory unreachable",
            ) from None
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Model directory returned {resp.status_code}",
            )
        return resp.json()


_models_client = ModelsClient()


def get_models_client() -> ModelsClient:
    return _models_client

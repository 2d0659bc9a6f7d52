"""Authentication dependencies and session cookie helpers."""

from dataclasses import dataclass
from typing import Literal

from fastapi import Request, Response

from app.config import get_settings
from app.errors import NotAuthenticated
from app.services.jwt import get_token_service
from app.services.sessions import IssuedSession

ACCESS_COOKIE_NAME = "access_token"
REFRESH_COOKIE_NAME = "refresh_token"

SameSite = Literal["lax", "strict"]


@dataclass
class CurrentUser:
    """Identity carried by a valid access token."""

    user_id: str
    email: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract and validate the user from the access token cookie. Raises 401 if invalid."""
    token = request.cookies.get(ACCESS_COOKIE_NAME)
    if not token:
        raise NotAuthenticated()

    payload = get_token_service().decode_access_token(token)
    return CurrentUser(user_id=str(payload["userId"]), email=payload.get("email", ""))


def set_session_cookies(response: Response, session: IssuedSession, samesite: SameSite = "lax") -> None:
    """Set both session cookies. Email flows use Lax, redirect-driven OAuth uses Strict."""
    tokens = get_token_service()
    response.set_cookie(
        key=ACCESS_COOKIE_NAME,
        value=session.access_token,
        max_age=int(tokens.access_ttl.total_seconds()),
        path="/",
        secure=True,
        httponly=True,
        samesite=samesite,
    )
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=session.refresh_token,
        max_age=int(tokens.refresh_ttl.total_seconds()),
        path="/",
        secure=True,
        httponly=True,
        samesite=samesite,
    )


def clear_session_cookies(response: Response, samesite: SameSite = "strict") -> None:
    """Expire both session cookies."""
    for key in (ACCESS_COOKIE_NAME, REFRESH_COOKIE_NAME):
        response.delete_cookie(key=key, path="/", secure=True, httponly=True, samesite=samesite)


def frontend_redirect_url(path: str) -> str:
    return f"{get_settings().frontend_url}{path}"

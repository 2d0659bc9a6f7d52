"""JWT Token Service.

Access tokens are stateless. Refresh tokens are signed with a separate secret
and are only honoured while a matching row exists in ``refresh_tokens``.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.config import get_settings
from app.errors import InvalidToken

REFRESH_TOKEN_TYPE = "refresh"


class TokenService:
    """Handles JWT token creation and validation."""

    def __init__(self) -> None:
        settings = get_settings()
        settings.check_secrets()
        self.access_secret = settings.JWT_SECRET
        self.refresh_secret = settings.JWT_REFRESH_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.access_ttl = settings.access_token_ttl
        self.refresh_ttl = settings.refresh_token_ttl

    def sign(self, payload: dict[str, Any], secret: str, ttl: timedelta) -> str:
        """Sign ``payload`` with ``secret``, expiring ``ttl`` from now."""
        now = datetime.now(timezone.utc)
        claims = dict(payload)
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int((now + ttl).timestamp())
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    def verify(self, token: str, secret: str) -> dict[str, Any]:
        """Decode and validate a token. Raises InvalidToken on bad signature or expiry."""
        try:
            return jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidToken() from e

    def create_access_token(self, user_id: str, email: str) -> str:
        return self.sign({"userId": user_id, "email": email}, self.access_secret, self.access_ttl)

    def create_refresh_token(self, user_id: str) -> str:
        # jti keeps tokens minted within the same second distinct
        payload = {"userId": user_id, "type": REFRESH_TOKEN_TYPE, "jti": secrets.token_hex(16)}
        return self.sign(payload, self.refresh_secret, self.refresh_ttl)

    def decode_access_token(self, token: str) -> dict[str, Any]:
        payload = self.verify(token, self.access_secret)
        if not payload.get("userId"):
            raise InvalidToken()
        return payload

    def decode_refresh_token(self, token: str) -> dict[str, Any]:
        payload = self.verify(token, self.refresh_secret)
        if payload.get("type") != REFRESH_TOKEN_TYPE or not payload.get("userId"):
            raise InvalidToken("Invalid token type")
        return payload


_token_service: TokenService | None = None


def get_token_service() -> TokenService:
    """Get singleton token service instance."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service

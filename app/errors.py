"""Error taxonomy for auth flows.

Every error renders as a JSON object with at least an ``error`` field. Flows
raise these; ``main.py`` turns them into responses.
"""

from typing import Any


class AuthError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 400
    error = "Bad request"
    # Set on refresh failures that must also drop the session cookies
    clear_cookies = False

    def __init__(
        self,
        error: str | None = None,
        message: str | None = None,
        *,
        status_code: int | None = None,
        **extra: Any,
    ) -> None:
        self.error = error or self.error
        if status_code is not None:
            self.status_code = status_code
        self.message = message
        self.extra = extra
        super().__init__(self.error)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        body.update(self.extra)
        return body


class ValidationError(AuthError):
    status_code = 400
    error = "Invalid input"


class InvalidAction(AuthError):
    status_code = 400
    error = "Invalid action"


class MethodNotAllowed(AuthError):
    status_code = 405
    error = "Method not allowed"


class InvalidCredentials(AuthError):
    """Wrong password or unknown email. The two are indistinguishable on purpose."""

    status_code = 401
    error = "Invalid credentials"


class WrongProvider(AuthError):
    status_code = 400

    def __init__(self, provider: str) -> None:
        super().__init__(f"Please sign in with {provider}")
        self.provider = provider


class EmailNotVerified(AuthError):
    status_code = 403
    error = "Email not verified"


class UserExists(AuthError):
    status_code = 400
    error = "User already exists"


class NotAuthenticated(AuthError):
    status_code = 401
    error = "Not authenticated"


class NoToken(AuthError):
    status_code = 401
    error = "No refresh token provided"


class InvalidToken(AuthError):
    status_code = 401
    error = "Invalid token"


class TokenExpired(AuthError):
    status_code = 401
    error = "Token expired"


class UserNotFound(AuthError):
    status_code = 401
    error = "User not found"


class AlreadyVerified(AuthError):
    status_code = 400
    error = "Email already verified"


class CannotCancelVerifiedUser(AuthError):
    status_code = 400
    error = "Cannot cancel registration for verified user"


class UpstreamFailure(AuthError):
    """An OAuth provider or the mail server failed. Never rendered verbatim."""

    status_code = 502
    error = "Upstream service failure"


class OAuthError(UpstreamFailure):
    """OAuth flow failure carrying the error code sent back to the frontend."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        super().__init__(detail or code)
        self.code = code

"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import REFRESH_COOKIE_NAME, clear_session_cookies, set_session_cookies
from app.errors import InvalidAction, MethodNotAllowed
from app.rate_limit import LOGIN_LIMIT, REGISTER_LIMIT, RESEND_VERIFICATION_LIMIT, limiter
from app.schemas.auth import (
    CancelRegistrationRequest,
    LoginRequest,
    MessageResponse,
    PublicUser,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    UserResponse,
    VerifyEmailResponse,
)
from app.services.auth import get_auth_service

logger = logging.getLogger("auth_service")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

# Every action served under /api/auth/, with the one method it accepts
AUTH_ACTIONS = {
    "login": "POST",
    "register": "POST",
    "refresh": "POST",
    "logout": "POST",
    "verify-email": "GET",
    "resend-verification": "POST",
    "cancel-registration": "POST",
    "github": "GET",
    "google": "GET",
    "callback-github": "GET",
    "callback-google": "GET",
}

RESEND_GENERIC_MESSAGE = "If the email exists, a verification link has been sent."


@router.post("/login", response_model=UserResponse)
@limiter.limit(LOGIN_LIMIT)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Authenticate with email and password and receive session cookies."""
    session = get_auth_service().login(db, body.email, body.password, background_tasks)
    set_session_cookies(response, session)
    return UserResponse(user=PublicUser.model_validate(session.user))


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(REGISTER_LIMIT)
def register(
    request: Request,
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> RegisterResponse:
    """Register a new, unverified account. No session is opened until the email is verified."""
    user = get_auth_service().register(db, body.email, body.password, body.name, background_tasks)
    return RegisterResponse(
        user=PublicUser.model_validate(user),
        message="Registration successful. Please check your email to verify your account.",
    )


@router.post("/refresh", response_model=UserResponse)
def refresh(request: Request, response: Response, db: Session = Depends(get_db)) -> UserResponse:
    """Rotate the refresh token cookie and issue a new access token."""
    session = get_auth_service().refresh(db, request.cookies.get(REFRESH_COOKIE_NAME))
    set_session_cookies(response, session)
    return UserResponse(user=PublicUser.model_validate(session.user))


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, response: Response, background_tasks: BackgroundTasks) -> MessageResponse:
    """Forget the current session. Always succeeds."""
    get_auth_service().logout(request.cookies.get(REFRESH_COOKIE_NAME), background_tasks)
    clear_session_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/verify-email", response_model=VerifyEmailResponse)
def verify_email(
    response: Response,
    background_tasks: BackgroundTasks,
    token: str | None = None,
    db: Session = Depends(get_db),
) -> VerifyEmailResponse:
    """Confirm an email address and log the user in."""
    session = get_auth_service().verify_email(db, token, background_tasks)
    set_session_cookies(response, session)
    return VerifyEmailResponse(
        success=True,
        message="Email verified successfully",
        user=PublicUser.model_validate(session.user),
    )


@router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit(RESEND_VERIFICATION_LIMIT)
def resend_verification(
    request: Request, body: ResendVerificationRequest, db: Session = Depends(get_db)
) -> MessageResponse:
    """Send a fresh verification link. Unknown addresses get the same answer."""
    sent = get_auth_service().resend_verification(db, email=body.email, token=body.token)
    if not sent:
        return MessageResponse(message=RESEND_GENERIC_MESSAGE)
    return MessageResponse(message="Verification email sent. Please check your inbox.")


@router.post("/cancel-registration", response_model=MessageResponse)
def cancel_registration(body: CancelRegistrationRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Delete an account that was never verified."""
    if get_auth_service().cancel_registration(db, body.token):
        return MessageResponse(message="Registration cancelled successfully.")
    return MessageResponse(message="Registration cancelled.")


@router.api_route("/{action:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def unknown_action(action: str, request: Request) -> None:
    """Reject anything the route table above does not serve."""
    if action in AUTH_ACTIONS and request.method != AUTH_ACTIONS[action]:
        raise MethodNotAllowed()
    raise InvalidAction()

"""Signed-in user endpoints: profile and session management."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import REFRESH_COOKIE_NAME, CurrentUser, get_current_user
from app.errors import InvalidAction, MethodNotAllowed, UserNotFound, ValidationError
from app.schemas.auth import ProfileResponse, SessionInfo, SessionListResponse, SuccessResponse, UserProfile
from app.services.store import CredentialStore

logger = logging.getLogger("auth_service")

router = APIRouter(prefix="/api/user", tags=["User"])

USER_ACTIONS = {"me": "GET", "sessions": "GET", "revoke-session": "DELETE"}


@router.get("/me", response_model=ProfileResponse)
def me(current: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)) -> ProfileResponse:
    """Return the signed-in user's profile."""
    user = CredentialStore(db).find_user_by_id(current.user_id)
    if user is None:
        raise UserNotFound(status_code=404)
    return ProfileResponse(user=UserProfile.model_validate(user))


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    request: Request,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionListResponse:
    """List active sessions, newest first, flagging the one making this request."""
    current_token = request.cookies.get(REFRESH_COOKIE_NAME)
    rows = CredentialStore(db).list_active_refresh_tokens(current.user_id)
    sessions = [
        SessionInfo(
            id=row.id,
            createdAt=row.created_at,
            expiresAt=row.expires_at,
            isCurrent=current_token is not None and row.token == current_token,
        )
        for row in rows
    ]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.delete("/revoke-session", response_model=SuccessResponse)
def revoke_session(
    sessionId: str | None = None,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Sign out one of the caller's own sessions."""
    if not sessionId:
        raise ValidationError("Session ID required")
    revoked = CredentialStore(db).delete_refresh_token_by_id(sessionId, current.user_id)
    if revoked:
        logger.info("User %s revoked session %s", current.user_id, sessionId)
    return SuccessResponse(success=True)


@router.api_route("/{action:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def unknown_action(action: str, request: Request) -> None:
    if action in USER_ACTIONS and request.method != USER_ACTIONS[action]:
        raise MethodNotAllowed()
    raise InvalidAction()

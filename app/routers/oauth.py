"""OAuth sign-in endpoints for GitHub and Google.

Both flows end in a redirect to the frontend. Failures are reported through an
``error`` query parameter on the login page rather than as JSON.
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import frontend_redirect_url, set_session_cookies
from app.errors import OAuthError
from app.models.user import PROVIDER_GITHUB, PROVIDER_GOOGLE
from app.services.oauth import get_oauth_service
from app.services.sessions import get_session_manager
from app.services.store import CredentialStore

logger = logging.getLogger("auth_service")

router = APIRouter(prefix="/api/auth", tags=["OAuth"])


def _login_error(code: str) -> RedirectResponse:
    return RedirectResponse(url=frontend_redirect_url(f"/login?{urlencode({'error': code})}"), status_code=302)


def _authorize(provider: str) -> RedirectResponse:
    service = get_oauth_service()
    if not service.is_configured(provider):
        logger.warning("OAuth %s requested but not configured", provider)
        return _login_error("provider_not_configured")
    return RedirectResponse(url=service.authorization_url(provider), status_code=302)


def _callback(provider: str, code: str | None, db: Session, tasks: BackgroundTasks) -> RedirectResponse:
    if not code:
        return _login_error("no_code")

    service = get_oauth_service()
    try:
        identity = service.fetch_identity(provider, code)
        store = CredentialStore(db)
        user = service.link_account(store, identity)
        session = get_session_manager().open_session(store, user, tasks)
    except OAuthError as e:
        logger.warning("OAuth %s callback failed: %s", provider, e.code)
        return _login_error(e.code)
    except Exception:
        logger.exception("OAuth %s callback failed", provider)
        return _login_error("auth_failed")

    logger.info("OAuth %s login for user %s", provider, user.id)
    response = RedirectResponse(
        url=frontend_redirect_url(f"/auth/callback?{urlencode({'provider': provider})}"), status_code=302
    )
    set_session_cookies(response, session, samesite="strict")
    return response


@router.get("/github")
def github_login() -> RedirectResponse:
    """Redirect to GitHub's authorization page."""
    return _authorize(PROVIDER_GITHUB)


@router.get("/google")
def google_login() -> RedirectResponse:
    """Redirect to Google's consent page."""
    return _authorize(PROVIDER_GOOGLE)


@router.get("/callback-github")
def github_callback(
    background_tasks: BackgroundTasks, code: str | None = None, db: Session = Depends(get_db)
) -> RedirectResponse:
    return _callback(PROVIDER_GITHUB, code, db, background_tasks)


@router.get("/callback-google")
def google_callback(
    background_tasks: BackgroundTasks, code: str | None = None, db: Session = Depends(get_db)
) -> RedirectResponse:
    return _callback(PROVIDER_GOOGLE, code, db, background_tasks)

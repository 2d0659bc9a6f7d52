"""Session manager: per-user concurrent session cap and expired session cleanup."""

import logging
from dataclasses import dataclass

from fastapi import BackgroundTasks

from app.database import utcnow
from app.models.user import User
from app.services.background import detached_session, run_detached
from app.services.jwt import TokenService, get_token_service
from app.services.store import CredentialStore

logger = logging.getLogger("auth_service")

MAX_ACTIVE_SESSIONS = 5


@dataclass
class IssuedSession:
    """A freshly opened session: the user plus the cookie values to hand out."""

    user: User
    access_token: str
    refresh_token: str


def purge_expired(user_id: str) -> int:
    """Delete a user's expired refresh tokens using a dedicated session."""
    with detached_session() as db:
        removed = CredentialStore(db).delete_expired_refresh_tokens(user_id)
    if removed:
        logger.info("Purged %d expired session(s) for user %s", removed, user_id)
    return removed


class SessionManager:
    """Caps concurrent sessions per user and reaps expired ones."""

    def __init__(self, tokens: TokenService | None = None) -> None:
        self.tokens = tokens or get_token_service()

    def enforce_limit(self, store: CredentialStore, user_id: str) -> int:
        """Make room for exactly one new session.

        Keeps the ``MAX_ACTIVE_SESSIONS - 1`` newest active rows when the cap is
        reached. Check-then-act without a lock: concurrent logins may briefly
        overshoot the cap.
        """
        active = store.list_active_refresh_tokens(user_id)
        evicted = 0
        if len(active) >= MAX_ACTIVE_SESSIONS:
            excess = [row.id for row in active[MAX_ACTIVE_SESSIONS - 1 :]]
            evicted = store.delete_refresh_tokens_by_ids(excess)
            logger.info("Session limit reached for user %s, evicted %d oldest", user_id, evicted)
        return evicted

    def open_session(self, store: CredentialStore, user: User, tasks: BackgroundTasks | None = None) -> IssuedSession:
        """Enforce the cap, issue both tokens and persist the refresh token.

        Eviction and the insert commit together. Expired rows are purged afterwards.
        """
        access_token = self.tokens.create_access_token(user.id, user.email)
        refresh_token = self.tokens.create_refresh_token(user.id)
        with store.atomic():
            self.enforce_limit(store, user.id)
            store.insert_refresh_token(user.id, refresh_token, utcnow() + self.tokens.refresh_ttl)
        run_detached(tasks, purge_expired, user.id)
        return IssuedSession(user=user, access_token=access_token, refresh_token=refresh_token)

    def count_active(self, store: CredentialStore, user_id: str) -> int:
        return store.count_active_refresh_tokens(user_id)

    def revoke_all(self, store: CredentialStore, user_id: str) -> int:
        """Drop every session of a user, e.g. after a credential compromise."""
        revoked = store.delete_refresh_tokens_by_user(user_id)
        logger.warning("Revoked all %d session(s) for user %s", revoked, user_id)
        return revoked


_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get singleton session manager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager

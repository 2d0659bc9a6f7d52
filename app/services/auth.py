"""Authentication service: email/password flows and the verification lifecycle."""

import logging
import secrets
from datetime import datetime, timedelta

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.errors import (
    AlreadyVerified,
    CannotCancelVerifiedUser,
    EmailNotVerified,
    InvalidCredentials,
    InvalidToken,
    NoToken,
    TokenExpired,
    UpstreamFailure,
    UserExists,
    UserNotFound,
    ValidationError,
    WrongProvider,
)
from app.models.user import PROVIDER_EMAIL, User
from app.services.background import detached_session, run_detached
from app.services.email import EmailService, get_email_service
from app.services.password import PasswordHasher, get_password_hasher
from app.services.sessions import IssuedSession, SessionManager, get_session_manager
from app.services.store import CredentialStore

logger = logging.getLogger("auth_service")

VERIFICATION_TOKEN_TTL = timedelta(hours=24)


def new_verification_token() -> tuple[str, datetime]:
    """256-bit random hex token and its expiry."""
    return secrets.token_hex(32), utcnow() + VERIFICATION_TOKEN_TTL


def touch_last_login(user_id: str) -> None:
    with detached_session() as db:
        store = CredentialStore(db)
        user = store.find_user_by_id(user_id)
        if user is not None:
            store.update_user_fields(user, last_login=utcnow())


def revoke_refresh_token(token: str) -> None:
    with detached_session() as db:
        CredentialStore(db).delete_refresh_token(token)


class AuthService:
    """Handles registration, login, token refresh and email verification."""

    def __init__(
        self,
        hasher: PasswordHasher | None = None,
        sessions: SessionManager | None = None,
        email: EmailService | None = None,
    ) -> None:
        self.hasher = hasher or get_password_hasher()
        self.sessions = sessions or get_session_manager()
        self.email = email or get_email_service()

    @property
    def tokens(self):
        return self.sessions.tokens

    def login(self, db: Session, email: str, password: str, tasks: BackgroundTasks | None = None) -> IssuedSession:
        """Authenticate by email and password and open a new session."""
        store = CredentialStore(db)
        user = store.find_user_by_email(email)
        if user is None:
            raise InvalidCredentials()

        if user.provider != PROVIDER_EMAIL:
            raise WrongProvider(user.provider)

        if not self.hasher.verify(user.password_hash, password):
            raise InvalidCredentials()

        if not user.email_verified:
            raise EmailNotVerified(
                message="Please verify your email before logging in. Check your inbox for the verification link."
            )

        issued = self.sessions.open_session(store, user, tasks)
        run_detached(tasks, touch_last_login, user.id)
        logger.info("User %s logged in", user.id)
        return issued

    def register(
        self, db: Session, email: str, password: str, name: str, tasks: BackgroundTasks | None = None
    ) -> User:
        """Create an unverified account and send the verification email. No session is opened."""
        store = CredentialStore(db)
        if store.find_user_by_email(email) is not None:
            raise UserExists()

        token, expires_at = new_verification_token()
        try:
            user = store.insert_user(
                email=email,
                name=name,
                password_hash=self.hasher.hash(password),
                provider=PROVIDER_EMAIL,
                email_verified=False,
                verification_token=token,
                token_expires_at=expires_at,
            )
        except IntegrityError:
            db.rollback()
            raise UserExists() from None

        # User can request a resend if this fails
        run_detached(tasks, self.email.send_verification_email, user.email, user.name, token)
        logger.info("Registered user %s", user.id)
        return user

    def refresh(self, db: Session, refresh_token: str | None) -> IssuedSession:
        """Rotate a refresh token: the presented one is consumed, a new pair is issued."""
        if not refresh_token:
            raise NoToken()

        try:
            payload = self.tokens.decode_refresh_token(refresh_token)
        except InvalidToken as e:
            e.clear_cookies = True
            raise

        user_id = payload["userId"]
        store = CredentialStore(db)
        stored = store.find_refresh_token(refresh_token, user_id)
        if stored is None:
            # Signature is fine but the session was revoked or rotated away
            raise InvalidToken("Invalid refresh token")

        if stored.expires_at < utcnow():
            store.delete_refresh_token(refresh_token)
            raise TokenExpired("Refresh token expired")

        user = store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFound()

        access_token = self.tokens.create_access_token(user.id, user.email)
        new_refresh_token = self.tokens.create_refresh_token(user.id)
        with store.atomic():
            # Zero rows means a concurrent refresh already consumed this token
            if store.delete_refresh_token(refresh_token) == 0:
                raise InvalidToken("Invalid refresh token")
            store.insert_refresh_token(user.id, new_refresh_token, utcnow() + self.tokens.refresh_ttl)

        return IssuedSession(user=user, access_token=access_token, refresh_token=new_refresh_token)

    def logout(self, refresh_token: str | None, tasks: BackgroundTasks | None = None) -> None:
        """Forget the session behind ``refresh_token``. Never fails."""
        if refresh_token:
            run_detached(tasks, revoke_refresh_token, refresh_token)

    def verify_email(self, db: Session, token: str | None, tasks: BackgroundTasks | None = None) -> IssuedSession:
        """Consume a verification token, mark the email verified and log the user in."""
        if not token:
            raise InvalidToken("Invalid verification token", status_code=400)

        store = CredentialStore(db)
        user = store.find_user_by_verification_token(token)
        if user is None:
            raise InvalidToken("Invalid or expired verification token", status_code=400)

        if user.email_verified:
            raise AlreadyVerified()

        if user.token_expires_at is not None and user.token_expires_at < utcnow():
            raise TokenExpired("Verification token has expired", status_code=400)

        store.update_user_fields(user, email_verified=True, verification_token=None, token_expires_at=None)
        issued = self.sessions.open_session(store, user, tasks)
        run_detached(tasks, self.email.send_welcome_email, user.email, user.name)
        logger.info("Verified email for user %s", user.id)
        return issued

    def resend_verification(self, db: Session, email: str | None = None, token: str | None = None) -> bool:
        """Issue a fresh verification token and email it.

        Returns False when no matching account exists or delivery failed, so
        the caller can answer with the same generic message either way.
        """
        store = CredentialStore(db)
        user = None
        if token:
            user = store.find_user_by_verification_token(token)
        if user is None and email:
            user = store.find_user_by_email(email)

        if user is None:
            return False

        if user.email_verified:
            raise AlreadyVerified()

        if user.provider != PROVIDER_EMAIL:
            raise ValidationError("Email verification is only for email registrations")

        new_token, expires_at = new_verification_token()
        store.update_user_fields(user, verification_token=new_token, token_expires_at=expires_at)

        try:
            self.email.send_verification_email(user.email, user.name, new_token)
        except UpstreamFailure:
            logger.exception("Failed to resend verification email to user %s", user.id)
            return False
        return True

    def cancel_registration(self, db: Session, token: str) -> bool:
        """Delete an unverified account. Returns False when the token matches nothing."""
        store = CredentialStore(db)
        user = store.find_user_by_verification_token(token)
        if user is None:
            return False

        if user.email_verified:
            raise CannotCancelVerifiedUser()

        user_id = user.id
        store.delete_user(user)
        logger.info("Cancelled registration for user %s", user_id)
        return True


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service

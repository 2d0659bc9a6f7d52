"""Credential store: predicate queries over ``users`` and ``refresh_tokens``.

Each call is a single round trip committed on its own. Wrap several calls in
``atomic()`` to commit them together.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.refresh_token import RefreshToken
from app.models.user import User


class CredentialStore:
    """Query/mutate interface over the user and session tables."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._depth = 0

    @contextmanager
    def atomic(self) -> Iterator["CredentialStore"]:
        """Group writes into one transaction. Rolls back everything on error."""
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self.db.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self.db.commit()

    def _commit(self) -> None:
        if self._depth:
            self.db.flush()
        else:
            self.db.commit()

    # --- users ---

    def find_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(User.email == email))

    def find_user_by_id(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def find_user_by_verification_token(self, token: str) -> User | None:
        return self.db.scalar(select(User).where(User.verification_token == token))

    def find_user_by_provider_identity(self, provider: str, provider_id: str) -> User | None:
        return self.db.scalar(select(User).where(User.provider == provider, User.provider_id == provider_id))

    def insert_user(self, **fields: Any) -> User:
        user = User(**fields)
        self.db.add(user)
        self._commit()
        self.db.refresh(user)
        return user

    def update_user_fields(self, user: User, **fields: Any) -> User:
        for key, value in fields.items():
            setattr(user, key, value)
        self._commit()
        return user

    def delete_user(self, user: User) -> None:
        self.db.delete(user)
        self._commit()

    # --- refresh tokens ---

    def insert_refresh_token(self, user_id: str, token: str, expires_at: datetime) -> RefreshToken:
        row = RefreshToken(user_id=user_id, token=token, expires_at=expires_at)
        self.db.add(row)
        self._commit()
        return row

    def find_refresh_token(self, token: str, user_id: str | None = None) -> RefreshToken | None:
        query = select(RefreshToken).where(RefreshToken.token == token)
        if user_id is not None:
            query = query.where(RefreshToken.user_id == user_id)
        return self.db.scalar(query)

    def delete_refresh_token(self, token: str) -> int:
        return self._delete_tokens(RefreshToken.token == token)

    def delete_refresh_token_by_id(self, token_id: str, user_id: str) -> int:
        return self._delete_tokens(RefreshToken.id == token_id, RefreshToken.user_id == user_id)

    def delete_refresh_tokens_by_ids(self, token_ids: list[str]) -> int:
        if not token_ids:
            return 0
        return self._delete_tokens(RefreshToken.id.in_(token_ids))

    def delete_refresh_tokens_by_user(self, user_id: str) -> int:
        return self._delete_tokens(RefreshToken.user_id == user_id)

    def delete_expired_refresh_tokens(self, user_id: str) -> int:
        return self._delete_tokens(RefreshToken.user_id == user_id, RefreshToken.expires_at < utcnow())

    def list_active_refresh_tokens(self, user_id: str) -> list[RefreshToken]:
        """Non-expired sessions for a user, newest first."""
        query = (
            select(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.expires_at >= utcnow())
            .order_by(RefreshToken.created_at.desc())
        )
        return list(self.db.scalars(query))

    def count_active_refresh_tokens(self, user_id: str) -> int:
        query = select(func.count(RefreshToken.id)).where(
            RefreshToken.user_id == user_id, RefreshToken.expires_at >= utcnow()
        )
        return self.db.scalar(query) or 0

    def _delete_tokens(self, *criteria: Any) -> int:
        result = self.db.execute(delete(RefreshToken).where(*criteria))
        self._commit()
        return result.rowcount or 0

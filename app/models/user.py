"""User model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base, utcnow

PROVIDER_EMAIL = "email"
PROVIDER_GITHUB = "github"
PROVIDER_GOOGLE = "google"


def new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Account record. OAuth-only accounts carry no password hash."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("provider", "provider_id", name="uq_users_provider_identity"),)

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(256), unique=True, nullable=False, index=True)
    name = Column(String(256), nullable=False)
    password_hash = Column(String(256), nullable=True)
    provider = Column(String(32), nullable=False, default=PROVIDER_EMAIL)
    provider_id = Column(String(256), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(128), nullable=True, index=True)
    token_expires_at = Column(DateTime, nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_login = Column(DateTime, nullable=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User {self.id} provider={self.provider}>"

"""Pydantic schemas for authentication endpoints."""

from datetime import datetime
from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator


def _check_email(value: str) -> str:
    """Reject malformed addresses but keep the value exactly as submitted."""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(f"value is not a valid email address: {e}") from e
    return value


# Stored and looked up as given, so no case folding of the domain
EmailAddress = Annotated[str, AfterValidator(_check_email)]


class LoginRequest(BaseModel):
    email: EmailAddress
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    email: EmailAddress
    password: str = Field(min_length=8, max_length=100)
    name: str = Field(min_length=2, max_length=100)


class ResendVerificationRequest(BaseModel):
    email: EmailAddress | None = None
    token: str | None = None

    @model_validator(mode="after")
    def require_email_or_token(self) -> "ResendVerificationRequest":
        if not self.email and not self.token:
            raise ValueError("Either email or token must be provided")
        return self


class CancelRegistrationRequest(BaseModel):
    token: str


class PublicUser(BaseModel):
    """The user projection returned by auth flows."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str


class UserResponse(BaseModel):
    user: PublicUser


class RegisterResponse(BaseModel):
    user: PublicUser
    message: str


class VerifyEmailResponse(BaseModel):
    success: bool
    message: str
    user: PublicUser


class MessageResponse(BaseModel):
    message: str


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    avatar_url: str | None = None
    provider: str
    created_at: datetime
    last_login: datetime | None = None


class ProfileResponse(BaseModel):
    user: UserProfile


class SessionInfo(BaseModel):
    id: str
    createdAt: datetime
    expiresAt: datetime
    isCurrent: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]
    total: int


class SuccessResponse(BaseModel):
    success: bool

"""Configuration settings for the auth session service."""

import os
import re
import secrets
from datetime import timedelta
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

MIN_SECRET_LENGTH = 32


class ConfigurationError(RuntimeError):
    """Settings the service must not start with."""


_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d|w)?\s*$")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as "15m", "7d" or "3600" (seconds)."""
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit or "s"]


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./auth_service.db")

    # JWT
    JWT_SECRET: str = os.getenv("JWT_SECRET", "") or secrets.token_urlsafe(32)
    JWT_REFRESH_SECRET: str = os.getenv("JWT_REFRESH_SECRET", "") or secrets.token_urlsafe(32)
    # Unset secrets fall back to random per-process keys
    JWT_SECRETS_GENERATED: bool = not (os.getenv("JWT_SECRET") and os.getenv("JWT_REFRESH_SECRET"))
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ACCESS_EXPIRES_IN: str = os.getenv("JWT_ACCESS_EXPIRES_IN", "15m")
    JWT_REFRESH_EXPIRES_IN: str = os.getenv("JWT_REFRESH_EXPIRES_IN", "7d")

    # Public URLs
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "")
    API_URL: str = os.getenv("API_URL", "")

    # Deployment platform (set automatically by Vercel)
    VERCEL: str = os.getenv("VERCEL", "")
    VERCEL_ENV: str = os.getenv("VERCEL_ENV", "")
    VERCEL_URL: str = os.getenv("VERCEL_URL", "")
    VERCEL_PROJECT_PRODUCTION_URL: str = os.getenv("VERCEL_PROJECT_PRODUCTION_URL", "")

    # OAuth
    GITHUB_CLIENT_ID: str = os.getenv("GITHUB_CLIENT_ID", "")
    GITHUB_CLIENT_SECRET: str = os.getenv("GITHUB_CLIENT_SECRET", "")
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")

    # Outbound email
    SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASS: str = os.getenv("SMTP_PASS", "")
    SMTP_FROM_NAME: str = os.getenv("SMTP_FROM_NAME", "Auth Service")

    # Rate limiting ("memory://" is process local, use "redis://..." across instances)
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.JWT_ACCESS_EXPIRES_IN)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.JWT_REFRESH_EXPIRES_IN)

    @property
    def on_platform(self) -> bool:
        """True when running on the hosting platform rather than locally."""
        return bool(self.VERCEL)

    @property
    def is_production(self) -> bool:
        return self.VERCEL_ENV == "production" or self.APP_ENV == "production"

    @property
    def frontend_url(self) -> str:
        if self.FRONTEND_URL:
            return self.FRONTEND_URL.rstrip("/")
        if self.on_platform:
            if self.VERCEL_PROJECT_PRODUCTION_URL:
                return f"https://{self.VERCEL_PROJECT_PRODUCTION_URL}"
            if self.VERCEL_URL:
                return f"https://{self.VERCEL_URL}"
        return "http://localhost:4200"

    @property
    def api_url(self) -> str:
        if self.API_URL:
            return self.API_URL.rstrip("/")
        if self.on_platform and self.VERCEL_URL:
            return f"https://{self.VERCEL_URL}"
        return "http://localhost:8000"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_USER and self.SMTP_PASS)

    def secret_errors(self) -> list[str]:
        """Problems with the signing secrets that make token issuance unsafe."""
        errors = []
        if len(self.JWT_SECRET) < MIN_SECRET_LENGTH:
            errors.append(f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters")
        if len(self.JWT_REFRESH_SECRET) < MIN_SECRET_LENGTH:
            errors.append(f"JWT_REFRESH_SECRET must be at least {MIN_SECRET_LENGTH} characters")
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            errors.append("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        if self.is_production and self.JWT_SECRETS_GENERATED:
            errors.append("JWT_SECRET and JWT_REFRESH_SECRET must be set in production")
        return errors

    def check_secrets(self) -> None:
        """Raise ConfigurationError when the signing secrets are unusable."""
        errors = self.secret_errors()
        if errors:
            raise ConfigurationError("; ".join(errors))

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = self.secret_errors()
        if self.JWT_SECRETS_GENERATED:
            errors.append("JWT secrets not set - using auto-generated keys (not persistent across restarts)")
        for name in ("JWT_ACCESS_EXPIRES_IN", "JWT_REFRESH_EXPIRES_IN"):
            try:
                parse_duration(getattr(self, name))
            except ValueError:
                errors.append(f"{name} is not a valid duration: {getattr(self, name)!r}")
        if not self.smtp_configured:
            errors.append("SMTP_USER/SMTP_PASS not set - verification links will be logged instead of emailed")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""OAuth login with GitHub and Google: code exchange and local account linking."""

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
from sqlalchemy.exc import IntegrityError

from app.config import get_settings
from app.database import utcnow
from app.errors import OAuthError
from app.models.user import PROVIDER_GITHUB, PROVIDER_GOOGLE, User
from app.services.store import CredentialStore

logger = logging.getLogger("auth_service")

OAUTH_PROVIDERS = {
    PROVIDER_GITHUB: {
        "auth_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "emails_url": "https://api.github.com/user/emails",
        "scope": "user:email",
    },
    PROVIDER_GOOGLE: {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://www.googleapis.com/oauth2/v2/userinfo",
        "scope": "email profile",
    },
}


@dataclass
class ProviderIdentity:
    """A user as described by an OAuth provider."""

    provider: str
    provider_id: str
    email: str
    name: str
    avatar_url: str | None
    email_verified: bool


class OAuthService:
    """Builds authorize URLs, exchanges codes and links provider identities to users."""

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = get_settings()
        self._transport = transport

    def _credentials(self, provider: str) -> tuple[str, str]:
        if provider == PROVIDER_GITHUB:
            return self.settings.GITHUB_CLIENT_ID, self.settings.GITHUB_CLIENT_SECRET
        if provider == PROVIDER_GOOGLE:
            return self.settings.GOOGLE_CLIENT_ID, self.settings.GOOGLE_CLIENT_SECRET
        raise ValueError(f"Unsupported OAuth provider: {provider}")

    def callback_url(self, provider: str) -> str:
        return f"{self.settings.api_url}/api/auth/callback-{provider}"

    def is_configured(self, provider: str) -> bool:
        client_id, client_secret = self._credentials(provider)
        return bool(client_id and client_secret)

    def authorization_url(self, provider: str) -> str:
        """Provider authorize URL requesting the minimal scopes."""
        client_id, _ = self._credentials(provider)
        config = OAUTH_PROVIDERS[provider]
        params = {
            "client_id": client_id,
            "redirect_uri": self.callback_url(provider),
            "scope": config["scope"],
        }
        if provider == PROVIDER_GOOGLE:
            params["response_type"] = "code"
            params["access_type"] = "offline"
            params["prompt"] = "consent"
        logger.info("OAuth %s callback URL: %s", provider, params["redirect_uri"])
        return f"{config['auth_url']}?{urlencode(params)}"

    def fetch_identity(self, provider: str, code: str) -> ProviderIdentity:
        """Exchange an authorization code and fetch the provider's view of the user."""
        client_id, client_secret = self._credentials(provider)
        config = OAUTH_PROVIDERS[provider]
        body = {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": self.callback_url(provider),
        }
        if provider == PROVIDER_GOOGLE:
            body["grant_type"] = "authorization_code"

        with httpx.Client(transport=self._transport) as client:
            token_response = client.post(config["token_url"], json=body, headers={"Accept": "application/json"})
            try:
                token_data = token_response.json()
            except ValueError:
                token_data = {}
            access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
            if not access_token or token_data.get("error"):
                logger.warning(
                    "OAuth %s token exchange failed: %s (status %d)",
                    provider,
                    token_data.get("error") if isinstance(token_data, dict) else "unparseable response",
                    token_response.status_code,
                )
                raise OAuthError("token_exchange_failed")

            headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
            userinfo = client.get(config["userinfo_url"], headers=headers).json()
            if not isinstance(userinfo, dict) or not userinfo.get("id"):
                raise OAuthError("no_user_info")

            if provider == PROVIDER_GITHUB:
                return self._github_identity(client, headers, userinfo)
            return self._google_identity(userinfo)

    def _github_identity(self, client: httpx.Client, headers: dict, userinfo: dict) -> ProviderIdentity:
        login = userinfo.get("login") or str(userinfo["id"])
        email = userinfo.get("email")
        if not email:
            # Private address: ask for the primary verified one before synthesizing
            response = client.get(OAUTH_PROVIDERS[PROVIDER_GITHUB]["emails_url"], headers=headers)
            if response.status_code == 200:
                email = next(
                    (e.get("email") for e in response.json() if e.get("primary") and e.get("verified")),
                    None,
                )
        return ProviderIdentity(
            provider=PROVIDER_GITHUB,
            provider_id=str(userinfo["id"]),
            email=email or f"{login}@github.com",
            name=userinfo.get("name") or login,
            avatar_url=userinfo.get("avatar_url"),
            email_verified=True,
        )

    def _google_identity(self, userinfo: dict) -> ProviderIdentity:
        email = userinfo.get("email") or ""
        return ProviderIdentity(
            provider=PROVIDER_GOOGLE,
            provider_id=str(userinfo["id"]),
            email=email,
            name=userinfo.get("name") or email.split("@")[0],
            avatar_url=userinfo.get("picture"),
            email_verified=bool(userinfo.get("verified_email")),
        )

    def link_account(self, store: CredentialStore, identity: ProviderIdentity) -> User:
        """Find the local user for a provider identity, creating it on first login."""
        user = store.find_user_by_provider_identity(identity.provider, identity.provider_id)
        if user is not None:
            return store.update_user_fields(user, avatar_url=identity.avatar_url, last_login=utcnow())

        if not identity.email:
            raise OAuthError("no_user_info")

        try:
            user = store.insert_user(
                email=identity.email,
                name=identity.name,
                avatar_url=identity.avatar_url,
                provider=identity.provider,
                provider_id=identity.provider_id,
                email_verified=identity.email_verified,
                password_hash=None,
                last_login=utcnow(),
            )
        except IntegrityError as e:
            store.db.rollback()
            logger.error("OAuth %s user creation failed: %s", identity.provider, e.orig)
            raise OAuthError("user_creation_failed") from e

        logger.info("Created %s user %s", identity.provider, user.id)
        return user


_oauth_service: OAuthService | None = None


def get_oauth_service() -> OAuthService:
    """Get singleton OAuth service instance."""
    global _oauth_service
    if _oauth_service is None:
        _oauth_service = OAuthService()
    return _oauth_service

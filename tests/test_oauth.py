"""Tests for GitHub and Google sign-in."""

from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import set_cookies
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.config import get_settings
from app.models.user import PROVIDER_GITHUB, PROVIDER_GOOGLE, User
from app.services.oauth import OAuthService
from app.services.store import CredentialStore

GITHUB_USER = {
    "id": 42,
    "login": "octocat",
    "name": "Octo Cat",
    "email": None,
    "avatar_url": "https://avatars.example.com/42",
}
GOOGLE_USER = {
    "id": "g-1001",
    "email": "google.user@example.com",
    "name": "Google User",
    "picture": "https://lh3.example.com/photo.jpg",
    "verified_email": True,
}


def github_handler(user=None, emails=None, token_status=200, token_body=None):
    """Fake GitHub API answering the token exchange, /user and /user/emails."""
    user = GITHUB_USER if user is None else user
    token_body = {"access_token": "gh-access", "token_type": "bearer"} if token_body is None else token_body

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "github.com":
            return httpx.Response(token_status, json=token_body)
        if request.url.path == "/user":
            assert request.headers["Authorization"] == "Bearer gh-access"
            return httpx.Response(200, json=user)
        if request.url.path == "/user/emails":
            if emails is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=emails)
        return httpx.Response(404)

    return handler


def google_handler(user=None):
    user = GOOGLE_USER if user is None else user

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "g-access", "expires_in": 3599})
        if request.url.host == "www.googleapis.com":
            return httpx.Response(200, json=user)
        return httpx.Response(404)

    return handler


@pytest.fixture(name="configured")
def configured_fixture(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "GITHUB_CLIENT_ID", "gh-client")
    monkeypatch.setattr(settings, "GITHUB_CLIENT_SECRET", "gh-secret")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "g-client")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "g-secret")
    return settings


def oauth_service(handler) -> OAuthService:
    return OAuthService(transport=httpx.MockTransport(handler))


def callback(client: TestClient, provider: str, service: OAuthService, code: str | None = "the-code"):
    params = {"code": code} if code is not None else {}
    with patch("app.routers.oauth.get_oauth_service", return_value=service):
        return client.get(f"/api/auth/callback-{provider}", params=params, follow_redirects=False)


def login_error(response) -> str | None:
    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.path == "/login"
    return parse_qs(location.query).get("error", [None])[0]


class TestAuthorize:
    """Tests for the redirect to the provider."""

    def test_github_authorize_url(self, client: TestClient, configured):
        response = client.get("/api/auth/github", follow_redirects=False)
        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert location.netloc == "github.com"
        assert location.path == "/login/oauth/authorize"
        query = parse_qs(location.query)
        assert query["client_id"] == ["gh-client"]
        assert query["scope"] == ["user:email"]
        assert query["redirect_uri"] == [f"{configured.api_url}/api/auth/callback-github"]

    def test_google_authorize_url(self, client: TestClient, configured):
        response = client.get("/api/auth/google", follow_redirects=False)
        assert response.status_code == 302
        query = parse_qs(urlparse(response.headers["location"]).query)
        assert query["client_id"] == ["g-client"]
        assert query["response_type"] == ["code"]
        assert query["scope"] == ["email profile"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["redirect_uri"] == [f"{configured.api_url}/api/auth/callback-google"]

    def test_unconfigured_provider(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(get_settings(), "GITHUB_CLIENT_ID", "")
        response = client.get("/api/auth/github", follow_redirects=False)
        assert login_error(response) == "provider_not_configured"


class TestGithubCallback:
    """Tests for the GitHub callback."""

    def test_first_login_creates_user(self, client: TestClient, configured, store: CredentialStore):
        emails = [
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "octo@example.com", "primary": True, "verified": True},
        ]
        response = callback(client, PROVIDER_GITHUB, oauth_service(github_handler(emails=emails)))

        assert response.status_code == 302
        assert response.headers["location"] == f"{configured.frontend_url}/auth/callback?provider=github"
        cookies = set_cookies(response)
        for name in ("access_token", "refresh_token"):
            assert cookies[name]["samesite"].lower() == "strict"
            assert cookies[name]["httponly"]

        user = store.find_user_by_provider_identity(PROVIDER_GITHUB, "42")
        assert user.email == "octo@example.com"
        assert user.name == "Octo Cat"
        assert user.email_verified is True
        assert user.password_hash is None
        assert store.count_active_refresh_tokens(user.id) == 1

    def test_email_falls_back_to_login(self, client: TestClient, configured, store: CredentialStore):
        callback(client, PROVIDER_GITHUB, oauth_service(github_handler()))
        user = store.find_user_by_provider_identity(PROVIDER_GITHUB, "42")
        assert user.email == "octocat@github.com"

    def test_name_falls_back_to_login(self, client: TestClient, configured, store: CredentialStore):
        profile = dict(GITHUB_USER, name=None, email="public@example.com")
        callback(client, PROVIDER_GITHUB, oauth_service(github_handler(user=profile)))
        user = store.find_user_by_provider_identity(PROVIDER_GITHUB, "42")
        assert user.name == "octocat"
        assert user.email == "public@example.com"

    def test_repeat_login_updates_avatar(self, client: TestClient, configured, store: CredentialStore):
        callback(client, PROVIDER_GITHUB, oauth_service(github_handler()))
        updated = dict(GITHUB_USER, avatar_url="https://avatars.example.com/42?v=2")
        response = callback(client, PROVIDER_GITHUB, oauth_service(github_handler(user=updated)))
        assert response.status_code == 302

        store.db.expire_all()
        users = store.db.scalars(select(User).where(User.provider == PROVIDER_GITHUB)).all()
        assert len(users) == 1
        assert users[0].avatar_url == "https://avatars.example.com/42?v=2"
        assert users[0].last_login is not None
        assert store.count_active_refresh_tokens(users[0].id) == 2

    def test_missing_code(self, client: TestClient, configured):
        response = callback(client, PROVIDER_GITHUB, oauth_service(github_handler()), code=None)
        assert login_error(response) == "no_code"

    def test_token_exchange_failure(self, client: TestClient, configured):
        handler = github_handler(token_body={"error": "bad_verification_code"})
        response = callback(client, PROVIDER_GITHUB, oauth_service(handler))
        assert login_error(response) == "token_exchange_failed"
        assert response.headers.get_list("set-cookie") == []

    def test_no_user_info(self, client: TestClient, configured):
        response = callback(client, PROVIDER_GITHUB, oauth_service(github_handler(user={"message": "Bad"})))
        assert login_error(response) == "no_user_info"

    def test_email_taken_by_password_account(self, client: TestClient, configured, test_user: User):
        profile = dict(GITHUB_USER, email="test@example.com")
        response = callback(client, PROVIDER_GITHUB, oauth_service(github_handler(user=profile)))
        assert login_error(response) == "user_creation_failed"

    def test_network_failure(self, client: TestClient, configured):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        response = callback(client, PROVIDER_GITHUB, oauth_service(handler))
        assert login_error(response) == "auth_failed"


class TestGoogleCallback:
    """Tests for the Google callback."""

    def test_first_login_creates_user(self, client: TestClient, configured, store: CredentialStore):
        response = callback(client, PROVIDER_GOOGLE, oauth_service(google_handler()))
        assert response.headers["location"] == f"{configured.frontend_url}/auth/callback?provider=google"

        user = store.find_user_by_provider_identity(PROVIDER_GOOGLE, "g-1001")
        assert user.email == "google.user@example.com"
        assert user.avatar_url == "https://lh3.example.com/photo.jpg"
        assert user.email_verified is True

    def test_unverified_google_email(self, client: TestClient, configured, store: CredentialStore):
        profile = dict(GOOGLE_USER, verified_email=False)
        callback(client, PROVIDER_GOOGLE, oauth_service(google_handler(user=profile)))
        user = store.find_user_by_provider_identity(PROVIDER_GOOGLE, "g-1001")
        assert user.email_verified is False

    def test_session_cap_applies(self, client: TestClient, configured, store: CredentialStore):
        for _ in range(6):
            callback(client, PROVIDER_GOOGLE, oauth_service(google_handler()))
        user = store.find_user_by_provider_identity(PROVIDER_GOOGLE, "g-1001")
        assert store.count_active_refresh_tokens(user.id) == 5

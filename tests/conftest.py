"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-access-secret-0123456789-abcdefghij")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-0123456789-abcdefghij")
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASS"] = ""

from http.cookies import SimpleCookie  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.models.refresh_token import RefreshToken  # noqa: E402, F401
from app.models.user import PROVIDER_EMAIL, User  # noqa: E402
from app.services import background  # noqa: E402
from app.services.password import get_password_hasher  # noqa: E402
from app.services.store import CredentialStore  # noqa: E402

TEST_PASSWORD = "password123"


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """In-memory SQLite database shared by request and detached sessions."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    background._session_factory = factory
    try:
        yield factory
    finally:
        background._session_factory = None
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="client")
def client_fixture(db_session: Session):
    """Create a test client with overridden DB dependency and disabled rate limiting."""
    from app.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app, base_url="http://testserver") as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="store")
def store_fixture(db_session: Session) -> CredentialStore:
    return CredentialStore(db_session)


def make_user(store: CredentialStore, email: str = "test@example.com", **fields) -> User:
    """Insert an email/password user. Verified unless told otherwise."""
    values = {
        "email": email,
        "name": "Test User",
        "password_hash": get_password_hasher().hash(TEST_PASSWORD),
        "provider": PROVIDER_EMAIL,
        "email_verified": True,
    }
    values.update(fields)
    return store.insert_user(**values)


@pytest.fixture(name="test_user")
def test_user_fixture(store: CredentialStore) -> User:
    return make_user(store)


def set_cookies(response) -> dict[str, dict]:
    """Parse the Set-Cookie headers of a response into {name: {value, attrs...}}."""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        parsed = SimpleCookie()
        parsed.load(header)
        for name, morsel in parsed.items():
            attrs = {key: morsel[key] for key in morsel.keys() if morsel[key]}
            attrs["value"] = morsel.value
            attrs["raw"] = header
            cookies[name] = attrs
    return cookies


def login(client: TestClient, email: str = "test@example.com", password: str = TEST_PASSWORD) -> dict[str, str]:
    """Log in and load the issued cookies into the client. Returns the cookie values."""
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    values = {name: attrs["value"] for name, attrs in set_cookies(response).items()}
    for name, value in values.items():
        client.cookies.set(name, value)
    return values

"""Tests for per-client rate limiting."""

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from app.rate_limit import client_ip, limiter


@pytest.fixture(name="limited_client")
def limited_client_fixture(client: TestClient):
    limiter.reset()
    limiter.enabled = True
    yield client
    limiter.enabled = False
    limiter.reset()


def make_request(headers: dict[str, str], client=("10.0.0.9", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


class TestLimits:
    """Tests for the 429 responses."""

    def test_login_limited_after_five(self, limited_client: TestClient):
        body = {"email": "nobody@example.com", "password": "password123"}
        for _ in range(5):
            assert limited_client.post("/api/auth/login", json=body).status_code == 401

        response = limited_client.post("/api/auth/login", json=body)
        assert response.status_code == 429
        data = response.json()
        assert data["error"] == "Too many requests"
        assert 1 <= data["retryAfter"] <= 60
        assert response.headers["Retry-After"] == str(data["retryAfter"])

    def test_register_limited_after_three(self, limited_client: TestClient):
        for i in range(3):
            response = limited_client.post(
                "/api/auth/register",
                json={"email": f"user{i}@example.com", "password": "password123", "name": "User"},
            )
            assert response.status_code == 201

        response = limited_client.post(
            "/api/auth/register",
            json={"email": "user9@example.com", "password": "password123", "name": "User"},
        )
        assert response.status_code == 429

    def test_resend_window_is_five_minutes(self, limited_client: TestClient):
        body = {"email": "nobody@example.com"}
        for _ in range(2):
            assert limited_client.post("/api/auth/resend-verification", json=body).status_code == 200

        response = limited_client.post("/api/auth/resend-verification", json=body)
        assert response.status_code == 429
        assert 60 < response.json()["retryAfter"] <= 300

    def test_limits_are_per_route(self, limited_client: TestClient):
        body = {"email": "nobody@example.com", "password": "password123"}
        for _ in range(5):
            limited_client.post("/api/auth/login", json=body)
        assert limited_client.post("/api/auth/login", json=body).status_code == 429
        assert limited_client.post("/api/auth/resend-verification", json={"email": "x@example.com"}).status_code == 200

    def test_limits_are_per_client(self, limited_client: TestClient):
        body = {"email": "nobody@example.com", "password": "password123"}
        for _ in range(6):
            limited_client.post("/api/auth/login", json=body, headers={"X-Forwarded-For": "203.0.113.1"})
        response = limited_client.post("/api/auth/login", json=body, headers={"X-Forwarded-For": "203.0.113.2"})
        assert response.status_code == 401

    def test_malformed_bodies_are_rejected_before_counting(self, limited_client: TestClient):
        for _ in range(6):
            assert limited_client.post("/api/auth/login", json={"email": "not-an-email"}).status_code == 400

        body = {"email": "nobody@example.com", "password": "password123"}
        assert limited_client.post("/api/auth/login", json=body).status_code == 401

    def test_refresh_is_not_limited(self, limited_client: TestClient):
        for _ in range(10):
            assert limited_client.post("/api/auth/refresh").status_code == 401


class TestClientIp:
    """Tests for client address resolution."""

    def test_forwarded_for_first_entry(self):
        request = make_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "198.51.100.2"})
        assert client_ip(request) == "203.0.113.7"

    def test_real_ip(self):
        assert client_ip(make_request({"X-Real-IP": "198.51.100.2"})) == "198.51.100.2"

    def test_socket_peer(self):
        assert client_ip(make_request({})) == "10.0.0.9"

    def test_unknown(self):
        assert client_ip(make_request({}, client=None)) == "unknown"

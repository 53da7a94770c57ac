"""Rate limit check endpoint tests.

Covers: 200/429 bodies, X-RateLimit-* and Retry-After headers, client
identity precedence, validation envelope, API key and JWT principals.
"""

import pytest
from jose import jwt

from beacon.config import settings


@pytest.fixture(autouse=True)
def _small_limits(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_max_requests", 2)
    monkeypatch.setattr(settings, "rate_limit_window_seconds", 60)
    monkeypatch.setattr(settings, "rate_limit_backend", "database")


@pytest.mark.asyncio
async def test_allowed_then_limited_with_headers(client):
    first = await client.post("/api/v1/rate-limit/check", json={"endpoint": "/api/x", "userId": "u1"})
    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["limited"] is False
    assert body["remaining"] == 1
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert "X-RateLimit-Reset" in first.headers
    assert "Retry-After" not in first.headers

    await client.post("/api/v1/rate-limit/check", json={"endpoint": "/api/x", "userId": "u1"})
    limited = await client.post("/api/v1/rate-limit/check", json={"endpoint": "/api/x", "userId": "u1"})
    assert limited.status_code == 429
    body = limited.json()
    assert body["error"] == "Rate limit exceeded"
    assert body["current_requests"] == 2
    assert 1 <= int(limited.headers["Retry-After"]) <= 60
    assert limited.headers["X-RateLimit-Remaining"] == "0"


@pytest.mark.asyncio
async def test_forwarded_address_used_without_user_id(client):
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    for _ in range(2):
        assert (await client.post("/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers=headers)).status_code == 200
    limited = await client.post("/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers=headers)
    assert limited.status_code == 429

    other = await client.post(
        "/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers={"X-Forwarded-For": "198.51.100.2"}
    )
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_missing_endpoint_is_validation_error(client):
    response = await client.post("/api/v1/rate-limit/check", json={"userId": "u1"})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["trace_id"].startswith("trc_")


@pytest.mark.asyncio
async def test_jwt_subject_identifies_client(client):
    token = jwt.encode(
        {"sub": "user-42", "aud": settings.jwt_audience, "iss": settings.jwt_issuer},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    headers = {"Authorization": f"Bearer {token}"}
    for _ in range(2):
        await client.post("/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers=headers)
    limited = await client.post("/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers=headers)
    assert limited.status_code == 429

    # A body userId cannot move an authenticated caller to a fresh window
    spoofed = await client.post(
        "/api/v1/rate-limit/check", json={"endpoint": "/e", "userId": "someone-else"}, headers=headers
    )
    assert spoofed.status_code == 429


@pytest.mark.asyncio
async def test_invalid_bearer_token_rejected(client):
    response = await client.post(
        "/api/v1/rate-limit/check",
        json={"endpoint": "/e"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


@pytest.mark.asyncio
async def test_unknown_api_key_rejected_known_key_accepted(client, monkeypatch):
    monkeypatch.setattr(settings, "api_keys", ["k-live-123"])
    bad = await client.post("/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers={"X-API-Key": "nope"})
    assert bad.status_code == 401

    good = await client.post(
        "/api/v1/rate-limit/check", json={"endpoint": "/e"}, headers={"X-API-Key": "k-live-123"}
    )
    assert good.status_code == 200

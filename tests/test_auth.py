"""Tests for access codes and the FastAPI auth dependencies."""
from __future__ import annotations

import time

import jwt
import pytest

from huggnote.auth.tokens import AccessCodeError, generate_access_code, validate_access_code
from huggnote.config import settings

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"


class TestAccessCodes:

    def test_generate_and_validate(self, token_secret):
        token = generate_access_code(user_id=TEST_USER_ID, duration_hours=2)
        claims = validate_access_code(token)
        assert claims["type"] == "access"
        assert claims["sub"] == TEST_USER_ID
        assert claims["exp"] - claims["iat"] == 2 * 3600

    def test_durations_add_up(self, token_secret):
        token = generate_access_code(duration_days=1, duration_hours=1, duration_minutes=30)
        claims = validate_access_code(token)
        assert claims["exp"] - claims["iat"] == 25 * 3600 + 1800
        assert "sub" not in claims

    def test_duration_required(self, token_secret):
        with pytest.raises(AccessCodeError, match="at least one"):
            generate_access_code(user_id=TEST_USER_ID)

    def test_secret_required(self, monkeypatch):
        monkeypatch.setattr(settings, "access_token_secret", None)
        with pytest.raises(AccessCodeError, match="not configured"):
            generate_access_code(duration_hours=1)

    def test_expired_token(self, token_secret):
        now = int(time.time())
        token = jwt.encode(
            {"type": "access", "iat": now - 7200, "exp": now - 3600},
            token_secret,
            algorithm="HS256",
        )
        with pytest.raises(AccessCodeError, match="expired"):
            validate_access_code(token)

    def test_wrong_type_rejected(self, token_secret):
        now = int(time.time())
        token = jwt.encode(
            {"type": "refresh", "iat": now, "exp": now + 3600},
            token_secret,
            algorithm="HS256",
        )
        with pytest.raises(AccessCodeError, match="type"):
            validate_access_code(token)

    def test_wrong_secret_rejected(self, token_secret):
        token = generate_access_code(duration_hours=1)
        settings.access_token_secret = "another-secret-" + "1" * 49
        with pytest.raises(AccessCodeError, match="Invalid access code"):
            validate_access_code(token)


class TestAuthDependencies:

    @pytest.mark.asyncio
    async def test_history_requires_token(self, client, token_secret):
        resp = await client.get("/api/v1/history")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_history_rejects_garbage_token(self, client, token_secret):
        resp = await client.get(
            "/api/v1/history", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid or expired access code."

    @pytest.mark.asyncio
    async def test_token_without_user_rejected(self, client, token_secret):
        token = generate_access_code(duration_hours=1)
        resp = await client.get(
            "/api/v1/history", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert "not bound to a user" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_history_with_valid_token(self, client, auth_headers):
        resp = await client.get("/api/v1/history", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"history": []}

    @pytest.mark.asyncio
    async def test_guest_may_create_form(self, client, make_form_body):
        resp = await client.post("/api/v1/compose/forms", json=make_form_body())
        assert resp.status_code == 201
        assert resp.json()["form"]["userId"] is None

    @pytest.mark.asyncio
    async def test_invalid_token_on_optional_route(self, client, token_secret, make_form_body):
        resp = await client.post(
            "/api/v1/compose/forms",
            json=make_form_body(),
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert resp.status_code == 401

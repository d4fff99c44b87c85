"""Tests for the health endpoints."""
from __future__ import annotations

import pytest

from huggnote.config import settings


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["service"] == "Huggnote"


@pytest.mark.asyncio
async def test_full_health_degraded_without_keys(client, monkeypatch):
    monkeypatch.setattr(settings, "llm_api_key", None)
    monkeypatch.setattr(settings, "musicgpt_api_key", "mg-key")
    monkeypatch.setattr(settings, "stripe_secret_key", None)
    resp = await client.get("/api/v1/health/full")
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["dependencies"]["llm"]["status"] == "unconfigured"
    assert data["dependencies"]["musicgpt"]["status"] == "ok"


@pytest.mark.asyncio
async def test_full_health_ok(client, monkeypatch):
    monkeypatch.setattr(settings, "llm_api_key", "llm-key")
    monkeypatch.setattr(settings, "musicgpt_api_key", "mg-key")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test")
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")
    resp = await client.get("/api/v1/health/full")
    assert resp.json()["status"] == "ok"

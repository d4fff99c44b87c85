"""Health check endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from huggnote.config import settings

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/health/full")
async def full_health_check() -> dict[str, Any]:
    """
    Health check including configuration of the outbound services.

    Reports whether the LLM, MusicGPT and Stripe credentials are present;
    no external calls are made.
    """
    deps = {
        "llm": {
            "status": "ok" if settings.llm_api_key else "unconfigured",
            "model": settings.llm_model,
        },
        "musicgpt": {
            "status": "ok" if settings.musicgpt_api_key else "unconfigured",
            "webhook": "set" if settings.musicgpt_webhook_url else "unset",
        },
        "stripe": {
            "status": "ok" if settings.stripe_secret_key and settings.stripe_webhook_secret
            else "unconfigured",
        },
    }
    all_ok = all(dep["status"] == "ok" for dep in deps.values())
    return {
        "status": "ok" if all_ok else "degraded",
        "service": settings.app_name,
        "version": settings.app_version,
        "dependencies": deps,
    }

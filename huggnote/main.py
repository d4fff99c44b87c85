"""
Huggnote API

FastAPI application behind the compose flow: song prompts, generation
requests, order records, MusicGPT and Stripe webhooks, and share playback.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from huggnote.config import settings
from huggnote.api.routes import checkout, forms, generate, health, library, prompts, webhooks
from huggnote.db import init_db, close_db, session_scope
from huggnote.services.records import purge_expired_forms
from huggnote.services.llm_client import close_llm_client
from huggnote.services.musicgpt import close_musicgpt_client


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Audio playback only; no device access
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), "
            "gyroscope=(), magnetometer=(), microphone=(), usb=()"
        )

        return response

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Rate limiter - uses IP address as key
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    logger.info("LLM model: %s", settings.llm_model)
    logger.info("MusicGPT service: %s", settings.musicgpt_base_url)
    if not settings.musicgpt_webhook_url:
        logger.warning("⚠️ HUGGNOTE_MUSICGPT_WEBHOOK_URL unset: generation results will never arrive")

    try:
        await init_db()
    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        raise

    # Production: refuse weak or missing DB password
    if not settings.debug and settings.database_url and "postgres" in settings.database_url:
        pw = (settings.huggnote_db_password or "").strip()
        if not pw or pw == "changeme123":
            raise RuntimeError(
                "Production requires HUGGNOTE_DB_PASSWORD set to a strong value. "
                "Generate with: openssl rand -hex 16"
            )

    async with session_scope() as db:
        await purge_expired_forms(db)

    yield

    logger.info("Shutting down...")
    await close_db()
    await close_llm_client()
    await close_musicgpt_client()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Huggnote: personalised songs, composed on demand.",
    lifespan=lifespan,
    # Set HUGGNOTE_DEBUG=true locally to enable the docs
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    _rate_limit_exceeded_handler,  # type: ignore[arg-type]  # slowapi handler signature is (Request, RateLimitExceeded)
)

# Security headers middleware (added first, runs last)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(prompts.router, prefix="/api/v1", tags=["prompts"])
app.include_router(generate.router, prefix="/api/v1", tags=["generate"])
app.include_router(forms.router, prefix="/api/v1", tags=["forms"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["webhooks"])
app.include_router(checkout.router, prefix="/api/v1", tags=["checkout"])
app.include_router(library.router, prefix="/api/v1", tags=["library"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }

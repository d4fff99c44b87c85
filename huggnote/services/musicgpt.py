"""MusicGPT Client.

Client for submitting song generation tasks to MusicGPT. Submission is
asynchronous on MusicGPT's side: the POST returns a ``task_id`` straight
away and the finished audio arrives later through the webhook
(``POST /api/v1/webhooks/musicgpt``).

Submissions are billed, so only connection failures (nothing was sent)
are retried here. Rate limiting, gateway errors and read timeouts go back to
the caller, which owns the retry and pacing policy.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from huggnote.config import settings

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3
_RETRY_DELAYS = [2, 5]  # seconds between connection attempts

_CONNECTION_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30.0,
)


class MusicGPTError(Exception):
    """MusicGPT rejected or failed a submission."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class MusicGPTTask:
    task_id: str
    eta: Optional[int] = None
    conversion_id: Optional[str] = None


def _voice_fields(voice_hint: Optional[str], style: str) -> tuple[dict[str, Any], str]:
    """Map a form voice choice onto MusicGPT's ``gender`` or the style text."""
    if not voice_hint:
        return {}, style
    hint = voice_hint.strip().lower()
    if hint in ("male", "female"):
        return {"gender": hint}, style
    vocals = f"{voice_hint.strip()} vocals"
    return {}, f"{style}, {vocals}" if style else vocals


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("message") or data.get("detail") or data)
    return str(data)


class MusicGPTClient:
    """Async client for the MusicGPT public API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        webhook_url: Optional[str] = None,
    ):
        self.base_url = (base_url or settings.musicgpt_base_url).rstrip("/")
        self.api_key = api_key or settings.musicgpt_api_key
        self.timeout = timeout or settings.musicgpt_timeout
        self.webhook_url = webhook_url or settings.musicgpt_webhook_url
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            # MusicGPT expects the bare key, not a Bearer token.
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=5.0,
                    read=float(self.timeout),
                    write=10.0,
                    pool=5.0,
                ),
                limits=_CONNECTION_LIMITS,
                headers={"Authorization": self.api_key or ""},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def submit(
        self,
        prompt: str,
        music_style: str = "",
        voice_hint: Optional[str] = None,
        instrumental: bool = False,
    ) -> MusicGPTTask:
        """Start one generation task. Raises ``MusicGPTError``."""
        if not self.configured:
            raise MusicGPTError("MusicGPT API key not configured", status_code=500)

        voice, style = _voice_fields(voice_hint, music_style)
        payload: dict[str, Any] = {
            "prompt": prompt,
            "make_instrumental": instrumental,
            "wait_audio": False,
            **voice,
        }
        if style:
            payload["music_style"] = style
        if self.webhook_url:
            payload["webhook_url"] = self.webhook_url

        last_error = "MusicGPT request failed"
        for attempt in range(_MAX_ATTEMPTS):
            try:
                response = await self.client.post(f"{self.base_url}/MusicAI", json=payload)
            except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
                last_error = f"MusicGPT unreachable: {exc}"
                logger.warning("⚠️ %s (attempt %d/%d)", last_error, attempt + 1, _MAX_ATTEMPTS)
                if attempt < _MAX_ATTEMPTS - 1:
                    await asyncio.sleep(_RETRY_DELAYS[attempt])
                continue
            except httpx.HTTPError as exc:
                logger.error("❌ MusicGPT request failed after sending: %s", exc)
                raise MusicGPTError(f"MusicGPT request failed: {exc}", status_code=502) from exc

            if response.status_code == 429:
                logger.warning("⚠️ MusicGPT rate limited the request (429)")
                raise MusicGPTError("Rate limit reached. Please wait before trying again.", 429)
            if response.status_code >= 500:
                logger.error("❌ MusicGPT unavailable (%d)", response.status_code)
                raise MusicGPTError(f"MusicGPT unavailable ({response.status_code})", status_code=502)
            if response.status_code >= 400:
                message = _error_message(response)
                logger.error("❌ MusicGPT error %d: %s", response.status_code, message)
                raise MusicGPTError(message, response.status_code)
            return self._parse_task(response.json())

        raise MusicGPTError(last_error, status_code=502)

    @staticmethod
    def _parse_task(data: dict[str, Any]) -> MusicGPTTask:
        task_id = data.get("task_id") or data.get("id")
        if not task_id:
            raise MusicGPTError(
                str(data.get("message") or "MusicGPT returned no task id"), status_code=502
            )
        eta = data.get("eta")
        task = MusicGPTTask(
            task_id=str(task_id),
            eta=int(eta) if isinstance(eta, (int, float)) else None,
            conversion_id=data.get("conversion_id_1"),
        )
        logger.info("✅ MusicGPT task %s started (eta=%s)", task.task_id[:8], task.eta)
        return task


_shared_client: Optional[MusicGPTClient] = None


def get_musicgpt_client() -> MusicGPTClient:
    """Return the process-wide MusicGPTClient singleton."""
    global _shared_client
    if _shared_client is None:
        _shared_client = MusicGPTClient()
    return _shared_client


async def close_musicgpt_client() -> None:
    """Close the singleton client (call from FastAPI lifespan shutdown)."""
    global _shared_client
    if _shared_client is not None:
        await _shared_client.close()
        _shared_client = None

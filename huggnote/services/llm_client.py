"""
LLM client for the prompt builder.

Talks to any OpenAI-compatible chat completions endpoint (Groq by default).
Only plain text completions are needed: one user message in, one string out.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from huggnote.config import settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class LLMError(Exception):
    """The LLM could not produce a completion."""


class LLMClient:
    """Async chat-completions client with a shared connection pool."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.api_key = api_key or settings.llm_api_key
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_retries: int = 2,
    ) -> str:
        """Send a single-message chat completion and return the reply text.

        Retries 429/5xx and timeouts with exponential backoff; other HTTP
        errors fail immediately. Raises ``LLMError``.
        """
        if not self.configured:
            raise LLMError("LLM API key is not configured on the server.")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature if temperature is not None else settings.llm_temperature,
            "max_tokens": max_tokens or settings.llm_max_tokens,
        }

        last_error: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            if attempt > 0:
                backoff = 2 ** attempt
                logger.warning("Retry %d/%d after %ds", attempt, max_retries, backoff)
                await asyncio.sleep(backoff)

            start = time.time()
            try:
                response = await self.client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code in _RETRYABLE_STATUS:
                    continue
                logger.error("LLM error %d: %s", e.response.status_code, e.response.text[:500])
                raise LLMError(f"LLM API error: {e.response.status_code}") from e
            except httpx.TimeoutException as e:
                last_error = e
                continue
            except httpx.HTTPError as e:
                last_error = e
                continue

            data = response.json()
            usage = data.get("usage", {})
            logger.info(
                "LLM: %.2fs, %s prompt, %s completion tokens",
                time.time() - start,
                usage.get("prompt_tokens", 0),
                usage.get("completion_tokens", 0),
            )
            choices = data.get("choices") or [{}]
            content = (choices[0].get("message") or {}).get("content") or ""
            return content.strip()

        raise LLMError(f"LLM request failed after retries: {last_error}")


_shared_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Return the process-wide LLMClient singleton."""
    global _shared_client
    if _shared_client is None:
        _shared_client = LLMClient()
    return _shared_client


async def close_llm_client() -> None:
    """Close the singleton client (call from FastAPI lifespan shutdown)."""
    global _shared_client
    if _shared_client is not None:
        await _shared_client.close()
        _shared_client = None

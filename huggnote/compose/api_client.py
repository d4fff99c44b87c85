"""Huggnote API HTTP client used by the compose orchestrator.

Wraps :class:`httpx.AsyncClient`. When an access token is configured it is
sent as ``Authorization: Bearer <token>``; the raw value is never logged.

Usage::

    async with HuggnoteClient(base_url="http://localhost:10001/api/v1") as api:
        record = await api.get_form(form_id)

Every failure is converted to a compose-level exception
(:class:`RecordServiceError`, :class:`RateLimitedError`,
:class:`GenerationRequestError`, :class:`CheckoutError`) so callers never
handle ``httpx`` types directly.
"""
from __future__ import annotations

import logging
import types
from typing import Any

import httpx

from huggnote.compose.errors import (
    CheckoutError,
    GenerationRequestError,
    PromptBuildError,
    RateLimitedError,
    RecordServiceError,
)
from huggnote.config import settings
from huggnote.models.forms import GeneratedPrompt, OrderForm
from huggnote.models.records import OrderPatch, OrderRecord

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message") or data.get("error")
        if detail:
            return str(detail)
    return response.text[:200]


class HuggnoteClient:
    """Async HTTP client for the Huggnote API.

    Args:
        base_url: API base including the version prefix.
        token: Optional bearer token (guests compose without one).
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token = token if token is not None else settings.api_token
        self._timeout = timeout or settings.record_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    # ------------------------------------------------------------------
    # Async context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HuggnoteClient:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
            logger.debug("✅ HuggnoteClient auth header set (Bearer ***)")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        """Return the underlying client or raise if not inside context manager."""
        if self._client is None:
            raise RuntimeError("HuggnoteClient must be used as an async context manager.")
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._require_client().request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RecordServiceError(f"{method} {path} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Order record service
    # ------------------------------------------------------------------

    async def get_form(self, form_id: str) -> OrderRecord | None:
        response = await self._request("GET", f"/compose/forms/{form_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise RecordServiceError(_error_detail(response), response.status_code)
        return OrderRecord.model_validate(response.json()["form"])

    async def create_form(
        self,
        form_id: str,
        package_type: str,
        form_data: OrderForm,
        generated_prompts: dict[int, GeneratedPrompt],
    ) -> OrderRecord:
        body = {
            "formId": form_id,
            "packageType": package_type,
            "songCount": len(form_data.songs),
            "formData": form_data.to_wire(),
            "generatedPrompts": {str(k): v.to_wire() for k, v in generated_prompts.items()},
        }
        response = await self._request("POST", "/compose/forms", json=body)
        if response.status_code not in (200, 201):
            raise RecordServiceError(_error_detail(response), response.status_code)
        return OrderRecord.model_validate(response.json()["form"])

    async def patch_form(self, form_id: str, patch: OrderPatch) -> OrderRecord:
        response = await self._request(
            "PATCH", f"/compose/forms/{form_id}", json=patch.to_wire()
        )
        if response.status_code != 200:
            raise RecordServiceError(_error_detail(response), response.status_code)
        return OrderRecord.model_validate(response.json()["form"])

    async def claim_song(self, form_id: str, song_index: int) -> bool:
        """Take the generation claim for a song; False if already held."""
        response = await self._request(
            "POST", f"/compose/forms/{form_id}/songs/{song_index}/claim"
        )
        if response.status_code == 409:
            return False
        if response.status_code != 200:
            raise RecordServiceError(_error_detail(response), response.status_code)
        return True

    async def reset_song(self, form_id: str, song_index: int) -> OrderRecord:
        response = await self._request(
            "DELETE", f"/compose/forms/{form_id}/songs/{song_index}"
        )
        if response.status_code != 200:
            raise RecordServiceError(_error_detail(response), response.status_code)
        return OrderRecord.model_validate(response.json()["form"])

    async def list_forms(self) -> list[OrderRecord]:
        response = await self._request("GET", "/compose/forms")
        if response.status_code != 200:
            raise RecordServiceError(_error_detail(response), response.status_code)
        return [OrderRecord.model_validate(f) for f in response.json()["forms"]]

    async def history(self) -> list[dict[str, Any]]:
        response = await self._request("GET", "/history")
        if response.status_code != 200:
            raise RecordServiceError(_error_detail(response), response.status_code)
        return list(response.json()["history"])

    # ------------------------------------------------------------------
    # Prompt builder
    # ------------------------------------------------------------------

    async def create_song_prompt(self, form: OrderForm, song_index: int) -> GeneratedPrompt:
        body = {
            **form.songs[song_index].to_wire(),
            "senderName": form.sender_name,
            "senderEmail": form.sender_email,
            "senderPhone": form.sender_phone,
        }
        response = await self._request("POST", "/create-song-prompt", json=body)
        if response.status_code != 200:
            raise PromptBuildError(
                f"Failed to generate prompt for song {song_index + 1}: {_error_detail(response)}"
            )
        data = response.json()
        if not data.get("success") or not data.get("prompt"):
            raise PromptBuildError(f"Failed to generate prompt for song {song_index + 1}")
        return GeneratedPrompt(prompt=data["prompt"], music_style=data.get("musicStyle", ""))

    # ------------------------------------------------------------------
    # Generation service
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        music_style: str,
        voice_hint: str | None = None,
    ) -> str:
        """Request one variation and return its task id."""
        body: dict[str, Any] = {
            "prompt": prompt,
            "musicStyle": music_style,
            "instrumental": False,
        }
        if voice_hint:
            body["voiceHint"] = voice_hint
        try:
            response = await self._require_client().post("/generate", json=body)
        except httpx.HTTPError as exc:
            raise GenerationRequestError(f"Generation request failed: {exc}") from exc
        if response.status_code == 429:
            raise RateLimitedError()
        if response.status_code != 200:
            raise GenerationRequestError(_error_detail(response), response.status_code)
        task_id = response.json().get("taskId")
        if not task_id:
            raise GenerationRequestError("No task id in generation response")
        return str(task_id)

    # ------------------------------------------------------------------
    # Payment session service
    # ------------------------------------------------------------------

    async def create_checkout(
        self,
        form_id: str,
        selections: dict[int, int],
        task_ids: dict[int, str],
    ) -> str:
        body = {
            "formId": form_id,
            "selections": {str(k): v for k, v in selections.items()},
            "taskIds": {str(k): v for k, v in task_ids.items()},
        }
        try:
            response = await self._require_client().post("/checkout", json=body)
        except httpx.HTTPError as exc:
            raise CheckoutError(f"Checkout request failed: {exc}") from exc
        if response.status_code != 200:
            raise CheckoutError(
                f"Failed to create checkout session: {_error_detail(response)}"
            )
        url = response.json().get("url")
        if not url:
            raise CheckoutError("Failed to create checkout session. Please try again.")
        return str(url)

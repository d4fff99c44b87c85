"""Tests for HuggnoteClient error mapping (httpx.MockTransport)."""
from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from huggnote.compose.api_client import HuggnoteClient
from huggnote.compose.errors import (
    CheckoutError,
    GenerationRequestError,
    PromptBuildError,
    RateLimitedError,
    RecordServiceError,
)
from huggnote.models.forms import OrderForm
from huggnote.models.records import OrderPatch

BASE = "http://test/api/v1"


def client_for(handler: Callable[[httpx.Request], httpx.Response], token: str | None = "tok") -> HuggnoteClient:
    return HuggnoteClient(base_url=BASE, token=token, transport=httpx.MockTransport(handler))


def _form(form_id: str = "form_1_abc") -> dict:
    return {"formId": form_id, "songCount": 1, "taskIds": {"0": {"1": "t1", "2": None}}}


@pytest.mark.asyncio
async def test_bearer_header_sent():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"form": _form()})

    async with client_for(handler) as api:
        await api.get_form("form_1_abc")
    assert seen[0].headers["Authorization"] == "Bearer tok"
    assert seen[0].url.path == "/api/v1/compose/forms/form_1_abc"


@pytest.mark.asyncio
async def test_guest_sends_no_auth_header():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(404, json={"detail": "Form not found"})

    async with client_for(handler, token="") as api:
        assert not api.authenticated
        assert await api.get_form("nope") is None
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_get_form_parses_failed_markers():
    async with client_for(lambda r: httpx.Response(200, json={"form": _form()})) as api:
        record = await api.get_form("form_1_abc")
    assert record.task_ids == {0: {1: "t1", 2: None}}


@pytest.mark.asyncio
async def test_server_error_raises_record_error():
    async with client_for(lambda r: httpx.Response(500, json={"detail": "boom"})) as api:
        with pytest.raises(RecordServiceError) as exc_info:
            await api.get_form("form_1_abc")
    assert exc_info.value.status_code == 500
    assert "boom" in str(exc_info.value)


@pytest.mark.asyncio
async def test_connection_error_raises_record_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with client_for(handler) as api:
        with pytest.raises(RecordServiceError, match="refused"):
            await api.patch_form("form_1_abc", OrderPatch(status="generating"))


@pytest.mark.asyncio
async def test_patch_keeps_null_task_ids_on_the_wire():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"form": _form()})

    async with client_for(handler) as api:
        await api.patch_form("form_1_abc", OrderPatch(task_ids={0: {2: None}}))
    assert bodies[0] == {"taskIds": {"0": {"2": None}}}


@pytest.mark.asyncio
async def test_claim_conflict_is_false():
    responses = iter([httpx.Response(200, json={"claimed": True}), httpx.Response(409)])
    async with client_for(lambda r: next(responses)) as api:
        assert await api.claim_song("form_1_abc", 0) is True
        assert await api.claim_song("form_1_abc", 0) is False


@pytest.mark.asyncio
async def test_generate_rate_limited():
    async with client_for(lambda r: httpx.Response(429, json={"detail": "slow down"})) as api:
        with pytest.raises(RateLimitedError):
            await api.generate("prompt", "pop")


@pytest.mark.asyncio
async def test_generate_error_and_success():
    responses = iter([
        httpx.Response(502, json={"detail": "MusicGPT unavailable"}),
        httpx.Response(200, json={"taskId": "task-7", "eta": 90}),
    ])
    async with client_for(lambda r: next(responses)) as api:
        with pytest.raises(GenerationRequestError) as exc_info:
            await api.generate("prompt", "pop", voice_hint="male")
        assert not isinstance(exc_info.value, RateLimitedError)
        assert await api.generate("prompt", "pop") == "task-7"


@pytest.mark.asyncio
async def test_create_song_prompt(make_form_payload):
    form = OrderForm.model_validate(make_form_payload(1))
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "prompt": "P", "musicStyle": "S"})

    async with client_for(handler) as api:
        prompt = await api.create_song_prompt(form, 0)
    assert (prompt.prompt, prompt.music_style) == ("P", "S")
    assert seen[0]["recipientName"] == "Anna"
    assert seen[0]["senderEmail"] == "sam@example.com"


@pytest.mark.asyncio
async def test_create_song_prompt_failure(make_form_payload):
    form = OrderForm.model_validate(make_form_payload(1))
    async with client_for(lambda r: httpx.Response(502, json={"detail": "LLM down"})) as api:
        with pytest.raises(PromptBuildError, match="song 1"):
            await api.create_song_prompt(form, 0)


@pytest.mark.asyncio
async def test_checkout():
    responses = iter([
        httpx.Response(200, json={"url": "https://pay.test/1", "sessionId": "cs_1"}),
        httpx.Response(400, json={"detail": "Task id for song 1 does not match the order."}),
    ])
    async with client_for(lambda r: next(responses)) as api:
        assert await api.create_checkout("form_1_abc", {0: 1}, {0: "t1"}) == "https://pay.test/1"
        with pytest.raises(CheckoutError, match="does not match"):
            await api.create_checkout("form_1_abc", {0: 1}, {0: "t2"})


@pytest.mark.asyncio
async def test_requires_context_manager():
    api = HuggnoteClient(base_url=BASE, token="tok")
    with pytest.raises(RuntimeError):
        await api.get_form("form_1_abc")

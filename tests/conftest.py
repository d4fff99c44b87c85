"""Pytest configuration and fixtures."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from huggnote.config import settings
from huggnote.db import database
from huggnote.db.database import Base, get_db
from huggnote.main import app
from huggnote.models.forms import OrderForm
from huggnote.models.records import OrderPatch, OrderRecord, clear_song, merge_record

TEST_SECRET = "test-secret-" + "0" * 52
TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work outside the project root."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


# -----------------------------------------------------------------------------
# Form fixtures
# -----------------------------------------------------------------------------


def song_payload(name: str = "Anna", **overrides: Any) -> dict[str, Any]:
    song = {
        "recipientName": name,
        "relationship": "sister",
        "senderMessage": "Merry Christmas!",
        "theme": "christmas",
        "aboutThem": "She always makes everyone laugh at dinner.",
        "voiceType": "female",
        "genreStyle": "pop",
        "vibe": "joyful",
        "style": "bright-uplifting",
        "festiveSoundLevel": "festive",
    }
    song.update(overrides)
    return song


def form_payload(song_count: int = 1) -> dict[str, Any]:
    names = ["Anna", "Ben", "Clara", "Dan", "Eva"]
    return {
        "senderName": "Sam",
        "senderEmail": "sam@example.com",
        "senderPhone": "+3531234567",
        "songs": [song_payload(names[i]) for i in range(song_count)],
    }


@pytest.fixture
def order_form() -> OrderForm:
    return OrderForm.model_validate(form_payload(1))


@pytest.fixture
def two_song_form() -> OrderForm:
    return OrderForm.model_validate(form_payload(2))


# -----------------------------------------------------------------------------
# Database + ASGI client
# -----------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_session():
    """Create an in-memory test database session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    old_engine = database._engine
    old_factory = database._async_session_factory
    database._engine = engine
    database._async_session_factory = async_session_factory
    try:
        async with async_session_factory() as session:
            async def override_get_db():
                yield session
                await session.commit()
            app.dependency_overrides[get_db] = override_get_db
            yield session
            app.dependency_overrides.clear()
    finally:
        database._engine = old_engine
        database._async_session_factory = old_factory
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session):
    """Async test client against the FastAPI app (no lifespan)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------


@pytest.fixture
def token_secret(monkeypatch):
    monkeypatch.setattr(settings, "access_token_secret", TEST_SECRET)
    return TEST_SECRET


@pytest.fixture
def auth_token(token_secret):
    """Access code for TEST_USER_ID (1 hour)."""
    from huggnote.auth.tokens import generate_access_code
    return generate_access_code(user_id=TEST_USER_ID, duration_hours=1)


@pytest.fixture
def auth_headers(auth_token):
    return {
        "Authorization": f"Bearer {auth_token}",
        "Content-Type": "application/json",
    }


# -----------------------------------------------------------------------------
# Compose client fakes
# -----------------------------------------------------------------------------


class FakeClock:
    """Virtual clock: ``sleep`` advances time instantly and yields once."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


_FORM_PATH = re.compile(r"^/api/v1/compose/forms/([^/]+)$")
_CLAIM_PATH = re.compile(r"^/api/v1/compose/forms/([^/]+)/songs/(\d+)/claim$")
_SONG_PATH = re.compile(r"^/api/v1/compose/forms/([^/]+)/songs/(\d+)$")


class FakeServer:
    """In-memory Huggnote API served through ``httpx.MockTransport``.

    Applies the same merge rules as the real server so compose-client tests
    exercise the full mirror/claim/poll cycle without a database.
    """

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock
        self.forms: dict[str, OrderRecord] = {}
        self.claims: set[tuple[str, int]] = set()
        self.prompt_calls: list[dict[str, Any]] = []
        self.generate_calls: list[dict[str, Any]] = []
        self.generate_times: list[float] = []
        # Every form's task ids as seen by each /generate call.
        self.generate_snapshots: list[dict[str, Any]] = []
        self.checkout_calls: list[dict[str, Any]] = []
        self.history_items: list[dict[str, Any]] = []
        # Scripted /generate outcomes in call order: an error status, or None to succeed.
        self.generate_failures: list[Optional[int]] = []
        self.auto_deliver = False
        self.down = False
        self.on_get: Optional[Callable[["FakeServer", str], None]] = None
        self._next_task = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # -- test helpers --------------------------------------------------------

    def deliver(self, form_id: str, song_index: int, variation_id: int, audio: Optional[str] = None) -> None:
        """Simulate the MusicGPT webhook landing a result in the record."""
        url = audio or f"https://cdn.test/{form_id}/{song_index}/{variation_id}.mp3"
        self.forms[form_id] = merge_record(self.forms[form_id], OrderPatch(
            audio_urls={song_index: {variation_id: url}},
            lyrics={song_index: {variation_id: f"lyrics {song_index}/{variation_id}"}},
        ))

    def deliver_song(self, form_id: str, song_index: int) -> None:
        for vid, task_id in self.forms[form_id].task_ids.get(song_index, {}).items():
            if task_id:
                self.deliver(form_id, song_index, vid)

    # -- routing -------------------------------------------------------------

    def _form(self, record: OrderRecord, status: int = 200) -> httpx.Response:
        return httpx.Response(status, json={"form": record.model_dump(mode="json", by_alias=True)})

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("server down", request=request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if request.method == "POST" and path == "/api/v1/create-song-prompt":
            self.prompt_calls.append(body)
            return httpx.Response(200, json={
                "success": True,
                "prompt": f"A joyful song for {body['recipientName']}",
                "musicStyle": "pop, festive",
            })

        if request.method == "POST" and path == "/api/v1/generate":
            self.generate_calls.append(body)
            self.generate_snapshots.append({
                fid: {song: dict(slots) for song, slots in r.task_ids.items()}
                for fid, r in self.forms.items()
            })
            if self.clock is not None:
                self.generate_times.append(self.clock.now)
            status = self.generate_failures.pop(0) if self.generate_failures else None
            if status is not None:
                return httpx.Response(status, json={"detail": "generation failed"})
            self._next_task += 1
            return httpx.Response(200, json={"taskId": f"task-{self._next_task}", "eta": 120})

        if request.method == "POST" and path == "/api/v1/checkout":
            self.checkout_calls.append(body)
            return httpx.Response(200, json={"url": "https://checkout.test/s/1", "sessionId": "cs_1"})

        if request.method == "GET" and path == "/api/v1/history":
            return httpx.Response(200, json={"history": self.history_items})

        if request.method == "POST" and path == "/api/v1/compose/forms":
            record = OrderRecord(form_id=body["formId"])
            record = merge_record(record, OrderPatch.model_validate({
                "formData": body["formData"],
                "packageType": body["packageType"],
                "generatedPrompts": body["generatedPrompts"],
            }))
            self.forms[record.form_id] = record
            return self._form(record, 201)

        if request.method == "GET" and path == "/api/v1/compose/forms":
            return httpx.Response(200, json={"forms": [
                r.model_dump(mode="json", by_alias=True) for r in self.forms.values()
            ]})

        m = _CLAIM_PATH.match(path)
        if m and request.method == "POST":
            form_id, song = m.group(1), int(m.group(2))
            if form_id not in self.forms:
                return httpx.Response(404, json={"detail": "Form not found"})
            key = (form_id, song)
            if key in self.claims or self.forms[form_id].task_ids.get(song):
                return httpx.Response(409, json={"detail": "already claimed"})
            self.claims.add(key)
            return httpx.Response(200, json={"claimed": True, "formId": form_id, "songIndex": song})

        m = _SONG_PATH.match(path)
        if m and request.method == "DELETE":
            form_id, song = m.group(1), int(m.group(2))
            self.forms[form_id] = clear_song(self.forms[form_id], song)
            self.claims.discard((form_id, song))
            return self._form(self.forms[form_id])

        m = _FORM_PATH.match(path)
        if m:
            form_id = m.group(1)
            if request.method == "GET":
                if self.on_get is not None:
                    self.on_get(self, form_id)
                if form_id not in self.forms:
                    return httpx.Response(404, json={"detail": "Form not found"})
                if self.auto_deliver:
                    for song in list(self.forms[form_id].task_ids):
                        self.deliver_song(form_id, song)
                return self._form(self.forms[form_id])
            if request.method == "PATCH":
                if form_id not in self.forms:
                    return httpx.Response(404, json={"detail": "Form not found"})
                if self.forms[form_id].status == "paid":
                    return httpx.Response(409, json={"detail": "Paid orders cannot be changed"})
                patch = OrderPatch.model_validate(body)
                self.forms[form_id] = merge_record(self.forms[form_id], patch)
                return self._form(self.forms[form_id])

        return httpx.Response(404, json={"detail": f"No route {request.method} {path}"})


@pytest.fixture
def server(clock) -> FakeServer:
    return FakeServer(clock)


API_BASE = "http://test/api/v1"


@pytest_asyncio.fixture
async def api(server):
    """Authenticated compose client wired to the fake server."""
    from huggnote.compose.api_client import HuggnoteClient
    async with HuggnoteClient(base_url=API_BASE, token="test-token", transport=server.transport) as c:
        yield c


@pytest.fixture
def local(tmp_path):
    from huggnote.compose.local_store import LocalStore
    return LocalStore(tmp_path / "state")


@pytest.fixture
def mirror(api, local):
    from huggnote.compose.mirror import PersistenceMirror
    return PersistenceMirror(api, local)


@pytest.fixture
def make_form_payload() -> Callable[[int], dict[str, Any]]:
    return form_payload


def form_request_body(form_id: str = "form_1700000000000_abcdefghi", song_count: int = 1) -> dict[str, Any]:
    """Body for ``POST /api/v1/compose/forms``."""
    return {
        "formId": form_id,
        "packageType": "solo-serenade" if song_count == 1 else "holiday-hamper",
        "songCount": song_count,
        "formData": form_payload(song_count),
        "generatedPrompts": {
            str(i): {"prompt": f"Prompt {i}", "musicStyle": "upbeat festive pop"}
            for i in range(song_count)
        },
    }


@pytest.fixture
def make_form_body() -> Callable[..., dict[str, Any]]:
    return form_request_body

"""Tests for the Persistence Mirror (local copy + server record)."""
from __future__ import annotations

import pytest
import pytest_asyncio

from huggnote.compose.errors import RecordServiceError
from huggnote.models.forms import GeneratedPrompt
from huggnote.models.records import OrderPatch, OrderRecord


@pytest_asyncio.fixture
async def created(mirror, order_form):
    return await mirror.create(
        "form_m", "solo-serenade", order_form, {0: GeneratedPrompt(prompt="p", music_style="pop")}
    )


async def test_create_persists_both_sides(created, mirror, server):
    assert "form_m" in server.forms
    assert mirror.load_local("form_m") is not None
    assert created.generated_prompts[0].prompt == "p"


async def test_create_raises_when_server_down(mirror, server, order_form):
    server.down = True
    with pytest.raises(RecordServiceError):
        await mirror.create("form_x", "solo-serenade", order_form, {0: GeneratedPrompt(prompt="p")})
    # The local copy is kept for a later retry.
    assert mirror.load_local("form_x") is not None


async def test_save_writes_through(created, mirror, server):
    await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}))
    assert server.forms["form_m"].task_ids == {0: {1: "t1"}}
    assert mirror.load_local("form_m").task_ids == {0: {1: "t1"}}


async def test_save_keeps_local_when_server_fails(created, mirror, server):
    server.down = True
    merged = await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}))
    assert merged.task_ids == {0: {1: "t1"}}
    assert mirror.load_local("form_m").task_ids == {0: {1: "t1"}}
    assert server.forms["form_m"].task_ids == {}


async def test_next_save_pushes_ids_the_server_missed(created, mirror, server):
    server.down = True
    await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}))
    server.down = False
    merged = await mirror.save("form_m", OrderPatch(task_ids={0: {2: "t2"}}))
    assert server.forms["form_m"].task_ids == {0: {1: "t1", 2: "t2"}}
    assert merged.task_ids == {0: {1: "t1", 2: "t2"}}


async def test_next_save_pushes_failed_markers_and_selections(created, mirror, server):
    server.down = True
    await mirror.save("form_m", OrderPatch(task_ids={0: {3: None}}, selections={0: 1}))
    server.down = False
    await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}))
    assert server.forms["form_m"].task_ids == {0: {1: "t1", 3: None}}
    assert server.forms["form_m"].selections == {0: 1}


async def test_load_pushes_local_only_ids(created, mirror, server):
    server.down = True
    await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}))
    server.down = False
    await mirror.load("form_m")
    assert server.forms["form_m"].task_ids == {0: {1: "t1"}}


async def test_load_reconciles_local_only_ids(created, mirror, server):
    server.down = True
    await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}))
    server.down = False
    server.forms["form_m"] = server.forms["form_m"].model_copy(update={"status": "generating"})
    record = await mirror.load("form_m")
    assert record.task_ids == {0: {1: "t1"}}
    assert record.status == "generating"


async def test_load_falls_back_to_local(created, mirror, server):
    server.down = True
    record = await mirror.load("form_m")
    assert record is not None and record.form_id == "form_m"


async def test_load_unknown_everywhere(mirror):
    assert await mirror.load("missing") is None


async def test_claim_is_exclusive_on_server(created, mirror):
    assert await mirror.claim_generation("form_m", 0) is True
    assert await mirror.claim_generation("form_m", 0) is False


async def test_claim_falls_back_to_local_when_server_down(created, mirror, server):
    server.down = True
    assert await mirror.claim_generation("form_m", 0) is True
    assert await mirror.claim_generation("form_m", 0) is False


async def test_reset_song_clears_both_sides(created, mirror, server):
    await mirror.claim_generation("form_m", 0)
    await mirror.save("form_m", OrderPatch(task_ids={0: {1: "t1"}}, audio_urls={0: {1: "a"}}))
    record = await mirror.reset_song("form_m", 0)
    assert record.task_ids == {}
    assert server.forms["form_m"].task_ids == {}
    assert mirror.local.claims("form_m") == set()
    assert await mirror.claim_generation("form_m", 0) is True


def test_history_lists_local_records(mirror, local):
    local.save(OrderRecord(form_id="form_1"))
    local.save(OrderRecord(form_id="form_2"))
    assert [r.form_id for r in mirror.history()] == ["form_1", "form_2"]

"""Tests for the order record merge rules shared by client and server."""
from __future__ import annotations

from huggnote.models.forms import GeneratedPrompt
from huggnote.models.records import (
    OrderPatch,
    OrderRecord,
    all_requested_failed,
    clear_song,
    completion_counts,
    is_song_ready,
    merge_record,
    missing_on_remote,
    reconcile,
)


def _record(**kwargs) -> OrderRecord:
    return OrderRecord(form_id="form_1", song_count=2, **kwargs)


# =============================================================================
# Task ids are write-once
# =============================================================================

def test_task_ids_are_never_overwritten():
    record = _record(task_ids={0: {1: "t1"}})
    merged = merge_record(record, OrderPatch(task_ids={0: {1: "other", 2: "t2"}}))
    assert merged.task_ids == {0: {1: "t1", 2: "t2"}}


def test_failed_marker_is_write_once_too():
    record = _record(task_ids={0: {2: None}})
    merged = merge_record(record, OrderPatch(task_ids={0: {2: "late"}}))
    assert merged.task_ids[0][2] is None


def test_task_ids_never_nulled_by_incoming_none():
    record = _record(task_ids={0: {1: "t1"}})
    merged = merge_record(record, OrderPatch(task_ids={0: {1: None}}))
    assert merged.task_ids[0][1] == "t1"


def test_merge_preserves_other_songs():
    record = _record(task_ids={0: {1: "t1"}}, audio_urls={0: {1: "a1"}})
    merged = merge_record(record, OrderPatch(task_ids={1: {1: "u1"}}))
    assert merged.task_ids == {0: {1: "t1"}, 1: {1: "u1"}}
    assert merged.audio_urls == {0: {1: "a1"}}


# =============================================================================
# Results: non-empty incoming wins, nothing erased
# =============================================================================

def test_audio_non_empty_incoming_wins():
    record = _record(audio_urls={0: {1: "old"}})
    merged = merge_record(record, OrderPatch(audio_urls={0: {1: "new"}}))
    assert merged.audio_urls[0][1] == "new"


def test_audio_empty_incoming_is_ignored():
    record = _record(audio_urls={0: {1: "old"}})
    merged = merge_record(record, OrderPatch(audio_urls={0: {1: ""}}))
    assert merged.audio_urls[0][1] == "old"


def test_prompts_and_selections_overwrite_per_song():
    record = _record(
        generated_prompts={0: GeneratedPrompt(prompt="p0"), 1: GeneratedPrompt(prompt="p1")},
        selections={0: 1},
    )
    merged = merge_record(record, OrderPatch(
        generated_prompts={1: GeneratedPrompt(prompt="p1b")},
        selections={0: 3, 1: 2},
    ))
    assert merged.generated_prompts[0].prompt == "p0"
    assert merged.generated_prompts[1].prompt == "p1b"
    assert merged.selections == {0: 3, 1: 2}


def test_empty_patch_changes_nothing():
    record = _record(task_ids={0: {1: "t1"}}, status="generating")
    assert merge_record(record, OrderPatch()) == record


# =============================================================================
# Reconcile and reset
# =============================================================================

def test_reconcile_keeps_local_only_task_ids():
    local = _record(task_ids={0: {1: "t1", 2: "t2"}})
    remote = _record(task_ids={0: {1: "t1"}}, status="generating")
    merged = reconcile(local, remote)
    assert merged.task_ids[0] == {1: "t1", 2: "t2"}
    assert merged.status == "generating"


def test_reconcile_server_selection_wins():
    local = _record(selections={0: 1})
    remote = _record(selections={0: 2})
    assert reconcile(local, remote).selections == {0: 2}


def test_missing_on_remote_lists_only_local_only_slots():
    local = _record(
        task_ids={0: {1: "t1", 2: "t2", 3: None}},
        audio_urls={0: {1: "a1"}},
        selections={0: 1, 1: 2},
    )
    remote = _record(task_ids={0: {2: "t2"}}, selections={1: 3})
    patch = missing_on_remote(local, remote)
    assert patch.task_ids == {0: {1: "t1", 3: None}}
    assert patch.audio_urls == {0: {1: "a1"}}
    assert patch.lyrics is None
    assert patch.selections == {0: 1}


def test_missing_on_remote_none_when_in_sync():
    record = _record(task_ids={0: {1: "t1"}}, audio_urls={0: {1: "a1"}})
    assert missing_on_remote(record, record) is None


def test_clear_song_only_touches_that_song():
    record = _record(
        task_ids={0: {1: "t1"}, 1: {1: "u1"}},
        audio_urls={0: {1: "a"}, 1: {1: "b"}},
        selections={0: 1, 1: 1},
    )
    cleared = clear_song(record, 0)
    assert 0 not in cleared.task_ids
    assert cleared.task_ids[1] == {1: "u1"}
    assert cleared.audio_urls == {1: {1: "b"}}
    assert cleared.selections == {1: 1}


# =============================================================================
# Completion accounting
# =============================================================================

def test_failed_slot_does_not_block_completion():
    record = _record(
        task_ids={0: {1: "t1", 2: None, 3: "t3"}},
        audio_urls={0: {1: "a1"}},
    )
    assert completion_counts(record, 0) == (1, 2)
    assert not is_song_ready(record, 0)
    record = merge_record(record, OrderPatch(audio_urls={0: {3: "a3"}}))
    assert is_song_ready(record, 0)


def test_song_with_no_task_ids_is_never_ready():
    assert not is_song_ready(_record(), 0)
    assert not is_song_ready(_record(task_ids={0: {1: None}}), 0)


def test_audio_for_unknown_slot_is_not_counted():
    record = _record(task_ids={0: {1: "t1"}}, audio_urls={0: {2: "stray"}})
    assert completion_counts(record, 0) == (0, 1)


def test_all_requested_failed_needs_full_batch():
    assert not all_requested_failed(_record(task_ids={0: {1: None}}), 0)
    assert all_requested_failed(_record(task_ids={0: {1: None, 2: None, 3: None}}), 0)
    assert not all_requested_failed(_record(task_ids={0: {1: None, 2: "t", 3: None}}), 0)


def test_slot_view():
    record = _record(task_ids={0: {1: "t1", 2: None}}, audio_urls={0: {1: "a1"}})
    one, two, three = record.slots(0)
    assert one.ready and not one.failed
    assert two.failed and two.requested
    assert not three.requested and not three.failed

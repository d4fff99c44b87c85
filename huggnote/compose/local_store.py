"""Durable client-side storage for in-progress orders.

Layout under the state directory (``~/.huggnote`` by default)::

    forms/<form_id>.json   one envelope per order (record + local-only data)
    forms.json             index of every known form id, oldest first
    session.json           pointer to the form currently being composed

Writes go through a temp file and ``os.replace`` so a crash mid-write never
leaves a truncated envelope behind.
"""
from __future__ import annotations

import json
import logging
import os
import pathlib
from typing import Any

from pydantic import ValidationError

from huggnote.models.records import OrderRecord

logger = logging.getLogger(__name__)

_FORMS_DIR = "forms"
_INDEX_FILE = "forms.json"
_SESSION_FILE = "session.json"


def _write_json(path: pathlib.Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, sort_keys=True))
    os.replace(tmp, path)


def _read_json(path: pathlib.Path) -> Any | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("⚠️ Unreadable local state %s: %s", path.name, exc)
        return None


class LocalStore:
    """File-backed key-value store keyed by form id."""

    def __init__(self, root: pathlib.Path | str) -> None:
        self.root = pathlib.Path(root).expanduser()

    # ------------------------------------------------------------------
    # Envelope access
    # ------------------------------------------------------------------

    def _form_path(self, form_id: str) -> pathlib.Path:
        return self.root / _FORMS_DIR / f"{form_id}.json"

    def _envelope(self, form_id: str) -> dict[str, Any]:
        data = _read_json(self._form_path(form_id))
        return data if isinstance(data, dict) else {}

    def _write_envelope(self, form_id: str, envelope: dict[str, Any]) -> None:
        _write_json(self._form_path(form_id), envelope)
        self._add_to_index(form_id)

    def load(self, form_id: str) -> OrderRecord | None:
        raw = self._envelope(form_id).get("record")
        if raw is None:
            return None
        try:
            return OrderRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("⚠️ Discarding invalid local record %s: %s", form_id[:8], exc)
            return None

    def save(self, record: OrderRecord) -> None:
        envelope = self._envelope(record.form_id)
        envelope["record"] = record.model_dump(mode="json", by_alias=True)
        self._write_envelope(record.form_id, envelope)

    def delete(self, form_id: str) -> None:
        self._form_path(form_id).unlink(missing_ok=True)
        ids = [i for i in self.list_ids() if i != form_id]
        _write_json(self.root / _INDEX_FILE, ids)

    # ------------------------------------------------------------------
    # History index
    # ------------------------------------------------------------------

    def list_ids(self) -> list[str]:
        data = _read_json(self.root / _INDEX_FILE)
        if not isinstance(data, list):
            return []
        return [str(i) for i in data]

    def records(self) -> list[OrderRecord]:
        """Every locally known order, oldest first."""
        records = []
        for form_id in self.list_ids():
            record = self.load(form_id)
            if record is not None:
                records.append(record)
        return records

    def _add_to_index(self, form_id: str) -> None:
        ids = self.list_ids()
        if form_id not in ids:
            ids.append(form_id)
            _write_json(self.root / _INDEX_FILE, ids)

    # ------------------------------------------------------------------
    # Prompt cache inputs (local only)
    # ------------------------------------------------------------------

    def prompt_inputs(self, form_id: str) -> dict[int, dict[str, Any]]:
        raw = self._envelope(form_id).get("promptInputs") or {}
        return {int(k): v for k, v in raw.items()}

    def save_prompt_inputs(self, form_id: str, inputs: dict[int, dict[str, Any]]) -> None:
        envelope = self._envelope(form_id)
        envelope["promptInputs"] = {str(k): v for k, v in inputs.items()}
        self._write_envelope(form_id, envelope)

    # ------------------------------------------------------------------
    # Generation claims (fallback when the server is unreachable)
    # ------------------------------------------------------------------

    def claims(self, form_id: str) -> set[int]:
        return {int(i) for i in self._envelope(form_id).get("claims") or []}

    def add_claim(self, form_id: str, song_index: int) -> bool:
        """Record a local claim; False if it was already held."""
        envelope = self._envelope(form_id)
        held = {int(i) for i in envelope.get("claims") or []}
        if song_index in held:
            return False
        envelope["claims"] = sorted(held | {song_index})
        self._write_envelope(form_id, envelope)
        return True

    def remove_claim(self, form_id: str, song_index: int) -> None:
        envelope = self._envelope(form_id)
        held = {int(i) for i in envelope.get("claims") or []}
        if song_index in held:
            envelope["claims"] = sorted(held - {song_index})
            self._write_envelope(form_id, envelope)

    # ------------------------------------------------------------------
    # Session pointer
    # ------------------------------------------------------------------

    def current_form_id(self) -> str | None:
        data = _read_json(self.root / _SESSION_FILE)
        if isinstance(data, dict) and isinstance(data.get("currentFormId"), str):
            return data["currentFormId"]
        return None

    def set_current_form_id(self, form_id: str) -> None:
        _write_json(self.root / _SESSION_FILE, {"currentFormId": form_id})

    def clear_current_form_id(self) -> None:
        (self.root / _SESSION_FILE).unlink(missing_ok=True)

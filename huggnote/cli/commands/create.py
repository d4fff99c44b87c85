"""huggnote create — submit an order form and generate its song prompts.

Reads the form from a JSON file in the web app's camelCase shape::

    {"senderName": "...", "senderEmail": "...", "senderPhone": "...",
     "songs": [{"recipientName": "...", "relationship": "...", ...}]}

Resubmitting while an order is in progress updates that same order; songs
whose inputs did not change keep their previous prompt.

Exit codes:
  0 — success
  1 — unreadable or invalid form file
  3 — prompt builder or record service error
"""
from __future__ import annotations

import asyncio
import json
import logging
import pathlib

import typer
from pydantic import ValidationError

from huggnote.cli._session import compose_session
from huggnote.cli.errors import ExitCode
from huggnote.compose.errors import HuggnoteError
from huggnote.compose.submission import submit_form
from huggnote.models.forms import OrderForm
from huggnote.models.records import OrderRecord

logger = logging.getLogger(__name__)


def _load_form(path: pathlib.Path) -> OrderForm:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        typer.echo(f"❌ Cannot read form file {path}: {exc}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    try:
        return OrderForm.model_validate(raw)
    except ValidationError as exc:
        typer.echo(f"❌ Invalid form:\n{exc}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))


async def _create_async(form: OrderForm, form_id: str | None, new: bool) -> OrderRecord:
    async with compose_session() as mirror:
        if new:
            mirror.local.clear_current_form_id()
        return await submit_form(form, mirror, form_id=form_id)


def create(
    form_file: pathlib.Path = typer.Argument(..., help="Path to the order form JSON."),
    form_id: str | None = typer.Option(
        None, "--form-id", help="Resubmit this order instead of the current one."
    ),
    new: bool = typer.Option(
        False, "--new", help="Start a fresh order even if one is in progress."
    ),
) -> None:
    """Submit an order form and generate one prompt per song.

    Example::

        huggnote create order.json
        huggnote create order.json --new
    """
    form = _load_form(form_file)
    try:
        record = asyncio.run(_create_async(form, form_id, new))
    except HuggnoteError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))

    typer.echo(f"✅ Order {record.form_id} saved ({record.song_count} song(s), {record.package_type})")
    for i in range(record.song_count):
        prompt = record.generated_prompts.get(i)
        if prompt is not None:
            typer.echo(f"  Song {i + 1}: {prompt.prompt}")
            if prompt.music_style:
                typer.echo(f"          style: {prompt.music_style}")
    typer.echo("Next: `huggnote variations` to generate the songs.")

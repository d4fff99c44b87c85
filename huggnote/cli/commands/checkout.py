"""huggnote checkout — hand the selected variations over to payment.

Prints the Stripe Checkout URL; open it in a browser to pay. Requires an
access token (``HUGGNOTE_API_TOKEN``) and a selection for every song.

Exit codes:
  0 — checkout session created
  1 — missing selection or not logged in
  2 — no order in progress
  3 — payment or record service error
"""
from __future__ import annotations

import asyncio
import logging

import typer

from huggnote.cli._session import compose_session, open_local_store, resolve_form_id
from huggnote.cli.errors import ExitCode
from huggnote.compose.errors import (
    HuggnoteError,
    MissingSelectionError,
    NotAuthenticatedError,
)
from huggnote.compose.orchestrator import VariationOrchestrator

logger = logging.getLogger(__name__)

app = typer.Typer()


async def _checkout_async(form_id: str) -> str:
    async with compose_session() as mirror:
        orchestrator = VariationOrchestrator(mirror.api, mirror, form_id)
        await orchestrator.load()
        return await orchestrator.checkout()


@app.callback(invoke_without_command=True)
def checkout(
    ctx: typer.Context,
    form_id: str | None = typer.Option(
        None, "--form-id", help="Order to pay for. Defaults to the current one."
    ),
) -> None:
    """Create a payment session for the selected variations.

    Example::

        huggnote checkout
    """
    resolved = resolve_form_id(open_local_store(), form_id)
    try:
        url = asyncio.run(_checkout_async(resolved))
    except (MissingSelectionError, NotAuthenticatedError) as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    except HuggnoteError as exc:
        typer.echo(f"❌ {exc}")
        logger.error("❌ huggnote checkout failed: %s", exc)
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))

    typer.echo("✅ Checkout ready. Complete your payment at:")
    typer.echo(url)

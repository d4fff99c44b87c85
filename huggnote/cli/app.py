"""Huggnote CLI — Typer application root.

Entry point for the ``huggnote`` console script. The commands follow the
order flow: create → variations → select → checkout, plus history.
"""
from __future__ import annotations

import logging

import typer

from huggnote.cli.commands import checkout, create, history, select, variations
from huggnote.config import settings

cli = typer.Typer(
    name="huggnote",
    help="Huggnote — personalised AI songs, from form to checkout.",
    no_args_is_help=True,
)


@cli.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress to stderr."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose or settings.debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# create and select take positional arguments, so they are registered as plain
# commands; a Typer sub-app would stop parsing options after the argument.
cli.command("create", help="Submit an order form and generate song prompts.")(create.create)
cli.command("select", help="Pick the variation to keep for a song.")(select.select)
cli.add_typer(variations.app, name="variations", help="Generate and show song variations.")
cli.add_typer(checkout.app, name="checkout", help="Start payment for the selected songs.")
cli.add_typer(history.app, name="history", help="List orders and purchased songs.")


if __name__ == "__main__":
    cli()

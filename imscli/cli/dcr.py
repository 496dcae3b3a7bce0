"""Dynamic client registration CLI commands."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import command_params, pretty_json, run_operation
from imscli.core.ims.operations import register


@click.group()
def dcr() -> None:
    """Dynamic Client Registration."""


@dcr.command("register")
@click.option("--clientName", "-n", "clientName", help="Client application name.")
@click.option(
    "--redirectURIs",
    "-r",
    "redirectURIs",
    multiple=True,
    help="Redirect URIs (comma separated or repeated).",
)
@click.pass_context
def dcr_register(ctx: click.Context, **flags: Any) -> None:
    """Register a new OAuth 2.0 client dynamically.

    The client is registered at the /ims/register endpoint of the IMS URL
    given with --url.
    """
    params = command_params(ctx, flags)
    body = run_operation("error during client registration", register, params)
    click.echo(pretty_json(body))

"""Token refresh CLI command."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import (
    client_id_option,
    client_secret_option,
    command_params,
    output_result,
    run_operation,
)
from imscli.core.ims.operations import refresh


@click.command("refresh")
@client_id_option
@client_secret_option
@click.option("--refreshToken", "-t", "refreshToken", help="Refresh token.")
@click.option(
    "--scopes",
    "-s",
    "scopes",
    multiple=True,
    help="Scopes of the new token, a subset of the original token's. The original scopes are kept by default.",
)
@click.option(
    "--fullOutput",
    "-F",
    "fullOutput",
    is_flag=True,
    help="Output a JSON document with the access and refresh tokens.",
)
@click.pass_context
def refresh_cmd(ctx: click.Context, **flags: Any) -> None:
    """Exchange a refresh token for new access and refresh tokens."""
    params = command_params(ctx, flags)
    info = run_operation("error during the token refresh", refresh, params)
    if params.full_output:
        output_result({"access_token": info.access_token, "refresh_token": info.refresh_token})
    else:
        click.echo(info.access_token)

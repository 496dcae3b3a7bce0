"""Token exchange CLI commands."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import (
    AliasedGroup,
    access_token_option,
    client_id_option,
    client_secret_option,
    command_params,
    run_operation,
    scopes_option,
)
from imscli.core.ims.operations import cluster_exchange, obo_exchange


@click.group(cls=AliasedGroup)
def exchange() -> None:
    """Exchange an access token for another access token.

    This command has no effect by itself, the exchange type needs to be
    specified as a subcommand.
    """


@exchange.command("cluster")
@client_id_option
@client_secret_option
@access_token_option
@click.option(
    "--organization",
    "-o",
    "organization",
    help="IMS organization of the new token. Can't be used together with --userID.",
)
@click.option(
    "--userID",
    "-u",
    "userID",
    help="User ID of the new token. Can't be used together with --organization.",
)
@scopes_option
@click.pass_context
def exchange_cluster(ctx: click.Context, **flags: Any) -> None:
    """Request a token for another user ID or IMS organization.

    Performs the Cluster Access Token Exchange grant. The scopes are a
    subset of the original token's; without them the original scopes are
    kept.
    """
    params = command_params(ctx, flags)
    info = run_operation("error exchanging the access token", cluster_exchange, params)
    click.echo(info.access_token)


@exchange.command("obo")
@client_id_option
@client_secret_option
@click.option(
    "--accessToken",
    "-t",
    "accessToken",
    help="User access token (subject token). Do not use service or impersonation tokens.",
)
@scopes_option
@click.pass_context
def exchange_obo(ctx: click.Context, **flags: Any) -> None:
    """Perform the On-Behalf-Of token exchange.

    Exchanges a user access token for a token issued to this client acting
    on behalf of the user.
    """
    params = command_params(ctx, flags)
    info = run_operation("error in On-Behalf-Of exchange", obo_exchange, params)
    click.echo(info.access_token)

"""Authorization CLI commands."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import (
    AliasedGroup,
    client_id_option,
    client_secret_option,
    command_params,
    organization_option,
    output_result,
    port_option,
    run_operation,
    scopes_option,
)
from imscli.core.ims.operations import (
    authorize_client_credentials,
    authorize_jwt_exchange,
    authorize_service,
)
from imscli.core.login import authorize_user

full_output_option = click.option(
    "--fullOutput",
    "-F",
    "fullOutput",
    is_flag=True,
    help="Output a JSON document with the token and its expiration.",
)


@click.group(cls=AliasedGroup)
def authorize() -> None:
    """Negotiate an access token with IMS.

    This command has no effect by itself, the authorization type needs to be
    specified as a subcommand.
    """


@authorize.command("user")
@client_id_option
@client_secret_option
@organization_option
@scopes_option
@port_option
@click.pass_context
def authorize_user_cmd(ctx: click.Context, **flags: Any) -> None:
    """Negotiate a user access token in the browser.

    Performs the Authorization Code grant: a local server receives the IMS
    redirect on the given port and the system browser is opened at the
    login page. Without PKCE only private clients are supported.
    """
    params = command_params(ctx, flags)
    token = run_operation("error in user authorization", authorize_user, params)
    click.echo(token)


@authorize.command("pkce")
@client_id_option
@client_secret_option
@organization_option
@scopes_option
@port_option
@click.option(
    "--publicClient",
    "publicClient",
    is_flag=True,
    help="The client is public and has no secret.",
)
@click.pass_context
def authorize_pkce_cmd(ctx: click.Context, **flags: Any) -> None:
    """Negotiate a user access token in the browser, with PKCE.

    Same as 'authorize user' with an S256 code challenge, which also allows
    public clients.
    """
    params = command_params(ctx, flags)
    token = run_operation(
        "error in user authorization",
        lambda p: authorize_user(p, use_pkce=True),
        params,
    )
    click.echo(token)


@authorize.command("service")
@client_id_option
@client_secret_option
@click.option("--authorizationCode", "-t", "authorizationCode", help="Authorization code.")
@full_output_option
@click.pass_context
def authorize_service_cmd(ctx: click.Context, **flags: Any) -> None:
    """Negotiate an access token for a service with an authorization code."""
    params = command_params(ctx, flags)
    info = run_operation("error in login service", authorize_service, params)
    if params.full_output:
        output_result(info.to_dict())
    else:
        click.echo(info.access_token)


@authorize.command("jwt")
@client_id_option
@client_secret_option
@organization_option
@click.option("--account", "-a", "account", help="Technical account ID.")
@click.option(
    "--privateKey",
    "-k",
    "privateKey",
    type=click.Path(dir_okay=False),
    help="Private key file.",
)
@click.option(
    "--metascopes",
    "-m",
    "metascopes",
    multiple=True,
    help="Metascopes to request (comma separated or repeated).",
)
@full_output_option
@click.pass_context
def authorize_jwt_cmd(ctx: click.Context, **flags: Any) -> None:
    """Negotiate an access token with a signed JWT assertion."""
    params = command_params(ctx, flags)
    info = run_operation("error in jwt authorization", authorize_jwt_exchange, params)
    if params.full_output:
        output_result(info.to_dict())
    else:
        click.echo(info.access_token)


@authorize.command("client")
@client_id_option
@client_secret_option
@scopes_option
@full_output_option
@click.pass_context
def authorize_client_cmd(ctx: click.Context, **flags: Any) -> None:
    """Negotiate an access token with the Client Credentials grant."""
    params = command_params(ctx, flags)
    info = run_operation("error in client credentials authorization", authorize_client_credentials, params)
    if params.full_output:
        output_result(info.to_dict())
    else:
        click.echo(info.access_token)

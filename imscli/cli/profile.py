"""Profile and organizations CLI commands."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import (
    AliasedGroup,
    access_token_option,
    client_id_option,
    command_params,
    pretty_json,
    run_operation,
)
from imscli.core.ims.operations import (
    get_admin_organizations,
    get_admin_profile,
    get_organizations,
    get_profile,
)

profile_version_option = click.option(
    "--profileApiVersion",
    "-a",
    "profileApiVersion",
    help="Profile API version (v1, v2 or v3; default v1).",
)
orgs_version_option = click.option(
    "--orgsApiVersion",
    "-a",
    "orgsApiVersion",
    help="Organizations API version (default v5).",
)


@click.command()
@access_token_option
@profile_version_option
@click.option(
    "--decodeFulfillableData",
    "-d",
    "decodeFulfillableData",
    is_flag=True,
    help="Decode the fulfillable_data of the product contexts.",
)
@click.pass_context
def profile(ctx: click.Context, **flags: Any) -> None:
    """Request the profile of the access token's user."""
    params = command_params(ctx, flags)
    body = run_operation("error in get profile cmd", get_profile, params)
    click.echo(pretty_json(body))


@click.command()
@access_token_option
@orgs_version_option
@click.pass_context
def organizations(ctx: click.Context, **flags: Any) -> None:
    """Request the organizations of the access token's user."""
    params = command_params(ctx, flags)
    body = run_operation("error in get organizations cmd", get_organizations, params)
    click.echo(pretty_json(body))


service_token_option = click.option("--serviceToken", "-t", "serviceToken", help="Service token.")
guid_option = click.option("--guid", "-g", "guid", help="User GUID.")
auth_src_option = click.option("--authSrc", "-A", "authSrc", help="Authentication source of the user.")


@click.group(cls=AliasedGroup, aliases={"orgs": "organizations"})
def admin() -> None:
    """Use the admin API with a service token.

    This command has no effect by itself, the request needs to be specified
    as a subcommand.
    """


@admin.command("profile")
@service_token_option
@client_id_option
@guid_option
@auth_src_option
@profile_version_option
@click.pass_context
def admin_profile(ctx: click.Context, **flags: Any) -> None:
    """Request any user's profile with a service token."""
    params = command_params(ctx, flags)
    body = run_operation("error in get admin profile cmd", get_admin_profile, params)
    click.echo(pretty_json(body))


@admin.command("organizations")
@service_token_option
@client_id_option
@guid_option
@auth_src_option
@orgs_version_option
@click.pass_context
def admin_organizations(ctx: click.Context, **flags: Any) -> None:
    """Request any user's organizations with a service token."""
    params = command_params(ctx, flags)
    body = run_operation("error in get admin organizations cmd", get_admin_organizations, params)
    click.echo(pretty_json(body))

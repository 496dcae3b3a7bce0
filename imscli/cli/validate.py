"""Token validation CLI commands."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import AliasedGroup, client_id_option, command_params, pretty_json, run_operation
from imscli.core.ims.operations import validate_token

# (command, configuration key, label)
VALIDATED_TOKENS = [
    ("accessToken", "accessToken", "access token"),
    ("refreshToken", "refreshToken", "refresh token"),
    ("deviceToken", "deviceToken", "device token"),
    ("authorizationCode", "authorizationCode", "authorization code"),
]


@click.group(
    cls=AliasedGroup,
    aliases={"acc": "accessToken", "ref": "refreshToken", "dev": "deviceToken", "authzCode": "authorizationCode"},
)
def validate() -> None:
    """Validate a token with IMS.

    This command has no effect by itself, the token type needs to be
    specified as a subcommand.
    """


def _validate_command(name: str, key: str, label: str) -> click.Command:
    @click.command(name, help=f"Validate {label}.")
    @click.option(f"--{key}", "-t", key, help=f"{label.capitalize()}.")
    @client_id_option
    @click.pass_context
    def command(ctx: click.Context, **flags: Any) -> None:
        params = command_params(ctx, flags)
        result = run_operation(f"error validating the {label}", validate_token, params)
        if not result.valid:
            raise click.ClickException(f"invalid token: {result.info}")
        click.echo(pretty_json(result.info))

    return command


for _name, _key, _label in VALIDATED_TOKENS:
    validate.add_command(_validate_command(_name, _key, _label))

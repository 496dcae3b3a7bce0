"""Token invalidation CLI commands."""

from __future__ import annotations

from typing import Any

import click

from imscli.cli.options import AliasedGroup, client_id_option, client_secret_option, command_params, run_operation
from imscli.core.ims.operations import invalidate_token

cascading_option = click.option(
    "--cascading",
    "-a",
    "cascading",
    is_flag=True,
    help="Also invalidate all tokens obtained with this token.",
)


@click.group(
    cls=AliasedGroup,
    aliases={"acc": "accessToken", "ref": "refreshToken", "dev": "deviceToken", "svc": "serviceToken"},
)
def invalidate() -> None:
    """Invalidate a token.

    This command has no effect by itself, the token type needs to be
    specified as a subcommand.
    """


def _invalidate_command(
    name: str,
    label: str,
    success_message: str,
    extra_options: tuple[Any, ...] = (),
) -> click.Command:
    @click.pass_context
    def command(ctx: click.Context, **flags: Any) -> None:
        params = command_params(ctx, flags)
        run_operation(f"error invalidating the {label}", invalidate_token, params)
        click.echo(success_message)

    for option in extra_options:
        command = option(command)
    command = client_id_option(command)
    command = click.option(f"--{name}", "-t", name, help=f"{label.capitalize()}.")(command)
    return click.command(name, help=f"Invalidate {label}.")(command)


invalidate.add_command(
    _invalidate_command("accessToken", "access token", "Token invalidated successfully.")
)
invalidate.add_command(
    _invalidate_command(
        "refreshToken",
        "refresh token",
        "Refresh token successfully invalidated.",
        (cascading_option,),
    )
)
invalidate.add_command(
    _invalidate_command(
        "deviceToken",
        "device token",
        "Token invalidated successfully.",
        (cascading_option,),
    )
)
invalidate.add_command(
    _invalidate_command(
        "serviceToken",
        "service token",
        "Service token successfully invalidated.",
        (client_secret_option,),
    )
)

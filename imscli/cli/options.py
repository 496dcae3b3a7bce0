"""Shared click options and helpers for the imscli commands.

Option destinations are the configuration keys, so the values collected by
a command can be layered directly over the loaded ``ImsParams``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, TypeVar

import click

from imscli.core.config import ImsParams
from imscli.core.errors import IMSCLIError

T = TypeVar("T")


class AliasedGroup(click.Group):
    """A click group whose subcommands can also be invoked by short aliases."""

    def __init__(self, *args: Any, aliases: dict[str, str] | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.aliases = dict(aliases or {})

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        super().format_commands(ctx, formatter)
        if self.aliases:
            with formatter.section("Aliases"):
                formatter.write_dl(sorted(self.aliases.items()))


client_id_option = click.option("--clientID", "-c", "clientID", help="IMS client ID.")
client_secret_option = click.option("--clientSecret", "-p", "clientSecret", help="IMS client secret.")
organization_option = click.option("--organization", "-o", "organization", help="IMS organization.")
access_token_option = click.option("--accessToken", "-t", "accessToken", help="Access token.")
scopes_option = click.option(
    "--scopes",
    "-s",
    "scopes",
    multiple=True,
    help="Scopes to request (comma separated or repeated).",
)
port_option = click.option(
    "--port",
    "-l",
    "port",
    type=int,
    help="Local port used by the OAuth callback server (default 8888).",
)


def _flag_value(value: Any) -> Any:
    """Normalize a collected flag value; None means the flag was not given."""
    if isinstance(value, tuple):
        items = [part.strip() for item in value for part in item.split(",")]
        return [item for item in items if item] or None
    if value is False:
        return None
    return value


def command_params(ctx: click.Context, flags: dict[str, Any]) -> ImsParams:
    """Layer the command's flags over the parameters loaded by the root group."""
    params: ImsParams = ctx.obj["params"]
    values = {key: _flag_value(value) for key, value in flags.items()}
    try:
        return params.apply(values, source="command line")
    except IMSCLIError as e:
        raise click.ClickException(str(e)) from e


def run_operation(action: str, operation: Callable[[ImsParams], T], params: ImsParams) -> T:
    """Run an IMS operation, reporting its failure as a click error.

    Args:
        action: Prefix of the error message, e.g. "error in user authorization".
        operation: The operation to run.
        params: Its parameters.

    Returns:
        The operation's result.
    """
    try:
        return operation(params)
    except IMSCLIError as e:
        raise click.ClickException(f"{action}: {e}") from e


def pretty_json(text: str) -> str:
    """Indent a JSON document; anything that is not JSON is returned unchanged."""
    try:
        return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return text


def output_result(data: dict[str, Any]) -> None:
    """Print a result dictionary as indented JSON."""
    click.echo(json.dumps(data, indent=2, default=str))

"""CLI entry point for imscli."""

from pathlib import Path
from typing import Any

import click

from imscli import __version__
from imscli.cli import authorize as authorize_commands
from imscli.cli import config as config_commands
from imscli.cli import dcr as dcr_commands
from imscli.cli import decode as decode_commands
from imscli.cli import exchange as exchange_commands
from imscli.cli import invalidate as invalidate_commands
from imscli.cli import profile as profile_commands
from imscli.cli import refresh as refresh_commands
from imscli.cli import validate as validate_commands
from imscli.cli.options import AliasedGroup, command_params
from imscli.core.config import DEFAULT_URL, load_params
from imscli.core.errors import IMSCLIError
from imscli.core.logging import configure_logging

ALIASES = {
    "authz": "authorize",
    "val": "validate",
    "inv": "invalidate",
    "ex": "exchange",
    "exch": "exchange",
    "orgs": "organizations",
    "ad": "admin",
    "dec": "decode",
    "ref": "refresh",
}


@click.group(cls=AliasedGroup, aliases=ALIASES)
@click.version_option(version=__version__, prog_name="imscli")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--url", "-U", "url", help=f"IMS endpoint URL (default {DEFAULT_URL}).")
@click.option(
    "--proxyUrl",
    "-P",
    "proxyUrl",
    help="Connect to IMS through the specified proxy, given as http(s)://host:port.",
)
@click.option(
    "--proxyIgnoreTLS",
    "-T",
    "proxyIgnoreTLS",
    is_flag=True,
    help="Ignore TLS certificate verification (only valid when connecting through a proxy).",
)
@click.option(
    "--configFile",
    "-f",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file.",
)
@click.option("--timeout", "timeout", type=int, help="HTTP timeout in seconds (default 30).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_file: Path | None, **flags: Any) -> None:
    """imscli - a tool to interact with Adobe IMS.

    Automates and troubleshoots the IMS authentication and authorization
    flows. Parameters are read from imscli.yaml, IMS_* environment variables
    and command flags, in increasing order of precedence.
    """
    configure_logging(verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    try:
        ctx.obj["params"] = load_params(config_file)
    except IMSCLIError as e:
        raise click.ClickException(str(e)) from e
    ctx.obj["params"] = command_params(ctx, flags)


cli.add_command(authorize_commands.authorize)
cli.add_command(validate_commands.validate)
cli.add_command(invalidate_commands.invalidate)
cli.add_command(exchange_commands.exchange)
cli.add_command(profile_commands.profile)
cli.add_command(profile_commands.organizations)
cli.add_command(profile_commands.admin)
cli.add_command(decode_commands.decode_cmd, name="decode")
cli.add_command(refresh_commands.refresh_cmd)
cli.add_command(dcr_commands.dcr)
cli.add_command(config_commands.config)

"""Configuration CLI commands."""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path

import click

from imscli.cli.options import output_result
from imscli.core.config import DEFAULT_CONFIG_NAME, ImsParams, get_default_config_yaml
from imscli.core.logging import mask_token

# Parameters shown masked by 'config show'
SECRET_KEYS = frozenset(
    {"clientSecret", "serviceToken", "accessToken", "refreshToken", "deviceToken", "authorizationCode", "token"}
)


@click.group()
def config() -> None:
    """Manage the imscli configuration file."""


@config.command("init")
@click.option(
    "--path",
    "path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(f"{DEFAULT_CONFIG_NAME}.yaml"),
    show_default=True,
    help="Where to write the configuration file.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
def config_init(path: Path, force: bool) -> None:
    """Write an example configuration file."""
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists, use --force to overwrite it")
    path.write_text(get_default_config_yaml())
    click.echo(f"Configuration written to: {path}")


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the parameters resolved from the file, environment and global flags.

    Secrets and tokens are masked.
    """
    params: ImsParams = ctx.obj["params"]
    data = {}
    for f in fields(params):
        key = f.metadata["key"]
        value = getattr(params, f.name)
        if key in SECRET_KEYS and value:
            value = mask_token(value)
        data[key] = value
    output_result(data)

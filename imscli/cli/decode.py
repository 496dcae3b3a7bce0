"""Local token decoding CLI command."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import click

from imscli.cli.options import command_params, output_result, run_operation
from imscli.core.ims.operations import decode
from imscli.core.ims.tokens import DecodedToken


def _format_expiration(decoded: DecodedToken, now: datetime | None = None) -> str | None:
    expiration = decoded.expiration
    if expiration is None:
        return None
    now = now or datetime.now(UTC)
    if now > expiration:
        ago = int((now - expiration).total_seconds())
        return f"Token expired: {expiration.isoformat()} ({ago}s ago)"
    remaining = int((expiration - now).total_seconds())
    return f"Token expires: {expiration.isoformat()} (in {remaining}s)"


@click.command()
@click.option("--token", "-t", "token", help="Token.")
@click.pass_context
def decode_cmd(ctx: click.Context, **flags: Any) -> None:
    """Decode a JWT token.

    Displays the header and payload as indented JSON. The signature is not
    verified. With --verbose the expiration is also written to stderr.
    """
    params = command_params(ctx, flags)
    decoded = run_operation("error decoding the token", decode, params)
    data = decoded.to_dict()
    output_result({"header": data["header"], "payload": data["payload"]})

    if ctx.obj.get("verbose"):
        message = _format_expiration(decoded)
        if message:
            click.echo(f"\n{message}", err=True)

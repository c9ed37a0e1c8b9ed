"""XSWD client CLI.

Usage:
    xswd-client call daemon DERO.GetInfo             # Call through the wallet
    xswd-client call wallet GetBalance --params '{}'  # Wallet call
    xswd-client --fallback-address node.example call daemon DERO.GetHeight
    xswd-client watch new_topoheight --count 3        # Print pushed events
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .client import XSWDClient
from .config import SessionConfig
from .errors import XSWDError
from .protocol.identity import AppInfo


def _build_client(options: dict[str, Any]) -> XSWDClient:
    config = SessionConfig.from_env().with_overrides(
        address=options["address"],
        port=options["port"],
        secure=options["secure"],
    )
    fallback_config = None
    if options["fallback_address"]:
        fallback_config = SessionConfig.fallback(
            address=options["fallback_address"],
            port=options["fallback_port"],
            secure=options["secure"],
        )
    app_info = AppInfo.create(options["app_name"], options["app_description"])
    return XSWDClient(app_info, config, fallback_config)


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except XSWDError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)


@click.group()
@click.option("--address", default="localhost", envvar="XSWD_ADDRESS", help="Wallet XSWD address")
@click.option("--port", default=44326, envvar="XSWD_PORT", help="Wallet XSWD port")
@click.option("--secure", is_flag=True, envvar="XSWD_SECURE", help="Use wss:// and https://")
@click.option("--fallback-address", default=None, help="Daemon address used if the wallet refuses")
@click.option("--fallback-port", default=10102, help="Daemon JSON-RPC port")
@click.option("--app-name", default="xswd-client", help="Application name shown to the wallet")
@click.option(
    "--app-description",
    default="XSWD command line client",
    help="Application description shown to the wallet",
)
@click.option("-v", "--verbose", is_flag=True, help="Log session diagnostics to stderr")
@click.pass_context
def main(ctx: click.Context, verbose: bool, **options: Any) -> None:
    """Talk to a wallet over XSWD."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
            stream=sys.stderr,
        )
    ctx.obj = options


@main.command()
@click.argument("entity", type=click.Choice(["wallet", "daemon"]))
@click.argument("method")
@click.option("--params", default=None, help="JSON object or array of parameters")
@click.pass_obj
def call(options: dict[str, Any], entity: str, method: str, params: str | None) -> None:
    """Call METHOD on ENTITY and print the JSON result."""
    try:
        parsed = json.loads(params) if params else None
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--params") from e

    async def run() -> Any:
        async with _build_client(options) as client:
            return await client.call(entity, method, parsed)

    result = _run(run())
    click.echo(json.dumps(result, indent=2))


@main.command()
@click.argument("event")
@click.option("--count", "-n", default=1, help="Number of events to print")
@click.pass_obj
def watch(options: dict[str, Any], event: str, count: int) -> None:
    """Subscribe to EVENT and print COUNT pushed values."""

    async def run() -> None:
        async with _build_client(options) as client:
            if not await client.subscribe(event):
                raise click.ClickException(f"Wallet did not accept subscription to {event}")
            for _ in range(count):
                value = await client.wait_for(event)
                click.echo(json.dumps(value))

    _run(run())


if __name__ == "__main__":
    main()

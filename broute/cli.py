"""A CLI for the broute library.

    broute [-S settings.json] [-D /dev/ttyUSB0] [--debug] pairing --id ID --password PWD [-T 7]
    broute [-S settings.json] [-D /dev/ttyUSB0] [--debug] run [--polls N]
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Final

import click

from broute import __version__
from broute.exceptions import BRouteError
from broute.models.records import RouteBCredentials
from broute.operation import DEFAULT_POLL_COUNT, run as run_session
from broute.pairing import pair
from broute.protocol.constants import ProtocolConstants
from broute.transport import AsyncSerialTransport

DEFAULT_FMT: Final = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DEFAULT_DATEFMT: Final = "%H:%M:%S"

CONTEXT_SETTINGS: Final = {"help_option_names": ["-h", "--help"]}

logger = logging.getLogger(__name__)


def _fixed_length(length: int, what: str):
    def validate(ctx: click.Context, param: click.Parameter, value: str) -> str:
        if not value.isascii():
            raise click.BadParameter(f"{what} must be ASCII")
        if len(value) != length:
            raise click.BadParameter(f"{what} must be {length} characters")
        return value

    return validate


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-S", "--settings", "settings_path", type=click.Path(dir_okay=False), default="settings.json",
    show_default=True, help="settings file",
)
@click.option("-D", "--device", default="/dev/ttyUSB0", show_default=True, help="serial device")
@click.option("--debug", is_flag=True, help="enable debug logging")
@click.version_option(__version__, prog_name="broute")
@click.pass_context
def cli(ctx: click.Context, settings_path: str, device: str, debug: bool) -> None:
    """Read power consumption from a smart meter over Route B (BP35Cx-J11)."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=DEFAULT_FMT,
        datefmt=DEFAULT_DATEFMT,
    )
    ctx.obj = {"settings_path": settings_path, "device": device}


@cli.command()
@click.option(
    "--id", "route_b_id", required=True,
    callback=_fixed_length(ProtocolConstants.ROUTE_B_ID_LENGTH, "Route B ID"),
    help="Route B ID (32 characters)",
)
@click.option(
    "--password", "password", required=True,
    callback=_fixed_length(ProtocolConstants.ROUTE_B_PASSWORD_LENGTH, "Route B password"),
    help="Route B password (12 characters)",
)
@click.option(
    "-T", "--activescan", "scan_duration", type=click.IntRange(1, 14),
    default=ProtocolConstants.DEFAULT_SCAN_DURATION, show_default=True,
    help="active scan duration (1-14)",
)
@click.pass_obj
def pairing(obj: dict[str, Any], route_b_id: str, password: str, scan_duration: int) -> None:
    """Pair with the smart meter and save its parameters."""
    credentials = RouteBCredentials(route_b_id=route_b_id, password=password)
    transport = AsyncSerialTransport(obj["device"])
    try:
        settings = asyncio.run(pair(obj["settings_path"], transport, credentials, scan_duration))
    except BRouteError as err:
        raise click.ClickException(str(err)) from err
    click.echo(f"Paired with {settings.mac_address} on channel {settings.channel} (PAN ID 0x{settings.pan_id:04x})")


@cli.command()
@click.option(
    "--polls", type=click.IntRange(min=0), default=DEFAULT_POLL_COUNT, show_default=True,
    help="instantaneous power polls before stopping",
)
@click.option("--forever", is_flag=True, help="poll until interrupted")
@click.option("--no-history", is_flag=True, help="skip today's cumulative history")
@click.pass_obj
def run(obj: dict[str, Any], polls: int, forever: bool, no_history: bool) -> None:
    """Connect to the paired smart meter and poll it."""
    transport = AsyncSerialTransport(obj["device"])
    try:
        asyncio.run(
            run_session(
                obj["settings_path"],
                transport,
                poll_count=None if forever else polls,
                collect_history=not no_history,
            )
        )
    except BRouteError as err:
        raise click.ClickException(str(err)) from err
    except KeyboardInterrupt:
        logger.info("Interrupted")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

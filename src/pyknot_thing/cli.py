#!/usr/bin/env python3
"""Command line interface for inspecting and changing a thing's configuration sources using Typer."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .command import ConfigCommand
from .credentials import clear_credentials, store_credentials
from .errors import NotFoundError, PartialFailureError, StorageIOError, ValidationError
from .loader import load_thing
from .settings import (
    DEFAULT_CLOUD_SOURCE,
    DEFAULT_CREDENTIALS_SOURCE,
    DEFAULT_DEVICE_SOURCE,
    ENV_CLOUD,
    ENV_CREDENTIALS,
    ENV_DEVICE,
    DeviceSettings,
)
from .storage import IniConfigStore
from .thing import Thing
from .types import DataItem, EventFlag, TypeId, unit_symbol
from .updater import apply_remote_config

app = typer.Typer(
    name="knot-thing",
    help="Inspect and update the configuration sources of a KNoT gateway thing.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

DeviceOption = Annotated[
    str,
    typer.Option("--device", "-d", help="Device configuration source", envvar=ENV_DEVICE),
]
CloudOption = Annotated[
    str,
    typer.Option("--cloud", "-c", help="Cloud configuration source", envvar=ENV_CLOUD),
]
CredentialsOption = Annotated[
    str,
    typer.Option("--credentials", "-k", help="Credentials configuration source", envvar=ENV_CREDENTIALS),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def make_settings(device: str, cloud: str, credentials: str) -> DeviceSettings:
    return DeviceSettings(device_path=device, cloud_path=cloud, credentials_path=credentials)


def read_command(path: str) -> ConfigCommand:
    """Read a decoded configuration command from a JSON file, or stdin for '-'."""
    if path == "-":
        text = sys.stdin.read()
    else:
        command_path = Path(path)
        if not command_path.is_file():
            raise ValidationError("command", f"Command file not found: {command_path}")
        text = command_path.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError("command", f"Malformed JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError("command", "Command must be a JSON object")
    return ConfigCommand.from_dict(payload)


def format_event(item: DataItem) -> str:
    event = item.event
    parts: list[str] = []
    if event.flags & EventFlag.TIME:
        parts.append(f"every {event.time_sec}s")
    if event.flags & EventFlag.CHANGE:
        parts.append("on change")
    if event.flags & EventFlag.LOWER_THRESHOLD and event.lower_limit is not None:
        parts.append(f"below {event.lower_limit.value}")
    if event.flags & EventFlag.UPPER_THRESHOLD and event.upper_limit is not None:
        parts.append(f"above {event.upper_limit.value}")
    return ", ".join(parts) if parts else "none"


def format_data_item(item: DataItem) -> str:
    schema = item.schema
    try:
        type_name = TypeId(schema.type_id).name
    except ValueError:
        type_name = f"{schema.type_id:#06x}"
    unit = unit_symbol(schema.type_id, schema.unit)
    line = f"  [{item.sensor_id}] {schema.name}: {type_name} {schema.value_type.name}"
    if unit:
        line += f" ({unit})"
    if item.addressing is not None:
        line += f" reg={item.addressing.reg_addr} bits={item.addressing.value_type_size}"
    return f"{line} events: {format_event(item)}"


def print_thing(thing: Thing) -> None:
    typer.echo(f"Thing:        {thing.name}")
    typer.echo(f"Id:           {thing.id or '-'}")
    typer.echo(f"Registered:   {'yes' if thing.registered else 'no'}")
    if thing.transport_slave is not None:
        typer.echo(f"Slave:        {thing.transport_slave.slave_id} @ {thing.transport_slave.url}")
    if thing.driver is not None:
        typer.echo(
            f"Driver:       {thing.driver.protocol} (id {thing.driver.id}, endianness {thing.driver.endianness})"
        )
    typer.echo(f"Cloud:        {thing.cloud_endpoint_url}")
    typer.echo(f"Data items:   {thing.count}")
    for item in thing.data_items:
        typer.echo(format_data_item(item))


def fail(message: str, code: int, verbose: bool = False) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    if verbose and code == 4:
        import traceback
        traceback.print_exc()
    return typer.Exit(code)


# ============================================================================
# Commands
# ============================================================================


@app.command()
def show(
    device: DeviceOption = DEFAULT_DEVICE_SOURCE,
    cloud: CloudOption = DEFAULT_CLOUD_SOURCE,
    credentials: CredentialsOption = DEFAULT_CREDENTIALS_SOURCE,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Load the thing from its configuration sources and print it.

    Secrets (tokens, driver password) are never printed.
    """
    setup_logging(verbose)

    try:
        thing = load_thing(IniConfigStore(), make_settings(device, cloud, credentials))
        if json_output:
            typer.echo(json.dumps(thing.to_dict(), indent=2))
        else:
            print_thing(thing)
    except ValidationError as e:
        raise fail(f"Invalid configuration: {e}", 2)
    except StorageIOError as e:
        raise fail(f"Storage error: {e}", 3)
    except Exception as e:
        raise fail(f"Unexpected error: {e}", 4, verbose)


@app.command()
def check(
    device: DeviceOption = DEFAULT_DEVICE_SOURCE,
    cloud: CloudOption = DEFAULT_CLOUD_SOURCE,
    credentials: CredentialsOption = DEFAULT_CREDENTIALS_SOURCE,
    verbose: VerboseOption = False,
) -> None:
    """Validate all configuration sources; exit 0 only if the thing loads completely."""
    setup_logging(verbose)

    try:
        thing = load_thing(IniConfigStore(), make_settings(device, cloud, credentials))
        typer.echo(f"OK: {thing.name} with {thing.count} data items")
    except ValidationError as e:
        raise fail(f"Invalid configuration: {e}", 2)
    except StorageIOError as e:
        raise fail(f"Storage error: {e}", 3)
    except Exception as e:
        raise fail(f"Unexpected error: {e}", 4, verbose)


@app.command(name="apply-config")
def apply_config(
    command_file: Annotated[str, typer.Argument(help="JSON configuration command file, or '-' for stdin")],
    device: DeviceOption = DEFAULT_DEVICE_SOURCE,
    cloud: CloudOption = DEFAULT_CLOUD_SOURCE,
    credentials: CredentialsOption = DEFAULT_CREDENTIALS_SOURCE,
    verbose: VerboseOption = False,
    missing_ok: Annotated[
        bool, typer.Option("--missing-ok", help="Succeed silently if the sensor id is not configured")
    ] = False,
) -> None:
    """
    Apply a remote configuration command to one data item.

    The thing is loaded first; the command then updates the data item in memory and
    in the device source. Every field write is attempted even if an earlier one failed.
    """
    setup_logging(verbose)

    try:
        command = read_command(command_file)
        settings = make_settings(device, cloud, credentials)
        store = IniConfigStore()
        thing = load_thing(store, settings)
        item = apply_remote_config(thing, store, settings, command, missing_ok=missing_ok)
        if item is None:
            typer.echo(f"OK: sensor id {command.sensor_id} not configured, nothing changed")
        else:
            typer.echo(f"OK: updated data item {item.sensor_id} ({item.schema.name})")
    except ValidationError as e:
        raise fail(f"Invalid command: {e}", 2)
    except NotFoundError as e:
        raise fail(str(e), 2)
    except PartialFailureError as e:
        raise fail(f"Partially applied: {e}", 3)
    except StorageIOError as e:
        raise fail(f"Storage error: {e}", 3)
    except Exception as e:
        raise fail(f"Unexpected error: {e}", 4, verbose)


@app.command(name="set-credentials")
def set_credentials(
    thing_id: Annotated[str, typer.Argument(help="Thing id issued by the cloud")],
    token: Annotated[str, typer.Argument(help="Thing token issued by the cloud")],
    credentials: CredentialsOption = DEFAULT_CREDENTIALS_SOURCE,
    verbose: VerboseOption = False,
) -> None:
    """Store a thing id/token pair in the credentials source."""
    setup_logging(verbose)

    try:
        settings = DeviceSettings(credentials_path=credentials)
        store_credentials(Thing(), IniConfigStore(), settings, thing_id, token)
        typer.echo(f"OK: stored credentials for {thing_id}")
    except ValidationError as e:
        raise fail(f"Invalid credentials: {e}", 2)
    except StorageIOError as e:
        raise fail(f"Storage error: {e}", 3)
    except Exception as e:
        raise fail(f"Unexpected error: {e}", 4, verbose)


@app.command(name="clear-credentials")
def clear_credentials_command(
    credentials: CredentialsOption = DEFAULT_CREDENTIALS_SOURCE,
    verbose: VerboseOption = False,
) -> None:
    """Erase the thing id and token from the credentials source."""
    setup_logging(verbose)

    try:
        settings = DeviceSettings(credentials_path=credentials)
        clear_credentials(Thing(), IniConfigStore(), settings)
        typer.echo("OK: credentials cleared")
    except PartialFailureError as e:
        raise fail(f"Partially cleared: {e}", 3)
    except StorageIOError as e:
        raise fail(f"Storage error: {e}", 3)
    except Exception as e:
        raise fail(f"Unexpected error: {e}", 4, verbose)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pyknot-thing {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """knot-thing - configuration tool for a KNoT field-bus gateway thing."""
    pass


if __name__ == "__main__":
    app()

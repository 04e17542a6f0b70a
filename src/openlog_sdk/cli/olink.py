"""
olink - OpenLog Command-Line Interface
======================================

This module implements the command-line interface for talking to an
OpenLog datalogger over a serial port. Every command first runs the
bring-up sequence (reset, boot handshake), then issues its file
operation in command mode.

Usage Examples
--------------
List available serial ports:
    $ olink ports

List files on the card:
    $ olink -p /dev/ttyUSB0 ls
    $ olink ls "*.CSV"

Append lines to a file:
    $ olink log DATA.CSV "42,3.7"
    $ sensor-reader | olink log DATA.CSV

Read a file:
    $ olink cat DATA.CSV
    $ olink cat DATA.CSV --offset 10 --length 16 --format hex

Hardware Setup
--------------
Before using olink, ensure:
1. The OpenLog is wired to a USB-serial adapter with DTR on the GRN pin
2. The serial port has proper permissions (dialout group on Linux)
3. The baud rate matches CONFIG.TXT on the card (default 9600)

Defaults for port, baud rate and timing can also come from the
OPENLOG_PORT, OPENLOG_BAUD, OPENLOG_TIMEOUT, OPENLOG_SETTLE_DELAY,
OPENLOG_RESET_HOLD and OPENLOG_BOOT_TIMEOUT environment variables.

Exit Codes
----------
0 - Success
1 - Device, protocol or connection error
2 - Invalid arguments or configuration error
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import click

from openlog_sdk import __version__
from openlog_sdk.cli.errors import ExitCode, handle_cli_exception
from openlog_sdk.comms import (
    VALID_BAUD_RATES,
    OpenLog,
    ReadFormat,
    close_serial_port,
    find_openlog_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)
from openlog_sdk.config import DriverConfig

# Configure logging
logger = logging.getLogger(__name__)

# Names accepted by 'cat --format'
FORMAT_NAMES = {
    "ascii": ReadFormat.ASCII,
    "hex": ReadFormat.HEXADECIMAL,
    "raw": ReadFormat.RAW,
}


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Holds the driver configuration plus verbosity.
    """

    def __init__(self) -> None:
        self.config: DriverConfig = DriverConfig.from_env()
        self.verbose: bool = False

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )


pass_context = click.make_pass_decorator(Context, ensure=True)


@contextmanager
def connected_openlog(ctx: Context) -> Iterator[OpenLog]:
    """
    Open the port, bring the OpenLog up and close the port afterwards.

    Exits with DEVICE_ERROR when no port is given and none is detected.
    """
    ctx.config.validate()
    port_device = ctx.config.port or find_openlog_port()
    if not port_device:
        click.echo("Error: No serial port specified and auto-detect failed.", err=True)
        click.echo("Use --port option or 'olink ports' to find available ports.", err=True)
        raise SystemExit(ExitCode.DEVICE_ERROR)

    serial_port = open_serial_port(
        port_device, baud_rate=ctx.config.baud_rate, timeout=ctx.config.timeout
    )
    try:
        log = OpenLog(serial_port, ctx.config)
        banner = log.initialize()
        logger.info("Connected to OpenLog on %s (%r)", port_device, banner)
        yield log
    finally:
        close_serial_port(serial_port)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-p", "--port",
    type=str,
    default=None,
    help="Serial port device (auto-detect if not specified)",
)
@click.option(
    "-b", "--baud",
    type=click.Choice([str(b) for b in VALID_BAUD_RATES]),
    default=None,
    help="Baud rate (default: 9600)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-command timeout in seconds (default: 5)",
)
@click.version_option(version=__version__, prog_name="olink")
@pass_context
def main(
    ctx: Context,
    port: Optional[str],
    baud: Optional[str],
    verbose: bool,
    timeout: Optional[float],
) -> None:
    """
    Manage files on an OpenLog serial datalogger.

    Each command resets the OpenLog and waits for it to boot before
    talking to it, so the card is always in a known state.

    Use 'olink ports' to list available serial ports.
    """
    if port is not None:
        ctx.config.port = port
    if baud is not None:
        ctx.config.baud_rate = int(baud)
    if timeout is not None:
        ctx.config.timeout = timeout
    ctx.verbose = verbose
    ctx.setup_logging()


# =============================================================================
# Ports Command
# =============================================================================

@main.command()
@click.option("--detailed", "-d", is_flag=True, help="Show vendor and USB details")
def ports(detailed: bool) -> None:
    """
    List serial ports and suggest the one the OpenLog is probably on.

    Example:
        olink ports
        olink ports --detailed
    """
    found = list_serial_ports()
    click.echo(format_port_list(found, verbose=detailed))
    if not found:
        click.echo("Plug in the USB-serial adapter; on Linux you also need the dialout group.")
        return

    suggestion = find_openlog_port()
    if suggestion is None:
        click.echo("\nNo USB-serial adapter found among these ports.")
    else:
        click.echo(f"\nSuggested port for OpenLog: {suggestion}")


# =============================================================================
# Directory Commands
# =============================================================================

@main.command("ls")
@click.argument("pattern", required=False)
@pass_context
def list_files(ctx: Context, pattern: Optional[str]) -> None:
    """
    List files in the card's root directory.

    PATTERN is an optional wildcard filter such as "*.CSV".

    Example:
        olink ls
        olink ls "LOG*.TXT"
    """
    try:
        with connected_openlog(ctx) as log:
            entries = log.list_directory(pattern)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "List")

    if not entries:
        click.echo("  (empty)")
        return
    for entry in entries:
        click.echo(f"  {entry}")
    click.echo("-" * 40)
    click.echo(f"{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")


@main.command()
@click.argument("name")
@pass_context
def mkdir(ctx: Context, name: str) -> None:
    """Create directory NAME."""
    try:
        with connected_openlog(ctx) as log:
            log.make_dir(name)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "mkdir")
    click.echo(f"Created directory {name}")


@main.command()
@click.argument("name")
@pass_context
def rmdir(ctx: Context, name: str) -> None:
    """Remove directory NAME and everything in it."""
    try:
        with connected_openlog(ctx) as log:
            log.remove_dir(name)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "rmdir")
    click.echo(f"Removed directory {name}")


# =============================================================================
# File Commands
# =============================================================================

@main.command()
@click.argument("name")
@pass_context
def rm(ctx: Context, name: str) -> None:
    """
    Remove file NAME.

    Wildcards are expanded by the OpenLog:

        olink rm "LOG*.TXT"
    """
    try:
        with connected_openlog(ctx) as log:
            log.remove_file(name)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "rm")
    click.echo(f"Removed {name}")


@main.command()
@click.argument("name")
@pass_context
def new(ctx: Context, name: str) -> None:
    """Create empty file NAME."""
    try:
        with connected_openlog(ctx) as log:
            log.new_file(name)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "new")
    click.echo(f"Created {name}")


@main.command()
@click.argument("name")
@pass_context
def size(ctx: Context, name: str) -> None:
    """Print the size of file NAME in bytes."""
    try:
        with connected_openlog(ctx) as log:
            file_size = log.size(name)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "size")
    click.echo(str(file_size))


@main.command()
@click.argument("name")
@click.option("--offset", "-o", type=int, default=None, help="Start offset in bytes")
@click.option("--length", "-n", type=int, default=None, help="Number of bytes to read")
@click.option(
    "--format", "-f", "fmt",
    type=click.Choice(sorted(FORMAT_NAMES)),
    default=None,
    help="Output format rendered by the OpenLog (requires --length)",
)
@pass_context
def cat(
    ctx: Context,
    name: str,
    offset: Optional[int],
    length: Optional[int],
    fmt: Optional[str],
) -> None:
    """
    Print the contents of file NAME.

    Example:
        olink cat DATA.CSV
        olink cat DATA.CSV --length 64 --format hex
    """
    read_format = FORMAT_NAMES[fmt] if fmt else None
    try:
        with connected_openlog(ctx) as log:
            data = log.read(name, offset=offset, length=length, fmt=read_format)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Read")
    click.echo(data)


@main.command("log")
@click.argument("name")
@click.argument("text", nargs=-1)
@pass_context
def log_lines(ctx: Context, name: str, text: tuple[str, ...]) -> None:
    """
    Append a line to file NAME.

    TEXT words are joined with spaces into one line. Without TEXT, every
    line read from standard input is appended.

    Example:
        olink log DATA.CSV 42,3.7
        tail -f sensor.out | olink log DATA.CSV
    """
    if text:
        lines = [" ".join(text)]
    else:
        lines = [line.rstrip("\r\n") for line in click.get_text_stream("stdin")]

    try:
        with connected_openlog(ctx) as log:
            log.create(name)
            for line in lines:
                log.write_line(line)
            log.sync()
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Write")
    click.echo(f"Appended {len(lines)} line(s) to {name}")


@main.command("write-at")
@click.argument("name")
@click.argument("offset", type=int)
@click.argument("text")
@pass_context
def write_at(ctx: Context, name: str, offset: int, text: str) -> None:
    """
    Overwrite bytes of file NAME starting at OFFSET with TEXT.

    Example:
        olink write-at DATA.CSV 0 "43"
    """
    try:
        with connected_openlog(ctx) as log:
            log.write_at(name, offset, text)
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Write")
    click.echo(f"Wrote {len(text)} byte(s) to {name} at offset {offset}")


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()

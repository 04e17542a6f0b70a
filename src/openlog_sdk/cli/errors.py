"""
CLI Error Handling
==================

Maps driver exceptions to messages and exit codes for the olink tool.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn, Optional

import click

from openlog_sdk.errors import (
    ConfigError,
    InvalidArgument,
    OpenLogError,
    ProtocolDesync,
    TransportTimeout,
)


class ExitCode(IntEnum):
    """Process exit codes used by olink."""
    SUCCESS = 0
    DEVICE_ERROR = 1     # Peripheral, protocol or port error
    INVALID_ARGS = 2     # Invalid arguments or configuration
    INTERNAL_ERROR = 3   # Bug or unexpected failure


# Checked in order; the first matching row wins.
# (exception types, exit code, hint printed after the message)
_ERROR_TABLE: tuple[tuple[tuple[type, ...], ExitCode, Optional[str]], ...] = (
    ((InvalidArgument, ConfigError, click.BadParameter), ExitCode.INVALID_ARGS, None),
    (
        (TransportTimeout, ProtocolDesync),
        ExitCode.DEVICE_ERROR,
        "Check the wiring and baud rate (CONFIG.TXT on the card).",
    ),
    ((OpenLogError,), ExitCode.DEVICE_ERROR, None),
)


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: Optional[str] = None,
) -> NoReturn:
    """
    Print an error raised by a command and exit with the matching code.

    Driver errors exit with DEVICE_ERROR, bad input with INVALID_ARGS.
    Anything else is reported as an internal error, with a traceback
    when ``verbose`` is set.

    Args:
        error: The exception the command raised
        verbose: Print a traceback for internal errors
        error_type: Label for the message prefix (e.g., "Read")
    """
    prefix = f"{error_type} error: " if error_type else "Error: "

    for types, code, hint in _ERROR_TABLE:
        if isinstance(error, types):
            click.echo(f"{prefix}{error}", err=True)
            if hint:
                click.echo(hint, err=True)
            sys.exit(code)

    click.echo(f"Internal error: {error}", err=True)
    if verbose:
        traceback.print_exc()
    sys.exit(ExitCode.INTERNAL_ERROR)

"""
OpenLog SDK - Host Driver for Serial SD-Card Dataloggers
========================================================

This package drives a SparkFun OpenLog (or compatible) datalogger over a
UART link. The OpenLog accepts plain text commands to create, append to,
read and remove files and directories on its SD card.

Main Components
---------------
- **comms**: Protocol engine
    Serial transport, command framing, mode state machine, file operations
    and the reset/boot handshake

- **config**: Driver configuration
    Timing, baud rate and port settings, optionally from the environment

- **testkit**: Test support
    An in-memory simulated OpenLog and pytest fixtures

Quick Start
-----------
    >>> from openlog_sdk import OpenLog, open_serial_port
    >>> port = open_serial_port('/dev/ttyUSB0')
    >>> log = OpenLog(port)
    >>> log.initialize()
    >>> log.create("DATA.CSV")
    >>> log.write_line("42,3.7")

Or use the command-line tool:
    $ olink -p /dev/ttyUSB0 log DATA.CSV "42,3.7"
    $ olink -p /dev/ttyUSB0 cat DATA.CSV

Version History
---------------
1.0.0 - Initial release
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from openlog_sdk.config import DriverConfig
from openlog_sdk.errors import (
    OpenLogError,
    ConfigError,
    CommsError,
    ConnectionError,
    TransportTimeout,
    ProtocolDesync,
    PeripheralRejected,
    InvalidArgument,
    NoActiveFile,
)
from openlog_sdk.comms import (
    CommandLink,
    DirectoryEntry,
    Mode,
    OpenLog,
    ReadFormat,
    Session,
    open_serial_port,
)

__all__ = [
    "__version__",
    # Configuration
    "DriverConfig",
    # Errors
    "OpenLogError",
    "ConfigError",
    "CommsError",
    "ConnectionError",
    "TransportTimeout",
    "ProtocolDesync",
    "PeripheralRejected",
    "InvalidArgument",
    "NoActiveFile",
    # Driver
    "CommandLink",
    "DirectoryEntry",
    "Mode",
    "OpenLog",
    "ReadFormat",
    "Session",
    "open_serial_port",
]

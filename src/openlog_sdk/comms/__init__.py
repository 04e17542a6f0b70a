"""
OpenLog Communication Module
============================

This module provides the host side of the OpenLog serial protocol: a
command/response engine that creates, appends to, reads and removes files
and directories on the logger's SD card.

Protocol Architecture
---------------------
The OpenLog has two input modes:

- **Write mode**: every byte received is appended to the bound file.
  This is the mode the device boots into.
- **Command mode**: lines terminated by CR are interpreted as commands.
  Entered by sending SUB (0x1A) three times.

Responses are delimited by sentinel bytes: ``>`` ends a control or data
response, ``<`` acknowledges a command that enters write mode.

Module Structure
----------------
- **serial**: Serial port utilities (detection, configuration, reset lines)
- **framing**: Command encoding, sentinels and response decoders
- **link**: Mode state machine and blocking exchanges
- **files**: High-level file operations (the OpenLog class)
- **bringup**: Reset and boot handshake

Quick Start
-----------
    from openlog_sdk.comms import OpenLog, open_serial_port

    port = open_serial_port('/dev/ttyUSB0', baud_rate=9600)
    with OpenLog(port) as log:
        log.initialize()
        log.create("DATA.CSV")
        log.write_line("42,3.7")
        print(log.size("DATA.CSV"))

Error Handling
--------------
All communication errors inherit from `CommsError`:

- `TransportTimeout`: A sentinel never arrived
- `ProtocolDesync`: Framing lost; call `recover()` before continuing
- `PeripheralRejected`: The OpenLog reported an error (framing intact)
- `InvalidArgument`: An argument cannot be expressed in the command syntax

These exceptions are defined in `openlog_sdk.errors`.

Thread Safety
-------------
`OpenLog` serialises its public methods with a lock. `CommandLink` on its
own is NOT thread-safe.
"""

# =============================================================================
# Public API Exports
# =============================================================================

# Serial port utilities
from openlog_sdk.comms.serial import (
    DEFAULT_BAUD_RATE,
    USB_VENDOR_IDS,
    VALID_BAUD_RATES,
    PortInfo,
    SerialLineControl,
    close_serial_port,
    find_openlog_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
    validate_port_settings,
)

# Framing
from openlog_sdk.comms.framing import (
    CR,
    CRLF,
    ESCAPE_SEQUENCE,
    SUB,
    Command,
    ReadFormat,
    Response,
    ResponseKind,
    Sentinel,
    decode_control,
    decode_data,
    decode_write_ready,
    format_read_args,
    parse_size,
)

# Mode state machine
from openlog_sdk.comms.link import (
    CommandLink,
    Mode,
    Session,
)

# File operations
from openlog_sdk.comms.files import (
    DirectoryEntry,
    OpenLog,
    parse_directory_listing,
)

# Bring-up
from openlog_sdk.comms.bringup import BringUpSequencer

# Public API - what gets exported with "from openlog_sdk.comms import *"
__all__ = [
    # Serial
    "DEFAULT_BAUD_RATE",
    "USB_VENDOR_IDS",
    "VALID_BAUD_RATES",
    "PortInfo",
    "SerialLineControl",
    "close_serial_port",
    "find_openlog_port",
    "format_port_list",
    "list_serial_ports",
    "open_serial_port",
    "validate_port_settings",
    # Framing
    "CR",
    "CRLF",
    "ESCAPE_SEQUENCE",
    "SUB",
    "Command",
    "ReadFormat",
    "Response",
    "ResponseKind",
    "Sentinel",
    "decode_control",
    "decode_data",
    "decode_write_ready",
    "format_read_args",
    "parse_size",
    # Link
    "CommandLink",
    "Mode",
    "Session",
    # Files
    "DirectoryEntry",
    "OpenLog",
    "parse_directory_listing",
    # Bring-up
    "BringUpSequencer",
]

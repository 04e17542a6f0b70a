"""
OpenLog File Operations
=======================

This module provides the high-level file API on top of the command link.
Every operation is expressed in the peripheral's command vocabulary:

    ┌─────────────────────┬──────────────────────────────────┬──────────────┐
    │ Method              │ Command                          │ Response     │
    ├─────────────────────┼──────────────────────────────────┼──────────────┤
    │ create / open       │ append <name>                    │ write-ready  │
    │ write_line          │ (raw text + CRLF in write mode)  │ none         │
    │ write_at            │ write <name> <offset>            │ '<' then '>' │
    │ make_dir            │ md <name>                        │ control      │
    │ change_dir          │ cd <name>                        │ control      │
    │ remove_file         │ rm <name>                        │ control      │
    │ remove_dir          │ rm -rf <name>                    │ control      │
    │ size                │ size <name>                      │ data         │
    │ read                │ read <name> [off] [len] [fmt]    │ data         │
    │ new_file            │ new <name>                       │ control      │
    │ list_directory      │ ls [pattern]                     │ control      │
    │ sync                │ sync                             │ control      │
    └─────────────────────┴──────────────────────────────────┴──────────────┘

Write Paths
-----------
Appending lines is the fast path: once a file is bound, text goes straight
to the peripheral in write mode with no acknowledgement. Any other command
leaves write mode, so the next write_line() rebinds the file with
``append`` before writing.

Random-access writes behave differently. ``write`` is acknowledged with
``<`` but the peripheral collects payload lines until an empty one and
then answers ``>``, so the session ends in command mode and the active
file binding is untouched.

Usage Example
-------------
    from openlog_sdk.comms import OpenLog, open_serial_port

    port = open_serial_port('/dev/ttyUSB0')
    with OpenLog(port) as log:
        log.initialize()
        log.create("DATA.CSV")
        log.write_line("42,3.7")
        print(log.read("DATA.CSV"))  # b'42,3.7'
"""

import fnmatch
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from openlog_sdk.comms.bringup import BringUpSequencer
from openlog_sdk.comms.framing import (
    CRLF,
    ReadFormat,
    ResponseKind,
    Command,
    encode_text,
    format_read_args,
    parse_size,
    split_lines,
    validate_count,
    validate_name,
)
from openlog_sdk.comms.link import CommandLink, Mode, Session
from openlog_sdk.comms.serial import SerialLineControl, close_serial_port
from openlog_sdk.config import DriverConfig
from openlog_sdk.errors import InvalidArgument, NoActiveFile

if TYPE_CHECKING:
    import serial

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Directory Listing
# =============================================================================

@dataclass
class DirectoryEntry:
    """
    One entry of a directory listing.

    Attributes:
        name: File or directory name (without the trailing '/')
        is_directory: True for subdirectories
        size: File size in bytes (None for directories)
    """

    name: str
    is_directory: bool = False
    size: Optional[int] = None

    def __str__(self) -> str:
        """Format entry for display."""
        if self.is_directory:
            return f"{self.name}/"
        if self.size is not None:
            return f"{self.name:12} {self.size:8d} bytes"
        return self.name


def parse_directory_listing(lines: list[bytes]) -> list[DirectoryEntry]:
    """
    Parse the text lines of an ``ls`` response.

    Directories are listed with a trailing slash, files as name and size
    separated by whitespace. Lines that fit neither shape are logged and
    skipped.
    """
    entries = []
    for line in lines:
        text = line.decode("ascii", errors="replace").strip()
        if not text:
            continue
        if text.endswith("/"):
            entries.append(DirectoryEntry(text[:-1], is_directory=True))
            continue

        parts = text.split()
        if len(parts) == 1:
            entries.append(DirectoryEntry(parts[0]))
        elif len(parts) == 2 and parts[1].isdigit():
            entries.append(DirectoryEntry(parts[0], size=int(parts[1])))
        else:
            logger.warning("Unrecognised directory line: %r", text)
    return entries


# =============================================================================
# OpenLog Driver
# =============================================================================

class OpenLog:
    """
    File operations on an OpenLog attached to a serial port.

    Each public method runs under an instance lock, so a shared instance
    never interleaves two commands on the wire. Sessions are per instance.

    Attributes:
        config: Driver configuration
        link: Command link owning the session state
        lines: Reset/hold line driver used during bring-up
    """

    def __init__(
        self,
        port: "serial.Serial",
        config: Optional[DriverConfig] = None,
        line_control: Optional[SerialLineControl] = None,
    ):
        """
        Create a driver for an opened port.

        Args:
            port: Opened serial port (or compatible object).
            config: Driver configuration; defaults are used when omitted.
            line_control: Reset/hold line driver; DTR/RTS of the port by
                          default.
        """
        self.config = config if config is not None else DriverConfig()
        self.config.validate()
        self.port = port
        self.link = CommandLink(port, timeout=self.config.timeout)
        self.lines = line_control if line_control is not None else SerialLineControl(port)
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        """Driver-side session state."""
        return self.link.session

    @property
    def mode(self) -> Mode:
        """Current peripheral mode."""
        return self.link.mode

    @property
    def active_file(self) -> Optional[str]:
        """File bound as implicit write target, if any."""
        return self.link.active_file

    def initialize(self) -> bytes:
        """
        Bring the peripheral to a known state.

        Resets the OpenLog, waits for it to boot, and leaves the session in
        command mode with no active file.

        Returns:
            The boot banner.
        """
        with self._lock:
            return BringUpSequencer(self).run()

    def recover(self) -> None:
        """
        Resynchronise after a timeout or desync.

        Raises:
            TransportTimeout: If the peripheral still does not answer.
        """
        with self._lock:
            self.link.recover()

    def ensure_command_mode(self) -> None:
        """Switch to command mode if not already there."""
        with self._lock:
            self.link.ensure_command_mode()

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def create(self, name: str) -> None:
        """
        Create a file if missing and bind it as the write target.

        Args:
            name: File name.

        Raises:
            InvalidArgument: If the name cannot be sent.
            PeripheralRejected: If the peripheral refused the file.
        """
        with self._lock:
            logger.info("Opening %s for append", name)
            self.link.enter_write_mode_for(validate_name(name))

    def open(self, name: str) -> None:
        """Bind an existing or new file as write target (same as create())."""
        self.create(name)

    def write_line(self, text: Union[str, bytes]) -> None:
        """
        Append one line of text to the active file.

        The text is followed by CRLF. When the session is still in write
        mode for the active file nothing but the text is sent; otherwise the
        file is rebound with ``append`` first.

        Args:
            text: Line content without terminator.

        Raises:
            NoActiveFile: If no file was opened, or the binding was released.
            InvalidArgument: If the text contains the escape character.
        """
        data = encode_text(text) + CRLF
        with self._lock:
            active = self.link.active_file
            if active is None:
                raise NoActiveFile("No active file; call open() or create() first")

            if self.link.mode is Mode.COMMAND:
                logger.debug("Rebinding %s before write", active)
                self.link.enter_write_mode_for(active)
            self.link.write_data(data)

    def write_at(self, name: str, offset: int, data: Union[str, bytes]) -> None:
        """
        Overwrite file bytes starting at an offset.

        The peripheral acknowledges ``write`` with ``<``, takes the payload
        line, and returns to command mode after an empty line. The session
        therefore ends in command mode and the active file is not changed.

        Note:
            Unlike ``append``, which ends at ``<`` and stays in write mode,
            this exchange ends at ``>``. Older host libraries waited for
            ``>`` straight after the ``write`` command; the peripheral
            firmware prompts with ``<`` first, and that order is used here.

        Args:
            name: File to write.
            offset: Byte offset into the file.
            data: Single-line payload.

        Raises:
            InvalidArgument: If an argument cannot be sent; the payload may
                not contain CR, LF or the escape character.
            PeripheralRejected: If the peripheral refused the write.
        """
        payload = encode_text(data, allow_line_breaks=False)
        if not payload:
            # An empty line would end the sub-mode before any data
            raise InvalidArgument("Payload for write_at must not be empty")
        args = [validate_name(name), str(validate_count(offset, "offset"))]

        command = Command("write", tuple(args))

        with self._lock:
            logger.debug("Writing %d bytes to %s at offset %d", len(payload), name, offset)
            self.link.ensure_command_mode()
            self.link.send_command(command.verb, command.args, ResponseKind.WRITE_READY)
            # Payload line, then the empty line that ends the sub-mode
            self.link.send_payload(payload + CRLF + CRLF, command)

    # -------------------------------------------------------------------------
    # Filesystem
    # -------------------------------------------------------------------------

    def make_dir(self, name: str) -> None:
        """Create a directory in the current directory."""
        with self._lock:
            self.link.send_command("md", [validate_name(name, "directory name")])

    def change_dir(self, name: str) -> None:
        """
        Change the working directory (``..`` moves to the parent).

        The active file binding is released: the bound name is relative to
        the directory it was opened in.
        """
        with self._lock:
            self.link.send_command("cd", [validate_name(name, "directory name")])
            self.link.release_active_file()

    def remove_file(self, name: str) -> None:
        """
        Delete a file. Wildcards are expanded by the peripheral.

        Removing the active file, by name or by a matching wildcard,
        releases the binding.
        """
        with self._lock:
            self.link.send_command("rm", [validate_name(name)])
            active = self.link.active_file
            if active is not None and fnmatch.fnmatchcase(active.upper(), name.upper()):
                self.link.release_active_file()

    def remove_dir(self, name: str) -> None:
        """
        Delete a directory and everything in it.

        The active file binding is released because it may have lived in
        the removed tree.
        """
        with self._lock:
            self.link.send_command("rm", ["-rf", validate_name(name, "directory name")])
            self.link.release_active_file()

    def new_file(self, name: str) -> None:
        """Create an empty file without binding it."""
        with self._lock:
            self.link.send_command("new", [validate_name(name)])

    def list_directory(self, pattern: Optional[str] = None) -> list[DirectoryEntry]:
        """
        List the current directory.

        Args:
            pattern: Optional wildcard filter such as ``*.TXT``.

        Returns:
            Directory entries in the order the peripheral lists them.
        """
        args = [] if pattern is None else [validate_name(pattern, "pattern")]
        with self._lock:
            response = self.link.send_command("ls", args)
        return parse_directory_listing(split_lines(response.payload))

    def sync(self) -> None:
        """Flush the peripheral's buffers to the card."""
        with self._lock:
            self.link.send_command("sync")

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def size(self, name: str) -> int:
        """
        Return the size of a file in bytes.

        Raises:
            PeripheralRejected: If the file does not exist.
        """
        with self._lock:
            response = self.link.send_command(
                "size", [validate_name(name)], ResponseKind.DATA
            )
        command = Command("size", (name,))
        return parse_size(response.payload, command)

    def read(
        self,
        name: str,
        offset: Optional[int] = None,
        length: Optional[int] = None,
        fmt: Optional[ReadFormat] = None,
    ) -> bytes:
        """
        Read file contents.

        The payload is returned as the peripheral renders it: for
        ReadFormat.HEXADECIMAL that is hex text, not decoded bytes. The
        payload ends at the first carriage return in the data.

        The protocol cannot tell file data from the error marker: a
        payload that is exactly ``!`` (a file whose first line is ``!``)
        is reported as PeripheralRejected. Reading from an offset past
        that line, or with ReadFormat.HEXADECIMAL, avoids it.

        Args:
            name: File to read.
            offset: Start offset (0 when only a length is given).
            length: Number of bytes; the whole file when omitted.
            fmt: Output format; requires a length.

        Raises:
            InvalidArgument: On bad arguments.
            PeripheralRejected: If the file does not exist.
        """
        args = format_read_args(name, offset, length, fmt)
        with self._lock:
            response = self.link.send_command("read", args, ResponseKind.DATA)
        return response.payload

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the serial port."""
        with self._lock:
            close_serial_port(self.port)

    def __enter__(self) -> "OpenLog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

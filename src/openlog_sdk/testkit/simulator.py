"""
OpenLog Testing Framework - Simulated Peripheral
================================================

An in-memory OpenLog that speaks the serial command protocol. It exposes
the subset of the pyserial ``Serial`` surface the driver uses, so it can be
passed anywhere a real port is expected:

    port = SimulatedOpenLog()
    log = OpenLog(port, DriverConfig(settle_delay=0, reset_hold=0))
    log.initialize()

Behaviour
---------
- Boots in write mode with no file bound; bytes written then are dropped
- Three SUB bytes in write mode switch to command mode (``\\r\\n>``)
- Command lines are echoed, followed by any output lines and ``>``
- Errors answer ``!`` before the prompt
- Asserting DTR after it was deasserted reboots the device and prints ``12<``
- A baud rate other than ``native_baud`` makes the device deaf and mute
- ``hang()`` stops all responses until the next reset

The card filesystem is case-insensitive like FAT. ``read`` without a
format tag returns file bytes unchanged; tag 1 renders non-printable bytes
as ``.``, tag 2 as space-separated hex, tag 3 unchanged.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import serial

logger = logging.getLogger(__name__)

SUB = 0x1A
CR = 0x0D
LF = 0x0A


# ═══════════════════════════════════════════════════════════════════════════════
# SIMULATED CARD
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class SimFile:
    """A file on the simulated card."""

    name: str
    data: bytearray = field(default_factory=bytearray)


@dataclass
class SimDirectory:
    """A directory on the simulated card. Keys are upper-case names."""

    name: str
    parent: Optional[SimDirectory] = None
    files: dict[str, SimFile] = field(default_factory=dict)
    dirs: dict[str, SimDirectory] = field(default_factory=dict)

    def exists(self, name: str) -> bool:
        key = name.upper()
        return key in self.files or key in self.dirs

    def contains(self, target: SimFile) -> bool:
        """True if target lives anywhere below this directory."""
        if any(f is target for f in self.files.values()):
            return True
        return any(d.contains(target) for d in self.dirs.values())


class SimulatedError(Exception):
    """Raised inside the simulator to answer a command with '!'."""


# ═══════════════════════════════════════════════════════════════════════════════
# SIMULATED DEVICE
# ═══════════════════════════════════════════════════════════════════════════════


class SimulatedOpenLog:
    """
    A pyserial-compatible in-memory OpenLog.

    Attributes:
        baudrate: Baud rate the host configured
        native_baud: Baud rate the simulated device listens at
        timeout: Read timeout in seconds (as pyserial)
        received: Every byte the host wrote, for assertions
        commands: Every command line executed, in order
        escapes: Number of completed escape sequences
        boots: Number of boots (reset pulses)
    """

    BOOT_BANNER = b"12<"

    def __init__(self, native_baud: int = 9600, baudrate: int = 9600):
        self.native_baud = native_baud
        self.baudrate = baudrate
        self.timeout: Optional[float] = 1.0
        self.is_open = True

        self.root = SimDirectory("/")
        self.cwd = self.root
        self.received = bytearray()
        self.commands: list[str] = []
        self.escapes = 0
        self.boots = 0

        self._dtr = True
        self._rts = True
        self._output = bytearray()
        self._hung = False
        self._reset_state()

    def _reset_state(self) -> None:
        self.mode = "write"
        self.bound: Optional[SimFile] = None
        self.cwd = self.root
        self._line = bytearray()
        self._pending_subs = 0
        self._write_target: Optional[SimFile] = None
        self._write_offset = 0

    # ═══════════════════════════════════════════════════════════════════════════
    # SERIAL SURFACE
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def dtr(self) -> bool:
        return self._dtr

    @dtr.setter
    def dtr(self, level: bool) -> None:
        rising = level and not self._dtr
        self._dtr = level
        if rising:
            self.reboot()

    @property
    def rts(self) -> bool:
        return self._rts

    @rts.setter
    def rts(self, level: bool) -> None:
        self._rts = level

    @property
    def in_waiting(self) -> int:
        return len(self._output)

    def write(self, data: bytes) -> int:
        self._check_open()
        data = bytes(data)
        self.received.extend(data)
        if self._hung or self.baudrate != self.native_baud:
            return len(data)
        for byte in data:
            self._feed(byte)
        return len(data)

    def read(self, size: int = 1) -> bytes:
        self._check_open()
        if not self._output:
            # Block like a real port would, for at most the timeout
            if self.timeout:
                time.sleep(min(self.timeout, 0.001))
            return b""
        chunk = bytes(self._output[:size])
        del self._output[:size]
        return chunk

    def read_until(self, expected: bytes = b"\n", size: Optional[int] = None) -> bytes:
        self._check_open()
        index = self._output.find(expected)
        end = len(self._output) if index < 0 else index + len(expected)
        if size is not None:
            end = min(end, size)
        chunk = bytes(self._output[:end])
        del self._output[:end]
        return chunk

    def flush(self) -> None:
        self._check_open()

    def reset_input_buffer(self) -> None:
        self._output.clear()

    def reset_output_buffer(self) -> None:
        pass

    def close(self) -> None:
        self.is_open = False

    def _check_open(self) -> None:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")

    # ═══════════════════════════════════════════════════════════════════════════
    # TEST HOOKS
    # ═══════════════════════════════════════════════════════════════════════════

    def reboot(self) -> None:
        """Power-cycle the device: write mode, nothing bound, banner printed."""
        self.boots += 1
        self._hung = False
        self._output.clear()
        self._reset_state()
        logger.debug("Simulated OpenLog rebooted")
        if self.baudrate == self.native_baud:
            self._emit(self.BOOT_BANNER)

    def hang(self) -> None:
        """Stop responding until the next reboot."""
        self._hung = True

    def unhang(self) -> None:
        self._hung = False

    def inject(self, data: bytes) -> None:
        """Queue bytes as if the device had sent them."""
        self._output.extend(data)

    def file_exists(self, path: str) -> bool:
        """True if a file exists at a '/'-separated path from the root."""
        return self.get_file(path) is not None

    def dir_exists(self, path: str) -> bool:
        return self._walk(path) is not None

    def get_file(self, path: str) -> Optional[SimFile]:
        parent_path, _, name = path.rpartition("/")
        directory = self._walk(parent_path)
        if directory is None:
            return None
        return directory.files.get(name.upper())

    def file_data(self, path: str) -> bytes:
        """Contents of a file; KeyError if missing."""
        found = self.get_file(path)
        if found is None:
            raise KeyError(path)
        return bytes(found.data)

    def add_file(self, path: str, data: bytes = b"") -> SimFile:
        """Create a file directly on the card (parents must exist)."""
        parent_path, _, name = path.rpartition("/")
        directory = self._walk(parent_path)
        if directory is None:
            raise KeyError(parent_path)
        new_file = SimFile(name, bytearray(data))
        directory.files[name.upper()] = new_file
        return new_file

    def _walk(self, path: str) -> Optional[SimDirectory]:
        directory = self.root
        for part in path.strip("/").split("/"):
            if not part:
                continue
            directory = directory.dirs.get(part.upper())
            if directory is None:
                return None
        return directory

    # ═══════════════════════════════════════════════════════════════════════════
    # PROTOCOL
    # ═══════════════════════════════════════════════════════════════════════════

    def _emit(self, data: bytes) -> None:
        self._output.extend(data)

    def _feed(self, byte: int) -> None:
        if self.mode == "write":
            self._feed_write(byte)
        elif self.mode == "write_at":
            self._feed_write_at(byte)
        else:
            self._feed_command(byte)

    def _count_escape(self, byte: int) -> bool:
        """Track SUB bytes; True once a full escape sequence has arrived."""
        if byte != SUB:
            return False
        self._pending_subs += 1
        if self._pending_subs < 3:
            return False
        self._pending_subs = 0
        self.escapes += 1
        self.mode = "command"
        self._line.clear()
        self._emit(b"\r\n>")
        return True

    def _feed_write(self, byte: int) -> None:
        if byte == SUB:
            self._count_escape(byte)
            return
        if self._pending_subs:
            self._append(bytes([SUB]) * self._pending_subs)
            self._pending_subs = 0
        self._append(bytes([byte]))

    def _append(self, data: bytes) -> None:
        if self.bound is not None:
            self.bound.data.extend(data)

    def _feed_write_at(self, byte: int) -> None:
        if byte == SUB:
            self._count_escape(byte)
            return
        self._pending_subs = 0
        if byte == CR:
            return
        if byte != LF:
            self._line.append(byte)
            return

        line = bytes(self._line)
        self._line.clear()
        if not line:
            self.mode = "command"
            self._emit(b"\r\n>")
            return

        target = self._write_target
        end = self._write_offset + len(line)
        if len(target.data) < self._write_offset:
            target.data.extend(b"\x00" * (self._write_offset - len(target.data)))
        target.data[self._write_offset:end] = line
        self._write_offset = end

    def _feed_command(self, byte: int) -> None:
        if byte in (SUB, LF):
            return
        if byte != CR:
            self._line.append(byte)
            return
        line = self._line.decode("ascii", errors="replace")
        self._line.clear()
        self._execute(line)

    def _execute(self, line: str) -> None:
        self.commands.append(line)
        self._emit(line.encode("ascii", errors="replace") + b"\r\n")

        words = line.split()
        if not words:
            self._emit(b">")
            return

        verb, args = words[0].lower(), words[1:]
        handler = getattr(self, f"_cmd_{verb}", None)
        try:
            if handler is None:
                raise SimulatedError(f"unknown command {verb}")
            handler(args)
        except SimulatedError as e:
            logger.debug("Simulated OpenLog rejected %r: %s", line, e)
            self._emit(b"!\r\n>")

    def _control(self, lines: list[str] = ()) -> None:
        for text in lines:
            self._emit(text.encode("ascii") + b"\r\n")
        self._emit(b">")

    def _data(self, payload: bytes) -> None:
        self._emit(payload + b"\r\n>")

    @staticmethod
    def _need(args: list[str], count: int) -> None:
        if len(args) < count:
            raise SimulatedError("missing argument")

    def _lookup_dir(self, name: str) -> Optional[SimDirectory]:
        if name == "..":
            return self.cwd.parent or self.cwd
        if name == "/":
            return self.root
        return self.cwd.dirs.get(name.upper())

    # ═══════════════════════════════════════════════════════════════════════════
    # COMMANDS
    # ═══════════════════════════════════════════════════════════════════════════

    def _cmd_append(self, args: list[str]) -> None:
        self._need(args, 1)
        name = args[0]
        if name.upper() in self.cwd.dirs:
            raise SimulatedError("is a directory")
        target = self.cwd.files.get(name.upper())
        if target is None:
            target = SimFile(name)
            self.cwd.files[name.upper()] = target
        self.bound = target
        self.mode = "write"
        self._emit(b"<")

    def _cmd_new(self, args: list[str]) -> None:
        self._need(args, 1)
        if self.cwd.exists(args[0]):
            raise SimulatedError("exists")
        self.cwd.files[args[0].upper()] = SimFile(args[0])
        self._control()

    def _cmd_write(self, args: list[str]) -> None:
        self._need(args, 2)
        target = self.cwd.files.get(args[0].upper())
        if target is None or not args[1].isdigit():
            raise SimulatedError("cannot write")
        self._write_target = target
        self._write_offset = int(args[1])
        self.mode = "write_at"
        self._emit(b"<")

    def _cmd_md(self, args: list[str]) -> None:
        self._need(args, 1)
        if self.cwd.exists(args[0]):
            raise SimulatedError("exists")
        self.cwd.dirs[args[0].upper()] = SimDirectory(args[0], parent=self.cwd)
        self._control()

    def _cmd_cd(self, args: list[str]) -> None:
        self._need(args, 1)
        directory = self._lookup_dir(args[0])
        if directory is None:
            raise SimulatedError("no such directory")
        self.cwd = directory
        self._control()

    def _cmd_rm(self, args: list[str]) -> None:
        self._need(args, 1)
        if args[0].lower() == "-rf":
            self._need(args, 2)
            directory = self.cwd.dirs.get(args[1].upper())
            if directory is None:
                raise SimulatedError("no such directory")
            if self.bound is not None and directory.contains(self.bound):
                self.bound = None
            del self.cwd.dirs[args[1].upper()]
            self._control()
            return

        pattern = args[0].upper()
        matches = [key for key in self.cwd.files if fnmatch.fnmatchcase(key, pattern)]
        if not matches:
            raise SimulatedError("no such file")
        for key in matches:
            if self.cwd.files[key] is self.bound:
                self.bound = None
            del self.cwd.files[key]
        self._control()

    def _cmd_size(self, args: list[str]) -> None:
        self._need(args, 1)
        target = self.cwd.files.get(args[0].upper())
        if target is None:
            self._data(b"-1")
        elif not target.data:
            self._data(b"")
        else:
            self._data(str(len(target.data)).encode("ascii"))

    def _cmd_read(self, args: list[str]) -> None:
        self._need(args, 1)
        target = self.cwd.files.get(args[0].upper())
        if target is None:
            raise SimulatedError("no such file")

        numbers = args[1:]
        if not all(n.isdigit() for n in numbers) or len(numbers) > 3:
            raise SimulatedError("bad arguments")
        offset = int(numbers[0]) if len(numbers) > 0 else 0
        length = int(numbers[1]) if len(numbers) > 1 else None
        fmt = int(numbers[2]) if len(numbers) > 2 else None

        data = bytes(target.data)
        chunk = data[offset:] if length is None else data[offset:offset + length]

        if fmt is None or fmt == 3:
            payload = chunk
        elif fmt == 1:
            payload = bytes(b if 32 <= b < 127 else ord(".") for b in chunk)
        elif fmt == 2:
            payload = " ".join(f"{b:02X}" for b in chunk).encode("ascii")
        else:
            raise SimulatedError("bad format")
        self._data(payload)

    def _cmd_ls(self, args: list[str]) -> None:
        pattern = args[0].upper() if args else "*"
        lines = []
        for key, directory in sorted(self.cwd.dirs.items()):
            if fnmatch.fnmatchcase(key, pattern):
                lines.append(f"{directory.name.upper()}/")
        for key, entry in sorted(self.cwd.files.items()):
            if fnmatch.fnmatchcase(key, pattern):
                lines.append(f"{entry.name.upper()} {len(entry.data)}")
        self._control(lines)

    def _cmd_sync(self, args: list[str]) -> None:
        self._control()

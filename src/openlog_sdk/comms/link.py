"""
OpenLog Command Link
====================

This module implements the mode state machine and the blocking
request/response exchanges of the OpenLog serial protocol. It handles:

- Tracking whether the peripheral is in write mode or command mode
- Entering command mode (escape sequence) exactly once per transition
- Binding the active file for write-mode appends
- Deadline-bounded sentinel reads
- Marking the session unreliable after a failed exchange

State Machine
-------------

    ┌────────────┐   SUB SUB SUB  ->  '>'   ┌──────────────┐
    │ WRITE MODE │ ───────────────────────> │ COMMAND MODE │
    │            │ <─────────────────────── │              │
    └────────────┘  append <name>\\r -> '<'  └──────────────┘

- ensure_command_mode() is idempotent: it only sends the escape sequence
  when the session is in write mode.
- enter_write_mode_for() is the only transition back to write mode and the
  only call that binds the active file.

Every exchange must consume exactly one terminating sentinel before the
next command is sent. A timeout or a sentinel of the wrong class leaves
the peripheral in an unknown state, so the session is marked unreliable
and stays that way until recover() succeeds.

Thread Safety
-------------
CommandLink is NOT thread-safe. OpenLog wraps it with a lock; use that
when an instance is shared between threads.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final, Iterator, Optional, Sequence

from openlog_sdk.comms.framing import (
    CR,
    DATA_PROMPT,
    ESCAPE_SEQUENCE,
    Command,
    Response,
    ResponseKind,
    Sentinel,
    decode_control,
    decode_data,
    decode_write_ready,
)
from openlog_sdk.errors import (
    CommsError,
    ConnectionError,
    PeripheralRejected,
    ProtocolDesync,
    TransportTimeout,
)

if TYPE_CHECKING:
    import serial

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Session State
# =============================================================================

class Mode(Enum):
    """Peripheral input mode as last observed by the driver."""

    WRITE = "write"      # Bytes are appended to the bound file
    COMMAND = "command"  # Lines are interpreted as commands


@dataclass
class Session:
    """
    Driver-side view of the single logical connection.

    Attributes:
        mode: Current peripheral mode
        active_file: File bound as implicit write target, if any
        reliable: False after a failed exchange until recover() succeeds
        pending: Sentinel currently awaited, None between exchanges
    """

    mode: Mode = Mode.WRITE
    active_file: Optional[str] = None
    reliable: bool = True
    pending: Optional[Sentinel] = None


# =============================================================================
# Command Link
# =============================================================================

class CommandLink:
    """
    Mode state machine and framing exchanges over a serial port.

    Usage:
        port = open_serial_port('/dev/ttyUSB0')
        link = CommandLink(port, timeout=5.0)

        link.enter_write_mode_for("LOG.TXT")
        link.write_data(b"hello\\r\\n")

        response = link.send_command("size", ["LOG.TXT"], ResponseKind.DATA)
        print(response.payload)  # b'7'
    """

    # Default deadline for one exchange (seconds)
    DEFAULT_TIMEOUT: Final[float] = 5.0

    # Upper bound for a single port read while polling (seconds)
    POLL_INTERVAL: Final[float] = 0.05

    # Quiet time that ends a drain of stray bytes after a frame or during
    # recovery (seconds)
    DRAIN_DELAY: Final[float] = 0.05

    def __init__(
        self,
        port: "serial.Serial",
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[Session] = None,
    ):
        """
        Initialize the command link.

        Args:
            port: Opened serial port (or any object with the same
                  read/write/timeout surface).
            timeout: Default deadline in seconds for each exchange.
            session: Existing session state; a fresh write-mode session
                     is created when omitted.
        """
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")
        self.port = port
        self.timeout = timeout
        self.session = session if session is not None else Session()

    @property
    def mode(self) -> Mode:
        """Current peripheral mode."""
        return self.session.mode

    @property
    def active_file(self) -> Optional[str]:
        """File currently bound as write target."""
        return self.session.active_file

    @property
    def reliable(self) -> bool:
        """False when the session state can no longer be trusted."""
        return self.session.reliable

    # -------------------------------------------------------------------------
    # Mode Transitions
    # -------------------------------------------------------------------------

    def ensure_command_mode(self, timeout: Optional[float] = None) -> None:
        """
        Put the peripheral in command mode.

        A no-op when the session is already in command mode. Otherwise the
        escape sequence is sent once and the ``>`` prompt awaited.

        Raises:
            ProtocolDesync: If the session is unreliable or '<' arrives.
            TransportTimeout: If the prompt does not arrive in time.
        """
        self._require_reliable()
        if self.session.mode is Mode.COMMAND:
            logger.debug("Already in command mode")
            return

        logger.debug("Entering command mode")
        deadline = self._deadline(timeout)
        with self._exchange(Sentinel.COMMAND_READY):
            self._transmit(ESCAPE_SEQUENCE)
            raw = self._read_until(
                Sentinel.COMMAND_READY, deadline, reject=Sentinel.WRITE_READY
            )
            decode_control(raw)
        self.session.mode = Mode.COMMAND

    def enter_write_mode_for(
        self, name: str, timeout: Optional[float] = None
    ) -> Response:
        """
        Bind a file as the write target and switch to write mode.

        Sends ``append <name>``, which creates the file if it does not
        exist. On success the session records the file as active.

        Args:
            name: File to append to.
            timeout: Deadline override in seconds.

        Returns:
            The write-ready response.

        Raises:
            InvalidArgument: If the name cannot be sent.
            PeripheralRejected: If the peripheral refused the file.
        """
        response = self.send_command(
            "append", [name], ResponseKind.WRITE_READY, timeout=timeout
        )
        self.session.active_file = name
        self.session.mode = Mode.WRITE
        logger.debug("Active file is now %s", name)
        return response

    def release_active_file(self) -> None:
        """Forget the bound write target after the filesystem changed under it."""
        if self.session.active_file is not None:
            logger.info("Releasing active file %s", self.session.active_file)
        self.session.active_file = None

    def recover(self, timeout: Optional[float] = None) -> None:
        """
        Force command mode regardless of the assumed state.

        Pending input is discarded, then the escape sequence and a bare
        carriage return are sent. From write mode the escape produces the
        prompt; from command mode the empty line does. Any second prompt
        is drained so the next exchange starts clean.

        Raises:
            TransportTimeout: If no prompt arrives; the session stays
                unreliable.
        """
        logger.info("Resynchronising with peripheral")
        deadline = self._deadline(timeout)
        self.session.pending = None

        try:
            stray = self.port.in_waiting
            if stray:
                logger.warning("Discarding %d stray bytes before recovery", stray)
            self.port.reset_input_buffer()
            self._transmit(ESCAPE_SEQUENCE + CR)
            self._read_until(Sentinel.COMMAND_READY, deadline)
            time.sleep(self.DRAIN_DELAY)
            self.port.reset_input_buffer()
        except OSError as e:
            self.session.reliable = False
            raise ConnectionError(f"Serial port error during recovery: {e}") from e
        except CommsError:
            self.session.reliable = False
            raise

        self.session.mode = Mode.COMMAND
        self.session.reliable = True
        logger.info("Session resynchronised in command mode")

    def await_boot(self, timeout: Optional[float] = None) -> bytes:
        """
        Wait for the write-ready sentinel the peripheral prints after reset.

        The session is replaced by a fresh write-mode session with no
        active file.

        Returns:
            The boot banner including the sentinel (e.g. b'12<').
        """
        deadline = self._deadline(timeout)
        self.session = Session()
        try:
            banner = self._read_until(Sentinel.WRITE_READY, deadline)
        except OSError as e:
            self.session.reliable = False
            raise ConnectionError(f"Serial port error during boot: {e}") from e
        except CommsError:
            self.session.reliable = False
            raise
        logger.info("Peripheral ready: %r", banner)
        return banner

    # -------------------------------------------------------------------------
    # Exchanges
    # -------------------------------------------------------------------------

    def send_command(
        self,
        verb: str,
        args: Sequence[str] = (),
        kind: ResponseKind = ResponseKind.CONTROL,
        timeout: Optional[float] = None,
    ) -> Response:
        """
        Send one command and read its complete response.

        The peripheral is put in command mode first. The response is read
        up to the sentinel that closes the given response class.

        Args:
            verb: Command verb.
            args: Positional arguments.
            kind: Expected response class.
            timeout: Deadline override in seconds, covering the mode
                     switch and the exchange separately.

        Returns:
            Decoded response.

        Raises:
            InvalidArgument: If the command cannot be encoded.
            PeripheralRejected: If the peripheral reported an error.
            ProtocolDesync: If framing was lost.
            TransportTimeout: If the closing sentinel did not arrive.
        """
        command = Command(verb, tuple(args))
        self.ensure_command_mode(timeout)

        deadline = self._deadline(timeout)
        with self._exchange(kind.terminator):
            self._transmit(command.to_bytes())
            if kind is ResponseKind.DATA:
                return self.read_payload(command, deadline)
            if kind is ResponseKind.WRITE_READY:
                raw = self._read_until(
                    Sentinel.WRITE_READY, deadline, reject=Sentinel.COMMAND_READY
                )
                return decode_write_ready(raw, command)
            raw = self._read_until(
                Sentinel.COMMAND_READY, deadline, reject=Sentinel.WRITE_READY
            )
            return decode_control(raw, command)

    def read_payload(
        self, command: Optional[Command] = None, deadline: Optional[float] = None
    ) -> Response:
        """
        Read a data response: noise up to ``\\n``, payload up to ``\\r``,
        then everything up to the closing ``>``.

        Called by send_command() for data verbs, inside its exchange.

        Raises:
            PeripheralRejected: If the response is an error instead of data.
            ProtocolDesync: If the response ends before the payload.
        """
        if deadline is None:
            deadline = self._deadline(None)

        noise = self._read_until(
            Sentinel.PAYLOAD_START, deadline, reject=Sentinel.COMMAND_READY
        )
        if noise.endswith(Sentinel.COMMAND_READY.value):
            decode_control(noise, command)
            raise ProtocolDesync(f"Response to '{command}' ended before payload")

        body = self._read_until(Sentinel.PAYLOAD_END, deadline)

        # A '>' inside later file lines is data; the prompt starts a line
        trailer = self._read_until(Sentinel.COMMAND_READY, deadline)
        while not trailer.endswith(DATA_PROMPT):
            trailer += self._read_until(Sentinel.COMMAND_READY, deadline)

        response = decode_data(noise, body, trailer, command)

        leftover = self._drain_leftovers()
        if leftover:
            raise ProtocolDesync(
                f"{len(leftover)} unexpected bytes after response to "
                f"'{command}': {leftover[:32]!r}"
            )
        return response

    def send_payload(
        self,
        data: bytes,
        command: Optional[Command] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        """
        Send data into a sub-mode opened by a command and await the prompt.

        Used by random-access writes: after ``write <name> <offset>`` is
        acknowledged with ``<``, the payload lines are sent and the
        peripheral returns to command mode with ``>``.

        Returns:
            The closing control response.
        """
        self._require_reliable()
        deadline = self._deadline(timeout)
        with self._exchange(Sentinel.COMMAND_READY):
            self._transmit(data)
            raw = self._read_until(
                Sentinel.COMMAND_READY, deadline, reject=Sentinel.WRITE_READY
            )
            return decode_control(raw, command)

    def write_data(self, data: bytes) -> None:
        """
        Write raw bytes to the bound file. No response is expected.

        Raises:
            ProtocolDesync: If the session is not in write mode with a
                bound file, or is unreliable.
        """
        self._require_reliable()
        if self.session.mode is not Mode.WRITE or self.session.active_file is None:
            raise ProtocolDesync("Raw data can only be written in write mode")

        try:
            self._transmit(data)
        except OSError as e:
            self.session.reliable = False
            raise ConnectionError(f"Serial port error: {e}") from e

    # -------------------------------------------------------------------------
    # Low-Level I/O
    # -------------------------------------------------------------------------

    @contextmanager
    def _exchange(self, expected: Sentinel) -> Iterator[None]:
        """
        Bracket one request/response exchange.

        Records the awaited sentinel, clears it once consumed, and marks
        the session unreliable if the exchange fails mid-way.
        """
        if self.session.pending is not None:
            self.session.reliable = False
            raise ProtocolDesync(
                f"Command issued while {self.session.pending.value!r} is still pending"
            )

        self.session.pending = expected
        try:
            yield
        except PeripheralRejected:
            # Sentinel was consumed; framing is intact
            self.session.pending = None
            raise
        except OSError as e:
            self.session.reliable = False
            raise ConnectionError(f"Serial port error: {e}") from e
        except CommsError:
            self.session.reliable = False
            raise
        self.session.pending = None

    def _require_reliable(self) -> None:
        if not self.session.reliable:
            raise ProtocolDesync(
                "Session state is unreliable after a failed exchange; call recover()"
            )

    def _deadline(self, timeout: Optional[float]) -> float:
        return time.monotonic() + (self.timeout if timeout is None else timeout)

    def _transmit(self, data: bytes) -> None:
        """
        Write bytes to the serial port.

        Args:
            data: Bytes to send.
        """
        self.port.write(data)
        self.port.flush()
        logger.debug("Sent %d bytes: %s", len(data), data.hex())

    def _drain_leftovers(self) -> bytes:
        """Consume whatever arrives within DRAIN_DELAY after a frame ended."""
        old_timeout = self.port.timeout
        leftover = bytearray()
        try:
            self.port.timeout = self.DRAIN_DELAY
            while True:
                chunk = self.port.read(self.port.in_waiting or 1)
                if not chunk:
                    return bytes(leftover)
                leftover.extend(chunk)
        finally:
            self.port.timeout = old_timeout

    def _read_until(
        self,
        sentinel: Sentinel,
        deadline: float,
        reject: Optional[Sentinel] = None,
    ) -> bytes:
        """
        Read from the port until a sentinel byte or the deadline.

        Bytes are read one at a time so nothing past the sentinel is
        consumed. The port timeout is shortened for polling and restored
        afterwards.

        Args:
            sentinel: Byte that ends the read.
            deadline: Absolute time.monotonic() deadline.
            reject: Optional byte that also ends the read; the caller
                    decides whether it is an error.

        Returns:
            Bytes read, including the terminating byte.

        Raises:
            TransportTimeout: If the deadline passes first.
        """
        old_timeout = self.port.timeout
        buffer = bytearray()

        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransportTimeout(
                        f"Timed out waiting for {sentinel.value!r} "
                        f"(received {bytes(buffer)!r})",
                        expected=sentinel.value,
                        received=bytes(buffer),
                    )

                self.port.timeout = min(remaining, self.POLL_INTERVAL)
                byte = self.port.read(1)
                if not byte:
                    continue

                buffer.extend(byte)
                if byte == sentinel.value or (
                    reject is not None and byte == reject.value
                ):
                    logger.debug("Received %d bytes: %s", len(buffer), buffer.hex())
                    return bytes(buffer)
        finally:
            self.port.timeout = old_timeout

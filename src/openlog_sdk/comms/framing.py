"""
OpenLog Command Framing
=======================

This module implements the byte-level framing of the OpenLog serial
command protocol. It handles:

- Command encoding (``<verb> <args><CR>``)
- Argument validation (names the syntax cannot carry are refused)
- Sentinel vocabulary for response boundaries
- One decode function per response class

Protocol Overview
-----------------
The OpenLog speaks plain ASCII. In command mode every command is a single
line terminated by a carriage return. The peripheral echoes the line and
ends its answer with a sentinel byte:

    ┌──────────────┬──────────────────────────────┬──────────┐
    │ Class        │ Response                     │ Sentinel │
    ├──────────────┼──────────────────────────────┼──────────┤
    │ control      │ echo, optional text lines    │    >     │
    │ write-ready  │ echo                         │    <     │
    │ data         │ echo \\n <payload> \\r ...    │    >     │
    └──────────────┴──────────────────────────────┴──────────┘

Write mode is left by sending SUB (0x1A) three times; the peripheral then
answers with the command prompt ``>``.

Error Indicators
----------------
The protocol has no standard error frame. A response line consisting of
``!``, or starting with the word ``error`` (any case, followed by a colon,
whitespace or nothing), is treated as a rejection and surfaced as
PeripheralRejected with the raw bytes attached. Lines of an ``ls`` answer
shaped like directory entries are never taken for errors.

A data response closes with a prompt on its own line (``\\n>``). A ``>``
elsewhere in the trailer is file data.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Final, Optional

from openlog_sdk.errors import InvalidArgument, PeripheralRejected, ProtocolDesync

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Constants
# =============================================================================

# Carriage return terminates every command line
CR: Final[bytes] = b"\r"

# Line feed separates the echo from a data payload
LF: Final[bytes] = b"\n"

# Line terminator for data written to a file
CRLF: Final[bytes] = CR + LF

# Escape character that switches the peripheral into command mode
SUB: Final[bytes] = b"\x1a"

# Number of escape characters needed to reach command mode
ESCAPE_COUNT: Final[int] = 3

# Full escape sequence
ESCAPE_SEQUENCE: Final[bytes] = SUB * ESCAPE_COUNT

# Byte values a file name may never contain. The sentinels would end a
# response early when the peripheral echoes the command back.
FORBIDDEN_NAME_BYTES: Final[frozenset[str]] = frozenset("<>")

# Verbs understood by the peripheral
VERBS: Final[frozenset[str]] = frozenset(
    {"append", "new", "write", "read", "size", "rm", "md", "cd", "ls", "sync"}
)

# Response line marking an error when echo/verbose output is minimal
ERROR_MARKER: Final[bytes] = b"!"

# Prompt closing a data response; it always starts a line
DATA_PROMPT: Final[bytes] = LF + b">"

_LINE_SPLIT = re.compile(rb"\r\n|\r|\n")

# Verbose-mode error text: "error" as a word of its own, not a name prefix
_ERROR_TEXT = re.compile(rb"error(:|\s|$)", re.IGNORECASE)

# Lines of an ls listing: "NAME/" or "NAME SIZE"
_LISTING_LINE = re.compile(rb"[^\s/:]+/|[^\s/:]+\s+\d+")


# =============================================================================
# Sentinels and Response Classes
# =============================================================================

class Sentinel(Enum):
    """
    Bytes the peripheral uses to mark response boundaries.

    COMMAND_READY and WRITE_READY terminate whole responses.
    PAYLOAD_START and PAYLOAD_END bracket the payload of a data response.
    """

    COMMAND_READY = b">"
    WRITE_READY = b"<"
    PAYLOAD_START = b"\n"
    PAYLOAD_END = b"\r"


class ResponseKind(Enum):
    """Response classes, one decode function each."""

    CONTROL = "control"          # Ends at '>'
    WRITE_READY = "write-ready"  # Ends at '<'
    DATA = "data"                # '\n' payload '\r' ... '>'

    @property
    def terminator(self) -> Sentinel:
        """The sentinel that closes this kind of response."""
        if self is ResponseKind.WRITE_READY:
            return Sentinel.WRITE_READY
        return Sentinel.COMMAND_READY


class ReadFormat(IntEnum):
    """
    Output format tag for the ``read`` command.

    The tag selects how the peripheral renders file bytes. The driver
    never decodes the rendering; payloads are returned as received.
    """

    ASCII = 1
    HEXADECIMAL = 2
    RAW = 3


# =============================================================================
# Argument Validation
# =============================================================================

def validate_name(name: str, what: str = "file name") -> str:
    """
    Check that a file or directory name can be sent as a command argument.

    Names are single printable ASCII tokens. Whitespace would split the
    argument, control characters would end the command line, and the
    sentinel bytes would corrupt response framing when echoed. A leading
    ``-`` would be read as an option. Wildcards (``*``, ``?``) are allowed;
    the peripheral expands them.

    Args:
        name: Name to validate.
        what: Description used in the error message.

    Returns:
        The name, unchanged.

    Raises:
        InvalidArgument: If the name cannot be expressed on the wire.
    """
    if not isinstance(name, str):
        raise InvalidArgument(f"{what} must be str, got {type(name).__name__}")
    if not name:
        raise InvalidArgument(f"{what} must not be empty")
    if not name.isascii():
        raise InvalidArgument(f"{what} must be ASCII: {name!r}")
    if name.startswith("-"):
        raise InvalidArgument(f"{what} must not start with '-': {name!r}")

    for char in name:
        if not char.isprintable() or char.isspace():
            raise InvalidArgument(
                f"{what} contains unsendable character {char!r}: {name!r}"
            )
        if char in FORBIDDEN_NAME_BYTES:
            raise InvalidArgument(
                f"{what} contains sentinel character {char!r}: {name!r}"
            )
    return name


def validate_count(value: int, what: str) -> int:
    """
    Check that an offset or length is a non-negative integer.

    Raises:
        InvalidArgument: If value is not an int or is negative.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{what} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidArgument(f"{what} must not be negative, got {value}")
    return value


def encode_text(text, allow_line_breaks: bool = True) -> bytes:
    """
    Encode text destined for a file.

    The escape character is refused because three of them in a row would
    switch the peripheral into command mode mid-write.

    Args:
        text: str (ASCII) or bytes.
        allow_line_breaks: If False, CR and LF are refused too. The
            random-access write command ends on an empty line, so its
            payload must stay on one line.

    Returns:
        The encoded bytes, without any terminator.

    Raises:
        InvalidArgument: If the text contains bytes that cannot be written.
    """
    if isinstance(text, str):
        try:
            data = text.encode("ascii")
        except UnicodeEncodeError as e:
            raise InvalidArgument(f"Text must be ASCII: {e}") from e
    elif isinstance(text, (bytes, bytearray)):
        data = bytes(text)
    else:
        raise InvalidArgument(f"Text must be str or bytes, got {type(text).__name__}")

    if SUB in data:
        raise InvalidArgument("Text must not contain the escape character 0x1A")
    if not allow_line_breaks and (CR in data or LF in data):
        raise InvalidArgument("Payload must not contain CR or LF")
    return data


def format_read_args(
    name: str,
    offset: Optional[int] = None,
    length: Optional[int] = None,
    fmt: Optional[ReadFormat] = None,
) -> list[str]:
    """
    Build the argument list for ``read <name> [offset] [length] [format]``.

    The arguments are positional, so a later one forces the earlier ones:
    a length without an offset reads from offset 0. A format needs an
    explicit length because the peripheral has no "to end of file" token.

    Raises:
        InvalidArgument: On bad names, negative numbers, or a format
            without a length.
    """
    args = [validate_name(name)]

    if fmt is not None and length is None:
        raise InvalidArgument("A read format requires an explicit length")
    if length is not None and offset is None:
        offset = 0

    if offset is not None:
        args.append(str(validate_count(offset, "offset")))
    if length is not None:
        args.append(str(validate_count(length, "length")))
    if fmt is not None:
        try:
            tag = ReadFormat(fmt)
        except ValueError as e:
            raise InvalidArgument(f"Unknown read format: {fmt!r}") from e
        args.append(str(int(tag)))

    return args


# =============================================================================
# Command
# =============================================================================

@dataclass(frozen=True)
class Command:
    """
    An outbound command line.

    Attributes:
        verb: Command verb (append, read, rm, ...)
        args: Positional arguments, already formatted as strings

    Example:
        >>> Command("read", ("LOG.TXT", "0", "16")).to_bytes()
        b'read LOG.TXT 0 16\\r'
    """

    verb: str
    args: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate the verb and every argument."""
        if self.verb not in VERBS:
            raise InvalidArgument(f"Unknown command verb: {self.verb!r}")
        for arg in self.args:
            if arg == "-rf":
                continue
            validate_name(arg, what="argument")

    @property
    def line(self) -> str:
        """The command text without terminator."""
        return " ".join((self.verb,) + self.args)

    def to_bytes(self) -> bytes:
        """Encode for transmission: ASCII text followed by CR."""
        return self.line.encode("ascii") + CR

    def __str__(self) -> str:
        return self.line


# =============================================================================
# Response
# =============================================================================

@dataclass(frozen=True)
class Response:
    """
    A decoded response frame.

    Attributes:
        kind: Which response class produced this frame
        raw: Every byte consumed for this response, sentinels included
        payload: Meaningful content with framing stripped. For data
            responses this is the file data or size digits; for control
            responses it is the non-echo text lines joined by CRLF.
    """

    kind: ResponseKind
    raw: bytes
    payload: bytes = b""

    @property
    def lines(self) -> list[bytes]:
        """Payload split into non-empty lines."""
        return [line for line in _LINE_SPLIT.split(self.payload) if line]

    def __repr__(self) -> str:
        return (
            f"Response(kind={self.kind.value}, raw[{len(self.raw)}], "
            f"payload={self.payload[:32]!r})"
        )


def split_lines(data: bytes) -> list[bytes]:
    """Split on any line terminator, stripping blanks and empty lines."""
    return [line.strip() for line in _LINE_SPLIT.split(data) if line.strip()]


def is_error_line(line: bytes) -> bool:
    """
    Return True if a response line carries the peripheral's error marker.

    That is the bare ``!`` or verbose text starting with the word
    ``error``. Names such as ``ERRORS.TXT`` are not errors.
    """
    stripped = line.strip()
    return stripped == ERROR_MARKER or _ERROR_TEXT.match(stripped) is not None


def is_listing_line(line: bytes) -> bool:
    """Return True if a line has the shape of an ``ls`` entry."""
    return _LISTING_LINE.fullmatch(line.strip()) is not None


def _rejected(lines: list[bytes], command: Optional[Command]) -> bool:
    if command is not None and command.verb == "ls":
        # Listing lines are data even when a name looks like error text
        lines = [line for line in lines if not is_listing_line(line)]
    return any(is_error_line(line) for line in lines)


def _body_lines(body: bytes, command: Optional[Command]) -> list[bytes]:
    """Response lines with the command echo removed."""
    lines = split_lines(body)
    if command is not None and lines and lines[0] == command.line.encode("ascii"):
        lines = lines[1:]
    return lines


def decode_control(raw: bytes, command: Optional[Command] = None) -> Response:
    """
    Decode a control response terminated by ``>``.

    Args:
        raw: Bytes read up to and including the sentinel.
        command: The command that was sent, used to drop its echo.

    Returns:
        Response with the remaining text lines as payload.

    Raises:
        ProtocolDesync: If the frame did not end with ``>``.
        PeripheralRejected: If a line carries an error marker.
    """
    if not raw.endswith(Sentinel.COMMAND_READY.value):
        raise ProtocolDesync(
            f"Expected '>' to end response to '{command}', got {raw[-1:]!r}"
        )

    lines = _body_lines(raw[:-1], command)
    if _rejected(lines, command):
        raise PeripheralRejected(str(command), raw[:-1])

    return Response(ResponseKind.CONTROL, raw, CRLF.join(lines))


def decode_write_ready(raw: bytes, command: Optional[Command] = None) -> Response:
    """
    Decode a write-mode acknowledgement terminated by ``<``.

    A ``>`` in its place means the peripheral stayed in command mode. If it
    said why, that is a rejection; otherwise the framing is lost.

    Raises:
        PeripheralRejected: If the peripheral reported an error instead.
        ProtocolDesync: If any other sentinel ended the frame.
    """
    if raw.endswith(Sentinel.WRITE_READY.value):
        return Response(ResponseKind.WRITE_READY, raw, b"")

    if raw.endswith(Sentinel.COMMAND_READY.value):
        lines = _body_lines(raw[:-1], command)
        if _rejected(lines, command):
            raise PeripheralRejected(str(command), raw[:-1])

    raise ProtocolDesync(
        f"Expected '<' to acknowledge '{command}', got {raw[-1:]!r}"
    )


def decode_data(
    noise: bytes,
    body: bytes,
    trailer: bytes,
    command: Optional[Command] = None,
) -> Response:
    """
    Decode a data response from its three framed sections.

    Args:
        noise: Bytes up to and including the first ``\\n`` (echo).
        body: Bytes up to and including the next ``\\r`` (payload).
        trailer: Bytes up to and including the closing ``\\n>``. Any
            further file lines sit in front of it and are discarded.
        command: The command that was sent.

    Returns:
        Response whose payload holds no framing bytes. An empty payload is
        valid (empty file, zero size).

    Raises:
        ProtocolDesync: If a section is not terminated as expected.
        PeripheralRejected: If the payload is the error marker.
    """
    if not noise.endswith(Sentinel.PAYLOAD_START.value):
        raise ProtocolDesync(f"Data response to '{command}' missing payload start")
    if not body.endswith(Sentinel.PAYLOAD_END.value):
        raise ProtocolDesync(f"Data response to '{command}' missing payload end")
    if not trailer.endswith(DATA_PROMPT):
        raise ProtocolDesync(f"Data response to '{command}' missing prompt")

    payload = body[:-1]
    if payload.strip() == ERROR_MARKER:
        raise PeripheralRejected(str(command), payload)

    return Response(ResponseKind.DATA, noise + body + trailer, payload)


def parse_size(payload: bytes, command: Optional[Command] = None) -> int:
    """
    Parse the payload of a ``size`` response.

    An empty payload means a zero-length file. The peripheral reports a
    missing file as ``-1``.

    Raises:
        PeripheralRejected: For ``-1`` or a payload that is not a number.
    """
    text = payload.strip()
    if not text:
        return 0
    if text == b"-1":
        raise PeripheralRejected(str(command), payload, f"No such file: '{command}'")
    if not text.isdigit():
        raise PeripheralRejected(
            str(command), payload, f"Unexpected size response: {text!r}"
        )
    return int(text)

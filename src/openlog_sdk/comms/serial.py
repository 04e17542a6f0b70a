"""
Serial Port Utilities for OpenLog Communication
===============================================

This module owns the UART side of the driver:

- Finding the USB-serial adapter an OpenLog hangs off
- Opening that adapter 8N1 at the baud rate set in CONFIG.TXT
- Driving the reset and hold lines through the modem-control pins

Hardware Setup
--------------
The OpenLog is normally wired to a 6-pin FTDI-style header:

    FTDI    OpenLog
    ----    -------
    DTR ──> GRN   (reset, active low)
    RTS ──> BLK   (hold line, unused by the firmware)
    TXO ──> RXI
    RXI <── TXO

With this wiring the DTR line is the reset line, so the driver can reboot
the peripheral without touching the power supply.

UART Settings
-------------
The firmware only speaks 8 data bits, no parity, one stop bit and no
flow control. The baud rate lives in CONFIG.TXT on the card and defaults
to 9600.
"""

import logging
from dataclasses import dataclass
from typing import Any, Final, Optional

import serial
import serial.tools.list_ports

from openlog_sdk.errors import ConnectionError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Baud rates the OpenLog firmware accepts in CONFIG.TXT
VALID_BAUD_RATES: Final[tuple[int, ...]] = (
    2400, 4800, 9600, 19200, 38400, 57600, 115200
)

# Factory setting of a fresh card
DEFAULT_BAUD_RATE: Final[int] = 9600

# Read timeout applied to the pyserial object, in seconds
DEFAULT_TIMEOUT: Final[float] = 1.0

# Line settings the firmware expects; handshake lines stay under driver control
UART_SETTINGS: Final[dict[str, Any]] = {
    "bytesize": serial.EIGHTBITS,
    "parity": serial.PARITY_NONE,
    "stopbits": serial.STOPBITS_ONE,
    "xonxoff": False,
    "rtscts": False,
    "dsrdtr": False,
}

# Adapters commonly paired with an OpenLog, keyed by USB vendor ID
USB_VENDOR_IDS: Final[dict[int, str]] = {
    0x0403: "FTDI",          # FTDI Basic breakout
    0x1A86: "QinHeng",       # CH340 (SparkFun Serial Basic)
    0x10C4: "Silicon Labs",  # CP210x
    0x067B: "Prolific",      # PL2303
}

# Detection order among USB ports: FTDI, then CH340, then anything else
PREFERRED_VENDOR_IDS: Final[tuple[int, ...]] = (0x0403, 0x1A86)


# =============================================================================
# Port Information
# =============================================================================

@dataclass(frozen=True)
class PortInfo:
    """
    One serial port as reported by pyserial.

    Attributes:
        device: Path to open ('/dev/ttyUSB0', 'COM3', ...)
        description: Driver-supplied description, may be empty
        manufacturer: USB manufacturer string, if any
        product: USB product string, if any
        serial_number: USB serial number, if any
        vid: USB vendor ID; None for on-board UARTs
        pid: USB product ID; None for on-board UARTs
    """

    device: str
    description: str
    manufacturer: Optional[str]
    product: Optional[str]
    serial_number: Optional[str]
    vid: Optional[int]
    pid: Optional[int]

    @classmethod
    def from_list_port(cls, raw: Any) -> "PortInfo":
        """Build from a ``serial.tools.list_ports`` entry."""
        return cls(
            device=raw.device,
            description=raw.description or "",
            manufacturer=raw.manufacturer,
            product=raw.product,
            serial_number=raw.serial_number,
            vid=raw.vid,
            pid=raw.pid,
        )

    @property
    def is_usb(self) -> bool:
        return self.vid is not None

    @property
    def vendor_name(self) -> Optional[str]:
        """Name of a known adapter vendor, else None."""
        return USB_VENDOR_IDS.get(self.vid) if self.is_usb else None

    @property
    def usb_id(self) -> Optional[str]:
        """'VVVV:PPPP' in hex, or None for non-USB ports."""
        if not self.is_usb:
            return None
        return f"{self.vid:04X}:{self.pid or 0:04X}"

    @property
    def detection_rank(self) -> int:
        """
        Sort key for auto-detection; lower is better.

        Preferred vendors rank by their position in PREFERRED_VENDOR_IDS,
        other USB adapters come next, non-USB ports last.
        """
        if not self.is_usb:
            return len(PREFERRED_VENDOR_IDS) + 1
        if self.vid in PREFERRED_VENDOR_IDS:
            return PREFERRED_VENDOR_IDS.index(self.vid)
        return len(PREFERRED_VENDOR_IDS)

    def __str__(self) -> str:
        text = self.device
        if self.description:
            text += f" - {self.description}"
        if self.vendor_name:
            text += f" ({self.vendor_name})"
        return text


# =============================================================================
# Port Enumeration
# =============================================================================

def list_serial_ports() -> list[PortInfo]:
    """Return every serial port pyserial can see."""
    ports = [PortInfo.from_list_port(raw) for raw in serial.tools.list_ports.comports()]
    for port in ports:
        logger.debug("Found port: %s (usb=%s)", port.device, port.usb_id or "no")
    return ports


def find_openlog_port() -> Optional[str]:
    """
    Guess which port the OpenLog is attached to.

    Only USB adapters are considered. An FTDI adapter wins over a CH340,
    which wins over any other USB adapter; ties go to the first port
    pyserial listed.

    Returns:
        Device path, or None when no USB adapter is present.
    """
    candidates = [port for port in list_serial_ports() if port.is_usb]
    if not candidates:
        logger.debug("No USB serial ports found")
        return None

    best = min(candidates, key=lambda port: port.detection_rank)
    logger.info("Auto-detected port: %s (%s)", best.device, best.vendor_name or best.description)
    return best.device


# =============================================================================
# Opening and Closing
# =============================================================================

# (substrings of the pyserial message, hint appended to ours)
_OPEN_FAILURE_HINTS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (
        ("permission denied",),
        "Permission denied. You may need to add your user to the 'dialout' "
        "group: sudo usermod -a -G dialout $USER",
    ),
    (
        ("no such file", "not found", "could not open port"),
        "Port not found. Use 'olink ports' to list available ports.",
    ),
    (
        ("busy", "in use"),
        "Port is busy. Close any other programs using it.",
    ),
)


def _describe_open_failure(device: str, error: Exception) -> str:
    message = str(error).lower()
    for needles, hint in _OPEN_FAILURE_HINTS:
        if any(needle in message for needle in needles):
            return f"Cannot open {device}: {hint}"
    return f"Cannot open {device}: {error}"


def open_serial_port(
    device: str,
    baud_rate: int = DEFAULT_BAUD_RATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> serial.Serial:
    """
    Open a port with the UART settings the OpenLog uses.

    Args:
        device: Port path, e.g. '/dev/ttyUSB0' or 'COM3'.
        baud_rate: One of VALID_BAUD_RATES; must match CONFIG.TXT.
        timeout: pyserial read timeout in seconds.

    Returns:
        The open serial.Serial. Closing it is the caller's job.

    Raises:
        ValueError: On an unsupported baud rate.
        ConnectionError: If the operating system refuses the port.
    """
    if baud_rate not in VALID_BAUD_RATES:
        raise ValueError(
            f"Invalid baud rate: {baud_rate}. "
            f"Valid rates: {', '.join(map(str, VALID_BAUD_RATES))}"
        )

    logger.info("Opening %s at %d baud", device, baud_rate)
    try:
        port = serial.Serial(
            port=device, baudrate=baud_rate, timeout=timeout, **UART_SETTINGS
        )
    except serial.SerialException as e:
        raise ConnectionError(_describe_open_failure(device, e)) from e

    # Drop anything the adapter buffered before we owned it
    port.reset_input_buffer()
    port.reset_output_buffer()
    return port


def close_serial_port(port: Optional[serial.Serial]) -> None:
    """Close a port if it is open. Failures are logged, not raised."""
    if port is None or not port.is_open:
        return
    try:
        port.reset_input_buffer()
        port.close()
    except (OSError, serial.SerialException) as e:
        logger.warning("Error closing serial port: %s", e)
    else:
        logger.debug("Serial port closed")


def validate_port_settings(
    port: serial.Serial,
    expected_baud: int = DEFAULT_BAUD_RATE,
) -> bool:
    """
    Check a port opened elsewhere against the OpenLog's UART settings.

    Each mismatch is logged as a warning.

    Returns:
        True when the port is open and every setting matches.
    """
    if not port.is_open:
        logger.warning("Port is not open")
        return False

    expected = dict(UART_SETTINGS, baudrate=expected_baud)
    # dsrdtr is a pyserial open-time option, not a line setting
    expected.pop("dsrdtr")

    mismatches = [
        (name, getattr(port, name), wanted)
        for name, wanted in expected.items()
        if getattr(port, name) != wanted
    ]
    for name, actual, wanted in mismatches:
        logger.warning("Port setting %s is %r, expected %r", name, actual, wanted)
    return not mismatches


# =============================================================================
# Reset and Hold Lines
# =============================================================================

class SerialLineControl:
    """
    Reset and hold lines driven through a port's modem-control pins.

    DTR drives the OpenLog reset (GRN) pin; RTS drives the hold line.
    A level is the pyserial modem-control state: True asserts the line,
    which drives the adapter's TTL pin low; False deasserts it (pin high).

    On an FTDI-style header the GRN pin is fed through a coupling
    capacitor, so the OpenLog only sees the edge: asserting DTR after a
    deasserted phase produces a short low pulse on reset. Wired straight
    to GRN without the capacitor, an asserted DTR holds the OpenLog in
    reset for as long as it stays asserted.
    """

    def __init__(self, port: serial.Serial):
        self.port = port

    def set_reset(self, level: bool) -> None:
        """Assert (True) or deassert (False) the reset line."""
        logger.debug("Reset line -> %s", "asserted" if level else "deasserted")
        self.port.dtr = level

    def set_hold(self, level: bool) -> None:
        """Assert (True) or deassert (False) the hold line."""
        logger.debug("Hold line -> %s", "asserted" if level else "deasserted")
        self.port.rts = level


# =============================================================================
# Display
# =============================================================================

def format_port_list(ports: list[PortInfo], verbose: bool = False) -> str:
    """
    Render ports for the terminal, one per line.

    With ``verbose`` each port gets indented detail lines for the fields
    pyserial reported.
    """
    if not ports:
        return "No serial ports found."

    if not verbose:
        return "\n".join(f"  {port}" for port in ports)

    blocks = []
    for port in ports:
        details = [
            ("Description", port.description),
            ("Manufacturer", port.manufacturer),
            ("Serial", port.serial_number),
        ]
        if port.usb_id:
            vendor = f" ({port.vendor_name})" if port.vendor_name else ""
            details.insert(2, ("USB VID:PID", port.usb_id + vendor))
        lines = [f"  {port.device}"]
        lines.extend(f"    {label}: {value}" for label, value in details if value)
        blocks.append("\n".join(lines))
    return "\n".join(blocks)

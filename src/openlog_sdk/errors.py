"""
OpenLog SDK Error Hierarchy
===========================

This module defines the exception hierarchy for the whole SDK. All
exceptions inherit from OpenLogError, allowing callers to catch every
driver-related error with a single except clause.

Exception Hierarchy
-------------------
OpenLogError (base)
├── ConfigError - invalid driver configuration
└── CommsError (serial communication)
    ├── ConnectionError - cannot open or use the serial port
    ├── TransportTimeout - sentinel byte never arrived
    ├── ProtocolDesync - framing lost or session state unreliable
    ├── PeripheralRejected - the OpenLog reported an error
    ├── InvalidArgument - argument cannot be expressed on the wire
    └── NoActiveFile - bare write with no bound file

Recovery
--------
TransportTimeout and ProtocolDesync leave the session marked unreliable.
Every further operation raises ProtocolDesync until
``CommandLink.recover()`` (or ``OpenLog.recover()``) succeeds. Nothing is
retried automatically: a command retried after a desync only compounds the
misalignment.
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class OpenLogError(Exception):
    """
    Base exception for all OpenLog SDK errors.

        try:
            log.write_line("42,3.7")
        except OpenLogError as e:
            print(f"Error: {e}")
    """
    pass


class ConfigError(OpenLogError):
    """
    Invalid driver configuration.

    Raised when a DriverConfig holds values the peripheral cannot use,
    such as an unsupported baud rate or a non-positive timeout.
    """
    pass


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(OpenLogError):
    """Base exception for serial communication errors."""
    pass


class ConnectionError(CommsError):
    """
    Cannot connect to the OpenLog.

    Raised when:
    - Serial port not found
    - Permission denied
    - Port busy or closed underneath the driver
    """
    pass


class TransportTimeout(CommsError):
    """
    A sentinel byte did not arrive before the deadline.

    This usually means:
    - Serial cable disconnected
    - Wrong baud rate
    - Peripheral hung or not powered

    Attributes:
        expected: The sentinel byte that was awaited
        received: Bytes consumed before the deadline expired
    """

    def __init__(
        self,
        message: str,
        expected: Optional[bytes] = None,
        received: bytes = b"",
    ):
        self.expected = expected
        self.received = received
        super().__init__(message)


class ProtocolDesync(CommsError):
    """
    Command/response framing is out of step with the peripheral.

    Raised when:
    - A sentinel of the wrong class arrives (``>`` while waiting for ``<``)
    - A command is issued while a previous sentinel is still pending
    - An operation is attempted on a session marked unreliable
    """
    pass


class PeripheralRejected(CommsError):
    """
    The OpenLog answered with an error indicator.

    The framing sentinel arrived, so the link is still in step, but the
    response carried an error marker. The protocol does not standardise
    error text, so the raw response is kept for inspection.

    Attributes:
        command: The command line that was rejected
        payload: Raw response bytes (without the sentinel)
    """

    def __init__(self, command: str, payload: bytes, message: str = ""):
        self.command = command
        self.payload = payload
        if not message:
            text = payload.decode("ascii", errors="replace").strip()
            message = f"Peripheral rejected '{command}': {text!r}"
        super().__init__(message)


class InvalidArgument(CommsError, ValueError):
    """
    An argument cannot be expressed in the command syntax.

    Raised before anything is transmitted, for example for a file name
    containing a carriage return or a sentinel byte, or for a negative
    offset or length.
    """
    pass


class NoActiveFile(CommsError):
    """
    A bare write was requested but no file is bound as write target.

    Raised by ``OpenLog.write_line()`` before ``open()``/``create()``, or
    after the bound file was removed or the working directory changed.
    """
    pass

"""
OpenLog Driver Configuration
============================

Driver settings with defaults suited to a factory-fresh OpenLog.
Configuration can come from:
- Default values (defined here)
- Environment variables
- Explicit keyword arguments

Timing values are in seconds:
- settle_delay: wait after power-on before touching the reset line
- reset_hold: how long each phase of the reset pulse is held
- timeout: deadline for one command/response exchange
- boot_timeout: deadline for the boot banner after reset
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from openlog_sdk.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class DriverConfig:
    """
    Configuration for one OpenLog driver instance.

    Attributes:
        port: Serial device path (None = auto-detect)
        baud_rate: UART speed; must match CONFIG.TXT on the card (default: 9600)
        timeout: Per-exchange deadline in seconds (default: 5.0)
        settle_delay: Power-on settle delay in seconds (default: 0.5)
        reset_hold: Reset pulse phase length in seconds (default: 0.1)
        boot_timeout: Deadline for the boot sentinel in seconds (default: 5.0)
        dummy_file: Scratch file used during bring-up (default: DELETEME.txt)
    """

    # ═══════════════════════════════════════════════════════════════════════════
    # CONNECTION
    # ═══════════════════════════════════════════════════════════════════════════

    port: Optional[str] = None
    baud_rate: int = 9600

    # ═══════════════════════════════════════════════════════════════════════════
    # TIMING (seconds)
    # ═══════════════════════════════════════════════════════════════════════════

    timeout: float = 5.0
    settle_delay: float = 0.5  # OpenLog needs time to mount the card
    reset_hold: float = 0.1
    boot_timeout: float = 5.0

    # ═══════════════════════════════════════════════════════════════════════════
    # BRING-UP
    # ═══════════════════════════════════════════════════════════════════════════

    dummy_file: str = "DELETEME.txt"

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "DriverConfig":
        """
        Create DriverConfig from environment variables.

        Environment variables (all optional):
            OPENLOG_PORT: Serial device path
            OPENLOG_BAUD: Baud rate (integer)
            OPENLOG_TIMEOUT: Exchange timeout in seconds
            OPENLOG_SETTLE_DELAY: Power-on settle delay in seconds
            OPENLOG_RESET_HOLD: Reset pulse phase length in seconds
            OPENLOG_BOOT_TIMEOUT: Boot sentinel deadline in seconds

        Values that do not parse are ignored and the default is kept.

        Returns:
            DriverConfig with values from environment variables
        """
        config = cls()

        if port := os.environ.get("OPENLOG_PORT"):
            config.port = port

        if baud := os.environ.get("OPENLOG_BAUD"):
            try:
                config.baud_rate = int(baud)
            except ValueError:
                logger.warning("Ignoring invalid OPENLOG_BAUD=%r", baud)

        for name, attr in (
            ("OPENLOG_TIMEOUT", "timeout"),
            ("OPENLOG_SETTLE_DELAY", "settle_delay"),
            ("OPENLOG_RESET_HOLD", "reset_hold"),
            ("OPENLOG_BOOT_TIMEOUT", "boot_timeout"),
        ):
            if value := os.environ.get(name):
                try:
                    setattr(config, attr, float(value))
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", name, value)

        return config

    # ═══════════════════════════════════════════════════════════════════════════
    # VALIDATION
    # ═══════════════════════════════════════════════════════════════════════════

    def validate(self) -> None:
        """
        Check that every value is usable.

        Raises:
            ConfigError: On an unsupported baud rate, a non-positive
                timeout, a negative delay or an empty scratch file name.
        """
        from openlog_sdk.comms.serial import VALID_BAUD_RATES

        if self.baud_rate not in VALID_BAUD_RATES:
            valid_str = ", ".join(str(b) for b in VALID_BAUD_RATES)
            raise ConfigError(
                f"Invalid baud rate: {self.baud_rate}. Valid rates: {valid_str}"
            )
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.boot_timeout <= 0:
            raise ConfigError(f"boot_timeout must be positive, got {self.boot_timeout}")
        if self.settle_delay < 0:
            raise ConfigError(f"settle_delay must not be negative, got {self.settle_delay}")
        if self.reset_hold < 0:
            raise ConfigError(f"reset_hold must not be negative, got {self.reset_hold}")
        if not self.dummy_file:
            raise ConfigError("dummy_file must not be empty")

"""
OpenLog Bring-up Sequence
=========================

This module takes a freshly powered or freshly opened OpenLog to a known
protocol state.

Sequence
--------
1. Wait for the power-on settle delay
2. Configure the port at the driver's baud rate
3. Drive the hold line to its idle level
4. Pulse the reset line: assert, hold, deassert, hold, reassert
5. Wait for the boot sentinel ``<`` (the banner looks like ``12<``)
6. Dummy-file maneuver: bind a scratch file with ``append``, then delete it

After reset the peripheral sits in write mode with its default log file
bound. The scratch file gives the driver a write-mode binding of its own,
and removing it leaves the session in command mode with no active file
and nothing left on the card.
"""

import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from openlog_sdk.comms.files import OpenLog

logger = logging.getLogger(__name__)


class BringUpSequencer:
    """
    Runs the reset and boot handshake for one OpenLog instance.

    Timing and the scratch file name come from the instance's DriverConfig.
    """

    def __init__(self, engine: "OpenLog"):
        self.engine = engine
        self.config = engine.config

    def run(self) -> bytes:
        """
        Execute the full sequence.

        Returns:
            The boot banner received from the peripheral.

        Raises:
            TransportTimeout: If the peripheral never prints its banner.
            PeripheralRejected: If the scratch file cannot be handled.
        """
        config = self.config
        port = self.engine.port
        link = self.engine.link
        lines = self.engine.lines

        logger.info("Bringing up OpenLog at %d baud", config.baud_rate)
        time.sleep(config.settle_delay)

        port.baudrate = config.baud_rate
        port.reset_input_buffer()

        lines.set_hold(True)
        self._pulse_reset()

        banner = link.await_boot(timeout=config.boot_timeout)

        logger.debug("Dummy-file maneuver with %s", config.dummy_file)
        link.enter_write_mode_for(config.dummy_file)
        self.engine.remove_file(config.dummy_file)

        logger.info("OpenLog ready in command mode")
        return banner

    def _pulse_reset(self) -> None:
        """Assert, hold, deassert, hold, reassert."""
        lines = self.engine.lines
        hold = self.config.reset_hold

        lines.set_reset(True)
        time.sleep(hold)
        lines.set_reset(False)
        time.sleep(hold)
        lines.set_reset(True)

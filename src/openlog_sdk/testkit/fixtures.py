"""
OpenLog Testing Framework - Pytest Fixtures
===========================================

Pytest fixtures backed by the simulated peripheral:

    simulated_port  - SimulatedOpenLog, freshly booted in write mode
    fast_config     - DriverConfig with zero delays and short timeouts
    command_link    - CommandLink on the simulated port, already in command mode
    openlog         - OpenLog on the simulated port, initialize() completed

Usage:
    In your conftest.py, import the fixtures so pytest discovers them:

        from openlog_sdk.testkit.fixtures import (
            simulated_port, fast_config, command_link, openlog,
        )

    Then use in tests:

        def test_size(openlog, simulated_port):
            simulated_port.add_file("A.TXT", b"abc")
            assert openlog.size("A.TXT") == 3
"""

from __future__ import annotations

from typing import Generator

import pytest

from openlog_sdk.comms.files import OpenLog
from openlog_sdk.comms.link import CommandLink
from openlog_sdk.config import DriverConfig

from .simulator import SimulatedOpenLog


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURE IMPLEMENTATIONS
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture(scope="function")
def simulated_port() -> SimulatedOpenLog:
    """Fixture: simulated OpenLog in its power-on state (write mode)."""
    return SimulatedOpenLog()


@pytest.fixture(scope="function")
def fast_config() -> DriverConfig:
    """
    Fixture: configuration without bring-up delays.

    Timeouts stay short so tests of failure paths finish quickly.
    """
    return DriverConfig(
        timeout=0.5,
        settle_delay=0.0,
        reset_hold=0.0,
        boot_timeout=0.5,
    )


@pytest.fixture(scope="function")
def command_link(simulated_port: SimulatedOpenLog) -> CommandLink:
    """
    Fixture: CommandLink already switched to command mode.

    Example:
        def test_md(command_link, simulated_port):
            command_link.send_command("md", ["LOGS"])
            assert simulated_port.dir_exists("LOGS")
    """
    link = CommandLink(simulated_port, timeout=0.5)
    link.ensure_command_mode()
    return link


@pytest.fixture(scope="function")
def openlog(
    simulated_port: SimulatedOpenLog, fast_config: DriverConfig
) -> Generator[OpenLog, None, None]:
    """
    Fixture: OpenLog driver after a completed bring-up.

    The session is in command mode with no active file.
    """
    log = OpenLog(simulated_port, fast_config)
    log.initialize()
    yield log
    log.close()

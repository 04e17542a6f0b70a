"""
Tests for the Bring-up Sequence
===============================

This module tests the reset and boot handshake:
- Reset pulse shape and hold-line idle level
- Settle and hold timing
- Baud configuration and mismatch detection
- Dummy-file maneuver
"""

from unittest.mock import Mock, call, patch

import pytest

from openlog_sdk.comms.bringup import BringUpSequencer
from openlog_sdk.comms.files import OpenLog
from openlog_sdk.comms.link import Mode
from openlog_sdk.comms.serial import SerialLineControl
from openlog_sdk.config import DriverConfig
from openlog_sdk.errors import TransportTimeout
from openlog_sdk.testkit import SimulatedOpenLog


class TestResetLines:
    """Tests for the reset and hold line driver."""

    def test_reset_drives_dtr(self):
        port = Mock()
        lines = SerialLineControl(port)
        lines.set_reset(False)
        assert port.dtr is False
        lines.set_reset(True)
        assert port.dtr is True

    def test_hold_drives_rts(self):
        port = Mock()
        SerialLineControl(port).set_hold(True)
        assert port.rts is True

    def test_levels_are_modem_control_states(self, caplog):
        port = Mock()
        lines = SerialLineControl(port)
        with caplog.at_level("DEBUG", logger="openlog_sdk.comms.serial"):
            lines.set_reset(True)
            lines.set_hold(False)
        assert port.dtr is True
        assert port.rts is False
        assert "Reset line -> asserted" in caplog.text
        assert "Hold line -> deasserted" in caplog.text


class TestBringUpSequencer:
    """Tests for the full sequence."""

    def test_returns_banner(self, simulated_port, fast_config):
        log = OpenLog(simulated_port, fast_config)
        assert BringUpSequencer(log).run() == b"12<"
        assert simulated_port.boots == 1

    def test_reset_pulse_order(self, simulated_port, fast_config):
        lines = Mock(wraps=SerialLineControl(simulated_port))
        log = OpenLog(simulated_port, fast_config, line_control=lines)
        log.initialize()
        assert lines.mock_calls == [
            call.set_hold(True),
            call.set_reset(True),
            call.set_reset(False),
            call.set_reset(True),
        ]

    def test_timing(self, simulated_port):
        config = DriverConfig(settle_delay=0.25, reset_hold=0.01, timeout=0.5)
        log = OpenLog(simulated_port, config)
        with patch("openlog_sdk.comms.bringup.time.sleep") as sleep:
            log.initialize()
        assert sleep.call_args_list[:3] == [call(0.25), call(0.01), call(0.01)]

    def test_configures_baud_rate(self, fast_config):
        port = SimulatedOpenLog(native_baud=19200, baudrate=9600)
        fast_config.baud_rate = 19200
        OpenLog(port, fast_config).initialize()
        assert port.baudrate == 19200

    def test_baud_mismatch_times_out(self, fast_config):
        port = SimulatedOpenLog(native_baud=19200)
        log = OpenLog(port, fast_config)
        with pytest.raises(TransportTimeout):
            log.initialize()
        assert not log.session.reliable

    def test_dummy_file_maneuver(self, simulated_port, fast_config):
        log = OpenLog(simulated_port, fast_config)
        log.initialize()
        assert simulated_port.commands == ["append DELETEME.txt", "rm DELETEME.txt"]
        assert not simulated_port.file_exists("DELETEME.txt")
        assert log.mode is Mode.COMMAND
        assert log.active_file is None

    def test_stale_input_ignored(self, simulated_port, fast_config):
        simulated_port.inject(b"garbage from before the reset<")
        log = OpenLog(simulated_port, fast_config)
        assert log.initialize() == b"12<"

    def test_existing_files_survive(self, simulated_port, fast_config):
        simulated_port.add_file("LOG00001.TXT", b"old data")
        OpenLog(simulated_port, fast_config).initialize()
        assert simulated_port.file_data("LOG00001.TXT") == b"old data"

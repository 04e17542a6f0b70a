"""
Tests for the Simulated OpenLog
===============================

The simulator stands in for hardware in every other test module, so its
own protocol behaviour is pinned down here. The last class runs the
driver against a real OpenLog when OPENLOG_TEST_PORT is set.
"""

import os

import pytest
import serial

from openlog_sdk.comms.files import OpenLog
from openlog_sdk.comms.serial import close_serial_port, open_serial_port
from openlog_sdk.config import DriverConfig
from openlog_sdk.errors import PeripheralRejected
from openlog_sdk.testkit import SimulatedOpenLog


def drain(port: SimulatedOpenLog) -> bytes:
    return port.read(port.in_waiting)


class TestSimulatorProtocol:
    """Tests for the simulated wire behaviour."""

    def test_escape_prompt(self, simulated_port):
        simulated_port.write(b"\x1a\x1a\x1a")
        assert drain(simulated_port) == b"\r\n>"
        assert simulated_port.mode == "command"
        assert simulated_port.escapes == 1

    def test_command_echo_and_prompt(self, simulated_port):
        simulated_port.write(b"\x1a\x1a\x1a")
        drain(simulated_port)
        simulated_port.write(b"md LOGS\r")
        assert drain(simulated_port) == b"md LOGS\r\n>"
        assert simulated_port.commands == ["md LOGS"]

    def test_error_marker(self, simulated_port):
        simulated_port.write(b"\x1a\x1a\x1a")
        drain(simulated_port)
        simulated_port.write(b"cd NOPE\r")
        assert drain(simulated_port) == b"cd NOPE\r\n!\r\n>"

    def test_partial_escape_is_data(self, simulated_port):
        simulated_port.write(b"\x1a\x1a\x1aappend A.TXT\r")
        drain(simulated_port)
        simulated_port.write(b"a\x1a\x1ab")
        assert simulated_port.file_data("A.TXT") == b"a\x1a\x1ab"
        assert simulated_port.mode == "write"

    def test_rising_dtr_reboots(self, simulated_port):
        simulated_port.dtr = False
        assert simulated_port.boots == 0
        simulated_port.dtr = True
        assert simulated_port.boots == 1
        assert drain(simulated_port) == b"12<"

    def test_baud_mismatch_is_silent(self):
        port = SimulatedOpenLog(native_baud=19200)
        port.reboot()
        port.write(b"\x1a\x1a\x1a")
        assert port.in_waiting == 0

    def test_hang(self, simulated_port):
        simulated_port.hang()
        simulated_port.write(b"\x1a\x1a\x1a")
        assert simulated_port.in_waiting == 0
        assert simulated_port.received == bytearray(b"\x1a\x1a\x1a")

    def test_closed_port_raises(self, simulated_port):
        simulated_port.close()
        with pytest.raises(serial.SerialException):
            simulated_port.write(b"x")
        with pytest.raises(serial.SerialException):
            simulated_port.read(1)

    def test_files_case_insensitive(self, simulated_port):
        simulated_port.add_file("log.txt", b"abc")
        assert simulated_port.file_exists("LOG.TXT")
        assert simulated_port.file_data("Log.Txt") == b"abc"

    def test_files_survive_reboot(self, simulated_port):
        simulated_port.add_file("A.TXT", b"abc")
        simulated_port.reboot()
        assert simulated_port.file_data("A.TXT") == b"abc"


@pytest.mark.hardware
class TestHardware:
    """Round trip against a real OpenLog on OPENLOG_TEST_PORT."""

    def test_write_and_read_back(self):
        config = DriverConfig.from_env()
        port = open_serial_port(
            os.environ["OPENLOG_TEST_PORT"],
            baud_rate=config.baud_rate,
            timeout=config.timeout,
        )
        try:
            log = OpenLog(port, config)
            log.initialize()
            try:
                log.remove_file("HWTEST.TXT")
            except PeripheralRejected:
                pass  # no file from an earlier run
            log.create("HWTEST.TXT")
            log.write_line("hardware")
            log.sync()
            assert log.size("HWTEST.TXT") == len(b"hardware\r\n")
            assert log.read("HWTEST.TXT") == b"hardware"
            log.remove_file("HWTEST.TXT")
        finally:
            close_serial_port(port)

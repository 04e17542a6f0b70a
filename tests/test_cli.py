"""
Tests for the olink Command-Line Interface
==========================================

Commands run through click's CliRunner against the simulated OpenLog;
open_serial_port is patched to hand out the simulator.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from openlog_sdk import __version__
from openlog_sdk.cli.errors import ExitCode
from openlog_sdk.cli.olink import main
from openlog_sdk.comms.serial import PortInfo
from openlog_sdk.testkit import SimulatedOpenLog


FAST_ENV = {
    "OPENLOG_PORT": "/dev/ttyUSB0",
    "OPENLOG_BAUD": None,
    "OPENLOG_TIMEOUT": "0.5",
    "OPENLOG_SETTLE_DELAY": "0",
    "OPENLOG_RESET_HOLD": "0",
    "OPENLOG_BOOT_TIMEOUT": "0.5",
}


@pytest.fixture
def device():
    return SimulatedOpenLog()


@pytest.fixture
def run(device):
    """Invoke olink with the simulator standing in for the serial port."""

    def open_port(path, baud_rate=9600, timeout=1.0):
        device.is_open = True
        device.baudrate = baud_rate
        return device

    def invoke(*args, env=None, **kwargs):
        environment = dict(FAST_ENV)
        environment.update(env or {})
        with patch("openlog_sdk.cli.olink.open_serial_port", side_effect=open_port):
            return CliRunner().invoke(main, list(args), env=environment, **kwargs)

    return invoke


# =============================================================================
# General
# =============================================================================

class TestMain:
    """Tests for the command group."""

    def test_version(self, run):
        result = run("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, run):
        result = run("--help")
        assert result.exit_code == 0
        for command in ("ports", "ls", "cat", "log", "write-at"):
            assert command in result.output

    def test_invalid_baud_option(self, run):
        result = run("-b", "1234", "ls")
        assert result.exit_code == 2

    def test_invalid_baud_env(self, run):
        result = run("ls", env={"OPENLOG_BAUD": "1234"})
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "Invalid baud rate" in result.output

    def test_no_port(self, run):
        with patch("openlog_sdk.cli.olink.find_openlog_port", return_value=None):
            result = run("ls", env={"OPENLOG_PORT": None})
        assert result.exit_code == ExitCode.DEVICE_ERROR
        assert "auto-detect failed" in result.output

    def test_auto_detected_port(self, run, device):
        with patch("openlog_sdk.cli.olink.find_openlog_port", return_value="/dev/ttyUSB7"):
            result = run("ls", env={"OPENLOG_PORT": None})
        assert result.exit_code == 0

    def test_baud_mismatch(self, run, device):
        device.native_baud = 19200
        result = run("ls")
        assert result.exit_code == ExitCode.DEVICE_ERROR
        assert "baud rate" in result.output

    def test_port_closed_after_command(self, run, device):
        run("ls")
        assert not device.is_open


class TestPorts:
    """Tests for 'olink ports'."""

    def test_lists_ports(self, run):
        ports = [PortInfo("/dev/ttyUSB0", "FT232R", "FTDI", None, None, 0x0403, 0x6001)]
        with patch("openlog_sdk.cli.olink.list_serial_ports", return_value=ports), \
                patch("openlog_sdk.cli.olink.find_openlog_port", return_value="/dev/ttyUSB0"):
            result = run("ports")
        assert result.exit_code == 0
        assert "/dev/ttyUSB0" in result.output
        assert "Suggested port for OpenLog: /dev/ttyUSB0" in result.output

    def test_no_ports(self, run):
        with patch("openlog_sdk.cli.olink.list_serial_ports", return_value=[]):
            result = run("ports")
        assert result.exit_code == 0
        assert "No serial ports found." in result.output


# =============================================================================
# Directory Commands
# =============================================================================

class TestDirectoryCommands:
    """Tests for ls, mkdir and rmdir."""

    def test_ls(self, run, device):
        device.add_file("A.TXT", b"abc")
        device.add_file("LOG.CSV", b"1,2\r\n")
        result = run("ls")
        assert result.exit_code == 0
        assert "A.TXT" in result.output
        assert "LOG.CSV" in result.output
        assert "2 entries" in result.output

    def test_ls_pattern(self, run, device):
        device.add_file("A.TXT", b"abc")
        device.add_file("LOG.CSV", b"1,2\r\n")
        result = run("ls", "*.CSV")
        assert "LOG.CSV" in result.output
        assert "A.TXT" not in result.output
        assert "1 entry" in result.output

    def test_ls_empty(self, run):
        result = run("ls")
        assert result.exit_code == 0
        assert "(empty)" in result.output

    def test_mkdir_and_rmdir(self, run, device):
        result = run("mkdir", "LOGS")
        assert result.exit_code == 0
        assert device.dir_exists("LOGS")

        result = run("rmdir", "LOGS")
        assert result.exit_code == 0
        assert not device.dir_exists("LOGS")

    def test_invalid_name(self, run):
        result = run("mkdir", "two words")
        assert result.exit_code == ExitCode.INVALID_ARGS


# =============================================================================
# File Commands
# =============================================================================

class TestFileCommands:
    """Tests for file commands."""

    def test_log_text(self, run, device):
        result = run("log", "DATA.CSV", "42,3.7")
        assert result.exit_code == 0
        assert "Appended 1 line(s) to DATA.CSV" in result.output
        assert device.file_data("DATA.CSV") == b"42,3.7\r\n"

    def test_log_words_joined(self, run, device):
        run("log", "NOTES.TXT", "hello", "world")
        assert device.file_data("NOTES.TXT") == b"hello world\r\n"

    def test_log_stdin(self, run, device):
        result = run("log", "DATA.CSV", input="1,2\n3,4\n")
        assert result.exit_code == 0
        assert "Appended 2 line(s)" in result.output
        assert device.file_data("DATA.CSV") == b"1,2\r\n3,4\r\n"

    def test_log_appends(self, run, device):
        device.add_file("DATA.CSV", b"old\r\n")
        run("log", "DATA.CSV", "new")
        assert device.file_data("DATA.CSV") == b"old\r\nnew\r\n"

    def test_cat(self, run, device):
        device.add_file("A.TXT", b"hello")
        result = run("cat", "A.TXT")
        assert result.exit_code == 0
        assert result.output == "hello\n"

    def test_cat_hex(self, run, device):
        device.add_file("A.TXT", b"hello")
        result = run("cat", "A.TXT", "--format", "hex", "--length", "2")
        assert result.exit_code == 0
        assert result.output == "68 65\n"

    def test_cat_offset(self, run, device):
        device.add_file("A.TXT", b"hello")
        result = run("cat", "A.TXT", "-o", "1", "-n", "3")
        assert result.output == "ell\n"

    def test_cat_format_needs_length(self, run, device):
        device.add_file("A.TXT", b"hello")
        result = run("cat", "A.TXT", "--format", "raw")
        assert result.exit_code == ExitCode.INVALID_ARGS

    def test_cat_missing(self, run):
        result = run("cat", "NOPE.TXT")
        assert result.exit_code == ExitCode.DEVICE_ERROR

    def test_size(self, run, device):
        device.add_file("A.TXT", b"hello")
        result = run("size", "A.TXT")
        assert result.exit_code == 0
        assert result.output.strip() == "5"

    def test_size_missing(self, run):
        result = run("size", "NOPE.TXT")
        assert result.exit_code == ExitCode.DEVICE_ERROR
        assert "size error" in result.output

    def test_new_and_rm(self, run, device):
        result = run("new", "EMPTY.TXT")
        assert result.exit_code == 0
        assert device.file_data("EMPTY.TXT") == b""

        result = run("rm", "EMPTY.TXT")
        assert result.exit_code == 0
        assert not device.file_exists("EMPTY.TXT")

    def test_write_at(self, run, device):
        device.add_file("DATA.CSV", b"00,3.7\r\n")
        result = run("write-at", "DATA.CSV", "0", "43")
        assert result.exit_code == 0
        assert "Wrote 2 byte(s) to DATA.CSV at offset 0" in result.output
        assert device.file_data("DATA.CSV") == b"43,3.7\r\n"

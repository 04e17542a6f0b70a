"""
OpenLog Testing Framework
=========================

Test support for code that drives an OpenLog. The simulated peripheral
implements the serial command protocol in memory, so driver code runs
unchanged against it.

Quick Start
-----------

With the pytest fixtures::

    def test_logging(openlog, simulated_port):
        openlog.create("DATA.CSV")
        openlog.write_line("42,3.7")
        assert simulated_port.file_data("DATA.CSV") == b"42,3.7\\r\\n"

Without pytest::

    from openlog_sdk import DriverConfig, OpenLog
    from openlog_sdk.testkit import SimulatedOpenLog

    port = SimulatedOpenLog()
    log = OpenLog(port, DriverConfig(settle_delay=0, reset_hold=0))
    log.initialize()

Failure Injection
-----------------
- ``hang()``: the device stops answering until the next reset
- ``inject(data)``: queue stray bytes as if the device had sent them
- ``SimulatedOpenLog(native_baud=...)``: simulate a baud rate mismatch
"""

from .simulator import SimDirectory, SimFile, SimulatedOpenLog

__all__ = [
    "SimDirectory",
    "SimFile",
    "SimulatedOpenLog",
]

"""
OpenLog SDK - Test Configuration
================================

pytest configuration shared by all tests.

It provides:
- Simulated-peripheral fixtures from the testkit
- The ``hardware`` marker for tests that need a real OpenLog
"""

import os

import pytest

# Import testkit fixtures so pytest can discover them
from openlog_sdk.testkit.fixtures import (
    simulated_port,
    fast_config,
    command_link,
    openlog,
)


# Re-export fixtures so pytest can discover them
__all__ = [
    "simulated_port",
    "fast_config",
    "command_link",
    "openlog",
]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "hardware: Test needs a real OpenLog (set OPENLOG_TEST_PORT to run)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless OPENLOG_TEST_PORT names a port."""
    if os.environ.get("OPENLOG_TEST_PORT"):
        return
    skip_marker = pytest.mark.skip(reason="OPENLOG_TEST_PORT not set")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_marker)

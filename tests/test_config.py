"""
Tests for Driver Configuration
==============================
"""

import pytest

from openlog_sdk.config import DriverConfig
from openlog_sdk.errors import ConfigError


ENV_VARS = (
    "OPENLOG_PORT",
    "OPENLOG_BAUD",
    "OPENLOG_TIMEOUT",
    "OPENLOG_SETTLE_DELAY",
    "OPENLOG_RESET_HOLD",
    "OPENLOG_BOOT_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = DriverConfig()
        assert config.port is None
        assert config.baud_rate == 9600
        assert config.timeout == 5.0
        assert config.settle_delay == 0.5
        assert config.reset_hold == 0.1
        assert config.boot_timeout == 5.0
        assert config.dummy_file == "DELETEME.txt"

    def test_defaults_validate(self):
        DriverConfig().validate()


class TestFromEnv:
    """Tests for environment variable loading."""

    def test_empty_environment(self, clean_env):
        assert DriverConfig.from_env() == DriverConfig()

    def test_all_variables(self, clean_env):
        clean_env.setenv("OPENLOG_PORT", "/dev/ttyUSB3")
        clean_env.setenv("OPENLOG_BAUD", "115200")
        clean_env.setenv("OPENLOG_TIMEOUT", "2.5")
        clean_env.setenv("OPENLOG_SETTLE_DELAY", "1")
        clean_env.setenv("OPENLOG_RESET_HOLD", "0.05")
        clean_env.setenv("OPENLOG_BOOT_TIMEOUT", "3")

        config = DriverConfig.from_env()
        assert config.port == "/dev/ttyUSB3"
        assert config.baud_rate == 115200
        assert config.timeout == 2.5
        assert config.settle_delay == 1.0
        assert config.reset_hold == 0.05
        assert config.boot_timeout == 3.0

    def test_unparseable_values_ignored(self, clean_env, caplog):
        clean_env.setenv("OPENLOG_BAUD", "fast")
        clean_env.setenv("OPENLOG_TIMEOUT", "soon")

        config = DriverConfig.from_env()
        assert config.baud_rate == 9600
        assert config.timeout == 5.0
        assert "OPENLOG_BAUD" in caplog.text
        assert "OPENLOG_TIMEOUT" in caplog.text

    def test_unsupported_baud_kept_for_validation(self, clean_env):
        """A numeric but unsupported rate is loaded and caught by validate()."""
        clean_env.setenv("OPENLOG_BAUD", "1234")
        config = DriverConfig.from_env()
        assert config.baud_rate == 1234
        with pytest.raises(ConfigError, match="baud"):
            config.validate()


class TestValidate:
    """Tests for value checking."""

    @pytest.mark.parametrize("changes,match", [
        ({"baud_rate": 1200}, "baud"),
        ({"timeout": 0}, "timeout"),
        ({"boot_timeout": -1}, "boot_timeout"),
        ({"settle_delay": -0.1}, "settle_delay"),
        ({"reset_hold": -1}, "reset_hold"),
        ({"dummy_file": ""}, "dummy_file"),
    ])
    def test_invalid(self, changes, match):
        with pytest.raises(ConfigError, match=match):
            DriverConfig(**changes).validate()

    def test_zero_delays_allowed(self):
        DriverConfig(settle_delay=0, reset_hold=0).validate()

"""Tests for lifecycle settings."""

import pytest
from pydantic import ValidationError

from server_lifecycle.config.settings import LifecycleSettings, Settings


class TestLifecycleSettings:
    """Test the LifecycleSettings class."""

    def test_defaults(self, monkeypatch):
        """Defaults poll often and allow a generous grace period."""
        for name in (
            "POLL_INTERVAL",
            "PROBE_TIMEOUT",
            "SHUTDOWN_GRACE_PERIOD",
            "KILL_TIMEOUT",
        ):
            monkeypatch.delenv(f"SERVER_LIFECYCLE_{name}", raising=False)

        settings = LifecycleSettings()

        assert settings.poll_interval == 0.5
        assert settings.probe_timeout == 3.0
        assert settings.shutdown_grace_period == 30.0
        assert settings.kill_timeout == 10.0

    def test_environment_override(self, monkeypatch):
        """Values can be set through SERVER_LIFECYCLE_ variables."""
        monkeypatch.setenv("SERVER_LIFECYCLE_POLL_INTERVAL", "0.25")
        monkeypatch.setenv("SERVER_LIFECYCLE_SHUTDOWN_GRACE_PERIOD", "5")

        settings = LifecycleSettings()

        assert settings.poll_interval == 0.25
        assert settings.shutdown_grace_period == 5.0

    @pytest.mark.parametrize("field", ["poll_interval", "probe_timeout", "kill_timeout"])
    def test_non_positive_rejected(self, field):
        """Timings must be positive."""
        with pytest.raises(ValidationError):
            LifecycleSettings(**{field: 0})

    def test_settings_aggregate(self, monkeypatch):
        monkeypatch.setenv("LOG_FILE_PATH", "/var/log/server-lifecycle.log")

        settings = Settings()

        assert isinstance(settings.lifecycle, LifecycleSettings)
        assert str(settings.get_log_file_path()) == "/var/log/server-lifecycle.log"

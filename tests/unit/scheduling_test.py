"""Unit tests for diagnostics scheduling."""

import asyncio
from unittest.mock import MagicMock

import pytest

from template_lens.errors import ConfigError
from template_lens.server.scheduling import DEFAULT_DIAGNOSTICS_DELAY, Debouncer, get_diagnostics_delay


class TestDiagnosticsDelay:
    """Tests for reading the diagnostics delay."""

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the default diagnostics delay."""
        monkeypatch.delenv("TEMPLATE_LENS_DIAGNOSTICS_DELAY", raising=False)
        assert get_diagnostics_delay() == DEFAULT_DIAGNOSTICS_DELAY

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test reading the delay from the environment."""
        monkeypatch.setenv("TEMPLATE_LENS_DIAGNOSTICS_DELAY", "1.5")
        assert get_diagnostics_delay() == 1.5

    def test_invalid_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a non-numeric delay raises ConfigError."""
        monkeypatch.setenv("TEMPLATE_LENS_DIAGNOSTICS_DELAY", "soon")
        with pytest.raises(ConfigError, match="must be a number of seconds"):
            get_diagnostics_delay()

    def test_negative_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a negative delay raises ConfigError."""
        monkeypatch.setenv("TEMPLATE_LENS_DIAGNOSTICS_DELAY", "-1")
        with pytest.raises(ConfigError, match="must not be negative"):
            get_diagnostics_delay()


class TestDebouncer:
    """Tests for the Debouncer."""

    @pytest.mark.asyncio
    async def test_repeated_schedules_fire_once(self) -> None:
        """Test that repeated schedules run the callback once."""
        callback = MagicMock()
        debouncer = Debouncer(0.01, callback)
        debouncer.schedule()
        debouncer.schedule()
        assert debouncer.pending
        await asyncio.sleep(0.05)
        callback.assert_called_once_with()
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        """Test that a cancelled run never fires."""
        callback = MagicMock()
        debouncer = Debouncer(0.01, callback)
        debouncer.schedule()
        debouncer.cancel()
        await asyncio.sleep(0.05)
        callback.assert_not_called()

    def test_schedule_requires_running_loop(self) -> None:
        """Test that scheduling outside an event loop fails."""
        with pytest.raises(RuntimeError):
            Debouncer(0.01, MagicMock()).schedule()

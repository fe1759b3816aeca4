from __future__ import annotations

import asyncio
import os
from collections.abc import Callable

from template_lens.errors import ConfigError

DEFAULT_DIAGNOSTICS_DELAY = 0.25


def get_diagnostics_delay() -> float:
    raw = os.getenv("TEMPLATE_LENS_DIAGNOSTICS_DELAY", str(DEFAULT_DIAGNOSTICS_DELAY))
    try:
        delay = float(raw)
    except ValueError:
        raise ConfigError(f"Config: TEMPLATE_LENS_DIAGNOSTICS_DELAY must be a number of seconds, got {raw!r}") from None
    if delay < 0:
        raise ConfigError(f"Config: TEMPLATE_LENS_DIAGNOSTICS_DELAY must not be negative, got {raw!r}")
    return delay


class Debouncer:
    """Runs ``callback`` once ``delay`` seconds after the most recent ``schedule``.

    Scheduling again before the delay elapses replaces the pending run.
    Must be used from a running event loop.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from watchfiles import Change, awatch

from template_lens.core.config import CONFIG_FILENAMES
from template_lens.core.languages import is_supported_path
from template_lens.core.ports.watcher import FileChange, FileChangeKind

logger = logging.getLogger(__name__)

_CHANGE_KINDS: dict[Change, FileChangeKind] = {
    Change.added: "added",
    Change.modified: "changed",
    Change.deleted: "removed",
}


def _is_relevant_file(path: Path) -> bool:
    return path.name in CONFIG_FILENAMES or is_supported_path(path)


class WatchfilesWatcher:
    """Watch a project directory for template, script and config changes.

    Implements the ``FileWatcherPort`` protocol. Each batch reported by
    watchfiles is delivered to ``on_change`` as one sorted list.
    """

    def __init__(
        self,
        directory: str | Path,
        on_change: Callable[[list[FileChange]], Coroutine[Any, Any, None]],
    ) -> None:
        self._directory = Path(directory)
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._watch())
        logger.info("Watcher started for %s", self._directory)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Watcher stopped for %s", self._directory)

    async def _watch(self) -> None:
        async for changes in awatch(self._directory):
            batch = sorted(
                {
                    FileChange(_CHANGE_KINDS[Change(change)], path)
                    for change, path in changes
                    if _is_relevant_file(Path(path))
                },
                key=lambda item: (item.path, item.kind),
            )
            if batch:
                logger.info("Detected changes in %d file(s)", len(batch))
                try:
                    await self._on_change(batch)
                except Exception:
                    logger.exception("Error in watcher callback")

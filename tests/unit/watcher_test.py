"""Tests for the watchfiles watcher adapter."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from template_lens.core.ports.watcher import FileChange
from template_lens.watcher.watchfiles_adapter import (
    WatchfilesWatcher,
    _is_relevant_file,
)


class TestIsRelevantFile:
    """Tests for filtering watch events by file type."""

    def test_template(self) -> None:
        """Test that templates are relevant."""
        assert _is_relevant_file(Path("app/components/foo.hbs")) is True

    def test_script(self) -> None:
        """Test that scripts are relevant."""
        assert _is_relevant_file(Path("app/components/foo.ts")) is True

    def test_embedded_script(self) -> None:
        """Test that template-import scripts are relevant."""
        assert _is_relevant_file(Path("app/components/foo.gts")) is True

    def test_config(self) -> None:
        """Test that config files are relevant."""
        assert _is_relevant_file(Path("tsconfig.json")) is True
        assert _is_relevant_file(Path("jsconfig.json")) is True

    def test_declaration_file(self) -> None:
        """Test that declaration files are ignored."""
        assert _is_relevant_file(Path("types/global.d.ts")) is False

    def test_unsupported_txt(self) -> None:
        """Test that unsupported files are ignored."""
        assert _is_relevant_file(Path("readme.txt")) is False

    def test_other_json(self) -> None:
        """Test that other JSON files are ignored."""
        assert _is_relevant_file(Path("package.json")) is False


class TestWatchfilesWatcher:
    """Tests for the watchfiles-backed watcher."""

    def test_implements_protocol(self) -> None:
        """Test that the watcher satisfies FileWatcherPort."""
        from template_lens.core.ports.watcher import FileWatcherPort

        callback = AsyncMock()
        watcher: FileWatcherPort = WatchfilesWatcher("/tmp", callback)
        assert hasattr(watcher, "start")
        assert hasattr(watcher, "stop")

    @pytest.mark.asyncio
    async def test_start_creates_task(self) -> None:
        """Test that start runs the watch loop in a task."""
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        with patch("template_lens.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _empty_async_iter()
            await watcher.start()
            assert watcher._task is not None
            await watcher.stop()
            assert watcher._task is None

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        """Test that stopping an idle watcher does nothing."""
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self) -> None:
        """Test that a second start keeps the running task."""
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        with patch("template_lens.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _empty_async_iter()
            await watcher.start()
            task1 = watcher._task
            await watcher.start()
            assert watcher._task is task1
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_callback_receives_sorted_batch(self) -> None:
        """Test that each batch reaches the callback sorted."""
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        changes = {
            (1, "/tmp/app/foo.ts"),
            (2, "/tmp/app/foo.hbs"),
            (3, "/tmp/app/bar.ts"),
            (2, "/tmp/notes.txt"),
        }

        with patch("template_lens.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _single_change_iter(changes)
            await watcher.start()
            await asyncio.sleep(0.05)
            await watcher.stop()

        callback.assert_called_once()
        batch = callback.call_args[0][0]
        assert batch == [
            FileChange("removed", "/tmp/app/bar.ts"),
            FileChange("changed", "/tmp/app/foo.hbs"),
            FileChange("added", "/tmp/app/foo.ts"),
        ]

    @pytest.mark.asyncio
    async def test_callback_not_called_for_irrelevant_only(self) -> None:
        """Test that batches of irrelevant files are dropped."""
        callback = AsyncMock()
        watcher = WatchfilesWatcher("/tmp", callback)

        changes = {(1, "/tmp/readme.txt"), (2, "/tmp/Makefile")}

        with patch("template_lens.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _single_change_iter(changes)
            await watcher.start()
            await asyncio.sleep(0.05)
            await watcher.stop()

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_callback_errors_keep_watching(self) -> None:
        """Test that a failing callback does not stop the watcher."""
        callback = AsyncMock(side_effect=RuntimeError("boom"))
        watcher = WatchfilesWatcher("/tmp", callback)

        with patch("template_lens.watcher.watchfiles_adapter.awatch") as mock_awatch:
            mock_awatch.return_value = _single_change_iter({(2, "/tmp/app/foo.hbs")})
            await watcher.start()
            await asyncio.sleep(0.05)
            assert watcher._task is not None
            assert not watcher._task.done()
            await watcher.stop()

        callback.assert_called_once()


async def _empty_async_iter() -> AsyncIterator[Any]:
    """Async iterator that never yields, just blocks until cancelled."""
    try:
        await asyncio.sleep(3600)
    except asyncio.CancelledError:
        return
    yield  # pragma: no cover


async def _single_change_iter(changes: set[tuple[int, str]]) -> AsyncIterator[set[tuple[int, str]]]:
    """Async iterator that yields one set of changes then blocks."""
    yield changes
    try:
        await asyncio.sleep(3600)
    except asyncio.CancelledError:
        return

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from template_lens.cli.workspace import eligible_files, open_workspace
from template_lens.core.ports.watcher import FileChange
from template_lens.core.transform_manager import TransformManager
from template_lens.errors import LensError
from template_lens.models import offset_to_position
from template_lens.transform.module import TransformError
from template_lens.watcher.watchfiles_adapter import WatchfilesWatcher

logger = logging.getLogger(__name__)

console = Console()


def collect_errors(manager: TransformManager) -> list[TransformError]:
    errors: list[TransformError] = []
    seen: set[tuple[str, int, int, str]] = set()
    for path in eligible_files(manager):
        module = manager.get_transformed_module(path)
        if module is None:
            continue
        for error in module.errors:
            # Several pod scripts may share one template.
            key = (error.source.filename, error.location.start, error.location.end, error.message)
            if key not in seen:
                seen.add(key)
                errors.append(error)
    return errors


def _render_errors(errors: list[TransformError], root: Path) -> None:
    table = Table(show_lines=False)
    for header in ("file", "line", "column", "kind", "message"):
        table.add_column(header)
    for error in errors:
        position = offset_to_position(error.source.contents, error.location.start)
        try:
            file = Path(error.source.filename).relative_to(root).as_posix()
        except ValueError:
            file = error.source.filename
        table.add_row(file, str(position.row + 1), str(position.column + 1), error.kind, error.message)
    console.print(table)
    console.print(f"({len(errors)} errors)")


def _report(manager: TransformManager) -> int:
    errors = collect_errors(manager)
    if errors:
        _render_errors(errors, manager.config.root_dir)
    else:
        console.print("[green]No template errors found[/green]")
    return len(errors)


async def _watch(manager: TransformManager) -> None:
    async def on_change(changes: list[FileChange]) -> None:
        for change in changes:
            if change.kind == "added":
                manager.file_added(change.path)
            elif change.kind == "removed":
                manager.file_removed(change.path)
            else:
                manager.file_changed(change.path)
        _report(manager)

    watcher = WatchfilesWatcher(manager.config.root_dir, on_change)
    await watcher.start()
    try:
        await asyncio.Event().wait()
    finally:
        await watcher.stop()


def check(
    root: Annotated[Path, typer.Argument(help="Project directory (or any file inside it).")] = Path("."),
    watch: Annotated[bool, typer.Option("--watch", help="Keep running and re-check on file changes.")] = False,
) -> None:
    """Transform every eligible file and report template errors."""
    try:
        manager = open_workspace(root)
    except LensError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    error_count = _report(manager)
    if not watch:
        if error_count:
            raise typer.Exit(code=1)
        return

    console.print(f"[green]Watching {manager.config.root_dir} for changes[/green]")
    try:
        asyncio.run(_watch(manager))
    except KeyboardInterrupt:
        logger.info("Watch interrupted")

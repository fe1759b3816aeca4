"""One configuration's documents, overlay and host compiler."""

from __future__ import annotations

import logging
from pathlib import Path

from template_lens.core.config import ConfigLoader, ConfigScope
from template_lens.core.document_cache import DocumentCache
from template_lens.core.fs import RealFileSystem
from template_lens.core.ports.filesystem import FileSystem
from template_lens.core.ports.host import HostFactory
from template_lens.core.ports.watcher import FileChange
from template_lens.core.transform_manager import TransformManager
from template_lens.models import Diagnostic, Location, QuickInfo
from template_lens.transform.module import Range

logger = logging.getLogger(__name__)


class Project:
    def __init__(
        self,
        config: ConfigScope,
        host_factory: HostFactory,
        *,
        file_system: FileSystem | None = None,
        config_loader: ConfigLoader | None = None,
    ) -> None:
        self.config = config
        self.host_factory = host_factory
        self.documents = DocumentCache(file_system or RealFileSystem(), config_loader or ConfigLoader())
        self.transform_manager = TransformManager(config, self.documents)
        self.host = host_factory(config, self.transform_manager)
        self.open_paths: set[str] = set()

    @property
    def root_dir(self) -> Path:
        return self.config.root_dir

    def open_file(self, path: str, contents: str) -> None:
        self.open_paths.add(path)
        self.transform_manager.update_document(path, contents)

    def update_file(self, path: str, contents: str) -> None:
        self.transform_manager.update_document(path, contents)

    def close_file(self, path: str) -> None:
        self.open_paths.discard(path)
        self.transform_manager.close_document(path)

    def apply_change(self, change: FileChange) -> None:
        logger.debug("File %s: %s", change.kind, change.path)
        if change.kind == "added":
            self.transform_manager.file_added(change.path)
        elif change.kind == "removed":
            self.transform_manager.file_removed(change.path)
        else:
            self.transform_manager.file_changed(change.path)

    def reload_config(self) -> None:
        """Pick up an edited configuration file, keeping the documents open in the editor."""
        self.config = self.transform_manager.reload_config()
        self.host = self.host_factory(self.config, self.transform_manager)

    def get_diagnostics(self, path: str) -> list[Diagnostic]:
        """Host diagnostics for ``path``, reconciled and in original coordinates.

        A companion template is checked through its script; only the
        diagnostics that land in the template are returned for it.
        """
        target = self._analysis_target(path)
        host_diagnostics = self.host.get_diagnostics(target)
        diagnostics = self.transform_manager.rewrite_diagnostics(target, host_diagnostics)
        return [diagnostic for diagnostic in diagnostics if diagnostic.file == path]

    def get_hover(self, path: str, offset: int) -> QuickInfo | None:
        target, transformed_offset = self._to_transformed(path, offset)
        info = self.host.get_quick_info(target, transformed_offset)
        if info is None:
            return None
        file, original = self._to_original(info.file, info.start, info.end)
        return info.model_copy(update={"file": file, "start": original.start, "end": original.end})

    def get_definition(self, path: str, offset: int) -> list[Location]:
        target, transformed_offset = self._to_transformed(path, offset)
        locations = []
        for location in self.host.get_definition(target, transformed_offset):
            file, original = self._to_original(location.file, location.start, location.end)
            locations.append(Location(file=file, start=original.start, end=original.end))
        return locations

    def _analysis_target(self, path: str) -> str:
        if Path(path).suffix == ".hbs":
            script = self.transform_manager.find_companion_script(path)
            if script is not None:
                return script
        return path

    def _to_transformed(self, path: str, offset: int) -> tuple[str, int]:
        target = self._analysis_target(path)
        module = self.transform_manager.get_transformed_module(target)
        if module is None:
            return target, offset
        return target, module.get_transformed_offset(path, offset)

    def _to_original(self, path: str, start: int, end: int) -> tuple[str, Range]:
        module = self.transform_manager.get_transformed_module(path)
        if module is None:
            return path, Range(start, end)
        source, original = module.get_original_range(start, end)
        return source.filename, original

"""The virtual file overlay seen by the host compiler.

Existence checks and directory listings go straight to the real file system.
Reads of eligible files return the transformed module instead of the file's
own contents. Transformed modules are cached per path and keyed by the
versions of every document that contributed to them, so a read only
re-emits when one of those documents actually changed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from template_lens.core.config import ConfigScope, is_config_path
from template_lens.core.document_cache import DocumentCache
from template_lens.core.languages import (
    DEFAULT_SCRIPT_EXTENSIONS,
    companion_script_candidates,
    companion_template_candidates,
    detect_kind_from_path,
    is_supported_path,
)
from template_lens.core.ports.filesystem import FileSystem
from template_lens.core.ports.watcher import FileChangeKind
from template_lens.errors import ConfigError
from template_lens.models import Diagnostic, offset_to_position
from template_lens.transform.module import Range, SourceFile, TransformedModule
from template_lens.transform.rewrite import rewrite_module, rewrite_standalone_template

logger = logging.getLogger(__name__)

WatchCallback = Callable[[str, FileChangeKind], None]


@dataclass(frozen=True)
class VirtualFileEntry:
    path: str
    version: int
    fingerprint: tuple[tuple[str, int], ...]
    module: TransformedModule | None
    dependencies: frozenset[str]


class WatchHandle:
    def __init__(self, watchers: dict[str, list[WatchCallback]], path: str, callback: WatchCallback) -> None:
        self._watchers = watchers
        self._path = path
        self._callback = callback
        watchers.setdefault(path, []).append(callback)

    def close(self) -> None:
        callbacks = self._watchers.get(self._path, [])
        if self._callback in callbacks:
            callbacks.remove(self._callback)
        if not callbacks:
            self._watchers.pop(self._path, None)


class TransformManager:
    def __init__(
        self,
        config: ConfigScope,
        documents: DocumentCache,
        file_system: FileSystem | None = None,
        script_extensions: tuple[str, ...] = DEFAULT_SCRIPT_EXTENSIONS,
    ) -> None:
        self.config = config
        self.documents = documents
        self.file_system = file_system or documents.file_system
        self.script_extensions = script_extensions
        self._entries: dict[str, VirtualFileEntry] = {}
        self._versions: dict[str, int] = {}
        self._dependents: dict[str, set[str]] = {}
        self._file_watchers: dict[str, list[WatchCallback]] = {}
        self._directory_watchers: dict[str, list[WatchCallback]] = {}
        self._recursive_directories: set[str] = set()

    # ------------------------------------------------------------------
    # File system overlay
    # ------------------------------------------------------------------

    def file_exists(self, path: str) -> bool:
        if path in self.documents and self.documents.get_document(path).from_editor:
            return True
        return self.file_system.file_exists(path)

    def read_file(self, path: str) -> str | None:
        module = self.get_transformed_module(path)
        if module is not None:
            return module.transformed_contents
        return self.documents.get_contents(path)

    def read_directory(
        self,
        path: str,
        extensions: tuple[str, ...] | None = None,
        depth: int | None = None,
    ) -> list[str]:
        return self.file_system.read_directory(path, extensions, depth)

    def watch_file(self, path: str, callback: WatchCallback) -> WatchHandle:
        return WatchHandle(self._file_watchers, path, callback)

    def watch_directory(self, path: str, callback: WatchCallback, recursive: bool = False) -> WatchHandle:
        if recursive:
            self._recursive_directories.add(path)
        return WatchHandle(self._directory_watchers, path, callback)

    # ------------------------------------------------------------------
    # Transformed modules
    # ------------------------------------------------------------------

    def get_transformed_module(self, path: str) -> TransformedModule | None:
        return self.get_entry(path).module

    def get_entry(self, path: str) -> VirtualFileEntry:
        dependencies = self._dependencies_of(path)
        fingerprint = tuple((dependency, self.documents.get_version(dependency)) for dependency in dependencies)
        entry = self._entries.get(path)
        if entry is not None and entry.fingerprint == fingerprint:
            return entry

        module = self._build(path)
        version = self._versions[path] = self._versions.get(path, 0) + 1
        entry = VirtualFileEntry(
            path=path,
            version=version,
            fingerprint=fingerprint,
            module=module,
            dependencies=frozenset(dependencies),
        )
        self._entries[path] = entry
        for dependency in dependencies:
            self._dependents.setdefault(dependency, set()).add(path)
        logger.debug("Rebuilt virtual entry %s (version %d)", path, entry.version)
        return entry

    def scope_for(self, path: str) -> ConfigScope | None:
        return self.documents.config_for(path)

    def is_eligible(self, path: str) -> bool:
        if not is_supported_path(Path(path)):
            return False
        scope = self.scope_for(path)
        return scope is not None and scope.includes_file(path)

    def reload_config(self) -> ConfigScope:
        """Re-read this overlay's configuration and drop every cached module.

        Raises ``ConfigError`` when the configuration no longer loads; the
        cached modules are gone either way.
        """
        self.documents.forget_configs()
        evicted = sorted(self._entries)
        self._entries.clear()
        self._dependents.clear()
        self.config = self.documents.config_loader.load(self.config.config_path)
        logger.info("Reloaded configuration %s", self.config.config_path)
        for path in evicted:
            self._notify(path, "changed")
        return self.config

    def find_companion_template(self, script_path: str) -> str | None:
        for candidate in companion_template_candidates(Path(script_path)):
            if self.file_exists(str(candidate)):
                return str(candidate)
        return None

    def find_companion_script(self, template_path: str) -> str | None:
        for candidate in companion_script_candidates(Path(template_path), self.script_extensions):
            if self.file_exists(str(candidate)):
                return str(candidate)
        return None

    def _dependencies_of(self, path: str) -> list[str]:
        dependencies = [path]
        if not self.is_eligible(path):
            return dependencies
        scope = self.scope_for(path)
        if scope is None or scope.environment.template_config is None:
            return dependencies
        if detect_kind_from_path(Path(path)) == "script":
            candidates = companion_template_candidates(Path(path))
        else:
            candidates = companion_script_candidates(Path(path), self.script_extensions)
        dependencies.extend(str(candidate) for candidate in candidates)
        return dependencies

    def _build(self, path: str) -> TransformedModule | None:
        scope = self.scope_for(path)
        if scope is None or not self.is_eligible(path):
            return None
        contents = self.documents.get_contents(path)
        if contents is None:
            return None

        environment = scope.environment
        if detect_kind_from_path(Path(path)) == "template":
            if self.find_companion_script(path) is not None or not scope.check_standalone_templates:
                return None
            logger.debug("Transforming standalone template %s", path)
            return rewrite_standalone_template(
                SourceFile(filename=path, contents=contents, kind="template"),
                environment,
                template_ast=self.documents.get_template_ast(path),
                directive_kinds=scope.directive_kinds,
            )

        template = None
        template_ast = None
        if environment.template_config is not None:
            template_path = self.find_companion_template(path)
            template_contents = self.documents.get_contents(template_path) if template_path else None
            if template_path is not None and template_contents is not None:
                template = SourceFile(filename=template_path, contents=template_contents, kind="template")
                template_ast = self.documents.get_template_ast(template_path)

        analysis = self.documents.get_script_analysis(path, embedded_templates=environment.is_embedded_script(path))
        logger.debug("Transforming %s", path)
        return rewrite_module(
            SourceFile(filename=path, contents=contents),
            environment,
            template=template,
            analysis=analysis,
            template_ast=template_ast,
            directive_kinds=scope.directive_kinds,
        )

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def file_added(self, path: str) -> None:
        self.documents.mark_changed(path)
        self._invalidate(path, "added")

    def file_changed(self, path: str) -> None:
        self.documents.mark_changed(path)
        self._invalidate(path, "changed")

    def file_removed(self, path: str) -> None:
        self.documents.remove_document(path)
        self._invalidate(path, "removed")

    def update_document(self, path: str, contents: str) -> None:
        """Apply an editor's unsaved contents for ``path``."""
        self.documents.update_document(path, contents)
        self._invalidate(path, "changed")

    def close_document(self, path: str) -> None:
        self.documents.close_document(path)
        self._invalidate(path, "changed")

    def _invalidate(self, path: str, kind: FileChangeKind) -> None:
        if is_config_path(path):
            try:
                self.reload_config()
            except ConfigError as exc:
                logger.warning("Keeping previous configuration for %s: %s", self.config.root_dir, exc)
        affected = self._dependents.pop(path, set()) | {path}
        for dependent in affected:
            if self._entries.pop(dependent, None) is not None:
                logger.debug("Evicted virtual entry %s", dependent)
        self._notify(path, kind)
        for dependent in sorted(affected - {path}):
            self._notify(dependent, "changed")

    def _notify(self, path: str, kind: FileChangeKind) -> None:
        callbacks = list(self._file_watchers.get(path, []))
        parent = str(Path(path).parent)
        for directory, watchers in self._directory_watchers.items():
            recursive = directory in self._recursive_directories
            if parent == directory or (recursive and Path(path).is_relative_to(directory)):
                callbacks.extend(watchers)
        for callback in callbacks:
            try:
                callback(path, kind)
            except Exception:
                logger.exception("Error in watch callback for %s", path)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def rewrite_diagnostics(self, path: str, diagnostics: list[Diagnostic]) -> list[Diagnostic]:
        """Reconcile host diagnostics for ``path`` against its directives and map them back.

        Diagnostics starting inside a directive's area of effect are consumed.
        Each directive that consumed nothing yields an error of its own, and
        transform errors are appended last.
        """
        module = self.get_transformed_module(path)
        if module is None:
            return list(diagnostics)

        used: set[int] = set()
        results: list[Diagnostic] = []
        for diagnostic in diagnostics:
            index = _directive_for(module, diagnostic.start)
            if index is not None:
                used.add(index)
                continue
            results.append(_remap(module, diagnostic))

        for index, directive in enumerate(module.directives):
            if index not in used:
                results.append(
                    _lens_diagnostic(
                        directive.source,
                        directive.location,
                        f"Unused '@lens-{directive.kind}' directive.",
                        code="directive",
                    )
                )
        for error in module.errors:
            results.append(_lens_diagnostic(error.source, error.location, error.message, code=error.kind))
        return results


def _directive_for(module: TransformedModule, offset: int) -> int | None:
    for index, directive in enumerate(module.directives):
        if directive.area_of_effect.contains(offset):
            return index
    return None


def _remap(module: TransformedModule, diagnostic: Diagnostic) -> Diagnostic:
    source, original = module.get_original_range(diagnostic.start, diagnostic.end)
    return diagnostic.model_copy(
        update={
            "file": source.filename,
            "start": original.start,
            "end": original.end,
            "start_point": offset_to_position(source.contents, original.start),
            "end_point": offset_to_position(source.contents, original.end),
        }
    )


def _lens_diagnostic(source: SourceFile, location: Range, message: str, *, code: str) -> Diagnostic:
    return Diagnostic(
        file=source.filename,
        start=location.start,
        end=location.end,
        message=message,
        source="lens",
        code=code,
        start_point=offset_to_position(source.contents, location.start),
        end_point=offset_to_position(source.contents, location.end),
    )

"""Projects keyed by configuration path, with debounced diagnostics publication."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from template_lens.core.config import ConfigLoader, is_config_path
from template_lens.core.ports.filesystem import FileSystem
from template_lens.core.ports.host import HostFactory
from template_lens.core.ports.watcher import FileChange
from template_lens.errors import ConfigError
from template_lens.models import Diagnostic, Location, QuickInfo
from template_lens.server.project import Project
from template_lens.server.scheduling import Debouncer, get_diagnostics_delay

logger = logging.getLogger(__name__)

T = TypeVar("T")

PublishDiagnostics = Callable[[str, list[Diagnostic]], None]

FAILURE_MESSAGE = (
    "template-lens encountered an error computing diagnostics for this file. "
    "This is likely a bug in template-lens; please file an issue with the code "
    "and steps needed to reproduce it."
)


@dataclass
class ProjectDetails:
    project: Project
    debouncer: Debouncer


class ProjectPool:
    def __init__(
        self,
        host_factory: HostFactory,
        publish: PublishDiagnostics,
        *,
        config_loader: ConfigLoader | None = None,
        file_system: FileSystem | None = None,
        diagnostics_delay: float | None = None,
    ) -> None:
        self.host_factory = host_factory
        self.publish = publish
        self.config_loader = config_loader or ConfigLoader()
        self.file_system = file_system
        self.diagnostics_delay = get_diagnostics_delay() if diagnostics_delay is None else diagnostics_delay
        self._projects: dict[Path, ProjectDetails] = {}

    @property
    def projects(self) -> list[Project]:
        return [details.project for details in self._projects.values()]

    def project_for_file(self, path: str) -> Project | None:
        details = self._details_for_file(path)
        return details.project if details is not None else None

    def open_document(self, path: str, contents: str) -> None:
        def open_file(details: ProjectDetails) -> None:
            details.project.open_file(path, contents)
            details.debouncer.schedule()

        self._with_details(path, open_file)

    def update_document(self, path: str, contents: str) -> None:
        def update_file(details: ProjectDetails) -> None:
            details.project.update_file(path, contents)
            details.debouncer.schedule()

        self._with_details(path, update_file)

    def close_document(self, path: str) -> None:
        self._with_details(path, lambda details: details.project.close_file(path))

    def apply_changes(self, changes: Iterable[FileChange]) -> None:
        """Feed watcher events to their projects, then schedule one publish per touched project.

        A changed configuration file reloads every project; a project whose
        configuration no longer loads is shut down.
        """
        touched: dict[Path, ProjectDetails] = {}
        config_changed = False
        for change in changes:
            if is_config_path(change.path):
                config_changed = True
                continue

            def apply(details: ProjectDetails, change: FileChange = change) -> ProjectDetails:
                details.project.apply_change(change)
                return details

            details = self._with_details(change.path, apply)
            if details is not None:
                touched[details.project.config.config_path] = details
        if config_changed:
            touched.update(self._reload_projects())
        for details in touched.values():
            if details.project.open_paths:
                details.debouncer.schedule()

    def get_diagnostics(self, path: str) -> list[Diagnostic]:
        return self._with_details(path, lambda details: details.project.get_diagnostics(path)) or []

    def get_hover(self, path: str, offset: int) -> QuickInfo | None:
        return self._with_details(path, lambda details: details.project.get_hover(path, offset))

    def get_definition(self, path: str, offset: int) -> list[Location]:
        return self._with_details(path, lambda details: details.project.get_definition(path, offset)) or []

    def shutdown(self) -> None:
        for details in self._projects.values():
            details.debouncer.cancel()
        self._projects.clear()

    def publish_diagnostics(self, project: Project) -> None:
        for path in sorted(project.open_paths):
            try:
                diagnostics = project.get_diagnostics(path)
            except Exception as exc:
                logger.exception("Error computing diagnostics for %s", path)
                diagnostics = [Diagnostic(file=path, start=0, end=1, message=f"{FAILURE_MESSAGE}\n\n{exc!r}")]
            self.publish(path, diagnostics)

    def _reload_projects(self) -> dict[Path, ProjectDetails]:
        self.config_loader.invalidate()
        reloaded: dict[Path, ProjectDetails] = {}
        for config_path, details in list(self._projects.items()):
            try:
                details.project.reload_config()
            except ConfigError as exc:
                logger.warning("Shutting down project for %s: %s", config_path, exc)
                details.debouncer.cancel()
                del self._projects[config_path]
                continue
            reloaded[config_path] = details
        return reloaded

    def _with_details(self, path: str, callback: Callable[[ProjectDetails], T]) -> T | None:
        try:
            details = self._details_for_file(path)
            if details is None:
                return None
            return callback(details)
        except Exception:
            logger.exception("Error handling request for %s", path)
            return None

    def _details_for_file(self, path: str) -> ProjectDetails | None:
        config = self.config_loader.config_for_file(path)
        if config is None:
            return None
        details = self._projects.get(config.config_path)
        if details is None:
            details = self._launch(config.config_path)
            self._projects[config.config_path] = details
        return details

    def _launch(self, config_path: Path) -> ProjectDetails:
        config = self.config_loader.load(config_path)
        project = Project(config, self.host_factory, file_system=self.file_system, config_loader=self.config_loader)
        debouncer = Debouncer(self.diagnostics_delay, lambda: self.publish_diagnostics(project))
        logger.info("Launched project for %s", config_path)
        return ProjectDetails(project=project, debouncer=debouncer)

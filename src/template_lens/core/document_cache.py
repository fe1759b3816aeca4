"""Versioned documents and their lazily parsed forms.

Every change to a document (an editor update or a watch event) bumps its
version; parsed forms are recomputed lazily for the current version only.
Each cache draws versions from its own monotonic counter, so a document that
is removed and later recreated never reuses a version number.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass

from template_lens.core.config import ConfigLoader, ConfigScope, is_config_path
from template_lens.core.ports.filesystem import FileSystem
from template_lens.core.script import ScriptAnalysis, analyze_script
from template_lens.errors import TemplateSyntaxError
from template_lens.template.parser import parse_template
from template_lens.template.syntax import Template

logger = logging.getLogger(__name__)


@dataclass
class Document:
    path: str
    version: int
    contents: str | None = None
    loaded: bool = False
    from_editor: bool = False
    script_analysis: ScriptAnalysis | None = None
    template_ast: Template | TemplateSyntaxError | None = None


class DocumentCache:
    def __init__(self, file_system: FileSystem, config_loader: ConfigLoader) -> None:
        self.file_system = file_system
        self.config_loader = config_loader
        self._documents: dict[str, Document] = {}
        self._configs: dict[str, ConfigScope | None] = {}
        self._versions = itertools.count(1)

    def __contains__(self, path: str) -> bool:
        return path in self._documents

    def get_document(self, path: str) -> Document:
        document = self._documents.get(path)
        if document is None:
            document = Document(path=path, version=next(self._versions))
            self._documents[path] = document
        return document

    def get_version(self, path: str) -> int:
        return self.get_document(path).version

    def get_contents(self, path: str) -> str | None:
        document = self.get_document(path)
        if not document.loaded:
            document.contents = self.file_system.read_file(path)
            document.loaded = True
        return document.contents

    def update_document(self, path: str, contents: str) -> int:
        """Replace ``path``'s contents with an editor's copy."""
        document = self.get_document(path)
        self._reset(document)
        document.contents = contents
        document.loaded = True
        document.from_editor = True
        return document.version

    def close_document(self, path: str) -> int:
        """Forget the editor's copy; the next read goes back to disk."""
        document = self.get_document(path)
        document.from_editor = False
        self._reset(document)
        return document.version

    def mark_changed(self, path: str) -> int:
        """Record a file system change; editor-owned documents keep their contents."""
        document = self.get_document(path)
        if not document.from_editor:
            self._reset(document)
        return document.version

    def remove_document(self, path: str) -> None:
        self._documents.pop(path, None)
        self._configs.pop(path, None)
        if is_config_path(path):
            self._config_file_changed()

    def config_for(self, path: str) -> ConfigScope | None:
        """The configuration that governs ``path``, resolved once per path."""
        if path not in self._configs:
            self._configs[path] = self.config_loader.config_for_file(path)
        return self._configs[path]

    def get_script_analysis(self, path: str, *, embedded_templates: bool = False) -> ScriptAnalysis | None:
        document = self.get_document(path)
        if document.script_analysis is None:
            contents = self.get_contents(path)
            if contents is None:
                return None
            logger.debug("Analyzing %s (version %d)", path, document.version)
            document.script_analysis = analyze_script(contents, embedded_templates=embedded_templates)
        return document.script_analysis

    def get_template_ast(self, path: str) -> Template | None:
        """Parsed template for ``path``; ``None`` when missing or malformed."""
        document = self.get_document(path)
        if document.template_ast is None:
            contents = self.get_contents(path)
            if contents is None:
                return None
            try:
                document.template_ast = parse_template(contents)
            except TemplateSyntaxError as error:
                document.template_ast = error
        return document.template_ast if isinstance(document.template_ast, Template) else None

    def _reset(self, document: Document) -> None:
        document.version = next(self._versions)
        document.contents = None
        document.loaded = False
        document.script_analysis = None
        document.template_ast = None
        if is_config_path(document.path):
            self._config_file_changed()

    def forget_configs(self) -> None:
        self._configs.clear()

    def _config_file_changed(self) -> None:
        self.config_loader.invalidate()
        self.forget_configs()

"""Shared fixtures and helpers for tests."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any, cast

import pytest
from tree_sitter import Parser
from tree_sitter_language_pack import SupportedLanguage, get_parser

from template_lens.core.config import ConfigLoader
from template_lens.core.document_cache import DocumentCache
from template_lens.core.fs import RealFileSystem
from template_lens.core.transform_manager import TransformManager

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------

ProjectFactory = Callable[..., Path]


@pytest.fixture
def typescript_parser() -> Parser:
    """Return a tree-sitter parser for TypeScript."""
    return get_parser(cast(SupportedLanguage, "typescript"))


@pytest.fixture
def make_project(tmp_path: Path) -> ProjectFactory:
    """Write a ``tsconfig.json`` with a ``lens`` section plus the given files; return the root."""

    def _make(lens: dict[str, Any] | None = None, files: dict[str, str] | None = None) -> Path:
        config: dict[str, Any] = {"compilerOptions": {"strict": True}}
        config["lens"] = lens if lens is not None else {"environment": "ember-loose"}
        (tmp_path / "tsconfig.json").write_text(json.dumps(config, indent=2))
        for relative, contents in (files or {}).items():
            target = tmp_path / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(contents)
        return tmp_path

    return _make


@pytest.fixture
def make_manager() -> Callable[[Path], TransformManager]:
    """Build a ``TransformManager`` over the real file system for a project root."""

    def _make(root: Path) -> TransformManager:
        loader = ConfigLoader()
        config = loader.config_for_file(root / "tsconfig.json")
        assert config is not None
        return TransformManager(config, DocumentCache(RealFileSystem(), loader))

    return _make

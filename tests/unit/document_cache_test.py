"""Unit tests for versioned documents and their parsed forms."""

from unittest.mock import MagicMock

import pytest

from template_lens.core.document_cache import DocumentCache
from template_lens.template.syntax import Template


@pytest.fixture
def file_system() -> MagicMock:
    fs = MagicMock()
    fs.read_file.return_value = "export const a = 1;\n"
    return fs


@pytest.fixture
def cache(file_system: MagicMock) -> DocumentCache:
    return DocumentCache(file_system, MagicMock())


class TestVersions:
    """Tests for document versions."""

    def test_version_is_stable_until_changed(self, cache: DocumentCache) -> None:
        """Test that a version only moves when the document changes."""
        version = cache.get_version("/p/a.ts")
        assert cache.get_version("/p/a.ts") == version
        assert cache.mark_changed("/p/a.ts") > version

    def test_updates_bump_version(self, cache: DocumentCache) -> None:
        """Test that editor updates and closes bump the version."""
        version = cache.get_version("/p/a.ts")
        updated = cache.update_document("/p/a.ts", "x")
        closed = cache.close_document("/p/a.ts")
        assert version < updated < closed

    def test_removed_documents_never_reuse_versions(self, cache: DocumentCache) -> None:
        """Test that a recreated document gets a fresh version."""
        version = cache.get_version("/p/a.ts")
        cache.remove_document("/p/a.ts")
        assert "/p/a.ts" not in cache
        assert cache.get_version("/p/a.ts") > version

    def test_caches_count_versions_independently(self, file_system: MagicMock) -> None:
        """Test that one cache's activity never advances another cache's versions."""
        first = DocumentCache(file_system, MagicMock())
        second = DocumentCache(file_system, MagicMock())
        assert first.get_version("/x.ts") == 1
        second.get_version("/y.ts")
        second.get_version("/z.ts")
        assert first.mark_changed("/x.ts") == 2


class TestContents:
    """Tests for document contents."""

    def test_contents_are_read_lazily_once(self, cache: DocumentCache, file_system: MagicMock) -> None:
        """Test that contents are read on first use and then cached."""
        cache.get_version("/p/a.ts")
        file_system.read_file.assert_not_called()
        assert cache.get_contents("/p/a.ts") == "export const a = 1;\n"
        cache.get_contents("/p/a.ts")
        file_system.read_file.assert_called_once_with("/p/a.ts")

    def test_change_rereads_from_disk(self, cache: DocumentCache, file_system: MagicMock) -> None:
        """Test that a watch event makes the next read go to disk."""
        cache.get_contents("/p/a.ts")
        file_system.read_file.return_value = "export const b = 2;\n"
        cache.mark_changed("/p/a.ts")
        assert cache.get_contents("/p/a.ts") == "export const b = 2;\n"

    def test_editor_documents_ignore_disk_changes(self, cache: DocumentCache, file_system: MagicMock) -> None:
        """Test that editor-owned documents keep their unsaved contents."""
        version = cache.update_document("/p/a.ts", "let unsaved = true;")
        assert cache.mark_changed("/p/a.ts") == version
        assert cache.get_contents("/p/a.ts") == "let unsaved = true;"
        file_system.read_file.assert_not_called()

    def test_closing_returns_to_disk(self, cache: DocumentCache) -> None:
        """Test that closing a document falls back to the file on disk."""
        cache.update_document("/p/a.ts", "let unsaved = true;")
        cache.close_document("/p/a.ts")
        assert not cache.get_document("/p/a.ts").from_editor
        assert cache.get_contents("/p/a.ts") == "export const a = 1;\n"

    def test_missing_file(self, cache: DocumentCache, file_system: MagicMock) -> None:
        """Test that a missing file has no contents."""
        file_system.read_file.return_value = None
        assert cache.get_contents("/p/missing.ts") is None
        assert cache.get_script_analysis("/p/missing.ts") is None
        assert cache.get_template_ast("/p/missing.hbs") is None


class TestParsedForms:
    """Tests for lazily parsed script and template forms."""

    def test_script_analysis_is_cached_per_version(self, cache: DocumentCache) -> None:
        """Test that script analysis is reused until the document changes."""
        first = cache.get_script_analysis("/p/a.ts")
        assert first is not None
        assert cache.get_script_analysis("/p/a.ts") is first
        cache.mark_changed("/p/a.ts")
        assert cache.get_script_analysis("/p/a.ts") is not first

    def test_template_ast(self, cache: DocumentCache) -> None:
        """Test that templates are parsed on demand."""
        cache.update_document("/p/a.hbs", "{{@name}}")
        ast = cache.get_template_ast("/p/a.hbs")
        assert isinstance(ast, Template)
        assert cache.get_template_ast("/p/a.hbs") is ast

    def test_malformed_template(self, cache: DocumentCache) -> None:
        """Test that a malformed template has no AST and is not reparsed."""
        cache.update_document("/p/a.hbs", "{{#if @name}}")
        assert cache.get_template_ast("/p/a.hbs") is None
        assert cache.get_template_ast("/p/a.hbs") is None


class TestConfigInvalidation:
    """Tests for configuration invalidation."""

    def test_config_change_invalidates_loader(self, file_system: MagicMock) -> None:
        """Test that a changed config file drops resolved configurations."""
        loader = MagicMock()
        loader.config_for_file.return_value = None
        cache = DocumentCache(file_system, loader)
        cache.config_for("/p/a.ts")
        cache.config_for("/p/a.ts")
        loader.config_for_file.assert_called_once_with("/p/a.ts")

        cache.mark_changed("/p/tsconfig.json")
        loader.invalidate.assert_called_once()
        cache.config_for("/p/a.ts")
        assert loader.config_for_file.call_count == 2

    def test_other_changes_keep_loader(self, file_system: MagicMock) -> None:
        """Test that changes to other files keep the loader's cache."""
        loader = MagicMock()
        cache = DocumentCache(file_system, loader)
        cache.mark_changed("/p/package.json")
        loader.invalidate.assert_not_called()

    def test_removed_config_invalidates_loader(self, file_system: MagicMock) -> None:
        """Test that deleting a config file drops every resolved configuration."""
        loader = MagicMock()
        cache = DocumentCache(file_system, loader)
        cache.config_for("/p/a.ts")
        cache.remove_document("/p/tsconfig.json")
        loader.invalidate.assert_called_once()
        cache.config_for("/p/a.ts")
        assert loader.config_for_file.call_count == 2

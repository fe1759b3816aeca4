"""Unit tests for template environments."""

import pytest

from template_lens.core.environment import BUILTIN_ENVIRONMENTS, Environment
from template_lens.core.script import ImportBinding
from template_lens.errors import ConfigError


class TestEnvironmentLoad:
    """Tests for loading environments."""

    def test_single_builtin(self) -> None:
        """Test loading a single built-in environment by name."""
        environment = Environment.load("ember-loose")
        assert environment.names == ["ember-loose"]
        assert environment.template_config is not None
        assert environment.template_config.types_source == "@template-lens/environment-ember-loose/-private/dsl"
        assert environment.embedded_config is None
        assert not environment.has_tags()

    def test_list_merges_definitions(self) -> None:
        """Test that a list of environments merges their definitions."""
        environment = Environment.load(["ember-loose", "ember-template-imports", "glimmerx"])
        assert environment.template_config is not None
        assert environment.embedded_config is not None
        assert environment.has_tags()

    def test_inline_definition(self) -> None:
        """Test loading an environment defined inline."""
        environment = Environment.load(
            {"custom": {"tags": {"my-lib": {"hbs": {"typesSource": "my-lib/dsl", "globals": ["t"]}}}}}
        )
        tag = environment.tag_for(ImportBinding(local="hbs", specifier="hbs", source="my-lib"))
        assert tag is not None
        assert tag.types_source == "my-lib/dsl"
        assert tag.globals == ["t"]

    def test_unknown_environment(self) -> None:
        """Test that an unknown environment name raises ConfigError."""
        with pytest.raises(ConfigError, match="unknown environment 'nope'"):
            Environment.load("nope")

    def test_invalid_inline_definition(self) -> None:
        """Test that an invalid inline definition raises ConfigError."""
        with pytest.raises(ConfigError, match="invalid definition for environment 'custom'"):
            Environment.load({"custom": {"tags": {"my-lib": {"hbs": {"globals": []}}}}})

    def test_builtins_are_not_mutated_by_merging(self) -> None:
        """Test that merging leaves the built-in definitions untouched."""
        before = {source: dict(specifiers) for source, specifiers in BUILTIN_ENVIRONMENTS["glimmerx"].tags.items()}
        Environment.load(
            {
                "glimmerx": None,
                "custom": {"tags": {"@glimmerx/component": {"tpl": {"typesSource": "x"}}}},
            }
        )
        assert BUILTIN_ENVIRONMENTS["glimmerx"].tags == before


class TestEnvironmentQueries:
    """Tests for querying a loaded environment."""

    def test_tag_for_requires_matching_specifier(self) -> None:
        """Test that only the configured import specifier is a template tag."""
        environment = Environment.load("glimmerx")
        hbs = ImportBinding(local="hbs", specifier="hbs", source="@glimmerx/component")
        other = ImportBinding(local="Component", specifier="default", source="@glimmerx/component")
        assert environment.tag_for(hbs) is not None
        assert environment.tag_for(other) is None

    def test_is_embedded_script(self) -> None:
        """Test which extensions hold embedded templates."""
        environment = Environment.load("ember-template-imports")
        assert environment.is_embedded_script("app/components/foo.gts")
        assert not environment.is_embedded_script("app/components/foo.ts")
        assert not Environment.load("ember-loose").is_embedded_script("foo.gts")

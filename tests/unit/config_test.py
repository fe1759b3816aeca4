"""Unit tests for configuration discovery and parsing."""

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from template_lens.core.config import ConfigLoader, glob_matches, read_json_with_comments
from template_lens.errors import ConfigError


def _write(path: Path, data: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


class TestGlobMatches:
    """Tests for include/exclude glob matching."""

    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("app/components/foo.hbs", "**/*", True),
            ("foo.hbs", "**/*.hbs", True),
            ("node_modules/pkg/index.ts", "**/node_modules/**", True),
            ("app/node_modules/pkg/index.ts", "**/node_modules/**", True),
            ("app/components/foo.ts", "app/legacy/**", False),
            ("app/legacy/foo.hbs", "app/legacy/**", True),
            ("app/foo.ts", "app/*.ts", True),
            ("app/sub/foo.ts", "app/*.ts", False),
            ("app/foo.ts", "app/**/*.ts", True),
            ("app/a/b/foo.ts", "app/**/*.ts", True),
            ("app/a.ts", "app/?.ts", True),
        ],
    )
    def test_patterns(self, path: str, pattern: str, expected: bool) -> None:
        """Test glob patterns against relative paths."""
        assert glob_matches(path, pattern) is expected


class TestReadJsonWithComments:
    """Tests for reading JSON with comments and trailing commas."""

    def test_comments_and_trailing_commas(self, tmp_path: Path) -> None:
        """Test that comments and trailing commas are accepted."""
        path = tmp_path / "tsconfig.json"
        path.write_text(
            """{
  // line comment
  "compilerOptions": { "strict": true, },
  /* block
     comment */
  "include": ["app/**/*", "types//*.d.ts",],
}"""
        )
        data = read_json_with_comments(path)
        assert data == {"compilerOptions": {"strict": True}, "include": ["app/**/*", "types//*.d.ts"]}

    def test_escaped_quotes_in_strings(self, tmp_path: Path) -> None:
        """Test that comment markers inside strings are kept."""
        path = tmp_path / "tsconfig.json"
        path.write_text('{"a": "say \\"hi\\" // not a comment"}')
        assert read_json_with_comments(path) == {"a": 'say "hi" // not a comment'}

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Test that malformed JSON raises ConfigError."""
        path = tmp_path / "tsconfig.json"
        path.write_text("{ nope")
        with pytest.raises(ConfigError, match="is not valid JSON"):
            read_json_with_comments(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="file not found"):
            read_json_with_comments(tmp_path / "missing.json")

    def test_non_object(self, tmp_path: Path) -> None:
        """Test that a top-level value other than an object is rejected."""
        path = tmp_path / "tsconfig.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError, match="must contain a JSON object"):
            read_json_with_comments(path)


class TestConfigLoader:
    """Tests for finding and loading configuration scopes."""

    def test_finds_nearest_config(self, tmp_path: Path) -> None:
        """Test that the nearest enclosing config with a lens section is found."""
        _write(tmp_path / "tsconfig.json", {"lens": {"environment": "ember-loose"}})
        loader = ConfigLoader()
        scope = loader.config_for_file(tmp_path / "app" / "components" / "foo.ts")
        assert scope is not None
        assert scope.config_path == (tmp_path / "tsconfig.json").absolute()
        assert scope.root_dir == tmp_path.absolute()
        assert scope.environment.names == ["ember-loose"]
        assert scope.check_standalone_templates is True
        assert scope.directive_kinds == frozenset({"ignore", "expect-error"})

    def test_configs_without_lens_section_are_skipped(self, tmp_path: Path) -> None:
        """Test that configs without a lens section are passed over."""
        _write(tmp_path / "tsconfig.json", {"lens": {"environment": "ember-loose"}})
        _write(tmp_path / "packages" / "a" / "tsconfig.json", {"compilerOptions": {}})
        scope = ConfigLoader().config_for_file(tmp_path / "packages" / "a" / "index.ts")
        assert scope is not None
        assert scope.config_path == (tmp_path / "tsconfig.json").absolute()

    def test_longest_path_wins_by_default(self, tmp_path: Path) -> None:
        """Test that the most specific config wins by default."""
        _write(tmp_path / "tsconfig.json", {"lens": {"environment": "ember-loose"}})
        nested = _write(tmp_path / "sub" / "tsconfig.json", {"lens": {"environment": "glimmerx"}})
        scope = ConfigLoader().config_for_file(tmp_path / "sub" / "index.ts")
        assert scope is not None
        assert scope.config_path == nested.absolute()

    def test_precedence_is_overridable(self, tmp_path: Path) -> None:
        """Test that a custom precedence picks among candidate configs."""
        root = _write(tmp_path / "tsconfig.json", {"lens": {"environment": "ember-loose"}})
        _write(tmp_path / "sub" / "tsconfig.json", {"lens": {"environment": "glimmerx"}})

        def shortest(candidates: Sequence[Path]) -> Path:
            return min(candidates, key=lambda candidate: len(str(candidate)))

        scope = ConfigLoader(precedence=shortest).config_for_file(tmp_path / "sub" / "index.ts")
        assert scope is not None
        assert scope.config_path == root.absolute()

    def test_load_is_memoized_until_invalidated(self, tmp_path: Path) -> None:
        """Test that scopes are memoized per config path until invalidated."""
        config = _write(tmp_path / "tsconfig.json", {"lens": {"environment": "ember-loose"}})
        loader = ConfigLoader()
        first = loader.load(config)
        assert loader.load(config) is first
        loader.invalidate()
        assert loader.load(config) is not first

    def test_no_config(self, tmp_path: Path) -> None:
        """Test that files outside any configured project have no scope."""
        _write(tmp_path / "tsconfig.json", {"compilerOptions": {}})
        assert ConfigLoader().find_config_path(tmp_path / "foo.ts") is None

    def test_transform_options(self, tmp_path: Path) -> None:
        """Test that transform, directive and standalone options are read."""
        _write(
            tmp_path / "tsconfig.json",
            {
                "lens": {
                    "environment": "ember-loose",
                    "checkStandaloneTemplates": False,
                    "transform": {"include": ["app/**"], "exclude": ["app/legacy/**"]},
                    "directives": ["expect-error"],
                }
            },
        )
        scope = ConfigLoader().config_for_file(tmp_path / "app" / "foo.ts")
        assert scope is not None
        assert scope.check_standalone_templates is False
        assert scope.directive_kinds == frozenset({"expect-error"})
        assert scope.includes_file(tmp_path / "app" / "components" / "foo.hbs")
        assert not scope.includes_file(tmp_path / "app" / "legacy" / "foo.hbs")
        assert not scope.includes_file(tmp_path / "tests" / "foo.ts")
        assert not scope.includes_file("/elsewhere/foo.ts")

    def test_invalid_lens_section(self, tmp_path: Path) -> None:
        """Test that an invalid lens section raises ConfigError."""
        _write(tmp_path / "tsconfig.json", {"lens": {"environment": "ember-loose", "bogus": 1}})
        with pytest.raises(ConfigError, match="Config:"):
            ConfigLoader().config_for_file(tmp_path / "foo.ts")

    def test_unknown_environment(self, tmp_path: Path) -> None:
        """Test that an unknown environment name raises ConfigError."""
        _write(tmp_path / "tsconfig.json", {"lens": {"environment": "nope"}})
        with pytest.raises(ConfigError, match="unknown environment"):
            ConfigLoader().config_for_file(tmp_path / "foo.ts")


class TestExtends:
    """Tests for configs that extend other configs."""

    def test_relative_extends(self, tmp_path: Path) -> None:
        """Test that a relative extends inherits the base lens section."""
        _write(tmp_path / "base.json", {"lens": {"environment": "glimmerx"}})
        _write(tmp_path / "tsconfig.json", {"extends": "./base"})
        scope = ConfigLoader().config_for_file(tmp_path / "foo.ts")
        assert scope is not None
        assert scope.environment.names == ["glimmerx"]

    def test_own_settings_override_base(self, tmp_path: Path) -> None:
        """Test that a config's own settings override its base."""
        _write(tmp_path / "base.json", {"lens": {"environment": "glimmerx", "checkStandaloneTemplates": False}})
        _write(tmp_path / "tsconfig.json", {"extends": "./base.json", "lens": {"environment": "ember-loose"}})
        scope = ConfigLoader().config_for_file(tmp_path / "foo.ts")
        assert scope is not None
        assert scope.environment.names == ["ember-loose"]
        assert scope.check_standalone_templates is False

    def test_package_extends(self, tmp_path: Path) -> None:
        """Test that extends resolves packages from node_modules."""
        _write(tmp_path / "node_modules" / "@company" / "tsconfig" / "base.json", {"lens": {"environment": "glimmerx"}})
        _write(tmp_path / "tsconfig.json", {"extends": "@company/tsconfig/base.json"})
        scope = ConfigLoader().config_for_file(tmp_path / "foo.ts")
        assert scope is not None
        assert scope.environment.names == ["glimmerx"]

    def test_transform_in_extended_config_is_rejected(self, tmp_path: Path) -> None:
        """Test that transform options are not allowed in an extended config."""
        _write(tmp_path / "base.json", {"lens": {"environment": "glimmerx", "transform": {"include": ["**/*"]}}})
        _write(tmp_path / "tsconfig.json", {"extends": "./base.json"})
        with pytest.raises(ConfigError, match="'transform' may not be set"):
            ConfigLoader().config_for_file(tmp_path / "foo.ts")

    def test_missing_base(self, tmp_path: Path) -> None:
        """Test that an unresolvable extends raises ConfigError."""
        _write(tmp_path / "tsconfig.json", {"extends": "./missing.json"})
        with pytest.raises(ConfigError, match="cannot find './missing.json'"):
            ConfigLoader().config_for_file(tmp_path / "foo.ts")

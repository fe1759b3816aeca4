"""Project configuration read from the ``"lens"`` key of ``tsconfig.json``/``jsconfig.json``."""

from __future__ import annotations

import functools
import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from template_lens.core.environment import Environment
from template_lens.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("tsconfig.json", "jsconfig.json")

DirectiveName = Literal["ignore", "expect-error"]
Precedence = Callable[[Sequence[Path]], Path]

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


class TransformOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    include: list[str] = Field(default_factory=lambda: ["**/*"])
    exclude: list[str] = Field(default_factory=lambda: ["**/node_modules/**"])


class LensConfigInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    environment: str | list[str] | dict[str, Any]
    check_standalone_templates: bool = Field(default=True, alias="checkStandaloneTemplates")
    transform: TransformOptions = Field(default_factory=TransformOptions)
    directives: list[DirectiveName] = Field(default_factory=lambda: ["ignore", "expect-error"])


@dataclass(frozen=True, eq=False)
class ConfigScope:
    config_path: Path
    root_dir: Path
    environment: Environment
    check_standalone_templates: bool = True
    include: tuple[str, ...] = ("**/*",)
    exclude: tuple[str, ...] = ("**/node_modules/**",)
    directive_kinds: frozenset[str] = frozenset({"ignore", "expect-error"})

    def includes_file(self, path: str | Path) -> bool:
        try:
            relative = Path(path).relative_to(self.root_dir).as_posix()
        except ValueError:
            return False
        if not any(glob_matches(relative, pattern) for pattern in self.include):
            return False
        return not any(glob_matches(relative, pattern) for pattern in self.exclude)


def glob_matches(relative_path: str, pattern: str) -> bool:
    """Match a POSIX relative path against a glob; only ``**`` crosses ``/``."""
    return _compile_glob(pattern).fullmatch(relative_path) is not None


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            # Zero or more whole directories.
            parts.append("(?:.*/)?")
            index += 3
        elif pattern.startswith("**", index):
            parts.append(".*")
            index += 2
        elif pattern[index] == "*":
            parts.append("[^/]*")
            index += 1
        elif pattern[index] == "?":
            parts.append("[^/]")
            index += 1
        else:
            parts.append(re.escape(pattern[index]))
            index += 1
    return re.compile("".join(parts))


def is_config_path(path: str | Path) -> bool:
    return Path(path).name in CONFIG_FILENAMES


def longest_path(candidates: Sequence[Path]) -> Path:
    return max(candidates, key=lambda candidate: len(str(candidate)))


def read_json_with_comments(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Config: file not found: {path}") from None
    try:
        data = json.loads(_TRAILING_COMMA.sub(r"\1", _strip_comments(text)))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config: {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config: {path} must contain a JSON object")
    return data


def _strip_comments(text: str) -> str:
    out: list[str] = []
    index = 0
    in_string = False
    while index < len(text):
        char = text[index]
        if in_string:
            out.append(char)
            if char == "\\" and index + 1 < len(text):
                out.append(text[index + 1])
                index += 2
                continue
            if char == '"':
                in_string = False
            index += 1
        elif char == '"':
            in_string = True
            out.append(char)
            index += 1
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            index = len(text) if newline == -1 else newline
        elif text.startswith("/*", index):
            close = text.find("*/", index + 2)
            index = len(text) if close == -1 else close + 2
        else:
            out.append(char)
            index += 1
    return "".join(out)


class ConfigLoader:
    """Finds and memoizes configuration scopes, one per resolved config path.

    ``precedence`` picks among several configuration files that apply to the
    same file; by default the longest (most specific) path wins.
    """

    def __init__(self, precedence: Precedence = longest_path) -> None:
        self.precedence = precedence
        self._scopes: dict[Path, ConfigScope] = {}
        self._sections: dict[Path, dict[str, Any] | None] = {}

    def find_config_path(self, path: str | Path) -> Path | None:
        start = Path(path).absolute()
        directory = start if start.is_dir() else start.parent
        candidates = [
            candidate
            for current in (directory, *directory.parents)
            for candidate in (current / name for name in CONFIG_FILENAMES)
            if candidate.is_file() and self.lens_section(candidate) is not None
        ]
        if not candidates:
            return None
        return self.precedence(candidates)

    def config_for_file(self, path: str | Path) -> ConfigScope | None:
        config_path = self.find_config_path(path)
        return None if config_path is None else self.load(config_path)

    def load(self, config_path: str | Path) -> ConfigScope:
        resolved = Path(config_path).absolute()
        scope = self._scopes.get(resolved)
        if scope is None:
            scope = self._build(resolved)
            self._scopes[resolved] = scope
            logger.debug("Loaded configuration %s (environment %s)", resolved, scope.environment.names)
        return scope

    def invalidate(self) -> None:
        self._scopes.clear()
        self._sections.clear()

    def lens_section(self, config_path: Path, *, _seen: frozenset[Path] = frozenset()) -> dict[str, Any] | None:
        if not _seen and config_path in self._sections:
            return self._sections[config_path]

        data = read_json_with_comments(config_path)
        own = data.get("lens")
        if own is not None and not isinstance(own, dict):
            raise ConfigError(f"Config: 'lens' in {config_path} must be an object")

        base = None
        extends = data.get("extends")
        if isinstance(extends, str):
            base_path = _resolve_extends(config_path, extends)
            if base_path is None:
                raise ConfigError(f"Config: cannot find '{extends}' extended by {config_path}")
            if base_path not in _seen:
                base = self.lens_section(base_path, _seen=_seen | {config_path})
            if base is not None and "transform" in base:
                raise ConfigError(f"Config: 'transform' may not be set in a configuration extended by {config_path}")

        section = own if base is None else {**base, **(own or {})}
        if not _seen:
            self._sections[config_path] = section
        return section

    def _build(self, config_path: Path) -> ConfigScope:
        section = self.lens_section(config_path)
        if section is None:
            raise ConfigError(f"Config: no 'lens' section found in {config_path}")
        try:
            parsed = LensConfigInput.model_validate(section)
        except ValidationError as exc:
            raise ConfigError(f"Config: {exc}") from exc
        return ConfigScope(
            config_path=config_path,
            root_dir=config_path.parent,
            environment=Environment.load(parsed.environment),
            check_standalone_templates=parsed.check_standalone_templates,
            include=tuple(parsed.transform.include),
            exclude=tuple(parsed.transform.exclude),
            directive_kinds=frozenset(parsed.directives),
        )


def _resolve_extends(config_path: Path, extends: str) -> Path | None:
    if extends.startswith("."):
        candidates = [config_path.parent / extends]
    else:
        candidates = [directory / "node_modules" / extends for directory in config_path.parents]
    for candidate in candidates:
        for option in (candidate, candidate.with_name(candidate.name + ".json")):
            if option.is_file():
                return option.absolute()
    return None

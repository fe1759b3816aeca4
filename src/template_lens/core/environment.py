"""Template environments: where templates live and which types check them.

An environment says which imported tags mark inline templates, what types
module their generated code is checked against, and which free identifiers
resolve to that module's globals instead of the enclosing scope.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from template_lens.core.script import ImportBinding
from template_lens.errors import ConfigError

_EMBER_KEYWORDS = [
    "action",
    "component",
    "concat",
    "debugger",
    "each",
    "each-in",
    "fn",
    "get",
    "has-block",
    "has-block-params",
    "hash",
    "helper",
    "if",
    "in-element",
    "let",
    "log",
    "modifier",
    "mount",
    "mut",
    "on",
    "outlet",
    "unbound",
    "unique-id",
    "unless",
    "with",
    "yield",
]


class TagConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    types_source: str = Field(alias="typesSource")
    globals: list[str] | None = None


class TemplateConfig(BaseModel):
    """Companion and standalone ``.hbs`` templates."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    types_source: str = Field(alias="typesSource")
    globals: list[str] | None = None


class EmbeddedTemplateConfig(BaseModel):
    """``<template>`` regions inside script files with one of ``extensions``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    types_source: str = Field(alias="typesSource")
    globals: list[str] | None = None
    extensions: list[str] = Field(default_factory=lambda: [".gts"])


class EnvironmentDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    tags: dict[str, dict[str, TagConfig]] = Field(default_factory=dict)
    template: TemplateConfig | None = None
    embedded: EmbeddedTemplateConfig | None = None


BUILTIN_ENVIRONMENTS: dict[str, EnvironmentDefinition] = {
    "glimmerx": EnvironmentDefinition(
        tags={
            "@glimmerx/component": {
                "hbs": TagConfig(types_source="@template-lens/environment-glimmerx/-private/dsl"),
            },
            "@template-lens/environment-glimmerx/component": {
                "hbs": TagConfig(types_source="@template-lens/environment-glimmerx/-private/dsl"),
            },
        }
    ),
    "ember-loose": EnvironmentDefinition(
        template=TemplateConfig(types_source="@template-lens/environment-ember-loose/-private/dsl"),
    ),
    "ember-template-imports": EnvironmentDefinition(
        embedded=EmbeddedTemplateConfig(
            types_source="@template-lens/environment-ember-template-imports/-private/dsl",
            globals=list(_EMBER_KEYWORDS),
        ),
    ),
}


class Environment:
    def __init__(self, names: list[str], definition: EnvironmentDefinition) -> None:
        self.names = names
        self.definition = definition

    def __repr__(self) -> str:
        return f"Environment({self.names!r})"

    @classmethod
    def load(cls, value: str | list[str] | dict[str, Any]) -> Environment:
        """Build an environment from a config value.

        ``value`` is a built-in name, a list of built-in names, or a mapping of
        names to either ``None`` (built-in) or an inline definition.
        """
        if isinstance(value, str):
            entries: dict[str, Any] = {value: None}
        elif isinstance(value, list):
            entries = {name: None for name in value}
        else:
            entries = dict(value)

        definitions = []
        for name, inline in entries.items():
            if inline:
                try:
                    definitions.append(EnvironmentDefinition.model_validate(inline))
                except ValidationError as exc:
                    raise ConfigError(f"Config: invalid definition for environment '{name}': {exc}") from exc
            elif name in BUILTIN_ENVIRONMENTS:
                definitions.append(BUILTIN_ENVIRONMENTS[name])
            else:
                raise ConfigError(f"Config: unknown environment '{name}'")
        return cls(list(entries), _merge(definitions))

    @property
    def template_config(self) -> TemplateConfig | None:
        return self.definition.template

    @property
    def embedded_config(self) -> EmbeddedTemplateConfig | None:
        return self.definition.embedded

    def tag_for(self, binding: ImportBinding) -> TagConfig | None:
        return self.definition.tags.get(binding.source, {}).get(binding.specifier)

    def has_tags(self) -> bool:
        return any(self.definition.tags.values())

    def is_embedded_script(self, path: str | Path) -> bool:
        embedded = self.definition.embedded
        return embedded is not None and Path(path).suffix in embedded.extensions


def _merge(definitions: list[EnvironmentDefinition]) -> EnvironmentDefinition:
    tags: dict[str, dict[str, TagConfig]] = {}
    template = None
    embedded = None
    for definition in definitions:
        for source, specifiers in definition.tags.items():
            tags.setdefault(source, {}).update(specifiers)
        template = definition.template or template
        embedded = definition.embedded or embedded
    return EnvironmentDefinition(tags=tags, template=template, embedded=embedded)

"""Replacement spans for templates that live inside a script file."""

from __future__ import annotations

from dataclasses import dataclass, field

from template_lens.core.environment import Environment
from template_lens.core.script import ClassInfo, EmbeddedTemplate, ScriptAnalysis, TaggedTemplate
from template_lens.template.emitter import (
    DIRECTIVE_KINDS,
    EmitOptions,
    EmittedDirective,
    TemplateResult,
    template_to_typescript,
)
from template_lens.template.mapping import MappingTree
from template_lens.transform.module import Range, SourceFile, TransformError

CLASS_MEMBER_PREFIX = "static { "
CLASS_MEMBER_SUFFIX = " }"
DEFAULT_EXPORT_PREFIX = "export default "


@dataclass
class PartialSpan:
    """Generated code waiting to be spliced into the rebuilt module.

    ``replaced_length`` script characters starting at ``insertion_point`` are
    replaced by ``transformed_source``; the template itself starts at
    ``original_start`` in ``original_file``.
    """

    original_file: SourceFile
    original_start: int
    original_length: int
    insertion_point: int
    replaced_length: int
    transformed_source: str
    mapping: MappingTree
    mapping_offset: int = 0
    directives: list[EmittedDirective] = field(default_factory=list)


@dataclass
class SpansResult:
    partial_spans: list[PartialSpan] = field(default_factory=list)
    errors: list[TransformError] = field(default_factory=list)

    def extend(self, other: SpansResult) -> None:
        self.partial_spans.extend(other.partial_spans)
        self.errors.extend(other.errors)


def calculate_inline_spans(
    script: SourceFile,
    analysis: ScriptAnalysis,
    environment: Environment,
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS,
) -> SpansResult:
    result = SpansResult()
    for tagged in analysis.tagged_templates:
        result.extend(calculate_tagged_template_span(script, tagged, analysis, environment, directive_kinds))
    for embedded in analysis.embedded_templates:
        result.extend(calculate_embedded_template_span(script, embedded, environment, directive_kinds))
    return result


def calculate_tagged_template_span(
    script: SourceFile,
    tagged: TaggedTemplate,
    analysis: ScriptAnalysis,
    environment: Environment,
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS,
) -> SpansResult:
    result = SpansResult()
    binding = analysis.imports.get(tagged.tag)
    tag_config = environment.tag_for(binding) if binding is not None else None
    if tag_config is None:
        return result

    if tagged.has_substitutions:
        result.errors.append(
            TransformError("Templates may not contain ${} interpolations", script, tagged.range)
        )
        return result

    # Pad so template offsets equal script offsets relative to the tag.
    template = " " * len(tagged.tag) + " " + tagged.contents + " "
    context_type, type_params = _context_for(tagged.container)
    if tagged.container is not None and tagged.container.name is None:
        result.errors.append(TransformError("Classes containing templates must have a name", script, tagged.range))

    emitted = template_to_typescript(
        template,
        EmitOptions(
            types_path=tag_config.types_source,
            globals=_globals(tag_config.globals),
            preamble=(f"{tagged.tag};",),
            type_params=type_params,
            context_type=context_type,
            directive_kinds=directive_kinds,
        ),
    )
    return _collect(
        result,
        emitted,
        script,
        template_range=tagged.range,
        transformed_prefix="",
        transformed_suffix="",
    )


def calculate_embedded_template_span(
    script: SourceFile,
    embedded: EmbeddedTemplate,
    environment: Environment,
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS,
) -> SpansResult:
    result = SpansResult()
    config = environment.embedded_config
    if config is None:
        return result

    region = embedded.range
    inner = embedded.contents_range
    template = (
        " " * (inner.start - region.start)
        + script.contents[inner.start : inner.end]
        + " " * (region.end - inner.end)
    )

    prefix = suffix = ""
    context_type: str | None = None
    type_params = ""
    if embedded.placement == "class-member":
        prefix, suffix = CLASS_MEMBER_PREFIX, CLASS_MEMBER_SUFFIX
        context_type, type_params = _context_for(embedded.container)
        if embedded.container is not None and embedded.container.name is None:
            result.errors.append(TransformError("Classes containing templates must have a name", script, region))
    elif embedded.placement == "statement":
        prefix = DEFAULT_EXPORT_PREFIX

    emitted = template_to_typescript(
        template,
        EmitOptions(
            types_path=config.types_source,
            globals=_globals(config.globals),
            type_params=type_params,
            context_type=context_type,
            directive_kinds=directive_kinds,
        ),
    )
    return _collect(
        result,
        emitted,
        script,
        template_range=region,
        transformed_prefix=prefix,
        transformed_suffix=suffix,
    )


def errors_from(emitted: TemplateResult, source: SourceFile, origin: int) -> list[TransformError]:
    return [
        TransformError(error.message, source, error.location.shifted(origin), error.kind) for error in emitted.errors
    ]


def _collect(
    result: SpansResult,
    emitted: TemplateResult,
    script: SourceFile,
    *,
    template_range: Range,
    transformed_prefix: str,
    transformed_suffix: str,
) -> SpansResult:
    result.errors.extend(errors_from(emitted, script, template_range.start))
    if emitted.code is None or emitted.mapping is None:
        return result
    result.partial_spans.append(
        PartialSpan(
            original_file=script,
            original_start=template_range.start,
            original_length=template_range.length,
            insertion_point=template_range.start,
            replaced_length=template_range.length,
            transformed_source=transformed_prefix + emitted.code + transformed_suffix,
            mapping=emitted.mapping,
            mapping_offset=len(transformed_prefix),
            directives=emitted.directives,
        )
    )
    return result


def _context_for(container: ClassInfo | None) -> tuple[str | None, str]:
    if container is None or container.name is None:
        return None, ""
    return container.context_type, container.type_params


def _globals(names: list[str] | None) -> tuple[str, ...] | None:
    return None if names is None else tuple(names)

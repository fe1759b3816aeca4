"""Assemble a script and its templates into one :class:`TransformedModule`."""

from __future__ import annotations

import logging
from pathlib import PurePath

from template_lens.core.environment import Environment
from template_lens.core.script import ScriptAnalysis, analyze_script
from template_lens.template.emitter import DIRECTIVE_KINDS, EmitOptions, template_to_typescript
from template_lens.template.syntax import Template
from template_lens.transform.inlining import PartialSpan, SpansResult, calculate_inline_spans, errors_from
from template_lens.transform.module import (
    CorrelatedSpan,
    Directive,
    SourceFile,
    TransformedModule,
    TransformError,
)

logger = logging.getLogger(__name__)


def rewrite_module(
    script: SourceFile,
    environment: Environment,
    *,
    template: SourceFile | None = None,
    analysis: ScriptAnalysis | None = None,
    template_ast: Template | None = None,
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS,
) -> TransformedModule | None:
    """Merge ``script`` with its inline templates and optional companion ``template``.

    Returns ``None`` when the script holds nothing to transform. When any
    template fails to parse, the module is returned unchanged alongside one
    error per malformed template.
    """
    if analysis is None:
        analysis = analyze_script(script.contents, embedded_templates=environment.is_embedded_script(script.filename))

    result = calculate_inline_spans(script, analysis, environment, directive_kinds)
    if template is not None:
        result.extend(
            calculate_companion_span(
                script, template, analysis, environment, directive_kinds, template_ast=template_ast
            )
        )

    if not result.partial_spans and not result.errors:
        return None

    if any(error.kind == "syntax" for error in result.errors):
        logger.debug("Not transforming %s: template syntax errors", script.filename)
        fallback = {template.filename: 0} if template is not None else {}
        return TransformedModule(
            transformed_contents=script.contents,
            errors=result.errors,
            directives=[],
            correlated_spans=[_identity(script, 0, len(script.contents), 0)],
            fallback_offsets=fallback,
        )

    return _assemble(script, result)


def rewrite_standalone_template(
    template: SourceFile,
    environment: Environment,
    *,
    template_ast: Template | None = None,
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS,
) -> TransformedModule | None:
    """Transform a template with no backing script into a module of its own."""
    config = environment.template_config
    if config is None:
        return None

    emitted = template_to_typescript(
        template.contents,
        EmitOptions(
            types_path=config.types_source,
            globals=None if config.globals is None else tuple(config.globals),
            directive_kinds=directive_kinds,
        ),
        template=template_ast,
    )
    errors = errors_from(emitted, template, 0)
    if emitted.code is None or emitted.mapping is None:
        return TransformedModule(
            transformed_contents=template.contents,
            errors=errors,
            directives=[],
            correlated_spans=[_identity(template, 0, len(template.contents), 0)],
        )

    empty_script = SourceFile(filename=template.filename, contents="", kind="script")
    result = SpansResult(
        partial_spans=[
            PartialSpan(
                original_file=template,
                original_start=0,
                original_length=len(template.contents),
                insertion_point=0,
                replaced_length=0,
                transformed_source=emitted.code + ";\n",
                mapping=emitted.mapping,
                directives=emitted.directives,
            )
        ],
        errors=errors,
    )
    return _assemble(empty_script, result)


def calculate_companion_span(
    script: SourceFile,
    template: SourceFile,
    analysis: ScriptAnalysis,
    environment: Environment,
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS,
    *,
    template_ast: Template | None = None,
) -> SpansResult:
    result = SpansResult()
    config = environment.template_config
    if config is None:
        return result

    export = analysis.default_export
    target = export.target if export is not None else None
    context_type: str | None = None
    type_params = ""
    insertion_point = len(script.contents)
    prefix = "\n"

    if export is not None and target is not None:
        if target.name is None:
            result.errors.append(
                TransformError("Classes with an associated template must have a name", script, export.range)
            )
        else:
            context_type = target.context_type
            type_params = target.type_params
            insertion_point = target.closing_brace
            prefix = f"protected static '~template:{target.name}' = "
    elif export is not None:
        context_type = f"typeof import('./{PurePath(script.filename).stem}').default"

    emitted = template_to_typescript(
        template.contents,
        EmitOptions(
            types_path=config.types_source,
            globals=None if config.globals is None else tuple(config.globals),
            type_params=type_params,
            context_type=context_type,
            directive_kinds=directive_kinds,
        ),
        template=template_ast,
    )
    result.errors.extend(errors_from(emitted, template, 0))
    if emitted.code is None or emitted.mapping is None:
        return result

    result.partial_spans.append(
        PartialSpan(
            original_file=template,
            original_start=0,
            original_length=len(template.contents),
            insertion_point=insertion_point,
            replaced_length=0,
            transformed_source=prefix + emitted.code + ";\n",
            mapping=emitted.mapping,
            mapping_offset=len(prefix),
            directives=emitted.directives,
        )
    )
    return result


def _assemble(script: SourceFile, result: SpansResult) -> TransformedModule:
    chunks: list[str] = []
    spans: list[CorrelatedSpan] = []
    directives: list[Directive] = []
    cursor = 0
    offset = 0

    for partial in sorted(result.partial_spans, key=lambda p: p.insertion_point):
        if partial.insertion_point > cursor:
            gap = script.contents[cursor : partial.insertion_point]
            spans.append(_identity(script, cursor, len(gap), offset))
            chunks.append(gap)
            offset += len(gap)

        base = offset + partial.mapping_offset
        spans.append(
            CorrelatedSpan(
                original_file=partial.original_file,
                original_start=partial.original_start,
                original_length=partial.original_length,
                transformed_start=offset,
                transformed_length=len(partial.transformed_source),
                mapping=partial.mapping,
                mapping_offset=partial.mapping_offset,
            )
        )
        directives.extend(
            Directive(
                kind=directive.kind,
                source=partial.original_file,
                location=directive.location.shifted(partial.original_start),
                area_of_effect=directive.area_of_effect.shifted(base),
            )
            for directive in partial.directives
        )
        chunks.append(partial.transformed_source)
        offset += len(partial.transformed_source)
        cursor = partial.insertion_point + partial.replaced_length

    if cursor < len(script.contents):
        tail = script.contents[cursor:]
        spans.append(_identity(script, cursor, len(tail), offset))
        chunks.append(tail)

    return TransformedModule(
        transformed_contents="".join(chunks),
        errors=result.errors,
        directives=directives,
        correlated_spans=spans,
    )


def _identity(source: SourceFile, start: int, length: int, transformed_start: int) -> CorrelatedSpan:
    return CorrelatedSpan(
        original_file=source,
        original_start=start,
        original_length=length,
        transformed_start=transformed_start,
        transformed_length=length,
    )

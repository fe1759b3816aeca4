from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Literal, NamedTuple

from template_lens.template.mapping import MappingTree

SourceKind = Literal["script", "template"]
DirectiveKind = Literal["ignore", "expect-error"]
TransformErrorKind = Literal["syntax", "structural"]


@dataclass(frozen=True)
class Range:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end

    def shifted(self, delta: int) -> Range:
        return Range(self.start + delta, self.end + delta)


@dataclass(frozen=True)
class SourceFile:
    filename: str
    contents: str
    kind: SourceKind = "script"


@dataclass(frozen=True)
class Directive:
    kind: DirectiveKind
    source: SourceFile
    location: Range
    area_of_effect: Range


@dataclass(frozen=True)
class TransformError:
    message: str
    source: SourceFile
    location: Range
    kind: TransformErrorKind = "structural"


@dataclass(frozen=True)
class CorrelatedSpan:
    """Links a range of an original file to a range of the synthesized module.

    Identity spans carry no mapping. Templated spans carry the mapping tree of
    the template they were generated from, in template-local coordinates:
    ``original_start`` is the template's start in ``original_file`` and
    ``transformed_start + mapping_offset`` is where the tree's root begins.
    """

    original_file: SourceFile
    original_start: int
    original_length: int
    transformed_start: int
    transformed_length: int
    mapping: MappingTree | None = None
    mapping_offset: int = 0

    @property
    def original_end(self) -> int:
        return self.original_start + self.original_length

    @property
    def transformed_end(self) -> int:
        return self.transformed_start + self.transformed_length


class OriginalLocation(NamedTuple):
    source: SourceFile
    offset: int


class OriginalRange(NamedTuple):
    source: SourceFile
    range: Range


@dataclass
class TransformedModule:
    """A script and its templates merged into a single synthesized document.

    All offset translation is a binary search over span boundaries followed,
    inside templated spans, by a descent through the mapping tree.
    """

    transformed_contents: str
    errors: list[TransformError]
    directives: list[Directive]
    correlated_spans: list[CorrelatedSpan]
    fallback_offsets: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._transformed_starts = [span.transformed_start for span in self.correlated_spans]
        self._spans_by_file: dict[str, list[CorrelatedSpan]] = {}
        for span in self.correlated_spans:
            self._spans_by_file.setdefault(span.original_file.filename, []).append(span)
        for spans in self._spans_by_file.values():
            spans.sort(key=lambda s: (s.original_start, s.original_length))
        self._original_starts = {
            filename: [span.original_start for span in spans] for filename, spans in self._spans_by_file.items()
        }

    @property
    def sources(self) -> list[SourceFile]:
        seen: dict[str, SourceFile] = {}
        for span in self.correlated_spans:
            seen.setdefault(span.original_file.filename, span.original_file)
        return list(seen.values())

    def get_original_offset(self, transformed_offset: int) -> OriginalLocation:
        span = self._span_at_transformed(transformed_offset)
        if span is None:
            source = self.correlated_spans[0].original_file if self.correlated_spans else _EMPTY
            return OriginalLocation(source, transformed_offset)

        delta = transformed_offset - span.transformed_start
        if span.mapping is None:
            return OriginalLocation(span.original_file, span.original_start + delta)

        local = transformed_offset - span.transformed_start - span.mapping_offset
        record = span.mapping.narrowest_transformed(local)
        if record is None:
            return OriginalLocation(span.original_file, span.original_start)
        return OriginalLocation(span.original_file, span.original_start + _translate(local, record.transformed, record.original))

    def get_original_range(self, start: int, end: int) -> OriginalRange:
        span = self._span_at_transformed(start)
        if span is None:
            location = self.get_original_offset(start)
            return OriginalRange(location.source, Range(location.offset, location.offset + (end - start)))

        if span.mapping is None:
            original_start = span.original_start + (start - span.transformed_start)
            original_end = original_start + (min(end, span.transformed_end) - start)
            return OriginalRange(span.original_file, Range(original_start, original_end))

        base = span.transformed_start + span.mapping_offset
        record = span.mapping.narrowest_enclosing_transformed(start - base, end - base)
        if record is None:
            return OriginalRange(span.original_file, Range(span.original_start, span.original_end))
        if record.original.length == record.transformed.length and record.original.length > 0:
            local_start = _translate(start - base, record.transformed, record.original)
            local_end = local_start + (end - start)
            return OriginalRange(span.original_file, Range(local_start, local_end).shifted(span.original_start))
        return OriginalRange(span.original_file, record.original.shifted(span.original_start))

    def get_transformed_offset(self, original_filename: str, original_offset: int) -> int:
        span = self._span_at_original(original_filename, original_offset)
        if span is None:
            if original_filename in self.fallback_offsets:
                return self.fallback_offsets[original_filename]
            return original_offset

        delta = original_offset - span.original_start
        if span.mapping is None:
            return span.transformed_start + delta

        base = span.transformed_start + span.mapping_offset
        record = span.mapping.narrowest_original(delta)
        if record is None:
            return span.transformed_start
        return base + _translate(delta, record.original, record.transformed)

    def get_transformed_range(self, original_filename: str, start: int, end: int) -> Range:
        transformed_start = self.get_transformed_offset(original_filename, start)
        span = self._span_at_original(original_filename, start)
        if span is not None and span.mapping is not None:
            base = span.transformed_start + span.mapping_offset
            record = span.mapping.narrowest_enclosing_original(start - span.original_start, end - span.original_start)
            if record is not None and record.original.length != record.transformed.length:
                return record.transformed.shifted(base)
        return Range(transformed_start, transformed_start + (end - start))

    def to_debug_string(self) -> str:
        lines = ["TransformedModule"]
        for span in self.correlated_spans:
            if span.mapping is None:
                continue
            original = span.original_file.contents[span.original_start : span.original_end]
            transformed = self.transformed_contents[span.transformed_start : span.transformed_end]
            lines.append("")
            lines.append("| Mapping: Template")
            lines.append(_debug_line("| ", "hbs", span.original_start, span.original_end, original))
            lines.append(_debug_line("| ", "ts", span.transformed_start, span.transformed_end, transformed))
            lines.append("|")
            for index in span.mapping.children_of(0):
                self._debug_record(lines, span, index, "| ")
        return "\n".join(lines)

    def _debug_record(self, lines: list[str], span: CorrelatedSpan, index: int, indent: str) -> None:
        assert span.mapping is not None
        record = span.mapping.records[index]
        original = record.original.shifted(span.original_start)
        transformed = record.transformed.shifted(span.transformed_start + span.mapping_offset)
        original_text = span.original_file.contents[original.start : original.end]
        transformed_text = self.transformed_contents[transformed.start : transformed.end]
        lines.append(f"{indent}| Mapping: {record.kind}")
        lines.append(_debug_line(f"{indent}| ", "hbs", original.start, original.end, original_text))
        lines.append(_debug_line(f"{indent}| ", "ts", transformed.start, transformed.end, transformed_text))
        lines.append(f"{indent}|")
        for child in span.mapping.children_of(index):
            self._debug_record(lines, span, child, indent + "| ")

    def _span_at_transformed(self, offset: int) -> CorrelatedSpan | None:
        if not self.correlated_spans:
            return None
        index = bisect.bisect_right(self._transformed_starts, offset) - 1
        if index < 0:
            return None
        span = self.correlated_spans[index]
        if offset > span.transformed_end:
            return None
        return span

    def _span_at_original(self, filename: str, offset: int) -> CorrelatedSpan | None:
        spans = self._spans_by_file.get(filename)
        if not spans:
            return None
        starts = self._original_starts[filename]
        index = bisect.bisect_right(starts, offset) - 1
        if index < 0:
            return None
        span = spans[index]
        if offset > span.original_end:
            return None
        return span


_EMPTY = SourceFile(filename="", contents="")


def _translate(offset: int, source: Range, target: Range) -> int:
    """Carry ``offset`` from one range to its counterpart.

    Ranges of equal length keep the relative position; otherwise the
    counterpart's start is used.
    """
    if source.length == target.length:
        return target.start + min(offset - source.start, target.length)
    return target.start


def _escape(text: str) -> str:
    return text.replace("\n", "\\n")


def _debug_line(prefix: str, label: str, start: int, end: int, text: str) -> str:
    return f"{prefix} {label}({start}:{end}):".ljust(len(prefix) + 15) + _escape(text)

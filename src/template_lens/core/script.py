"""TypeScript module analysis for template discovery.

Built on tree-sitter's TypeScript grammar. ``<template>`` regions in
template-import modules are masked with an identifier of equal length before
parsing so the rest of the module still parses as plain TypeScript; the
identifier's position in the tree tells whether the region is a class member,
a top-level statement or an expression.

All offsets reported here are ``str`` indices into the original contents.
"""

from __future__ import annotations

import bisect
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Literal, cast

from tree_sitter import Node
from tree_sitter_language_pack import SupportedLanguage, get_parser

from template_lens.transform.module import Range

EmbeddedPlacement = Literal["class-member", "statement", "expression"]

_CLASS_TYPES = frozenset({"class_declaration", "abstract_class_declaration", "class"})
_TEMPLATE_REGION = re.compile(r"<template(?:\s[^>]*)?>(.*?)</template\s*>", re.DOTALL)


@dataclass(frozen=True)
class ImportBinding:
    local: str
    specifier: str
    source: str


@dataclass(frozen=True)
class ClassInfo:
    name: str | None
    type_params: str
    type_args: str
    range: Range
    closing_brace: int

    @property
    def context_type(self) -> str | None:
        if self.name is None:
            return None
        return f"{self.name}{self.type_args}"


@dataclass(frozen=True)
class TaggedTemplate:
    tag: str
    tag_range: Range
    range: Range
    contents: str
    has_substitutions: bool
    container: ClassInfo | None


@dataclass(frozen=True)
class EmbeddedTemplate:
    range: Range
    contents_range: Range
    placement: EmbeddedPlacement
    container: ClassInfo | None


@dataclass(frozen=True)
class DefaultExport:
    range: Range
    target: ClassInfo | None


@dataclass(frozen=True)
class ScriptAnalysis:
    imports: dict[str, ImportBinding]
    tagged_templates: tuple[TaggedTemplate, ...]
    embedded_templates: tuple[EmbeddedTemplate, ...]
    default_export: DefaultExport | None


def find_template_regions(contents: str) -> list[tuple[Range, Range]]:
    """Return ``(region, contents)`` ranges of every ``<template>`` block."""
    return [(Range(m.start(), m.end()), Range(m.start(1), m.end(1))) for m in _TEMPLATE_REGION.finditer(contents)]


def analyze_script(contents: str, *, embedded_templates: bool = False) -> ScriptAnalysis:
    regions = find_template_regions(contents) if embedded_templates else []
    masked = contents
    for region, _ in regions:
        masked = masked[: region.start] + "_" * region.length + masked[region.end :]

    parser = get_parser(cast(SupportedLanguage, "typescript"))
    source_bytes = masked.encode("utf-8")
    tree = parser.parse(source_bytes)
    analyzer = _Analyzer(masked, source_bytes)
    root = tree.root_node

    embedded = tuple(analyzer.embedded_template(root, region, inner) for region, inner in regions)
    return ScriptAnalysis(
        imports=analyzer.imports(root),
        tagged_templates=tuple(analyzer.tagged_templates(root)),
        embedded_templates=embedded,
        default_export=analyzer.default_export(root),
    )


class _Analyzer:
    def __init__(self, text: str, source_bytes: bytes) -> None:
        self.text = text
        self.source_bytes = source_bytes
        self._char_starts: list[int] | None = None
        if not text.isascii():
            starts = [0]
            for char in text:
                starts.append(starts[-1] + len(char.encode("utf-8")))
            self._char_starts = starts

    def offset(self, byte_offset: int) -> int:
        if self._char_starts is None:
            return byte_offset
        return bisect.bisect_left(self._char_starts, byte_offset)

    def byte_offset(self, offset: int) -> int:
        if self._char_starts is None:
            return offset
        return self._char_starts[offset]

    def range(self, node: Node) -> Range:
        return Range(self.offset(node.start_byte), self.offset(node.end_byte))

    def node_text(self, node: Node) -> str:
        return self.source_bytes[node.start_byte : node.end_byte].decode("utf-8")

    def imports(self, root: Node) -> dict[str, ImportBinding]:
        bindings: dict[str, ImportBinding] = {}
        for statement in root.children:
            if statement.type != "import_statement":
                continue
            source_node = statement.child_by_field_name("source")
            if source_node is None:
                continue
            source = self.node_text(source_node)[1:-1]
            for clause in statement.children:
                if clause.type != "import_clause":
                    continue
                for child in clause.children:
                    if child.type == "identifier":
                        local = self.node_text(child)
                        bindings[local] = ImportBinding(local=local, specifier="default", source=source)
                    elif child.type == "named_imports":
                        for item in child.children:
                            if item.type != "import_specifier":
                                continue
                            name = item.child_by_field_name("name")
                            alias = item.child_by_field_name("alias")
                            if name is None:
                                continue
                            local = self.node_text(alias or name)
                            bindings[local] = ImportBinding(local=local, specifier=self.node_text(name), source=source)
        return bindings

    def tagged_templates(self, root: Node) -> Iterator[TaggedTemplate]:
        for node in _walk(root):
            if node.type != "call_expression":
                continue
            function = node.child_by_field_name("function")
            arguments = node.child_by_field_name("arguments")
            if function is None or arguments is None:
                continue
            if function.type != "identifier" or arguments.type != "template_string":
                continue
            yield TaggedTemplate(
                tag=self.node_text(function),
                tag_range=self.range(function),
                range=self.range(node),
                contents=self.node_text(arguments)[1:-1],
                has_substitutions=any(child.type == "template_substitution" for child in arguments.children),
                container=self.containing_class(node),
            )

    def embedded_template(self, root: Node, region: Range, inner: Range) -> EmbeddedTemplate:
        node = root.descendant_for_byte_range(self.byte_offset(region.start), self.byte_offset(region.end))
        placement: EmbeddedPlacement = "expression"
        if node is not None:
            parent = node.parent
            if node.type == "property_identifier" and parent is not None and parent.type == "public_field_definition":
                placement = "class-member"
            elif (
                node.type == "identifier"
                and parent is not None
                and parent.type == "expression_statement"
                and parent.parent is not None
                and parent.parent.type == "program"
            ):
                placement = "statement"
        container = self.containing_class(node) if node is not None else None
        return EmbeddedTemplate(range=region, contents_range=inner, placement=placement, container=container)

    def default_export(self, root: Node) -> DefaultExport | None:
        classes: dict[str, ClassInfo] = {}
        for statement in root.children:
            if statement.type in _CLASS_TYPES:
                declared = self.class_info(statement)
                if declared.name:
                    classes[declared.name] = declared

        for statement in root.children:
            if statement.type != "export_statement":
                continue
            if not any(child.type == "default" for child in statement.children):
                continue
            target = statement.child_by_field_name("declaration") or statement.child_by_field_name("value")
            info: ClassInfo | None = None
            if target is not None and target.type in _CLASS_TYPES:
                info = self.class_info(target)
            elif target is not None and target.type == "identifier":
                info = classes.get(self.node_text(target))
            return DefaultExport(range=self.range(statement), target=info)
        return None

    def containing_class(self, node: Node) -> ClassInfo | None:
        current = node.parent
        while current is not None:
            if current.type in _CLASS_TYPES:
                return self.class_info(current)
            current = current.parent
        return None

    def class_info(self, node: Node) -> ClassInfo:
        name_node = node.child_by_field_name("name")
        params_node = node.child_by_field_name("type_parameters")
        body = node.child_by_field_name("body")

        type_args = ""
        if params_node is not None:
            names = []
            for param in params_node.children:
                if param.type == "type_parameter":
                    param_name = param.child_by_field_name("name")
                    names.append(self.node_text(param_name) if param_name is not None else self.node_text(param))
            type_args = f"<{', '.join(names)}>"

        node_range = self.range(node)
        return ClassInfo(
            name=self.node_text(name_node) if name_node is not None else None,
            type_params=self.node_text(params_node) if params_node is not None else "",
            type_args=type_args,
            range=node_range,
            closing_brace=(self.offset(body.end_byte) if body is not None else node_range.end) - 1,
        )


def _walk(root: Node) -> Iterator[Node]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))

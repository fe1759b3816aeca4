"""Lower a parsed template into TypeScript.

Each construct becomes one of a closed set of DSL calls on ``χ`` (content,
element, component, modifier and block invocation). Every lowering opens a
mapping record so positions can be carried between the template and the
generated code down to individual identifier segments.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field

from template_lens.errors import TemplateSyntaxError
from template_lens.template.mapping import MappingTree, MappingTreeBuilder
from template_lens.template.parser import parse_template
from template_lens.template.syntax import (
    AttrNode,
    AttrValue,
    BlockStatement,
    BooleanLiteral,
    CommentStatement,
    ConcatStatement,
    ElementNode,
    Expression,
    Hash,
    MustacheCommentStatement,
    MustacheStatement,
    NullLiteral,
    NumberLiteral,
    PathExpression,
    Statement,
    StringLiteral,
    SubExpression,
    Template,
    TextNode,
)
from template_lens.transform.module import DirectiveKind, Range, TransformErrorKind

DSL = "χ"
CONTEXT = "𝚪"
COMPONENT = "𝛄"

DIRECTIVE_KINDS: frozenset[str] = frozenset({"ignore", "expect-error"})

_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
_DIRECTIVE = re.compile(r"^\s*@lens-([\w-]*)")
_BLOCK_ALIASES = {"inverse": "else"}


@dataclass(frozen=True)
class EmitOptions:
    types_path: str
    globals: tuple[str, ...] | None = None
    preamble: tuple[str, ...] = ()
    type_params: str = ""
    context_type: str | None = None
    directive_kinds: frozenset[str] = DIRECTIVE_KINDS


@dataclass(frozen=True)
class EmitError:
    message: str
    location: Range
    kind: TransformErrorKind = "structural"


@dataclass(frozen=True)
class EmittedDirective:
    kind: DirectiveKind
    location: Range
    area_of_effect: Range


@dataclass
class TemplateResult:
    """Generated code with template-local mapping, directives and errors.

    ``code`` and ``mapping`` are ``None`` when the template failed to parse.
    """

    code: str | None
    mapping: MappingTree | None
    directives: list[EmittedDirective] = field(default_factory=list)
    errors: list[EmitError] = field(default_factory=list)


def template_to_typescript(source: str, options: EmitOptions, *, template: Template | None = None) -> TemplateResult:
    """Lower ``source``, or the already parsed ``template`` of it, to TypeScript."""
    if template is None:
        try:
            template = parse_template(source)
        except TemplateSyntaxError as error:
            return TemplateResult(code=None, mapping=None, errors=[EmitError(error.message, error.location, "syntax")])
    return _Emitter(template, options).emit()


class _Emitter:
    def __init__(self, template: Template, options: EmitOptions) -> None:
        self.template = template
        self.options = options
        self.mapping = MappingTreeBuilder()
        self.chunks: list[str] = []
        self.offset = 0
        self.depth = 0
        self.at_line_start = True
        self.scopes: list[frozenset[str]] = []
        self.pending: list[tuple[DirectiveKind, Range]] = []
        self.directives: list[EmittedDirective] = []
        self.errors: list[EmitError] = []

    def emit(self) -> TemplateResult:
        options = self.options
        types = json.dumps(options.types_path)
        root = self.mapping.open(0, len(self.template.source), 0, "Template")

        self.write(f"({{}} as typeof import({types})).template(function{options.type_params}({CONTEXT}")
        if options.context_type is not None:
            self.write(f": import({types}).ResolveContext<{options.context_type}>")
        self.write(f", {DSL}: typeof import({types})) {{")
        self.newline()
        self.depth += 1
        for line in options.preamble:
            self.write(line)
            self.newline()
        self.statements(self.template.body)

        self.indent()
        self.flush_directives()

        self.write(f"{CONTEXT}; {DSL};")
        self.newline()
        self.depth -= 1
        self.write("})")
        if options.context_type is not None:
            self.write(" as unknown")
        self.mapping.close(root, self.offset)

        return TemplateResult(
            code="".join(self.chunks),
            mapping=self.mapping.build(),
            directives=self.directives,
            errors=self.errors,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, text: str) -> None:
        self.indent()
        self.chunks.append(text)
        self.offset += len(text)

    def newline(self) -> None:
        self.chunks.append("\n")
        self.offset += 1
        self.at_line_start = True

    def indent(self) -> None:
        if self.at_line_start:
            padding = "  " * self.depth
            self.chunks.append(padding)
            self.offset += len(padding)
            self.at_line_start = False

    @contextmanager
    def mapped(self, source: Range, kind: str) -> Iterator[None]:
        self.indent()
        index = self.mapping.open(source.start, source.end, self.offset, kind)
        yield
        self.mapping.close(index, self.offset)

    def leaf(self, text: str, source: Range, kind: str) -> None:
        self.indent()
        start = self.offset
        self.write(text)
        self.mapping.leaf(source.start, source.end, start, self.offset, kind)

    def identifier(self, name: str, source: Range) -> None:
        self.leaf(name, source, "Identifier")

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def is_local(self, name: str) -> bool:
        return any(name in scope for scope in self.scopes)

    def is_global(self, name: str) -> bool:
        if self.options.globals is None or not _IDENTIFIER.match(name):
            return True
        return name in self.options.globals

    def is_keyword(self, path: Expression, *names: str) -> bool:
        return (
            isinstance(path, PathExpression)
            and path.kind == "free"
            and not path.tail
            and path.head in names
            and not self.is_local(path.head)
        )

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def statements(self, body: Sequence[Statement]) -> None:
        for statement in body:
            self.statement(statement)

    def nested_statements(self, body: Sequence[Statement]) -> None:
        self.statements(body)
        self.flush_directives()

    def flush_directives(self) -> None:
        # Directives with nothing after them in their body cover an empty area.
        for kind, location in self.pending:
            self.directives.append(EmittedDirective(kind, location, Range(self.offset, self.offset)))
        self.pending.clear()

    def statement(self, node: Statement) -> None:
        if isinstance(node, (TextNode, CommentStatement)):
            return
        if isinstance(node, MustacheCommentStatement):
            self.comment(node)
            return

        self.indent()
        start = self.offset
        pending, self.pending = self.pending, []
        if isinstance(node, MustacheStatement):
            self.content(node)
        elif isinstance(node, BlockStatement):
            self.block(node)
        else:
            self.element(node)

        area = Range(start, self.offset)
        self.directives.extend(EmittedDirective(kind, location, area) for kind, location in pending)
        self.newline()

    def comment(self, node: MustacheCommentStatement) -> None:
        match = _DIRECTIVE.match(node.value)
        if match is None:
            return
        kind = match.group(1)
        if kind in self.options.directive_kinds:
            self.pending.append((kind, node.range))  # type: ignore[arg-type]
        else:
            self.errors.append(EmitError(f"Unknown directive @lens-{kind}", node.range))

    def content(self, node: MustacheStatement) -> None:
        with self.mapped(node.range, "MustacheStatement"):
            if self.is_keyword(node.path, "yield"):
                self.yield_to_block(node)
                return
            self.write(f"{DSL}.emitContent(")
            self.mustache_value(node)
            self.write(");")

    def yield_to_block(self, node: MustacheStatement) -> None:
        name = "default"
        target = node.hash.get("to")
        if target is not None:
            if isinstance(target.value, StringLiteral):
                name = _BLOCK_ALIASES.get(target.value.value, target.value.value)
            else:
                self.errors.append(EmitError("Named block {{yield}}s must have a literal block name", target.range))
        self.write(f"{DSL}.yieldToBlock({CONTEXT}, {json.dumps(name)}")
        for param in node.params:
            self.write(", ")
            self.expression(param)
        self.write(");")

    def block(self, node: BlockStatement) -> None:
        with self.mapped(node.range, "BlockStatement"):
            if self.is_keyword(node.path, "if", "unless"):
                self.if_block(node)
            else:
                self.component_block(node)

    def if_block(self, node: BlockStatement) -> None:
        assert isinstance(node.path, PathExpression)
        negate = node.path.head == "unless"
        self.write("if (!(" if negate else "if (")
        if node.params:
            self.expression(node.params[0])
        else:
            self.errors.append(EmitError(f"{{{{#{node.path.head}}}}} requires a condition", node.path.range))
            self.write("undefined")
        self.write(")) {" if negate else ") {")
        self.body(node.program.body, node.program.block_params)

        inverse = node.inverse
        if inverse is not None:
            chained = inverse.body[0] if len(inverse.body) == 1 else None
            if (
                isinstance(chained, BlockStatement)
                and chained.range == inverse.range
                and self.is_keyword(chained.path, "if", "unless")
            ):
                self.write("} else ")
                with self.mapped(chained.range, "BlockStatement"):
                    self.if_block(chained)
                return
            self.write("} else {")
            self.body(inverse.body, inverse.block_params)
        self.write("}")

    def component_block(self, node: BlockStatement) -> None:
        self.write("{")
        self.newline()
        self.depth += 1
        self.write(f"const {COMPONENT} = {DSL}.emitComponent(")
        self.invoke(node.path, node.params, node.hash)
        self.write(");")
        self.newline()
        self.named_block("default", node.program.block_params, node.program.body)
        self.newline()
        if node.inverse is not None:
            self.named_block("else", node.inverse.block_params, node.inverse.body)
            self.newline()
        self.depth -= 1
        self.write("}")

    def named_block(self, name: str, params: Sequence[str], body: Sequence[Statement]) -> None:
        self.write("{")
        self.newline()
        self.depth += 1
        self.write(f"const [{', '.join(params)}] = {COMPONENT}.blockParams[{json.dumps(name)}];")
        self.newline()
        self.scopes.append(frozenset(params))
        self.nested_statements(body)
        self.scopes.pop()
        self.depth -= 1
        self.write("}")

    def body(self, statements: Sequence[Statement], params: Sequence[str]) -> None:
        self.newline()
        self.depth += 1
        self.scopes.append(frozenset(params))
        self.nested_statements(statements)
        self.scopes.pop()
        self.depth -= 1

    # ------------------------------------------------------------------
    # Elements and components
    # ------------------------------------------------------------------

    def element(self, node: ElementNode) -> None:
        if node.is_named_block:
            self.errors.append(
                EmitError(f"Named block <{node.tag}> is only valid as a direct child of a component", node.tag_range)
            )
            with self.mapped(node.range, "ElementNode"):
                self.write("{")
                self.body(node.children, node.block_params)
                self.write("}")
            return

        component = self.component_path(node)
        with self.mapped(node.range, "ElementNode"):
            self.write("{")
            self.newline()
            self.depth += 1
            if component is None:
                self.write(f'const {COMPONENT} = {DSL}.emitElement("')
                self.identifier(node.tag, node.tag_range)
                self.write('");')
            else:
                self.write(f"const {COMPONENT} = {DSL}.emitComponent({DSL}.resolve(")
                self.expression(component)
                self.write(")(")
                self.component_args([attr for attr in node.attributes if attr.name.startswith("@")])
                self.write("));")
            self.newline()
            self.element_attributes(node)
            if component is None:
                self.nested_statements(node.children)
            else:
                self.component_children(node)
            self.depth -= 1
            self.write("}")

    def component_path(self, node: ElementNode) -> PathExpression | None:
        tag = node.tag
        head, _, rest = tag.partition(".")
        head_start = node.tag_range.start
        if head.startswith("@"):
            kind = "arg"
            head = head[1:]
            head_start += 1
        elif head == "this":
            kind = "this"
        elif head[:1].isupper() or rest or self.is_local(head):
            kind = "free"
        else:
            return None

        tail: list[tuple[str, Range]] = []
        position = node.tag_range.start + len(tag.partition(".")[0]) + 1
        for segment in rest.split(".") if rest else ():
            tail.append((segment, Range(position, position + len(segment))))
            position += len(segment) + 1
        return PathExpression(
            kind=kind,  # type: ignore[arg-type]
            head=head,
            head_range=Range(head_start, head_start + len(head)),
            tail=tuple(tail),
            range=node.tag_range,
        )

    def component_args(self, args: Sequence[AttrNode]) -> None:
        if not args:
            self.write("{}")
            return
        self.write("{ ")
        for index, attr in enumerate(args):
            if index:
                self.write(", ")
            with self.mapped(attr.range, "AttrNode"):
                self.property_key(attr.name[1:], Range(attr.name_range.start + 1, attr.name_range.end))
                self.write(": ")
                self.attr_value(attr.value)
        self.write(" }")

    def element_attributes(self, node: ElementNode) -> None:
        plain = [attr for attr in node.attributes if not attr.name.startswith("@") and attr.name != "...attributes"]
        if plain:
            self.write(f"{DSL}.applyAttributes({COMPONENT}.element, {{ ")
            for index, attr in enumerate(plain):
                if index:
                    self.write(", ")
                with self.mapped(attr.range, "AttrNode"):
                    self.property_key(attr.name, attr.name_range)
                    self.write(": ")
                    self.attr_value(attr.value)
            self.write(" });")
            self.newline()

        for attr in node.attributes:
            if attr.name == "...attributes":
                with self.mapped(attr.range, "AttrNode"):
                    self.write(f"{DSL}.applySplattributes({CONTEXT}.element, {COMPONENT}.element);")
                self.newline()

        for modifier in node.modifiers:
            with self.mapped(modifier.range, "ElementModifierStatement"):
                self.write(f"{DSL}.applyModifier({COMPONENT}.element, ")
                self.invoke(modifier.path, modifier.params, modifier.hash)
                self.write(");")
            self.newline()

    def component_children(self, node: ElementNode) -> None:
        has_named_blocks = any(isinstance(child, ElementNode) and child.is_named_block for child in node.children)
        if has_named_blocks:
            for child in node.children:
                if isinstance(child, ElementNode) and child.is_named_block:
                    name = child.tag[1:]
                    with self.mapped(child.range, "ElementNode"):
                        self.named_block(_BLOCK_ALIASES.get(name, name), child.block_params, child.children)
                    self.newline()
                else:
                    self.statement(child)
            self.flush_directives()
        elif node.children or node.block_params:
            self.named_block("default", node.block_params, node.children)
            self.newline()

    def attr_value(self, value: AttrValue | None) -> None:
        if value is None:
            self.write('""')
        elif isinstance(value, TextNode):
            self.leaf(json.dumps(value.chars, ensure_ascii=False), value.range, "TextNode")
        elif isinstance(value, MustacheStatement):
            with self.mapped(value.range, "MustacheStatement"):
                self.mustache_value(value)
        else:
            self.concat(value)

    def concat(self, value: ConcatStatement) -> None:
        with self.mapped(value.range, "ConcatStatement"):
            self.write("`")
            for part in value.parts:
                if isinstance(part, TextNode):
                    self.write(_escape_template_text(part.chars))
                else:
                    self.write("${")
                    with self.mapped(part.range, "MustacheStatement"):
                        self.mustache_value(part)
                    self.write("}")
            self.write("`")

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def mustache_value(self, node: MustacheStatement) -> None:
        if self.is_keyword(node.path, "if", "unless"):
            assert isinstance(node.path, PathExpression)
            self.conditional(node.path, node.params)
        elif not node.params and not node.hash.pairs:
            if isinstance(node.path, PathExpression):
                self.write(f"{DSL}.resolveOrReturn(")
                self.expression(node.path)
                self.write(")({})")
            else:
                self.expression(node.path)
        else:
            self.invoke(node.path, node.params, node.hash)

    def conditional(self, keyword: PathExpression, params: Sequence[Expression]) -> None:
        if len(params) < 2:
            self.errors.append(EmitError(f"{{{{{keyword.head}}}}} requires a condition and a value", keyword.range))
            self.write("undefined")
            return
        self.write("!(" if keyword.head == "unless" else "(")
        self.expression(params[0])
        self.write(") ? (")
        self.expression(params[1])
        self.write(") : (")
        if len(params) > 2:
            self.expression(params[2])
        else:
            self.write("undefined")
        self.write(")")

    def invoke(self, path: Expression, params: Sequence[Expression], hash_: Hash) -> None:
        self.write(f"{DSL}.resolve(")
        self.expression(path)
        self.write(")(")
        self.named_args(hash_)
        for param in params:
            self.write(", ")
            self.expression(param)
        self.write(")")

    def named_args(self, hash_: Hash) -> None:
        if not hash_.pairs:
            self.write("{}")
            return
        self.write("{ ")
        for index, pair in enumerate(hash_.pairs):
            if index:
                self.write(", ")
            with self.mapped(pair.range, "HashPair"):
                self.property_key(pair.key, pair.key_range)
                self.write(": ")
                self.expression(pair.value)
        self.write(" }")

    def property_key(self, name: str, source: Range) -> None:
        if _IDENTIFIER.match(name):
            self.identifier(name, source)
        else:
            self.write('"')
            self.identifier(name, source)
            self.write('"')

    def expression(self, node: Expression) -> None:
        if isinstance(node, PathExpression):
            self.path(node)
        elif isinstance(node, SubExpression):
            with self.mapped(node.range, "SubExpression"):
                if self.is_keyword(node.path, "if", "unless"):
                    assert isinstance(node.path, PathExpression)
                    self.conditional(node.path, node.params)
                else:
                    self.invoke(node.path, node.params, node.hash)
        elif isinstance(node, StringLiteral):
            self.leaf(json.dumps(node.value, ensure_ascii=False), node.range, "StringLiteral")
        elif isinstance(node, NumberLiteral):
            self.leaf(node.raw, node.range, "NumberLiteral")
        elif isinstance(node, BooleanLiteral):
            self.leaf("true" if node.value else "false", node.range, "BooleanLiteral")
        elif isinstance(node, NullLiteral):
            self.leaf("null", node.range, "NullLiteral")
        else:
            self.leaf("undefined", node.range, "UndefinedLiteral")

    def path(self, node: PathExpression) -> None:
        with self.mapped(node.range, "PathExpression"):
            if node.kind == "arg":
                self.write(f"{CONTEXT}.args")
                self.member(node.head, node.head_range, optional=False)
            elif node.kind == "this":
                self.write(f"{CONTEXT}.")
                self.identifier("this", node.head_range)
            elif self.is_local(node.head) or not self.is_global(node.head):
                self.identifier(node.head, node.head_range)
            else:
                self.write(f'{DSL}.Globals["')
                self.identifier(node.head, node.head_range)
                self.write('"]')
            for segment, segment_range in node.tail:
                self.member(segment, segment_range, optional=True)

    def member(self, name: str, source: Range, *, optional: bool) -> None:
        if _IDENTIFIER.match(name):
            self.write("?." if optional else ".")
            self.identifier(name, source)
        else:
            self.write('?.["' if optional else '["')
            self.identifier(name, source)
            self.write('"]')


def _escape_template_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")

"""Recursive-descent parser for Handlebars/Glimmer templates.

The parser stops at the first syntax error and raises
:class:`~template_lens.errors.TemplateSyntaxError`; callers report exactly one
error per malformed template.
"""

from __future__ import annotations

import re

from template_lens.errors import TemplateSyntaxError
from template_lens.template.syntax import (
    AttrNode,
    AttrValue,
    Block,
    BlockStatement,
    BooleanLiteral,
    CommentStatement,
    ConcatStatement,
    ElementModifierStatement,
    ElementNode,
    Expression,
    Hash,
    HashPair,
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
    UndefinedLiteral,
)
from template_lens.transform.module import Range

VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "param", "source", "track", "wbr"}
)

_ID = re.compile(r"[^\s!\"#%&'()*+,./;<=>@\[\\\]^`{|}~]+")
_HASH_KEY = re.compile(r"([^\s!\"#%&'()*+,./;<=>@\[\\\]^`{|}~]+)=")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?(?=[\s})~]|$)")
_BLOCK_PARAMS = re.compile(r"as\s+\|([^|]*)\|")
_COMMENT_OPEN = re.compile(r"\{\{~?!(--)?")
_BLOCK_OPEN = re.compile(r"\{\{~?#")
_BLOCK_CLOSE = re.compile(r"\{\{~?/\s*([^\s}~]*)\s*~?\}\}")
_BLOCK_CLOSE_START = re.compile(r"\{\{~?/")
_ELSE = re.compile(r"\{\{~?\s*else(?=[\s~}])")
_TAG_NAME = re.compile(r"[A-Za-z@:][^\s/>]*")
_ELEMENT_CLOSE = re.compile(r"</\s*([^\s>]*)\s*>")
_ATTR_NAME = re.compile(r"[^\s\"'>/={}]+")
_UNQUOTED_VALUE = re.compile(r"[^\s>\"'=`]+")
_KEYWORD_LITERALS = {"true", "false", "null", "undefined"}


def parse_template(source: str) -> Template:
    """Parse ``source`` into a :class:`Template`, raising on the first syntax error."""
    return _Parser(source).parse()


class _Parser:
    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0

    def parse(self) -> Template:
        body = self._statements()
        if self.pos < len(self.source):
            self._raise_unexpected_close()
        return Template(body=tuple(body), range=Range(0, len(self.source)), source=self.source)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _statements(self) -> list[Statement]:
        src = self.source
        body: list[Statement] = []
        while self.pos < len(src):
            if src.startswith("{{", self.pos):
                if _BLOCK_CLOSE_START.match(src, self.pos) or _ELSE.match(src, self.pos):
                    break
                body.append(self._mustache_like())
            elif src.startswith("</", self.pos):
                break
            elif src.startswith("<!--", self.pos):
                body.append(self._html_comment())
            elif self._at_element_open(self.pos):
                body.append(self._element())
            else:
                body.append(self._text())
        return body

    def _text(self) -> TextNode:
        src = self.source
        start = self.pos
        scan = start + 1
        end = len(src)
        while scan < len(src):
            mustache = src.find("{{", scan)
            tag = src.find("<", scan)
            candidates = [index for index in (mustache, tag) if index != -1]
            if not candidates:
                break
            index = min(candidates)
            if index == mustache or self._is_markup(index):
                end = index
                break
            scan = index + 1
        self.pos = end
        return TextNode(chars=src[start:end], range=Range(start, end))

    def _html_comment(self) -> CommentStatement:
        start = self.pos
        close = self.source.find("-->", start + 4)
        if close == -1:
            raise TemplateSyntaxError("Unclosed HTML comment", Range(start, start + 4))
        self.pos = close + 3
        return CommentStatement(value=self.source[start + 4 : close], range=Range(start, self.pos))

    def _is_markup(self, index: int) -> bool:
        src = self.source
        return src.startswith("</", index) or src.startswith("<!--", index) or self._at_element_open(index)

    def _at_element_open(self, index: int) -> bool:
        src = self.source
        return src.startswith("<", index) and index + 1 < len(src) and (src[index + 1].isalpha() or src[index + 1] in "@:")

    # ------------------------------------------------------------------
    # Mustaches
    # ------------------------------------------------------------------

    def _mustache_like(self) -> Statement:
        src = self.source
        comment = _COMMENT_OPEN.match(src, self.pos)
        if comment:
            return self._mustache_comment(comment)
        if _BLOCK_OPEN.match(src, self.pos):
            return self._block()
        return self._mustache()

    def _mustache_comment(self, opening: re.Match[str]) -> MustacheCommentStatement:
        start = self.pos
        closer = re.compile(("--" if opening.group(1) else "") + r"~?\}\}")
        close = closer.search(self.source, opening.end())
        if close is None:
            raise TemplateSyntaxError("Unclosed comment", Range(start, opening.end()))
        self.pos = close.end()
        return MustacheCommentStatement(value=self.source[opening.end() : close.start()], range=Range(start, self.pos))

    def _mustache(self) -> MustacheStatement:
        src = self.source
        start = self.pos
        self.pos += 2
        trusting = src.startswith("{", self.pos)
        if trusting:
            self.pos += 1
        self._skip_tilde()
        path, params, hash_, block_params = self._call_body(start)
        if block_params:
            raise TemplateSyntaxError("Block params are only allowed on blocks and elements", Range(start, self.pos))
        self._expect_close(start, "}}}" if trusting else "}}")
        return MustacheStatement(path=path, params=params, hash=hash_, range=Range(start, self.pos), trusting=trusting)

    def _block(self) -> BlockStatement:
        start = self.pos
        opening = _BLOCK_OPEN.match(self.source, self.pos)
        assert opening is not None
        self.pos = opening.end()
        path, params, hash_, block_params = self._call_body(start, allow_block_params=True)
        self._expect_close(start)
        name = path.original if isinstance(path, PathExpression) else ""
        return self._block_rest(start, Range(start, self.pos), name, path, params, hash_, block_params)

    def _block_rest(
        self,
        start: int,
        open_range: Range,
        name: str,
        path: Expression,
        params: tuple[Expression, ...],
        hash_: Hash,
        block_params: tuple[str, ...],
    ) -> BlockStatement:
        src = self.source
        program_start = self.pos
        program = Block(body=tuple(self._statements()), block_params=block_params, range=Range(program_start, self.pos))
        inverse: Block | None = None

        else_match = _ELSE.match(src, self.pos)
        if else_match:
            else_start = self.pos
            self.pos = else_match.end()
            self._skip_ws()
            if self._at_mustache_end():
                self._expect_close(else_start)
                inverse_start = self.pos
                inverse_body = self._statements()
                stray = _ELSE.match(src, self.pos)
                if stray:
                    raise TemplateSyntaxError(
                        f"Unexpected '{{{{else}}}}' after the inverse block of '{{{{#{name}}}}}'",
                        Range(self.pos, stray.end()),
                    )
                inverse = Block(body=tuple(inverse_body), block_params=(), range=Range(inverse_start, self.pos))
            else:
                chained_path, chained_params, chained_hash, chained_block_params = self._call_body(
                    else_start, allow_block_params=True
                )
                self._expect_close(else_start)
                chained = self._block_rest(
                    else_start,
                    Range(else_start, self.pos),
                    name,
                    chained_path,
                    chained_params,
                    chained_hash,
                    chained_block_params,
                )
                inverse = Block(body=(chained,), block_params=(), range=chained.range)
                return BlockStatement(
                    path=path,
                    params=params,
                    hash=hash_,
                    program=program,
                    inverse=inverse,
                    range=Range(start, chained.range.end),
                )

        close = _BLOCK_CLOSE.match(src, self.pos)
        if close is None:
            raise TemplateSyntaxError(f"Unclosed block '{{{{#{name}}}}}'", open_range)
        if close.group(1) != name:
            raise TemplateSyntaxError(
                f"'{{{{#{name}}}}}' was closed by '{{{{/{close.group(1)}}}}}'", Range(close.start(), close.end())
            )
        self.pos = close.end()
        return BlockStatement(
            path=path, params=params, hash=hash_, program=program, inverse=inverse, range=Range(start, self.pos)
        )

    def _call_body(
        self, start: int, *, allow_block_params: bool = False, in_subexpression: bool = False
    ) -> tuple[Expression, tuple[Expression, ...], Hash, tuple[str, ...]]:
        src = self.source
        self._skip_ws()
        path = self._expression(start)
        params: list[Expression] = []
        pairs: list[HashPair] = []
        block_params: tuple[str, ...] = ()
        while True:
            self._skip_ws()
            if self.pos >= len(src):
                raise TemplateSyntaxError("Unclosed mustache", Range(start, len(src)))
            if (in_subexpression and src[self.pos] == ")") or (not in_subexpression and self._at_mustache_end()):
                break
            params_match = _BLOCK_PARAMS.match(src, self.pos) if allow_block_params else None
            if params_match:
                block_params = tuple(params_match.group(1).split())
                self.pos = params_match.end()
                continue
            key_match = _HASH_KEY.match(src, self.pos)
            if key_match:
                pair_start = self.pos
                self.pos = key_match.end()
                value = self._expression(start)
                pairs.append(
                    HashPair(
                        key=key_match.group(1),
                        key_range=Range(pair_start, pair_start + len(key_match.group(1))),
                        value=value,
                        range=Range(pair_start, self.pos),
                    )
                )
                continue
            if pairs:
                raise TemplateSyntaxError(
                    "Positional arguments must come before named arguments", Range(self.pos, self.pos + 1)
                )
            params.append(self._expression(start))

        if pairs:
            hash_range = Range(pairs[0].range.start, pairs[-1].range.end)
        else:
            hash_range = Range(self.pos, self.pos)
        return path, tuple(params), Hash(pairs=tuple(pairs), range=hash_range), block_params

    def _expression(self, start: int) -> Expression:
        src = self.source
        if self.pos >= len(src):
            raise TemplateSyntaxError("Unclosed mustache", Range(start, len(src)))
        char = src[self.pos]
        if char == "(":
            return self._subexpression()
        if char in "\"'":
            return self._string_literal()
        number = _NUMBER.match(src, self.pos)
        if number:
            self.pos = number.end()
            return NumberLiteral(raw=number.group(0), range=Range(number.start(), number.end()))
        return self._path(start)

    def _subexpression(self) -> SubExpression:
        start = self.pos
        self.pos += 1
        path, params, hash_, _ = self._call_body(start, in_subexpression=True)
        self.pos += 1
        return SubExpression(path=path, params=params, hash=hash_, range=Range(start, self.pos))

    def _string_literal(self) -> StringLiteral:
        src = self.source
        start = self.pos
        quote = src[start]
        index = start + 1
        chars: list[str] = []
        while index < len(src):
            char = src[index]
            if char == "\\" and index + 1 < len(src):
                chars.append(src[index + 1])
                index += 2
                continue
            if char == quote:
                self.pos = index + 1
                return StringLiteral(value="".join(chars), range=Range(start, self.pos))
            chars.append(char)
            index += 1
        raise TemplateSyntaxError("Unterminated string literal", Range(start, len(src)))

    def _path(self, start: int) -> Expression:
        src = self.source
        path_start = self.pos
        kind = "free"
        if src.startswith("@", self.pos):
            kind = "arg"
            self.pos += 1
        head = _ID.match(src, self.pos)
        if head is None:
            found = src[self.pos] if self.pos < len(src) else "end of input"
            raise TemplateSyntaxError(f"Expected an expression, found {found!r}", Range(start, self.pos))
        self.pos = head.end()
        head_name = head.group(0)
        if kind == "free" and head_name == "this":
            kind = "this"

        tail: list[tuple[str, Range]] = []
        while src.startswith(".", self.pos):
            segment = _ID.match(src, self.pos + 1)
            if segment is None:
                raise TemplateSyntaxError("Expected a path segment after '.'", Range(path_start, self.pos + 1))
            tail.append((segment.group(0), Range(segment.start(), segment.end())))
            self.pos = segment.end()

        path_range = Range(path_start, self.pos)
        if kind == "free" and not tail and head_name in _KEYWORD_LITERALS:
            if head_name == "null":
                return NullLiteral(range=path_range)
            if head_name == "undefined":
                return UndefinedLiteral(range=path_range)
            return BooleanLiteral(value=head_name == "true", range=path_range)

        return PathExpression(
            kind=kind,  # type: ignore[arg-type]
            head=head_name,
            head_range=Range(head.start(), head.end()),
            tail=tuple(tail),
            range=path_range,
        )

    def _expect_close(self, start: int, closer: str = "}}") -> None:
        self._skip_ws()
        self._skip_tilde()
        if not self.source.startswith(closer, self.pos):
            raise TemplateSyntaxError("Unclosed mustache", Range(start, self.pos))
        self.pos += len(closer)

    def _at_mustache_end(self) -> bool:
        return self.source.startswith("}}", self.pos) or self.source.startswith("~}}", self.pos)

    def _skip_tilde(self) -> None:
        if self.source.startswith("~", self.pos):
            self.pos += 1

    def _skip_ws(self) -> None:
        src = self.source
        while self.pos < len(src) and src[self.pos].isspace():
            self.pos += 1

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def _element(self) -> ElementNode:
        src = self.source
        start = self.pos
        name = _TAG_NAME.match(src, start + 1)
        assert name is not None
        tag = name.group(0)
        self.pos = name.end()

        attributes: list[AttrNode] = []
        modifiers: list[ElementModifierStatement] = []
        block_params: tuple[str, ...] = ()
        self_closing = False
        while True:
            self._skip_ws()
            if self.pos >= len(src):
                raise TemplateSyntaxError(f"Unclosed element <{tag}>", Range(start, name.end()))
            if src.startswith("/>", self.pos):
                self.pos += 2
                self_closing = True
                break
            if src[self.pos] == ">":
                self.pos += 1
                break
            if src.startswith("{{", self.pos):
                comment = _COMMENT_OPEN.match(src, self.pos)
                if comment:
                    self._mustache_comment(comment)
                else:
                    modifiers.append(self._modifier())
                continue
            params_match = _BLOCK_PARAMS.match(src, self.pos)
            if params_match:
                block_params = tuple(params_match.group(1).split())
                self.pos = params_match.end()
                continue
            attributes.append(self._attribute(tag))

        open_end = self.pos
        children: list[Statement] = []
        if not self_closing and tag not in VOID_ELEMENTS:
            children = self._statements()
            close = _ELEMENT_CLOSE.match(src, self.pos)
            if close is None:
                raise TemplateSyntaxError(f"Unclosed element <{tag}>", Range(start, open_end))
            if close.group(1) != tag:
                raise TemplateSyntaxError(
                    f"Closing tag </{close.group(1)}> did not match last open tag <{tag}>",
                    Range(close.start(), close.end()),
                )
            self.pos = close.end()

        return ElementNode(
            tag=tag,
            tag_range=Range(name.start(), name.end()),
            attributes=tuple(attributes),
            modifiers=tuple(modifiers),
            children=tuple(children),
            block_params=block_params,
            range=Range(start, self.pos),
            self_closing=self_closing,
        )

    def _modifier(self) -> ElementModifierStatement:
        start = self.pos
        self.pos += 2
        self._skip_tilde()
        path, params, hash_, _ = self._call_body(start)
        self._expect_close(start)
        return ElementModifierStatement(path=path, params=params, hash=hash_, range=Range(start, self.pos))

    def _attribute(self, tag: str) -> AttrNode:
        src = self.source
        start = self.pos
        name = _ATTR_NAME.match(src, self.pos)
        if name is None:
            raise TemplateSyntaxError(f"Invalid character {src[self.pos]!r} in <{tag}>", Range(self.pos, self.pos + 1))
        self.pos = name.end()
        name_range = Range(name.start(), name.end())

        after_name = self.pos
        self._skip_ws()
        if name.group(0) == "...attributes" or not src.startswith("=", self.pos):
            self.pos = after_name
            return AttrNode(name=name.group(0), name_range=name_range, value=None, range=Range(start, after_name))

        self.pos += 1
        self._skip_ws()
        value: AttrValue
        if src.startswith("{{", self.pos):
            value = self._mustache()
        elif self.pos < len(src) and src[self.pos] in "\"'":
            value = self._quoted_value(tag)
        else:
            unquoted = _UNQUOTED_VALUE.match(src, self.pos)
            if unquoted is None:
                raise TemplateSyntaxError(f"Missing value for attribute '{name.group(0)}'", name_range)
            self.pos = unquoted.end()
            value = TextNode(chars=unquoted.group(0), range=Range(unquoted.start(), unquoted.end()))
        return AttrNode(name=name.group(0), name_range=name_range, value=value, range=Range(start, self.pos))

    def _quoted_value(self, tag: str) -> AttrValue:
        src = self.source
        start = self.pos
        quote = src[start]
        self.pos += 1
        parts: list[TextNode | MustacheStatement] = []
        text_start = self.pos
        while True:
            if self.pos >= len(src):
                raise TemplateSyntaxError(f"Unterminated attribute value in <{tag}>", Range(start, len(src)))
            if src[self.pos] == quote:
                if self.pos > text_start:
                    parts.append(TextNode(chars=src[text_start : self.pos], range=Range(text_start, self.pos)))
                self.pos += 1
                break
            if src.startswith("{{", self.pos):
                if self.pos > text_start:
                    parts.append(TextNode(chars=src[text_start : self.pos], range=Range(text_start, self.pos)))
                parts.append(self._mustache())
                text_start = self.pos
                continue
            self.pos += 1

        value_range = Range(start, self.pos)
        if not parts:
            return TextNode(chars="", range=value_range)
        if len(parts) == 1:
            only = parts[0]
            if isinstance(only, TextNode):
                return TextNode(chars=only.chars, range=value_range)
            return only
        return ConcatStatement(parts=tuple(parts), range=value_range)

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _raise_unexpected_close(self) -> None:
        src = self.source
        close = _BLOCK_CLOSE.match(src, self.pos)
        if close:
            raise TemplateSyntaxError(
                f"Unexpected closing block '{{{{/{close.group(1)}}}}}'", Range(close.start(), close.end())
            )
        else_match = _ELSE.match(src, self.pos)
        if else_match:
            raise TemplateSyntaxError("Unexpected '{{else}}'", Range(else_match.start(), else_match.end()))
        element_close = _ELEMENT_CLOSE.match(src, self.pos)
        end = element_close.end() if element_close else self.pos + 1
        raise TemplateSyntaxError(f"Closing tag {src[self.pos:end]} without an open tag", Range(self.pos, end))

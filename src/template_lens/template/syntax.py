"""Template AST produced by :mod:`template_lens.template.parser`.

Every node carries a ``range`` relative to the start of the template source.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

from template_lens.transform.module import Range

PathHead = Literal["this", "arg", "free"]


@dataclass(frozen=True)
class PathExpression:
    kind: PathHead
    head: str
    head_range: Range
    tail: tuple[tuple[str, Range], ...]
    range: Range

    @property
    def original(self) -> str:
        prefix = {"this": "this", "arg": f"@{self.head}", "free": self.head}[self.kind]
        return ".".join([prefix, *(segment for segment, _ in self.tail)])


@dataclass(frozen=True)
class StringLiteral:
    value: str
    range: Range


@dataclass(frozen=True)
class NumberLiteral:
    raw: str
    range: Range


@dataclass(frozen=True)
class BooleanLiteral:
    value: bool
    range: Range


@dataclass(frozen=True)
class NullLiteral:
    range: Range


@dataclass(frozen=True)
class UndefinedLiteral:
    range: Range


@dataclass(frozen=True)
class HashPair:
    key: str
    key_range: Range
    value: Expression
    range: Range


@dataclass(frozen=True)
class Hash:
    pairs: tuple[HashPair, ...]
    range: Range

    def get(self, key: str) -> HashPair | None:
        for pair in self.pairs:
            if pair.key == key:
                return pair
        return None


@dataclass(frozen=True)
class SubExpression:
    path: Expression
    params: tuple[Expression, ...]
    hash: Hash
    range: Range


LiteralExpression = Union[StringLiteral, NumberLiteral, BooleanLiteral, NullLiteral, UndefinedLiteral]
Expression = Union[PathExpression, SubExpression, LiteralExpression]


@dataclass(frozen=True)
class TextNode:
    chars: str
    range: Range


@dataclass(frozen=True)
class CommentStatement:
    value: str
    range: Range


@dataclass(frozen=True)
class MustacheCommentStatement:
    value: str
    range: Range


@dataclass(frozen=True)
class MustacheStatement:
    path: Expression
    params: tuple[Expression, ...]
    hash: Hash
    range: Range
    trusting: bool = False


@dataclass(frozen=True)
class Block:
    body: tuple[Statement, ...]
    block_params: tuple[str, ...]
    range: Range


@dataclass(frozen=True)
class BlockStatement:
    path: Expression
    params: tuple[Expression, ...]
    hash: Hash
    program: Block
    inverse: Block | None
    range: Range


@dataclass(frozen=True)
class ConcatStatement:
    parts: tuple[TextNode | MustacheStatement, ...]
    range: Range


AttrValue = Union[TextNode, MustacheStatement, ConcatStatement]


@dataclass(frozen=True)
class AttrNode:
    name: str
    name_range: Range
    value: AttrValue | None
    range: Range


@dataclass(frozen=True)
class ElementModifierStatement:
    path: Expression
    params: tuple[Expression, ...]
    hash: Hash
    range: Range


@dataclass(frozen=True)
class ElementNode:
    tag: str
    tag_range: Range
    attributes: tuple[AttrNode, ...]
    modifiers: tuple[ElementModifierStatement, ...]
    children: tuple[Statement, ...]
    block_params: tuple[str, ...]
    range: Range
    self_closing: bool = False

    @property
    def is_named_block(self) -> bool:
        return self.tag.startswith(":")


Statement = Union[
    TextNode,
    CommentStatement,
    MustacheCommentStatement,
    MustacheStatement,
    BlockStatement,
    ElementNode,
]


@dataclass(frozen=True)
class Template:
    body: tuple[Statement, ...]
    range: Range
    source: str = field(repr=False, default="")

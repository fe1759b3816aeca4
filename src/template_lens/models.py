from typing import Literal

from pydantic import BaseModel

Severity = Literal["error", "warning"]


class Position(BaseModel):
    row: int
    column: int


class Location(BaseModel):
    file: str
    start: int
    end: int


class Diagnostic(BaseModel):
    file: str
    start: int
    end: int
    message: str
    severity: Severity = "error"
    source: str = "lens"
    code: str | int | None = None
    start_point: Position | None = None
    end_point: Position | None = None


class QuickInfo(BaseModel):
    file: str
    start: int
    end: int
    text: str
    documentation: str = ""


def offset_to_position(contents: str, offset: int) -> Position:
    """Convert a character offset into a zero-based row/column pair."""
    offset = max(0, min(offset, len(contents)))
    row = contents.count("\n", 0, offset)
    line_start = contents.rfind("\n", 0, offset) + 1
    return Position(row=row, column=offset - line_start)


def position_to_offset(contents: str, position: Position) -> int:
    """Convert a zero-based row/column pair into a character offset, clamped to the line."""
    line_start = 0
    for _ in range(position.row):
        next_break = contents.find("\n", line_start)
        if next_break == -1:
            return len(contents)
        line_start = next_break + 1
    line_end = contents.find("\n", line_start)
    if line_end == -1:
        line_end = len(contents)
    return min(line_start + position.column, line_end)

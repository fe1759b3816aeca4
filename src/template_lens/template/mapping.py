"""Arena-allocated mapping trees linking template ranges to generated code.

Records are stored in creation (pre-)order; each carries the index of its
parent, ``-1`` for the root. Child lists are derived once the tree is frozen
and kept sorted in both coordinate spaces so lookups can bisect at every level.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from template_lens.transform.module import Range


@dataclass(frozen=True)
class MappingRecord:
    original: Range
    transformed: Range
    kind: str
    parent: int


class MappingTree:
    def __init__(self, records: list[MappingRecord]) -> None:
        self.records: tuple[MappingRecord, ...] = tuple(records)
        children: list[list[int]] = [[] for _ in self.records]
        for index, record in enumerate(self.records):
            if record.parent >= 0:
                children[record.parent].append(index)
        self._by_transformed = tuple(
            tuple(sorted(kids, key=lambda i: (self.records[i].transformed.start, -self.records[i].transformed.end)))
            for kids in children
        )
        self._by_original = tuple(
            tuple(sorted(kids, key=lambda i: (self.records[i].original.start, -self.records[i].original.end)))
            for kids in children
        )
        self._transformed_starts = tuple(
            tuple(self.records[i].transformed.start for i in kids) for kids in self._by_transformed
        )
        self._original_starts = tuple(tuple(self.records[i].original.start for i in kids) for kids in self._by_original)

    def __len__(self) -> int:
        return len(self.records)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MappingTree) and self.records == other.records

    def __hash__(self) -> int:
        return hash(self.records)

    @property
    def root(self) -> MappingRecord:
        return self.records[0]

    def children_of(self, index: int) -> tuple[int, ...]:
        return self._by_transformed[index]

    def narrowest_transformed(self, offset: int) -> MappingRecord | None:
        index = self._descend(offset, offset, self._by_transformed, self._transformed_starts, transformed=True)
        return None if index is None else self.records[index]

    def narrowest_original(self, offset: int) -> MappingRecord | None:
        index = self._descend(offset, offset, self._by_original, self._original_starts, transformed=False)
        return None if index is None else self.records[index]

    def narrowest_enclosing_transformed(self, start: int, end: int) -> MappingRecord | None:
        index = self._descend(start, end, self._by_transformed, self._transformed_starts, transformed=True)
        return None if index is None else self.records[index]

    def narrowest_enclosing_original(self, start: int, end: int) -> MappingRecord | None:
        index = self._descend(start, end, self._by_original, self._original_starts, transformed=False)
        return None if index is None else self.records[index]

    def _descend(
        self,
        start: int,
        end: int,
        ordered: tuple[tuple[int, ...], ...],
        starts: tuple[tuple[int, ...], ...],
        *,
        transformed: bool,
    ) -> int | None:
        if not self.records or not _encloses(self._range(0, transformed), start, end):
            return None
        current = 0
        while True:
            candidates = ordered[current]
            candidate_starts = starts[current]
            position = bisect.bisect_right(candidate_starts, start) - 1
            found = None
            if position >= 0:
                # Siblings sharing a start (zero-length identifiers) sort after the longer one.
                tie = candidate_starts[position]
                while position >= 0 and candidate_starts[position] == tie:
                    child = candidates[position]
                    if _encloses(self._range(child, transformed), start, end):
                        found = child
                        break
                    position -= 1
            if found is None:
                return current
            current = found

    def _range(self, index: int, transformed: bool) -> Range:
        record = self.records[index]
        return record.transformed if transformed else record.original


def _encloses(outer: Range, start: int, end: int) -> bool:
    if start == end:
        return outer.start <= start < outer.end
    return outer.start <= start and end <= outer.end


class MappingTreeBuilder:
    """Accumulates records while code is generated; ``build`` freezes them."""

    def __init__(self) -> None:
        self._originals: list[tuple[int, int]] = []
        self._transformed_starts: list[int] = []
        self._transformed_ends: list[int] = []
        self._kinds: list[str] = []
        self._parents: list[int] = []
        self._stack: list[int] = []

    def open(self, original_start: int, original_end: int, transformed_start: int, kind: str) -> int:
        index = len(self._kinds)
        self._originals.append((original_start, original_end))
        self._transformed_starts.append(transformed_start)
        self._transformed_ends.append(transformed_start)
        self._kinds.append(kind)
        self._parents.append(self._stack[-1] if self._stack else -1)
        self._stack.append(index)
        return index

    def close(self, index: int, transformed_end: int) -> None:
        popped = self._stack.pop()
        assert popped == index, "mapping records must close in LIFO order"
        self._transformed_ends[index] = transformed_end

    def leaf(self, original_start: int, original_end: int, transformed_start: int, transformed_end: int, kind: str) -> None:
        index = self.open(original_start, original_end, transformed_start, kind)
        self.close(index, transformed_end)

    def build(self) -> MappingTree:
        from template_lens.transform.module import Range

        assert not self._stack, "unclosed mapping records"
        records = [
            MappingRecord(
                original=Range(*self._originals[i]),
                transformed=Range(self._transformed_starts[i], self._transformed_ends[i]),
                kind=self._kinds[i],
                parent=self._parents[i],
            )
            for i in range(len(self._kinds))
        ]
        return MappingTree(records)

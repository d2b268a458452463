"""Flat-text offset <-> tree position mapping.

The index is built from the same walk the plain-text serializer uses, so
``PositionIndex.text`` is exactly ``serialize_to_plain_text(tree)`` and every
global offset maps to one textblock and a local offset inside it.
"""

from bisect import bisect_right
from dataclasses import dataclass, field

from docpipe.domain.nodes import Document, Path, TextBlock, inline_text
from docpipe.serialization.text import iter_textblocks


@dataclass(frozen=True, slots=True)
class BlockSpan:
    """A textblock and the range its text occupies in the flat text.

    ``end`` is exclusive; the block's trailing newline sits at ``end``.
    """

    path: Path
    start: int
    end: int
    block: TextBlock = field(compare=False)

    @property
    def length(self) -> int:
        return self.end - self.start


class PositionIndex:
    """Ordered index of textblocks with their global offsets."""

    def __init__(self, blocks: list[BlockSpan], text: str):
        self._blocks = blocks
        self._starts = [span.start for span in blocks]
        self._text = text

    @classmethod
    def build(cls, tree: Document) -> "PositionIndex":
        blocks = []
        parts = []
        offset = 0
        for path, block in iter_textblocks(tree):
            text = inline_text(block)
            blocks.append(BlockSpan(path=path, start=offset, end=offset + len(text), block=block))
            parts.append(text)
            parts.append("\n")
            offset += len(text) + 1
        return cls(blocks, "".join(parts))

    @property
    def text(self) -> str:
        return self._text

    @property
    def blocks(self) -> list[BlockSpan]:
        return self._blocks

    def find_all(self, needle: str) -> list[int]:
        """Start offsets of every (possibly overlapping) occurrence of ``needle``."""
        return find_all(self._text, needle)

    def resolve(self, offset: int) -> tuple[int, int]:
        """Map a global offset to ``(block position, local offset)``.

        An offset on a block's trailing newline resolves to the end of that
        block; the offset just past it resolves to the start of the next one.
        Offsets past the final newline clamp to the end of the last block.
        """
        if not self._blocks:
            raise IndexError("Document has no textblocks")
        if offset < 0:
            raise IndexError(f"Negative offset {offset}")
        position = max(bisect_right(self._starts, offset) - 1, 0)
        span = self._blocks[position]
        return position, min(offset - span.start, span.length)


def find_all(text: str, needle: str) -> list[int]:
    """Start offsets of every occurrence of ``needle`` in ``text``."""
    if not needle:
        return list(range(len(text) + 1))
    hits = []
    start = text.find(needle)
    while start != -1:
        hits.append(start)
        start = text.find(needle, start + 1)
    return hits

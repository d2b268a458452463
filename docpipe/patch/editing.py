"""Replace a flat-text span inside a document tree.

Edits follow the behaviour of a rich-text editor's delete-then-insert:

- inside one textblock the runs around the span are trimmed and the new text
  is inserted as a run carrying the marks shared by every run it replaces;
- a span crossing textblocks joins the last block's remainder onto the first
  block and drops everything in between, pruning list items and lists left
  empty;
- newlines in the replacement start new paragraphs (code blocks keep them).
"""

from docpipe.domain.nodes import (
    MARK_LINK,
    BulletList,
    CodeBlock,
    Document,
    Heading,
    ListItem,
    OrderedList,
    Paragraph,
    Path,
    TextRun,
    Unknown,
    get_node,
    is_textblock,
    walk,
)
from docpipe.patch.positions import BlockSpan, PositionIndex

PRUNABLE = (ListItem, BulletList, OrderedList)


def replace_span(tree: Document, index: PositionIndex, start: int, end: int, replacement: str) -> None:
    """Replace flat-text range ``[start, end)`` of ``tree`` with ``replacement``.

    ``index`` must describe ``tree`` as it is now; it is stale afterwards.
    """
    if not 0 <= start <= end:
        raise ValueError(f"Invalid span {start}..{end}")

    if not index.blocks:
        tree.children.extend(_paragraphs(replacement))
        return

    first_pos, first_off = index.resolve(start)
    last_pos, last_off = index.resolve(end)
    first = index.blocks[first_pos]
    last = index.blocks[last_pos]
    same_block = first_pos == last_pos

    first_items = _inline_items(first.block)
    last_items = first_items if same_block else _inline_items(last.block)

    if isinstance(first.block, CodeBlock):
        lines = [replacement]
    else:
        lines = replacement.split("\n")

    # Marks carry over only for a plain text substitution
    marks = ()
    if len(lines) == 1:
        marks = _replacement_marks(index, first_pos, first_off, last_pos, last_off)

    head = _head(first_items, first_off)
    tail = _tail(last_items, last_off, include_boundary=not same_block or last_off > first_off)

    removed = _blocks_between(tree, first, last)
    inserted = []

    if len(lines) == 1:
        _set_inline(first.block, head + [TextRun(lines[0], marks)] + tail)
        if not same_block:
            removed.append(last.path)
    else:
        _set_inline(first.block, head + [TextRun(lines[0])])
        inserted = [_paragraph(line) for line in lines[1:-1]]
        closing_items = [TextRun(lines[-1])] + tail
        if same_block:
            closing = _empty_like(first.block)
            _set_inline(closing, closing_items)
            inserted.append(closing)
        else:
            _set_inline(last.block, closing_items)

    # Reverse document order keeps the remaining paths valid
    for path in sorted(removed, reverse=True):
        _remove(tree, path)

    if inserted:
        parent = get_node(tree, first.path[:-1])
        position = first.path[-1] + 1
        parent.children[position:position] = inserted


def _inline_items(block) -> list:
    if isinstance(block, CodeBlock):
        return [TextRun(block.text)] if block.text else []
    return list(block.children)


def _set_inline(block, items: list) -> None:
    items = _normalize(items)
    if isinstance(block, CodeBlock):
        block.text = "".join(item.text for item in items if isinstance(item, TextRun))
    else:
        block.children = items


def _normalize(items: list) -> list:
    """Drop empty runs and merge neighbouring runs with identical marks."""
    out = []
    for item in items:
        if isinstance(item, TextRun):
            if not item.text:
                continue
            previous = out[-1] if out else None
            if isinstance(previous, TextRun) and set(previous.marks) == set(item.marks):
                out[-1] = TextRun(previous.text + item.text, previous.marks)
                continue
        out.append(item)
    return out


def _head(items: list, offset: int) -> list:
    """Inline content before ``offset``; zero-width nodes at ``offset`` stay."""
    out = []
    pos = 0
    for item in items:
        if isinstance(item, TextRun):
            if pos < offset:
                out.append(TextRun(item.text[: offset - pos], item.marks))
            pos += len(item.text)
        elif pos <= offset:
            out.append(item)
    return out


def _tail(items: list, offset: int, include_boundary: bool) -> list:
    """Inline content from ``offset`` on."""
    out = []
    pos = 0
    for item in items:
        if isinstance(item, TextRun):
            end = pos + len(item.text)
            if end > offset:
                out.append(TextRun(item.text[max(offset - pos, 0) :], item.marks))
            pos = end
        elif pos > offset or (pos == offset and include_boundary):
            out.append(item)
    return out


def _covered_runs(items: list, start: int, end: int) -> list[TextRun]:
    runs = []
    pos = 0
    for item in items:
        if isinstance(item, TextRun):
            item_end = pos + len(item.text)
            if pos < end and item_end > start:
                runs.append(item)
            pos = item_end
    return runs


def _replacement_marks(index: PositionIndex, first_pos: int, first_off: int, last_pos: int, last_off: int) -> tuple:
    covered: list[tuple] = []
    for position in range(first_pos, last_pos + 1):
        span = index.blocks[position]
        start = first_off if position == first_pos else 0
        end = last_off if position == last_pos else span.length
        if isinstance(span.block, CodeBlock):
            if end > start:
                return ()
            continue
        covered.extend(run.marks for run in _covered_runs(span.block.children, start, end))

    if covered:
        head, rest = covered[0], covered[1:]
        return tuple(mark for mark in head if all(mark in other for other in rest))

    first_block = index.blocks[first_pos].block
    if isinstance(first_block, CodeBlock):
        return ()
    return _marks_at(first_block.children, first_off)


def _marks_at(items: list, offset: int) -> tuple:
    """Marks an insertion at ``offset`` picks up from its neighbours."""
    before = after = None
    pos = 0
    for item in items:
        if isinstance(item, TextRun):
            end = pos + len(item.text)
            if pos < offset <= end:
                before = item.marks
            if pos <= offset < end and after is None:
                after = item.marks
            pos = end
    marks = before if before is not None else (after or ())
    # Links do not extend to text typed at their edge
    return tuple(mark for mark in marks if mark.type != MARK_LINK)


def _blocks_between(tree: Document, first: BlockSpan, last: BlockSpan) -> list[Path]:
    """Paths of leaf blocks lying strictly between two textblocks."""
    if first.path == last.path:
        return []

    entries = list(walk(tree))
    paths = [path for path, _ in entries]
    lo = paths.index(first.path)
    hi = paths.index(last.path)

    between = []
    depth = len(first.path)
    for path, node in entries[lo + 1 : hi]:
        if path[:depth] == first.path:
            continue
        if is_textblock(node):
            between.append(path)
        elif isinstance(node, Unknown) and not isinstance(
            get_node(tree, path[:-1]), (Heading, Paragraph)
        ):
            between.append(path)
    return between


def _remove(tree: Document, path: Path) -> None:
    parent_path = path[:-1]
    parent = get_node(tree, parent_path)
    del parent.children[path[-1]]
    while parent_path and isinstance(parent, PRUNABLE) and not parent.children:
        path = parent_path
        parent_path = path[:-1]
        parent = get_node(tree, parent_path)
        del parent.children[path[-1]]


def _paragraph(line: str) -> Paragraph:
    return Paragraph(children=[TextRun(line)] if line else [])


def _paragraphs(text: str) -> list[Paragraph]:
    if not text:
        return []
    return [_paragraph(line) for line in text.split("\n")]


def _empty_like(block):
    if isinstance(block, Heading):
        return Heading(level=block.level, attrs=dict(block.attrs))
    return Paragraph(attrs=dict(block.attrs))

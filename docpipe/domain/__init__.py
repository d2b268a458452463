"""Domain entities for the document content pipeline.

This module contains the typed document tree and the immutable data
structures that flow between pipeline stages.
"""

from docpipe.domain.nodes import (
    BulletList,
    CodeBlock,
    ContentNode,
    Document,
    Heading,
    ListItem,
    Mark,
    OrderedList,
    Paragraph,
    TextRun,
    Unknown,
    validate_tree,
)
from docpipe.domain.chunk import Chunk, EmbeddedChunk, Section
from docpipe.domain.changes import ApplyResult, ChangeOutcome, ChangeRequest, MatchState

__all__ = [
    "ApplyResult",
    "BulletList",
    "ChangeOutcome",
    "ChangeRequest",
    "Chunk",
    "CodeBlock",
    "ContentNode",
    "Document",
    "EmbeddedChunk",
    "Heading",
    "ListItem",
    "Mark",
    "MatchState",
    "OrderedList",
    "Paragraph",
    "Section",
    "TextRun",
    "Unknown",
    "validate_tree",
]

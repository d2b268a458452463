"""Document tree serialization (editor JSON and plain text)."""

from docpipe.serialization.json_codec import dump_document, parse_document
from docpipe.serialization.text import serialize_nodes, serialize_to_plain_text

__all__ = [
    "dump_document",
    "parse_document",
    "serialize_nodes",
    "serialize_to_plain_text",
]

"""Pytest configuration for docpipe tests."""

import pytest

from docpipe.domain.document import DocumentRecord
from docpipe.domain.nodes import Document, Heading, Paragraph, TextRun
from docpipe.serialization.json_codec import parse_document
from docpipe.storage.embeddings import EmbeddingService


@pytest.fixture
def sample_json():
    """Editor JSON covering headings, marks, lists, code and an unknown node."""
    return {
        "type": "doc",
        "content": [
            {"type": "heading", "attrs": {"level": 1}, "content": [{"type": "text", "text": "Project"}]},
            {
                "type": "paragraph",
                "content": [
                    {"type": "text", "text": "We ship "},
                    {"type": "text", "text": "the api by friday", "marks": [{"type": "bold"}]},
                    {"type": "text", "text": "."},
                ],
            },
            {"type": "heading", "attrs": {"level": 2}, "content": [{"type": "text", "text": "Notes"}]},
            {"type": "heading", "attrs": {"level": 2}, "content": [{"type": "text", "text": "Tasks"}]},
            {
                "type": "bulletList",
                "content": [
                    {
                        "type": "listItem",
                        "content": [
                            {"type": "paragraph", "content": [{"type": "text", "text": "Fix the login bug"}]}
                        ],
                    },
                    {
                        "type": "listItem",
                        "content": [
                            {"type": "paragraph", "content": [{"type": "text", "text": "Triage the search bug"}]}
                        ],
                    },
                ],
            },
            {
                "type": "codeBlock",
                "attrs": {"language": "python"},
                "content": [{"type": "text", "text": "print('hi')\nprint('bye')"}],
            },
            {"type": "horizontalRule"},
        ],
    }


@pytest.fixture
def sample_tree(sample_json):
    return parse_document(sample_json)


@pytest.fixture
def sample_text():
    return (
        "Project\n"
        "We ship the api by friday.\n"
        "Notes\n"
        "Tasks\n"
        "Fix the login bug\n"
        "Triage the search bug\n"
        "print('hi')\nprint('bye')\n"
    )


@pytest.fixture
def three_section_tree():
    return Document(
        children=[
            Heading(level=1, children=[TextRun("A")]),
            Paragraph(children=[TextRun("alpha")]),
            Heading(level=1, children=[TextRun("B")]),
            Paragraph(children=[TextRun("beta beta")]),
            Heading(level=1, children=[TextRun("C")]),
            Paragraph(children=[TextRun("gamma gamma gamma")]),
        ]
    )


@pytest.fixture
def record(three_section_tree):
    return DocumentRecord(id="doc-1", title="Roadmap", content=three_section_tree)


class FakeEmbedder(EmbeddingService):
    """Deterministic embedder: the first component is the text length."""

    def __init__(self):
        self.calls = []
        self.title_calls = []

    def embed(self, texts):
        self.calls.append(list(texts))
        return [[float(len(text)), 1.0] for text in texts]

    def embed_title(self, text):
        self.title_calls.append(text)
        return [float(len(text)), 2.0]


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()

"""Tests for section extraction and section change detection."""

import pytest

from docpipe.domain.nodes import Document, Heading, Paragraph, TextRun
from docpipe.errors import StructuralError
from docpipe.pipeline.sections import (
    extract_sections,
    find_changed_sections,
    section_keys,
    sections_to_hash_map,
)
from docpipe.utils import sha256_text


def _h(level, text):
    return Heading(level=level, children=[TextRun(text)])


def _p(text):
    return Paragraph(children=[TextRun(text)])


def test_sample_sections(sample_tree):
    sections = extract_sections(sample_tree)

    assert [s.breadcrumb for s in sections] == ["Project", "Project > Notes", "Project > Tasks"]
    assert [(s.start_node_index, s.end_node_index) for s in sections] == [(0, 1), (2, 2), (3, 6)]
    assert sections[1].heading_levels == (1, 2)
    assert sections[2].heading == "Tasks"
    assert sections[2].level == 2


def test_one_section_per_heading():
    tree = Document(children=[_h(1, "A"), _h(2, "B"), _p("b"), _h(2, "C"), _h(1, "D"), _p("d")])

    sections = extract_sections(tree)

    assert len(sections) == 4
    assert [s.heading_path for s in sections] == [
        ("A",),
        ("A", "B"),
        ("A", "C"),
        ("D",),
    ]


def test_skipped_level_keeps_single_ancestor():
    tree = Document(children=[_h(1, "Guide"), _h(3, "Deep"), _p("text")])

    deep = extract_sections(tree)[1]

    assert deep.heading_path == ("Guide", "Deep")
    assert deep.heading_levels == (1, 3)


def test_heading_without_body_still_yields_section():
    tree = Document(children=[_h(1, "Notes"), _h(1, "Next"), _p("body")])

    notes = extract_sections(tree)[0]

    assert notes.start_node_index == notes.end_node_index == 0
    assert notes.content_hash == sha256_text("")


def test_no_headings_yields_empty_list():
    assert extract_sections(Document(children=[_p("just text")])) == []
    assert extract_sections(Document()) == []


def test_intro_before_first_heading_is_not_a_section():
    tree = Document(children=[_p("intro"), _h(1, "Body"), _p("text")])

    sections = extract_sections(tree)

    assert len(sections) == 1
    assert sections[0].start_node_index == 1


def test_breadcrumb_hash_is_stable():
    first = extract_sections(Document(children=[_h(1, "A"), _h(2, "B"), _p("x")]))
    second = extract_sections(Document(children=[_h(1, "A"), _h(2, "B"), _p("changed")]))

    assert first[1].breadcrumb_hash == second[1].breadcrumb_hash == sha256_text("A > B")
    assert first[1].content_hash != second[1].content_hash


def test_non_document_is_a_structural_error():
    with pytest.raises(StructuralError):
        extract_sections(_p("not a doc"))


def test_invalid_heading_level_is_a_structural_error():
    tree = Document(children=[Heading(level=0, children=[TextRun("bad")])])

    with pytest.raises(StructuralError):
        extract_sections(tree)


class TestChangedSections:
    """Section-level change detection between index runs."""

    def test_no_previous_hashes_means_full_reindex(self, sample_tree):
        sections = extract_sections(sample_tree)

        diff = find_changed_sections(None, sections)

        assert diff.is_full_reindex
        assert diff.changed_sections == sections

    def test_unchanged_sections(self, sample_tree):
        sections = extract_sections(sample_tree)

        diff = find_changed_sections(sections_to_hash_map(sections), sections)

        assert not diff.is_full_reindex
        assert diff.changed_sections == []
        assert diff.unchanged_keys == ["Project", "Project > Notes", "Project > Tasks"]

    def test_edited_section_is_reported(self):
        before = extract_sections(Document(children=[_h(1, "A"), _p("a"), _h(1, "B"), _p("b")]))
        after = extract_sections(Document(children=[_h(1, "A"), _p("a"), _h(1, "B"), _p("b2")]))

        diff = find_changed_sections(sections_to_hash_map(before), after)

        assert [s.breadcrumb for s in diff.changed_sections] == ["B"]
        assert diff.unchanged_keys == ["A"]
        assert not diff.is_full_reindex

    def test_removed_section_forces_full_reindex(self):
        before = extract_sections(Document(children=[_h(1, "A"), _p("a"), _h(1, "B"), _p("b")]))
        after = extract_sections(Document(children=[_h(1, "A"), _p("a")]))

        diff = find_changed_sections(sections_to_hash_map(before), after)

        assert diff.is_full_reindex

    def test_repeated_breadcrumbs_get_numbered_keys(self):
        sections = extract_sections(Document(children=[_h(1, "Log"), _p("1"), _h(1, "Log"), _p("2")]))

        assert section_keys(sections) == ["Log", "Log#2"]
        assert len(sections_to_hash_map(sections)) == 2

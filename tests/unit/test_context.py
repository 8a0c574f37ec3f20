"""Unit tests for tree traversal helpers."""

from textwrap import dedent

import pytest

from org_outline.context import (
    find_by_canonical_id,
    find_heading,
    find_heading_by_title,
    iter_context_paths,
    scrub_file_sources,
    scrub_heading_sources,
    transplant_ids,
    walk_headings,
)
from org_outline.formatter import format_org_file
from org_outline.parser import parse


OUTLINE = dedent(
    """\
    * Projects
    ** Website
    :PROPERTIES:
    :CUSTOM_ID: site
    :END:
    *** Fix login
    ** Garden
    * Inbox
    """
)


class TestWalkHeadings:
    """Test depth-first traversal."""

    def test_document_order(self):
        """Test headings are visited in source order."""
        titles = [heading.plain_title() for heading, _ in walk_headings(parse(OUTLINE))]

        assert titles == ["Projects", "Website", "Fix login", "Garden", "Inbox"]

    def test_parents(self):
        """Test parents run from the root to the immediate parent."""
        visits = {h.plain_title(): [p.plain_title() for p in parents]
                  for h, parents in walk_headings(parse(OUTLINE))}

        assert visits["Fix login"] == ["Projects", "Website"]
        assert visits["Inbox"] == []

    def test_context_paths_include_heading(self):
        """Test iter_context_paths ends each path with the heading itself."""
        paths = [path for _, path in iter_context_paths(parse(OUTLINE))]

        assert ["Projects", "Website", "Fix login"] in paths
        assert ["Inbox"] in paths

    def test_walk_subtree(self):
        """Test walking from a list of root headings."""
        org_file = parse(OUTLINE)
        titles = [h.plain_title() for h, _ in walk_headings(org_file.headings[0].children)]

        assert titles == ["Website", "Fix login", "Garden"]


class TestLookup:
    """Test finding headings."""

    def test_find_by_id(self):
        """Test lookup by identity."""
        org_file = parse(OUTLINE)
        garden = org_file.headings[0].children[1]

        assert find_heading(org_file, garden.id) is garden

    def test_find_by_canonical_id(self):
        """Test lookup by CUSTOM_ID."""
        org_file = parse(OUTLINE)

        assert find_by_canonical_id(org_file, "site").plain_title() == "Website"
        assert find_by_canonical_id(org_file, "missing") is None

    def test_find_by_title(self):
        """Test case-insensitive title search."""
        org_file = parse(OUTLINE)

        assert find_heading_by_title(org_file, "LOGIN").plain_title() == "Fix login"
        assert find_heading_by_title(org_file, "nothing") is None


class TestScrubbing:
    """Test detaching trees from their source text."""

    def test_scrub_file_renders_canonically(self):
        """Test odd spacing is normalized once sources are dropped."""
        org_file = parse("*   Spaced   title\nbody\n")
        scrub_file_sources(org_file)

        assert org_file.source_text is None
        assert format_org_file(org_file) == "* Spaced   title\nbody\n"

    def test_scrub_heading_subtree(self):
        """Test only the scrubbed subtree loses its ranges."""
        org_file = parse(OUTLINE)
        projects, inbox = org_file.headings
        scrub_heading_sources(projects)

        assert all(h.headline_range is None for h, _ in walk_headings([projects]))
        assert inbox.headline_range is not None


class TestTransplantIds:
    """Test re-attaching identities to a regenerated tree."""

    def test_ids_follow_positions(self):
        """Test ids are copied position by position."""
        original = parse(OUTLINE)
        regenerated = parse(OUTLINE)

        transplant_ids(original, regenerated)

        assert regenerated.id == original.id
        assert [h.id for h, _ in walk_headings(regenerated)] == [
            h.id for h, _ in walk_headings(original)
        ]

    def test_shape_mismatch_raises(self):
        """Test differently shaped trees are rejected."""
        with pytest.raises(ValueError, match="Cannot transplant ids"):
            transplant_ids(parse("* A\n** B\n"), parse("* A\n* B\n"))

    def test_count_mismatch_raises(self):
        """Test different heading counts are rejected."""
        with pytest.raises(ValueError, match="source headings"):
            transplant_ids(parse("* A\n"), parse("* A\n* B\n"))

"""Unit tests for the document model."""

import uuid

from org_outline.model import (
    BlockWithSource,
    ClockEntry,
    Heading,
    OrgFile,
    Paragraph,
    RichText,
    Section,
    SourceRange,
    TodoSequence,
)
from org_outline.parser import parse
from org_outline.timestamp import parse_timestamp


class TestSourceRange:
    """Test SourceRange."""

    def test_slice(self):
        """Test slice returns the covered text."""
        assert SourceRange(start=2, end=5).slice("abcdefg") == "cde"


class TestTodoSequence:
    """Test TODO sequence splitting."""

    def test_divider_splits_states(self):
        """Test '|' separates not-done from done keywords."""
        sequence = TodoSequence(items=["TODO(t)", "NEXT", "|", "DONE(d)", "CANCELLED"])

        assert sequence.split() == (["TODO", "NEXT"], ["DONE", "CANCELLED"])

    def test_last_keyword_is_done_without_divider(self):
        """Test the last keyword is done when there is no divider."""
        sequence = TodoSequence(items=["TODO", "WAIT", "DONE"])

        assert sequence.split() == (["TODO", "WAIT"], ["DONE"])


class TestHeadingInvalidation:
    """Test that mutations clear the right cached ranges."""

    def _heading(self):
        text = "* TODO Task :a:\nSCHEDULED: <2025-11-15>\n:PROPERTIES:\n:ID: x\n:END:\n"
        return parse(text).headings[0]

    def test_parsed_heading_has_ranges(self):
        """Test parsing records all cached ranges."""
        heading = self._heading()

        assert heading.headline_range is not None
        assert heading.planning_range is not None
        assert heading.properties_range is not None

    def test_title_assignment_clears_headline_only(self):
        """Test assigning title dirties only the headline."""
        heading = self._heading()
        heading.title = RichText.from_text("Renamed")

        assert heading.headline_range is None
        assert heading.planning_range is not None
        assert heading.properties_range is not None

    def test_mutators_clear_ranges(self):
        """Test convenience mutators invalidate their region."""
        heading = self._heading()

        heading.add_tag("b")
        assert heading.headline_range is None
        assert heading.tags == {"a", "b"}

        heading.set_scheduled(parse_timestamp("<2025-12-01>"))
        assert heading.planning_range is None
        assert heading.properties_range is not None

    def test_set_property_updates_canonical_id(self):
        """Test CUSTOM_ID takes precedence over ID."""
        heading = self._heading()
        assert heading.canonical_id == "x"

        heading.set_property("CUSTOM_ID", "custom")

        assert heading.canonical_id == "custom"
        assert heading.properties_range is None

        heading.remove_property("CUSTOM_ID")
        assert heading.canonical_id == "x"

    def test_add_clock_entry_dirties_logbook(self):
        """Test logbook mutators."""
        heading = Heading.new(1, "Task")
        heading.logbook_range = SourceRange(start=0, end=1)

        heading.add_clock_entry(ClockEntry(start=parse_timestamp("[2025-11-15 Sat 09:00]")))

        assert heading.logbook_range is None
        assert len(heading.logbook.clock) == 1

    def test_mark_dirty_clears_all(self):
        """Test mark_dirty clears all four ranges."""
        heading = self._heading()
        heading.mark_dirty()

        assert heading.headline_range is None
        assert heading.planning_range is None
        assert heading.properties_range is None
        assert heading.logbook_range is None

    def test_set_todo_from_string(self):
        """Test set_todo wraps plain strings."""
        heading = Heading.new(1, "Task")
        heading.set_todo("DONE", is_done=True)

        assert heading.todo.text == "DONE"
        assert heading.todo.is_done is True


class TestBlocks:
    """Test block wrappers."""

    def test_block_assignment_clears_source(self):
        """Test assigning .block drops the cached range."""
        item = BlockWithSource(block=Paragraph(), source=SourceRange(start=0, end=1))
        item.block = Paragraph(text=RichText.from_text("new"))

        assert item.source is None

    def test_section_append_wraps_blocks(self):
        """Test bare blocks are wrapped without a source."""
        section = Section()
        wrapped = section.append(Paragraph(text=RichText.from_text("x")))

        assert isinstance(wrapped, BlockWithSource)
        assert wrapped.source is None
        assert section.blocks == [wrapped]


class TestSerialization:
    """Test structured serialization."""

    def test_ranges_and_source_are_excluded(self):
        """Test model_dump never contains ranges or source text."""
        org_file = parse("* Task\nBody\n")
        data = org_file.model_dump()

        assert "source_text" not in data
        assert "headline_range" not in data["headings"][0]
        assert "source" not in data["headings"][0]["section"]["blocks"][0]

    def test_json_round_trip_of_fields(self):
        """Test the JSON form validates back into an equivalent model."""
        org_file = parse("* TODO Task :x:\nSCHEDULED: <2025-11-15>\n")
        restored = OrgFile.model_validate_json(org_file.model_dump_json())

        assert restored.headings[0].todo == org_file.headings[0].todo
        assert restored.headings[0].planning == org_file.headings[0].planning
        assert restored.source_text is None


class TestOrgFile:
    """Test document-level helpers."""

    def test_clone_as_new(self):
        """Test clones get a new file id and keep heading ids."""
        org_file = parse("* A\n", path="a.org")
        clone = org_file.clone_as_new()

        assert clone.id != org_file.id
        assert clone.path is None
        assert clone.headings[0].id == org_file.headings[0].id
        assert isinstance(clone.id, uuid.UUID)

    def test_heading_new_has_no_ranges(self):
        """Test programmatic headings start dirty."""
        heading = Heading.new(2, "Child")

        assert heading.level == 2
        assert heading.plain_title() == "Child"
        assert heading.headline_range is None

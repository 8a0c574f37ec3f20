"""Org outline engine - Parse, edit and render Org documents.

This package turns Org markup into a typed tree and renders it back. Regions
of the tree that were not edited are reproduced exactly as they appeared in
the input; edited or new nodes are rendered canonically.

Key features:
- Parse headings, planning lines, drawers, logbooks, lists and inline markup
- Round-trip fidelity: format_org_file(parse(text)) == text
- Assignments to heading fields invalidate only the affected region
- Context paths and id lookups without parent pointers

Example:
    >>> from org_outline import parse, format_org_file
    >>> org_file = parse("* TODO Task\\nParagraph\\n")
    >>> org_file.headings[0].todo.text
    'TODO'
    >>> format_org_file(org_file)
    '* TODO Task\\nParagraph\\n'
"""

from org_outline.config import ParserOptions, load_options
from org_outline.context import (
    find_by_canonical_id,
    find_heading,
    find_heading_by_title,
    iter_context_paths,
    scrub_file_sources,
    transplant_ids,
    walk_headings,
)
from org_outline.exceptions import InvalidTimestampError, OrgError, OrgParseError
from org_outline.formatter import (
    format_org_file,
    render_block,
    render_rich_text,
)
from org_outline.inline import link_kind_from_target, parse_inlines
from org_outline.model import Heading, OrgFile, RichText
from org_outline.parser import parse, parse_file
from org_outline.timestamp import parse_timestamp, render_timestamp

__version__ = "0.1.0"

__all__ = [
    "Heading",
    "InvalidTimestampError",
    "OrgError",
    "OrgFile",
    "OrgParseError",
    "ParserOptions",
    "RichText",
    "find_by_canonical_id",
    "find_heading",
    "find_heading_by_title",
    "format_org_file",
    "iter_context_paths",
    "link_kind_from_target",
    "load_options",
    "parse",
    "parse_file",
    "parse_inlines",
    "parse_timestamp",
    "render_block",
    "render_rich_text",
    "render_timestamp",
    "scrub_file_sources",
    "transplant_ids",
    "walk_headings",
]

"""Traversal helpers for heading trees.

The model has no parent pointers: ancestor context is accumulated while
walking. Consumers such as agenda or journal views use these helpers to get a
heading's path (``["Projects", "Website", "Fix login"]``) or to find headings
by identity.
"""

import uuid
from typing import Iterable, Iterator, Optional, Union

from org_outline.model import Heading, OrgFile


def _roots(tree: Union[OrgFile, Iterable[Heading]]) -> list[Heading]:
    if isinstance(tree, OrgFile):
        return list(tree.headings)
    return list(tree)


def walk_headings(
    tree: Union[OrgFile, Iterable[Heading]]
) -> Iterator[tuple[Heading, list[Heading]]]:
    """Depth-first walk in document order.

    Uses an explicit stack, so deep outlines do not hit the recursion limit.

    Args:
        tree: A document or a list of root headings

    Yields:
        (heading, parents) where parents run from the root to the immediate parent

    Examples:
        >>> for heading, parents in walk_headings(org_file):
        ...     print(len(parents), heading.plain_title())
    """
    stack = [(heading, []) for heading in reversed(_roots(tree))]
    while stack:
        heading, parents = stack.pop()
        yield heading, parents
        path = parents + [heading]
        stack.extend((child, path) for child in reversed(heading.children))


def iter_context_paths(
    tree: Union[OrgFile, Iterable[Heading]]
) -> Iterator[tuple[Heading, list[str]]]:
    """Yield each heading with the plain titles from the root down to itself."""
    for heading, parents in walk_headings(tree):
        yield heading, [parent.plain_title() for parent in parents] + [heading.plain_title()]


def find_heading(tree: Union[OrgFile, Iterable[Heading]], heading_id: uuid.UUID) -> Optional[Heading]:
    """Find a heading by its identity."""
    for heading, _parents in walk_headings(tree):
        if heading.id == heading_id:
            return heading
    return None


def find_by_canonical_id(
    tree: Union[OrgFile, Iterable[Heading]], canonical_id: str
) -> Optional[Heading]:
    """Find a heading by CUSTOM_ID / ID property value."""
    for heading, _parents in walk_headings(tree):
        if heading.canonical_id == canonical_id:
            return heading
    return None


def find_heading_by_title(
    tree: Union[OrgFile, Iterable[Heading]], text: str
) -> Optional[Heading]:
    """Find the first heading whose plain title contains ``text`` (case-insensitive).

    Examples:
        >>> find_heading_by_title(org_file, "website")
        Heading(level=2, title=RichText(...), ...)
    """
    needle = text.lower()
    for heading, _parents in walk_headings(tree):
        if needle in heading.plain_title().lower():
            return heading
    return None


def scrub_heading_sources(heading: Heading) -> None:
    """Drop every cached range in a subtree so it renders canonically."""
    for current, _parents in walk_headings([heading]):
        current.mark_dirty()
        for item in current.section.blocks:
            item.mark_dirty()


def scrub_file_sources(org_file: OrgFile) -> None:
    """Detach a document from its original text.

    Afterwards the document renders entirely from its typed fields, which is
    what a copy needs before being edited against a different source text.
    """
    org_file.source_text = None
    for item in org_file.preamble:
        item.mark_dirty()
    for heading in org_file.headings:
        scrub_heading_sources(heading)


def transplant_ids(source: OrgFile, target: OrgFile) -> None:
    """Copy identities from ``source`` onto a structurally identical ``target``.

    Used when a document is regenerated (e.g. from a template or after a
    re-parse) and consumers hold on to the original ids.

    Args:
        source: Document whose ids should survive
        target: Document with the same heading shape

    Raises:
        ValueError: If the heading trees do not have the same shape
    """
    pairs = list(zip(walk_headings(source), walk_headings(target)))
    source_count = sum(1 for _ in walk_headings(source))
    target_count = sum(1 for _ in walk_headings(target))
    if source_count != target_count:
        raise ValueError(
            f"Cannot transplant ids: {source_count} source headings, {target_count} target headings"
        )

    for (original, original_parents), (copy, copy_parents) in pairs:
        if len(original_parents) != len(copy_parents) or len(original.children) != len(copy.children):
            raise ValueError(
                f"Cannot transplant ids: shape differs at {original.plain_title()!r}"
            )

    target.id = source.id
    for (original, _), (copy, _) in pairs:
        copy.id = original.id

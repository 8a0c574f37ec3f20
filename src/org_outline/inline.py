"""Inline markup parser.

Turns a flat run of text (a headline title, a paragraph) into inline nodes.
Parsing never fails: anything that does not match a construct becomes
literal text, so every input character is covered by exactly one node.

Recognition order at each position:

1. Bracket link ``[[target]]`` / ``[[target][description]]``
2. Target ``<<name>>``
3. Footnote reference ``[fn:label]``
4. Code ``~code~``
5. Verbatim ``=verbatim=``
6. Emphasis ``*bold*`` ``/italic/`` ``_underline_`` ``+strike+``
7. Autolink (``http://``, ``https://``, ``mailto:``, ``file:``, ``id:``)
8. Entity ``\\alpha``
9. Literal text
"""

import re
from typing import Optional

from org_outline.model import (
    Code,
    CustomLink,
    Emphasis,
    EmphasisKind,
    Entity,
    FileLink,
    FootnoteRef,
    HttpLink,
    IdLink,
    Link,
    RichText,
    Target,
    Text,
    Verbatim,
)

EMPHASIS_MARKERS = {
    "*": EmphasisKind.BOLD,
    "/": EmphasisKind.ITALIC,
    "_": EmphasisKind.UNDERLINE,
    "+": EmphasisKind.STRIKE,
}

# Characters that may start a construct; the text chunk stops before them
_TEXT_CHUNK_RE = re.compile(r"[^\[<*/_+~=\\hfim]+")
_TARGET_RE = re.compile(r"<<(.+?)>>", re.DOTALL)
_FOOTNOTE_RE = re.compile(r"\[fn:([^\]\n]+)\]")
_ENTITY_RE = re.compile(r"\\[A-Za-z]+")
_AUTOLINK_RE = re.compile(r"(?:https?://|mailto:|file:|id:)[^\s)\]>]+")
_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*):(.+)$", re.DOTALL)


def link_kind_from_target(target: str):
    """Classify a raw link target.

    Args:
        target: Text between ``[[`` and ``]]`` (or an autolink)

    Returns:
        HttpLink, IdLink, FileLink or CustomLink

    Examples:
        >>> link_kind_from_target("https://example.com")
        HttpLink(type='http', url='https://example.com')
        >>> link_kind_from_target("file:notes.org::*Tasks")
        FileLink(type='file', path='notes.org', search='*Tasks')
    """
    if target.startswith(("http://", "https://")):
        return HttpLink(url=target)
    if target.startswith("id:"):
        return IdLink(id=target[3:])
    if target.startswith("file:"):
        return _file_link(target[5:])

    match = _SCHEME_RE.match(target)
    if match:
        return CustomLink(protocol=match.group(1), target=match.group(2))
    return _file_link(target)


def _file_link(rest: str) -> FileLink:
    path, sep, search = rest.partition("::")
    return FileLink(path=path, search=search if sep else None)


def _coalesce(nodes: list) -> list:
    merged: list = []
    for node in nodes:
        if isinstance(node, Text) and merged and isinstance(merged[-1], Text):
            merged[-1] = Text(text=merged[-1].text + node.text)
        else:
            merged.append(node)
    return merged


def _match_link(text: str, pos: int) -> Optional[tuple[Link, int]]:
    if not text.startswith("[[", pos):
        return None
    close = text.find("]]", pos + 2)
    if close == -1:
        return None

    inner = text[pos + 2:close]
    target, sep, desc = inner.partition("][")
    if not target:
        return None
    link = Link(
        kind=link_kind_from_target(target),
        desc=parse_inlines(desc) if sep else None,
    )
    return link, close + 2


def _match_delimited(text: str, pos: int, marker: str) -> Optional[tuple[str, int]]:
    """Return (body, end) for ``~code~`` / ``=verbatim=`` with a non-empty body."""
    close = text.find(marker, pos + 1)
    if close <= pos + 1:
        return None
    return text[pos + 1:close], close + 1


def _match_emphasis(text: str, pos: int, cache: dict) -> Optional[tuple[Emphasis, int]]:
    """Match ``*body*`` where the body is parsed atom by atom.

    The closing marker is only looked for between atoms, so a link or a
    nested span containing the marker stays whole.
    """
    marker = text[pos]
    start = pos + 1
    if start >= len(text) or text[start].isspace() or text.startswith(marker, start):
        return None

    children = []
    cursor = start
    while cursor < len(text):
        if text.startswith(marker, cursor):
            return Emphasis(kind=EMPHASIS_MARKERS[marker], children=_coalesce(children)), cursor + 1
        node, cursor = _match_at(text, cursor, cache)
        children.append(node)
    return None


def _match_autolink(text: str, pos: int) -> Optional[tuple[Link, int]]:
    if pos > 0 and text[pos - 1].isalnum():
        return None
    match = _AUTOLINK_RE.match(text, pos)
    if match is None:
        return None
    return Link(kind=link_kind_from_target(match.group(0))), match.end()


def _match_at(text: str, pos: int, cache: dict):
    # An atom does not depend on the enclosing span, so failed emphasis
    # attempts can reuse it
    if pos not in cache:
        cache[pos] = _match_atom(text, pos, cache)
    return cache[pos]


def _match_atom(text: str, pos: int, cache: dict):
    char = text[pos]

    if char == "[":
        found = _match_link(text, pos)
        if found:
            return found
        match = _FOOTNOTE_RE.match(text, pos)
        if match:
            return FootnoteRef(label=match.group(1)), match.end()
    elif char == "<":
        match = _TARGET_RE.match(text, pos)
        if match:
            return Target(name=match.group(1)), match.end()
    elif char == "~":
        found = _match_delimited(text, pos, "~")
        if found:
            return Code(text=found[0]), found[1]
    elif char == "=":
        found = _match_delimited(text, pos, "=")
        if found:
            return Verbatim(text=found[0]), found[1]
    elif char in EMPHASIS_MARKERS:
        found = _match_emphasis(text, pos, cache)
        if found:
            return found
    elif char == "\\":
        match = _ENTITY_RE.match(text, pos)
        if match:
            return Entity(text=match.group(0)), match.end()

    if char in "hfim":
        found = _match_autolink(text, pos)
        if found:
            return found

    match = _TEXT_CHUNK_RE.match(text, pos)
    if match:
        return Text(text=match.group(0)), match.end()
    return Text(text=char), pos + 1


def parse_inlines(text: str) -> list:
    """Parse a run of text into inline nodes.

    Adjacent literal text is merged, so ``"A *bold* word"`` yields
    ``[Text("A "), Emphasis(BOLD, [Text("bold")]), Text(" word")]``.

    Args:
        text: Text without line structure significance

    Returns:
        List of inline nodes covering the whole input
    """
    nodes = []
    cache: dict = {}
    pos = 0
    while pos < len(text):
        node, pos = _match_at(text, pos, cache)
        nodes.append(node)
    return _coalesce(nodes)


def parse_rich_text(text: str) -> RichText:
    """Parse text into a RichText wrapper."""
    return RichText(inlines=parse_inlines(text))

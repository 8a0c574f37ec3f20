"""Render an OrgFile back to text.

Every piece (preamble block, headline, planning, property drawer, logbook,
section block) is emitted independently:

- If it still has a cached source range and the file carries its original
  text, the exact slice is copied
- Otherwise canonical text is synthesized from the typed fields

IMPORTANT: Untouched regions are byte-identical to the input, so
``format_org_file(parse(text)) == text`` for any text the parser accepts.
"""

from typing import Optional

from org_outline.model import (
    BlockWithSource,
    Checkbox,
    ClockEntry,
    Code,
    Comment,
    CustomLink,
    Directive,
    Drawer,
    Emphasis,
    EmphasisKind,
    Entity,
    Example,
    FileLink,
    FootnoteRef,
    Heading,
    HorizontalRule,
    HttpLink,
    IdLink,
    Link,
    ListBlock,
    ListItem,
    ListKind,
    Logbook,
    OrgFile,
    Paragraph,
    Planning,
    PropertyDrawer,
    Quote,
    RichText,
    SourceRange,
    SrcBlock,
    StateChange,
    Table,
    Target,
    Text,
    UnknownBlock,
    UnknownInline,
    Verbatim,
)
from org_outline.timestamp import render_timestamp
from org_outline.utils.logging import get_logger

logger = get_logger(__name__)

EMPHASIS_MARKERS = {
    EmphasisKind.BOLD: "*",
    EmphasisKind.ITALIC: "/",
    EmphasisKind.UNDERLINE: "_",
    EmphasisKind.STRIKE: "+",
    EmphasisKind.MARK: "=",
}

CHECKBOX_MARKERS = {
    Checkbox.EMPTY: "[ ]",
    Checkbox.PARTIAL: "[-]",
    Checkbox.CHECKED: "[X]",
}


# ---------------------------------------------------------------------------
# Inline content
# ---------------------------------------------------------------------------


def render_link_target(kind) -> str:
    """Inverse of link classification, as far as the typed fields allow."""
    if isinstance(kind, HttpLink):
        return kind.url
    if isinstance(kind, IdLink):
        return f"id:{kind.id}"
    if isinstance(kind, FileLink):
        if kind.search is not None:
            return f"file:{kind.path}::{kind.search}"
        if ":" in kind.path:
            return f"file:{kind.path}"
        return kind.path
    if isinstance(kind, CustomLink):
        return f"{kind.protocol}:{kind.target}"
    raise TypeError(f"Unknown link kind: {kind!r}")


def _render_inlines(inlines: list) -> str:
    parts = []
    for node in inlines:
        if isinstance(node, Text):
            parts.append(node.text)
        elif isinstance(node, Emphasis):
            marker = EMPHASIS_MARKERS[node.kind]
            parts.append(f"{marker}{_render_inlines(node.children)}{marker}")
        elif isinstance(node, Code):
            parts.append(f"~{node.text}~")
        elif isinstance(node, Verbatim):
            parts.append(f"={node.text}=")
        elif isinstance(node, Link):
            target = render_link_target(node.kind)
            if node.desc is None:
                parts.append(f"[[{target}]]")
            else:
                parts.append(f"[[{target}][{_render_inlines(node.desc)}]]")
        elif isinstance(node, Target):
            parts.append(f"<<{node.name}>>")
        elif isinstance(node, FootnoteRef):
            parts.append(f"[fn:{node.label}]")
        elif isinstance(node, Entity):
            parts.append(node.text)
        elif isinstance(node, UnknownInline):
            parts.append(node.raw)
    return "".join(parts)


def render_rich_text(text: RichText) -> str:
    """Render inline nodes back to markup."""
    return _render_inlines(text.inlines)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def _with_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def _indent(text: str, prefix: str) -> str:
    return "".join(
        prefix + line if line.strip() else line for line in text.splitlines(keepends=True)
    )


def _render_item(item: ListItem, kind: ListKind, position: int) -> str:
    if kind is ListKind.ORDERED:
        bullet = f"{item.counter if item.counter is not None else position}."
    else:
        bullet = "-"

    head = [bullet]
    if item.checkbox is not None:
        head.append(CHECKBOX_MARKERS[item.checkbox])
    if item.label is not None:
        head.append(f"{render_rich_text(item.label)} ::")

    content = list(item.content)
    if content and isinstance(content[0], Paragraph) and not content[0].text.is_empty():
        head.append(render_rich_text(content.pop(0).text))

    rendered = " ".join(head) + "\n"
    continuation = "".join(render_block(block) for block in content)
    return rendered + _indent(continuation, " " * (len(bullet) + 1))


def _render_src_header(block: SrcBlock) -> str:
    parts = ["#+BEGIN_SRC"]
    if block.language:
        parts.append(block.language)
    for key, value in block.parameters.items():
        parts.append(f":{key} {value}" if value else f":{key}")
    return " ".join(parts) + "\n"


def render_block(block) -> str:
    """Render one section block canonically (always newline-terminated)."""
    if isinstance(block, Paragraph):
        return render_rich_text(block.text) + "\n"
    if isinstance(block, ListBlock):
        return "".join(
            _render_item(item, block.kind, position)
            for position, item in enumerate(block.items, start=1)
        )
    if isinstance(block, Quote):
        inner = "".join(render_block(child) for child in block.blocks)
        return f"#+BEGIN_QUOTE\n{inner}#+END_QUOTE\n"
    if isinstance(block, Example):
        body = _with_newline(block.raw) if block.raw else ""
        return f"#+BEGIN_EXAMPLE\n{body}#+END_EXAMPLE\n"
    if isinstance(block, SrcBlock):
        body = _with_newline(block.code) if block.code else ""
        return f"{_render_src_header(block)}{body}#+END_SRC\n"
    if isinstance(block, Drawer):
        inner = "".join(render_block(child) for child in block.content)
        return f":{block.name}:\n{inner}:END:\n"
    if isinstance(block, Table):
        return "".join(line + "\n" for line in block.raw)
    if isinstance(block, HorizontalRule):
        return "-----\n"
    if isinstance(block, Comment):
        return f"# {block.text}\n" if block.text else "#\n"
    if isinstance(block, Directive):
        return f"#+{block.key}: {block.value}\n" if block.value else f"#+{block.key}:\n"
    if isinstance(block, UnknownBlock):
        return _with_newline(block.raw)
    raise TypeError(f"Unknown block type: {type(block).__name__}")


# ---------------------------------------------------------------------------
# Heading parts
# ---------------------------------------------------------------------------


def render_headline(heading: Heading) -> str:
    parts = ["*" * heading.level]
    if heading.todo is not None:
        parts.append(heading.todo.text)
    if heading.priority is not None:
        parts.append(f"[#{heading.priority}]")
    title = render_rich_text(heading.title)
    if title:
        parts.append(title)
    if heading.tags:
        parts.append(":" + ":".join(sorted(heading.tags)) + ":")
    if len(parts) == 1:
        # Stars alone are not a headline
        return parts[0] + " \n"
    return " ".join(parts) + "\n"


def render_planning(planning: Planning) -> str:
    parts = []
    for keyword, timestamp in (
        ("SCHEDULED", planning.scheduled),
        ("DEADLINE", planning.deadline),
        ("CLOSED", planning.closed),
    ):
        if timestamp is not None:
            parts.append(f"{keyword}: {render_timestamp(timestamp)}")
    return " ".join(parts) + "\n" if parts else ""


def render_properties(properties: PropertyDrawer) -> str:
    lines = [":PROPERTIES:\n"]
    for key, value in properties.props.items():
        lines.append(f":{key}: {value}\n" if value else f":{key}:\n")
    lines.append(":END:\n")
    return "".join(lines)


def _render_clock(entry: ClockEntry) -> str:
    line = f"CLOCK: {render_timestamp(entry.start)}"
    if entry.end is not None:
        line += f"--{render_timestamp(entry.end)}"
    if entry.minutes is not None:
        hours, minutes = divmod(entry.minutes, 60)
        line += f" => {hours}:{minutes:02d}"
    return line + "\n"


def _render_state_change(change: StateChange) -> str:
    to_state = f'"{change.to_state.text}"' if change.to_state else '""'
    from_state = f'"{change.from_state.text}"' if change.from_state else '""'
    line = f"- State {to_state:<12} from {from_state:<12}"
    if change.at is not None:
        line += f" {render_timestamp(change.at)}"
    line = line.rstrip()
    if change.note:
        line += " \\\\\n" + "".join(f"  {note}\n" for note in change.note.split("\n"))
        return line
    return line + "\n"


def render_logbook(logbook: Logbook) -> str:
    lines = [":LOGBOOK:\n"]
    lines.extend(_render_clock(entry) for entry in logbook.clock)
    lines.extend(_render_state_change(change) for change in logbook.state_changes)
    lines.extend(raw + "\n" for raw in logbook.raw)
    lines.append(":END:\n")
    return "".join(lines)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class _Writer:
    """Accumulates output, choosing verbatim slices over synthesis."""

    def __init__(self, source: Optional[str]):
        self.source = source
        self.parts: list[str] = []

    def _ends_with_newline(self) -> bool:
        return not self.parts or self.parts[-1].endswith("\n")

    def emit(self, source_range: Optional[SourceRange], synthesize) -> None:
        if source_range is not None and self.source is not None:
            piece = source_range.slice(self.source)
        else:
            piece = synthesize()
        if not piece:
            return
        if not self._ends_with_newline():
            self.parts.append("\n")
        self.parts.append(piece)

    def emit_block(self, item: BlockWithSource) -> None:
        self.emit(item.source, lambda: render_block(item.block))

    def emit_heading(self, heading: Heading) -> None:
        stack = [heading]
        while stack:
            current = stack.pop()
            self.emit(current.headline_range, lambda: render_headline(current))
            self.emit(current.planning_range, lambda: render_planning(current.planning))
            if current.properties_range is not None or current.properties.props:
                self.emit(current.properties_range, lambda: render_properties(current.properties))
            if current.logbook_range is not None or not current.logbook.is_empty():
                self.emit(current.logbook_range, lambda: render_logbook(current.logbook))
            for item in current.section.blocks:
                self.emit_block(item)
            stack.extend(reversed(current.children))

    def text(self) -> str:
        return "".join(self.parts)


def format_org_file(org_file: OrgFile) -> str:
    """Render a document, reusing original text wherever it is still valid.

    Args:
        org_file: Parsed or programmatically built document

    Returns:
        Document text

    Examples:
        >>> text = "* TODO Task\\nParagraph\\n"
        >>> format_org_file(parse(text)) == text
        True
    """
    writer = _Writer(org_file.source_text)
    for item in org_file.preamble:
        writer.emit_block(item)
    for heading in org_file.headings:
        writer.emit_heading(heading)

    output = writer.text()
    logger.debug(
        "format_completed",
        path=str(org_file.path) if org_file.path else None,
        length=len(output),
    )
    return output

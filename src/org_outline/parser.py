"""Structural parser for Org documents.

Turns text into an OrgFile tree. The parser is line oriented:

1. Preamble: directives (``#+title:``, ``#+filetags:``, ``#+TODO:`` ...) and
   blocks before the first heading
2. Headings: each headline is followed by its body (planning, property
   drawer, logbook, section blocks); nesting is rebuilt with a level stack

Every top-level artifact records the half-open range of the original text it
came from, so the formatter can copy untouched regions verbatim. Each line is
owned by exactly one artifact, which is what makes
``format_org_file(parse(text)) == text`` hold for any input.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from org_outline.config import ParserOptions
from org_outline.exceptions import InvalidTimestampError, OrgParseError
from org_outline.inline import parse_rich_text
from org_outline.model import (
    BlockWithSource,
    Checkbox,
    ClockEntry,
    Comment,
    Directive,
    Drawer,
    Example,
    FileSettings,
    Heading,
    HorizontalRule,
    ListBlock,
    ListItem,
    ListKind,
    Logbook,
    OrgFile,
    Paragraph,
    Planning,
    PropertyDrawer,
    Quote,
    SourceRange,
    SrcBlock,
    StateChange,
    Table,
    TodoKeyword,
    TodoSequence,
    UnknownBlock,
)
from org_outline.timestamp import match_timestamp
from org_outline.utils.logging import get_logger

logger = get_logger(__name__)

RESERVED_DRAWERS = ("PROPERTIES", "LOGBOOK")
TODO_DIRECTIVES = ("todo", "todo_keywords", "seq_todo", "typ_todo")

_HEADING_RE = re.compile(r"^(\*+) (.*)$")
_KEYWORD_RE = re.compile(r"^(\S+)(?:[ \t]+|$)")
_PRIORITY_RE = re.compile(r"^\[#(.)\](?:[ \t]+|$)")
_TAGS_RE = re.compile(r"(?:^|[ \t]+)(:(?:[\w@#%-]+:)+)[ \t]*$")

_DIRECTIVE_RE = re.compile(r"^[ \t]*#\+([\w-]+):[ \t]*(.*?)[ \t]*$")
_COMMENT_RE = re.compile(r"^[ \t]*#(?:[ \t](.*))?$")
_BEGIN_RE = re.compile(r"^[ \t]*#\+begin_(\w+)(?:[ \t]+(.*?))?[ \t]*$", re.IGNORECASE)
_DRAWER_OPEN_RE = re.compile(r"^[ \t]*:([\w-]+):[ \t]*$")
_DRAWER_END_RE = re.compile(r"^[ \t]*:END:[ \t]*$", re.IGNORECASE)
_PROPERTY_RE = re.compile(r"^[ \t]*:([^\s:]+):(?:[ \t]+(.*?))?[ \t]*$")
_RULE_RE = re.compile(r"^[ \t]*-{5,}[ \t]*$")
_TABLE_RE = re.compile(r"^[ \t]*\|")
_ITEM_RE = re.compile(r"^(?P<indent>[ \t]*)(?P<bullet>[-+]|\d+[.)])(?:[ \t]+(?P<rest>.*))?$")
_CHECKBOX_RE = re.compile(r"^\[([ xX-])\](?:[ \t]+|$)")
_DESCRIPTION_RE = re.compile(r"[ \t]+::(?:[ \t]+|$)")

_PLANNING_KEYWORD_RE = re.compile(r"(SCHEDULED|DEADLINE|CLOSED):[ \t]*")
_CLOCK_RE = re.compile(r"^[ \t]*CLOCK:[ \t]*(.*?)[ \t]*$")
_CLOCK_DURATION_RE = re.compile(r"[ \t]*=>[ \t]*(\d+):(\d{2})")
_STATE_RE = re.compile(
    r'^[ \t]*- State[ \t]+"(?P<to>[^"]*)"'
    r'(?:[ \t]+from[ \t]+"(?P<from>[^"]*)")?'
    r"[ \t]*(?P<rest>.*?)[ \t]*(?P<note>\\\\)?[ \t]*$"
)

_CHECKBOXES = {
    " ": Checkbox.EMPTY,
    "-": Checkbox.PARTIAL,
    "x": Checkbox.CHECKED,
    "X": Checkbox.CHECKED,
}


@dataclass
class _Line:
    """One source line: [start, end) includes the newline, text excludes it."""

    start: int
    end: int
    text: str


def _split_lines(text: str) -> list[_Line]:
    lines = []
    pos = 0
    while pos < len(text):
        newline = text.find("\n", pos)
        end = len(text) if newline == -1 else newline + 1
        body = text[pos:end].rstrip("\n")
        if body.endswith("\r"):
            body = body[:-1]
        lines.append(_Line(pos, end, body))
        pos = end
    return lines


def _is_heading_line(text: str) -> bool:
    return _HEADING_RE.match(text) is not None


def _is_blank(text: str) -> bool:
    return not text.strip()


def _indent_width(text: str) -> int:
    return len(text) - len(text.lstrip(" \t"))


def _join(lines: list[_Line]) -> str:
    return "\n".join(line.text for line in lines)


def _find_drawer_end(lines: list[_Line], start: int, stop_at_headings: bool) -> Optional[int]:
    """Index of the ``:END:`` line closing a drawer opened at ``start``."""
    for index in range(start + 1, len(lines)):
        text = lines[index].text
        if stop_at_headings and _is_heading_line(text):
            return None
        if _DRAWER_END_RE.match(text):
            return index
    return None


# ---------------------------------------------------------------------------
# Section blocks
# ---------------------------------------------------------------------------


def _read_drawer(lines: list[_Line], index: int, stop_at_headings: bool):
    match = _DRAWER_OPEN_RE.match(lines[index].text)
    if match is None or match.group(1).upper() == "END":
        return None
    end = _find_drawer_end(lines, index, stop_at_headings)
    if end is None:
        return None

    name = match.group(1)
    if name.upper() in RESERVED_DRAWERS:
        # Reserved drawers outside their canonical position are kept opaque
        return UnknownBlock(kind=name.upper(), raw=_join(lines[index:end + 1])), end + 1

    inner = _read_blocks(lines[index + 1:end], stop_at_headings=False)
    return Drawer(name=name, content=[block for block, _, _ in inner]), end + 1


def _parse_src_arguments(arguments: str) -> tuple[Optional[str], dict[str, str]]:
    tokens = arguments.split()
    language = None
    if tokens and not tokens[0].startswith(":"):
        language = tokens.pop(0)

    parameters: dict[str, str] = {}
    key = None
    for token in tokens:
        if token.startswith(":"):
            key = token[1:]
            parameters[key] = ""
        elif key is not None:
            parameters[key] = f"{parameters[key]} {token}".strip()
    return language, parameters


def _read_begin_block(lines: list[_Line], index: int, stop_at_headings: bool):
    match = _BEGIN_RE.match(lines[index].text)
    if match is None:
        return None

    name = match.group(1)
    end_re = re.compile(rf"^[ \t]*#\+end_{re.escape(name)}[ \t]*$", re.IGNORECASE)
    end = None
    for candidate in range(index + 1, len(lines)):
        text = lines[candidate].text
        if stop_at_headings and _is_heading_line(text):
            return None
        if end_re.match(text):
            end = candidate
            break
    if end is None:
        return None

    inner = lines[index + 1:end]
    body = "".join(line.text + "\n" for line in inner)
    kind = name.upper()

    if kind == "SRC":
        language, parameters = _parse_src_arguments(match.group(2) or "")
        block = SrcBlock(language=language, parameters=parameters, code=body)
    elif kind == "EXAMPLE":
        block = Example(raw=body)
    elif kind == "QUOTE":
        block = Quote(blocks=[b for b, _, _ in _read_blocks(inner, stop_at_headings=False)])
    else:
        block = UnknownBlock(kind=kind, raw=_join(lines[index:end + 1]))
    return block, end + 1


def _list_kind(match: re.Match) -> ListKind:
    if match.group("bullet")[0].isdigit():
        return ListKind.ORDERED
    rest = match.group("rest") or ""
    checkbox = _CHECKBOX_RE.match(rest)
    if checkbox:
        rest = rest[checkbox.end():]
    if _DESCRIPTION_RE.search(rest):
        return ListKind.DESCRIPTION
    return ListKind.UNORDERED


def _dedent(lines: list[_Line]) -> list[_Line]:
    width = min(_indent_width(line.text) for line in lines if not _is_blank(line.text))
    return [_Line(line.start, line.end, line.text[width:]) for line in lines]


def _build_item(match: re.Match, kind: ListKind, continuation: list[_Line]) -> ListItem:
    item = ListItem()
    rest = match.group("rest") or ""

    checkbox = _CHECKBOX_RE.match(rest)
    if checkbox:
        item.checkbox = _CHECKBOXES[checkbox.group(1)]
        rest = rest[checkbox.end():]

    if kind is ListKind.ORDERED:
        item.counter = int(match.group("bullet")[:-1])
    elif kind is ListKind.DESCRIPTION:
        separator = _DESCRIPTION_RE.search(rest)
        item.label = parse_rich_text(rest[:separator.start()])
        rest = rest[separator.end():]

    if rest:
        item.content.append(Paragraph(text=parse_rich_text(rest)))
    if continuation:
        nested = _read_blocks(_dedent(continuation), stop_at_headings=False)
        item.content.extend(block for block, _, _ in nested)
    return item


def _read_list(lines: list[_Line], index: int):
    first = _ITEM_RE.match(lines[index].text)
    if first is None:
        return None

    indent = len(first.group("indent"))
    kind = _list_kind(first)
    items = []
    while index < len(lines):
        match = _ITEM_RE.match(lines[index].text)
        if match is None or len(match.group("indent")) != indent or _list_kind(match) != kind:
            break
        end = index + 1
        while (
            end < len(lines)
            and not _is_blank(lines[end].text)
            and _indent_width(lines[end].text) > indent
        ):
            end += 1
        items.append(_build_item(match, kind, lines[index + 1:end]))
        index = end
    return ListBlock(kind=kind, items=items), index


def _read_table(lines: list[_Line], index: int):
    end = index
    while end < len(lines) and _TABLE_RE.match(lines[end].text):
        end += 1
    if end == index:
        return None
    return Table(raw=[line.text for line in lines[index:end]]), end


def _read_single_line(lines: list[_Line], index: int):
    text = lines[index].text
    if _RULE_RE.match(text):
        return HorizontalRule(), index + 1
    match = _DIRECTIVE_RE.match(text)
    if match:
        return Directive(key=match.group(1), value=match.group(2)), index + 1
    if text.lstrip(" \t").startswith("#+"):
        return None
    match = _COMMENT_RE.match(text)
    if match:
        return Comment(text=match.group(1) or ""), index + 1
    return None


def _read_structural(lines: list[_Line], index: int, stop_at_headings: bool):
    """Try every structural construct at ``index``; None means paragraph text."""
    return (
        _read_drawer(lines, index, stop_at_headings)
        or _read_single_line(lines, index)
        or _read_begin_block(lines, index, stop_at_headings)
        or _read_table(lines, index)
        or _read_list(lines, index)
    )


def _read_blocks(
    lines: list[_Line], start: int = 0, stop_at_headings: bool = True
) -> list[tuple]:
    """Read section blocks until a heading line or the end of ``lines``.

    Args:
        lines: Lines to read
        start: First line index
        stop_at_headings: Stop at the first heading line (False for nested content)

    Returns:
        List of (block, first line index, end line index) tuples
    """
    blocks = []
    paragraph_start = None
    index = start

    def flush(until: int) -> None:
        nonlocal paragraph_start
        if paragraph_start is not None:
            text = parse_rich_text(_join(lines[paragraph_start:until]))
            blocks.append((Paragraph(text=text), paragraph_start, until))
            paragraph_start = None

    while index < len(lines):
        text = lines[index].text
        if stop_at_headings and _is_heading_line(text):
            break

        if _is_blank(text):
            flush(index)
            blocks.append((Paragraph(), index, index + 1))
            index += 1
            continue

        found = _read_structural(lines, index, stop_at_headings)
        if found is not None:
            flush(index)
            block, end = found
            blocks.append((block, index, end))
            index = end
            continue

        if paragraph_start is None:
            paragraph_start = index
        index += 1

    flush(index)
    return blocks


# ---------------------------------------------------------------------------
# Document parser
# ---------------------------------------------------------------------------


class _OrgParser:
    """Single-use parser state for one document."""

    def __init__(self, text: str, options: ParserOptions):
        self.text = text
        self.options = options
        self.lines = _split_lines(text)
        self.pos = 0
        self.settings = FileSettings(priorities=list(options.default_priorities))
        self.keywords: dict[str, bool] = {}

    def _range(self, first: int, end: int) -> SourceRange:
        return SourceRange(start=self.lines[first].start, end=self.lines[end - 1].end)

    def _fail(self, index: int, reason: str) -> OrgParseError:
        line = self.lines[index]
        return OrgParseError("headings", self.text[line.start:], line.start, reason)

    def parse(self) -> OrgFile:
        org_file = OrgFile(source_text=self.text, settings=self.settings)
        self._parse_preamble(org_file)
        self.keywords = self.settings.keyword_table(
            self.options.todo_keywords, self.options.done_keywords
        )
        self._parse_headings(org_file)
        return org_file

    # -- preamble -----------------------------------------------------------

    def _parse_preamble(self, org_file: OrgFile) -> None:
        blocks = _read_blocks(self.lines, self.pos)
        for block, first, end in blocks:
            if isinstance(block, Directive):
                self._apply_directive(org_file, block)
            org_file.preamble.append(
                BlockWithSource(block=block, source=self._range(first, end))
            )
        if blocks:
            self.pos = blocks[-1][2]

    def _apply_directive(self, org_file: OrgFile, directive: Directive) -> None:
        key = directive.key.lower()
        value = directive.value

        if key == "title":
            org_file.title = value
        elif key == "filetags":
            org_file.file_tags = {tag for tag in re.split(r"[:\s]+", value) if tag}
        elif key in TODO_DIRECTIVES:
            self.settings.todo_sequences.append(TodoSequence(items=value.split()))
        elif key == "priorities":
            self.settings.priorities = _priority_letters(value) or self.settings.priorities
        else:
            self.settings.meta[key] = value

    # -- headings -----------------------------------------------------------

    def _parse_headings(self, org_file: OrgFile) -> None:
        stack: list[Heading] = []

        def close(heading: Heading) -> None:
            (stack[-1].children if stack else org_file.headings).append(heading)

        while self.pos < len(self.lines):
            heading = self._parse_headline(self.pos)
            self.pos += 1
            self._parse_heading_body(heading)

            while stack and stack[-1].level >= heading.level:
                close(stack.pop())
            stack.append(heading)

        while stack:
            close(stack.pop())

    def _parse_headline(self, index: int) -> Heading:
        line = self.lines[index]
        match = _HEADING_RE.match(line.text)
        if match is None:
            raise self._fail(index, "expected a heading")

        level = len(match.group(1))
        if level > self.options.max_heading_level:
            if self.options.strict_levels:
                raise self._fail(
                    index,
                    f"heading level {level} exceeds {self.options.max_heading_level}",
                )
            logger.warning(
                "heading_level_out_of_range",
                level=level,
                max_level=self.options.max_heading_level,
                offset=line.start,
            )

        heading = Heading(level=level)
        rest = match.group(2).lstrip(" \t")

        keyword = _KEYWORD_RE.match(rest)
        if keyword and keyword.group(1) in self.keywords:
            name = keyword.group(1)
            heading.todo = TodoKeyword(text=name, is_done=self.keywords[name])
            rest = rest[keyword.end():]

        priority = _PRIORITY_RE.match(rest)
        if priority and priority.group(1) in self.settings.priorities:
            heading.priority = priority.group(1)
            rest = rest[priority.end():]

        tags = _TAGS_RE.search(rest)
        if tags:
            heading.tags = {tag for tag in tags.group(1).split(":") if tag}
            rest = rest[:tags.start()]

        heading.title = parse_rich_text(rest.strip())
        heading.headline_range = self._range(index, index + 1)
        return heading

    def _parse_heading_body(self, heading: Heading) -> None:
        # Planning, properties and logbook are only recognized in this order,
        # directly after the headline
        first = self.pos
        planning = Planning()
        while self.pos < len(self.lines):
            fields = self._planning_fields(self.pos)
            if fields is None:
                break
            for name, timestamp in fields:
                setattr(planning, name, timestamp)
            self.pos += 1
        if self.pos > first:
            heading.planning = planning
            heading.planning_range = self._range(first, self.pos)

        properties = self._read_reserved_drawer("PROPERTIES")
        if properties is not None:
            props = self._property_map(properties)
            if props is not None:
                heading.properties = PropertyDrawer(props=props)
                heading.properties_range = self._range(*properties)
                heading.refresh_canonical_id()
                self.pos = properties[1]

        logbook = self._read_reserved_drawer("LOGBOOK")
        if logbook is not None:
            heading.logbook = self._parse_logbook(*logbook)
            heading.logbook_range = self._range(*logbook)
            self.pos = logbook[1]

        blocks = _read_blocks(self.lines, self.pos)
        for block, first_line, end in blocks:
            heading.section.blocks.append(
                BlockWithSource(block=block, source=self._range(first_line, end))
            )
        if blocks:
            self.pos = blocks[-1][2]

    def _planning_fields(self, index: int) -> Optional[list[tuple[str, object]]]:
        """Parse a planning line; None when the line is not one."""
        text = self.lines[index].text
        pos = _indent_width(text)
        fields = []
        while pos < len(text):
            keyword = _PLANNING_KEYWORD_RE.match(text, pos)
            if keyword is None:
                return None
            try:
                found = match_timestamp(text, keyword.end())
            except InvalidTimestampError as e:
                raise self._fail(index, str(e)) from e
            if found is None:
                return None
            timestamp, pos = found
            fields.append((keyword.group(1).lower(), timestamp))
            while pos < len(text) and text[pos] in " \t":
                pos += 1
        return fields or None

    def _read_reserved_drawer(self, name: str) -> Optional[tuple[int, int]]:
        """Line span (first, end) of drawer ``name`` at the current position."""
        if self.pos >= len(self.lines):
            return None
        match = _DRAWER_OPEN_RE.match(self.lines[self.pos].text)
        if match is None or match.group(1).upper() != name:
            return None
        end = _find_drawer_end(self.lines, self.pos, stop_at_headings=True)
        if end is None:
            return None
        return self.pos, end + 1

    def _property_map(self, span: tuple[int, int]) -> Optional[dict[str, str]]:
        props: dict[str, str] = {}
        for line in self.lines[span[0] + 1:span[1] - 1]:
            match = _PROPERTY_RE.match(line.text)
            if match is None:
                return None
            props[match.group(1)] = match.group(2) or ""
        return props

    def _keyword(self, text: Optional[str]) -> Optional[TodoKeyword]:
        if not text:
            return None
        return TodoKeyword(text=text, is_done=self.keywords.get(text, False))

    def _parse_logbook(self, first: int, end: int) -> Logbook:
        logbook = Logbook()
        index = first + 1
        while index < end - 1:
            text = self.lines[index].text
            index += 1
            try:
                clock = _parse_clock(text)
                state = None if clock else self._parse_state_change(text)
            except InvalidTimestampError as e:
                raise self._fail(index - 1, str(e)) from e

            if clock is not None:
                logbook.clock.append(clock)
            elif state is not None:
                change, wants_note = state
                if wants_note:
                    note_lines = []
                    while index < end - 1 and _is_note_line(self.lines[index].text):
                        note_lines.append(self.lines[index].text.strip())
                        index += 1
                    change.note = "\n".join(note_lines) or None
                logbook.state_changes.append(change)
            else:
                logbook.raw.append(text)
        return logbook

    def _parse_state_change(self, text: str) -> Optional[tuple[StateChange, bool]]:
        match = _STATE_RE.match(text)
        if match is None:
            return None
        at = None
        if match.group("rest"):
            found = match_timestamp(match.group("rest"), 0, allow_range=False)
            if found is None or found[1] != len(match.group("rest")):
                return None
            at = found[0]
        change = StateChange(
            from_state=self._keyword(match.group("from")),
            to_state=self._keyword(match.group("to")),
            at=at,
        )
        return change, match.group("note") is not None


def _is_note_line(text: str) -> bool:
    return (
        text[:1] in (" ", "\t")
        and not _is_blank(text)
        and _CLOCK_RE.match(text) is None
        and _STATE_RE.match(text) is None
    )


def _parse_clock(text: str) -> Optional[ClockEntry]:
    """Parse ``CLOCK: <start>[--<end>][ => H:MM]``; None when the line differs."""
    match = _CLOCK_RE.match(text)
    if match is None:
        return None
    body = match.group(1)

    found = match_timestamp(body, 0, allow_range=False)
    if found is None:
        return None
    entry = ClockEntry(start=found[0])
    pos = found[1]

    if body.startswith("--", pos):
        found = match_timestamp(body, pos + 2, allow_range=False)
        if found is None:
            return None
        entry.end, pos = found

    duration = _CLOCK_DURATION_RE.match(body, pos)
    if duration:
        entry.minutes = int(duration.group(1)) * 60 + int(duration.group(2))
        pos = duration.end()

    if pos != len(body):
        return None
    return entry


def _priority_letters(value: str) -> list[str]:
    """Letters from ``#+PRIORITIES: HIGH LOW DEFAULT`` (e.g. ``A C B`` -> A, B, C)."""
    tokens = value.split()
    if len(tokens) < 2 or any(len(token) != 1 for token in tokens):
        return []
    high, low = ord(tokens[0]), ord(tokens[1])
    if low < high:
        return []
    return [chr(code) for code in range(high, low + 1)]


def parse(
    text: Union[str, bytes],
    path: Optional[Path] = None,
    options: Optional[ParserOptions] = None,
) -> OrgFile:
    """Parse Org text into an OrgFile.

    The result keeps ``text`` as ``source_text`` and records source ranges,
    so ``format_org_file(parse(text)) == text``.

    Args:
        text: Document text (bytes are decoded as UTF-8)
        path: Optional originating path
        options: Parser options (defaults when None)

    Returns:
        Parsed document

    Raises:
        OrgParseError: If the document cannot be parsed; no partial document
            is returned

    Examples:
        >>> org_file = parse("* TODO Task\\nSCHEDULED: <2025-11-15>\\n")
        >>> org_file.headings[0].planning.scheduled.date
        datetime.date(2025, 11, 15)
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            fragment = text[:80].decode("utf-8", errors="replace")
            raise OrgParseError("preamble", fragment, e.start, "input is not valid UTF-8") from e

    if options is None:
        options = ParserOptions()

    logger.debug("parse_started", path=str(path) if path else None, length=len(text))
    try:
        org_file = _OrgParser(text, options).parse()
    except OrgParseError as e:
        logger.warning(
            "parse_failed",
            path=str(path) if path else None,
            stage=e.stage,
            fragment=e.fragment,
            offset=e.offset,
        )
        raise

    org_file.path = Path(path) if path is not None else None
    logger.debug(
        "parse_completed",
        path=str(path) if path else None,
        headings=len(org_file.headings),
        preamble_blocks=len(org_file.preamble),
    )
    return org_file


def parse_file(path: Union[str, Path], options: Optional[ParserOptions] = None) -> OrgFile:
    """Read a UTF-8 file and parse it.

    The file is read as bytes so line endings reach the parser untouched.

    Raises:
        OSError: If the file cannot be read
        OrgParseError: If the contents cannot be parsed
    """
    path = Path(path)
    return parse(path.read_bytes(), path=path, options=options)

"""Typed document model for Org outlines.

The tree is built from pydantic models so that every node has a field-named
structured form (``model_dump()``). Source ranges and the cached original text
are declared with ``exclude=True``: they only make sense next to one specific
in-memory source string and never appear in the serialized form.

IMPORTANT: Cached ranges are copied verbatim by the formatter. Assigning a
covered attribute on a Heading (or the ``block`` of a BlockWithSource) clears
the matching range automatically. Collaborators that mutate nested values in
place (``heading.planning.scheduled.date = ...``) must call the matching
``mark_*_dirty`` method themselves.
"""

import calendar
import datetime as dt
import re
import uuid
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


# Heading attribute -> cached range that must be dropped when it changes
_DIRTY_RANGES = {
    "level": "headline_range",
    "title": "headline_range",
    "todo": "headline_range",
    "priority": "headline_range",
    "tags": "headline_range",
    "planning": "planning_range",
    "properties": "properties_range",
    "logbook": "logbook_range",
}

_FAST_ACCESS_KEY = re.compile(r"\(.*\)$")


class SourceRange(BaseModel):
    """Half-open [start, end) offsets into the original source string."""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def slice(self, source: str) -> str:
        """Return the text this range covers in ``source``."""
        return source[self.start:self.end]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class TodoKeyword(BaseModel):
    """TODO keyword with a done flag, so file-specific vocabularies are respected."""

    text: str
    is_done: bool = False


class TodoSequence(BaseModel):
    """TODO sequence from a ``#+TODO:`` line; a literal "|" splits undone/done states."""

    items: list[str] = Field(default_factory=list)

    def split(self) -> tuple[list[str], list[str]]:
        """Return (not-done keywords, done keywords).

        Fast-access keys such as ``TODO(t)`` are stripped. Without a "|" the
        last keyword is the done state, as in Org.
        """
        names = [_FAST_ACCESS_KEY.sub("", item) for item in self.items]
        names = [name for name in names if name]
        if "|" in names:
            divider = names.index("|")
            return names[:divider], [n for n in names[divider + 1:] if n != "|"]
        return names[:-1], names[-1:]


class DateOffset(BaseModel):
    """A calendar offset in calendar units.

    Not reducible to a fixed duration: month and year steps depend on the
    date they are applied to.

    Only one unit survives rendering to a cookie and minutes have no Org
    unit; see ``timestamp.render_offset`` for how mixed or minutes-only
    offsets are reduced.
    """

    years: int = 0
    months: int = 0
    weeks: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0

    @classmethod
    def from_weeks(cls, weeks: int) -> "DateOffset":
        return cls(weeks=weeks)

    @classmethod
    def from_days(cls, days: int) -> "DateOffset":
        return cls(days=days)

    def is_zero(self) -> bool:
        return not any(
            (self.years, self.months, self.weeks, self.days, self.hours, self.minutes)
        )

    def shift(self, moment: dt.datetime) -> dt.datetime:
        """Apply this offset to ``moment``.

        Years and months move along the calendar, clamping the day to the end
        of the target month (Jan 31 + 1m is Feb 28/29). The remaining units
        are added as an exact duration.

        Args:
            moment: Starting point

        Returns:
            Shifted datetime
        """
        month_index = moment.month - 1 + self.months + 12 * self.years
        year = moment.year + month_index // 12
        month = month_index % 12 + 1
        day = min(moment.day, calendar.monthrange(year, month)[1])
        shifted = moment.replace(year=year, month=month, day=day)
        return shifted + dt.timedelta(
            weeks=self.weeks, days=self.days, hours=self.hours, minutes=self.minutes
        )


class RepeaterKind(Enum):
    """How a repeating timestamp advances."""

    FROM_LAST = "+"  # from the last occurrence
    FROM_BASE = "++"  # from the base date, skipping past occurrences
    FROM_NOW = ".+"  # from the moment the task is closed


class Repeater(BaseModel):
    kind: RepeaterKind
    interval: DateOffset


class Delay(BaseModel):
    """Warning/delay cookie such as ``-2d``.

    ``first_only`` marks the ``--2d`` form, which applies to the first
    occurrence of a repeating timestamp only.
    """

    before: bool = True
    first_only: bool = False
    offset: DateOffset


class TimestampEnd(BaseModel):
    """End of a range. ``date=None`` means the same day as the start."""

    date: Optional[dt.date] = None
    time: Optional[dt.time] = None


class TimeSpan(BaseModel):
    """Normalized start/end instants used by schedule views."""

    start: dt.datetime
    end: Optional[dt.datetime] = None


class Timestamp(BaseModel):
    """An Org timestamp with optional time, range end, repeater and delay.

    Active timestamps (``<...>``) take part in schedule views, inactive ones
    (``[...]``) do not.

    Attributes:
        active: Angle brackets when True, square brackets otherwise
        date: Calendar date
        time: Optional start time (all-day when None)
        tz: Optional UTC offset in seconds; Org syntax has no zone, so this is
            only set programmatically
        end: Optional range end
        repeater: Optional repeater cookie (``+1w``, ``++1m``, ``.+2d``)
        delay: Optional delay cookie (``-2d``)
        day_name: Weekday abbreviation as written (``Sat``), kept for re-rendering
    """

    active: bool = True
    date: dt.date
    time: Optional[dt.time] = None
    tz: Optional[int] = None
    end: Optional[TimestampEnd] = None
    repeater: Optional[Repeater] = None
    delay: Optional[Delay] = None
    day_name: Optional[str] = None

    def to_time_span(self, default_tz: Optional[int] = None) -> TimeSpan:
        """Project to absolute instants.

        All-day timestamps start at midnight. A range end without a date uses
        the start date; an end without a time uses the start time.

        Args:
            default_tz: UTC offset in seconds applied when ``tz`` is unset.
                The span is naive when neither is given.

        Returns:
            TimeSpan covering this timestamp
        """
        start_time = self.time or dt.time(0, 0)
        offset = self.tz if self.tz is not None else default_tz
        tzinfo = dt.timezone(dt.timedelta(seconds=offset)) if offset is not None else None

        start = dt.datetime.combine(self.date, start_time, tzinfo=tzinfo)
        end = None
        if self.end is not None:
            end = dt.datetime.combine(
                self.end.date or self.date, self.end.time or start_time, tzinfo=tzinfo
            )
        return TimeSpan(start=start, end=end)


class Planning(BaseModel):
    """Planning line(s): SCHEDULED, DEADLINE, CLOSED."""

    scheduled: Optional[Timestamp] = None
    deadline: Optional[Timestamp] = None
    closed: Optional[Timestamp] = None

    def is_empty(self) -> bool:
        return self.scheduled is None and self.deadline is None and self.closed is None


class PropertyDrawer(BaseModel):
    """Property drawer contents; insertion order is the source order."""

    props: dict[str, str] = Field(default_factory=dict)

    def get(self, key: str) -> Optional[str]:
        return self.props.get(key)


class ClockEntry(BaseModel):
    """A ``CLOCK:`` line. ``minutes`` comes from the ``=> H:MM`` suffix."""

    start: Timestamp
    end: Optional[Timestamp] = None
    minutes: Optional[int] = None


class StateChange(BaseModel):
    """A ``- State "DONE" from "TODO" [...]`` logbook record."""

    from_state: Optional[TodoKeyword] = None
    to_state: Optional[TodoKeyword] = None
    at: Optional[Timestamp] = None
    note: Optional[str] = None


class Logbook(BaseModel):
    """CLOCK entries, state changes, and raw lines the model does not understand."""

    clock: list[ClockEntry] = Field(default_factory=list)
    state_changes: list[StateChange] = Field(default_factory=list)
    raw: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.clock or self.state_changes or self.raw)


class FileSettings(BaseModel):
    """File-local settings that influence parsing and semantics."""

    todo_sequences: list[TodoSequence] = Field(default_factory=list)
    priorities: list[str] = Field(default_factory=lambda: ["A", "B", "C"])
    default_tz: Optional[int] = Field(
        default=None,
        description="UTC offset in seconds for timestamps without an explicit zone"
    )
    meta: dict[str, str] = Field(default_factory=dict)

    def keyword_table(
        self, default_todo: list[str], default_done: list[str]
    ) -> dict[str, bool]:
        """Map every known TODO keyword to its done flag.

        File sequences replace the defaults entirely when present.
        """
        table: dict[str, bool] = {}
        if self.todo_sequences:
            for sequence in self.todo_sequences:
                todo, done = sequence.split()
                table.update({name: False for name in todo})
                table.update({name: True for name in done})
        else:
            table.update({name: False for name in default_todo})
            table.update({name: True for name in default_done})
        return table


# ---------------------------------------------------------------------------
# Inline content
# ---------------------------------------------------------------------------


class EmphasisKind(Enum):
    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    STRIKE = "strike"
    MARK = "mark"


class FileLink(BaseModel):
    """``file:path::search`` (also used for bare paths)."""

    type: Literal["file"] = "file"
    path: str
    search: Optional[str] = None


class HttpLink(BaseModel):
    type: Literal["http"] = "http"
    url: str


class IdLink(BaseModel):
    type: Literal["id"] = "id"
    id: str


class CustomLink(BaseModel):
    """Any other ``scheme:rest`` target, e.g. ``mailto:user@host``."""

    type: Literal["custom"] = "custom"
    protocol: str
    target: str


LinkKind = Annotated[
    Union[FileLink, HttpLink, IdLink, CustomLink], Field(discriminator="type")
]


class Text(BaseModel):
    type: Literal["text"] = "text"
    text: str


class Emphasis(BaseModel):
    type: Literal["emphasis"] = "emphasis"
    kind: EmphasisKind
    children: list["Inline"] = Field(default_factory=list)


class Code(BaseModel):
    type: Literal["code"] = "code"
    text: str


class Verbatim(BaseModel):
    type: Literal["verbatim"] = "verbatim"
    text: str


class Link(BaseModel):
    """A link; ``desc`` is None when the source had no description part."""

    type: Literal["link"] = "link"
    kind: LinkKind
    desc: Optional[list["Inline"]] = None


class Target(BaseModel):
    """``<<name>>``"""

    type: Literal["target"] = "target"
    name: str


class FootnoteRef(BaseModel):
    """``[fn:label]``"""

    type: Literal["footnote_ref"] = "footnote_ref"
    label: str


class Entity(BaseModel):
    """Backslash entity such as ``\\alpha``; ``text`` keeps the backslash."""

    type: Literal["entity"] = "entity"
    text: str


class UnknownInline(BaseModel):
    type: Literal["unknown"] = "unknown"
    kind: str
    raw: str


Inline = Annotated[
    Union[Text, Emphasis, Code, Verbatim, Link, Target, FootnoteRef, Entity, UnknownInline],
    Field(discriminator="type"),
]

Emphasis.model_rebuild()
Link.model_rebuild()


def link_plain_target(kind: Union[FileLink, HttpLink, IdLink, CustomLink]) -> str:
    """Text shown for a link without description."""
    if isinstance(kind, HttpLink):
        return kind.url
    if isinstance(kind, FileLink):
        return kind.path
    if isinstance(kind, IdLink):
        return kind.id
    return f"{kind.protocol}:{kind.target}"


def _plain_text(inlines: list, out: list[str]) -> None:
    for node in inlines:
        if isinstance(node, Text):
            out.append(node.text)
        elif isinstance(node, Emphasis):
            _plain_text(node.children, out)
        elif isinstance(node, (Code, Verbatim, Entity)):
            out.append(node.text)
        elif isinstance(node, Link):
            if node.desc is not None:
                _plain_text(node.desc, out)
            else:
                out.append(link_plain_target(node.kind))
        elif isinstance(node, Target):
            out.append(node.name)
        elif isinstance(node, FootnoteRef):
            out.append(node.label)
        elif isinstance(node, UnknownInline):
            out.append(node.raw)


class RichText(BaseModel):
    """A run of inline nodes used for headlines and paragraphs."""

    inlines: list[Inline] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "RichText":
        """Wrap plain text without parsing markup."""
        return cls(inlines=[Text(text=text)] if text else [])

    def plain_text(self) -> str:
        """Plain-text approximation (markup stripped, link descriptions kept).

        Examples:
            >>> title.plain_text()
            'Call Alice about site'
        """
        out: list[str] = []
        _plain_text(self.inlines, out)
        return "".join(out)

    def is_empty(self) -> bool:
        return not self.inlines


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


class ListKind(Enum):
    UNORDERED = "unordered"
    ORDERED = "ordered"
    DESCRIPTION = "description"


class Checkbox(Enum):
    EMPTY = "empty"  # [ ]
    PARTIAL = "partial"  # [-]
    CHECKED = "checked"  # [X]


class Paragraph(BaseModel):
    """A paragraph; an empty one stands for a blank line."""

    type: Literal["paragraph"] = "paragraph"
    text: RichText = Field(default_factory=RichText)


class ListItem(BaseModel):
    """One list item. For description lists ``label`` holds the term."""

    label: Optional[RichText] = None
    content: list["Block"] = Field(default_factory=list)
    checkbox: Optional[Checkbox] = None
    counter: Optional[int] = None
    tags: set[str] = Field(default_factory=set)


class ListBlock(BaseModel):
    type: Literal["list"] = "list"
    kind: ListKind
    items: list[ListItem] = Field(default_factory=list)


class Quote(BaseModel):
    type: Literal["quote"] = "quote"
    blocks: list["Block"] = Field(default_factory=list)


class Example(BaseModel):
    type: Literal["example"] = "example"
    raw: str


class SrcBlock(BaseModel):
    type: Literal["src"] = "src"
    language: Optional[str] = None
    parameters: dict[str, str] = Field(default_factory=dict)
    code: str = ""


class Drawer(BaseModel):
    """A custom drawer. PROPERTIES and LOGBOOK are modelled on Heading instead."""

    type: Literal["drawer"] = "drawer"
    name: str
    content: list["Block"] = Field(default_factory=list)


class Table(BaseModel):
    """Table lines kept raw for full fidelity."""

    type: Literal["table"] = "table"
    raw: list[str] = Field(default_factory=list)


class HorizontalRule(BaseModel):
    type: Literal["horizontal_rule"] = "horizontal_rule"


class Comment(BaseModel):
    """A ``# comment`` line; ``text`` excludes the leading ``# ``."""

    type: Literal["comment"] = "comment"
    text: str = ""


class Directive(BaseModel):
    """A ``#+KEY: VALUE`` line."""

    type: Literal["directive"] = "directive"
    key: str
    value: str = ""


class UnknownBlock(BaseModel):
    """A construct the parser does not model; ``raw`` is reproduced verbatim."""

    type: Literal["unknown"] = "unknown"
    kind: str
    raw: str


Block = Annotated[
    Union[
        Paragraph,
        ListBlock,
        Quote,
        Example,
        SrcBlock,
        Drawer,
        Table,
        HorizontalRule,
        Comment,
        Directive,
        UnknownBlock,
    ],
    Field(discriminator="type"),
]

ListItem.model_rebuild()
ListBlock.model_rebuild()
Quote.model_rebuild()
Drawer.model_rebuild()


class BlockWithSource(BaseModel):
    """A block plus the source range it was parsed from (None when new or edited)."""

    block: Block
    source: Optional[SourceRange] = Field(default=None, exclude=True, repr=False)

    def __setattr__(self, name, value):
        super().__setattr__(name, value)
        if name == "block":
            super().__setattr__("source", None)

    def mark_dirty(self) -> None:
        """Drop the cached range so the block is re-rendered from its fields."""
        self.source = None


def _wrap_block(block) -> BlockWithSource:
    if isinstance(block, BlockWithSource):
        return block
    return BlockWithSource(block=block)


class Section(BaseModel):
    """Content under a headline, up to its first child heading."""

    blocks: list[BlockWithSource] = Field(default_factory=list)

    def append(self, block) -> BlockWithSource:
        """Append a block (bare blocks are wrapped without a source range)."""
        wrapped = _wrap_block(block)
        self.blocks.append(wrapped)
        return wrapped

    def insert(self, index: int, block) -> BlockWithSource:
        """Insert a block before ``index``."""
        wrapped = _wrap_block(block)
        self.blocks.insert(index, wrapped)
        return wrapped


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class Heading(BaseModel):
    """A heading node with its section and child headings.

    IMPORTANT: Children keep source order. Their levels are greater than this
    heading's level but not necessarily by exactly one.

    Attributes:
        id: Identity assigned at creation
        level: Star count; 1..8 in Org but not enforced
        title: Inline-parsed title
        todo: Optional TODO keyword
        priority: Optional single-character priority (``[#A]``)
        tags: Headline tags
        planning: SCHEDULED / DEADLINE / CLOSED
        properties: Property drawer
        logbook: Logbook drawer
        section: Blocks before the first child heading
        children: Child headings
        canonical_id: CUSTOM_ID or ID property, used for cross references
        headline_range: Cached range of the headline line
        planning_range: Cached range of the planning line(s)
        properties_range: Cached range of the property drawer
        logbook_range: Cached range of the logbook drawer
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    level: int
    title: RichText = Field(default_factory=RichText)
    todo: Optional[TodoKeyword] = None
    priority: Optional[str] = None
    tags: set[str] = Field(default_factory=set)
    planning: Planning = Field(default_factory=Planning)
    properties: PropertyDrawer = Field(default_factory=PropertyDrawer)
    logbook: Logbook = Field(default_factory=Logbook)
    section: Section = Field(default_factory=Section)
    children: list["Heading"] = Field(default_factory=list)
    canonical_id: Optional[str] = None

    headline_range: Optional[SourceRange] = Field(default=None, exclude=True, repr=False)
    planning_range: Optional[SourceRange] = Field(default=None, exclude=True, repr=False)
    properties_range: Optional[SourceRange] = Field(default=None, exclude=True, repr=False)
    logbook_range: Optional[SourceRange] = Field(default=None, exclude=True, repr=False)

    def __setattr__(self, name, value):
        super().__setattr__(name, value)
        range_name = _DIRTY_RANGES.get(name)
        if range_name is not None:
            super().__setattr__(range_name, None)

    @classmethod
    def new(cls, level: int, title: Union[str, RichText] = "") -> "Heading":
        """Create a heading without source ranges.

        Plain string titles are wrapped as a single Text node, not parsed.
        """
        if isinstance(title, str):
            title = RichText.from_text(title)
        return cls(level=level, title=title)

    # -- invalidation -------------------------------------------------------

    def mark_headline_dirty(self) -> None:
        self.headline_range = None

    def mark_planning_dirty(self) -> None:
        self.planning_range = None

    def mark_properties_dirty(self) -> None:
        self.properties_range = None

    def mark_logbook_dirty(self) -> None:
        self.logbook_range = None

    def mark_dirty(self) -> None:
        """Drop all four cached ranges of this heading (not its blocks or children)."""
        self.mark_headline_dirty()
        self.mark_planning_dirty()
        self.mark_properties_dirty()
        self.mark_logbook_dirty()

    # -- headline -----------------------------------------------------------

    def plain_title(self) -> str:
        return self.title.plain_text()

    def set_title(self, title: Union[str, RichText]) -> None:
        if isinstance(title, str):
            title = RichText.from_text(title)
        self.title = title

    def set_todo(self, keyword: Union[str, TodoKeyword, None], is_done: bool = False) -> None:
        if isinstance(keyword, str):
            keyword = TodoKeyword(text=keyword, is_done=is_done)
        self.todo = keyword

    def set_priority(self, priority: Optional[str]) -> None:
        if priority is not None and len(priority) != 1:
            raise ValueError(f"Priority must be a single character: {priority!r}")
        self.priority = priority

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags = self.tags | {tag}

    def remove_tag(self, tag: str) -> None:
        if tag in self.tags:
            self.tags = self.tags - {tag}

    # -- planning -----------------------------------------------------------

    def set_scheduled(self, timestamp: Optional[Timestamp]) -> None:
        self.planning = self.planning.model_copy(update={"scheduled": timestamp})

    def set_deadline(self, timestamp: Optional[Timestamp]) -> None:
        self.planning = self.planning.model_copy(update={"deadline": timestamp})

    def set_closed(self, timestamp: Optional[Timestamp]) -> None:
        self.planning = self.planning.model_copy(update={"closed": timestamp})

    # -- properties ---------------------------------------------------------

    def get_property(self, key: str) -> Optional[str]:
        return self.properties.get(key)

    def set_property(self, key: str, value: str) -> None:
        """Set a property, keeping its position if it already exists."""
        self.properties.props[key] = value
        self.mark_properties_dirty()
        self.refresh_canonical_id()

    def remove_property(self, key: str) -> Optional[str]:
        value = self.properties.props.pop(key, None)
        if value is not None:
            self.mark_properties_dirty()
            self.refresh_canonical_id()
        return value

    def refresh_canonical_id(self) -> None:
        """Resolve ``canonical_id`` from CUSTOM_ID, falling back to ID."""
        self.canonical_id = self.properties.get("CUSTOM_ID") or self.properties.get("ID")

    # -- logbook ------------------------------------------------------------

    def add_clock_entry(self, entry: ClockEntry) -> None:
        self.logbook.clock.append(entry)
        self.mark_logbook_dirty()

    def add_state_change(self, change: StateChange) -> None:
        self.logbook.state_changes.append(change)
        self.mark_logbook_dirty()


Heading.model_rebuild()


class OrgFile(BaseModel):
    """Aggregate root: a single Org document.

    Attributes:
        id: Identity assigned at creation
        path: Originating path, if any
        title: From ``#+title:``
        file_tags: From ``#+filetags:``
        settings: TODO sequences, priorities, time zone, other ``#+KEY:`` values
        preamble: Blocks before the first heading
        headings: Top-level headings
        source_text: Original text for range-based fidelity (None when built
            programmatically)
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    path: Optional[Path] = None
    title: Optional[str] = None
    file_tags: set[str] = Field(default_factory=set)
    settings: FileSettings = Field(default_factory=FileSettings)
    preamble: list[BlockWithSource] = Field(default_factory=list)
    headings: list[Heading] = Field(default_factory=list)
    source_text: Optional[str] = Field(default=None, exclude=True, repr=False)

    def _directive_blocks(self, key: str) -> list[BlockWithSource]:
        return [
            item
            for item in self.preamble
            if isinstance(item.block, Directive) and item.block.key.lower() == key
        ]

    def _set_directive(self, key: str, value: Optional[str]) -> None:
        existing = self._directive_blocks(key)
        if existing and value is not None:
            existing[0].block = Directive(key=existing[0].block.key, value=value)
            existing = existing[1:]
        elif value is not None:
            self.preamble.insert(0, BlockWithSource(block=Directive(key=key, value=value)))

        # Compare by identity: equal directives can appear more than once
        stale = {id(item) for item in existing}
        self.preamble = [item for item in self.preamble if id(item) not in stale]

    def set_title(self, title: Optional[str]) -> None:
        """Set the title and rewrite (or add) the ``#+title:`` directive."""
        self.title = title
        self._set_directive("title", title)

    def set_file_tags(self, tags: set[str]) -> None:
        """Replace file tags and rewrite (or add) the ``#+filetags:`` directive."""
        self.file_tags = set(tags)
        value = ":" + ":".join(sorted(tags)) + ":" if tags else None
        self._set_directive("filetags", value)

    def clone_as_new(self) -> "OrgFile":
        """Deep copy with a fresh file id and no path; heading ids are kept."""
        clone = self.model_copy(deep=True)
        clone.id = uuid.uuid4()
        clone.path = None
        return clone

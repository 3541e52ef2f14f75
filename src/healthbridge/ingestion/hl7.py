"""Tolerant HL7 v2 message parser.

Lookups never raise. Each field lookup reports whether its segment was
present, absent or malformed, so callers can tell a missing segment from a
segment that is there with an empty field.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple, Union

import structlog

logger = structlog.get_logger()

SEGMENT_ID = re.compile(r"^[A-Z][A-Z0-9]{2}$")
LINE_BREAK = re.compile(r"\r\n|\r|\n")
HL7_TIMESTAMP = re.compile(
    r"^(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?(?:\.(\d{1,4}))?([+-]\d{4})?$"
)

DEFAULT_FIELD_SEPARATOR = "|"
DEFAULT_ENCODING_CHARACTERS = "^~\\&"


class SegmentStatus(Enum):
    """Outcome of looking up a segment in a message."""
    PRESENT = "present"
    ABSENT = "absent"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Delimiters:
    """Separators declared by MSH-1 and MSH-2."""
    field: str = DEFAULT_FIELD_SEPARATOR
    component: str = "^"
    repetition: str = "~"
    escape: str = "\\"
    subcomponent: str = "&"

    @classmethod
    def from_msh(cls, line: str) -> "Delimiters":
        if not line.startswith("MSH") or len(line) < 4:
            return cls()
        field_sep = line[3]
        declared = line[4:].split(field_sep, 1)[0]
        chars = (declared + DEFAULT_ENCODING_CHARACTERS[len(declared):])[:4]
        return cls(field_sep, chars[0], chars[1], chars[2], chars[3])

    def unescape(self, value: str) -> str:
        """Resolve the standard delimiter escape sequences."""
        if self.escape not in value:
            return value
        esc = self.escape
        replacements = {
            f"{esc}F{esc}": self.field,
            f"{esc}S{esc}": self.component,
            f"{esc}T{esc}": self.subcomponent,
            f"{esc}R{esc}": self.repetition,
            f"{esc}E{esc}": esc,
        }
        pattern = re.compile("|".join(re.escape(token) for token in replacements))
        return pattern.sub(lambda m: replacements[m.group(0)], value)


@dataclass(frozen=True)
class Segment:
    """A single segment line. ``fields[n]`` is HL7 field n; ``fields[0]`` is the id."""
    name: str
    fields: Tuple[str, ...]
    raw: str
    malformed: bool = False

    def field(self, index: int) -> str:
        if index < 0 or index >= len(self.fields):
            return ""
        return self.fields[index]


@dataclass(frozen=True)
class FieldLookup:
    """Result of reading one field (or component) from a message."""
    status: SegmentStatus
    value: str = ""

    @property
    def present(self) -> bool:
        return self.status is SegmentStatus.PRESENT

    @property
    def empty(self) -> bool:
        return self.value == ""


@dataclass(frozen=True)
class HL7Message:
    """Parsed HL7 v2 message."""
    segments: Tuple[Segment, ...]
    delimiters: Delimiters = field(default_factory=Delimiters)
    unrecognized: Tuple[str, ...] = ()
    lines: Tuple[str, ...] = ()

    def status(self, name: str) -> SegmentStatus:
        found = [s for s in self.segments if s.name == name]
        if any(not s.malformed for s in found):
            return SegmentStatus.PRESENT
        if found:
            return SegmentStatus.MALFORMED
        return SegmentStatus.ABSENT

    def segment(self, name: str) -> Optional[Segment]:
        """First well-formed segment with the given id."""
        for segment in self.segments:
            if segment.name == name and not segment.malformed:
                return segment
        return None

    def count(self, name: str) -> int:
        return sum(1 for s in self.segments if s.name == name and not s.malformed)

    def lookup(self, name: str, index: int, component: Optional[int] = None) -> FieldLookup:
        """Read field ``index`` (1-based, HL7 numbering) of segment ``name``.

        With ``component`` set, the first repetition of the field is split on
        the component separator and that 1-based component is returned.
        """
        status = self.status(name)
        if status is not SegmentStatus.PRESENT:
            return FieldLookup(status)

        value = self.segment(name).field(index)
        if name == "MSH" and index <= 2:
            return FieldLookup(status, value)
        if component is not None:
            first = value.split(self.delimiters.repetition, 1)[0]
            parts = first.split(self.delimiters.component)
            value = parts[component - 1] if 0 < component <= len(parts) else ""
        return FieldLookup(status, self.delimiters.unescape(value))

    def value(self, name: str, index: int, component: Optional[int] = None) -> str:
        return self.lookup(name, index, component).value

    @property
    def canonical_text(self) -> str:
        """Segments joined by carriage returns with trailing whitespace removed."""
        return "\r".join(self.lines)

    def issues(self, expected: Tuple[str, ...] = ()) -> List[str]:
        """Describe absent or malformed segments, plus unrecognized lines."""
        problems = []
        for name in expected:
            status = self.status(name)
            if status is not SegmentStatus.PRESENT:
                problems.append(f"{name}:{status.value}")
        for name in sorted({s.name for s in self.segments if s.malformed} - set(expected)):
            if self.status(name) is SegmentStatus.MALFORMED:
                problems.append(f"{name}:malformed")
        if self.unrecognized:
            problems.append(f"unrecognized_lines:{len(self.unrecognized)}")
        return problems


def _parse_segment(line: str, delimiters: Delimiters) -> Optional[Segment]:
    name = line[:3]
    if not SEGMENT_ID.match(name):
        return None
    if len(line) > 3 and line[3] != delimiters.field:
        return Segment(name=name, fields=(name,), raw=line, malformed=True)

    parts = line.split(delimiters.field)
    if name == "MSH":
        if len(parts) < 2 or not parts[1]:
            return Segment(name=name, fields=(name,), raw=line, malformed=True)
        fields = (name, delimiters.field) + tuple(parts[1:])
    else:
        fields = tuple(parts)
    return Segment(name=name, fields=fields, raw=line)


def parse_message(raw: Union[str, bytes], encoding: str = "utf-8") -> HL7Message:
    """Parse raw HL7 v2 text into segments. Never raises on malformed content."""
    if isinstance(raw, bytes):
        raw = raw.decode(encoding, errors="replace")

    lines = [line.rstrip() for line in LINE_BREAK.split(raw)]
    lines = [line for line in lines if line]

    msh_line = next((line for line in lines if line.startswith("MSH")), "")
    delimiters = Delimiters.from_msh(msh_line)

    segments = []
    unrecognized = []
    for line in lines:
        segment = _parse_segment(line, delimiters)
        if segment is None:
            unrecognized.append(line)
        else:
            segments.append(segment)

    if unrecognized:
        logger.debug(f"Skipped {len(unrecognized)} unrecognized HL7 line(s)")

    return HL7Message(
        segments=tuple(segments),
        delimiters=delimiters,
        unrecognized=tuple(unrecognized),
        lines=tuple(lines),
    )


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an HL7 TS/DTM value into an aware UTC datetime, or None."""
    match = HL7_TIMESTAMP.match(value.strip()) if value else None
    if not match:
        return None

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    try:
        parsed = datetime(
            int(year),
            int(month or 1),
            int(day or 1),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            int((fraction or "0").ljust(6, "0")[:6]),
        )
        tz = timezone.utc
        if offset:
            sign = 1 if offset[0] == "+" else -1
            tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[3:5])))
        # Offsets of 24h or more, and shifts past year 1 or 9999, are unrepresentable.
        return parsed.replace(tzinfo=tz).astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None

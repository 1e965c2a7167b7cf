"""Parser contract and shared value coercion helpers.

Every sidecar parser is a MetadataParser: a descriptor (name, kind, priority,
claimed extensions and filenames) plus three operations:

    can_parse(path)        -- pure check on extension/filename, no file access
    parse(path)            -- read the file and hand it to parse_content();
                              raises UnreadableFileError on I/O or decode failure
    parse_content(text)    -- pure; returns None for malformed or empty content
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path

from loguru import logger

from ..errors import UnreadableFileError
from ..models import (
    TICKS_PER_MILLISECOND,
    TICKS_PER_SECOND,
    ParsedMetadata,
    SourceKind,
)

log = logger.bind(stage="parsers")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y-%m",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)

# [d.]hh:mm[:ss[.fff]]
_TIMESPAN = re.compile(
    r"^(?:(\d+)\.)?(\d{1,2}):(\d{1,2})(?::(\d{1,2})(?:\.(\d{1,7}))?)?$"
)


class MetadataParser(ABC):
    """Base class for all sidecar metadata parsers."""

    name: str = ""
    kind: SourceKind
    # Higher is more trusted; the merge order itself comes from configuration
    priority: int = 0
    extensions: frozenset[str] = frozenset()
    filenames: frozenset[str] = frozenset()

    def can_parse(self, path: Path) -> bool:
        """Whether this parser claims the file, by extension or exact filename."""
        path = Path(path)
        if path.suffix.lower() in self.extensions:
            return True
        return path.name.lower() in self.filenames

    def parse(self, path: Path) -> ParsedMetadata | None:
        """Read a sidecar file and parse it.

        Raises UnreadableFileError if the file cannot be read as text.
        Returns None if the content is malformed or carries nothing usable.
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise UnreadableFileError(path, str(e)) from e
        return self.parse_content(content, path)

    @abstractmethod
    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        """Parse raw file content. Never raises on malformed input."""

    def _new_record(self, source_path: Path | None) -> ParsedMetadata:
        return ParsedMetadata(
            source_kind=self.kind,
            source_path=Path(source_path) if source_path is not None else None,
        )

    def _finish(self, record: ParsedMetadata) -> ParsedMetadata | None:
        """Return the record if it has content, else None."""
        if record.has_content:
            return record
        log.debug(f"{self.name}: no usable content in {record.source_path}")
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value}>"


def clean_str(value: object) -> str | None:
    """Trimmed string, or None if missing or blank."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def parse_float(value: object) -> float | None:
    """Finite float from a number or numeric string; None otherwise."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        result = float(value)
    except (ValueError, OverflowError):
        return None
    return result if math.isfinite(result) else None


def parse_date(value: str | None) -> date | None:
    """Parse a calendar date from the common sidecar spellings.

    Bare years are not dates; callers that accept a year try parse_int first
    or afterwards as the format requires.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_timespan(value: str) -> int | None:
    """Parse a "[d.]hh:mm[:ss[.fffffff]]" duration literal into ticks."""
    m = _TIMESPAN.match(value.strip())
    if not m:
        return None
    days = int(m.group(1) or 0)
    hours = int(m.group(2))
    minutes = int(m.group(3))
    seconds = int(m.group(4) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        return None
    fraction = m.group(5) or ""
    fraction_ticks = int(fraction.ljust(7, "0")) if fraction else 0
    total_seconds = ((days * 24 + hours) * 60 + minutes) * 60 + seconds
    return total_seconds * TICKS_PER_SECOND + fraction_ticks


def milliseconds_to_ticks(ms: float) -> int:
    return round(ms * TICKS_PER_MILLISECOND)

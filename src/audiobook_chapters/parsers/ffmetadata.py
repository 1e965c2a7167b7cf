"""FFmpeg metadata (FFMETADATA1) parser.

The format is INI-like: global key=value pairs up to the first [SECTION]
header, then one [CHAPTER] section per chapter. Chapter START values are in
units of TIMEBASE (num/den seconds), which defaults to 1/1000.
"""

from __future__ import annotations

import math
import re
from pathlib import Path

from loguru import logger

from ..models import (
    ChapterMark,
    ParsedMetadata,
    SourceKind,
    add_unique,
    seconds_to_ticks,
)
from .base import MetadataParser, parse_date, parse_int

log = logger.bind(stage="ffmetadata")

HEADER = ";FFMETADATA1"
DEFAULT_TIMEBASE_FACTOR = 1000.0

_SECTION = re.compile(r"^\[(\w+)\]$")
_KEY_VALUE = re.compile(r"^(\w+)=(.*)$")

_ESCAPES = {"=": "=", ";": ";", "#": "#", "\\": "\\", "n": "\n"}
_ESCAPE_SEQUENCE = re.compile(r"\\([=;#\\n])")


def unescape_value(value: str) -> str:
    """Undo ffmetadata escaping of =, ;, #, backslash and newline."""
    return _ESCAPE_SEQUENCE.sub(lambda m: _ESCAPES[m.group(1)], value)


def timebase_factor(timebase: str | None) -> float:
    """Units per second for a "num/den" TIMEBASE (den/num); 1000 if unusable."""
    if not timebase:
        return DEFAULT_TIMEBASE_FACTOR
    parts = timebase.split("/")
    if len(parts) != 2:
        return DEFAULT_TIMEBASE_FACTOR
    try:
        num = float(parts[0])
        den = float(parts[1])
    except ValueError:
        return DEFAULT_TIMEBASE_FACTOR
    if not (math.isfinite(num) and math.isfinite(den)) or num == 0 or den == 0:
        return DEFAULT_TIMEBASE_FACTOR
    factor = den / num
    if not math.isfinite(factor) or factor == 0:
        return DEFAULT_TIMEBASE_FACTOR
    return factor


class FfmetadataParser(MetadataParser):
    name = "FFmetadata"
    kind = SourceKind.FFMETADATA
    priority = 60
    extensions = frozenset({".ffmetadata", ".ffmeta"})
    filenames = frozenset({"ffmetadata", "ffmetadata.txt"})

    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        if not content or not content.strip():
            return None

        lines = content.split("\n")
        if lines[0].strip().lower() != HEADER.lower():
            log.debug(f"Missing {HEADER} header in {source_path}")
            return None

        record = self._new_record(source_path)
        section: str | None = None
        chapter_data: dict[str, str] = {}
        global_data: dict[str, str] = {}

        for raw_line in lines[1:]:
            line = raw_line.rstrip()

            if line.startswith(";") or line.startswith("#"):
                continue

            m = _SECTION.match(line)
            if m:
                if _is_chapter(section) and chapter_data:
                    self._add_chapter(record, chapter_data)
                    chapter_data = {}
                section = m.group(1)
                continue

            m = _KEY_VALUE.match(line)
            if not m:
                continue

            key = m.group(1)
            value = unescape_value(m.group(2))
            if _is_chapter(section):
                chapter_data[key.lower()] = value
            elif section is None:
                global_data[key.lower()] = value

        if _is_chapter(section) and chapter_data:
            self._add_chapter(record, chapter_data)

        self._apply_globals(record, global_data)
        return self._finish(record)

    @staticmethod
    def _add_chapter(record: ParsedMetadata, chapter_data: dict[str, str]) -> None:
        start = parse_int(chapter_data.get("start"))
        if start is None:
            log.debug(f"Dropping chapter without integer START: {chapter_data}")
            return

        factor = timebase_factor(chapter_data.get("timebase"))
        try:
            start_ticks = seconds_to_ticks(start / factor)
        except OverflowError:
            log.debug(f"Dropping chapter with out-of-range START: {chapter_data}")
            return

        name = chapter_data.get("title") or f"Chapter {len(record.chapters) + 1}"
        record.chapters.append(ChapterMark(name=name, start_ticks=start_ticks))

    @staticmethod
    def _apply_globals(record: ParsedMetadata, data: dict[str, str]) -> None:
        record.title = data.get("title") or None
        add_unique(record.authors, data.get("artist"))
        add_unique(record.authors, data.get("album_artist"))
        add_unique(record.narrators, data.get("composer"))
        add_unique(record.genres, data.get("genre"))

        date_value = data.get("date")
        if date_value:
            year = parse_int(date_value)
            if year is not None:
                record.year = year
            else:
                published = parse_date(date_value)
                if published is not None:
                    record.published_date = published
                    record.year = published.year

        record.publisher = data.get("publisher") or None
        record.description = data.get("description") or data.get("comment") or None
        record.language = data.get("language") or None


def _is_chapter(section: str | None) -> bool:
    return section is not None and section.upper() == "CHAPTER"

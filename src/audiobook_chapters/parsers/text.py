"""Plain-text sidecar parser.

The filename decides how the content is read:

    chapters.txt                      -- "H:MM:SS[.fff] Title" or "M:SS Title" per line
    reader.txt, narrator.txt          -- one narrator per line
    desc.txt, description.txt, about.txt -- whole file is the description
    info.txt, book.txt                -- "Key: Value" lines; "Description:" swallows
                                         every line after it
"""

from __future__ import annotations

import re
from pathlib import Path

from loguru import logger

from ..models import (
    TICKS_PER_MILLISECOND,
    ChapterMark,
    ParsedMetadata,
    SourceKind,
    add_unique,
    seconds_to_ticks,
)
from .base import MetadataParser, parse_date, parse_int, parse_timespan

log = logger.bind(stage="text")

CHAPTER_FILES = frozenset({"chapters.txt"})
NARRATOR_FILES = frozenset({"reader.txt", "narrator.txt"})
DESCRIPTION_FILES = frozenset({"desc.txt", "description.txt", "about.txt"})
INFO_FILES = frozenset({"info.txt", "book.txt"})

_TIMESTAMP_HMS = re.compile(r"^\[?(\d{1,2}):(\d{2}):(\d{2})(?:\.(\d{1,3}))?\]?\s+(.+)$")
_TIMESTAMP_MS = re.compile(r"^\[?(\d{1,2}):(\d{2})\]?\s+(.+)$")
_KEY_VALUE = re.compile(r"^([^:]+):\s*(.*)$")


def _lines(content: str) -> list[str]:
    """Trimmed, non-empty lines."""
    return [line.strip() for line in content.split("\n") if line.strip()]


class SimpleTextParser(MetadataParser):
    name = "Simple Text"
    kind = SourceKind.TEXT
    priority = 30
    extensions = frozenset({".txt"})
    filenames = CHAPTER_FILES | NARRATOR_FILES | DESCRIPTION_FILES | INFO_FILES

    def can_parse(self, path: Path) -> bool:
        # Only the known names; arbitrary .txt files are not metadata
        path = Path(path)
        return path.suffix.lower() == ".txt" and path.name.lower() in self.filenames

    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        if not content or not content.strip():
            return None

        filename = Path(source_path).name.lower() if source_path is not None else ""

        if filename in CHAPTER_FILES:
            return self._parse_chapters(content, source_path)
        if filename in NARRATOR_FILES:
            return self._parse_narrators(content, source_path)
        if filename in DESCRIPTION_FILES:
            return self._parse_description(content, source_path)
        if filename in INFO_FILES:
            return self._parse_info(content, source_path)

        log.debug(f"No text layout for {filename!r}")
        return None

    def _parse_chapters(self, content: str, source_path: Path | None) -> ParsedMetadata | None:
        record = self._new_record(source_path)

        for line in _lines(content):
            m = _TIMESTAMP_HMS.match(line)
            if m:
                hours, minutes, seconds = int(m.group(1)), int(m.group(2)), int(m.group(3))
                millis = int(m.group(4).ljust(3, "0")) if m.group(4) else 0
                ticks = (
                    seconds_to_ticks(hours * 3600 + minutes * 60 + seconds)
                    + millis * TICKS_PER_MILLISECOND
                )
                record.chapters.append(ChapterMark(name=m.group(5).strip(), start_ticks=ticks))
                continue

            m = _TIMESTAMP_MS.match(line)
            if m:
                ticks = seconds_to_ticks(int(m.group(1)) * 60 + int(m.group(2)))
                record.chapters.append(ChapterMark(name=m.group(3).strip(), start_ticks=ticks))

        return self._finish(record)

    def _parse_narrators(self, content: str, source_path: Path | None) -> ParsedMetadata | None:
        record = self._new_record(source_path)
        for line in _lines(content):
            add_unique(record.narrators, line)
        return self._finish(record)

    def _parse_description(self, content: str, source_path: Path | None) -> ParsedMetadata | None:
        record = self._new_record(source_path)
        record.description = content.strip() or None
        return self._finish(record)

    def _parse_info(self, content: str, source_path: Path | None) -> ParsedMetadata | None:
        record = self._new_record(source_path)
        description: list[str] = []
        in_description = False

        for line in _lines(content):
            if in_description:
                description.append(line)
                continue

            m = _KEY_VALUE.match(line)
            if not m:
                continue

            key = m.group(1).strip().lower()
            value = m.group(2).strip()

            if not value:
                continue
            if key == "description":
                in_description = True
                description.append(value)
            else:
                self._apply_info_key(record, key, value)

        if description:
            record.description = "\n".join(description)

        return self._finish(record)

    @staticmethod
    def _apply_info_key(record: ParsedMetadata, key: str, value: str) -> None:
        if key == "title":
            record.title = value
        elif key in ("author", "writer"):
            add_unique(record.authors, value)
        elif key in ("narrator", "reader"):
            add_unique(record.narrators, value)
        elif key == "publisher":
            record.publisher = value
        elif key == "year":
            year = parse_int(value)
            if year is not None:
                record.year = year
        elif key == "date":
            published = parse_date(value)
            if published is not None:
                record.published_date = published
                if record.year is None:
                    record.year = published.year
        elif key == "genre":
            for genre in value.split(","):
                add_unique(record.genres, genre.strip())
        elif key == "series":
            record.series_name = value
        elif key == "duration":
            ticks = parse_timespan(value)
            if ticks is not None:
                record.duration_ticks = ticks
        elif key == "language":
            record.language = value
        elif key == "isbn":
            record.set_isbn(value)
        elif key == "asin":
            record.asin = value
        elif key == "abridged":
            record.abridged = value.lower() in ("yes", "true")

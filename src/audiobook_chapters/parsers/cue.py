"""CUE sheet parser.

Album-level commands (before the first TRACK) describe the book; each
TRACK ... AUDIO block describes one chapter. INDEX 01 gives the chapter start
as MM:SS:FF where FF counts CD frames (75 per second).
"""

from __future__ import annotations

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
from .base import MetadataParser

log = logger.bind(stage="cue")

CUE_FRAMES_PER_SECOND = 75

_REM_GENRE = re.compile(r'^REM\s+GENRE\s+"?(.+?)"?$', re.IGNORECASE)
_REM_DATE = re.compile(r"^REM\s+DATE\s+(\d+)$", re.IGNORECASE)
_REM_COMMENT = re.compile(r'^REM\s+COMMENT\s+"?(.+?)"?$', re.IGNORECASE)
_PERFORMER = re.compile(r'^PERFORMER\s+"?(.+?)"?$', re.IGNORECASE)
_TITLE = re.compile(r'^TITLE\s+"?(.+?)"?$', re.IGNORECASE)
_SONGWRITER = re.compile(r'^SONGWRITER\s+"?(.+?)"?$', re.IGNORECASE)
_TRACK = re.compile(r"^TRACK\s+(\d+)\s+AUDIO$", re.IGNORECASE)
_INDEX = re.compile(r"^INDEX\s+01\s+(\d+):(\d+):(\d+)$", re.IGNORECASE)


def cue_time_to_ticks(minutes: int, seconds: int, frames: int) -> int:
    """Convert an MM:SS:FF cue timestamp to ticks."""
    return seconds_to_ticks(minutes * 60 + seconds + frames / CUE_FRAMES_PER_SECOND)


class CueParser(MetadataParser):
    name = "CUE Sheet"
    kind = SourceKind.CUE
    priority = 50
    extensions = frozenset({".cue"})

    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        if not content or not content.strip():
            return None

        record = self._new_record(source_path)
        in_track = False
        track_title: str | None = None

        for raw_line in content.split("\n"):
            line = raw_line.strip()
            if not line:
                continue

            if _TRACK.match(line):
                in_track = True
                track_title = None
                continue

            if in_track:
                track_title = self._track_line(line, record, track_title)
            else:
                self._album_line(line, record)

        log.debug(f"Parsed {len(record.chapters)} cue tracks from {source_path}")
        return self._finish(record)

    @staticmethod
    def _track_line(
        line: str, record: ParsedMetadata, track_title: str | None
    ) -> str | None:
        """Handle one line inside a TRACK block. Returns the pending track title."""
        m = _TITLE.match(line)
        if m:
            return m.group(1)

        # Per-track PERFORMER carries no book-level meaning
        if _PERFORMER.match(line):
            return track_title

        m = _INDEX.match(line)
        if m:
            ticks = cue_time_to_ticks(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            name = track_title or f"Chapter {len(record.chapters) + 1}"
            record.chapters.append(ChapterMark(name=name, start_ticks=ticks))
            return track_title

        m = _SONGWRITER.match(line)
        if m:
            add_unique(record.narrators, m.group(1))
        return track_title

    @staticmethod
    def _album_line(line: str, record: ParsedMetadata) -> None:
        m = _TITLE.match(line)
        if m:
            record.title = m.group(1)
            return

        m = _PERFORMER.match(line)
        if m:
            add_unique(record.authors, m.group(1))
            return

        m = _REM_GENRE.match(line)
        if m:
            add_unique(record.genres, m.group(1).strip())
            return

        m = _REM_DATE.match(line)
        if m:
            record.year = int(m.group(1))
            return

        m = _REM_COMMENT.match(line)
        if m:
            record.description = m.group(1)
            return

        m = _SONGWRITER.match(line)
        if m:
            add_unique(record.narrators, m.group(1))

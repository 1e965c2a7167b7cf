"""Chapter-per-file audiobook detection.

A directory counts as a multi-file audiobook when it holds at least two audio
files and at least 70% of them carry recognisable numbering in their names
("Chapter 01 - ...", "Part 2", "Disc 1 - 03 - ...", "07. ...", "1 Title").
Chapters are then synthesized from the files in track order, each starting
where the previous file's audio ends.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from pathlib import Path

from loguru import logger

from .errors import ExternalToolError
from .ffprobe import get_duration
from .models import (
    AUDIO_EXTENSIONS,
    AudiobookFile,
    ChapterMark,
    NamingStrategy,
    ParsedMetadata,
    SourceKind,
    seconds_to_ticks,
)
from .sanitize import clean_chapter_name

log = logger.bind(stage="multifile")

MIN_AUDIO_FILES = 2
MATCH_THRESHOLD = 0.7

# Patterns in priority order; each captures (number, optional title)
_DISC_TRACK = re.compile(
    r"^(?:Disc|Disk|CD)\s*(\d{1,2})\s*[-.]\s*(\d{1,3})(?:\s*[-.]\s*(.+))?$",
    re.IGNORECASE,
)
_CHAPTER = re.compile(r"^(?:Chapter|Ch\.?)\s*(\d{1,3})(?:\s*[-.]\s*(.+))?$", re.IGNORECASE)
_PART = re.compile(r"^Part\s*(\d{1,3})(?:\s*[-.]\s*(.+))?$", re.IGNORECASE)
_TRACK = re.compile(r"^Track\s*(\d{1,3})(?:\s*[-.]\s*(.+))?$", re.IGNORECASE)
_NUMBER_DASH_TITLE = re.compile(r"^(\d{1,3})\s*[-.]\s*(.+)$")
_SIMPLE_NUMBER = re.compile(r"^(\d{1,3})\s+(.+)$")

_NUMBERED_PATTERNS = (_CHAPTER, _PART, _TRACK, _NUMBER_DASH_TITLE, _SIMPLE_NUMBER)


def parse_filename(stem: str) -> tuple[int | None, str | None]:
    """Extract (track number, title fragment) from a filename without extension.

    Disc/track names combine as disc * 1000 + track so they sort as one number.
    Returns (None, None) when no pattern matches.
    """
    m = _DISC_TRACK.match(stem)
    if m:
        disc = int(m.group(1))
        track = int(m.group(2))
        title = m.group(3).strip() if m.group(3) else None
        return disc * 1000 + track, title

    for pattern in _NUMBERED_PATTERNS:
        m = pattern.match(stem)
        if m:
            title = m.group(2).strip() if m.group(2) else None
            return int(m.group(1)), title

    return None, None


def list_audio_files(directory: Path, files: Iterable[Path] | None = None) -> list[Path]:
    """Audio files directly inside directory (not recursive).

    Pass files to reuse an existing directory listing.
    """
    if files is None:
        if not directory.is_dir():
            return []
        files = directory.iterdir()
    return sorted(
        f for f in files if f.suffix.lower() in AUDIO_EXTENSIONS and f.is_file()
    )


class MultiFileAudiobookDetector:
    """Detects chapter-per-file directories and synthesizes their chapters.

    Attributes:
        duration_lookup: Returns an audio file's duration in seconds. Defaults
            to ffprobe; injected in tests and by hosts with their own media probe.
    """

    parse_filename = staticmethod(parse_filename)

    def __init__(self, duration_lookup: Callable[[Path], float] = get_duration) -> None:
        self.duration_lookup = duration_lookup

    def is_multi_file(self, directory: Path, files: Iterable[Path] | None = None) -> bool:
        """Whether directory looks like one audiobook split into numbered files."""
        audio_files = list_audio_files(directory, files)
        if len(audio_files) < MIN_AUDIO_FILES:
            return False

        matching = sum(1 for f in audio_files if parse_filename(f.stem)[0] is not None)
        detected = matching >= len(audio_files) * MATCH_THRESHOLD
        log.debug(
            f"{directory.name}: {matching}/{len(audio_files)} numbered audio files "
            f"(multi-file={detected})"
        )
        return detected

    def order_files(
        self, directory: Path, files: Iterable[Path] | None = None
    ) -> list[AudiobookFile]:
        """Audio files in playback order.

        Sorted by parsed track number (unnumbered files last), then by name
        case-insensitively; sort_order is assigned from zero.
        """
        entries = []
        for path in list_audio_files(directory, files):
            track_number, title = parse_filename(path.stem)
            entries.append(
                AudiobookFile(path=path, name=path.stem, track_number=track_number, title=title)
            )

        entries.sort(
            key=lambda f: (
                f.track_number is None,
                f.track_number or 0,
                f.name.casefold(),
            )
        )
        for index, entry in enumerate(entries):
            entry.sort_order = index
        return entries

    def synthesize_chapters(
        self, files: list[AudiobookFile], strategy: NamingStrategy
    ) -> list[ChapterMark]:
        """One chapter per file, starting at the running total of prior durations.

        Fills in each file's start_ticks and duration_ticks as a side effect.
        """
        chapters = []
        cumulative = 0

        for index, entry in enumerate(files):
            entry.start_ticks = cumulative
            entry.duration_ticks = self._duration_ticks(entry.path)
            chapters.append(
                ChapterMark(name=chapter_name(entry, index, strategy), start_ticks=cumulative)
            )
            cumulative += entry.duration_ticks

        return chapters

    def build_record(
        self,
        directory: Path,
        strategy: NamingStrategy,
        files: Iterable[Path] | None = None,
    ) -> ParsedMetadata | None:
        """Metadata with synthesized chapters, or None if not a multi-file book."""
        if files is not None:
            files = list(files)
        if not self.is_multi_file(directory, files):
            return None

        ordered = self.order_files(directory, files)
        if not ordered:
            return None

        log.debug(f"Found {len(ordered)} audio files in multi-file audiobook: {directory}")

        record = ParsedMetadata(
            source_kind=SourceKind.MULTI_FILE,
            source_path=directory,
            chapters=self.synthesize_chapters(ordered, strategy),
        )
        # Directory name stands in for the title
        record.title = directory.name or None
        total = sum(f.duration_ticks for f in ordered)
        if total:
            record.duration_ticks = total
        return record

    def _duration_ticks(self, path: Path) -> int:
        try:
            return seconds_to_ticks(self.duration_lookup(path))
        except (ValueError, OSError, ExternalToolError) as e:
            log.warning(f"Failed to get duration for {path.name}: {e}")
            return 0


def chapter_name(entry: AudiobookFile, index: int, strategy: NamingStrategy) -> str:
    if strategy == NamingStrategy.USE_SEQUENTIAL_NUMBERING:
        return f"Chapter {index + 1}"
    if strategy == NamingStrategy.USE_METADATA_TITLE:
        return entry.title or clean_chapter_name(entry.name)
    return clean_chapter_name(entry.name)

"""Core enums, constants, and record types for audiobook chapter extraction.

Enums:
    SourceKind      -- Which parser/detector produced a record. The string values
                       double as the tags used in the metadata priority order.
    NamingStrategy  -- How chapters are named when synthesized from a directory of
                       chapter-per-file audio.

Records:
    ChapterMark     -- A named start point, in canonical ticks.
    ParsedMetadata  -- The unit record produced by every parser and the detector.
    AudiobookFile   -- One audio file of a multi-file audiobook, in playback order.

All times are canonical ticks (100 ns), the same unit Jellyfin stores chapter
positions in.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from pathlib import Path

TICKS_PER_SECOND = 10_000_000
TICKS_PER_MILLISECOND = 10_000


class SourceKind(StrEnum):
    CUE = "cue"
    OPF = "opf"
    JSON = "json"
    NFO = "nfo"
    FFMETADATA = "ffmetadata"
    TEXT = "txt"
    MULTI_FILE = "multifile"
    MERGED = "merged"


class NamingStrategy(StrEnum):
    """Chapter naming for multi-file audiobooks.

    use_filename            -- cleaned filename (numbering and prefixes stripped)
    use_metadata_title      -- title fragment parsed from the filename, else cleaned filename
    use_sequential_numbering -- "Chapter 1", "Chapter 2", ...
    parse_filename_pattern  -- same as use_filename
    """

    USE_FILENAME = "use_filename"
    USE_METADATA_TITLE = "use_metadata_title"
    USE_SEQUENTIAL_NUMBERING = "use_sequential_numbering"
    PARSE_FILENAME_PATTERN = "parse_filename_pattern"


DEFAULT_PRIORITY: tuple[str, ...] = ("opf", "json", "nfo", "cue", "ffmetadata", "txt")

AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".m4a",
        ".m4b",
        ".flac",
        ".ogg",
        ".opus",
        ".wma",
        ".aac",
        ".wav",
        ".aiff",
    }
)


def seconds_to_ticks(seconds: float) -> int:
    """Convert seconds to canonical ticks, rounding to the nearest tick."""
    return round(seconds * TICKS_PER_SECOND)


def ticks_to_seconds(ticks: int) -> float:
    return ticks / TICKS_PER_SECOND


def add_unique(target: list[str], value: str | None) -> bool:
    """Append value unless empty or already present (case-insensitive).

    Returns True if the value was added.
    """
    if not value:
        return False
    lowered = value.casefold()
    if any(existing.casefold() == lowered for existing in target):
        return False
    target.append(value)
    return True


@dataclass
class ChapterMark:
    name: str
    start_ticks: int

    @property
    def start_seconds(self) -> float:
        return ticks_to_seconds(self.start_ticks)


@dataclass
class ParsedMetadata:
    """Metadata for one audiobook, as read from a single source or merged.

    List fields (authors, narrators, genres, tags) hold no two entries that
    differ only by case; use add_unique() to extend them.
    """

    source_kind: SourceKind
    source_path: Path | None = None

    title: str | None = None
    sort_title: str | None = None
    original_title: str | None = None
    subtitle: str | None = None
    description: str | None = None
    publisher: str | None = None
    published_date: date | None = None
    year: int | None = None
    language: str | None = None
    community_rating: float | None = None
    critic_rating: float | None = None
    abridged: bool | None = None
    series_name: str | None = None
    series_index: float | None = None

    authors: list[str] = field(default_factory=list)
    narrators: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    isbn: str | None = None
    isbn13: str | None = None
    asin: str | None = None
    audible_asin: str | None = None
    goodreads_id: str | None = None
    google_books_id: str | None = None
    open_library_id: str | None = None
    provider_ids: dict[str, str] = field(default_factory=dict)

    chapters: list[ChapterMark] = field(default_factory=list)
    duration_ticks: int | None = None
    cover_image_path: Path | None = None

    @property
    def has_chapters(self) -> bool:
        return len(self.chapters) > 0

    @property
    def has_content(self) -> bool:
        """Whether the record carries anything worth keeping."""
        return bool(
            self.title
            or self.authors
            or self.narrators
            or self.has_chapters
            or self.description
        )

    def set_isbn(self, value: str) -> None:
        """Route an ISBN to isbn13 or isbn by length."""
        if len(value) == 13:
            self.isbn13 = value
        else:
            self.isbn = value

    def to_dict(self) -> dict:
        """JSON-serializable representation (None fields omitted)."""
        data: dict = {"source_kind": self.source_kind.value}
        for name in SCALAR_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, (Path, date)):
                value = str(value)
            data[name] = value
        for name in LIST_FIELDS:
            values = getattr(self, name)
            if values:
                data[name] = list(values)
        if self.source_path is not None:
            data["source_path"] = str(self.source_path)
        if self.provider_ids:
            data["provider_ids"] = dict(self.provider_ids)
        data["chapters"] = [
            {"name": c.name, "start_ticks": c.start_ticks} for c in self.chapters
        ]
        return data


# Fields merged first-write-wins, in merge order
SCALAR_FIELDS: tuple[str, ...] = (
    "title",
    "sort_title",
    "original_title",
    "subtitle",
    "description",
    "publisher",
    "published_date",
    "year",
    "language",
    "community_rating",
    "critic_rating",
    "abridged",
    "series_name",
    "series_index",
    "isbn",
    "isbn13",
    "asin",
    "audible_asin",
    "goodreads_id",
    "google_books_id",
    "open_library_id",
    "duration_ticks",
    "cover_image_path",
)

# Fields merged as case-insensitive unions
LIST_FIELDS: tuple[str, ...] = ("authors", "narrators", "genres", "tags")


@dataclass
class AudiobookFile:
    """One audio file of a multi-file audiobook.

    Built and populated during a single detection pass; never persisted.
    """

    path: Path
    name: str
    track_number: int | None = None
    title: str | None = None
    sort_order: int = 0
    start_ticks: int = 0
    duration_ticks: int = 0

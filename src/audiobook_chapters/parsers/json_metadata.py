"""JSON metadata parser.

Three dialects, told apart by shape rather than filename:

    chapters-only -- top-level array of chapter objects
    nested        -- Audiobookshelf export: {"libraryItem": {"media": {"metadata",
                     "chapters"}}} or {"mediaMetadata": {...}, "chapters": [...]}
    generic       -- flat object with several accepted spellings per field

Chapter start times may be given in seconds (start, startTime, startOffset),
milliseconds (startMs, startTimeMs) or ticks (startPositionTicks), tried in
that order. A chapter with none of them is dropped.
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from ..models import (
    ChapterMark,
    ParsedMetadata,
    SourceKind,
    add_unique,
    seconds_to_ticks,
)
from .base import (
    MetadataParser,
    clean_str,
    milliseconds_to_ticks,
    parse_date,
    parse_float,
    parse_int,
)

log = logger.bind(stage="json")


def _get_str(obj: dict, *keys: str) -> str | None:
    """First non-blank string value among keys."""
    for key in keys:
        value = clean_str(obj.get(key))
        if value is not None:
            return value
    return None


def _get_int(obj: dict, *keys: str) -> int | None:
    for key in keys:
        value = parse_int(obj.get(key))
        if value is not None:
            return value
    return None


def _get_float(obj: dict, *keys: str) -> float | None:
    for key in keys:
        value = parse_float(obj.get(key))
        if value is not None:
            return value
    return None


def _name_of(item: object) -> str | None:
    """A person/genre entry: a plain string or an object with a "name"."""
    if isinstance(item, dict):
        return _get_str(item, "name")
    return clean_str(item)


def _add_names(target: list[str], value: object) -> None:
    """Extend target from a string-or-array value."""
    if isinstance(value, list):
        for item in value:
            add_unique(target, _name_of(item))
    else:
        add_unique(target, clean_str(value))


def parse_chapter(item: object) -> ChapterMark | None:
    """Build a chapter from one JSON chapter object, or None if it has no start."""
    if not isinstance(item, dict):
        return None

    seconds = _get_float(item, "start", "startTime", "startOffset")
    ms = _get_float(item, "startMs", "startTimeMs")
    raw_ticks = item.get("startPositionTicks")

    if seconds is not None:
        ticks = seconds_to_ticks(seconds)
    elif ms is not None:
        ticks = milliseconds_to_ticks(ms)
    elif isinstance(raw_ticks, int) and not isinstance(raw_ticks, bool):
        ticks = raw_ticks
    else:
        return None

    name = _get_str(item, "title", "name", "chapterTitle") or f"Chapter {ticks}"
    return ChapterMark(name=name, start_ticks=ticks)


def _add_chapters(record: ParsedMetadata, items: object) -> None:
    if not isinstance(items, list):
        return
    for item in items:
        chapter = parse_chapter(item)
        if chapter is not None:
            record.chapters.append(chapter)


class JsonMetadataParser(MetadataParser):
    name = "JSON Metadata"
    kind = SourceKind.JSON
    priority = 90
    extensions = frozenset({".json"})
    filenames = frozenset(
        {
            "metadata.json",
            "audiobook.json",
            "book.json",
            "chapters.json",
            "abs.json",
            "info.json",
        }
    )

    def can_parse(self, path: Path) -> bool:
        # Arbitrary .json files are too common to claim by extension alone
        path = Path(path)
        return path.suffix.lower() == ".json" and path.name.lower() in self.filenames

    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        if not content or not content.strip():
            return None

        try:
            root = json.loads(content)
        except json.JSONDecodeError as e:
            log.debug(f"Not valid JSON ({source_path}): {e}")
            return None

        if isinstance(root, list):
            log.debug(f"Chapters-only JSON: {source_path}")
            record = self._new_record(source_path)
            _add_chapters(record, root)
            return self._finish(record)

        if not isinstance(root, dict):
            return None

        if "libraryItem" in root or "mediaMetadata" in root:
            log.debug(f"Audiobookshelf-style JSON: {source_path}")
            return self._parse_nested(root, source_path)

        return self._parse_generic(root, source_path)

    def _parse_nested(self, root: dict, source_path: Path | None) -> ParsedMetadata | None:
        record = self._new_record(source_path)

        if "libraryItem" in root:
            library_item = root["libraryItem"]
            media = library_item.get("media") if isinstance(library_item, dict) else None
            meta = media.get("metadata") if isinstance(media, dict) else None
            if not isinstance(meta, dict):
                return None
            _add_chapters(record, media.get("chapters"))
        else:
            meta = root["mediaMetadata"]
            if not isinstance(meta, dict):
                return None
            _add_chapters(record, root.get("chapters"))

        record.title = _get_str(meta, "title")
        record.subtitle = _get_str(meta, "subtitle")
        record.description = _get_str(meta, "description")
        record.publisher = _get_str(meta, "publisher")
        record.language = _get_str(meta, "language")
        record.asin = _get_str(meta, "asin")
        isbn = _get_str(meta, "isbn")
        if isbn:
            record.set_isbn(isbn)
        record.year = _get_int(meta, "publishedYear")

        if meta.get("abridged") is True:
            record.abridged = True

        _add_names(record.authors, meta.get("authors"))
        _add_names(record.narrators, meta.get("narrators"))
        _add_names(record.genres, meta.get("genres"))

        series = meta.get("series")
        if isinstance(series, list):
            for entry in series:
                if not isinstance(entry, dict):
                    continue
                if record.series_name is None:
                    record.series_name = _get_str(entry, "name")
                if record.series_index is None:
                    record.series_index = _get_float(entry, "sequence")

        return self._finish(record)

    def _parse_generic(self, root: dict, source_path: Path | None) -> ParsedMetadata | None:
        record = self._new_record(source_path)

        record.title = _get_str(root, "title", "name", "bookTitle")
        record.sort_title = _get_str(root, "sortTitle", "titleSort")
        record.subtitle = _get_str(root, "subtitle")
        record.description = _get_str(root, "description", "summary", "synopsis")
        record.publisher = _get_str(root, "publisher")
        record.language = _get_str(root, "language")

        for key in ("author", "authors", "writer", "writers"):
            _add_names(record.authors, root.get(key))
        for key in ("narrator", "narrators", "reader", "readers"):
            _add_names(record.narrators, root.get(key))

        record.year = _get_int(root, "year", "publishedYear")
        published = parse_date(_get_str(root, "date", "publishedDate", "releaseDate"))
        if published is not None:
            record.published_date = published
            if record.year is None:
                record.year = published.year

        record.isbn = _get_str(root, "isbn")
        record.isbn13 = _get_str(root, "isbn13")
        record.asin = _get_str(root, "asin")
        record.audible_asin = _get_str(root, "audibleAsin")
        record.goodreads_id = _get_str(root, "goodreadsId", "goodreads")
        record.google_books_id = _get_str(root, "googleBooksId")
        record.open_library_id = _get_str(root, "openLibraryId")

        record.community_rating = _get_float(root, "rating", "communityRating")

        if "abridged" in root:
            record.abridged = root["abridged"] is True

        series = root.get("series")
        if isinstance(series, dict):
            record.series_name = _get_str(series, "name", "title")
            record.series_index = _get_float(series, "position", "index", "number")
        elif isinstance(series, str):
            record.series_name = clean_str(series)
        if record.series_index is None:
            record.series_index = _get_float(root, "seriesIndex", "seriesPosition")

        _add_names(record.genres, root.get("genres"))
        _add_names(record.tags, root.get("tags"))
        _add_chapters(record, root.get("chapters"))

        return self._finish(record)

"""NFO (Kodi/XBMC) metadata parser.

NFO files are XML, but often carry a scraper banner or URL before the first
tag; everything before the first "<" is discarded.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from loguru import logger

from ..models import TICKS_PER_SECOND, ParsedMetadata, SourceKind, add_unique
from .base import MetadataParser, clean_str, parse_date, parse_float, parse_int

log = logger.bind(stage="nfo")

SUPPORTED_ROOTS = frozenset({"audiobook", "book", "album", "movie"})

# uniqueid type (lower-cased) -> ParsedMetadata attribute
_UNIQUEID_FIELDS = {
    "asin": "asin",
    "audible": "audible_asin",
    "audible_asin": "audible_asin",
    "goodreads": "goodreads_id",
    "googlebooks": "google_books_id",
    "google": "google_books_id",
    "openlibrary": "open_library_id",
}


def _value(parent: ET.Element, tag: str) -> str | None:
    elem = parent.find(tag)
    if elem is None:
        return None
    return clean_str("".join(elem.itertext()))


def _first(parent: ET.Element, *tags: str) -> str | None:
    for tag in tags:
        value = _value(parent, tag)
        if value is not None:
            return value
    return None


class NfoParser(MetadataParser):
    name = "NFO (Kodi/XBMC)"
    kind = SourceKind.NFO
    priority = 80
    extensions = frozenset({".nfo"})

    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        if not content or not content.strip():
            return None

        xml_start = content.find("<")
        if xml_start < 0:
            return None
        content = content[xml_start:]

        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            log.debug(f"Not valid XML ({source_path}): {e}")
            return None

        root_name = root.tag.rsplit("}", 1)[-1].lower()
        if root_name not in SUPPORTED_ROOTS:
            log.debug(f"Unsupported NFO root <{root_name}> in {source_path}")
            return None

        record = self._new_record(source_path)

        record.title = _value(root, "title")
        record.original_title = _value(root, "originaltitle")
        record.sort_title = _value(root, "sorttitle")
        record.description = _first(root, "plot", "outline", "description")

        for tag in ("author", "artist", "writer"):
            add_unique(record.authors, _value(root, tag))
        for tag in ("narrator", "reader", "performer"):
            add_unique(record.narrators, _value(root, tag))
        for actor in root.findall("actor"):
            role = _value(actor, "role")
            if role and role.lower() == "narrator":
                add_unique(record.narrators, _value(actor, "name"))

        record.publisher = _first(root, "publisher", "studio", "label")
        self._read_dates(root, record)

        for genre in root.findall("genre"):
            add_unique(record.genres, clean_str("".join(genre.itertext())))
        for tag in root.findall("tag"):
            add_unique(record.tags, clean_str("".join(tag.itertext())))

        record.community_rating = parse_float(_first(root, "rating", "userrating"))

        runtime = parse_int(_value(root, "runtime"))
        if runtime is not None:
            record.duration_ticks = runtime * 60 * TICKS_PER_SECOND

        record.language = _value(root, "language")
        self._read_series(root, record)

        for unique_id in root.findall("uniqueid"):
            self._read_unique_id(unique_id, record)

        thumb = _first(root, "thumb", "poster", "cover")
        if thumb and source_path is not None:
            cover = Path(source_path).parent / thumb
            if cover.is_file():
                record.cover_image_path = cover

        return self._finish(record)

    @staticmethod
    def _read_dates(root: ET.Element, record: ParsedMetadata) -> None:
        """A parseable release date wins over <year> for the year."""
        record.year = parse_int(_value(root, "year"))
        released = parse_date(_first(root, "releasedate", "premiered"))
        if released is not None:
            record.published_date = released
            record.year = released.year

    @staticmethod
    def _read_series(root: ET.Element, record: ParsedMetadata) -> None:
        set_elem = root.find("set")
        if set_elem is not None:
            record.series_name = _value(set_elem, "name") or clean_str(
                "".join(set_elem.itertext())
            )
        if record.series_name is None:
            record.series_name = _value(root, "series")
        record.series_index = parse_float(_first(root, "seriesindex", "position"))

    @staticmethod
    def _read_unique_id(unique_id: ET.Element, record: ParsedMetadata) -> None:
        id_type = clean_str(unique_id.get("type"))
        value = clean_str("".join(unique_id.itertext()))
        if not id_type or not value:
            return

        key = id_type.lower()
        if key == "isbn":
            record.set_isbn(value)
        elif key in _UNIQUEID_FIELDS:
            setattr(record, _UNIQUEID_FIELDS[key], value)
        else:
            record.provider_ids[id_type] = value

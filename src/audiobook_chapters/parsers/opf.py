"""OPF (Calibre/EPUB package) metadata parser.

Reads the Dublin Core block of a metadata.opf. Elements are looked up in
their proper namespace first and without a namespace as a fallback, since
hand-written OPF files often omit the prefixes.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from loguru import logger

from ..models import ParsedMetadata, SourceKind, add_unique
from ..sanitize import strip_html
from .base import MetadataParser, clean_str, parse_date, parse_float, parse_int

log = logger.bind(stage="opf")

# XML namespaces
NS_DC = "http://purl.org/dc/elements/1.1/"
NS_OPF = "http://www.idpf.org/2007/opf"

COVER_FILENAMES = ("cover.jpg", "cover.png", "cover.jpeg", "folder.jpg", "folder.png")

# opf:scheme (lower-cased) -> ParsedMetadata attribute
_SCHEME_FIELDS = {
    "asin": "asin",
    "amazon": "asin",
    "audible": "audible_asin",
    "audible_asin": "audible_asin",
    "goodreads": "goodreads_id",
    "google": "google_books_id",
    "google-books": "google_books_id",
    "openlibrary": "open_library_id",
}


def _text(elem: ET.Element | None) -> str | None:
    if elem is None:
        return None
    return clean_str("".join(elem.itertext()))


def _elements(parent: ET.Element, local: str, ns: str) -> list[ET.Element]:
    """Namespaced children first, then un-prefixed ones."""
    return parent.findall(f"{{{ns}}}{local}") + parent.findall(local)


def _first_value(parent: ET.Element, local: str, ns: str = NS_DC) -> str | None:
    value = _text(parent.find(f"{{{ns}}}{local}"))
    if value is None:
        value = _text(parent.find(local))
    return value


def _attr(elem: ET.Element, name: str) -> str | None:
    value = elem.get(f"{{{NS_OPF}}}{name}")
    if value is None:
        value = elem.get(name)
    return value


class OpfParser(MetadataParser):
    name = "OPF (Calibre/EPUB)"
    kind = SourceKind.OPF
    priority = 100
    extensions = frozenset({".opf"})
    filenames = frozenset({"metadata.opf", "content.opf"})

    def parse_content(
        self, content: str, source_path: Path | None = None
    ) -> ParsedMetadata | None:
        if not content or not content.strip():
            return None

        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            log.debug(f"Not valid XML ({source_path}): {e}")
            return None

        metadata_elem = root.find(f"{{{NS_OPF}}}metadata")
        if metadata_elem is None:
            metadata_elem = root.find("metadata")
        if metadata_elem is None:
            log.debug(f"No <metadata> element in {source_path}")
            return None

        record = self._new_record(source_path)

        record.title = _first_value(metadata_elem, "title")
        self._read_creators(metadata_elem, record)

        description = _first_value(metadata_elem, "description")
        if description:
            record.description = strip_html(description) or None

        record.publisher = _first_value(metadata_elem, "publisher")
        self._read_date(_first_value(metadata_elem, "date"), record)
        record.language = _first_value(metadata_elem, "language")

        for subject in _elements(metadata_elem, "subject", NS_DC):
            add_unique(record.genres, _text(subject))

        for identifier in _elements(metadata_elem, "identifier", NS_DC):
            self._read_identifier(identifier, record)

        for meta in _elements(metadata_elem, "meta", NS_OPF):
            self._read_calibre_meta(meta, record)

        if source_path is not None:
            record.cover_image_path = find_cover(Path(source_path).parent)

        return self._finish(record)

    @staticmethod
    def _read_creators(metadata_elem: ET.Element, record: ParsedMetadata) -> None:
        """dc:creator with opf:role="nrt" is a narrator; anything else an author."""
        for creator in _elements(metadata_elem, "creator", NS_DC):
            name = _text(creator)
            if not name:
                continue
            role = (_attr(creator, "role") or "").lower()
            if role == "nrt":
                add_unique(record.narrators, name)
            else:
                add_unique(record.authors, name)

    @staticmethod
    def _read_date(value: str | None, record: ParsedMetadata) -> None:
        if not value:
            return
        parsed = parse_date(value)
        if parsed is not None:
            record.published_date = parsed
            record.year = parsed.year
            return
        year = parse_int(value)
        if year is not None:
            record.year = year

    @staticmethod
    def _read_identifier(identifier: ET.Element, record: ParsedMetadata) -> None:
        value = _text(identifier)
        if not value:
            return

        scheme = _attr(identifier, "scheme")
        if not scheme:
            # Guess the scheme from the value shape
            if value.lower().startswith("urn:isbn:"):
                value = value[len("urn:isbn:"):]
                scheme = "isbn"
            elif len(value) == 10 and value.startswith("B"):
                scheme = "asin"
            elif len(value) == 13 and value.isdigit():
                scheme = "isbn"

        if not scheme:
            log.debug(f"Ignoring identifier without scheme: {value!r}")
            return

        key = scheme.lower()
        if key == "isbn":
            record.set_isbn(value)
        elif key in _SCHEME_FIELDS:
            setattr(record, _SCHEME_FIELDS[key], value)
        else:
            record.provider_ids[scheme] = value

    @staticmethod
    def _read_calibre_meta(meta: ET.Element, record: ParsedMetadata) -> None:
        name = meta.get("name")
        content = meta.get("content")
        if not name or not content:
            return

        if name == "calibre:series":
            record.series_name = content
        elif name == "calibre:series_index":
            index = parse_float(content)
            if index is not None:
                record.series_index = index
        elif name == "calibre:rating":
            rating = parse_float(content)
            if rating is not None:
                record.community_rating = rating
        elif name == "calibre:title_sort":
            record.sort_title = content


def find_cover(directory: Path) -> Path | None:
    """First conventional cover image present in directory."""
    for filename in COVER_FILENAMES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None

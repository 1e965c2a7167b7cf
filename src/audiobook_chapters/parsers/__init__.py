"""Parser registry -- the fixed set of sidecar parsers, in discovery order.

Parsers:
    opf         -- OPF/Dublin Core XML (metadata.opf, content.opf, *.opf).
                   Creators split into authors/narrators by opf:role,
                   identifiers routed by opf:scheme, Calibre series/rating/sort
                   meta tags, description HTML stripped, adjacent cover image.
    json        -- metadata.json, audiobook.json, book.json, chapters.json,
                   abs.json, info.json. Chapters-only arrays, Audiobookshelf
                   nested exports, and flat objects with alternative key names.
    nfo         -- Kodi/XBMC *.nfo XML with audiobook/book/album/movie roots.
                   Leading non-XML junk is skipped. Runtime minutes become the
                   duration; uniqueid elements become identifiers.
    ffmetadata  -- ;FFMETADATA1 files (*.ffmetadata, *.ffmeta, FFMETADATA,
                   ffmetadata.txt). Global tags plus [CHAPTER] sections with
                   TIMEBASE-relative START values.
    cue         -- *.cue sheets. Album TITLE/PERFORMER/REM lines, one chapter
                   per TRACK at its INDEX 01 (MM:SS:FF, 75 frames/second).
    txt         -- chapters.txt, reader.txt/narrator.txt, desc.txt/
                   description.txt/about.txt, info.txt/book.txt; the filename
                   picks the layout.
"""

from .base import MetadataParser
from .cue import CueParser
from .ffmetadata import FfmetadataParser
from .json_metadata import JsonMetadataParser
from .nfo import NfoParser
from .opf import OpfParser
from .text import SimpleTextParser

__all__ = [
    "CueParser",
    "FfmetadataParser",
    "JsonMetadataParser",
    "MetadataParser",
    "NfoParser",
    "OpfParser",
    "SimpleTextParser",
    "get_parsers",
]


def get_parsers() -> list[MetadataParser]:
    """Fresh instances of every parser, in discovery order."""
    return [
        OpfParser(),
        JsonMetadataParser(),
        NfoParser(),
        FfmetadataParser(),
        CueParser(),
        SimpleTextParser(),
    ]

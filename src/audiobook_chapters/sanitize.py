"""Text cleanup for descriptions and synthesized chapter names."""

import html
import re

from loguru import logger

log = logger.bind(stage="sanitize")

_HTML_TAG = re.compile(r"<[^>]+>")
_LEADING_NUMBER = re.compile(r"^\d{1,3}\s*[-.]\s*")
_NUMBERED_PREFIX = re.compile(
    r"^(?:Chapter|Ch\.?|Part|Track)\s*\d{1,3}\s*[-.]\s*", re.IGNORECASE
)
_DISC_PREFIX = re.compile(
    r"^(?:Disc|Disk|CD)\s*\d{1,2}\s*[-.]\s*\d{1,3}\s*[-.]\s*", re.IGNORECASE
)


def strip_html(text: str) -> str:
    """Strip HTML tags and decode entities, keeping the text content."""
    if not text:
        return ""
    cleaned = _HTML_TAG.sub("", text)
    return html.unescape(cleaned).strip()


def clean_chapter_name(name: str) -> str:
    """Turn an audio filename stem into a chapter name.

    Strips leading track numbers ("01 - ", "01. ") and numbered prefixes
    ("Chapter 3 - ", "Part 2 - ", "Track 07 - ", "Disc 1 - 04 - ").
    Returns the stripped original if nothing is left.
    """
    cleaned = _LEADING_NUMBER.sub("", name)
    cleaned = _NUMBERED_PREFIX.sub("", cleaned)
    cleaned = _DISC_PREFIX.sub("", cleaned)
    cleaned = cleaned.strip()
    if not cleaned:
        log.debug(f"clean_chapter_name: nothing left of {name!r}, keeping it")
        return name.strip()
    return cleaned

"""Collect metadata from every sidecar in an audiobook directory and merge it.

collect() lists the directory once, hands each claimed file to its parser on
a thread pool, adds the multi-file detector's record, then merges. A parser
that raises is logged and skipped; it never takes its siblings down with it.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from loguru import logger

from .config import ChapterConfig, parse_priority_order
from .models import LIST_FIELDS, SCALAR_FIELDS, ParsedMetadata, SourceKind, add_unique
from .multifile import MultiFileAudiobookDetector
from .parsers import MetadataParser, get_parsers

log = logger.bind(stage="aggregator")

__all__ = [
    "MetadataAggregator",
    "merge",
    "parse_priority_order",
    "resolve_directory",
]


def resolve_directory(item_path: Path) -> Path | None:
    """The directory to scan for an item: a file's parent, or the directory itself."""
    item_path = Path(item_path)
    if item_path.is_dir():
        return item_path
    if item_path.is_file():
        return item_path.parent
    return None


def merge(records: list[ParsedMetadata], priority_order: list[str]) -> ParsedMetadata:
    """Merge records into one, highest-priority source first.

    Scalars and identifiers: first value present wins. Lists: case-insensitive
    union in priority order. Chapters: taken whole from one record, preferring
    explicit chapter sources over multi-file synthesis, then the most chapters.
    A single record is returned as is.
    """
    if len(records) == 1:
        return records[0]

    rank = {kind: index for index, kind in enumerate(priority_order)}
    unknown = len(priority_order)
    ordered = sorted(records, key=lambda r: rank.get(r.source_kind.value, unknown))

    merged = ParsedMetadata(source_kind=SourceKind.MERGED)
    for record in ordered:
        for name in SCALAR_FIELDS:
            if getattr(merged, name) is None:
                value = getattr(record, name)
                if value is not None:
                    setattr(merged, name, value)

        for name in LIST_FIELDS:
            target = getattr(merged, name)
            for value in getattr(record, name):
                add_unique(target, value)

        for key, value in record.provider_ids.items():
            merged.provider_ids.setdefault(key, value)

    with_chapters = [r for r in ordered if r.has_chapters]
    if with_chapters:
        best = sorted(
            with_chapters,
            key=lambda r: (r.source_kind == SourceKind.MULTI_FILE, -len(r.chapters)),
        )[0]
        merged.chapters = list(best.chapters)
        log.debug(
            f"Using {len(best.chapters)} chapters from {best.source_kind} "
            f"({best.source_path})"
        )

    return merged


class MetadataAggregator:
    """Runs the parsers and the multi-file detector over one directory.

    Attributes:
        parsers: Parsers in discovery order. Defaults to the full registry.
        detector: Multi-file detector (its duration lookup defaults to ffprobe).
    """

    def __init__(
        self,
        parsers: list[MetadataParser] | None = None,
        detector: MultiFileAudiobookDetector | None = None,
    ) -> None:
        self.parsers = parsers if parsers is not None else get_parsers()
        self.detector = detector if detector is not None else MultiFileAudiobookDetector()

    def find_candidates(
        self,
        directory: Path,
        config: ChapterConfig,
        files: list[Path] | None = None,
    ) -> list[tuple[MetadataParser, Path]]:
        """(parser, file) pairs for every enabled parser and every file it claims."""
        if files is None:
            files = _list_files(directory)

        candidates = []
        for parser in self.parsers:
            if not config.is_enabled(parser.kind):
                log.debug(f"{parser.name} disabled, skipping")
                continue
            for path in files:
                if parser.can_parse(path):
                    candidates.append((parser, path))

        log.debug(f"{len(candidates)} candidate files in {directory}")
        return candidates

    def collect(
        self,
        item_path: Path,
        config: ChapterConfig,
        cancel: threading.Event | None = None,
    ) -> ParsedMetadata | None:
        """Extract and merge metadata for the item at item_path.

        Returns None when nothing usable is found or when cancel is set
        before collection finishes.
        """
        if cancel is None:
            cancel = threading.Event()

        directory = resolve_directory(item_path)
        if directory is None:
            log.warning(f"Not a file or directory: {item_path}")
            return None

        try:
            files = _list_files(directory)
        except OSError as e:
            log.warning(f"Cannot list {directory}: {e}")
            return None

        candidates = self.find_candidates(directory, config, files)
        records = self._parse_all(candidates, config, cancel)
        if records is None or cancel.is_set():
            log.info(f"Extraction cancelled: {directory}")
            return None

        if config.is_enabled(SourceKind.MULTI_FILE):
            record = self._detect_safe(directory, config, files)
            if record is not None:
                records.append(record)
            if cancel.is_set():
                log.info(f"Extraction cancelled: {directory}")
                return None

        if not records:
            log.info(f"No metadata found in {directory}")
            return None

        result = merge(records, config.priority_order)

        sources = ", ".join(str(r.source_kind) for r in records)
        log.info(
            f"{directory.name}: {len(records)} source(s) [{sources}], "
            f"title={result.title!r}, {len(result.chapters)} chapters"
        )
        return result

    def _parse_all(
        self,
        candidates: list[tuple[MetadataParser, Path]],
        config: ChapterConfig,
        cancel: threading.Event,
    ) -> list[ParsedMetadata] | None:
        """Parse candidates in parallel; results in discovery order. None if cancelled."""
        if not candidates:
            return []

        records = []
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            futures: list[Future] = [
                executor.submit(self._parse_safe, parser, path, cancel)
                for parser, path in candidates
            ]
            for future in futures:
                record = future.result()
                if cancel.is_set():
                    for pending in futures:
                        pending.cancel()
                    return None
                if record is not None:
                    records.append(record)

        return records

    @staticmethod
    def _parse_safe(
        parser: MetadataParser, path: Path, cancel: threading.Event
    ) -> ParsedMetadata | None:
        """Run one parser, converting any failure into "no record"."""
        if cancel.is_set():
            return None
        try:
            record = parser.parse(path)
        except Exception as e:
            log.warning(f"{parser.name} failed on {path.name}: {e}")
            return None

        if record is None:
            log.debug(f"{parser.name}: nothing usable in {path.name}")
        else:
            log.debug(
                f"{parser.name}: parsed {path.name} "
                f"(title={record.title!r}, {len(record.chapters)} chapters)"
            )
        return record

    def _detect_safe(
        self, directory: Path, config: ChapterConfig, files: list[Path]
    ) -> ParsedMetadata | None:
        try:
            return self.detector.build_record(
                directory, config.multi_file_naming_strategy, files
            )
        except Exception as e:
            log.warning(f"Multi-file detection failed for {directory.name}: {e}")
            return None


def _list_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.iterdir() if p.is_file())

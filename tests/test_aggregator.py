"""Tests for aggregator.py -- candidate discovery, collection, merge."""

import threading
from pathlib import Path

import pytest

from audiobook_chapters.aggregator import MetadataAggregator, merge, resolve_directory
from audiobook_chapters.config import ChapterConfig
from audiobook_chapters.errors import UnreadableFileError
from audiobook_chapters.models import (
    ChapterMark,
    NamingStrategy,
    ParsedMetadata,
    SourceKind,
)
from audiobook_chapters.multifile import MultiFileAudiobookDetector
from audiobook_chapters.parsers import CueParser, OpfParser, SimpleTextParser

OPF = """\
<package xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:title>Dune</dc:title>
    <dc:creator opf:role="aut">Frank Herbert</dc:creator>
    <dc:creator opf:role="nrt">Scott Brick</dc:creator>
  </metadata>
</package>
"""

CUE = """\
TITLE "Dune (Unabridged)"
PERFORMER "frank herbert"
REM GENRE "Science Fiction"
TRACK 01 AUDIO
  TITLE "Book One"
  INDEX 01 00:00:00
TRACK 02 AUDIO
  TITLE "Book Two"
  INDEX 01 300:00:00
TRACK 03 AUDIO
  TITLE "Book Three"
  INDEX 01 600:00:00
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ["METADATA_PRIORITY", "ENABLE_CUE", "ENABLE_OPF", "ENABLE_MULTI_FILE_DETECTION"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config():
    return ChapterConfig(_env_file=None, max_parallel_parsers=2)


@pytest.fixture
def aggregator():
    return MetadataAggregator(detector=MultiFileAudiobookDetector(lambda path: 60.0))


def _record(kind: SourceKind, **fields) -> ParsedMetadata:
    return ParsedMetadata(source_kind=kind, **fields)


def _chapters(count: int) -> list[ChapterMark]:
    return [ChapterMark(f"Chapter {i + 1}", i * 1000) for i in range(count)]


class TestResolveDirectory:
    def test_directory(self, tmp_path):
        assert resolve_directory(tmp_path) == tmp_path

    def test_file(self, tmp_path):
        book = tmp_path / "book.m4b"
        book.write_bytes(b"")
        assert resolve_directory(book) == tmp_path

    def test_missing(self, tmp_path):
        assert resolve_directory(tmp_path / "missing") is None


class TestMerge:
    def test_first_present_scalar_wins(self):
        opf = _record(SourceKind.OPF, title=None, publisher="Ace")
        cue = _record(SourceKind.CUE, title="X", publisher="Other")
        merged = merge([cue, opf], ["opf", "cue"])
        assert merged.title == "X"
        assert merged.publisher == "Ace"
        assert merged.source_kind == SourceKind.MERGED

    def test_false_is_a_value(self):
        opf = _record(SourceKind.OPF, abridged=False)
        json_record = _record(SourceKind.JSON, abridged=True)
        assert merge([json_record, opf], ["opf", "json"]).abridged is False

    def test_lists_case_insensitive_union(self):
        first = _record(SourceKind.OPF, authors=["Jane Doe"])
        second = _record(SourceKind.JSON, authors=["jane doe", "John Smith"])
        merged = merge([second, first], ["opf", "json"])
        assert merged.authors == ["Jane Doe", "John Smith"]

    def test_provider_ids_first_wins(self):
        opf = _record(SourceKind.OPF, provider_ids={"calibre": "1"})
        nfo = _record(SourceKind.NFO, provider_ids={"calibre": "2", "tmdb": "3"})
        merged = merge([nfo, opf], ["opf", "nfo"])
        assert merged.provider_ids == {"calibre": "1", "tmdb": "3"}

    def test_unknown_kinds_last_in_original_order(self):
        nfo = _record(SourceKind.NFO, title="From NFO")
        txt = _record(SourceKind.TEXT, title="From text")
        cue = _record(SourceKind.CUE, title="From cue")
        merged = merge([nfo, txt, cue], ["cue"])
        assert merged.title == "From cue"
        merged = merge([nfo, txt], ["cue"])
        assert merged.title == "From NFO"

    def test_explicit_chapters_beat_multi_file(self):
        cue = _record(SourceKind.CUE, chapters=_chapters(3))
        multi = _record(SourceKind.MULTI_FILE, chapters=_chapters(12))
        merged = merge([multi, cue], ["opf", "cue"])
        assert merged.chapters == cue.chapters

    def test_most_chapters_among_explicit(self):
        cue = _record(SourceKind.CUE, chapters=_chapters(3))
        ffmeta = _record(SourceKind.FFMETADATA, chapters=_chapters(5))
        merged = merge([cue, ffmeta], ["cue", "ffmetadata"])
        assert len(merged.chapters) == 5

    def test_tie_broken_by_priority(self):
        cue = _record(SourceKind.CUE, chapters=[ChapterMark("cue", 0)])
        txt = _record(SourceKind.TEXT, chapters=[ChapterMark("txt", 0)])
        assert merge([cue, txt], ["txt", "cue"]).chapters[0].name == "txt"

    def test_multi_file_used_when_alone(self):
        opf = _record(SourceKind.OPF, title="T")
        multi = _record(SourceKind.MULTI_FILE, title="dir", chapters=_chapters(4))
        merged = merge([opf, multi], ["opf"])
        assert merged.title == "T"
        assert len(merged.chapters) == 4

    def test_single_record_unchanged(self):
        cue = _record(SourceKind.CUE, title="X")
        merged = merge([cue], ["opf", "cue"])
        assert merged is cue
        assert merged.source_kind == SourceKind.CUE

    def test_inputs_not_mutated(self):
        opf = _record(SourceKind.OPF, authors=["A"])
        cue = _record(SourceKind.CUE, authors=["B"], chapters=_chapters(1))
        merged = merge([opf, cue], ["opf", "cue"])
        merged.authors.append("C")
        merged.chapters.append(ChapterMark("extra", 5))
        assert opf.authors == ["A"]
        assert len(cue.chapters) == 1


class TestFindCandidates:
    def test_claimed_files(self, aggregator, config, tmp_path):
        for name in ["metadata.opf", "book.cue", "info.txt", "notes.txt", "package.json", "cover.jpg"]:
            (tmp_path / name).write_text("x")
        pairs = aggregator.find_candidates(tmp_path, config)
        found = {(p.kind, path.name) for p, path in pairs}
        assert found == {
            (SourceKind.OPF, "metadata.opf"),
            (SourceKind.CUE, "book.cue"),
            (SourceKind.TEXT, "info.txt"),
        }

    def test_disabled_parser_skipped(self, aggregator, tmp_path):
        (tmp_path / "metadata.opf").write_text("x")
        (tmp_path / "book.cue").write_text("x")
        config = ChapterConfig(_env_file=None, enable_cue=False)
        pairs = aggregator.find_candidates(tmp_path, config)
        assert [p.kind for p, _ in pairs] == [SourceKind.OPF]

    def test_discovery_order_follows_registry(self, aggregator, config, tmp_path):
        (tmp_path / "a.cue").write_text("x")
        (tmp_path / "metadata.opf").write_text("x")
        pairs = aggregator.find_candidates(tmp_path, config)
        assert [p.kind for p, _ in pairs] == [SourceKind.OPF, SourceKind.CUE]


class TestCollect:
    def test_nothing_found(self, aggregator, config, tmp_path):
        (tmp_path / "readme.md").write_text("hello")
        assert aggregator.collect(tmp_path, config) is None

    def test_single_record_returned_unchanged(self, aggregator, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        record = aggregator.collect(tmp_path, config)
        assert record.source_kind == SourceKind.OPF
        assert record.title == "Dune"

    def test_item_file_uses_parent(self, aggregator, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        book = tmp_path / "dune.m4b"
        book.write_bytes(b"")
        assert aggregator.collect(book, config).title == "Dune"

    def test_missing_item(self, aggregator, config, tmp_path):
        assert aggregator.collect(tmp_path / "gone", config) is None

    def test_merges_sources(self, aggregator, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        (tmp_path / "dune.cue").write_text(CUE)
        record = aggregator.collect(tmp_path, config)
        assert record.source_kind == SourceKind.MERGED
        assert record.title == "Dune"
        assert record.authors == ["Frank Herbert"]
        assert record.narrators == ["Scott Brick"]
        assert record.genres == ["Science Fiction"]
        assert [c.name for c in record.chapters] == ["Book One", "Book Two", "Book Three"]

    def test_priority_order_from_config(self, aggregator, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        (tmp_path / "dune.cue").write_text(CUE)
        config = ChapterConfig(_env_file=None, metadata_priority="cue,opf")
        assert aggregator.collect(tmp_path, config).title == "Dune (Unabridged)"

    def test_multi_file_record_added(self, aggregator, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        for i in range(1, 5):
            (tmp_path / f"{i:02d} - Part {i}.mp3").write_bytes(b"")
        record = aggregator.collect(tmp_path, config)
        assert record.title == "Dune"
        assert len(record.chapters) == 4
        assert record.chapters[3].start_seconds == 180.0

    def test_explicit_chapters_preferred_over_files(self, aggregator, config, tmp_path):
        (tmp_path / "dune.cue").write_text(CUE)
        for i in range(1, 13):
            (tmp_path / f"Chapter {i:02d}.mp3").write_bytes(b"")
        record = aggregator.collect(tmp_path, config)
        assert len(record.chapters) == 3

    def test_multi_file_disabled(self, aggregator, tmp_path):
        for i in range(1, 5):
            (tmp_path / f"{i:02d} - Part {i}.mp3").write_bytes(b"")
        config = ChapterConfig(_env_file=None, enable_multi_file_detection=False)
        assert aggregator.collect(tmp_path, config) is None

    def test_naming_strategy_from_config(self, aggregator, tmp_path):
        for i in range(1, 4):
            (tmp_path / f"{i:02d} - Part {i}.mp3").write_bytes(b"")
        config = ChapterConfig(
            _env_file=None,
            multi_file_naming_strategy=NamingStrategy.USE_SEQUENTIAL_NUMBERING,
        )
        record = aggregator.collect(tmp_path, config)
        assert record.source_kind == SourceKind.MULTI_FILE
        assert [c.name for c in record.chapters] == ["Chapter 1", "Chapter 2", "Chapter 3"]


class _ExplodingParser(CueParser):
    def parse(self, path: Path):
        raise RuntimeError("boom")


class _UnreadableParser(OpfParser):
    def parse(self, path: Path):
        raise UnreadableFileError(path, "Permission denied")


class TestFailureIsolation:
    def test_failing_parsers_do_not_abort(self, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        (tmp_path / "dune.cue").write_text(CUE)
        (tmp_path / "info.txt").write_text("Title: From info\n")
        aggregator = MetadataAggregator(
            parsers=[_UnreadableParser(), _ExplodingParser(), SimpleTextParser()],
            detector=MultiFileAudiobookDetector(lambda path: 1.0),
        )
        record = aggregator.collect(tmp_path, config)
        assert record.source_kind == SourceKind.TEXT
        assert record.title == "From info"

    def test_detector_failure_isolated(self, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)

        class _BrokenDetector(MultiFileAudiobookDetector):
            def build_record(self, directory, strategy, files=None):
                raise OSError("listing failed")

        aggregator = MetadataAggregator(detector=_BrokenDetector())
        assert aggregator.collect(tmp_path, config).title == "Dune"


class TestCancellation:
    def test_cancelled_before_start(self, aggregator, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        cancel = threading.Event()
        cancel.set()
        assert aggregator.collect(tmp_path, config, cancel) is None

    def test_cancelled_mid_collection(self, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        (tmp_path / "dune.cue").write_text(CUE)
        cancel = threading.Event()

        class _CancellingParser(OpfParser):
            def parse(self, path: Path):
                record = super().parse(path)
                cancel.set()
                return record

        aggregator = MetadataAggregator(
            parsers=[_CancellingParser(), CueParser()],
            detector=MultiFileAudiobookDetector(lambda path: 1.0),
        )
        assert aggregator.collect(tmp_path, config, cancel) is None

    def test_not_cancelled(self, aggregator, config, tmp_path):
        (tmp_path / "metadata.opf").write_text(OPF)
        assert aggregator.collect(tmp_path, config, threading.Event()) is not None

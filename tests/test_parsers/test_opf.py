"""Tests for the OPF (Calibre/EPUB) parser."""

from datetime import date

import pytest

from audiobook_chapters.models import SourceKind
from audiobook_chapters.parsers.opf import OpfParser, find_cover

SAMPLE_OPF = """\
<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="uuid_id">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:title>The Way of Kings</dc:title>
    <dc:creator opf:role="aut" opf:file-as="Sanderson, Brandon">Brandon Sanderson</dc:creator>
    <dc:creator opf:role="nrt">Michael Kramer</dc:creator>
    <dc:creator opf:role="nrt">Kate Reading</dc:creator>
    <dc:description>&lt;p&gt;Roshar is a world of &lt;b&gt;stone&lt;/b&gt; &amp;amp; storms.&lt;/p&gt;</dc:description>
    <dc:publisher>Macmillan Audio</dc:publisher>
    <dc:date>2010-08-31T00:00:00+00:00</dc:date>
    <dc:language>en</dc:language>
    <dc:subject>Fantasy</dc:subject>
    <dc:subject>Epic</dc:subject>
    <dc:identifier opf:scheme="ISBN">9781427210463</dc:identifier>
    <dc:identifier opf:scheme="AMAZON">B003P2WO5E</dc:identifier>
    <dc:identifier opf:scheme="calibre">42</dc:identifier>
    <meta name="calibre:series" content="The Stormlight Archive"/>
    <meta name="calibre:series_index" content="1.0"/>
    <meta name="calibre:rating" content="8.0"/>
    <meta name="calibre:title_sort" content="Way of Kings, The"/>
  </metadata>
</package>
"""


def _opf(metadata: str) -> str:
    return (
        '<package xmlns="http://www.idpf.org/2007/opf">'
        '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:opf="http://www.idpf.org/2007/opf">'
        f"{metadata}</metadata></package>"
    )


@pytest.fixture
def parser():
    return OpfParser()


class TestCanParse:
    def test_extension(self, parser, tmp_path):
        assert parser.can_parse(tmp_path / "book.opf")

    def test_known_filename(self, parser, tmp_path):
        assert parser.can_parse(tmp_path / "Metadata.OPF")

    def test_other(self, parser, tmp_path):
        assert not parser.can_parse(tmp_path / "metadata.xml")


class TestParseContent:
    def test_basic_fields(self, parser):
        record = parser.parse_content(SAMPLE_OPF)
        assert record.source_kind == SourceKind.OPF
        assert record.title == "The Way of Kings"
        assert record.publisher == "Macmillan Audio"
        assert record.language == "en"
        assert record.genres == ["Fantasy", "Epic"]

    def test_creators_split_by_role(self, parser):
        record = parser.parse_content(SAMPLE_OPF)
        assert record.authors == ["Brandon Sanderson"]
        assert record.narrators == ["Michael Kramer", "Kate Reading"]

    def test_description_html_stripped(self, parser):
        record = parser.parse_content(SAMPLE_OPF)
        assert record.description == "Roshar is a world of stone & storms."

    def test_full_date(self, parser):
        record = parser.parse_content(SAMPLE_OPF)
        assert record.published_date == date(2010, 8, 31)
        assert record.year == 2010

    def test_year_only_date(self, parser):
        record = parser.parse_content(_opf("<dc:title>T</dc:title><dc:date>1987</dc:date>"))
        assert record.year == 1987
        assert record.published_date is None

    def test_identifiers_by_scheme(self, parser):
        record = parser.parse_content(SAMPLE_OPF)
        assert record.isbn13 == "9781427210463"
        assert record.isbn is None
        assert record.asin == "B003P2WO5E"
        assert record.provider_ids == {"calibre": "42"}

    def test_calibre_meta(self, parser):
        record = parser.parse_content(SAMPLE_OPF)
        assert record.series_name == "The Stormlight Archive"
        assert record.series_index == 1.0
        assert record.community_rating == 8.0
        assert record.sort_title == "Way of Kings, The"

    def test_unprefixed_elements(self, parser):
        content = """\
<package>
  <metadata>
    <title>Mistborn</title>
    <creator role="nrt">Michael Kramer</creator>
    <creator>Brandon Sanderson</creator>
    <identifier scheme="goodreads">68428</identifier>
  </metadata>
</package>
"""
        record = parser.parse_content(content)
        assert record.title == "Mistborn"
        assert record.authors == ["Brandon Sanderson"]
        assert record.narrators == ["Michael Kramer"]
        assert record.goodreads_id == "68428"

    def test_invalid_xml(self, parser):
        assert parser.parse_content("this is not xml") is None

    def test_missing_metadata_element(self, parser):
        assert parser.parse_content("<package><manifest/></package>") is None

    def test_empty_metadata(self, parser):
        assert parser.parse_content(_opf("<dc:publisher>Tor</dc:publisher>")) is None

    def test_empty_content(self, parser):
        assert parser.parse_content("  ") is None


class TestIdentifierHeuristics:
    def test_13_digit_without_scheme_is_isbn13(self, parser):
        record = parser.parse_content(
            _opf("<dc:title>T</dc:title><dc:identifier>9781234567890</dc:identifier>")
        )
        assert record.isbn13 == "9781234567890"
        assert record.isbn is None

    def test_urn_isbn_prefix(self, parser):
        record = parser.parse_content(
            _opf("<dc:title>T</dc:title><dc:identifier>urn:isbn:0765326353</dc:identifier>")
        )
        assert record.isbn == "0765326353"

    def test_asin_shape(self, parser):
        record = parser.parse_content(
            _opf("<dc:title>T</dc:title><dc:identifier>B00ABCDEFG</dc:identifier>")
        )
        assert record.asin == "B00ABCDEFG"

    def test_unrecognized_value_ignored(self, parser):
        record = parser.parse_content(
            _opf("<dc:title>T</dc:title><dc:identifier>abc-123</dc:identifier>")
        )
        assert record.isbn is None
        assert record.asin is None
        assert record.provider_ids == {}

    def test_audible_and_google_schemes(self, parser):
        record = parser.parse_content(
            _opf(
                "<dc:title>T</dc:title>"
                '<dc:identifier opf:scheme="AUDIBLE_ASIN">B0036S4B2G</dc:identifier>'
                '<dc:identifier opf:scheme="google">xyz</dc:identifier>'
                '<dc:identifier opf:scheme="openlibrary">OL1M</dc:identifier>'
            )
        )
        assert record.audible_asin == "B0036S4B2G"
        assert record.google_books_id == "xyz"
        assert record.open_library_id == "OL1M"


class TestCover:
    def test_cover_beside_opf(self, parser, tmp_path):
        opf = tmp_path / "metadata.opf"
        opf.write_text(SAMPLE_OPF, encoding="utf-8")
        (tmp_path / "folder.jpg").write_bytes(b"\xff\xd8")
        record = parser.parse(opf)
        assert record.cover_image_path == tmp_path / "folder.jpg"

    def test_cover_preference_order(self, tmp_path):
        (tmp_path / "folder.jpg").write_bytes(b"x")
        (tmp_path / "cover.png").write_bytes(b"x")
        assert find_cover(tmp_path) == tmp_path / "cover.png"

    def test_no_cover(self, tmp_path):
        assert find_cover(tmp_path) is None

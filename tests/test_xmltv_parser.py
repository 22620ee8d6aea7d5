import pytest

from iptv_catalog.exceptions import FormatError
from iptv_catalog.services.xmltv_parser_service import (
    UNTITLED_PROGRAM,
    parse_guide,
    parse_guide_async,
)
from iptv_catalog.utils.timezone import DateFormatError, parse_xmltv_timestamp

from .conftest import GUIDE_A, utc


def _guide(*programmes: str) -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>\n<tv>\n' + "\n".join(programmes) + "\n</tv>\n"


class TestParseGuide:
    """Tests for XMLTV parsing"""

    def test_offset_is_converted_to_utc(self):
        text = _guide(
            '<programme channel="c1" start="20240101180000 +0300" stop="20240101190000 +0300">'
            "<title>Haber</title></programme>"
        )

        timeline = parse_guide(text)

        event = timeline["c1"][0]
        assert event.title == "Haber"
        assert event.start_time == utc(2024, 1, 1, 15, 0)
        assert event.end_time == utc(2024, 1, 1, 16, 0)
        assert event.synopsis is None

    def test_description_is_read(self):
        timeline = parse_guide(GUIDE_A)

        assert timeline["c1"][0].synopsis == "Evening news"

    def test_events_sorted_per_channel(self):
        text = _guide(
            '<programme channel="c1" start="20240101200000" stop="20240101210000"><title>Late</title></programme>',
            '<programme channel="c1" start="20240101080000" stop="20240101090000"><title>Early</title></programme>',
            '<programme channel="c2" start="20240101100000" stop="20240101110000"><title>Other</title></programme>',
        )

        timeline = parse_guide(text)

        assert [e.title for e in timeline["c1"]] == ["Early", "Late"]
        assert [e.title for e in timeline["c2"]] == ["Other"]

    def test_missing_title_uses_placeholder(self):
        text = _guide(
            '<programme channel="c1" start="20240101080000" stop="20240101090000"><title>  </title></programme>',
            '<programme channel="c1" start="20240101090000" stop="20240101100000"></programme>',
        )

        titles = [e.title for e in parse_guide(text)["c1"]]

        assert titles == [UNTITLED_PROGRAM, UNTITLED_PROGRAM]

    @pytest.mark.parametrize(
        "attributes",
        [
            'start="20240101080000" stop="20240101090000"',
            'channel="" start="20240101080000" stop="20240101090000"',
            'channel="c1" stop="20240101090000"',
            'channel="c1" start="20240101080000"',
            'channel="c1" start="garbage" stop="20240101090000"',
            'channel="c1" start="20241301080000" stop="20241301090000"',
            'channel="c1" start="20240101090000" stop="20240101080000"',
            'channel="c1" start="20240101090000" stop="20240101090000"',
        ],
    )
    def test_invalid_programmes_are_skipped(self, attributes):
        text = _guide(
            f"<programme {attributes}><title>Bad</title></programme>",
            '<programme channel="ok" start="20240101080000" stop="20240101090000"><title>Good</title></programme>',
        )

        timeline = parse_guide(text)

        assert list(timeline) == ["ok"]
        assert [e.title for e in timeline["ok"]] == ["Good"]

    def test_unknown_elements_are_ignored(self):
        text = _guide(
            '<channel id="c1"><display-name>Kanal 1</display-name></channel>',
            '<programme channel="c1" start="20240101080000" stop="20240101090000">'
            "<title>Show</title><category>News</category></programme>",
        )

        assert [e.title for e in parse_guide(text)["c1"]] == ["Show"]

    def test_empty_guide(self):
        assert parse_guide("<tv></tv>") == {}

    @pytest.mark.parametrize("text", ["", "not xml", "<tv><programme></tv>"])
    def test_malformed_document_raises(self, text):
        with pytest.raises(FormatError):
            parse_guide(text)

    async def test_async_parse(self):
        timeline = await parse_guide_async(GUIDE_A, parse_timeout_seconds=30)

        assert [e.title for e in timeline["c1"]] == ["Haber", "Mac"]

    async def test_async_parse_propagates_format_error(self):
        with pytest.raises(FormatError):
            await parse_guide_async("<tv>", parse_timeout_seconds=0)


class TestParseXmltvTimestamp:
    """Tests for XMLTV timestamp decoding"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("20240101180000 +0300", utc(2024, 1, 1, 15, 0)),
            ("20240101180000 -0130", utc(2024, 1, 1, 19, 30)),
            ("20240101180000+0000", utc(2024, 1, 1, 18, 0)),
            ("20240101180000", utc(2024, 1, 1, 18, 0)),
            ("20240101003000 +0100", utc(2023, 12, 31, 23, 30)),
            ("  20240101180000 +0300  ", utc(2024, 1, 1, 15, 0)),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_xmltv_timestamp(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["", "2024", "2024010118000x", "20240230180000 +0000", "00010101000000 +0100", "99991231235959 -0100"],
    )
    def test_invalid(self, raw):
        with pytest.raises(DateFormatError):
            parse_xmltv_timestamp(raw)


class TestOutOfRangeTimestamps:
    def test_out_of_range_programme_is_skipped(self):
        text = _guide(
            '<programme channel="c1" start="00010101000000 +0100" stop="00010101010000 +0100">'
            "<title>Ancient</title></programme>",
            '<programme channel="c1" start="20240101080000" stop="20240101090000"><title>Haber</title></programme>',
        )

        assert [e.title for e in parse_guide(text)["c1"]] == ["Haber"]

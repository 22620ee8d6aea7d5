import pytest

from iptv_catalog.exceptions import FormatError
from iptv_catalog.services.fetch_types import ContentKind
from iptv_catalog.services.playlist_parser_service import (
    UNNAMED_CHANNEL,
    normalize_channel_name,
    parse_playlist,
)


class TestParsePlaylist:
    """Tests for EXTM3U parsing"""

    def test_single_entry(self):
        """Attributes and normalized name are read from the metadata line"""
        text = '#EXTM3U\n#EXTINF:-1 tvg-id="c1" group-title="Spor",Kanal 1 HD (TR)\nhttp://x/1\n'

        records = parse_playlist(text)

        assert len(records) == 1
        record = records[0]
        assert record.name == "Kanal 1 HD"
        assert record.stream_url == "http://x/1"
        assert record.group_name == "Spor"
        assert record.guide_channel_id == "c1"
        assert record.logo_url is None
        assert record.guide_name is None
        assert record.kind is ContentKind.LIVE

    def test_all_attributes(self):
        text = (
            "#EXTM3U\n"
            '#EXTINF:-1 tvg-id="trt1" tvg-name="TRT 1" tvg-logo="http://logo/trt1.png" '
            'group-title="Ulusal",TRT 1\n'
            "http://x/trt1\n"
        )

        record = parse_playlist(text)[0]

        assert record.guide_name == "TRT 1"
        assert record.logo_url == "http://logo/trt1.png"
        assert record.group_name == "Ulusal"

    def test_kind_is_applied(self):
        text = "#EXTM3U\n#EXTINF:-1,Film\nhttp://vod/1.mp4\n"

        records = parse_playlist(text, kind=ContentKind.ONDEMAND)

        assert records[0].kind is ContentKind.ONDEMAND

    def test_order_is_preserved(self):
        text = (
            "#EXTM3U\n"
            "#EXTINF:-1,B\nhttp://x/b\n"
            "#EXTINF:-1,A\nhttp://x/a\n"
            "#EXTINF:-1,C\nhttp://x/c\n"
        )

        assert [r.name for r in parse_playlist(text)] == ["B", "A", "C"]

    def test_dangling_entry_is_skipped(self):
        """A metadata line followed by another metadata line yields nothing for the first"""
        text = (
            "#EXTM3U\n"
            "#EXTINF:-1,Dangling\n"
            "#EXTINF:-1,Kept\n"
            "http://x/kept\n"
        )

        records = parse_playlist(text)

        assert [r.name for r in records] == ["Kept"]
        assert records[0].stream_url == "http://x/kept"

    def test_entry_at_end_of_text_is_skipped(self):
        text = "#EXTM3U\n#EXTINF:-1,A\nhttp://x/a\n#EXTINF:-1,No URL\n"

        assert [r.name for r in parse_playlist(text)] == ["A"]

    def test_entry_followed_by_blank_line_is_skipped(self):
        text = "#EXTM3U\n#EXTINF:-1,A\n\nhttp://x/a\n#EXTINF:-1,B\nhttp://x/b\n"

        assert [r.stream_url for r in parse_playlist(text)] == ["http://x/b"]

    def test_entry_followed_by_directive_is_skipped(self):
        text = "#EXTM3U\n#EXTINF:-1,A\n#EXTVLCOPT:http-user-agent=x\nhttp://x/a\n"

        assert parse_playlist(text) == []

    def test_leading_blank_lines_and_bom(self):
        text = "\ufeff\n\n#EXTM3U\n#EXTINF:-1,A\nhttp://x/a\n"

        assert len(parse_playlist(text)) == 1

    def test_crlf_line_endings(self):
        text = "#EXTM3U\r\n#EXTINF:-1,A\r\nhttp://x/a\r\n"

        records = parse_playlist(text)

        assert records[0].stream_url == "http://x/a"

    def test_name_after_last_comma(self):
        text = '#EXTM3U\n#EXTINF:-1 group-title="A,B",Name\nhttp://x/1\n'

        assert parse_playlist(text)[0].name == "Name"

    def test_missing_name_uses_placeholder(self):
        text = "#EXTM3U\n#EXTINF:-1,\nhttp://x/1\n#EXTINF:-1\nhttp://x/2\n"

        records = parse_playlist(text)

        assert [r.name for r in records] == [UNNAMED_CHANNEL, UNNAMED_CHANNEL]

    def test_header_only(self):
        assert parse_playlist("#EXTM3U\n") == []

    @pytest.mark.parametrize("text", ["", "   \n", "<html></html>", "#EXTINF:-1,A\nhttp://x/a\n"])
    def test_missing_marker_raises(self, text):
        with pytest.raises(FormatError):
            parse_playlist(text)


class TestNormalizeChannelName:
    """Tests for display name clean-up"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Kanal 1 HD (TR)", "Kanal 1 HD"),
            ("hd Kanal", "Kanal HD"),
            ("Kanal  HD  hd", "Kanal HD"),
            ("Kanal 4k hevc", "Kanal 4K HEVC"),
            ("Kanal (TR) (DE)", "Kanal"),
            ("  Kanal   Bir  ", "Kanal Bir"),
            ("HDTV Kanal", "HDTV Kanal"),
        ],
    )
    def test_normalization(self, raw, expected):
        assert normalize_channel_name(raw) == expected

    @pytest.mark.parametrize("raw", ["Kanal 1 HD (TR)", "sd Haber (TR) FHD", "(TR)", "Spor 4K", ""])
    def test_idempotent(self, raw):
        once = normalize_channel_name(raw)

        assert normalize_channel_name(once) == once

    @pytest.mark.parametrize("raw", ["", "   ", "(TR)"])
    def test_empty_result_uses_placeholder(self, raw):
        assert normalize_channel_name(raw) == UNNAMED_CHANNEL

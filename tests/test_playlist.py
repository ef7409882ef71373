import pytest

from conftest import segment_lines, unproxy
from streamproxy.playlist import (
    PlaylistKind,
    Variant,
    classify,
    is_playlist,
    parse_variants,
    rewrite_media_playlist,
    select_variant,
)
from streamproxy.urls import to_proxy_path

TARGET = "https://a.com/videos/show/index.m3u8"

MEDIA_PLAYLIST = """#EXTM3U
#EXT-X-VERSION:7
#EXT-X-TARGETDURATION:10

#EXT-X-KEY:METHOD=AES-128,URI="key.bin",IV=0x1234
#EXT-X-MAP:URI="init.mp4",BYTERANGE="720@0"
#EXTINF:10.0,
seg1.ts

#EXTINF:10.0,
/cdn/seg2.ts
#EXTINF:10.0,
https://other.com/seg3.ts
#EXT-X-ENDLIST
"""

MASTER_PLAYLIST = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360
360p/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720
720p/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=1200000,RESOLUTION=854x480
480p/index.m3u8
"""


class TestClassify:
    @pytest.mark.parametrize("content_type", [
        "application/vnd.apple.mpegurl",
        "Application/X-MpegURL; charset=utf-8",
        "audio/mpegurl",
    ])
    def test_playlist_by_content_type(self, content_type):
        assert is_playlist("seg1.ts\n", content_type)
        assert classify("seg1.ts\n", content_type) is PlaylistKind.MEDIA

    def test_playlist_by_body_sniffing(self):
        assert classify("\n\n  #EXTM3U\n#EXTINF:10,\nseg.ts\n", "text/plain") is PlaylistKind.MEDIA

    def test_master_by_stream_inf(self):
        assert classify(MASTER_PLAYLIST, "") is PlaylistKind.MASTER

    def test_master_by_media_tag(self):
        body = '#EXTM3U\n#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",URI="audio.m3u8"\n'
        assert classify(body, "") is PlaylistKind.MASTER

    @pytest.mark.parametrize("body, content_type", [
        ("\x89PNG\r\n", "image/png"),
        ("<html></html>", "text/html"),
        ("", ""),
    ])
    def test_opaque(self, body, content_type):
        assert classify(body, content_type) is PlaylistKind.OPAQUE


class TestRewriteMediaPlaylist:
    def test_rewrites_segments_keys_and_maps(self):
        rewritten = rewrite_media_playlist(TARGET, MEDIA_PLAYLIST)
        lines = rewritten.split("\n")

        assert lines[:3] == ["#EXTM3U", "#EXT-X-VERSION:7", "#EXT-X-TARGETDURATION:10"]
        key_uri = to_proxy_path("https://a.com/videos/show/key.bin")
        assert lines[3] == f'#EXT-X-KEY:METHOD=AES-128,URI="{key_uri}",IV=0x1234'
        map_uri = to_proxy_path("https://a.com/videos/show/init.mp4")
        assert lines[4] == f'#EXT-X-MAP:URI="{map_uri}",BYTERANGE="720@0"'
        assert [unproxy(line) for line in segment_lines(rewritten)] == [
            "https://a.com/videos/show/seg1.ts",
            "https://a.com/cdn/seg2.ts",
            "https://other.com/seg3.ts",
        ]
        assert lines[-2] == "#EXT-X-ENDLIST"

    def test_relative_segment(self):
        rewritten = rewrite_media_playlist(TARGET, "#EXTM3U\n#EXTINF:10,\nseg1.ts")
        assert unproxy(segment_lines(rewritten)[0]) == "https://a.com/videos/show/seg1.ts"

    def test_root_relative_segment(self):
        rewritten = rewrite_media_playlist(TARGET, "#EXTM3U\n#EXTINF:10,\n/cdn/seg1.ts")
        assert unproxy(segment_lines(rewritten)[0]) == "https://a.com/cdn/seg1.ts"

    def test_trailing_empty_line_kept_inner_blank_lines_dropped(self):
        rewritten = rewrite_media_playlist(TARGET, MEDIA_PLAYLIST)
        assert rewritten.endswith("\n")
        assert "\n\n" not in rewritten

    def test_no_trailing_newline_added(self):
        rewritten = rewrite_media_playlist(TARGET, "#EXTM3U\n#EXTINF:10,\nseg1.ts")
        assert not rewritten.endswith("\n")

    def test_crlf_and_padding_are_stripped(self):
        rewritten = rewrite_media_playlist(TARGET, "#EXTM3U\r\n#EXTINF:10,\r\n  seg1.ts  \r\n")
        assert rewritten.split("\n")[:2] == ["#EXTM3U", "#EXTINF:10,"]
        assert unproxy(segment_lines(rewritten)[0]) == "https://a.com/videos/show/seg1.ts"

    def test_key_without_uri_is_untouched(self):
        rewritten = rewrite_media_playlist(TARGET, "#EXTM3U\n#EXT-X-KEY:METHOD=NONE\n")
        assert rewritten == "#EXTM3U\n#EXT-X-KEY:METHOD=NONE\n"

    def test_rewritten_media_never_classifies_as_master(self):
        rewritten = rewrite_media_playlist(TARGET, MEDIA_PLAYLIST)
        assert classify(rewritten, "application/vnd.apple.mpegurl") is PlaylistKind.MEDIA


class TestSelectVariant:
    def test_highest_bandwidth_wins(self):
        assert select_variant(MASTER_PLAYLIST) == Variant(2500000, "720p/index.m3u8")

    def test_equal_bandwidth_picks_later_entry(self):
        # Candidates replace the best on >=, so the second of two equal entries is chosen.
        body = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=500000\nfirst.m3u8\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=500000\nsecond.m3u8\n"
        )
        assert select_variant(body) == Variant(500000, "second.m3u8")

    def test_missing_bandwidth_counts_as_zero(self):
        body = "#EXTM3U\n#EXT-X-STREAM-INF:RESOLUTION=640x360\nonly.m3u8\n"
        assert select_variant(body) == Variant(0, "only.m3u8")

    def test_average_bandwidth_is_not_bandwidth(self):
        body = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:AVERAGE-BANDWIDTH=9000000,BANDWIDTH=100\nlow.m3u8\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=200\nhigh.m3u8\n"
        )
        assert select_variant(body).uri == "high.m3u8"

    def test_bandwidth_after_spaced_attribute_list(self):
        body = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:PROGRAM-ID=1, BANDWIDTH=5000000\nhd.m3u8\n"
            "#EXT-X-STREAM-INF:PROGRAM-ID=1, BANDWIDTH=100000\nlow.m3u8\n"
        )
        assert select_variant(body) == Variant(5000000, "hd.m3u8")

    def test_spaced_average_bandwidth_is_not_bandwidth(self):
        body = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:PROGRAM-ID=1, AVERAGE-BANDWIDTH=9000000, BANDWIDTH=100\nlow.m3u8\n"
            "#EXT-X-STREAM-INF:PROGRAM-ID=1, BANDWIDTH=200\nhigh.m3u8\n"
        )
        assert select_variant(body).uri == "high.m3u8"

    def test_uri_found_after_comment_and_blank_lines(self):
        body = "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=1\n\n# comment\nvariant.m3u8\n"
        assert select_variant(body) == Variant(1, "variant.m3u8")

    def test_stream_inf_without_uri_is_skipped(self):
        body = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=900\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=100\nlow.m3u8\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=5000\n"
        )
        assert parse_variants(body) == [Variant(100, "low.m3u8")]
        assert select_variant(body) == Variant(100, "low.m3u8")

    def test_falls_back_to_first_m3u8_reference(self):
        body = (
            "#EXTM3U\n"
            '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="a",NAME="en"\n'
            "notes.txt\n"
            "audio/en.M3U8?token=1\n"
            "audio/fr.m3u8\n"
        )
        assert select_variant(body) == Variant(0, "audio/en.M3U8?token=1")

    def test_no_variant(self):
        assert select_variant('#EXTM3U\n#EXT-X-MEDIA:TYPE=SUBTITLES,URI="subs.vtt"\n') is None

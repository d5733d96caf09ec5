from __future__ import annotations

import pytest

from assessgen.errors import NoUsableFormat
from assessgen.youtube.player import (
    StreamFormat,
    formats_from_player_response,
    player_data_from_response,
    player_data_from_ytdlp,
)
from assessgen.youtube.selection import select_stream


def _audio(url: str, bitrate: int) -> StreamFormat:
    return StreamFormat(url=url, mime_type='audio/webm; codecs="opus"', bitrate=bitrate, has_audio=True)


def _muxed(url: str, width: int, height: int, quality: str, bitrate: int) -> StreamFormat:
    return StreamFormat(
        url=url,
        mime_type="video/mp4",
        bitrate=bitrate,
        width=width,
        height=height,
        audio_quality=quality,
        has_audio=True,
        has_video=True,
    )


def test_select_stream_prefers_highest_bitrate_audio_only() -> None:
    chosen = select_stream(
        [
            _muxed("https://cdn/muxed", 640, 360, "AUDIO_QUALITY_MEDIUM", 500_000),
            _audio("https://cdn/low", 48_000),
            _audio("https://cdn/high", 160_000),
        ]
    )
    assert chosen.url == "https://cdn/high"


def test_select_stream_falls_back_to_smallest_mixed_format() -> None:
    chosen = select_stream(
        [
            _muxed("https://cdn/720", 1280, 720, "AUDIO_QUALITY_MEDIUM", 900_000),
            _muxed("https://cdn/360", 640, 360, "AUDIO_QUALITY_LOW", 400_000),
            StreamFormat(url="https://cdn/video-only", mime_type="video/mp4", has_video=True),
        ]
    )
    assert chosen.url == "https://cdn/360"
    assert chosen.has_audio


def test_select_stream_breaks_size_ties_on_audio_quality() -> None:
    chosen = select_stream(
        [
            _muxed("https://cdn/low", 640, 360, "AUDIO_QUALITY_LOW", 900_000),
            _muxed("https://cdn/medium", 640, 360, "AUDIO_QUALITY_MEDIUM", 300_000),
        ]
    )
    assert chosen.url == "https://cdn/medium"


def test_select_stream_ignores_formats_without_url() -> None:
    with pytest.raises(NoUsableFormat):
        select_stream([_audio("", 128_000)])


def test_select_stream_rejects_video_only_formats() -> None:
    with pytest.raises(NoUsableFormat):
        select_stream([StreamFormat(url="https://cdn/v", mime_type="video/webm", has_video=True)])


def test_formats_from_player_response_skips_ciphered_entries() -> None:
    payload = {
        "streamingData": {
            "formats": [
                {
                    "url": "https://cdn/18",
                    "mimeType": 'video/mp4; codecs="avc1.42001E, mp4a.40.2"',
                    "bitrate": 500000,
                    "width": 640,
                    "height": 360,
                    "audioQuality": "AUDIO_QUALITY_LOW",
                }
            ],
            "adaptiveFormats": [
                {"signatureCipher": "s=abc&url=https://cdn/ciphered", "mimeType": "audio/mp4"},
                {"url": "https://cdn/140", "mimeType": 'audio/mp4; codecs="mp4a.40.2"', "bitrate": "130000"},
            ],
        }
    }

    formats = formats_from_player_response(payload)

    assert [fmt.url for fmt in formats] == ["https://cdn/18", "https://cdn/140"]
    assert formats[0].has_audio and formats[0].has_video
    assert formats[1].is_audio_only
    assert formats[1].bitrate == 130000


def test_player_data_uses_fallback_title() -> None:
    data = player_data_from_response({"streamingData": {"formats": []}}, video_id="abcdefghijk")
    assert data.title == "youtube_abcdefghijk"


def test_player_data_from_ytdlp_marks_audio_only_formats() -> None:
    info = {
        "title": "Lecture 1",
        "formats": [
            {"url": "https://cdn/sb", "ext": "mhtml", "acodec": "none", "vcodec": "none"},
            {"url": "https://cdn/251", "ext": "webm", "audio_ext": "webm", "acodec": "opus", "vcodec": "none", "abr": 130.5},
            {"url": "https://cdn/18", "ext": "mp4", "video_ext": "mp4", "acodec": "mp4a.40.2", "vcodec": "avc1", "width": 640, "height": 360, "tbr": 600},
        ],
    }

    data = player_data_from_ytdlp(info, video_id="abcdefghijk")

    assert data.title == "Lecture 1"
    assert select_stream(data.formats).url == "https://cdn/251"
    assert data.formats[0].mime_type == "application/mhtml"

"""Tests for player-response scraping and the internal player API strategy."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from assessgen.errors import ExtractionError
from assessgen.youtube.network import YouTubeNetwork
from assessgen.youtube.page_state import extract_player_response
from assessgen.youtube.strategies import INNERTUBE_PROFILES, InnerTubeStrategy, WatchPageStrategy

PLAYER_RESPONSE = {
    "responseContext": {"serviceTrackingParams": [{"service": "GFEEDBACK"}]},
    "playabilityStatus": {"status": "OK"},
    "streamingData": {
        "adaptiveFormats": [
            {"url": "https://cdn/140", "mimeType": 'audio/mp4; codecs="mp4a.40.2"', "bitrate": 130000}
        ]
    },
    "videoDetails": {"title": "Cell division explained"},
}


def test_extracts_variable_assignment() -> None:
    html_doc = (
        "<html><script>var ytInitialPlayerResponse = "
        + json.dumps(PLAYER_RESPONSE)
        + ";var meta = {};</script></html>"
    )
    assert extract_player_response(html_doc)["videoDetails"]["title"] == "Cell division explained"


def test_extracts_window_assignment() -> None:
    html_doc = (
        '<script>window["ytInitialPlayerResponse"] = '
        + json.dumps(PLAYER_RESPONSE)
        + ";</script>"
    )
    assert "streamingData" in extract_player_response(html_doc)


def test_extracts_json_encoded_player_response_string() -> None:
    config = {"args": {"playerResponse": json.dumps(PLAYER_RESPONSE)}}
    html_doc = "<script>yt.setConfig(" + json.dumps(config) + ");</script>"
    payload = extract_player_response(html_doc)
    assert payload["streamingData"]["adaptiveFormats"][0]["url"] == "https://cdn/140"


def test_scans_script_bodies_when_no_assignment_matches() -> None:
    html_doc = (
        "<script>var other = 1;</script>"
        "<script>someLoader.init(" + json.dumps({"data": PLAYER_RESPONSE}) + ");</script>"
    )
    payload = extract_player_response(html_doc)
    assert payload["videoDetails"]["title"] == "Cell division explained"


def test_brute_force_scan_outside_scripts() -> None:
    html_doc = "<div data-state='" + json.dumps(PLAYER_RESPONSE) + "'></div>"
    assert "streamingData" in extract_player_response(html_doc)


def test_missing_player_response_raises() -> None:
    with pytest.raises(ExtractionError):
        extract_player_response("<html><body>consent required</body></html>")


def test_innertube_strategy_posts_device_context() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["json"] = json.loads(request.content)
        return httpx.Response(200, json=PLAYER_RESPONSE)

    profile = INNERTUBE_PROFILES[0]
    strategy = InnerTubeStrategy(
        profile,
        network=YouTubeNetwork(cookies={"SID": "abc"}),
        transport=httpx.MockTransport(handler),
    )

    data = asyncio.run(strategy.fetch_player_data("abcdefghijk"))

    assert captured["url"].startswith("https://www.youtube.com/youtubei/v1/player")
    assert captured["json"]["videoId"] == "abcdefghijk"
    assert captured["json"]["context"]["client"]["clientName"] == "ANDROID"
    assert captured["headers"]["user-agent"] == profile.user_agent
    assert captured["headers"]["cookie"] == "SID=abc"
    assert data.title == "Cell division explained"
    assert data.formats[0].is_audio_only
    assert strategy.download_headers() == {"User-Agent": profile.user_agent}


def test_innertube_strategy_rejects_unplayable_video() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"playabilityStatus": {"status": "LOGIN_REQUIRED", "reason": "Sign in to confirm"}},
        )

    strategy = InnerTubeStrategy(
        INNERTUBE_PROFILES[1], network=YouTubeNetwork(), transport=httpx.MockTransport(handler)
    )

    with pytest.raises(ExtractionError) as exc:
        asyncio.run(strategy.fetch_player_data("abcdefghijk"))
    assert "Sign in to confirm" in str(exc.value)


def test_watch_page_strategy_reads_embedded_state() -> None:
    html_doc = "<script>var ytInitialPlayerResponse = " + json.dumps(PLAYER_RESPONSE) + ";</script>"
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        assert "CONSENT=" in request.headers["cookie"]
        return httpx.Response(200, text=html_doc)

    strategy = WatchPageStrategy(
        name="page:mobile",
        url_template="https://m.youtube.com/watch?v={video_id}",
        user_agent="test-agent",
        network=YouTubeNetwork(),
        transport=httpx.MockTransport(handler),
    )

    data = asyncio.run(strategy.fetch_player_data("abcdefghijk"))

    assert seen == ["https://m.youtube.com/watch?v=abcdefghijk"]
    assert data.formats[0].url == "https://cdn/140"


def test_watch_page_strategy_fails_on_http_error() -> None:
    strategy = WatchPageStrategy(
        name="page:embed",
        url_template="https://www.youtube.com/embed/{video_id}",
        user_agent="test-agent",
        network=YouTubeNetwork(),
        transport=httpx.MockTransport(lambda request: httpx.Response(429)),
    )
    with pytest.raises(ExtractionError) as exc:
        asyncio.run(strategy.fetch_player_data("abcdefghijk"))
    assert "429" in str(exc.value)

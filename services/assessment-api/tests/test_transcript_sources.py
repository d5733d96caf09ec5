from __future__ import annotations

import asyncio

import httpx

from assessgen.transcripts import CaptionLookup, TranscriptServiceClient, captions_to_text
from assessgen.youtube.network import YouTubeNetwork


def test_transcript_service_returns_transcript() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"transcript": "  The water cycle has four stages. "})

    client = TranscriptServiceClient(
        "https://transcripts.example/", transport=httpx.MockTransport(handler)
    )

    text = asyncio.run(client.fetch("abcdefghijk"))

    assert text == "The water cycle has four stages."
    assert seen == ["https://transcripts.example/api/transcript/abcdefghijk"]


def test_transcript_service_failure_returns_none() -> None:
    client = TranscriptServiceClient(
        "https://transcripts.example",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    assert asyncio.run(client.fetch("abcdefghijk")) is None


def test_transcript_service_empty_transcript_returns_none() -> None:
    client = TranscriptServiceClient(
        "https://transcripts.example",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"transcript": ""})),
    )
    assert asyncio.run(client.fetch("abcdefghijk")) is None


def test_captions_to_text_drops_sound_markers() -> None:
    chunks = [
        {"text": "[Music]", "start": 0.0},
        {"text": "Welcome to\nthe lesson", "start": 1.0},
        {"text": "(applause)", "start": 2.0},
        {"text": "on fractions.", "start": 3.0},
    ]
    assert captions_to_text(chunks) == "Welcome to the lesson on fractions."


class _FetchedTranscript:
    def __init__(self, chunks: list[dict]) -> None:
        self._chunks = chunks

    def to_raw_data(self) -> list[dict]:
        return self._chunks


class _Transcript:
    def __init__(self, chunks: list[dict]) -> None:
        self._chunks = chunks

    def fetch(self) -> _FetchedTranscript:
        return _FetchedTranscript(self._chunks)


class _TranscriptList:
    def __init__(self, transcripts: list[_Transcript], preferred: _Transcript | None) -> None:
        self._transcripts = transcripts
        self._preferred = preferred

    def find_transcript(self, languages: list[str]) -> _Transcript:
        if self._preferred is None:
            raise LookupError(f"no transcript for {languages}")
        return self._preferred

    def __iter__(self):
        return iter(self._transcripts)


class _FakeApi:
    def __init__(self, transcript_list: _TranscriptList) -> None:
        self._transcript_list = transcript_list

    def list(self, video_id: str) -> _TranscriptList:
        return self._transcript_list


def test_caption_lookup_prefers_requested_language(monkeypatch) -> None:
    preferred = _Transcript([{"text": "English captions"}])
    lookup = CaptionLookup(languages=["en"], network=YouTubeNetwork())
    monkeypatch.setattr(
        lookup, "_build_api", lambda: _FakeApi(_TranscriptList([preferred], preferred))
    )

    assert asyncio.run(lookup.fetch("abcdefghijk")) == "English captions"


def test_caption_lookup_falls_back_to_any_track(monkeypatch) -> None:
    other = _Transcript([{"text": "Sous-titres"}])
    lookup = CaptionLookup(languages=["en"], network=YouTubeNetwork())
    monkeypatch.setattr(lookup, "_build_api", lambda: _FakeApi(_TranscriptList([other], None)))

    assert asyncio.run(lookup.fetch("abcdefghijk")) == "Sous-titres"


def test_caption_lookup_returns_none_when_listing_fails(monkeypatch) -> None:
    class _BrokenApi:
        def list(self, video_id: str):
            raise RuntimeError("Subtitles are disabled for this video")

    lookup = CaptionLookup(languages=["en"], network=YouTubeNetwork())
    monkeypatch.setattr(lookup, "_build_api", lambda: _BrokenApi())

    assert asyncio.run(lookup.fetch("abcdefghijk")) is None

"""Tests for the AssemblyAI transcription adapter."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from assessgen.errors import TranscriptionFailure, TranscriptionTimeout
from assessgen.transcription import AssemblyAITranscriber


def _media(tmp_path: Path) -> Path:
    path = tmp_path / "lecture.mp3"
    path.write_bytes(b"ID3fake-audio")
    return path


def _handler(statuses: list[dict], captured: dict):
    remaining = iter(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "test-key"
        if request.url.path == "/v2/upload":
            captured["uploaded"] = request.content
            return httpx.Response(200, json={"upload_url": "https://cdn.assemblyai.com/upload/1"})
        if request.url.path == "/v2/transcript" and request.method == "POST":
            captured["job"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "tr_1"})
        assert request.url.path == "/v2/transcript/tr_1"
        return httpx.Response(200, json=next(remaining))

    return handler


def _transcriber(handler, sleeps: list[float], **kwargs) -> AssemblyAITranscriber:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return AssemblyAITranscriber(
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
        **kwargs,
    )


def test_transcribe_polls_until_completed(tmp_path: Path) -> None:
    media = _media(tmp_path)
    captured: dict = {}
    sleeps: list[float] = []
    statuses = [
        {"status": "queued"},
        {"status": "processing"},
        {
            "status": "completed",
            "text": "Mitochondria produce energy for the cell.",
            "confidence": 0.93,
            "words": [{"text": "Mitochondria", "start": 0, "end": 400}],
            "utterances": [{"speaker": "A", "text": "Mitochondria produce energy for the cell."}],
        },
    ]

    result = asyncio.run(_transcriber(_handler(statuses, captured), sleeps).transcribe(media))

    assert result.text == "Mitochondria produce energy for the cell."
    assert result.confidence == 0.93
    assert result.speakers == ["A"]
    assert sleeps == [10.0, 5.0]
    assert captured["uploaded"] == b"ID3fake-audio"
    assert captured["job"]["audio_url"] == "https://cdn.assemblyai.com/upload/1"
    assert captured["job"]["speaker_labels"] is True
    assert not media.exists()


def test_transcribe_surfaces_upstream_failure(tmp_path: Path) -> None:
    media = _media(tmp_path)
    statuses = [{"status": "error", "error": "Audio file could not be decoded"}]

    with pytest.raises(TranscriptionFailure) as exc:
        asyncio.run(_transcriber(_handler(statuses, {}), []).transcribe(media))

    assert "Audio file could not be decoded" in exc.value.message
    assert not media.exists()


def test_transcribe_times_out_after_max_wait(tmp_path: Path) -> None:
    media = _media(tmp_path)
    sleeps: list[float] = []
    statuses = [{"status": "processing"}] * 10

    with pytest.raises(TranscriptionTimeout) as exc:
        asyncio.run(
            _transcriber(_handler(statuses, {}), sleeps, max_wait=12.0).transcribe(media)
        )

    assert exc.value.status_code == 504
    assert sleeps == [5.0, 5.0]
    assert not media.exists()


def test_transcribe_without_api_key_fails_before_network(tmp_path: Path) -> None:
    media = _media(tmp_path)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    transcriber = AssemblyAITranscriber(api_key=None, transport=httpx.MockTransport(handler))

    with pytest.raises(TranscriptionFailure) as exc:
        asyncio.run(transcriber.transcribe(media))
    assert "ASSEMBLYAI_API_KEY" in exc.value.message
    assert not media.exists()


def test_transcribe_maps_http_errors(tmp_path: Path) -> None:
    media = _media(tmp_path)
    transcriber = AssemblyAITranscriber(
        api_key="test-key",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"})),
    )

    with pytest.raises(TranscriptionFailure) as exc:
        asyncio.run(transcriber.transcribe(media))
    assert "401" in exc.value.message
    assert not media.exists()


def test_transcribe_rejects_non_json_upload_response(tmp_path: Path) -> None:
    media = _media(tmp_path)
    transcriber = AssemblyAITranscriber(
        api_key="test-key",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>bad gateway</html>")
        ),
    )

    with pytest.raises(TranscriptionFailure) as exc:
        asyncio.run(transcriber.transcribe(media))
    assert exc.value.message == "Transcription failed: upload returned invalid JSON"
    assert "bad gateway" in exc.value.detail
    assert not media.exists()


def test_transcribe_rejects_non_json_status_response(tmp_path: Path) -> None:
    media = _media(tmp_path)
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v2/upload":
            return httpx.Response(200, json={"upload_url": "https://cdn.assemblyai.com/upload/1"})
        if request.method == "POST":
            return httpx.Response(200, json={"id": "tr_1"})
        return httpx.Response(200, json=["not", "an", "object"])

    with pytest.raises(TranscriptionFailure) as exc:
        asyncio.run(_transcriber(handler, sleeps).transcribe(media))
    assert "status check returned unexpected JSON" in exc.value.message
    assert sleeps == []

"""Speech-to-text through the AssemblyAI REST API."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import httpx

from assessgen.errors import TranscriptionFailure, TranscriptionTimeout, compact_error
from assessgen.tempfiles import discard

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]
FAILED_STATUSES = {"error", "failed"}


@dataclass(slots=True)
class TranscriptResult:
    """Completed transcription."""

    text: str
    confidence: float | None = None
    words: list[dict[str, Any]] = field(default_factory=list)
    utterances: list[dict[str, Any]] = field(default_factory=list)
    speakers: list[str] = field(default_factory=list)


class AssemblyAITranscriber:
    """Upload a media file, create a job and poll it to completion.

    The source file is deleted once the call returns or raises.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.assemblyai.com/v2",
        poll_interval: float = 5.0,
        queued_poll_interval: float = 10.0,
        max_wait: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.queued_poll_interval = queued_poll_interval
        self.max_wait = max_wait
        self._transport = transport
        self._sleep = sleep

    async def transcribe(self, path: Path) -> TranscriptResult:
        try:
            if not self.api_key:
                raise TranscriptionFailure("Transcription failed: ASSEMBLYAI_API_KEY is not set")
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(120.0, connect=10.0),
                headers={"authorization": self.api_key},
                transport=self._transport,
            ) as client:
                upload_url = await self._upload(client, path)
                transcript_id = await self._create_job(client, upload_url)
                return await self._poll(client, transcript_id)
        except httpx.HTTPStatusError as exc:
            logger.exception("transcription service returned error")
            raise TranscriptionFailure(
                f"Transcription failed: HTTP {exc.response.status_code}",
                detail=exc.response.text[:500],
            ) from exc
        except httpx.HTTPError as exc:
            logger.exception("transcription request failed")
            raise TranscriptionFailure(f"Transcription failed: {compact_error(exc)}") from exc
        finally:
            discard(path)

    async def _upload(self, client: httpx.AsyncClient, path: Path) -> str:
        payload = await asyncio.to_thread(path.read_bytes)
        response = await client.post(
            f"{self.base_url}/upload",
            content=payload,
            headers={"content-type": "application/octet-stream"},
        )
        response.raise_for_status()
        upload_url = _json_object(response, "upload").get("upload_url")
        if not upload_url:
            raise TranscriptionFailure("Transcription failed: upload returned no url")
        logger.info("media uploaded for transcription", extra={"bytes": len(payload)})
        return upload_url

    async def _create_job(self, client: httpx.AsyncClient, upload_url: str) -> str:
        response = await client.post(
            f"{self.base_url}/transcript",
            json={
                "audio_url": upload_url,
                "punctuate": True,
                "format_text": True,
                "dual_channel": False,
                "speaker_labels": True,
            },
        )
        response.raise_for_status()
        transcript_id = _json_object(response, "job creation").get("id")
        if not transcript_id:
            raise TranscriptionFailure("Transcription failed: job creation returned no id")
        logger.info("transcription job created", extra={"transcript_id": transcript_id})
        return transcript_id

    async def _poll(self, client: httpx.AsyncClient, transcript_id: str) -> TranscriptResult:
        waited = 0.0
        while True:
            response = await client.get(f"{self.base_url}/transcript/{transcript_id}")
            response.raise_for_status()
            payload = _json_object(response, "status check")
            job_status = payload.get("status")

            if job_status == "completed":
                return _to_result(payload)
            if job_status in FAILED_STATUSES:
                message = payload.get("error") or "unknown error"
                raise TranscriptionFailure(f"Transcription failed: {message}")

            interval = self.poll_interval if job_status == "processing" else self.queued_poll_interval
            if waited + interval > self.max_wait:
                raise TranscriptionTimeout(
                    f"Transcription did not complete within {self.max_wait:g}s"
                )
            logger.debug(
                "transcription pending",
                extra={"transcript_id": transcript_id, "status": job_status},
            )
            await self._sleep(interval)
            waited += interval


def _to_result(payload: dict) -> TranscriptResult:
    utterances = payload.get("utterances") or []
    speakers = sorted(
        {str(item.get("speaker")) for item in utterances if isinstance(item, dict) and item.get("speaker")}
    )
    return TranscriptResult(
        text=(payload.get("text") or "").strip(),
        confidence=payload.get("confidence"),
        words=payload.get("words") or [],
        utterances=utterances,
        speakers=speakers,
    )


def _json_object(response: httpx.Response, step: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise TranscriptionFailure(
            f"Transcription failed: {step} returned invalid JSON", detail=response.text[:500]
        ) from exc
    if not isinstance(payload, dict):
        raise TranscriptionFailure(f"Transcription failed: {step} returned unexpected JSON")
    return payload

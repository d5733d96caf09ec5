"""Ready-made transcript sources tried before downloading audio."""

from __future__ import annotations

import asyncio
import logging
import re

import httpx
from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api.proxies import GenericProxyConfig

from assessgen.correlation import correlation_headers
from assessgen.errors import compact_error
from assessgen.youtube.network import YouTubeNetwork

logger = logging.getLogger(__name__)

NOISE_PATTERN = re.compile(r"[\[\(]?\s*(music|applause|laughter)\s*[\]\)]?", flags=re.IGNORECASE)


class TranscriptServiceClient:
    """Client for the external transcript-scraping endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, video_id: str) -> str | None:
        """Return the transcript text, or ``None`` when the service cannot help."""

        url = f"{self.base_url}/api/transcript/{video_id}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=correlation_headers())
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "transcript service unavailable",
                extra={"video_id": video_id, "error": compact_error(exc)},
            )
            return None

        transcript = payload.get("transcript") if isinstance(payload, dict) else None
        if not isinstance(transcript, str) or not transcript.strip():
            logger.info("transcript service returned no transcript", extra={"video_id": video_id})
            return None
        return transcript.strip()


class CaptionLookup:
    """Published captions through youtube-transcript-api."""

    def __init__(self, *, languages: list[str], network: YouTubeNetwork) -> None:
        self.languages = languages or ["en"]
        self.network = network

    def _build_api(self) -> YouTubeTranscriptApi:
        if self.network.proxies:
            proxy = self.network.proxies[0]
            return YouTubeTranscriptApi(
                proxy_config=GenericProxyConfig(http_url=proxy, https_url=proxy)
            )
        return YouTubeTranscriptApi()

    async def fetch(self, video_id: str) -> str | None:
        return await asyncio.to_thread(self._fetch_sync, video_id)

    def _fetch_sync(self, video_id: str) -> str | None:
        try:
            transcript_list = self._build_api().list(video_id)
        except Exception as exc:
            logger.info(
                "captions unavailable", extra={"video_id": video_id, "error": compact_error(exc)}
            )
            return None

        chunks: list[dict] | None = None
        try:
            chunks = transcript_list.find_transcript(self.languages).fetch().to_raw_data()
        except Exception:
            for transcript in transcript_list:
                try:
                    chunks = transcript.fetch().to_raw_data()
                    break
                except Exception as exc:
                    logger.debug(
                        "caption track fetch failed",
                        extra={"video_id": video_id, "error": compact_error(exc)},
                    )

        if not chunks:
            return None
        return captions_to_text(chunks) or None


def captions_to_text(chunks: list[dict]) -> str:
    """Join caption snippets, dropping sound-effect markers."""

    snippets: list[str] = []
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        text = str(chunk.get("text", "")).replace("\n", " ").strip()
        if not text or NOISE_PATTERN.fullmatch(text):
            continue
        snippets.append(text)
    return re.sub(r"\s+", " ", " ".join(snippets)).strip()

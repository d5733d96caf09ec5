"""Single entry point for getting a YouTube video's audio onto disk."""

from __future__ import annotations

from pathlib import Path

import httpx

from assessgen.tempfiles import TempWorkspace
from assessgen.youtube.downloader import ProgressCallback, download_stream
from assessgen.youtube.resolver import AudioStreamResolver, StreamCandidate


class YouTubeAudioFetcher:
    """Resolve a stream through the extraction chain and download it."""

    def __init__(
        self,
        resolver: AudioStreamResolver,
        *,
        download_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.resolver = resolver
        self.download_timeout = download_timeout
        self._transport = transport

    async def fetch(
        self,
        video_id: str,
        workspace: TempWorkspace,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[Path, StreamCandidate]:
        candidate = await self.resolver.resolve(video_id)
        suffix = _suffix_for(candidate.format.mime_type)
        dest_path = workspace.allocate(suffix)
        await download_stream(
            candidate,
            dest_path,
            timeout=self.download_timeout,
            on_progress=on_progress,
            transport=self._transport,
        )
        return dest_path, candidate


def _suffix_for(mime_type: str) -> str:
    subtype = mime_type.split(";", 1)[0].split("/", 1)[-1].strip().lower()
    if subtype in {"mp4", "m4a"}:
        return ".m4a" if mime_type.startswith("audio/") else ".mp4"
    if subtype in {"webm", "mpeg", "mp3", "ogg", "opus"}:
        return f".{subtype}"
    return ".bin"

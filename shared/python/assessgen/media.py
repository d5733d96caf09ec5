"""Audio extraction from uploaded media with ffmpeg."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from assessgen.errors import MediaConversionFailure
from assessgen.tempfiles import discard

logger = logging.getLogger(__name__)

VIDEO_MIME_TYPES = {"video/mp4", "video/mpeg", "video/quicktime", "video/x-msvideo"}
AUDIO_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/x-m4a",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
}
MEDIA_SUFFIXES = {
    "video/mp4": ".mp4",
    "video/mpeg": ".mpeg",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
}


def is_video_mime(content_type: str | None) -> bool:
    return _base_mime(content_type) in VIDEO_MIME_TYPES


def is_media_mime(content_type: str | None) -> bool:
    mime = _base_mime(content_type)
    return mime in VIDEO_MIME_TYPES or mime in AUDIO_MIME_TYPES


def suffix_for_mime(content_type: str | None) -> str:
    return MEDIA_SUFFIXES.get(_base_mime(content_type), "")


async def convert_to_mp3(source: Path, dest: Path, *, ffmpeg_binary: str = "ffmpeg") -> Path:
    """Write the audio track of ``source`` to ``dest`` as MP3.

    Cancellation kills ffmpeg and removes whatever it had written.
    """

    cmd = [
        ffmpeg_binary,
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(source),
        "-vn",
        "-q:a",
        "0",
        "-map",
        "a",
        "-y",
        str(dest),
    ]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.PIPE
        )
    except FileNotFoundError as exc:
        raise MediaConversionFailure(f"ffmpeg binary not found: {ffmpeg_binary}") from exc

    try:
        _, stderr_bytes = await process.communicate()
    except BaseException:
        if process.returncode is None:
            process.kill()
            await asyncio.shield(process.wait())
        discard(dest)
        raise

    stderr = stderr_bytes.decode("utf-8", errors="replace")[-500:]
    if process.returncode != 0:
        discard(dest)
        logger.error("ffmpeg failed", extra={"returncode": process.returncode, "stderr": stderr})
        raise MediaConversionFailure("Audio extraction failed", detail=stderr)

    if not dest.exists() or dest.stat().st_size == 0:
        discard(dest)
        raise MediaConversionFailure("Audio extraction failed: output file is empty")
    logger.info("audio extracted", extra={"source": source.name, "bytes": dest.stat().st_size})
    return dest


def _base_mime(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()

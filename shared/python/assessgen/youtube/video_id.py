"""YouTube URL parsing."""

from __future__ import annotations

from dataclasses import dataclass
import re
from urllib.parse import parse_qs, urlsplit

from assessgen.errors import InputValidationError

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
YOUTUBE_HOST_SUFFIXES = ("youtube.com", "youtu.be", "youtube-nocookie.com")
SHORT_LINK_PATH = re.compile(r"^/([^/?#]+)")
EMBEDDED_PATH = re.compile(r"^/(?:shorts|embed|live|v|e)/([^/?#]+)")


@dataclass(frozen=True, slots=True)
class VideoReference:
    """Validated video identifier and the URL it came from."""

    video_id: str
    source_url: str


def parse_video_reference(raw_url: str | None) -> VideoReference:
    """Parse a YouTube URL (or a bare id) into a ``VideoReference``."""

    source = (raw_url or "").strip()
    if not source:
        raise InputValidationError("YouTube URL is required")
    if VIDEO_ID_PATTERN.match(source):
        return VideoReference(video_id=source, source_url=source)

    url = source if "://" in source else f"https://{source}"
    video_id = extract_video_id(url)
    if video_id is None:
        raise InputValidationError("Invalid YouTube URL", detail=source[:200])
    return VideoReference(video_id=video_id, source_url=source)


def is_youtube_host(netloc: str) -> bool:
    host = netloc.lower().rsplit("@", 1)[-1].split(":", 1)[0]
    return any(host == suffix or host.endswith(f".{suffix}") for suffix in YOUTUBE_HOST_SUFFIXES)


def extract_video_id(url: str) -> str | None:
    """Video id from an http(s) YouTube URL, or ``None`` when there is no valid one."""

    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or not is_youtube_host(parts.netloc):
        return None

    if parts.netloc.lower().endswith("youtu.be"):
        match = SHORT_LINK_PATH.match(parts.path)
        candidate = match.group(1) if match else None
    else:
        candidate = next(iter(parse_qs(parts.query).get("v", [])), None)
        if candidate is None:
            match = EMBEDDED_PATH.match(parts.path)
            candidate = match.group(1) if match else None

    if candidate and VIDEO_ID_PATTERN.match(candidate):
        return candidate
    return None

"""Normalized player data shared by every extraction strategy."""

from __future__ import annotations

from dataclasses import dataclass, field

from assessgen.errors import ExtractionError

AUDIO_QUALITY_RANK = {
    "AUDIO_QUALITY_ULTRALOW": 0,
    "AUDIO_QUALITY_LOW": 1,
    "AUDIO_QUALITY_MEDIUM": 2,
    "AUDIO_QUALITY_HIGH": 3,
}


@dataclass(slots=True)
class StreamFormat:
    """One downloadable stream as described by a player payload."""

    url: str
    mime_type: str = ""
    bitrate: int = 0
    width: int | None = None
    height: int | None = None
    audio_quality: str | None = None
    has_audio: bool = False
    has_video: bool = False
    http_headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_audio_only(self) -> bool:
        return self.mime_type.startswith("audio/") and not self.has_video

    @property
    def pixel_area(self) -> int:
        return (self.width or 0) * (self.height or 0)

    @property
    def audio_quality_rank(self) -> int:
        return AUDIO_QUALITY_RANK.get(self.audio_quality or "", -1)


@dataclass(slots=True)
class PlayerData:
    title: str
    formats: list[StreamFormat]


def default_title(video_id: str) -> str:
    return f"youtube_{video_id}"


def formats_from_player_response(payload: dict) -> list[StreamFormat]:
    """Read ``streamingData`` from an InnerTube-style player response."""

    streaming = payload.get("streamingData")
    if not isinstance(streaming, dict):
        return []

    formats: list[StreamFormat] = []
    for key in ("formats", "adaptiveFormats"):
        entries = streaming.get(key)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            # Ciphered entries carry ``signatureCipher`` instead of a url; they are unusable here.
            url = entry.get("url")
            if not isinstance(url, str) or not url:
                continue
            mime_type = str(entry.get("mimeType") or "")
            audio_quality = entry.get("audioQuality")
            formats.append(
                StreamFormat(
                    url=url,
                    mime_type=mime_type,
                    bitrate=_as_int(entry.get("bitrate")),
                    width=_as_optional_int(entry.get("width")),
                    height=_as_optional_int(entry.get("height")),
                    audio_quality=audio_quality if isinstance(audio_quality, str) else None,
                    has_audio=mime_type.startswith("audio/") or bool(audio_quality),
                    has_video=mime_type.startswith("video/"),
                )
            )
    return formats


def player_data_from_response(payload: dict, *, video_id: str) -> PlayerData:
    """Build ``PlayerData`` from a player response, rejecting unplayable videos."""

    if not isinstance(payload, dict):
        raise ExtractionError("player response is not an object")

    playability = payload.get("playabilityStatus")
    if isinstance(playability, dict) and "streamingData" not in payload:
        status = playability.get("status")
        if status and status != "OK":
            reason = playability.get("reason") or status
            raise ExtractionError(f"video not playable: {reason}")

    details = payload.get("videoDetails")
    title = details.get("title") if isinstance(details, dict) else None
    return PlayerData(
        title=title if isinstance(title, str) and title.strip() else default_title(video_id),
        formats=formats_from_player_response(payload),
    )


def player_data_from_ytdlp(info: dict, *, video_id: str) -> PlayerData:
    """Build ``PlayerData`` from a yt-dlp ``extract_info`` result."""

    formats: list[StreamFormat] = []
    for entry in info.get("formats") or []:
        if not isinstance(entry, dict):
            continue
        url = entry.get("url")
        if not isinstance(url, str) or not url:
            continue
        acodec = entry.get("acodec")
        vcodec = entry.get("vcodec")
        has_audio = acodec not in (None, "none")
        has_video = vcodec not in (None, "none")
        ext = entry.get("audio_ext") if not has_video else entry.get("video_ext")
        ext = ext if isinstance(ext, str) and ext != "none" else entry.get("ext") or "unknown"
        kind = "video" if has_video else "audio" if has_audio else "application"
        kbps = entry.get("abr") or entry.get("tbr") or 0
        headers = entry.get("http_headers")
        formats.append(
            StreamFormat(
                url=url,
                mime_type=f"{kind}/{ext}",
                bitrate=int(float(kbps) * 1000),
                width=_as_optional_int(entry.get("width")),
                height=_as_optional_int(entry.get("height")),
                audio_quality=None,
                has_audio=has_audio,
                has_video=has_video,
                http_headers=dict(headers) if isinstance(headers, dict) else {},
            )
        )

    title = info.get("title")
    return PlayerData(
        title=title if isinstance(title, str) and title.strip() else default_title(video_id),
        formats=formats,
    )


def _as_int(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0


def _as_optional_int(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None

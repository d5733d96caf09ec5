"""Choose the stream to download from a strategy's formats."""

from __future__ import annotations

from assessgen.errors import NoUsableFormat
from assessgen.youtube.player import StreamFormat


def select_stream(formats: list[StreamFormat]) -> StreamFormat:
    """Pick the best audio-carrying format.

    Audio-only formats win, highest bitrate first. Without any, fall back to
    mixed formats that carry audio: smallest picture, then best audio
    quality, then highest bitrate.
    """

    usable = [fmt for fmt in formats if fmt.url]

    audio_only = [fmt for fmt in usable if fmt.is_audio_only]
    if audio_only:
        return max(audio_only, key=lambda fmt: fmt.bitrate)

    mixed = [fmt for fmt in usable if fmt.has_audio and fmt.has_video]
    if mixed:
        return min(mixed, key=lambda fmt: (fmt.pixel_area, -fmt.audio_quality_rank, -fmt.bitrate))

    raise NoUsableFormat(f"no audio-capable format among {len(formats)} formats")

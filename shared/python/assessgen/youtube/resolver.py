"""Run extraction strategies in order until one yields a usable stream."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import time

from assessgen.errors import ExtractionExhausted, compact_error
from assessgen.otel import get_tracer
from assessgen.youtube.player import StreamFormat
from assessgen.youtube.selection import select_stream
from assessgen.youtube.strategies import ExtractionStrategy

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


@dataclass(slots=True)
class StreamCandidate:
    """A chosen stream plus what is needed to fetch it the same way it was found."""

    url: str
    title: str
    format: StreamFormat
    strategy: str
    proxy: str | None = None
    http_headers: dict[str, str] = field(default_factory=dict)


class AudioStreamResolver:
    """Tries each strategy sequentially; fails only when all of them failed."""

    def __init__(
        self,
        strategies: list[ExtractionStrategy],
        *,
        attempt_timeout: float = 15.0,
    ) -> None:
        self.strategies = list(strategies)
        self.attempt_timeout = attempt_timeout

    async def resolve(self, video_id: str) -> StreamCandidate:
        errors: list[str] = []
        for strategy in self.strategies:
            started = time.perf_counter()
            with tracer.start_as_current_span("youtube.extraction") as span:
                span.set_attribute("youtube.strategy", strategy.name)
                span.set_attribute("youtube.video_id", video_id)
                try:
                    async with asyncio.timeout(self.attempt_timeout):
                        data = await strategy.fetch_player_data(video_id)
                    chosen = select_stream(data.formats)
                except TimeoutError:
                    message = f"timed out after {self.attempt_timeout:g}s"
                except Exception as exc:
                    message = compact_error(exc)
                else:
                    span.set_attribute("youtube.outcome", "success")
                    logger.info(
                        "extraction strategy succeeded",
                        extra={
                            "strategy": strategy.name,
                            "video_id": video_id,
                            "mime_type": chosen.mime_type,
                            "bitrate": chosen.bitrate,
                            "duration_ms": int((time.perf_counter() - started) * 1000),
                        },
                    )
                    headers = chosen.http_headers or strategy.download_headers()
                    return StreamCandidate(
                        url=chosen.url,
                        title=data.title,
                        format=chosen,
                        strategy=strategy.name,
                        proxy=strategy.proxy,
                        http_headers=dict(headers),
                    )

                span.set_attribute("youtube.outcome", "failure")
                errors.append(f"{strategy.name}: {message}")
                logger.warning(
                    "extraction strategy failed",
                    extra={
                        "strategy": strategy.name,
                        "video_id": video_id,
                        "error": message,
                        "duration_ms": int((time.perf_counter() - started) * 1000),
                    },
                )

        raise ExtractionExhausted(errors)

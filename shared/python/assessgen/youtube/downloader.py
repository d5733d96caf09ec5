"""Stream a resolved candidate to disk."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from pathlib import Path

import httpx

from assessgen.errors import DownloadFailure, DownloadTimeout, compact_error
from assessgen.tempfiles import discard
from assessgen.youtube.resolver import StreamCandidate

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int | None], None]
CHUNK_SIZE = 256 * 1024


async def download_stream(
    candidate: StreamCandidate,
    dest_path: Path,
    *,
    timeout: float = 60.0,
    on_progress: ProgressCallback | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Path:
    """Write the candidate's bytes to ``dest_path``.

    The whole transfer is bounded by ``timeout``; on any failure the partial
    file is removed before the error propagates.
    """

    try:
        async with asyncio.timeout(timeout):
            written = await _stream_to_file(
                candidate, dest_path, on_progress=on_progress, transport=transport
            )
    except TimeoutError as exc:
        discard(dest_path)
        raise DownloadTimeout(f"Audio download timed out after {timeout:g}s") from exc
    except httpx.HTTPError as exc:
        discard(dest_path)
        raise DownloadFailure(f"Audio download failed: {compact_error(exc)}") from exc
    except BaseException:
        discard(dest_path)
        raise

    if written == 0:
        discard(dest_path)
        raise DownloadFailure("Audio download returned an empty body")

    logger.info(
        "audio downloaded",
        extra={"strategy": candidate.strategy, "bytes": written, "path": str(dest_path)},
    )
    return dest_path


async def _stream_to_file(
    candidate: StreamCandidate,
    dest_path: Path,
    *,
    on_progress: ProgressCallback | None,
    transport: httpx.AsyncBaseTransport | None,
) -> int:
    written = 0
    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(30.0, connect=10.0),
        proxy=candidate.proxy if transport is None else None,
        transport=transport,
    ) as client:
        async with client.stream("GET", candidate.url, headers=candidate.http_headers) as response:
            response.raise_for_status()
            total_header = response.headers.get("content-length")
            total = int(total_header) if total_header and total_header.isdigit() else None
            with dest_path.open("wb") as handle:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    handle.write(chunk)
                    written += len(chunk)
                    if on_progress is not None:
                        on_progress(written, total)
    return written

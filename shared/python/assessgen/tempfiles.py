"""Request-scoped temporary files."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger(__name__)


class TempWorkspace:
    """Hands out uniquely named paths and deletes all of them on exit.

    Use as a context manager so every path allocated inside a request is
    removed on both success and failure. ``cleanup`` is idempotent and can
    also be scheduled as a background task for streamed responses.
    """

    def __init__(self, root: str | Path, *, prefix: str = "req") -> None:
        self.root = Path(root)
        self.prefix = prefix
        self._paths: list[Path] = []

    def __enter__(self) -> TempWorkspace:
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, *_exc_info) -> None:
        self.cleanup()

    def allocate(self, suffix: str = "") -> Path:
        """Reserve a unique path; the file itself is not created."""

        if suffix and not suffix.startswith("."):
            suffix = f".{suffix}"
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{self.prefix}-{uuid4().hex}{suffix}"
        self._paths.append(path)
        return path

    def write_bytes(self, payload: bytes, suffix: str = "") -> Path:
        path = self.allocate(suffix)
        path.write_bytes(payload)
        return path

    def cleanup(self) -> None:
        while self._paths:
            discard(self._paths.pop())


def discard(path: str | Path) -> None:
    """Delete a file if it exists, logging rather than raising on failure."""

    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        logger.warning("temp file cleanup failed", extra={"path": str(path)})

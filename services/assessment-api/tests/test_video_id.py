from __future__ import annotations

import pytest

from assessgen.errors import InputValidationError
from assessgen.youtube.video_id import parse_video_reference


@pytest.mark.parametrize(
    "url",
    [
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
        "youtube.com/shorts/dQw4w9WgXcQ",
        "https://m.youtube.com/embed/dQw4w9WgXcQ",
        "dQw4w9WgXcQ",
    ],
)
def test_parse_video_reference_accepts_known_shapes(url: str) -> None:
    reference = parse_video_reference(url)
    assert reference.video_id == "dQw4w9WgXcQ"
    assert reference.source_url == url


def test_parse_video_reference_requires_url() -> None:
    with pytest.raises(InputValidationError) as exc:
        parse_video_reference("  ")
    assert exc.value.status_code == 400
    assert "required" in exc.value.message


@pytest.mark.parametrize(
    "url",
    [
        "https://vimeo.com/123456",
        "https://www.youtube.com/watch?v=short",
        "ftp://youtube.com/watch?v=dQw4w9WgXcQ",
        "https://www.youtube.com/feed/trending",
    ],
)
def test_parse_video_reference_rejects_invalid_urls(url: str) -> None:
    with pytest.raises(InputValidationError):
        parse_video_reference(url)

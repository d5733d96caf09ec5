from __future__ import annotations

import json
import logging

import pytest

from assessgen.correlation import RequestContext, correlation_headers, request_context_var
from assessgen.logging import JsonFormatter
from assessgen.otel import get_tracer, traced
from assessgen.rate_limit import SlidingWindowLimiter


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_limiter_blocks_until_oldest_hit_leaves_window() -> None:
    clock = _Clock()
    limiter = SlidingWindowLimiter(window=60.0, clock=clock)

    assert limiter.hit("10.0.0.1", limit=2) is None
    clock.now += 10
    assert limiter.hit("10.0.0.1", limit=2) is None
    clock.now += 5
    assert limiter.hit("10.0.0.1", limit=2) == pytest.approx(45.0)
    assert limiter.hit("10.0.0.2", limit=2) is None

    clock.now += 45
    assert limiter.hit("10.0.0.1", limit=2) is None


def test_limiter_forgets_idle_clients() -> None:
    clock = _Clock()
    limiter = SlidingWindowLimiter(window=60.0, clock=clock)
    for index in range(1000):
        limiter.hit(f"10.1.{index // 256}.{index % 256}", limit=5)
    assert limiter.tracked_clients == 1000

    clock.now += 3600
    assert limiter.hit("10.9.9.9", limit=5) is None

    assert limiter.tracked_clients == 1


def test_json_formatter_includes_request_and_extra_fields() -> None:
    formatter = JsonFormatter("assessment-api")
    record = logging.LogRecord("assessgen.test", logging.INFO, __file__, 1, "stage done", (), None)
    record.video_id = "dQw4w9WgXcQ"

    token = request_context_var.set(
        RequestContext(correlation_id="abc-123", method="POST", path="/api/v1/assessment/youtube")
    )
    try:
        entry = json.loads(formatter.format(record))
        headers = correlation_headers()
    finally:
        request_context_var.reset(token)

    assert entry["service"] == "assessment-api"
    assert entry["msg"] == "stage done"
    assert entry["correlation_id"] == "abc-123"
    assert entry["route"] == "POST /api/v1/assessment/youtube"
    assert entry["video_id"] == "dQw4w9WgXcQ"
    assert headers == {"x-correlation-id": "abc-123"}


def test_correlation_headers_empty_outside_requests() -> None:
    assert correlation_headers() == {}


def test_traced_propagates_errors() -> None:
    tracer = get_tracer(__name__)
    with pytest.raises(ValueError):
        with traced(tracer, "stage", attempt=1, note=None):
            raise ValueError("boom")

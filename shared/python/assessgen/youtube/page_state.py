"""Locate the embedded player response inside a YouTube HTML page."""

from __future__ import annotations

import json
import re

from assessgen.errors import ExtractionError

ASSIGNMENT_PATTERNS = (
    re.compile(r"var\s+ytInitialPlayerResponse\s*=\s*"),
    re.compile(r"window\[\s*[\"']ytInitialPlayerResponse[\"']\s*\]\s*=\s*"),
    re.compile(r"[\"']?playerResponse[\"']?\s*:\s*"),
)
SCRIPT_PATTERN = re.compile(r"<script[^>]*>(.*?)</script>", flags=re.DOTALL | re.IGNORECASE)
STREAMING_MARKER = '"streamingData"'
MAX_BACKTRACK_ATTEMPTS = 200

_decoder = json.JSONDecoder()


def extract_player_response(html_doc: str) -> dict:
    """Return the first player response found, trying each locator in turn.

    Order: explicit assignments, inline script bodies holding stream data,
    then a brute-force scan of the whole document.
    """

    for pattern in ASSIGNMENT_PATTERNS:
        for match in pattern.finditer(html_doc):
            payload = _decode_at(html_doc, match.end())
            if _is_player_response(payload):
                return payload

    for script_match in SCRIPT_PATTERN.finditer(html_doc):
        body = script_match.group(1)
        if STREAMING_MARKER not in body or "adaptiveFormats" not in body:
            continue
        payload = _scan_around_marker(body)
        if payload is not None:
            return payload

    payload = _scan_around_marker(html_doc)
    if payload is not None:
        return payload

    raise ExtractionError("player response not found in page")


def _decode_at(text: str, index: int) -> dict | None:
    while index < len(text) and text[index].isspace():
        index += 1
    if index >= len(text):
        return None
    try:
        if text[index] == '"':
            # Older embed pages ship the player response as a JSON-encoded string.
            encoded, _ = _decoder.raw_decode(text, index)
            payload = json.loads(encoded) if isinstance(encoded, str) else None
        elif text[index] == "{":
            payload, _ = _decoder.raw_decode(text, index)
        else:
            return None
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _scan_around_marker(text: str) -> dict | None:
    position = text.find(STREAMING_MARKER)
    while position != -1:
        attempts = 0
        start = text.rfind("{", 0, position)
        while start != -1 and attempts < MAX_BACKTRACK_ATTEMPTS:
            attempts += 1
            payload = _decode_at(text, start)
            if _is_player_response(payload):
                return payload
            start = text.rfind("{", 0, start)
        position = text.find(STREAMING_MARKER, position + len(STREAMING_MARKER))
    return None


def _is_player_response(payload: object) -> bool:
    if not isinstance(payload, dict):
        return False
    streaming = payload.get("streamingData")
    return isinstance(streaming, dict) or isinstance(payload.get("playabilityStatus"), dict)

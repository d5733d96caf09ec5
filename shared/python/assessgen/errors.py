"""Typed failures raised by the assessment pipeline.

Library code raises these; the HTTP layer maps ``status_code`` onto the
response. Nothing here depends on FastAPI.
"""

from __future__ import annotations

import re


class AssessmentServiceError(Exception):
    """Base error carrying the HTTP status the service should answer with."""

    status_code: int = 500
    public_message: str = "Assessment processing failed"

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.public_message
        self.detail = detail
        super().__init__(self.message)


class InputValidationError(AssessmentServiceError):
    status_code = 400
    public_message = "Invalid request"


class InsufficientContent(AssessmentServiceError):
    status_code = 400
    public_message = "Insufficient speech content"


class PayloadTooLarge(AssessmentServiceError):
    status_code = 413
    public_message = "Uploaded file is too large"


class ExtractionError(AssessmentServiceError):
    """One extraction strategy failed; the resolver keeps going."""

    public_message = "Extraction strategy failed"


class NoUsableFormat(ExtractionError):
    public_message = "No usable audio format found"


class ExtractionExhausted(AssessmentServiceError):
    """Every extraction strategy failed."""

    public_message = "All extraction methods failed"

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        summary = "; ".join(self.errors) if self.errors else "no strategies configured"
        super().__init__(f"{self.public_message}: {summary}")


class DownloadFailure(AssessmentServiceError):
    public_message = "Audio download failed"


class TranscriptionFailure(AssessmentServiceError):
    public_message = "Transcription failed"


class DocumentExtractionFailure(AssessmentServiceError):
    public_message = "Failed to extract text from document"


class OcrFailure(DocumentExtractionFailure):
    public_message = "OCR failed"


class MediaConversionFailure(AssessmentServiceError):
    public_message = "Media conversion failed"


class GenerationFailure(AssessmentServiceError):
    status_code = 502
    public_message = "Assessment generation failed"


class StageTimeout(AssessmentServiceError):
    status_code = 504
    public_message = "Processing timed out"


class DownloadTimeout(StageTimeout):
    public_message = "Audio download timed out"


class TranscriptionTimeout(StageTimeout):
    public_message = "Transcription timed out"


class RequestTimeout(StageTimeout):
    public_message = "Request processing timed out"


def compact_error(exc: BaseException) -> str:
    """Single-line, bounded rendering of an exception for aggregated messages."""

    text = re.sub(r"\s+", " ", str(exc)).strip()
    if not text:
        return exc.__class__.__name__
    return text[:220]

"""Assessment API: quizzes from YouTube videos, uploaded media and documents."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
import logging
from pathlib import Path
import re
from typing import TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from assessgen.config import get_settings
from assessgen.correlation import CORRELATION_HEADER, CorrelationIdMiddleware
from assessgen.documents import PDF_MIME_TYPES
from assessgen.errors import (
    AssessmentServiceError,
    GenerationFailure,
    InputValidationError,
    PayloadTooLarge,
    RequestTimeout,
)
from assessgen.logging import configure_logging
from assessgen.media import VIDEO_MIME_TYPES, is_media_mime, is_video_mime
from assessgen.otel import init_otel
from assessgen.pipeline import (
    AssessmentOutcome,
    AssessmentPipeline,
    QuestionRequest,
    build_question_request,
    get_pipeline,
)
from assessgen.rate_limit import rate_limit_dependency
from assessgen.schemas import (
    AssessmentMetadata,
    AssessmentResponse,
    BotAssessmentResponse,
    BotResponse,
    ErrorResponse,
    PdfTextResponse,
    QuestionParams,
    YouTubeAssessmentRequest,
    YouTubeAudioRequest,
)
from assessgen.tempfiles import TempWorkspace
from assessgen.youtube.network import get_youtube_network
from assessgen.youtube.video_id import parse_video_reference

SERVICE_NAME = "assessment-api"

settings = get_settings()
configure_logging(SERVICE_NAME, settings.log_level)
logger = logging.getLogger(__name__)

T = TypeVar("T")

MEDIA_FIELD_NAMES = ("media", "file", "audio", "video", "audioFile", "videoFile")
VIDEO_FIELD_NAMES = ("video", "videoFile", "file", "media")
DOCUMENT_FIELD_NAMES = ("document", "file", "pdf", "ppt", "pptx")
PDF_FIELD_NAMES = ("pdf", "file", "document")
BOT_PROMPT = "hello world"
BOT_APOLOGY = (
    "I apologize, but I'm having trouble processing your question. Please try asking in a "
    "different way or contact support for assistance."
)
RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")
STREAM_CHUNK_SIZE = 64 * 1024

app = FastAPI(title="Assessment API", version="0.1.0")
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Disposition", CORRELATION_HEADER],
)


@app.on_event("startup")
def startup() -> None:
    init_otel(SERVICE_NAME, console_export=settings.otel_console_export)
    Path(settings.temp_dir).mkdir(parents=True, exist_ok=True)
    get_youtube_network()


@app.exception_handler(AssessmentServiceError)
async def handle_service_error(request: Request, exc: AssessmentServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request failed",
            extra={"path": request.url.path, "error": exc.message, "kind": type(exc).__name__},
        )
    body = ErrorResponse(message=exc.message, error=exc.detail or type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "invalid"))
    body = ErrorResponse(message="Invalid request", error=detail)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = ErrorResponse(message=str(exc.detail), error=None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=exc.headers)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error", extra={"path": request.url.path})
    body = ErrorResponse(message="Internal server error", error=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump()
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": SERVICE_NAME}


assessment_router = APIRouter(
    prefix="/api/v1/assessment",
    tags=["assessment"],
    dependencies=[Depends(rate_limit_dependency)],
)
chatbot_router = APIRouter(
    prefix="/api/v1/chatbot",
    tags=["chatbot"],
    dependencies=[Depends(rate_limit_dependency)],
)


@assessment_router.post(
    "/youtube", response_model=AssessmentResponse, response_model_exclude_none=True
)
async def assessment_from_youtube(
    payload: YouTubeAssessmentRequest,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> AssessmentResponse:
    """Quiz from a YouTube video's transcript."""

    reference = parse_video_reference(payload.video_url)
    question_request = _question_request(payload)
    logger.info("youtube assessment requested", extra={"video_id": reference.video_id})
    outcome = await _within(
        settings.youtube_request_timeout_seconds,
        pipeline.assess_youtube(reference, question_request),
    )
    return _assessment_response(outcome)


@assessment_router.post(
    "/video-assessment", response_model=AssessmentResponse, response_model_exclude_none=True
)
async def assessment_from_video(
    request: Request,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> AssessmentResponse:
    """Quiz from an uploaded video; the audio track is extracted first."""

    form = await request.form()
    upload = _find_upload(form, VIDEO_FIELD_NAMES, missing_message="No video file uploaded")
    if not is_video_mime(upload.content_type):
        raise InputValidationError(
            "Invalid file type. Only video files are allowed.",
            detail=f"accepted types: {', '.join(sorted(VIDEO_MIME_TYPES))}",
        )
    payload = await _read_limited(upload, settings.max_media_upload_bytes)
    question_request = _question_request(_form_params(form))
    outcome = await _within(
        settings.media_request_timeout_seconds,
        pipeline.assess_media(payload, content_type=upload.content_type, request=question_request),
    )
    return _assessment_response(outcome)


@assessment_router.post(
    "/media", response_model=AssessmentResponse, response_model_exclude_none=True
)
@assessment_router.post(
    "/audio-assessment", response_model=AssessmentResponse, response_model_exclude_none=True
)
async def assessment_from_media(
    request: Request,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> AssessmentResponse:
    """Quiz from an uploaded audio or video file."""

    form = await request.form()
    upload = _find_upload(form, MEDIA_FIELD_NAMES, missing_message="No media file uploaded")
    if not is_media_mime(upload.content_type):
        raise InputValidationError("Invalid file type. Only audio and video files are allowed.")
    payload = await _read_limited(upload, settings.max_media_upload_bytes)
    question_request = _question_request(_form_params(form))
    outcome = await _within(
        settings.media_request_timeout_seconds,
        pipeline.assess_media(payload, content_type=upload.content_type, request=question_request),
    )
    return _assessment_response(outcome)


@assessment_router.post(
    "/document", response_model=AssessmentResponse, response_model_exclude_none=True
)
async def assessment_from_document(
    request: Request,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> AssessmentResponse:
    """Quiz from an uploaded PDF, DOCX or PPTX document."""

    form = await request.form()
    upload = _find_upload(form, DOCUMENT_FIELD_NAMES, missing_message="No document uploaded")
    payload = await _read_limited(upload, settings.max_document_upload_bytes)
    question_request = _question_request(_form_params(form))
    outcome = await _within(
        settings.document_request_timeout_seconds,
        pipeline.assess_document(
            payload,
            filename=upload.filename,
            content_type=upload.content_type,
            force_ocr=_form_flag(form.get("useOcr")),
            request=question_request,
        ),
    )
    return _assessment_response(outcome)


@assessment_router.post("/process-pdf", response_model=PdfTextResponse)
async def process_pdf(
    request: Request,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> PdfTextResponse:
    """Extract the text of an uploaded PDF, with OCR when needed or requested."""

    form = await request.form()
    upload = _find_upload(form, PDF_FIELD_NAMES, missing_message="No PDF file uploaded")
    content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
    if content_type not in PDF_MIME_TYPES:
        raise InputValidationError("Invalid file type. Only PDF files are allowed.")
    payload = await _read_limited(upload, settings.max_pdf_upload_bytes)
    document = await _within(
        settings.document_request_timeout_seconds,
        pipeline.extract_pdf(payload, force_ocr=_form_flag(form.get("useOcr"))),
    )
    method = "OCR" if document.ocr_applied else "direct extraction"
    return PdfTextResponse(
        text=document.text,
        length=len(document.text),
        message=f"PDF processed successfully using {method}",
    )


@assessment_router.get("/upload-help")
def upload_help() -> dict[str, object]:
    return {
        "message": "Media upload guide",
        "acceptedEndpoints": ["/media", "/video-assessment", "/audio-assessment"],
        "acceptedFieldNames": list(MEDIA_FIELD_NAMES),
        "acceptedFileTypes": ["MP3", "WAV", "MP4", "MOV", "AVI", "M4A", "OGG", "WEBM"],
        "maxFileSize": _format_megabytes(settings.max_media_upload_bytes),
        "parameters": {
            "numberOfQuestions": "integer, default 5",
            "difficulty": "easy | medium | hard, default medium",
            "type": "MCQ | TF | SHORT_ANSWER | FILL_BLANK, default MCQ",
        },
    }


@assessment_router.get("/document-help")
def document_help() -> dict[str, object]:
    return {
        "message": "Document upload guide for assessment generation",
        "acceptedEndpoints": ["/document", "/process-pdf"],
        "acceptedFieldNames": list(DOCUMENT_FIELD_NAMES),
        "acceptedFileTypes": ["PDF", "PPTX", "DOCX"],
        "maxFileSize": _format_megabytes(settings.max_document_upload_bytes),
        "parameters": {
            "useOcr": "boolean, force OCR on PDFs",
            "numberOfQuestions": "integer, default 5",
            "difficulty": "easy | medium | hard, default medium",
            "type": "MCQ | TF | SHORT_ANSWER | FILL_BLANK, default MCQ",
        },
    }


@chatbot_router.post("/yt-to-audio")
async def youtube_to_audio(
    payload: YouTubeAudioRequest,
    request: Request,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> Response:
    """Return a video's audio as MP3, honouring single byte ranges."""

    reference = parse_video_reference(payload.video_url)
    workspace = pipeline.workspace("mp3")
    try:
        mp3_path, title = await _within(
            settings.youtube_request_timeout_seconds,
            pipeline.youtube_mp3(reference.video_id, workspace),
        )
        return _ranged_file_response(
            mp3_path,
            range_header=request.headers.get("range"),
            filename=f"{_safe_filename(title)}.mp3",
            workspace=workspace,
        )
    except BaseException:
        workspace.cleanup()
        raise


@chatbot_router.post("/bot-response", response_model=BotResponse)
async def bot_response(pipeline: AssessmentPipeline = Depends(get_pipeline)) -> BotResponse:
    try:
        text = await pipeline.generator.provider.generate(BOT_PROMPT)
    except GenerationFailure:
        logger.exception("bot response generation failed")
        return BotResponse(response=BOT_APOLOGY)
    return BotResponse(response=text)


@chatbot_router.post("/generate-assessment", response_model=BotAssessmentResponse)
async def bot_generate_assessment(
    pipeline: AssessmentPipeline = Depends(get_pipeline),
) -> BotAssessmentResponse:
    text = await pipeline.generator.provider.generate(BOT_PROMPT)
    return BotAssessmentResponse(assessment=text)


app.include_router(assessment_router)
app.include_router(chatbot_router)


async def _within(seconds: float, awaitable: Awaitable[T]) -> T:
    try:
        async with asyncio.timeout(seconds):
            return await awaitable
    except TimeoutError as exc:
        raise RequestTimeout(f"Request processing timed out after {seconds:g}s") from exc


def _question_request(params: QuestionParams) -> QuestionRequest:
    return build_question_request(
        count=params.number_of_questions,
        question_type=params.type,
        difficulty=params.difficulty,
        settings=settings,
    )


def _form_params(form) -> QuestionParams:
    raw = {
        key: form.get(key)
        for key in ("numberOfQuestions", "difficulty", "type")
        if isinstance(form.get(key), str) and form.get(key).strip()
    }
    try:
        return QuestionParams.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InputValidationError("Invalid request", detail=f"{location}: {first['msg']}") from exc


def _form_flag(value: object) -> bool:
    if not isinstance(value, str):
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _find_upload(form, field_names: tuple[str, ...], *, missing_message: str) -> UploadFile:
    for name in field_names:
        value = form.get(name)
        if isinstance(value, UploadFile):
            return value
    raise InputValidationError(
        missing_message, detail=f"accepted field names: {', '.join(field_names)}"
    )


async def _read_limited(upload: UploadFile, max_bytes: int) -> bytes:
    payload = await upload.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise PayloadTooLarge(
            f"File too large. Maximum size is {_format_megabytes(max_bytes)}."
        )
    if not payload:
        raise InputValidationError("Uploaded file is empty")
    return payload


def _assessment_response(outcome: AssessmentOutcome) -> AssessmentResponse:
    return AssessmentResponse(
        video_id=outcome.video_id,
        assessment=outcome.assessment,
        metadata=AssessmentMetadata(
            type=outcome.request.question_type,
            difficulty=outcome.request.difficulty,
            question_count=outcome.request.count,
            transcript_source=outcome.source,
            text_length=outcome.text_length,
            parser=outcome.parser,
        ),
    )


def _ranged_file_response(
    path: Path,
    *,
    range_header: str | None,
    filename: str,
    workspace: TempWorkspace,
) -> Response:
    file_size = path.stat().st_size
    headers = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": f'attachment; filename="{filename}"',
    }
    cleanup = BackgroundTask(workspace.cleanup)

    if not range_header:
        headers["Content-Length"] = str(file_size)
        return StreamingResponse(
            _iter_file(path, 0, file_size - 1),
            media_type="audio/mpeg",
            headers=headers,
            background=cleanup,
        )

    byte_range = _parse_range(range_header, file_size)
    if byte_range is None:
        workspace.cleanup()
        return Response(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            headers={"Content-Range": f"bytes */{file_size}", "Accept-Ranges": "bytes"},
        )

    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
    headers["Content-Length"] = str(end - start + 1)
    return StreamingResponse(
        _iter_file(path, start, end),
        status_code=status.HTTP_206_PARTIAL_CONTENT,
        media_type="audio/mpeg",
        headers=headers,
        background=cleanup,
    )


def _parse_range(range_header: str, file_size: int) -> tuple[int, int] | None:
    """Parse a single ``bytes=`` range into inclusive offsets."""

    match = RANGE_PATTERN.match(range_header.strip())
    if not match or file_size == 0:
        return None
    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        return None
    if not raw_start:
        suffix = int(raw_end)
        if suffix == 0:
            return None
        return max(file_size - suffix, 0), file_size - 1
    start = int(raw_start)
    end = int(raw_end) if raw_end else file_size - 1
    if start >= file_size or end < start:
        return None
    return start, min(end, file_size - 1)


def _iter_file(path: Path, start: int, end: int):
    with path.open("rb") as handle:
        handle.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            chunk = handle.read(min(STREAM_CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def _safe_filename(title: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._ -]+", "", title).strip()
    return cleaned[:120] or "audio"


def _format_megabytes(size: int) -> str:
    return f"{size // (1024 * 1024)}MB"

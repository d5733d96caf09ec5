"""Request-level orchestration shared by the HTTP routes."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
from pathlib import Path
from typing import Any

from assessgen.assessment import AssessmentGenerator, Difficulty, QuestionType
from assessgen.config import Settings, get_settings
from assessgen.documents import DocumentTextExtractor, ExtractedDocument, build_ocr_backend
from assessgen.errors import InputValidationError, InsufficientContent
from assessgen.llm.providers import get_provider
from assessgen.media import convert_to_mp3, is_video_mime, suffix_for_mime
from assessgen.otel import get_tracer, traced
from assessgen.tempfiles import TempWorkspace
from assessgen.transcription import AssemblyAITranscriber
from assessgen.transcripts import CaptionLookup, TranscriptServiceClient
from assessgen.youtube.audio import YouTubeAudioFetcher
from assessgen.youtube.network import YouTubeNetwork, get_youtube_network
from assessgen.youtube.resolver import AudioStreamResolver
from assessgen.youtube.strategies import build_default_strategies
from assessgen.youtube.video_id import VideoReference

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


@dataclass(slots=True)
class QuestionRequest:
    question_type: QuestionType
    count: int
    difficulty: Difficulty


@dataclass(slots=True)
class AssessmentOutcome:
    assessment: list[Any] | dict[str, Any]
    request: QuestionRequest
    text_length: int
    source: str
    video_id: str | None = None
    parser: str | None = None


class AssessmentPipeline:
    """Text acquisition (YouTube, media, documents) followed by quiz generation."""

    def __init__(
        self,
        *,
        settings: Settings,
        generator: AssessmentGenerator,
        audio_fetcher: YouTubeAudioFetcher,
        transcriber: AssemblyAITranscriber,
        document_extractor: DocumentTextExtractor,
        transcript_service: TranscriptServiceClient | None = None,
        captions: CaptionLookup | None = None,
    ) -> None:
        self.settings = settings
        self.generator = generator
        self.audio_fetcher = audio_fetcher
        self.transcriber = transcriber
        self.document_extractor = document_extractor
        self.transcript_service = transcript_service
        self.captions = captions

    def workspace(self, prefix: str = "req") -> TempWorkspace:
        return TempWorkspace(self.settings.temp_dir, prefix=prefix)

    async def youtube_transcript(self, video_id: str) -> tuple[str, str]:
        """Return ``(text, source)``: ready-made transcripts first, then speech-to-text."""

        if self.transcript_service is not None:
            text = await self.transcript_service.fetch(video_id)
            if text:
                return text, "transcript_service"

        if self.captions is not None:
            text = await self.captions.fetch(video_id)
            if text:
                return text, "captions"

        with self.workspace("yt") as workspace:
            audio_path, candidate = await self.audio_fetcher.fetch(video_id, workspace)
            logger.info(
                "transcribing youtube audio",
                extra={"video_id": video_id, "strategy": candidate.strategy},
            )
            with traced(tracer, "speech_to_text", video_id=video_id):
                result = await self.transcriber.transcribe(audio_path)
        return result.text, "speech_to_text"

    async def assess_youtube(
        self, reference: VideoReference, request: QuestionRequest
    ) -> AssessmentOutcome:
        text, source = await self.youtube_transcript(reference.video_id)
        self._require_speech(text)
        assessment = await self._generate(text, request)
        return AssessmentOutcome(
            assessment=assessment,
            request=request,
            text_length=len(text),
            source=source,
            video_id=reference.video_id,
        )

    async def transcribe_upload(self, payload: bytes, *, content_type: str | None) -> str:
        with self.workspace("media") as workspace:
            upload_path = workspace.write_bytes(payload, suffix_for_mime(content_type))
            audio_path = upload_path
            if is_video_mime(content_type):
                audio_path = await convert_to_mp3(
                    upload_path,
                    workspace.allocate(".mp3"),
                    ffmpeg_binary=self.settings.ffmpeg_binary,
                )
            with traced(tracer, "speech_to_text", content_type=content_type):
                result = await self.transcriber.transcribe(audio_path)
        return result.text

    async def assess_media(
        self, payload: bytes, *, content_type: str | None, request: QuestionRequest
    ) -> AssessmentOutcome:
        text = await self.transcribe_upload(payload, content_type=content_type)
        self._require_speech(text)
        assessment = await self._generate(text, request)
        return AssessmentOutcome(
            assessment=assessment, request=request, text_length=len(text), source="speech_to_text"
        )

    async def extract_pdf(self, payload: bytes, *, force_ocr: bool = False) -> ExtractedDocument:
        return await self.document_extractor.extract(payload, force_ocr=force_ocr)

    async def assess_document(
        self,
        payload: bytes,
        *,
        filename: str | None,
        content_type: str | None,
        force_ocr: bool,
        request: QuestionRequest,
    ) -> AssessmentOutcome:
        document = await self.document_extractor.extract_upload(
            payload, filename=filename, content_type=content_type, force_ocr=force_ocr
        )
        if not document.text:
            raise InsufficientContent("No text could be extracted from the document")
        assessment = await self._generate(document.text, request)
        return AssessmentOutcome(
            assessment=assessment,
            request=request,
            text_length=len(document.text),
            source="ocr" if document.ocr_applied else "document",
            parser=document.parser,
        )

    async def youtube_mp3(self, video_id: str, workspace: TempWorkspace) -> tuple[Path, str]:
        """Download a video's audio and re-encode it to MP3 inside ``workspace``."""

        audio_path, candidate = await self.audio_fetcher.fetch(video_id, workspace)
        mp3_path = await convert_to_mp3(
            audio_path, workspace.allocate(".mp3"), ffmpeg_binary=self.settings.ffmpeg_binary
        )
        return mp3_path, candidate.title

    async def _generate(self, text: str, request: QuestionRequest) -> list[Any] | dict[str, Any]:
        with traced(
            tracer,
            "assessment.generate",
            question_type=request.question_type.value,
            question_count=request.count,
            text_length=len(text),
        ) as span:
            assessment = await self.generator.generate_assessment(
                text, request.question_type, request.count, request.difficulty
            )
            span.set_attribute("assessment.parsed", isinstance(assessment, list))
        if isinstance(assessment, list) and len(assessment) > request.count:
            assessment = assessment[: request.count]
        return assessment

    def _require_speech(self, text: str) -> None:
        if len(text.strip()) < self.settings.min_transcript_chars:
            raise InsufficientContent(
                "Insufficient speech content. The transcript is too short to build an assessment."
            )


def build_question_request(
    *, count: int, question_type: QuestionType, difficulty: Difficulty, settings: Settings
) -> QuestionRequest:
    if count < 1 or count > settings.max_question_count:
        raise InputValidationError(
            f"numberOfQuestions must be between 1 and {settings.max_question_count}"
        )
    return QuestionRequest(question_type=question_type, count=count, difficulty=difficulty)


def build_pipeline(
    settings: Settings | None = None, *, network: YouTubeNetwork | None = None
) -> AssessmentPipeline:
    """Wire the pipeline from settings."""

    settings = settings or get_settings()
    network = network or get_youtube_network()

    resolver = AudioStreamResolver(
        build_default_strategies(network),
        attempt_timeout=settings.extraction_attempt_timeout_seconds,
    )
    transcript_service = None
    if settings.transcript_service_url:
        transcript_service = TranscriptServiceClient(
            settings.transcript_service_url,
            timeout=settings.transcript_service_timeout_seconds,
        )
    captions = None
    if settings.enable_caption_lookup:
        captions = CaptionLookup(languages=settings.caption_language_list, network=network)

    return AssessmentPipeline(
        settings=settings,
        generator=AssessmentGenerator(
            get_provider(settings), max_prompt_chars=settings.max_prompt_chars
        ),
        audio_fetcher=YouTubeAudioFetcher(
            resolver, download_timeout=settings.download_timeout_seconds
        ),
        transcriber=AssemblyAITranscriber(
            api_key=settings.assemblyai_api_key,
            base_url=settings.assemblyai_base_url,
            poll_interval=settings.transcription_poll_interval_seconds,
            queued_poll_interval=settings.transcription_queued_poll_interval_seconds,
            max_wait=settings.transcription_max_wait_seconds,
        ),
        document_extractor=DocumentTextExtractor(
            ocr_backend=build_ocr_backend(settings),
            temp_dir=settings.temp_dir,
            min_text_chars=settings.ocr_min_text_chars,
        ),
        transcript_service=transcript_service,
        captions=captions,
    )


@lru_cache(maxsize=1)
def get_pipeline() -> AssessmentPipeline:
    """Process-wide pipeline, used as a FastAPI dependency."""

    return build_pipeline()

"""Text extraction for uploaded documents, with OCR for scanned PDFs."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import io
import logging
from pathlib import Path
from uuid import uuid4

from docx import Document as DocxDocument
import httpx
from pdf2image import convert_from_path
from pdfminer.high_level import extract_text as pdfminer_extract_text
from pptx import Presentation
from pypdf import PdfReader
import pytesseract

from assessgen.config import Settings
from assessgen.errors import DocumentExtractionFailure, InputValidationError, OcrFailure, compact_error
from assessgen.tempfiles import discard

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = {"application/pdf"}
DOCX_MIME_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
PPTX_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.ms-powerpoint",
}


@dataclass(slots=True)
class ExtractedDocument:
    text: str
    parser: str
    page_count: int | None = None
    ocr_applied: bool = False


class OcrBackend(ABC):
    """Turns a PDF on disk into text."""

    name: str = "ocr"

    @abstractmethod
    async def extract(self, path: Path) -> str:
        """Return recognized text or raise ``OcrFailure``."""


class OcrSpaceBackend(OcrBackend):
    """OCR.space hosted API."""

    name = "ocr_space"

    def __init__(
        self,
        *,
        api_key: str | None,
        url: str = "https://api.ocr.space/parse/image",
        language: str = "eng",
        engine: int = 2,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.language = language
        self.engine = engine
        self.timeout = timeout
        self._transport = transport

    async def extract(self, path: Path) -> str:
        if not self.api_key:
            raise OcrFailure("OCR_SPACE_API_KEY is not set")

        payload = await asyncio.to_thread(path.read_bytes)
        form = {
            "apikey": self.api_key,
            "language": self.language,
            "isOverlayRequired": "false",
            "OCREngine": str(self.engine),
            "scale": "true",
            "detectOrientation": "true",
            "isCreateSearchablePdf": "false",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    data=form,
                    files={"file": (path.name, payload, "application/pdf")},
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as exc:
            raise OcrFailure(f"OCR request failed: {compact_error(exc)}") from exc
        except ValueError as exc:
            raise OcrFailure("OCR service returned invalid JSON") from exc

        if result.get("IsErroredOnProcessing"):
            message = result.get("ErrorMessage") or "unknown OCR error"
            if isinstance(message, list):
                message = "; ".join(str(item) for item in message)
            raise OcrFailure(f"OCR processing failed: {message}")

        parsed = result.get("ParsedResults") or []
        return "\n".join(
            str(item.get("ParsedText") or "") for item in parsed if isinstance(item, dict)
        )


class TesseractBackend(OcrBackend):
    """Local OCR with pdf2image and tesseract."""

    name = "tesseract"

    def __init__(self, *, language: str = "eng", max_pages: int = 20) -> None:
        self.language = language
        self.max_pages = max_pages

    async def extract(self, path: Path) -> str:
        return await asyncio.to_thread(self._extract_sync, path)

    def _extract_sync(self, path: Path) -> str:
        try:
            pages = convert_from_path(str(path), fmt="png", first_page=1, last_page=self.max_pages)
            snippets = [
                pytesseract.image_to_string(page, lang=self.language).strip() for page in pages
            ]
        except Exception as exc:
            raise OcrFailure(f"Local OCR failed: {compact_error(exc)}") from exc
        return "\n\n".join(snippet for snippet in snippets if snippet)


def build_ocr_backend(settings: Settings) -> OcrBackend:
    if settings.ocr_backend == "tesseract":
        return TesseractBackend(language=settings.tesseract_language, max_pages=settings.ocr_max_pages)
    return OcrSpaceBackend(
        api_key=settings.ocr_space_api_key,
        url=settings.ocr_space_url,
        language=settings.ocr_language,
        engine=settings.ocr_engine,
        timeout=settings.ocr_timeout_seconds,
    )


class DocumentTextExtractor:
    """PDF text with OCR fallback; DOCX and PPTX read directly."""

    def __init__(
        self,
        *,
        ocr_backend: OcrBackend,
        temp_dir: str | Path,
        min_text_chars: int = 100,
    ) -> None:
        self.ocr_backend = ocr_backend
        self.temp_dir = Path(temp_dir)
        self.min_text_chars = min_text_chars

    async def extract_text(self, source: bytes | Path, *, force_ocr: bool = False) -> str:
        return (await self.extract(source, force_ocr=force_ocr)).text

    async def extract(self, source: bytes | Path, *, force_ocr: bool = False) -> ExtractedDocument:
        """Extract PDF text.

        Direct extraction runs first unless ``force_ocr``; OCR runs when it
        raised or produced fewer than ``min_text_chars`` characters. Bytes
        are staged in a temp file that never outlives the call.
        """

        owned_path: Path | None = None
        if isinstance(source, (bytes, bytearray)):
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            owned_path = self.temp_dir / f"pdf-{uuid4().hex}.pdf"
            await asyncio.to_thread(owned_path.write_bytes, bytes(source))
            path = owned_path
        else:
            path = Path(source)

        try:
            return await self._extract_pdf(path, force_ocr=force_ocr)
        finally:
            if owned_path is not None:
                discard(owned_path)

    async def _extract_pdf(self, path: Path, *, force_ocr: bool) -> ExtractedDocument:
        direct: ExtractedDocument | None = None
        direct_outcome = "direct extraction skipped"
        if not force_ocr:
            try:
                direct = await asyncio.to_thread(read_pdf_text, path)
            except Exception as exc:
                direct_outcome = f"direct extraction failed: {compact_error(exc)}"
                logger.warning("direct PDF extraction failed", extra={"error": direct_outcome})
            else:
                if len(direct.text) >= self.min_text_chars:
                    return direct
                direct_outcome = f"direct extraction returned {len(direct.text)} characters"

        logger.info(
            "running OCR on PDF",
            extra={"backend": self.ocr_backend.name, "reason": direct_outcome},
        )
        try:
            ocr_text = (await self.ocr_backend.extract(path)).strip()
        except OcrFailure as exc:
            raise DocumentExtractionFailure(
                f"Failed to extract text from PDF: {direct_outcome}; {exc.message}"
            ) from exc

        if not ocr_text and direct is not None:
            return direct
        return ExtractedDocument(
            text=ocr_text,
            parser=f"ocr:{self.ocr_backend.name}",
            page_count=direct.page_count if direct is not None else None,
            ocr_applied=True,
        )

    async def extract_upload(
        self,
        payload: bytes,
        *,
        filename: str | None,
        content_type: str | None,
        force_ocr: bool = False,
    ) -> ExtractedDocument:
        """Dispatch an uploaded document on its type."""

        kind = detect_document_kind(filename, content_type)
        if kind == "pdf":
            return await self.extract(payload, force_ocr=force_ocr)
        if kind == "docx":
            reader, parser = read_docx_text, "python-docx"
        else:
            reader, parser = read_pptx_text, "python-pptx"
        try:
            text = await asyncio.to_thread(reader, payload)
        except Exception as exc:
            raise DocumentExtractionFailure(
                f"Failed to extract text from {kind.upper()}: {compact_error(exc)}"
            ) from exc
        return ExtractedDocument(text=text.strip(), parser=parser)


def detect_document_kind(filename: str | None, content_type: str | None) -> str:
    """Return ``pdf``, ``docx`` or ``pptx``; anything else is rejected."""

    mime = (content_type or "").split(";", 1)[0].strip().lower()
    suffix = Path(filename or "").suffix.lower()
    if mime in PDF_MIME_TYPES or suffix == ".pdf":
        return "pdf"
    if mime in DOCX_MIME_TYPES or suffix == ".docx":
        return "docx"
    if mime in PPTX_MIME_TYPES or suffix in {".pptx", ".ppt"}:
        return "pptx"
    raise InputValidationError("Only PDF, DOCX and PPTX documents are supported")


def read_pdf_text(path: Path) -> ExtractedDocument:
    reader = PdfReader(str(path))
    page_count = len(reader.pages)
    extracted = "\n\n".join(page.extract_text() or "" for page in reader.pages).strip()
    parser = "pypdf"

    if len(extracted) < 120:
        try:
            fallback_text = (pdfminer_extract_text(str(path)) or "").strip()
        except Exception:
            logger.debug("pdfminer fallback failed", exc_info=True)
        else:
            if len(fallback_text) > len(extracted):
                extracted = fallback_text
                parser = "pdfminer"

    return ExtractedDocument(text=extracted, parser=parser, page_count=page_count)


def read_docx_text(payload: bytes) -> str:
    """Body paragraphs in order, then table rows as tab-separated lines."""

    document = DocxDocument(io.BytesIO(payload))
    lines = [paragraph.text.strip() for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.append("\t".join(cell.text.strip() for cell in row.cells))
    return "\n".join(line for line in lines if line.strip())


def read_pptx_text(payload: bytes) -> str:
    """One block per slide: shape text, table cells, then speaker notes."""

    presentation = Presentation(io.BytesIO(payload))
    blocks: list[str] = []
    for number, slide in enumerate(presentation.slides, start=1):
        lines: list[str] = []
        for shape in slide.shapes:
            if shape.has_text_frame:
                lines.extend(p.text.strip() for p in shape.text_frame.paragraphs)
            elif getattr(shape, "has_table", False):
                lines.extend(
                    " | ".join(cell.text.strip() for cell in row.cells) for row in shape.table.rows
                )
        if slide.has_notes_slide:
            lines.append(slide.notes_slide.notes_text_frame.text.strip())
        body = "\n".join(line for line in lines if line)
        if body:
            blocks.append(f"[Slide {number}]\n{body}")
    return "\n\n".join(blocks)

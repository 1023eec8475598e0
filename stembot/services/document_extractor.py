"""
Format detection and text extraction for uploaded documents.

Dispatches on the declared media type to one of the extraction paths below
and always hands back an ExtractionResult.  Parser failures never escape:
they are logged and turned into a placeholder text that still describes the
file, so the summarizer and the pattern analyzer have something to work on.
The only hard failure is an unsupported media type.

    PDF          FallbackChain (PyMuPDF → pdfplumber → OCR)
    DOCX         python-docx paragraphs and tables
    XLSX         openpyxl, one CSV block per sheet
    text         UTF-8 decode (plain text, markdown, CSV, JSON)
    DOC          metadata-only placeholder
    images       Pillow preprocessing + Tesseract OCR
"""
from __future__ import annotations

import csv
import dataclasses
import io
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

import pytesseract
from docx import Document as DocxDocument
from langdetect import DetectorFactory, detect as _langdetect_fn
from langdetect.lang_detect_exception import LangDetectException
from openpyxl import load_workbook
from PIL import Image, ImageFilter, ImageOps

from stembot.config import settings
from stembot.models.documents import (
    ExtractionMetadata,
    ExtractionResult,
    ExtractionStrategy,
    UploadedBlob,
)
from stembot.services.fallback_chain import FallbackChain, build_pdf_chain

logger = logging.getLogger(__name__)

# langdetect is probabilistic; fix the seed so results are repeatable
DetectorFactory.seed = 0


PDF = "pdf"
WORD = "docx"
SPREADSHEET = "spreadsheet"
TEXT = "text"
LEGACY_WORD = "legacy_word"
IMAGE = "image"

# Declared media type → extraction path
SUPPORTED_MEDIA_TYPES: Dict[str, str] = {
    "application/pdf": PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": WORD,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": SPREADSHEET,
    "text/plain": TEXT,
    "text/markdown": TEXT,
    "text/csv": TEXT,
    "application/json": TEXT,
    "application/msword": LEGACY_WORD,
    "image/jpeg": IMAGE,
    "image/jpg": IMAGE,
    "image/png": IMAGE,
    "image/tiff": IMAGE,
    "image/bmp": IMAGE,
    "image/webp": IMAGE,
}

OCR_MAX_WIDTH = 2000


class UnsupportedMediaTypeError(ValueError):
    """Raised when no extraction path exists for the declared media type."""

    def __init__(self, media_type: str) -> None:
        self.media_type = media_type
        super().__init__(f"Unsupported file type: {media_type}")


def normalize_media_type(media_type: Optional[str]) -> str:
    """Lower-case and strip parameters, e.g. ``text/plain; charset=utf-8``."""
    return (media_type or "").split(";")[0].strip().lower()


class DocumentExtractor:
    """Turns an UploadedBlob into an ExtractionResult."""

    def __init__(
        self,
        max_parse_size: Optional[int] = None,
        pdf_chain: Optional[FallbackChain] = None,
    ) -> None:
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD
        self.max_parse_size = max_parse_size or settings.MAX_PARSE_SIZE
        self.pdf_chain = pdf_chain or build_pdf_chain()
        self._handlers: Dict[str, Callable[[UploadedBlob], Awaitable[ExtractionResult]]] = {
            PDF: self.extract_with_fallback,
            WORD: self._extract_docx,
            SPREADSHEET: self._extract_spreadsheet,
            TEXT: self._extract_plain_text,
            LEGACY_WORD: self._extract_legacy_word,
            IMAGE: self._extract_image,
        }

    @staticmethod
    def is_supported(media_type: str) -> bool:
        return normalize_media_type(media_type) in SUPPORTED_MEDIA_TYPES

    async def extract(
        self,
        blob: UploadedBlob,
        media_type: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract text from *blob* using the path for its declared media type.

        Args:
            blob: The uploaded file.
            media_type: Overrides ``blob.media_type`` when given.

        Raises:
            UnsupportedMediaTypeError: no extraction path for the media type.
        """
        declared = normalize_media_type(media_type or blob.media_type)
        kind = SUPPORTED_MEDIA_TYPES.get(declared)
        if kind is None:
            raise UnsupportedMediaTypeError(declared or "unknown")

        if blob.size > self.max_parse_size:
            logger.warning(
                "Skipping parse of %r: %s bytes exceeds the %d MB limit",
                blob.filename,
                f"{blob.size:,}",
                self.max_parse_size // (1024 * 1024),
            )
            return self._size_guard_result(blob, declared)

        try:
            result = await self._handlers[kind](blob)
        except Exception as exc:
            logger.exception("Text extraction failed for %r (%s)", blob.filename, declared)
            return self._failure_result(blob, declared, exc)

        if result.partial:
            return result
        return dataclasses.replace(
            result,
            metadata=dataclasses.replace(
                result.metadata,
                word_count=len(result.text.split()),
                language=_detect_language(result.text[:3000]),
            ),
        )

    async def extract_with_fallback(self, blob: UploadedBlob) -> ExtractionResult:
        """Run the multi-strategy PDF chain; never raises."""
        return await self.pdf_chain.run(blob)

    # ------------------------------------------------------------------
    # Format paths
    # ------------------------------------------------------------------

    async def _extract_docx(self, blob: UploadedBlob) -> ExtractionResult:
        doc = DocxDocument(io.BytesIO(blob.data))

        parts: List[str] = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                non_empty = [c for c in cells if c]
                if non_empty:
                    parts.append(" | ".join(non_empty))

        core = doc.core_properties
        metadata = ExtractionMetadata(
            title=core.title or None,
            author=core.author or None,
            subject=core.subject or None,
        )
        text = "\n".join(parts)
        if not text.strip():
            return ExtractionResult(
                text="No text found in DOCX",
                metadata=metadata,
                strategy_used=ExtractionStrategy.DOCX,
                partial=True,
            )
        return ExtractionResult(text=text, metadata=metadata, strategy_used=ExtractionStrategy.DOCX)

    async def _extract_spreadsheet(self, blob: UploadedBlob) -> ExtractionResult:
        wb = load_workbook(io.BytesIO(blob.data), read_only=True, data_only=True)
        blocks: List[str] = []
        rows_written = 0
        try:
            for ws in wb.worksheets:
                buf = io.StringIO()
                writer = csv.writer(buf, lineterminator="\n")
                for row in ws.iter_rows(values_only=True):
                    if all(cell is None for cell in row):
                        continue
                    writer.writerow(["" if cell is None else cell for cell in row])
                    rows_written += 1
                blocks.append(f"Sheet: {ws.title}\n{buf.getvalue()}")
            title = wb.properties.title if wb.properties else None
            author = wb.properties.creator if wb.properties else None
        finally:
            wb.close()

        text = "\n".join(blocks).strip()
        metadata = ExtractionMetadata(title=title or None, author=author or None)
        if rows_written == 0:
            return ExtractionResult(
                text="No data found in spreadsheet",
                metadata=metadata,
                strategy_used=ExtractionStrategy.SPREADSHEET,
                partial=True,
            )
        return ExtractionResult(text=text, metadata=metadata, strategy_used=ExtractionStrategy.SPREADSHEET)

    async def _extract_plain_text(self, blob: UploadedBlob) -> ExtractionResult:
        text = blob.data.decode("utf-8", errors="replace")
        return ExtractionResult(
            text=text,
            metadata=ExtractionMetadata(),
            strategy_used=ExtractionStrategy.PLAIN_TEXT,
            partial=not text.strip(),
        )

    async def _extract_legacy_word(self, blob: UploadedBlob) -> ExtractionResult:
        # python-docx cannot read the binary .doc format; describe the file instead
        text = (
            f"Document: {blob.filename}\n"
            f"Size: {blob.size_kb:.1f} KB\n"
            "Format: Microsoft Word Document (.doc)"
        )
        return ExtractionResult(
            text=text,
            metadata=ExtractionMetadata(),
            strategy_used=ExtractionStrategy.LEGACY_WORD,
            partial=True,
        )

    async def _extract_image(self, blob: UploadedBlob) -> ExtractionResult:
        img = Image.open(io.BytesIO(blob.data))
        prepared = _prepare_for_ocr(img)
        text = pytesseract.image_to_string(prepared, lang=settings.OCR_LANGUAGE).strip()
        if text:
            return ExtractionResult(
                text=f"Image OCR Results:\n{text}",
                metadata=ExtractionMetadata(),
                strategy_used=ExtractionStrategy.IMAGE_OCR,
            )
        return ExtractionResult(
            text=(
                "Image processed successfully but no readable text found.\n"
                f"Image Type: {normalize_media_type(blob.media_type)}"
            ),
            metadata=ExtractionMetadata(),
            strategy_used=ExtractionStrategy.IMAGE_OCR,
            partial=True,
        )

    # ------------------------------------------------------------------
    # Placeholders
    # ------------------------------------------------------------------

    def _size_guard_result(self, blob: UploadedBlob, media_type: str) -> ExtractionResult:
        limit_mb = self.max_parse_size // (1024 * 1024)
        text = (
            f"Document: {blob.filename}\n"
            f"Type: {media_type}\n"
            f"Size: {blob.size_mb:.2f} MB\n\n"
            f"Note: This file exceeds the {limit_mb} MB processing limit, so full text "
            "extraction was skipped. The file was uploaded successfully and can be "
            "reviewed manually."
        )
        return ExtractionResult(
            text=text,
            metadata=ExtractionMetadata(),
            strategy_used=ExtractionStrategy.SIZE_GUARD,
            partial=True,
        )

    def _failure_result(
        self,
        blob: UploadedBlob,
        media_type: str,
        exc: Exception,
    ) -> ExtractionResult:
        text = (
            f"Document Processing Status: {exc}\n\n"
            "File Information:\n"
            f"- Name: {blob.filename}\n"
            f"- Size: {blob.size_kb:.1f} KB\n"
            f"- Type: {media_type}\n"
            f"- Upload Date: {datetime.now(timezone.utc).isoformat()}\n\n"
            "Note: Text extraction encountered an issue, but the file was "
            "successfully uploaded."
        )
        return ExtractionResult(
            text=text,
            metadata=ExtractionMetadata(),
            strategy_used=ExtractionStrategy.FALLBACK,
            partial=True,
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _prepare_for_ocr(img: Image.Image) -> Image.Image:
    """Downscale, grayscale, stretch contrast and sharpen before Tesseract."""
    if img.width > OCR_MAX_WIDTH:
        ratio = OCR_MAX_WIDTH / img.width
        img = img.resize((OCR_MAX_WIDTH, max(1, int(img.height * ratio))))
    gray = ImageOps.grayscale(img)
    return ImageOps.autocontrast(gray).filter(ImageFilter.SHARPEN)


def _detect_language(sample: str) -> str:
    """Detect the language of a text sample; returns an ISO 639-1 code or 'unknown'."""
    if len(sample.split()) < 20:
        return "unknown"
    try:
        return _langdetect_fn(sample)
    except LangDetectException:
        return "unknown"

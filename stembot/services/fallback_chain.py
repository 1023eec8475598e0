"""
Ordered extraction strategies with a uniform success test.

A FallbackChain holds ``(strategy, attempt)`` pairs.  Each attempt receives the
raw bytes and returns an ExtractionAttempt; the first one whose text is longer
than ``min_chars`` wins.  Exceptions and trivially short text both move on to
the next step.  When every step fails the chain still returns an
ExtractionResult whose text explains what happened and carries whatever
metadata the attempts recovered along the way.

The default PDF chain is:

    pdf_primary    PyMuPDF, capped at PDF_PAGE_LIMIT pages
    pdf_secondary  pdfplumber page-by-page text walk
    pdf_ocr        PyMuPDF rasterisation + Tesseract on the first pages
"""
from __future__ import annotations

import dataclasses
import functools
import io
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
import pdfplumber
import pytesseract
from PIL import Image

from stembot.config import settings
from stembot.models.documents import (
    ExtractionMetadata,
    ExtractionResult,
    ExtractionStrategy,
    UploadedBlob,
)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ExtractionAttempt:
    """What a single strategy managed to pull out of the bytes."""

    text: str
    metadata: ExtractionMetadata = dataclasses.field(default_factory=ExtractionMetadata)


AttemptFn = Callable[[bytes], Awaitable[ExtractionAttempt]]
ChainStep = Tuple[ExtractionStrategy, AttemptFn]


class FallbackChain:
    """Runs extraction strategies in order until one yields real text."""

    def __init__(
        self,
        steps: Sequence[ChainStep],
        min_chars: int = settings.MIN_EXTRACTED_CHARS,
        label: str = "PDF",
    ) -> None:
        if not steps:
            raise ValueError("FallbackChain needs at least one step")
        self.steps: List[ChainStep] = list(steps)
        self.min_chars = min_chars
        self.label = label

    def is_success(self, text: str) -> bool:
        return len(text.strip()) > self.min_chars

    async def run(self, blob: UploadedBlob) -> ExtractionResult:
        recovered = ExtractionMetadata()
        failures: List[str] = []

        for strategy, attempt in self.steps:
            try:
                outcome = await attempt(blob.data)
            except Exception as exc:
                logger.warning(
                    "%s strategy %s failed for %r: %s",
                    self.label,
                    strategy.value,
                    blob.filename,
                    exc,
                )
                failures.append(f"{strategy.value}: {exc}")
                continue

            recovered = recovered.merge(outcome.metadata)
            text = outcome.text.strip()
            if self.is_success(text):
                logger.info(
                    "%s strategy %s extracted %d chars from %r",
                    self.label,
                    strategy.value,
                    len(text),
                    blob.filename,
                )
                return ExtractionResult(
                    text=text,
                    metadata=recovered,
                    strategy_used=strategy,
                    partial=False,
                )

            logger.info(
                "%s strategy %s returned only %d chars for %r, trying next",
                self.label,
                strategy.value,
                len(text),
                blob.filename,
            )
            failures.append(f"{strategy.value}: only {len(text)} characters extracted")

        logger.warning(
            "All %d %s strategies exhausted for %r", len(self.steps), self.label, blob.filename
        )
        return ExtractionResult(
            text=build_fallback_text(self.label, blob, recovered, failures),
            metadata=recovered,
            strategy_used=ExtractionStrategy.FALLBACK,
            partial=True,
        )


def build_fallback_text(
    label: str,
    blob: UploadedBlob,
    metadata: ExtractionMetadata,
    failures: Sequence[str],
) -> str:
    """Describe an exhausted chain in a form the summarizer can still read."""
    lines = [
        f"{label} Document Analysis",
        f"File Name: {blob.filename}",
        f"Pages: {metadata.page_count if metadata.page_count is not None else 'Unknown'}",
        f"Title: {metadata.title or 'Not specified'}",
        f"Author: {metadata.author or 'Not specified'}",
        f"Subject: {metadata.subject or 'Not specified'}",
        "",
        "No extractable text found. Possible reasons:",
        "- The document may be image-based or scanned and OCR found no text",
        "- The document may be password-protected or encrypted",
        "- The file may be corrupted or use a non-standard format",
        "- There may be a temporary processing issue",
    ]
    if failures:
        lines.append("")
        lines.append("Attempts:")
        lines.extend(f"- {reason}" for reason in failures)
    lines.append("")
    lines.append("The file has been successfully uploaded and can be manually reviewed.")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# PDF strategies
# ---------------------------------------------------------------------------

def _fitz_metadata(doc: "fitz.Document") -> ExtractionMetadata:
    raw = doc.metadata or {}
    return ExtractionMetadata(
        page_count=doc.page_count,
        title=raw.get("title") or None,
        author=raw.get("author") or None,
        subject=raw.get("subject") or None,
    )


async def pymupdf_text(data: bytes, page_limit: int) -> ExtractionAttempt:
    """Plain text of the first *page_limit* pages via PyMuPDF."""
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        if doc.needs_pass:
            raise RuntimeError("PDF is password-protected")
        metadata = _fitz_metadata(doc)
        pages: List[str] = []
        for page_num, page in enumerate(doc, start=1):
            if page_num > page_limit:
                break
            pages.append(page.get_text("text"))
        return ExtractionAttempt(text="\n".join(pages), metadata=metadata)
    finally:
        doc.close()


async def pdfplumber_text(data: bytes, page_limit: int) -> ExtractionAttempt:
    """Lower-level text walk via pdfplumber's character layout."""
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        raw = pdf.metadata or {}
        metadata = ExtractionMetadata(
            page_count=len(pdf.pages),
            title=raw.get("Title") or None,
            author=raw.get("Author") or None,
            subject=raw.get("Subject") or None,
        )
        pages = [page.extract_text() or "" for page in pdf.pages[:page_limit]]
    return ExtractionAttempt(text="\n".join(pages), metadata=metadata)


async def ocr_rendered_pages(data: bytes, page_limit: int) -> ExtractionAttempt:
    """Render pages at 2x and OCR them; for scanned PDFs."""
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        metadata = _fitz_metadata(doc)
        pages: List[str] = []
        for page_num, page in enumerate(doc, start=1):
            if page_num > page_limit:
                break
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            pages.append(pytesseract.image_to_string(img, lang=settings.OCR_LANGUAGE))
        return ExtractionAttempt(text="\n".join(pages), metadata=metadata)
    finally:
        doc.close()


def build_pdf_chain(
    page_limit: Optional[int] = None,
    ocr_page_limit: Optional[int] = None,
    min_chars: Optional[int] = None,
) -> FallbackChain:
    page_limit = page_limit or settings.PDF_PAGE_LIMIT
    ocr_page_limit = ocr_page_limit or settings.OCR_PAGE_LIMIT
    return FallbackChain(
        [
            (ExtractionStrategy.PDF_PRIMARY, functools.partial(pymupdf_text, page_limit=page_limit)),
            (ExtractionStrategy.PDF_SECONDARY, functools.partial(pdfplumber_text, page_limit=page_limit)),
            (ExtractionStrategy.PDF_OCR, functools.partial(ocr_rendered_pages, page_limit=ocr_page_limit)),
        ],
        min_chars=settings.MIN_EXTRACTED_CHARS if min_chars is None else min_chars,
        label="PDF",
    )

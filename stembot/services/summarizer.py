"""
AI summary of an extracted document.

Sends the first SUMMARY_INPUT_CHARS characters to the completion endpoint and
turns the reply into an AnalysisRecord.  Replies are accepted either as a JSON
object or as free prose; prose is mined with the regex tables below.  When the
endpoint is unavailable a deterministic local record is returned instead, so
an upload is never blocked by the summary step.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from stembot.config import settings
from stembot.models.documents import AnalysisRecord, DocumentType
from stembot.services.completion_client import CompletionClient, CompletionError
from stembot.utils.helpers import truncate_text
from stembot.utils.llm_json import parse_json_object

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Classification tables (ordered, first match wins)
# ---------------------------------------------------------------------------

DOCUMENT_TYPE_PATTERNS: Sequence[Tuple[Pattern[str], DocumentType]] = (
    (re.compile(r"\b(systematic review|literature review|review article|meta-analysis|scoping review)\b", re.I),
     DocumentType.REVIEW_ARTICLE),
    (re.compile(r"\b(conference paper|conference proceedings?|proceedings|symposium|workshop paper)\b", re.I),
     DocumentType.CONFERENCE_PAPER),
    (re.compile(r"\b(thesis|dissertation)\b", re.I),
     DocumentType.THESIS),
    (re.compile(r"\b(technical report|white paper|working paper)\b", re.I),
     DocumentType.TECHNICAL_REPORT),
    (re.compile(r"\b(book chapter|chapter of (a|the) book|edited volume)\b", re.I),
     DocumentType.BOOK_CHAPTER),
    (re.compile(r"\b(research paper|research article|journal article|empirical study|original research)\b", re.I),
     DocumentType.RESEARCH_PAPER),
)

_BULLET_RE = re.compile(r"^\s*(?:[-*•▪–]|\d{1,2}[.)])\s+(.+?)\s*$", re.M)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_LABEL_RE = re.compile(
    r"^\s*(?:\*\*|#+\s*)?(summary|key points?|key findings|document type|type|research relevance|relevance)"
    r"\s*(?:\*\*)?\s*:\s*(?:\*\*)?\s*",
    re.I,
)
_RELEVANCE_RE = re.compile(r"relevan", re.I)

MAX_KEY_POINTS = 6
SENTENCE_KEY_POINTS = 4
MIN_SENTENCE_CHARS = 20
MAX_SUMMARY_CHARS = 1200

DEFAULT_RELEVANCE = "Potentially relevant to the research project; review the key points for applicability."

SYSTEM_PROMPT = (
    "You are a document analysis assistant. Analyze the provided document text and "
    "provide a structured summary with key points, document type, and research "
    "relevance. Use a short opening summary paragraph, a bulleted list of key points, "
    "a line 'Document Type: ...' and a line 'Research Relevance: ...'."
)

USER_PROMPT = 'Analyze this document "{filename}":\n\n{text}'


def classify_document_type(text: str) -> DocumentType:
    """Map free text onto the document-type taxonomy; DOCUMENT when nothing matches."""
    for pattern, label in DOCUMENT_TYPE_PATTERNS:
        if pattern.search(text or ""):
            return label
    return DocumentType.DOCUMENT


def extract_key_points(content: str) -> List[str]:
    """Bullet lines first, else the first sentences longer than MIN_SENTENCE_CHARS."""
    bullets = [_clean_point(m.group(1)) for m in _BULLET_RE.finditer(content or "")]
    bullets = [b for b in bullets if b]
    if bullets:
        return bullets[:MAX_KEY_POINTS]

    flattened = " ".join(
        line for line in (content or "").splitlines() if not _LABEL_RE.match(line) or _strip_label(line)
    )
    sentences = [
        s.strip()
        for s in _SENTENCE_SPLIT_RE.split(flattened)
        if len(s.strip()) > MIN_SENTENCE_CHARS
    ]
    return sentences[:SENTENCE_KEY_POINTS]


def synthetic_key_points(filename: str, text: str) -> List[str]:
    return [
        f"Document name: {filename}",
        f"Text length: {len(text)} characters",
        "Basic document processing completed",
    ]


def fallback_analysis(filename: str, text: str, error: str) -> AnalysisRecord:
    """Deterministic record used when the completion endpoint is unavailable."""
    return AnalysisRecord(
        summary=(
            f'Document "{filename}" uploaded successfully. '
            "AI analysis unavailable - using basic text extraction."
        ),
        key_points=synthetic_key_points(filename, text),
        document_type=DocumentType.DOCUMENT,
        research_relevance="Analysis unavailable",
        error=error,
    )


class ContentSummarizer:
    """Produces an AnalysisRecord for an extracted document."""

    MAX_TOKENS = 1000
    TEMPERATURE = 0.3

    def __init__(self, client: CompletionClient, input_chars: Optional[int] = None) -> None:
        self.client = client
        self.input_chars = input_chars or settings.SUMMARY_INPUT_CHARS

    async def summarize(self, text: str, filename: str) -> AnalysisRecord:
        """Never raises; endpoint failures produce ``fallback_analysis``."""
        prompt = USER_PROMPT.format(filename=filename, text=text[: self.input_chars])
        try:
            content = await self.client.complete(
                SYSTEM_PROMPT,
                prompt,
                max_tokens=self.MAX_TOKENS,
                temperature=self.TEMPERATURE,
            )
        except CompletionError as exc:
            logger.warning("summarize: AI analysis failed for %r — %s", filename, exc)
            return fallback_analysis(filename, text, f"AI analysis failed: {exc}")

        record = self.parse_reply(content, filename, text)
        logger.info(
            "summarize: %r → %s, %d key points",
            filename,
            record.document_type.value,
            len(record.key_points),
        )
        return record

    def parse_reply(self, content: str, filename: str, text: str = "") -> AnalysisRecord:
        parsed = parse_json_object(content)
        if parsed is not None and str(parsed.get("summary", "")).strip():
            return self._from_json(parsed, filename, text)
        return self._from_prose(content, filename, text)

    # ------------------------------------------------------------------
    # Reply shapes
    # ------------------------------------------------------------------

    def _from_json(self, parsed: Dict[str, Any], filename: str, text: str) -> AnalysisRecord:
        summary = truncate_text(str(parsed.get("summary", "")).strip(), MAX_SUMMARY_CHARS)

        raw_points = parsed.get("keyPoints", parsed.get("key_points", []))
        if isinstance(raw_points, str):
            raw_points = [raw_points]
        points = [
            _clean_point(str(p)) for p in raw_points if isinstance(p, (str, int, float))
        ] if isinstance(raw_points, list) else []
        points = [p for p in points if p]
        if not points:
            points = extract_key_points(summary)

        raw_type = str(parsed.get("documentType", parsed.get("document_type", "")))
        relevance = str(
            parsed.get("researchRelevance", parsed.get("research_relevance", ""))
        ).strip()

        return AnalysisRecord(
            summary=summary,
            key_points=self._bounded_points(points, filename, text),
            document_type=_document_type_from_label(raw_type),
            research_relevance=relevance or DEFAULT_RELEVANCE,
        )

    def _from_prose(self, content: str, filename: str, text: str) -> AnalysisRecord:
        return AnalysisRecord(
            summary=_first_paragraph(content) or truncate_text(content.strip(), MAX_SUMMARY_CHARS),
            key_points=self._bounded_points(extract_key_points(content), filename, text),
            document_type=classify_document_type(content),
            research_relevance=_relevance_line(content) or DEFAULT_RELEVANCE,
        )

    @staticmethod
    def _bounded_points(points: List[str], filename: str, text: str) -> List[str]:
        if not points:
            points = synthetic_key_points(filename, text)
        return points[:MAX_KEY_POINTS]


# ---------------------------------------------------------------------------
# Prose helpers
# ---------------------------------------------------------------------------

def _document_type_from_label(label: str) -> DocumentType:
    for member in DocumentType:
        if label.strip().lower() == member.value.lower():
            return member
    return classify_document_type(label)


def _strip_label(line: str) -> str:
    return _LABEL_RE.sub("", line, count=1).strip()


def _clean_point(point: str) -> str:
    return point.replace("**", "").strip().rstrip(";")


def _first_paragraph(content: str) -> str:
    """First run of prose lines that are not bullets, labels or headings."""
    for block in re.split(r"\n\s*\n", content or ""):
        lines: List[str] = []
        for line in block.splitlines():
            stripped = line.strip()
            if not stripped or _BULLET_RE.match(line) or stripped.startswith("#"):
                continue
            label = _LABEL_RE.match(line)
            if label:
                if label.group(1).lower() != "summary":
                    continue
                stripped = _strip_label(line)
                if not stripped:
                    continue
            lines.append(stripped)
        if lines:
            return truncate_text(" ".join(lines), MAX_SUMMARY_CHARS)
    return ""


def _relevance_line(content: str) -> str:
    for line in (content or "").splitlines():
        if _RELEVANCE_RE.search(line) and not _BULLET_RE.match(line):
            value = _strip_label(line)
            if value:
                return value
    return ""

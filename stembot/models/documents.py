"""
In-process records passed between the ingestion pipeline stages.

These are plain dataclasses rather than ORM rows or Pydantic models: the
pipeline never persists them directly, and the HTTP layer maps them onto the
camelCase response schemas in ``stembot.models.schemas``.
"""
from __future__ import annotations

import dataclasses
import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class ExtractionStrategy(str, enum.Enum):
    """Which extraction path produced an ExtractionResult."""

    PDF_PRIMARY = "pdf_primary"
    PDF_SECONDARY = "pdf_secondary"
    PDF_OCR = "pdf_ocr"
    DOCX = "docx"
    SPREADSHEET = "spreadsheet"
    PLAIN_TEXT = "plain_text"
    LEGACY_WORD = "legacy_word"
    IMAGE_OCR = "image_ocr"
    SIZE_GUARD = "size_guard"
    FALLBACK = "fallback"


class DocumentType(str, enum.Enum):
    RESEARCH_PAPER = "Research Paper"
    REVIEW_ARTICLE = "Review Article"
    CONFERENCE_PAPER = "Conference Paper"
    THESIS = "Thesis"
    TECHNICAL_REPORT = "Technical Report"
    BOOK_CHAPTER = "Book Chapter"
    DOCUMENT = "Document"


class PatternType(str, enum.Enum):
    DATA = "data"
    LITERATURE = "literature"
    METHODOLOGY = "methodology"
    LAB_NOTES = "lab_notes"


class MatchType(str, enum.Enum):
    EXACT = "exact"
    SIMILAR_NAME = "similar_name"
    SIMILAR_CONTENT = "similar_content"
    VERSION = "version"


class DuplicateRecommendation(str, enum.Enum):
    OVERWRITE = "overwrite"
    KEEP_BOTH = "keep_both"
    MERGE = "merge"
    SKIP = "skip"


# ---------------------------------------------------------------------------
# Upload / extraction
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class UploadedBlob:
    """Raw upload as received; lives only for the duration of one request."""

    data: bytes
    media_type: str
    filename: str
    size: int

    @property
    def size_mb(self) -> float:
        return round(self.size / (1024 * 1024), 2)

    @property
    def size_kb(self) -> float:
        return round(self.size / 1024, 1)


@dataclasses.dataclass(frozen=True)
class ExtractionMetadata:
    page_count: Optional[int] = None
    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    language: Optional[str] = None
    word_count: Optional[int] = None

    def merge(self, other: "ExtractionMetadata") -> "ExtractionMetadata":
        """Return a copy where empty fields are filled from *other*."""
        values = {}
        for f in dataclasses.fields(self):
            mine = getattr(self, f.name)
            values[f.name] = mine if mine not in (None, "") else getattr(other, f.name)
        return ExtractionMetadata(**values)

    def to_dict(self) -> Dict[str, Any]:
        raw = {
            "pageCount": self.page_count,
            "title": self.title,
            "author": self.author,
            "subject": self.subject,
            "language": self.language,
            "wordCount": self.word_count,
        }
        return {k: v for k, v in raw.items() if v not in (None, "")}


@dataclasses.dataclass(frozen=True)
class ExtractionResult:
    """Output of the extractor. ``text`` is never empty of meaning: on failure
    it carries a descriptive placeholder and ``partial`` is set."""

    text: str
    metadata: ExtractionMetadata
    strategy_used: ExtractionStrategy
    partial: bool = False


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class AnalysisRecord:
    summary: str
    key_points: List[str]
    document_type: DocumentType
    research_relevance: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "summary": self.summary,
            "keyPoints": list(self.key_points),
            "documentType": self.document_type.value,
            "researchRelevance": self.research_relevance,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclasses.dataclass
class DocumentPattern:
    type: PatternType
    confidence: int
    key_elements: List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class SuggestionVariables:
    independent: Optional[str] = None
    dependent: Optional[str] = None
    population: Optional[str] = None


@dataclasses.dataclass
class QuestionSuggestion:
    confidence: int
    suggested_question: str
    reasoning: str
    document_basis: str
    variables: Optional[SuggestionVariables] = None


@dataclasses.dataclass
class StuckAssessment:
    is_stuck: bool
    stuck_indicators: List[str]
    time_since_last_progress: float  # minutes
    suggested_help: Optional[str] = None


# ---------------------------------------------------------------------------
# Stored documents
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class DocumentRecord:
    """A document as known to the document store (or about to be stored)."""

    original_name: str
    mime_type: str
    extracted_text: str = ""
    analysis_result: Dict[str, Any] = dataclasses.field(default_factory=dict)
    file_size: int = 0
    created_at: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    id: Optional[str] = None
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    filename: Optional[str] = None
    # Set when extracted_text is a placeholder rather than document content.
    extraction_partial: bool = False


# ---------------------------------------------------------------------------
# Duplicate checks
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class DuplicateMatch:
    """An existing project document that resembles a new upload."""

    document: DocumentRecord
    similarity: int
    match_type: MatchType


@dataclasses.dataclass
class DuplicateCheckResult:
    is_duplicate: bool
    confidence: int
    matches: List[DuplicateMatch] = dataclasses.field(default_factory=list)
    recommendation: DuplicateRecommendation = DuplicateRecommendation.KEEP_BOTH

"""
Pydantic schemas for request/response validation.

Wire format is camelCase; Python attributes stay snake_case.
"""
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime


class CamelModel(BaseModel):
    """Base schema serialised with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Upload validation
class FileInfo(CamelModel):
    """Basic facts about the uploaded file."""

    name: str
    size: int
    type: str
    size_mb: float = Field(..., alias="sizeMB")


class StorageInfo(CamelModel):
    """User storage usage at validation time."""

    current_usage_mb: float = Field(..., alias="currentUsageMB")
    limit_mb: float = Field(..., alias="limitMB")
    remaining_mb: float = Field(..., alias="remainingMB")
    percentage_used: float


# Analysis
class AnalysisSchema(CamelModel):
    summary: str
    key_points: List[str]
    document_type: str
    research_relevance: str
    error: Optional[str] = None


class SuggestionVariablesSchema(CamelModel):
    independent: Optional[str] = None
    dependent: Optional[str] = None
    population: Optional[str] = None


class QuestionSuggestionSchema(CamelModel):
    confidence: int = Field(..., ge=0, le=100)
    suggested_question: str
    reasoning: str
    document_basis: str
    variables: Optional[SuggestionVariablesSchema] = None

    @classmethod
    def from_suggestion(cls, suggestion) -> "QuestionSuggestionSchema":
        """Build from a pipeline QuestionSuggestion dataclass."""
        variables = suggestion.variables
        return cls(
            confidence=suggestion.confidence,
            suggested_question=suggestion.suggested_question,
            reasoning=suggestion.reasoning,
            document_basis=suggestion.document_basis,
            variables=SuggestionVariablesSchema(
                independent=variables.independent,
                dependent=variables.dependent,
                population=variables.population,
            ) if variables else None,
        )


class ExtractionInfo(CamelModel):
    """How the text was obtained."""

    strategy_used: str
    partial: bool = False
    metadata: Dict[str, Any] = {}


# POST /api/documents/analyze
class AnalyzeResponse(CamelModel):
    """Successful document analysis."""

    success: bool = True
    document_id: Optional[str] = None
    file_info: FileInfo
    extracted_text: str
    extraction: ExtractionInfo
    analysis: AnalysisSchema
    question_suggestions: List[QuestionSuggestionSchema] = []
    storage_info: Optional[StorageInfo] = None
    warning: Optional[str] = None
    timestamp: datetime


class AnalyzeErrorResponse(CamelModel):
    """Rejected or failed document analysis."""

    success: bool = False
    error: str
    details: Optional[str] = None
    file_info: Optional[FileInfo] = None
    storage_info: Optional[StorageInfo] = None


# POST /api/documents/check-duplicates
class DuplicateMatchSchema(CamelModel):
    id: Optional[str] = None
    filename: Optional[str] = None
    original_name: str
    similarity: int = Field(..., ge=0, le=100)
    match_type: str
    upload_date: datetime
    file_size: int

    @classmethod
    def from_match(cls, match) -> "DuplicateMatchSchema":
        """Build from a pipeline DuplicateMatch dataclass."""
        document = match.document
        return cls(
            id=document.id,
            filename=document.filename,
            original_name=document.original_name,
            similarity=match.similarity,
            match_type=match.match_type.value,
            upload_date=document.created_at,
            file_size=document.file_size,
        )


class DuplicateCheckResponse(CamelModel):
    success: bool = True
    is_duplicate: bool
    confidence: int
    matches: List[DuplicateMatchSchema] = []
    recommendation: str
    message: str = ""
    timestamp: datetime


# Project documents
class StoredDocumentSchema(CamelModel):
    """A stored document with its analysis and pattern classification."""

    id: str
    project_id: Optional[str] = None
    original_name: str
    mime_type: str
    file_size: int
    extraction_partial: bool = False
    analysis: Optional[Dict[str, Any]] = None
    pattern_type: str
    pattern_confidence: int
    created_at: datetime


class DocumentListResponse(CamelModel):
    project_id: str
    documents: List[StoredDocumentSchema]
    total: int


class QuestionSuggestionsRequest(CamelModel):
    current_question: Optional[str] = None


class QuestionSuggestionsResponse(CamelModel):
    project_id: str
    document_count: int
    question_suggestions: List[QuestionSuggestionSchema]


class ProgressCheckRequest(CamelModel):
    current_question: Optional[str] = None
    project_started_at: datetime
    last_question_updated_at: Optional[datetime] = None


class ProgressCheckResponse(CamelModel):
    is_stuck: bool
    stuck_indicators: List[str]
    suggested_help: Optional[str] = None
    time_since_last_progress: float  # minutes


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    completion_endpoint: str
    timestamp: datetime
    version: str = "0.1.0"

"""Database, pipeline and schema models for StemBot."""
from stembot.models.database_models import ProjectDocument, UploadStatus
from stembot.models.schemas import (
    AnalyzeErrorResponse,
    AnalyzeResponse,
    DocumentListResponse,
    HealthCheckResponse,
    ProgressCheckRequest,
    ProgressCheckResponse,
    QuestionSuggestionsRequest,
    QuestionSuggestionsResponse,
)

__all__ = [
    # Database models
    "ProjectDocument",
    "UploadStatus",
    # Pydantic schemas
    "AnalyzeErrorResponse",
    "AnalyzeResponse",
    "DocumentListResponse",
    "HealthCheckResponse",
    "ProgressCheckRequest",
    "ProgressCheckResponse",
    "QuestionSuggestionsRequest",
    "QuestionSuggestionsResponse",
]

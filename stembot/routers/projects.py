"""
Project-level document endpoints.

GET  /{project_id}/documents             — stored documents with analysis and pattern.
POST /{project_id}/question-suggestions  — regenerate research-question suggestions.
POST /{project_id}/progress-check        — stuck-student assessment with proactive help.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from stembot.dependencies.services import get_document_store, get_question_suggester
from stembot.models.schemas import (
    DocumentListResponse,
    ProgressCheckRequest,
    ProgressCheckResponse,
    QuestionSuggestionSchema,
    QuestionSuggestionsRequest,
    QuestionSuggestionsResponse,
    StoredDocumentSchema,
)
from stembot.services.document_store import DocumentStore
from stembot.services.pattern_analyzer import analyze_pattern
from stembot.services.progress_detector import check_progress
from stembot.services.question_suggester import QuestionSuggester

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{project_id}/documents", response_model=DocumentListResponse)
async def list_project_documents(
    project_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> DocumentListResponse:
    """Documents uploaded to the project, oldest first."""
    documents = await store.get_project_documents(project_id)
    items = []
    for doc in documents:
        pattern = analyze_pattern(doc)
        items.append(
            StoredDocumentSchema(
                id=doc.id,
                project_id=doc.project_id,
                original_name=doc.original_name,
                mime_type=doc.mime_type,
                file_size=doc.file_size,
                extraction_partial=doc.extraction_partial,
                analysis=doc.analysis_result or None,
                pattern_type=pattern.type.value,
                pattern_confidence=pattern.confidence,
                created_at=doc.created_at,
            )
        )
    return DocumentListResponse(project_id=project_id, documents=items, total=len(items))


@router.post(
    "/{project_id}/question-suggestions",
    response_model=QuestionSuggestionsResponse,
)
async def suggest_questions(
    project_id: str,
    body: QuestionSuggestionsRequest,
    store: DocumentStore = Depends(get_document_store),
    suggester: QuestionSuggester = Depends(get_question_suggester),
) -> QuestionSuggestionsResponse:
    """
    Suggest up to three research questions from every document in the project.

    Suggestions that fail to generate are dropped; the list may be empty.
    """
    documents = await store.get_project_documents(project_id)
    suggestions = await suggester.suggest(documents, body.current_question)
    return QuestionSuggestionsResponse(
        project_id=project_id,
        document_count=len(documents),
        question_suggestions=[QuestionSuggestionSchema.from_suggestion(s) for s in suggestions],
    )


@router.post("/{project_id}/progress-check", response_model=ProgressCheckResponse)
async def progress_check(
    project_id: str,
    body: ProgressCheckRequest,
    store: DocumentStore = Depends(get_document_store),
) -> ProgressCheckResponse:
    """Decide whether the student looks stuck on their research question."""
    documents = await store.get_project_documents(project_id)
    assessment = check_progress(
        documents,
        body.current_question,
        body.project_started_at,
        body.last_question_updated_at,
    )
    if assessment.is_stuck:
        logger.info(
            "Project %s looks stuck: %s", project_id, "; ".join(assessment.stuck_indicators)
        )
    return ProgressCheckResponse(
        is_stuck=assessment.is_stuck,
        stuck_indicators=assessment.stuck_indicators,
        suggested_help=assessment.suggested_help,
        time_since_last_progress=round(assessment.time_since_last_progress, 2),
    )

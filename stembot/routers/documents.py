"""
Document analysis and duplicate-check endpoints.

POST /analyze           validate, extract, summarise and suggest research
                        questions for one uploaded file.
POST /check-duplicates  compare an upload with the project's stored documents.

Responses always carry ``success``.  Rejections (missing file, size, type,
storage quota) are returned as structured JSON with 400 or 413; anything
unexpected becomes a 500 with ``details``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from stembot.config import settings
from stembot.dependencies.auth import get_optional_user_id, get_subscription_tier
from stembot.dependencies.services import (
    get_document_store,
    get_duplicate_detector,
    get_ingestion_service,
)
from stembot.models.documents import UploadedBlob
from stembot.models.schemas import (
    AnalysisSchema,
    AnalyzeErrorResponse,
    AnalyzeResponse,
    DuplicateCheckResponse,
    DuplicateMatchSchema,
    ExtractionInfo,
    FileInfo,
    QuestionSuggestionSchema,
    StorageInfo,
)
from stembot.services.document_extractor import UnsupportedMediaTypeError
from stembot.services.document_store import DocumentStore
from stembot.services.duplicate_detector import DuplicateDetector, create_duplicate_message
from stembot.services.ingestion import DocumentIngestionService
from stembot.services.storage_validator import StorageValidator, validate_file

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    body = AnalyzeErrorResponse(error=error, **extra)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, by_alias=True, exclude_none=True),
    )


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={
        400: {"model": AnalyzeErrorResponse},
        413: {"model": AnalyzeErrorResponse},
        500: {"model": AnalyzeErrorResponse},
    },
)
async def analyze_document(
    file: Optional[UploadFile] = File(None),
    project_id: Optional[str] = Form(None, alias="projectId"),
    current_question: Optional[str] = Form(None, alias="currentQuestion"),
    user_id: Optional[str] = Depends(get_optional_user_id),
    tier: str = Depends(get_subscription_tier),
    store: DocumentStore = Depends(get_document_store),
    service: DocumentIngestionService = Depends(get_ingestion_service),
):
    """
    Analyze an uploaded document.

    - Multipart fields: ``file`` (required), ``projectId`` and ``currentQuestion`` (optional)
    - Project uploads are saved and the project's other documents feed the suggestions
    - ``extractedText`` is capped at RESPONSE_TEXT_CHARS characters
    """
    if file is None or not file.filename:
        return _error(status.HTTP_400_BAD_REQUEST, "No file provided")

    try:
        data = await file.read()
        blob = UploadedBlob(
            data=data,
            media_type=file.content_type or "application/octet-stream",
            filename=file.filename,
            size=len(data),
        )

        checked = validate_file(blob, tier=tier)
        file_info = _file_info(checked.file_info)
        if not checked.valid:
            logger.info("Rejected %r: %s", blob.filename, checked.error)
            return _error(status.HTTP_400_BAD_REQUEST, checked.error, file_info=file_info)

        quota = await StorageValidator(store, tier).validate_storage_for_upload(
            checked.file_info.size_mb, user_id
        )
        storage_info = (
            _storage_info(quota.storage_info) if quota.storage_info else None
        )
        if not quota.can_upload:
            logger.info("Storage check refused %r: %s", blob.filename, quota.error)
            return _error(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                quota.error,
                file_info=file_info,
                storage_info=storage_info,
            )

        try:
            outcome = await service.ingest(
                blob,
                project_id=project_id or None,
                user_id=user_id,
                current_question=current_question or None,
            )
        except UnsupportedMediaTypeError as exc:
            return _error(
                status.HTTP_400_BAD_REQUEST,
                str(exc),
                details="Supported formats: PDF, DOCX, XLSX, TXT, MD, CSV, JSON, DOC and images",
                file_info=file_info,
            )

        response = AnalyzeResponse(
            document_id=outcome.document.id,
            file_info=file_info,
            extracted_text=outcome.extraction.text[: settings.RESPONSE_TEXT_CHARS],
            extraction=ExtractionInfo(
                strategy_used=outcome.extraction.strategy_used.value,
                partial=outcome.extraction.partial,
                metadata=outcome.extraction.metadata.to_dict(),
            ),
            analysis=AnalysisSchema.model_validate(outcome.analysis.to_dict()),
            question_suggestions=[
                QuestionSuggestionSchema.from_suggestion(s) for s in outcome.suggestions
            ],
            storage_info=storage_info,
            warning=checked.warning,
            timestamp=datetime.now(timezone.utc),
        )
        logger.info(
            "Analyzed %r: %s, %d suggestions, persisted=%s",
            blob.filename,
            outcome.analysis.document_type.value,
            len(outcome.suggestions),
            outcome.persisted,
        )
        return response

    except Exception as exc:
        logger.error("Document analysis failed: %s", exc, exc_info=True)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Document analysis failed",
            details=str(exc),
        )
    finally:
        await file.close()


@router.post(
    "/check-duplicates",
    response_model=DuplicateCheckResponse,
    responses={400: {"model": AnalyzeErrorResponse}, 500: {"model": AnalyzeErrorResponse}},
)
async def check_duplicates(
    file: Optional[UploadFile] = File(None),
    project_id: Optional[str] = Form(None, alias="projectId"),
    extracted_text: Optional[str] = Form(None, alias="extractedText"),
    detector: DuplicateDetector = Depends(get_duplicate_detector),
):
    """
    Compare an upload with the project's stored documents before saving it.

    - Multipart fields: ``file`` and ``projectId`` (required), ``extractedText`` (optional)
    - Up to three candidate matches are returned, best first
    """
    if file is None or not file.filename or not project_id:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing file or project ID")

    try:
        size = len(await file.read())
        result = await detector.detect_duplicates(
            project_id, file.filename, size, extracted_text or None
        )
        return DuplicateCheckResponse(
            is_duplicate=result.is_duplicate,
            confidence=result.confidence,
            matches=[DuplicateMatchSchema.from_match(m) for m in result.matches],
            recommendation=result.recommendation.value,
            message=create_duplicate_message(result),
            timestamp=datetime.now(timezone.utc),
        )
    except Exception as exc:
        logger.error("Duplicate check failed: %s", exc, exc_info=True)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Duplicate check failed",
            details=str(exc),
        )
    finally:
        await file.close()


def _file_info(info) -> FileInfo:
    return FileInfo(name=info.name, size=info.size, type=info.type, size_mb=info.size_mb)


def _storage_info(usage) -> StorageInfo:
    return StorageInfo(
        current_usage_mb=usage.current_usage_mb,
        limit_mb=usage.limit_mb,
        remaining_mb=usage.remaining_mb,
        percentage_used=usage.percentage_used,
    )

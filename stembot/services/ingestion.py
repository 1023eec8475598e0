"""
Upload-to-analysis orchestration.

    extract → summarize → persist (project uploads) → load project documents
            → suggest questions

Extraction and enrichment failures degrade inside their own stages.  A
database failure while saving or loading is logged and the analysis is still
returned; suggestions then fall back to the current document alone.  Only
UnsupportedMediaTypeError propagates to the caller.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from stembot.models.documents import (
    AnalysisRecord,
    DocumentRecord,
    ExtractionResult,
    QuestionSuggestion,
    UploadedBlob,
)
from stembot.services.document_extractor import DocumentExtractor, normalize_media_type
from stembot.services.document_store import DocumentStore
from stembot.services.question_suggester import QuestionSuggester
from stembot.services.summarizer import ContentSummarizer
from stembot.utils.helpers import stored_filename

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class IngestionOutcome:
    extraction: ExtractionResult
    analysis: AnalysisRecord
    suggestions: List[QuestionSuggestion]
    document: DocumentRecord
    persisted: bool = False


class DocumentIngestionService:
    """Runs one upload through the whole pipeline."""

    def __init__(
        self,
        extractor: DocumentExtractor,
        summarizer: ContentSummarizer,
        suggester: QuestionSuggester,
        store: Optional[DocumentStore] = None,
    ) -> None:
        self.extractor = extractor
        self.summarizer = summarizer
        self.suggester = suggester
        self.store = store

    async def ingest(
        self,
        blob: UploadedBlob,
        project_id: Optional[str] = None,
        user_id: Optional[str] = None,
        current_question: Optional[str] = None,
    ) -> IngestionOutcome:
        """
        Analyze *blob* and suggest research questions.

        Raises:
            UnsupportedMediaTypeError: the declared media type has no extraction path.
        """
        extraction = await self.extractor.extract(blob)
        logger.info(
            "Extracted %d chars from %r via %s%s",
            len(extraction.text),
            blob.filename,
            extraction.strategy_used.value,
            " (partial)" if extraction.partial else "",
        )

        analysis = await self.summarizer.summarize(extraction.text, blob.filename)

        document = DocumentRecord(
            original_name=blob.filename,
            mime_type=normalize_media_type(blob.media_type),
            extracted_text=extraction.text,
            analysis_result=analysis.to_dict(),
            file_size=blob.size,
            project_id=project_id,
            user_id=user_id,
            filename=stored_filename(blob.filename),
            extraction_partial=extraction.partial,
        )

        persisted = False
        context: List[DocumentRecord] = [document]
        if project_id and self.store is not None:
            document, persisted = await self._persist(document)
            context = await self._project_context(project_id, document, persisted)

        suggestions = await self.suggester.suggest(context, current_question)
        return IngestionOutcome(
            extraction=extraction,
            analysis=analysis,
            suggestions=suggestions,
            document=document,
            persisted=persisted,
        )

    async def _persist(self, document: DocumentRecord):
        try:
            saved = await self.store.save_document_metadata(document)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save metadata for {document.original_name!r}: {e}")
            await self.store.db.rollback()
            return document, False
        return saved, True

    async def _project_context(
        self,
        project_id: str,
        document: DocumentRecord,
        persisted: bool,
    ) -> List[DocumentRecord]:
        try:
            documents = await self.store.get_project_documents(project_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load documents for project {project_id}: {e}")
            await self.store.db.rollback()
            return [document]

        if not persisted:
            documents.append(document)
        logger.info("Project %s has %d documents for suggestions", project_id, len(documents))
        return documents

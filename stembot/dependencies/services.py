"""
Service wiring for FastAPI routes.

Every collaborator is obtained through a dependency so tests can swap it via
``app.dependency_overrides`` (the database session and the completion client
in particular).
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stembot.database import get_db
from stembot.services.completion_client import CompletionClient
from stembot.services.document_extractor import DocumentExtractor
from stembot.services.document_store import DocumentStore
from stembot.services.duplicate_detector import DuplicateDetector
from stembot.services.ingestion import DocumentIngestionService
from stembot.services.question_suggester import QuestionSuggester
from stembot.services.summarizer import ContentSummarizer


def get_completion_client() -> CompletionClient:
    return CompletionClient.from_settings()


@lru_cache(maxsize=1)
def get_document_extractor() -> DocumentExtractor:
    return DocumentExtractor()


async def get_document_store(db: AsyncSession = Depends(get_db)) -> DocumentStore:
    return DocumentStore(db)


def get_question_suggester(
    client: CompletionClient = Depends(get_completion_client),
) -> QuestionSuggester:
    return QuestionSuggester(client)


def get_ingestion_service(
    client: CompletionClient = Depends(get_completion_client),
    extractor: DocumentExtractor = Depends(get_document_extractor),
    suggester: QuestionSuggester = Depends(get_question_suggester),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentIngestionService:
    return DocumentIngestionService(
        extractor=extractor,
        summarizer=ContentSummarizer(client),
        suggester=suggester,
        store=store,
    )


def get_duplicate_detector(
    store: DocumentStore = Depends(get_document_store),
) -> DuplicateDetector:
    return DuplicateDetector(store)

"""
Document metadata persistence.

Thin repository over the ``project_documents`` table.  Rows are mapped to
DocumentRecord so the pipeline never handles ORM objects.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stembot.models.database_models import ProjectDocument, UploadStatus
from stembot.models.documents import DocumentRecord

logger = logging.getLogger(__name__)


def to_record(row: ProjectDocument) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        project_id=row.project_id,
        user_id=row.user_id,
        filename=row.filename,
        original_name=row.original_name,
        mime_type=row.mime_type,
        file_size=row.file_size or 0,
        extracted_text=row.extracted_text or "",
        analysis_result=row.analysis_result or {},
        extraction_partial=bool(row.extraction_partial),
        created_at=row.created_at,
    )


class DocumentStore:
    """Reads and writes document metadata within one session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_project_documents(self, project_id: str) -> List[DocumentRecord]:
        """All completed documents of a project, oldest first."""
        result = await self.db.execute(
            select(ProjectDocument)
            .where(
                ProjectDocument.project_id == project_id,
                ProjectDocument.upload_status == UploadStatus.COMPLETED,
            )
            .order_by(ProjectDocument.created_at, ProjectDocument.id)
        )
        return [to_record(row) for row in result.scalars().all()]

    async def save_document_metadata(self, record: DocumentRecord) -> DocumentRecord:
        """Insert *record* and return it with its id and timestamps filled in."""
        row = ProjectDocument(
            project_id=record.project_id,
            user_id=record.user_id,
            filename=record.filename or record.original_name,
            original_name=record.original_name,
            mime_type=record.mime_type,
            file_size=record.file_size,
            extracted_text=record.extracted_text,
            analysis_result=record.analysis_result,
            extraction_partial=record.extraction_partial,
            upload_status=UploadStatus.COMPLETED,
            created_at=record.created_at,
        )
        self.db.add(row)
        await self.db.flush()
        await self.db.refresh(row)
        logger.info(
            "Saved document %s (%r) to project %s", row.id, row.original_name, row.project_id
        )
        return to_record(row)

    async def get_storage_usage_bytes(self, user_id: Optional[str] = None) -> int:
        """Total size of stored documents for *user_id* (anonymous uploads when None)."""
        condition = (
            ProjectDocument.user_id.is_(None) if user_id is None
            else ProjectDocument.user_id == user_id
        )
        result = await self.db.execute(
            select(func.coalesce(func.sum(ProjectDocument.file_size), 0)).where(condition)
        )
        return int(result.scalar_one())

"""
SQLAlchemy ORM models for the StemBot document store.
"""
import enum
import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    JSON,
    String,
    Text,
    Enum as SQLEnum,
)
from sqlalchemy.sql import func

from stembot.database import Base


class UploadStatus(str, enum.Enum):
    """Lifecycle of an uploaded document's metadata row."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


class ProjectDocument(Base):
    """An uploaded document with its extracted text and AI analysis."""

    __tablename__ = "project_documents"

    id = Column(String(36), primary_key=True, default=_new_id)
    project_id = Column(String(255), nullable=True, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    filename = Column(String(512), nullable=False)
    original_name = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    extracted_text = Column(Text, nullable=True)
    analysis_result = Column(JSON, nullable=True)
    extraction_partial = Column(Boolean, nullable=False, default=False)
    upload_status = Column(
        SQLEnum(UploadStatus, values_callable=lambda e: [m.value for m in e]),
        default=UploadStatus.COMPLETED,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

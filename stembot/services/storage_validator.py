"""
Upload pre-conditions: per-file checks and per-user storage quotas.

``validate_file`` is pure (size cap and allowed media types per context).
``StorageValidator`` measures the user's stored documents through the
DocumentStore and refuses uploads that would fill the quota.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, Optional, Sequence

from stembot.config import settings
from stembot.models.documents import UploadedBlob
from stembot.services.document_extractor import normalize_media_type
from stembot.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Largest single file per subscription tier, in MB
FILE_SIZE_LIMITS_MB: Dict[str, int] = {"free": 10, "pro": 100, "enterprise": 500}

# Total stored documents per subscription tier, in MB
STORAGE_LIMITS_MB: Dict[str, int] = {"free": 50, "pro": 1000, "enterprise": 5000}

LARGE_FILE_RATIO = 0.8
STORAGE_RED_PERCENT = 95.0

DOCUMENTS = "documents"
IMAGES = "images"
DATA = "data"

ALLOWED_FILE_TYPES: Dict[str, Sequence[str]] = {
    DOCUMENTS: (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "text/markdown",
    ),
    IMAGES: (
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/tiff",
        "image/bmp",
        "image/svg+xml",
    ),
    DATA: (
        "text/csv",
        "application/json",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
}

EXTENSIONS: Dict[str, str] = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
    "text/markdown": ".md",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
    "image/bmp": ".bmp",
    "image/svg+xml": ".svg",
    "text/csv": ".csv",
    "application/json": ".json",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}

STORAGE_UNAVAILABLE = "Unable to validate storage limits. Please try again."


@dataclasses.dataclass
class FileInfo:
    name: str
    size: int
    type: str
    size_mb: float


@dataclasses.dataclass
class FileValidationResult:
    valid: bool
    file_info: FileInfo
    error: Optional[str] = None
    warning: Optional[str] = None


@dataclasses.dataclass
class StorageUsage:
    current_usage_mb: float
    limit_mb: float
    remaining_mb: float
    percentage_used: float


@dataclasses.dataclass
class StorageValidationResult:
    can_upload: bool
    error: Optional[str] = None
    storage_info: Optional[StorageUsage] = None


def _tier(tier: Optional[str]) -> str:
    tier = (tier or settings.DEFAULT_SUBSCRIPTION_TIER).lower()
    if tier not in FILE_SIZE_LIMITS_MB:
        raise ValueError(f"Unknown subscription tier: {tier}")
    return tier


def resolve_context(media_type: str) -> str:
    """The context whose allow-list contains *media_type*; documents otherwise."""
    media_type = normalize_media_type(media_type)
    for context in (DATA, IMAGES):
        if media_type in ALLOWED_FILE_TYPES[context]:
            return context
    return DOCUMENTS


def allowed_extensions(context: str) -> list:
    return [EXTENSIONS[t] for t in ALLOWED_FILE_TYPES[context] if t in EXTENSIONS]


def validate_file(
    blob: UploadedBlob,
    context: Optional[str] = None,
    tier: Optional[str] = None,
) -> FileValidationResult:
    """Check the per-file size cap and the allowed media types."""
    limit_mb = FILE_SIZE_LIMITS_MB[_tier(tier)]
    media_type = normalize_media_type(blob.media_type)
    context = context or resolve_context(media_type)
    info = FileInfo(
        name=blob.filename,
        size=blob.size,
        type=media_type,
        size_mb=round(blob.size / MB, 2),
    )

    if blob.size / MB > limit_mb:
        return FileValidationResult(
            valid=False,
            file_info=info,
            error=(
                f"File size ({info.size_mb} MB) exceeds the maximum allowed size of "
                f"{limit_mb} MB for your plan."
            ),
        )

    if media_type not in ALLOWED_FILE_TYPES.get(context, ()):
        return FileValidationResult(
            valid=False,
            file_info=info,
            error=(
                f"File type '{media_type}' is not allowed. Allowed types: "
                f"{', '.join(allowed_extensions(context))}"
            ),
        )

    warning = None
    if blob.size / MB > limit_mb * LARGE_FILE_RATIO:
        warning = f"Large file detected ({info.size_mb} MB). Consider compressing if possible."
    return FileValidationResult(valid=True, file_info=info, warning=warning)


class StorageValidator:
    """Checks an upload against the user's remaining storage."""

    def __init__(self, store: DocumentStore, tier: Optional[str] = None) -> None:
        self.store = store
        self.tier = _tier(tier)

    @property
    def limit_mb(self) -> int:
        return STORAGE_LIMITS_MB[self.tier]

    async def validate_storage_for_upload(
        self,
        size_mb: float,
        user_id: Optional[str] = None,
    ) -> StorageValidationResult:
        try:
            used_bytes = await self.store.get_storage_usage_bytes(user_id)
        except Exception as e:
            logger.error(f"Error validating storage for upload: {e}")
            return StorageValidationResult(can_upload=False, error=STORAGE_UNAVAILABLE)

        used_mb = used_bytes / MB
        usage = StorageUsage(
            current_usage_mb=round(used_mb, 2),
            limit_mb=self.limit_mb,
            remaining_mb=round(self.limit_mb - used_mb, 2),
            percentage_used=round(used_mb / self.limit_mb * 100, 1),
        )

        projected_mb = used_mb + size_mb
        projected_percent = projected_mb / self.limit_mb * 100
        if projected_percent >= 100:
            return StorageValidationResult(
                can_upload=False,
                storage_info=usage,
                error=(
                    f"Storage limit exceeded. This would use {projected_mb:.1f} MB of your "
                    f"{self.limit_mb} MB limit."
                ),
            )
        if projected_percent >= STORAGE_RED_PERCENT:
            return StorageValidationResult(
                can_upload=False,
                storage_info=usage,
                error=(
                    f"This action would exceed {STORAGE_RED_PERCENT:.0f}% of your storage limit "
                    f"({projected_percent:.1f}%). Please free up space first."
                ),
            )
        return StorageValidationResult(can_upload=True, storage_info=usage)

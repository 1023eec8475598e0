"""Tests for per-file validation and storage quotas."""
import pytest

from stembot.models.documents import DocumentRecord, UploadedBlob
from stembot.services.document_store import DocumentStore
from stembot.services.storage_validator import (
    DATA,
    DOCUMENTS,
    IMAGES,
    STORAGE_UNAVAILABLE,
    StorageValidator,
    resolve_context,
    validate_file,
)

MB = 1024 * 1024
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _blob(media_type: str, size: int, name: str = "file.bin") -> UploadedBlob:
    return UploadedBlob(data=b"", media_type=media_type, filename=name, size=size)


# ---------------------------------------------------------------------------
# validate_file
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "media_type, context",
    [
        ("application/pdf", DOCUMENTS),
        ("text/plain; charset=utf-8", DOCUMENTS),
        (XLSX, DATA),
        ("text/csv", DATA),
        ("image/png", IMAGES),
        ("application/zip", DOCUMENTS),
    ],
)
def test_resolve_context(media_type, context):
    assert resolve_context(media_type) == context


def test_small_pdf_is_valid():
    result = validate_file(_blob("application/pdf", 2 * MB, "paper.pdf"))

    assert result.valid is True
    assert result.error is None
    assert result.warning is None
    assert result.file_info.size_mb == 2.0
    assert result.file_info.name == "paper.pdf"


def test_spreadsheet_and_image_accepted_without_explicit_context():
    assert validate_file(_blob(XLSX, MB)).valid
    assert validate_file(_blob("image/jpeg", MB)).valid


def test_explicit_context_still_restricts_types():
    result = validate_file(_blob(XLSX, MB), context=DOCUMENTS)
    assert result.valid is False
    assert "File type" in result.error
    assert ".pdf" in result.error


def test_free_tier_size_cap():
    result = validate_file(_blob("application/pdf", 11 * MB))

    assert result.valid is False
    assert "exceeds the maximum allowed size of 10 MB" in result.error


def test_pro_tier_allows_larger_files():
    assert validate_file(_blob("application/pdf", 60 * MB), tier="pro").valid


def test_large_file_warning_above_eighty_percent():
    result = validate_file(_blob("application/pdf", int(8.5 * MB)))
    assert result.valid is True
    assert "Large file detected" in result.warning


def test_unknown_type_rejected():
    result = validate_file(_blob("application/zip", MB, "a.zip"))
    assert result.valid is False
    assert "'application/zip' is not allowed" in result.error


def test_unknown_tier_raises():
    with pytest.raises(ValueError):
        validate_file(_blob("application/pdf", MB), tier="platinum")


# ---------------------------------------------------------------------------
# StorageValidator
# ---------------------------------------------------------------------------

async def _store_with(db_session, user_id, sizes):
    store = DocumentStore(db_session)
    for i, size in enumerate(sizes):
        await store.save_document_metadata(
            DocumentRecord(
                original_name=f"doc{i}.pdf",
                mime_type="application/pdf",
                file_size=size,
                user_id=user_id,
                project_id="p1",
            )
        )
    return store


@pytest.mark.asyncio
async def test_upload_within_quota(db_session):
    store = await _store_with(db_session, "u1", [10 * MB, 5 * MB])

    result = await StorageValidator(store).validate_storage_for_upload(2.0, "u1")

    assert result.can_upload is True
    assert result.storage_info.current_usage_mb == 15.0
    assert result.storage_info.limit_mb == 50
    assert result.storage_info.remaining_mb == 35.0
    assert result.storage_info.percentage_used == 30.0


@pytest.mark.asyncio
async def test_upload_over_quota_refused(db_session):
    store = await _store_with(db_session, "u1", [45 * MB])

    result = await StorageValidator(store).validate_storage_for_upload(6.0, "u1")

    assert result.can_upload is False
    assert result.error.startswith("Storage limit exceeded")
    assert result.storage_info.current_usage_mb == 45.0


@pytest.mark.asyncio
async def test_upload_into_red_zone_refused(db_session):
    store = await _store_with(db_session, "u1", [46 * MB])

    result = await StorageValidator(store).validate_storage_for_upload(2.0, "u1")

    assert result.can_upload is False
    assert "95%" in result.error


@pytest.mark.asyncio
async def test_usage_is_per_user(db_session):
    store = await _store_with(db_session, "someone-else", [49 * MB])

    result = await StorageValidator(store, tier="free").validate_storage_for_upload(5.0, "u1")

    assert result.can_upload is True
    assert result.storage_info.current_usage_mb == 0.0


@pytest.mark.asyncio
async def test_store_failure_blocks_upload():
    class BrokenStore:
        async def get_storage_usage_bytes(self, user_id=None):
            raise RuntimeError("connection refused")

    result = await StorageValidator(BrokenStore()).validate_storage_for_upload(1.0, "u1")

    assert result.can_upload is False
    assert result.error == STORAGE_UNAVAILABLE
    assert result.storage_info is None

"""Tests for DuplicateDetector scoring, ranking and messages."""
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from stembot.models.documents import DocumentRecord, DuplicateRecommendation, MatchType
from stembot.services.document_store import DocumentStore
from stembot.services.duplicate_detector import (
    DuplicateDetector,
    calculate_similarity,
    clean_filename,
    create_duplicate_message,
    is_version_of,
    name_similarity,
    text_similarity,
)

UPLOADED = datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)
NOTES = (
    "Participants recorded their nightly sleep duration and completed a short "
    "memory quiz every morning for three weeks."
)


def _existing(name: str, size: int = 5000, text: str = "", partial: bool = False) -> DocumentRecord:
    return DocumentRecord(
        id=f"id-{name}",
        original_name=name,
        filename=f"stored_{name}",
        mime_type="application/pdf",
        extracted_text=text,
        file_size=size,
        created_at=UPLOADED,
        extraction_partial=partial,
    )


class ListStore:
    """Store that serves a fixed list of project documents."""

    def __init__(self, documents):
        self.documents = documents

    async def get_project_documents(self, project_id):
        return list(self.documents)


class _RecordingRollback:
    def __init__(self):
        self.rolled_back = False

    async def rollback(self):
        self.rolled_back = True


class BrokenStore:
    def __init__(self):
        self.db = _RecordingRollback()

    async def get_project_documents(self, project_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


# ---------------------------------------------------------------------------
# Scoring ladder
# ---------------------------------------------------------------------------

def test_same_name_ignoring_case_is_exact():
    assert calculate_similarity("Sleep_Study.pdf", 10, _existing("sleep_study.pdf")) == (
        95,
        MatchType.EXACT,
    )


def test_same_size_and_similar_name_is_exact():
    score = calculate_similarity("sleep_study_copy.pdf", 5000, _existing("sleep_study.pdf"))
    assert score == (90, MatchType.EXACT)


@pytest.mark.parametrize(
    "new, old",
    [
        ("thesis_draft.docx", "thesis_final.docx"),
        ("lab_report_v2.pdf", "lab_report_v1.pdf"),
        ("survey (2).xlsx", "survey.xlsx"),
    ],
)
def test_version_markers(new, old):
    assert is_version_of(new, old)
    assert calculate_similarity(new, 1, _existing(old)) == (85, MatchType.VERSION)


def test_version_needs_a_marker():
    assert not is_version_of("sleep.pdf", "sleep.pdf")


def test_similar_name_gets_bonus():
    score = calculate_similarity(
        "sleep_and_memory_study_notes.pdf", 1, _existing("sleep_and_memory_study.pdf")
    )
    assert score == (92, MatchType.SIMILAR_NAME)


def test_similar_content_with_unrelated_names():
    score = calculate_similarity("week3_notes.txt", 1, _existing("summary.txt", text=NOTES), NOTES)
    assert score == (100, MatchType.SIMILAR_CONTENT)


def test_placeholder_text_is_not_compared():
    existing = _existing("summary.txt", text=NOTES, partial=True)
    score, match_type = calculate_similarity("week3_notes.txt", 1, existing, NOTES)

    assert match_type == MatchType.SIMILAR_NAME
    assert score <= 30


def test_clean_filename():
    assert clean_filename("Sleep_Study_2023_v2 (copy).pdf") == "sleep study"


def test_name_similarity_bounds():
    assert name_similarity("sleep study.pdf", "sleep-study.docx") == 100
    assert name_similarity("sleep.pdf", "glucose_sensor.pdf") < 30


def test_text_similarity_ignores_short_words_and_punctuation():
    assert text_similarity("The cat, the dog!", "a cat and a dog") == 0
    assert text_similarity("Sleep, memory; quiz.", "quiz memory sleep") == 100


# ---------------------------------------------------------------------------
# detect_duplicates
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_exact_duplicate_recommends_overwrite():
    detector = DuplicateDetector(ListStore([_existing("thesis_draft.docx")]))

    result = await detector.detect_duplicates("p1", "Thesis_Draft.docx", 1)

    assert result.is_duplicate is True
    assert result.confidence == 95
    assert result.recommendation == DuplicateRecommendation.OVERWRITE
    assert result.matches[0].document.id == "id-thesis_draft.docx"


@pytest.mark.asyncio
async def test_matches_sorted_capped_at_three_and_stable():
    store = ListStore(
        [
            _existing("thesis_final.docx"),
            _existing("thesis_draft_notes.docx"),
            _existing("thesis_draft.docx"),
            _existing("thesis_v1.docx"),
            _existing("glucose_sensor.pdf"),
        ]
    )

    result = await DuplicateDetector(store).detect_duplicates("p1", "thesis_draft.docx", 1)

    assert [(m.document.original_name, m.similarity, m.match_type) for m in result.matches] == [
        ("thesis_draft.docx", 95, MatchType.EXACT),
        ("thesis_final.docx", 85, MatchType.VERSION),
        ("thesis_v1.docx", 85, MatchType.VERSION),
    ]
    assert result.confidence == 95


@pytest.mark.asyncio
async def test_version_match_recommends_keep_both():
    detector = DuplicateDetector(ListStore([_existing("lab_report_v1.pdf")]))

    result = await detector.detect_duplicates("p1", "lab_report_v2.pdf", 1)

    assert result.is_duplicate is True
    assert result.recommendation == DuplicateRecommendation.KEEP_BOTH


@pytest.mark.asyncio
async def test_unrelated_upload_is_not_duplicate():
    detector = DuplicateDetector(ListStore([_existing("glucose_sensor.pdf")]))

    result = await detector.detect_duplicates("p1", "sleep.csv", 1)

    assert result.is_duplicate is False
    assert result.confidence == 0
    assert result.matches == []
    assert result.recommendation == DuplicateRecommendation.KEEP_BOTH
    assert create_duplicate_message(result) == ""


@pytest.mark.asyncio
async def test_empty_project_is_not_duplicate():
    result = await DuplicateDetector(ListStore([])).detect_duplicates("p1", "a.pdf", 1)
    assert (result.is_duplicate, result.confidence, result.matches) == (False, 0, [])


@pytest.mark.asyncio
async def test_database_failure_reports_no_duplicate():
    store = BrokenStore()

    result = await DuplicateDetector(store).detect_duplicates("p1", "a.pdf", 1)

    assert result.is_duplicate is False
    assert result.recommendation == DuplicateRecommendation.KEEP_BOTH
    assert store.db.rolled_back is True


@pytest.mark.asyncio
async def test_only_completed_project_documents_are_compared(db_session):
    store = DocumentStore(db_session)
    await store.save_document_metadata(
        DocumentRecord(original_name="notes.pdf", mime_type="application/pdf", project_id="p1")
    )
    await store.save_document_metadata(
        DocumentRecord(original_name="notes.pdf", mime_type="application/pdf", project_id="p2")
    )

    result = await DuplicateDetector(store).detect_duplicates("p1", "notes.pdf", 10)

    assert len(result.matches) == 1
    assert result.matches[0].document.project_id == "p1"


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_message_for_exact_match():
    detector = DuplicateDetector(ListStore([_existing("thesis_draft.docx")]))
    result = await detector.detect_duplicates("p1", "thesis_draft.docx", 1)

    message = create_duplicate_message(result)

    assert message.startswith("**Potential Duplicate Detected** (95% similarity)")
    assert '**Exact match found:** "thesis_draft.docx"' in message
    assert "Previously uploaded: 2026-03-02" in message
    assert "**What would you like to do?**" in message
    assert "Replace the existing file" in message


@pytest.mark.asyncio
async def test_message_for_version_match():
    detector = DuplicateDetector(ListStore([_existing("lab_report_v1.pdf")]))
    result = await detector.detect_duplicates("p1", "lab_report_v2.pdf", 1)

    message = create_duplicate_message(result)

    assert '**Version of existing document:** "lab_report_v1.pdf"' in message
    assert "Keep both files" in message

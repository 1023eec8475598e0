"""
Stuck-student detection.

Pure and synchronous: given the project's documents, the current research
question and a few timestamps, decide whether the student seems stuck and
pick one proactive help message.  ``now`` is injectable for tests; naive
datetimes are read as UTC.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from stembot.models.documents import DocumentRecord, StuckAssessment
from stembot.services.pattern_analyzer import is_spreadsheet_like

PROJECT_VAGUE_MINUTES = 30
UPLOAD_VAGUE_MINUTES = 20
MIN_QUESTION_CHARS = 10

VAGUE_AFTER_START = "Question still vague after 30+ minutes"
VAGUE_AFTER_UPLOAD = "Uploaded documents but question unchanged for 20+ minutes"
VAGUE_WITH_DATA = "Has data files but question lacks specificity"

VAGUE_OPENINGS = (
    re.compile(r"^(i want to|looking at|studying|researching|investigating)", re.I),
    re.compile(r"^(what|how|why) (is|are|does|do|can|will)", re.I),
)
SPECIFICITY_MARKER = re.compile(
    r"\b(students?|adults?|children|participants?|in|among|between|compared to|measured by|using)\b",
    re.I,
)

DATA_HELP = (
    "I notice you've uploaded some great data ({filename}). Would it help to frame a "
    "specific question around the variables in that dataset? I can help you identify "
    "what relationships you could explore."
)
PAPERS_HELP = (
    "I see you've uploaded several research papers. Would you like me to help you "
    "identify potential research gaps or suggest how to build on this existing work "
    "with a more focused question?"
)
GENERIC_HELP = (
    "I notice you've been working on this question for a while. Would it help to break "
    "it down into more specific components? I can guide you through refining your "
    "research focus step by step."
)


def is_vague_question(question: Optional[str]) -> bool:
    """Generic opening with no population, comparison or measurement marker."""
    if not question or len(question) < MIN_QUESTION_CHARS:
        return True
    stripped = question.strip()
    vague_start = any(p.search(stripped) for p in VAGUE_OPENINGS)
    return vague_start and not SPECIFICITY_MARKER.search(question)


def check_progress(
    documents: Sequence[DocumentRecord],
    current_question: Optional[str],
    project_started_at: datetime,
    last_question_updated_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> StuckAssessment:
    now = _as_utc(now or datetime.now(timezone.utc))
    minutes_since_start = _minutes_between(_as_utc(project_started_at), now)
    vague = is_vague_question(current_question)

    indicators: List[str] = []
    if minutes_since_start > PROJECT_VAGUE_MINUTES and vague:
        indicators.append(VAGUE_AFTER_START)

    if documents:
        last_upload = max(_as_utc(d.created_at) for d in documents)
        if _minutes_between(last_upload, now) > UPLOAD_VAGUE_MINUTES and vague:
            indicators.append(VAGUE_AFTER_UPLOAD)
        if vague and any(_is_data_document(d) for d in documents):
            indicators.append(VAGUE_WITH_DATA)

    is_stuck = bool(indicators)
    if last_question_updated_at is not None:
        since_progress = _minutes_between(_as_utc(last_question_updated_at), now)
    else:
        since_progress = minutes_since_start

    return StuckAssessment(
        is_stuck=is_stuck,
        stuck_indicators=indicators,
        time_since_last_progress=since_progress,
        suggested_help=generate_proactive_help(documents) if is_stuck else None,
    )


def generate_proactive_help(documents: Sequence[DocumentRecord]) -> str:
    """Spreadsheet upload first, then PDF papers, then a generic nudge."""
    data_doc = next((d for d in documents if _is_data_document(d)), None)
    if data_doc is not None:
        return DATA_HELP.format(filename=data_doc.original_name)
    if any("pdf" in (d.mime_type or "").lower() for d in documents):
        return PAPERS_HELP
    return GENERIC_HELP


def _is_data_document(document: DocumentRecord) -> bool:
    return is_spreadsheet_like(document.mime_type or "", document.original_name or "")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0

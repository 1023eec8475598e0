"""
Duplicate detection for uploads into a project.

A new file is compared with every completed document of the project.  Each
comparison walks a fixed ladder and stops at the first rung that fires:

    1. same name (case-insensitive)              → exact, 95
    2. same size and name score > 50             → exact, 90
    3. same base name plus a version marker      → version, 85
    4. name score > 70                           → similar_name, score + 10 (max 95)
    5. content overlap > 60 (both have text)     → similar_content, overlap
    6. paper-title overlap > 50                  → similar_name, overlap
    7. otherwise                                 → similar_name, best of name/title

Scores above MATCH_THRESHOLD are reported (top three); the upload counts as a
duplicate when the best one is above DUPLICATE_THRESHOLD.
"""
from __future__ import annotations

import logging
import re
from difflib import SequenceMatcher
from typing import List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from stembot.models.documents import (
    DocumentRecord,
    DuplicateCheckResult,
    DuplicateMatch,
    DuplicateRecommendation,
    MatchType,
)
from stembot.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 30
DUPLICATE_THRESHOLD = 70
MAX_MATCHES = 3
CONTENT_SAMPLE_CHARS = 2000
MIN_PAPER_TITLE_CHARS = 10

EXACT_NAME_SCORE = 95
SAME_SIZE_SCORE = 90
VERSION_SCORE = 85
MAX_NAME_SCORE = 95

_EXTENSION_RE = re.compile(r"\.(pdf|docx?|xlsx?|txt|png|jpe?g)$", re.I)
_SEPARATORS_RE = re.compile(r"[_\-\s]+")
_YEAR_RE = re.compile(r"\d{4}[_\-\s]")
_VERSION_NUMBER_RE = re.compile(r"v\d+|version\s*\d+|rev\s*\d+", re.I)
_PARENTHESES_RE = re.compile(r"\([^)]*\)")
_VERSION_MARKER = r"v\d+|version\s*\d+|rev\s*\d+|final|draft|\(\d+\)"
_VERSION_MARKER_RE = re.compile(_VERSION_MARKER, re.I)
_VERSION_STRIP_RE = re.compile(r"[_\-\s]*(?:%s)[_\-\s]*" % _VERSION_MARKER, re.I)
_SHORT_WORD_RE = re.compile(r"\b\w{1,3}\b")
_NON_WORD_RE = re.compile(r"[^\w\s]")


class DuplicateDetector:
    """Compares an upload against the documents already stored for a project."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def detect_duplicates(
        self,
        project_id: str,
        filename: str,
        file_size: int,
        extracted_text: Optional[str] = None,
    ) -> DuplicateCheckResult:
        """
        Score *filename* against the project's completed documents.

        A database failure is logged and reported as "no duplicate" so the
        upload itself is never blocked by the check.
        """
        try:
            existing = await self.store.get_project_documents(project_id)
        except SQLAlchemyError as e:
            logger.error(f"Duplicate check could not load project {project_id}: {e}")
            await self.store.db.rollback()
            return DuplicateCheckResult(is_duplicate=False, confidence=0)

        matches: List[DuplicateMatch] = []
        for document in existing:
            score, match_type = calculate_similarity(
                filename, file_size, document, extracted_text
            )
            logger.debug(
                "Compared %r with %r: %d (%s)",
                filename, document.original_name, score, match_type.value,
            )
            if score > MATCH_THRESHOLD:
                matches.append(
                    DuplicateMatch(document=document, similarity=score, match_type=match_type)
                )

        # sorted() is stable, so equal scores keep upload order
        matches = sorted(matches, key=lambda m: m.similarity, reverse=True)
        top = matches[0] if matches else None
        result = DuplicateCheckResult(
            is_duplicate=top is not None and top.similarity > DUPLICATE_THRESHOLD,
            confidence=top.similarity if top else 0,
            matches=matches[:MAX_MATCHES],
            recommendation=recommend(top),
        )
        logger.info(
            "Duplicate check for %r in project %s: %d candidates, duplicate=%s",
            filename, project_id, len(matches), result.is_duplicate,
        )
        return result


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def calculate_similarity(
    filename: str,
    file_size: int,
    existing: DocumentRecord,
    extracted_text: Optional[str] = None,
) -> Tuple[int, MatchType]:
    new_name = filename.lower()
    old_name = (existing.original_name or "").lower()

    if new_name == old_name:
        return EXACT_NAME_SCORE, MatchType.EXACT

    name_score = name_similarity(new_name, old_name)
    if file_size == existing.file_size and name_score > 50:
        return SAME_SIZE_SCORE, MatchType.EXACT

    if is_version_of(new_name, old_name):
        return VERSION_SCORE, MatchType.VERSION

    if name_score > 70:
        return min(name_score + 10, MAX_NAME_SCORE), MatchType.SIMILAR_NAME

    # a placeholder from a failed extraction says nothing about the content
    old_text = "" if existing.extraction_partial else existing.extracted_text
    if extracted_text and old_text:
        content_score = text_similarity(extracted_text, old_text)
        if content_score > 60:
            return content_score, MatchType.SIMILAR_CONTENT

    paper_score = paper_title_similarity(new_name, old_name)
    if paper_score > 50:
        return paper_score, MatchType.SIMILAR_NAME

    return max(name_score, paper_score), MatchType.SIMILAR_NAME


def name_similarity(first: str, second: str) -> int:
    """Blend of word overlap (70%) and character-level similarity (30%)."""
    a, b = clean_filename(first), clean_filename(second)
    char_ratio = SequenceMatcher(None, a, b).ratio()
    return round(jaccard(_words(a, 2), _words(b, 2)) * 70 + char_ratio * 30)


def clean_filename(filename: str) -> str:
    """``Sleep_Study_2023_v2 (copy).pdf`` → ``sleep study``"""
    name = _EXTENSION_RE.sub("", filename)
    name = _SEPARATORS_RE.sub(" ", name)
    name = _YEAR_RE.sub("", name)
    name = _VERSION_NUMBER_RE.sub("", name)
    name = _PARENTHESES_RE.sub("", name)
    return name.strip().lower()


def is_version_of(first: str, second: str) -> bool:
    """Same base name once version markers are removed, and at least one has a marker."""
    base_a = _VERSION_STRIP_RE.sub("", first)
    base_b = _VERSION_STRIP_RE.sub("", second)
    if jaccard(_words(base_a, 2), _words(base_b, 2)) <= 0.8:
        return False
    return bool(_VERSION_MARKER_RE.search(first) or _VERSION_MARKER_RE.search(second))


def paper_title_similarity(first: str, second: str) -> int:
    title_a, title_b = paper_title(first), paper_title(second)
    if len(title_a) < MIN_PAPER_TITLE_CHARS or len(title_b) < MIN_PAPER_TITLE_CHARS:
        return 0
    return round(jaccard(_words(title_a, 2), _words(title_b, 2)) * 100)


def paper_title(filename: str) -> str:
    title = _YEAR_RE.sub("", filename)
    title = re.sub(r"[_\-]", " ", title)
    title = _SHORT_WORD_RE.sub("", title)
    return re.sub(r"\s+", " ", title).strip().lower()


def text_similarity(first: str, second: str) -> int:
    """Word overlap of the first CONTENT_SAMPLE_CHARS of each text, 0-100."""
    words_a = _content_words(first[:CONTENT_SAMPLE_CHARS])
    words_b = _content_words(second[:CONTENT_SAMPLE_CHARS])
    if not words_a or not words_b:
        return 0
    return round(jaccard(words_a, words_b) * 100)


def jaccard(first: Set[str], second: Set[str]) -> float:
    union = first | second
    return len(first & second) / len(union) if union else 0.0


def _words(text: str, min_len: int) -> Set[str]:
    return {w for w in text.split() if len(w) > min_len}


def _content_words(text: str) -> Set[str]:
    return _words(_NON_WORD_RE.sub("", text.lower()), 3)


# ---------------------------------------------------------------------------
# Recommendation and message
# ---------------------------------------------------------------------------

def recommend(top: Optional[DuplicateMatch]) -> DuplicateRecommendation:
    if top is None:
        return DuplicateRecommendation.KEEP_BOTH
    if top.match_type == MatchType.EXACT and top.similarity > 90:
        return DuplicateRecommendation.OVERWRITE
    if top.match_type == MatchType.SIMILAR_CONTENT and top.similarity > 85:
        return DuplicateRecommendation.OVERWRITE
    return DuplicateRecommendation.KEEP_BOTH


_MATCH_LINES = {
    MatchType.EXACT: '**Exact match found:** "{name}"\nPreviously uploaded: {date}\n',
    MatchType.VERSION: (
        '**Version of existing document:** "{name}"\n'
        "This appears to be a different version of an existing file.\n"
    ),
    MatchType.SIMILAR_CONTENT: (
        '**Similar content found:** "{name}"\n'
        "The content appears very similar to an existing document.\n"
    ),
    MatchType.SIMILAR_NAME: '**Similar document found:** "{name}"\n',
}

_RECOMMENDATION_LINES = {
    DuplicateRecommendation.OVERWRITE:
        "**Recommended:** Replace the existing file (appears to be same document)\n",
    DuplicateRecommendation.KEEP_BOTH:
        "**Recommended:** Keep both files (appears to be different versions)\n",
    DuplicateRecommendation.MERGE:
        "**Recommended:** Consider merging or choosing the most recent version\n",
}


def create_duplicate_message(result: DuplicateCheckResult) -> str:
    """Markdown note for the student; empty when the upload is not a duplicate."""
    if not result.is_duplicate or not result.matches:
        return ""

    top = result.matches[0]
    message = f"**Potential Duplicate Detected** ({result.confidence}% similarity)\n\n"
    message += _MATCH_LINES[top.match_type].format(
        name=top.document.original_name,
        date=top.document.created_at.date().isoformat(),
    )
    message += "\n**What would you like to do?**\n"
    message += _RECOMMENDATION_LINES.get(result.recommendation, "")
    return message

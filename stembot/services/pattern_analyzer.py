"""
Rule-based document pattern classification.

``analyze_pattern`` is a pure function of a stored document (file name,
declared media type, extracted text).  Branches are tried in order:

    1. spreadsheet-like          → data
    2. PDF that reads as a paper → literature
    3. lab keywords              → lab_notes
    4. anything else             → methodology

Each branch has a fixed confidence: a higher one when it found signals
(key elements), a lower one when it did not.  Only PDFs are considered for the
literature branch, so a plain-text copy of a paper lands in lab_notes or
methodology.
"""
from __future__ import annotations

import re
from typing import List, Pattern, Sequence, Tuple

from stembot.models.documents import DocumentPattern, DocumentRecord, PatternType

MINIMAL_TEXT_CHARS = 100
DATA_HEADER_LINES = 10
MIN_ACADEMIC_KEYWORDS = 3

# (with signals, without signals)
DATA_CONFIDENCE = (85, 60)
LITERATURE_CONFIDENCE = (75, 60)
LAB_NOTES_CONFIDENCE = (75, 50)
GENERIC_CONFIDENCE = 40


# ---------------------------------------------------------------------------
# Classification tables
# ---------------------------------------------------------------------------

SPREADSHEET_MEDIA_MARKERS = ("spreadsheet", "excel")
SPREADSHEET_EXTENSIONS = (".csv", ".xlsx", ".xls")

ACADEMIC_KEYWORDS: Sequence[str] = (
    "abstract",
    "introduction",
    "methodology",
    "results",
    "discussion",
    "references",
    "literature review",
    "hypothesis",
    "p <",
    "significant",
)

RESEARCH_TITLE_KEYWORDS: Sequence[str] = (
    "review", "study", "analysis", "research", "investigation",
    "journal", "paper", "article", "proceedings", "conference",
    "effect", "impact", "influence", "relationship", "comparison",
)

RESEARCH_TITLE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"\d{4}[_\-\s]"),
    re.compile(r"[_\-\s](review|study|analysis)[_\-\s]", re.I),
    re.compile(r"[_\-\s](effect|impact|influence)[_\-\s]", re.I),
)

# keywords → research theme, for papers with readable text
THEME_TABLE: Sequence[Tuple[Sequence[str], str]] = (
    (("student", "academic", "learning"), "Academic performance"),
    (("sleep", "rest", "fatigue"), "Sleep research"),
    (("stress", "anxiety", "mental health"), "Mental health"),
    (("technology", "social media", "digital"), "Technology impact"),
    (("exercise", "physical", "fitness"), "Physical health"),
)

# keywords → research focus, for papers known only by their file name
FILENAME_THEME_TABLE: Sequence[Tuple[Sequence[str], str]] = (
    (("electrode", "electrochemical", "sensor", "detection", "analytical"),
     "Electrochemical research focus"),
    (("biomedical", "diagnostic", "medical", "clinical", "health"),
     "Biomedical applications"),
    (("environmental", "monitoring", "field", "portable", "real-time"),
     "Environmental monitoring applications"),
)

GAP_PHRASES: Sequence[str] = ("future research", "limitations", "gap in")

LAB_KEYWORDS: Sequence[str] = (
    "lab", "laboratory", "experiment", "experimental", "procedure", "protocol", "method",
)

METHOD_KEYWORDS: Sequence[str] = (
    "experiment", "survey", "interview", "observation",
    "control group", "randomized", "participants", "sample",
)

# (label, first header vocabulary, second header vocabulary)
RELATIONSHIP_SIGNALS: Sequence[Tuple[str, Sequence[str], Sequence[str]]] = (
    ("sleep-performance",
     ("sleep", "rest", "hour"),
     ("score", "grade", "performance", "test", "result")),
    ("caffeine-cognition",
     ("caffeine", "coffee", "energy drink"),
     ("memory", "recall", "attention", "reaction", "focus")),
    ("exercise-wellbeing",
     ("exercise", "activity", "steps", "workout"),
     ("mood", "stress", "anxiety", "wellbeing", "well-being")),
)

_LAB_WORD_RE = re.compile(r"\b(?:%s)s?\b" % "|".join(re.escape(k) for k in LAB_KEYWORDS), re.I)
_FILENAME_TOKEN_RE = re.compile(r"[a-z0-9]+")
_DELIMITER_RE = re.compile(r"[,\t;]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze_pattern(document: DocumentRecord) -> DocumentPattern:
    """Classify *document* into one of the four pattern types."""
    filename = (document.original_name or "").lower()
    media_type = (document.mime_type or "").lower()
    # A failed extraction leaves a status placeholder; classify by name only.
    text = "" if document.extraction_partial else document.extracted_text or ""

    if is_spreadsheet_like(media_type, filename):
        elements = extract_data_patterns(text)
        return _pattern(PatternType.DATA, DATA_CONFIDENCE, elements)

    if "pdf" in media_type:
        minimal = has_minimal_text(document)
        looks_academic = (
            is_likely_research_paper_from_title(filename) if minimal else is_research_paper(text)
        )
        if looks_academic:
            elements = (
                extract_patterns_from_filename(filename) if minimal
                else extract_literature_patterns(text)
            )
            return _pattern(PatternType.LITERATURE, LITERATURE_CONFIDENCE, elements)

    if is_lab_document(text, filename):
        elements = extract_methodology_patterns(text)
        return _pattern(PatternType.LAB_NOTES, LAB_NOTES_CONFIDENCE, elements)

    return DocumentPattern(
        type=PatternType.METHODOLOGY,
        confidence=GENERIC_CONFIDENCE,
        key_elements=extract_general_patterns(text),
    )


def has_minimal_text(document: DocumentRecord) -> bool:
    """True when the document's text is too thin (or only a placeholder) to mine."""
    return document.extraction_partial or len(document.extracted_text or "") < MINIMAL_TEXT_CHARS


def _pattern(kind: PatternType, confidence: Tuple[int, int], elements: List[str]) -> DocumentPattern:
    with_signals, without = confidence
    return DocumentPattern(
        type=kind,
        confidence=with_signals if elements else without,
        key_elements=elements,
    )


# ---------------------------------------------------------------------------
# Branch tests
# ---------------------------------------------------------------------------

def is_spreadsheet_like(media_type: str, filename: str) -> bool:
    media_type = media_type.lower()
    filename = filename.lower()
    return (
        any(marker in media_type for marker in SPREADSHEET_MEDIA_MARKERS)
        or media_type.startswith("text/csv")
        or filename.endswith(SPREADSHEET_EXTENSIONS)
    )


def is_research_paper(text: str) -> bool:
    lowered = text.lower()
    hits = sum(1 for keyword in ACADEMIC_KEYWORDS if keyword in lowered)
    return hits >= MIN_ACADEMIC_KEYWORDS


def is_likely_research_paper_from_title(filename: str) -> bool:
    lowered = filename.lower()
    if any(word in lowered for word in RESEARCH_TITLE_KEYWORDS):
        return True
    return any(pattern.search(lowered) for pattern in RESEARCH_TITLE_PATTERNS)


def is_lab_document(text: str, filename: str) -> bool:
    """Whole-word lab keyword in the file name tokens or the text."""
    tokens = set(_FILENAME_TOKEN_RE.findall(filename.lower()))
    if any(keyword in tokens or f"{keyword}s" in tokens for keyword in LAB_KEYWORDS):
        return True
    return bool(_LAB_WORD_RE.search(text))


# ---------------------------------------------------------------------------
# Key-element extraction
# ---------------------------------------------------------------------------

def extract_data_patterns(text: str) -> List[str]:
    """Header variables and known relationship pairs from the first lines."""
    elements: List[str] = []
    for line in text.splitlines()[:DATA_HEADER_LINES]:
        if not _DELIMITER_RE.search(line):
            continue
        headers = [h.strip() for h in _DELIMITER_RE.split(line) if h.strip()]
        if len(headers) < 2:
            continue

        elements.append(f"Variables detected: {', '.join(headers[:4])}")
        lowered = [h.lower() for h in headers]
        for label, first, second in RELATIONSHIP_SIGNALS:
            has_first = any(word in h for h in lowered for word in first)
            has_second = any(word in h for h in lowered for word in second)
            if has_first and has_second:
                elements.append(f"Potential {label} relationship detected")
        break
    return elements


def extract_literature_patterns(text: str) -> List[str]:
    lowered = text.lower()
    elements = [
        f"Research theme: {theme}"
        for keywords, theme in THEME_TABLE
        if any(keyword in lowered for keyword in keywords)
    ]
    if any(phrase in lowered for phrase in GAP_PHRASES):
        elements.append("Research gaps identified")
    return elements


def extract_patterns_from_filename(filename: str) -> List[str]:
    lowered = filename.lower()
    elements = [
        focus
        for terms, focus in FILENAME_THEME_TABLE
        if any(term in lowered for term in terms)
    ]
    title = clean_title(filename)
    if len(title) > 10:
        elements.append(f"Research area: {title}")
    return elements


def clean_title(filename: str) -> str:
    """Strip extension, years and separators: ``2021_sensor-review.pdf`` → ``sensor review``."""
    title = re.sub(r"\.pdf$", "", filename, flags=re.I)
    title = re.sub(r"\d{4}[_\-\s]", "", title)
    title = re.sub(r"[_\-]", " ", title)
    return re.sub(r"\s+", " ", title).strip()


def extract_methodology_patterns(text: str) -> List[str]:
    lowered = text.lower()
    return [f"Methodology element: {k}" for k in METHOD_KEYWORDS if k in lowered]


def extract_general_patterns(text: str) -> List[str]:
    elements: List[str] = []
    if len(text) > 1000:
        elements.append("Substantial content for analysis")
    lowered = text.lower()
    if "research" in lowered or "study" in lowered:
        elements.append("Research-related content")
    return elements

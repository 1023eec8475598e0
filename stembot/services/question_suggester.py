"""
Research-question suggestions from a project's documents.

Two stages, both through the completion endpoint:

  Per-document    every document whose pattern confidence clears the
                  threshold gets a prompt shaped by its pattern type (or by
                  its title alone when the extracted text is minimal).
  Cross-document  with three or more literature documents, key elements
                  shared by at least two of them feed one synthesis prompt.

A failed call or an unreadable reply drops that one suggestion and is logged;
the batch always completes.  The result is sorted by confidence (stable, so
ties keep generation order) and capped at MAX_SUGGESTIONS.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stembot.config import settings
from stembot.models.documents import (
    DocumentPattern,
    DocumentRecord,
    PatternType,
    QuestionSuggestion,
    SuggestionVariables,
)
from stembot.services.completion_client import CompletionClient, CompletionError
from stembot.services.pattern_analyzer import analyze_pattern
from stembot.utils.llm_json import clamp_int, parse_json_object

logger = logging.getLogger(__name__)

MIN_CONTENT_CHARS = 100
MIN_TITLE_CHARS = 10
CONTENT_PREVIEW_CHARS = 500
MIN_LITERATURE_DOCS = 3
MIN_THEME_COUNT = 2
MAX_COMMON_THEMES = 3

DOCUMENT_CONFIDENCE_DEFAULT = 75
CROSS_CONFIDENCE_DEFAULT = 80


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

DOCUMENT_SYSTEM_PROMPT = (
    "You are a research mentor helping students develop specific research questions. "
    "Respond with a JSON object containing: suggestedQuestion (specific research "
    "question), reasoning (brief explanation), confidence (0-100), and variables "
    "(independent, dependent, population; if applicable)."
)

CROSS_SYSTEM_PROMPT = (
    "You are a research mentor. Respond with JSON containing: suggestedQuestion, "
    "reasoning, confidence (0-100)."
)

TYPE_PROMPTS: Dict[PatternType, str] = {
    PatternType.DATA: (
        "This is a data file with elements: {elements}. Based on the column names and "
        'data patterns, suggest a specific research question in the format "How does X '
        'affect Y in Z population?" that could be explored with this data.'
    ),
    PatternType.LITERATURE: (
        "This is a research paper with themes: {elements}. Based on the content, suggest "
        "a research question that could extend this work or address gaps mentioned, "
        "preferably focusing on student populations."
    ),
    PatternType.LAB_NOTES: (
        "This appears to be lab notes or methodology with elements: {elements}. Suggest "
        "a research question that matches this experimental approach."
    ),
}
GENERIC_PROMPT = "Based on this document content: {elements}, suggest a specific research question."

TITLE_PROMPT = (
    'Based on this research document title: "{filename}"\n\n'
    "This appears to be a research paper. Based on the title alone, suggest a specific "
    "research question that could:\n"
    "1. Build on this research area\n"
    "2. Address potential gaps or applications\n"
    "3. Be feasible for a student researcher\n"
    '4. Follow the format "How does X affect Y in Z population?" when possible\n\n'
    "Focus on practical applications, student-accessible populations, or extensions of "
    "the work implied by the title."
)

CURRENT_QUESTION_NOTE = (
    '\n\nCurrent question: "{question}". If this is vague, suggest how to make it more '
    "specific based on {basis}."
)

CROSS_PROMPT = (
    "Based on analysis of {count} research papers with common themes: {themes}, "
    "suggest a specific research question that could address a gap or extend this "
    "research. Focus on student populations if possible."
)


def build_document_prompt(
    document: DocumentRecord,
    pattern: DocumentPattern,
    current_question: Optional[str] = None,
    input_chars: Optional[int] = None,
) -> str:
    text = "" if document.extraction_partial else document.extracted_text or ""
    content = text[: input_chars or settings.SUGGESTION_INPUT_CHARS]
    name = document.original_name or ""

    if len(content) < MIN_CONTENT_CHARS and len(name) > MIN_TITLE_CHARS:
        prompt = TITLE_PROMPT.format(filename=name)
        if current_question:
            prompt += CURRENT_QUESTION_NOTE.format(
                question=current_question,
                basis="the research area indicated by the document title",
            )
        return prompt

    template = TYPE_PROMPTS.get(pattern.type, GENERIC_PROMPT)
    prompt = template.format(elements=". ".join(pattern.key_elements))
    if current_question:
        prompt += CURRENT_QUESTION_NOTE.format(question=current_question, basis="the document")
    prompt += f"\n\nDocument content preview: {content[:CONTENT_PREVIEW_CHARS]}"
    return prompt


def find_common_themes(elements: Sequence[str]) -> List[str]:
    """Normalised elements seen at least twice, most frequent first (max 3)."""
    counts = Counter(e.strip().lower() for e in elements if e and e.strip())
    # Counter.most_common keeps first-seen order among equal counts
    return [
        theme for theme, count in counts.most_common()
        if count >= MIN_THEME_COUNT
    ][:MAX_COMMON_THEMES]


def parse_suggestion(
    content: str,
    default_confidence: int,
    document_basis: str,
) -> Optional[QuestionSuggestion]:
    """Validate a model reply; None when it carries no usable question."""
    parsed = parse_json_object(content)
    if parsed is None:
        return None

    question = parsed.get("suggestedQuestion") or parsed.get("suggested_question")
    if not isinstance(question, str) or not question.strip():
        return None

    reasoning = parsed.get("reasoning")
    return QuestionSuggestion(
        confidence=clamp_int(parsed.get("confidence", default_confidence), default_confidence),
        suggested_question=question.strip(),
        reasoning=reasoning.strip() if isinstance(reasoning, str) else "",
        document_basis=document_basis,
        variables=_parse_variables(parsed.get("variables")),
    )


def _parse_variables(raw: Any) -> Optional[SuggestionVariables]:
    if not isinstance(raw, dict):
        return None

    def _field(key: str) -> Optional[str]:
        value = raw.get(key)
        return str(value).strip() if value not in (None, "") else None

    variables = SuggestionVariables(
        independent=_field("independent"),
        dependent=_field("dependent"),
        population=_field("population"),
    )
    if not any((variables.independent, variables.dependent, variables.population)):
        return None
    return variables


class QuestionSuggester:
    """Generates up to MAX_SUGGESTIONS research questions for a set of documents."""

    DOCUMENT_MAX_TOKENS = 500
    DOCUMENT_TEMPERATURE = 0.3
    CROSS_MAX_TOKENS = 400
    CROSS_TEMPERATURE = 0.4

    def __init__(
        self,
        client: CompletionClient,
        threshold: Optional[int] = None,
        max_suggestions: Optional[int] = None,
    ) -> None:
        self.client = client
        self.threshold = settings.SUGGESTION_CONFIDENCE_THRESHOLD if threshold is None else threshold
        self.max_suggestions = max_suggestions or settings.MAX_SUGGESTIONS

    async def suggest(
        self,
        documents: Sequence[DocumentRecord],
        current_question: Optional[str] = None,
    ) -> List[QuestionSuggestion]:
        classified: List[Tuple[DocumentRecord, DocumentPattern]] = [
            (doc, analyze_pattern(doc)) for doc in documents
        ]
        suggestions: List[QuestionSuggestion] = []

        for doc, pattern in classified:
            if pattern.confidence <= self.threshold:
                continue
            suggestion = await self._suggest_for_document(doc, pattern, current_question)
            if suggestion is not None and suggestion.confidence > self.threshold:
                suggestions.append(suggestion)

        literature = [(d, p) for d, p in classified if p.type == PatternType.LITERATURE]
        if len(literature) >= MIN_LITERATURE_DOCS:
            cross = await self._suggest_across(literature)
            if cross is not None:
                suggestions.append(cross)

        ranked = sorted(suggestions, key=lambda s: s.confidence, reverse=True)
        logger.info(
            "suggest: %d documents → %d suggestions (%d returned)",
            len(documents),
            len(suggestions),
            min(len(ranked), self.max_suggestions),
        )
        return ranked[: self.max_suggestions]

    async def _suggest_for_document(
        self,
        document: DocumentRecord,
        pattern: DocumentPattern,
        current_question: Optional[str],
    ) -> Optional[QuestionSuggestion]:
        prompt = build_document_prompt(document, pattern, current_question)
        try:
            content = await self.client.complete(
                DOCUMENT_SYSTEM_PROMPT,
                prompt,
                max_tokens=self.DOCUMENT_MAX_TOKENS,
                temperature=self.DOCUMENT_TEMPERATURE,
            )
        except CompletionError as exc:
            logger.warning("Suggestion for %r skipped: %s", document.original_name, exc)
            return None

        suggestion = parse_suggestion(
            content,
            DOCUMENT_CONFIDENCE_DEFAULT,
            f"Based on {document.original_name}",
        )
        if suggestion is None:
            logger.warning(
                "Suggestion for %r skipped: reply had no suggestedQuestion", document.original_name
            )
        return suggestion

    async def _suggest_across(
        self,
        literature: Sequence[Tuple[DocumentRecord, DocumentPattern]],
    ) -> Optional[QuestionSuggestion]:
        elements = [e for _, pattern in literature for e in pattern.key_elements]
        themes = find_common_themes(elements)
        if not themes:
            logger.debug("Cross-document suggestion skipped: no shared themes")
            return None

        prompt = CROSS_PROMPT.format(count=len(literature), themes=", ".join(themes))
        try:
            content = await self.client.complete(
                CROSS_SYSTEM_PROMPT,
                prompt,
                max_tokens=self.CROSS_MAX_TOKENS,
                temperature=self.CROSS_TEMPERATURE,
            )
        except CompletionError as exc:
            logger.warning("Cross-document suggestion skipped: %s", exc)
            return None

        suggestion = parse_suggestion(
            content,
            CROSS_CONFIDENCE_DEFAULT,
            f"Cross-analysis of {len(literature)} research papers",
        )
        if suggestion is None:
            logger.warning("Cross-document suggestion skipped: reply had no suggestedQuestion")
            return None
        # Synthesis questions carry no per-variable breakdown
        suggestion.variables = None
        return suggestion

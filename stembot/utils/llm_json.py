"""
Tolerant JSON extraction from model replies.

Completion endpoints are asked for JSON but often answer with prose around it,
markdown code fences, trailing commas or Python literals.  ``parse_json_object``
decodes the first object it can find, retries once on a repaired copy of the
reply, and returns ``None`` when nothing object-shaped is recoverable; callers
validate every field themselves.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()

# applied only after the reply failed to decode as-is
_REPAIRS = (
    (re.compile(r",(\s*[}\]])"), r"\1"),
    (re.compile(r"\bTrue\b"), "true"),
    (re.compile(r"\bFalse\b"), "false"),
    (re.compile(r"\bNone\b"), "null"),
)


def parse_json_object(response: str) -> Optional[Dict[str, Any]]:
    """
    Return the first JSON object embedded in *response*, or None.

    Decoding starts at the first ``{`` and stops where that object ends, so
    code fences and prose on either side are skipped without being stripped.
    A reply whose first object is malformed is retried once after repair;
    nested objects are never returned on their own.
    """
    if not response or not response.strip():
        return None

    text = response.strip()
    for candidate in (text, _repair(text)):
        value = _first_object(candidate)
        if value is not None:
            return value

    logger.debug("parse_json_object: no JSON object in reply. Preview: %s", response[:200])
    return None


def _first_object(text: str) -> Optional[Dict[str, Any]]:
    start = text.find("{")
    if start == -1:
        return None
    try:
        value, _ = _DECODER.raw_decode(text, start)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _repair(text: str) -> str:
    for pattern, replacement in _REPAIRS:
        text = pattern.sub(replacement, text)
    return text


def clamp_int(value: Any, default: int, lo: int = 0, hi: int = 100) -> int:
    """Parse *value* as an int clamped to [lo, hi]; *default* when unparseable."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(lo, min(hi, number))

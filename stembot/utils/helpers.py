"""
Common utility functions and helpers.
"""
import re
import uuid
from datetime import datetime, timezone


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length, suffix included
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def sanitize_filename(name: str) -> str:
    """
    Reduce a client-supplied file name to a safe storage name.

    Args:
        name: Original file name

    Returns:
        Name with path components dropped and unsafe characters replaced
    """
    name = re.split(r"[\\/]", name or "")[-1]
    name = re.sub(r"[^\w.\-]", "_", name).strip("._")
    return name or "upload"


def stored_filename(original_name: str) -> str:
    """Unique storage name: ``<utc timestamp>_<short id>_<sanitized name>``."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{stamp}_{uuid.uuid4().hex[:8]}_{sanitize_filename(original_name)}"

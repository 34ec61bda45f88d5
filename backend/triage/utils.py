"""Shared utility helpers used across services."""
import re
from datetime import datetime, timezone

_WHITESPACE = re.compile(r"\s+")


def utcnow() -> datetime:
    """Return timezone-aware UTC now. Replaces deprecated datetime.utcnow()."""
    return datetime.now(timezone.utc)


def normalize_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def truncate_for_owner(text: str, limit: int = 140) -> str:
    """Collapse whitespace and cut a caller's message down for an owner alert."""
    compact = normalize_whitespace(text)
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit - 3]}..."

"""
Lenient parser for structured LLM responses.

Models do not reliably return bare JSON: they wrap it in prose or code
fences. ``parse_lenient`` walks a fixed fallback ladder:

1. direct ``json.loads`` of the trimmed text
2. slice from the first ``{`` or ``[`` to the last matching closer and parse
3. the caller's declared default
"""

import json
import re
from typing import Any

from src.utils.logger import get_logger

logger = get_logger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"'\)\]\},]+")

_CLOSERS = {"{": "}", "[": "]"}


def _bracket_slice(text: str) -> str | None:
    """Return the substring between the first opener and its last closer."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end <= start:
        return None
    return text[start:end + 1]


def parse_lenient(text: str | None, default: Any = None) -> Any:
    """
    Parse JSON out of free-form model output.

    Args:
        text: Raw model response
        default: Value returned when no JSON can be recovered

    Returns:
        The parsed JSON value, or ``default``
    """
    if not text:
        return default

    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    candidate = _bracket_slice(stripped)
    if candidate is None:
        logger.debug("No JSON brackets found in response")
        return default

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug(f"Bracket-sliced JSON still invalid: {e}")
        return default


def extract_urls(text: str | None, limit: int | None = None) -> list[str]:
    """
    Scrape URL-shaped substrings from text, deduplicated in order.

    Args:
        text: Text to scan
        limit: Maximum number of URLs to return

    Returns:
        List of URLs
    """
    if not text:
        return []
    seen: list[str] = []
    for match in URL_PATTERN.findall(text):
        url = match.rstrip(".;:")
        if url not in seen:
            seen.append(url)
        if limit is not None and len(seen) >= limit:
            break
    return seen

"""
Best-effort structured parse of LLM output.

Models asked for "ONLY valid JSON" still wrap it in prose or code fences.
extract_json_object() finds the first balanced {...} region and parses it,
returning None instead of raising so callers can answer with guidance text.
"""

import json
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

import structlog

logger = structlog.get_logger("shared.structured_parse")


def _balanced_regions(text: str) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) of each top-level balanced {...} region, string-aware."""
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield start, i + 1


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Extract the first JSON object embedded in free text.

    Tries each balanced region in order, then the greedy first-"{" to last-"}"
    span. Only dict results count; arrays and scalars are ignored.

    Args:
        text: Raw model output

    Returns:
        Parsed dict, or None when no region parses
    """
    if not text:
        return None

    for start, end in _balanced_regions(text):
        try:
            value = json.loads(text[start:end])
        except ValueError:
            continue
        if isinstance(value, dict):
            return value

    first, last = text.find("{"), text.rfind("}")
    if 0 <= first < last:
        try:
            value = json.loads(text[first:last + 1])
            if isinstance(value, dict):
                return value
        except ValueError:
            pass

    logger.debug("structured_parse_failed", preview=text[:80])
    return None


def require_keys(obj: Optional[Dict[str, Any]], keys: Iterable[str]) -> bool:
    """True when obj is a dict holding a truthy value for every key."""
    if not isinstance(obj, dict):
        return False
    return all(obj.get(key) for key in keys)

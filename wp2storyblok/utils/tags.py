from __future__ import annotations

from html import unescape
import re
from typing import Any, Iterable, List, Mapping, Optional

from .slugs import slugify


def _normalize_label(value: str) -> str:
    """Unescape HTML entities and collapse inner whitespace.

    Preserves original casing but trims leading/trailing spaces
    and converts sequences of whitespace to a single space.
    """
    if not value:
        return ""
    text = unescape(value).strip()
    # Collapse multiple whitespace to single space
    text = re.sub(r"\s+", " ", text)
    return text


def parse_tags_field(field: str) -> List[str]:
    """
    Parse and normalize a delimiter-separated tags field.

    - Splits primarily on '|', with ',' as a fallback
    - Unescapes HTML entities (e.g., '&amp;' -> '&')
    - Trims spaces, collapses inner whitespace
    - Deduplicates case-insensitively while preserving first-seen casing
    """
    if not field:
        return []

    text = field.strip()
    parts = [p.strip() for p in (text.split("|") if "|" in text else text.split(","))]
    seen_lower = set()
    result: List[str] = []
    for p in parts:
        if not p:
            continue
        label = _normalize_label(p)
        key = label.lower()
        if label and key not in seen_lower:
            seen_lower.add(key)
            result.append(label)
    return result


def normalize_tags(value: Any, terms_by_id: Optional[Mapping[int, Any]] = None) -> List[str]:
    """
    Turn any tags input into a list of unique, lower-case, slug-safe tags.

    ``value`` may be a delimiter-separated string, a list of labels, a list
    of term ids (looked up in ``terms_by_id``) or a list of term-like dicts
    with ``slug``/``name``.  Anything unusable is skipped; the result keeps
    first-seen order.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        entries: Iterable[Any] = parse_tags_field(value)
    elif isinstance(value, (list, tuple, set)):
        entries = value
    else:
        entries = [value]

    result: List[str] = []
    for entry in entries:
        label: Optional[str] = None
        if isinstance(entry, bool):
            continue
        if isinstance(entry, int):
            term = (terms_by_id or {}).get(entry)
            if term is not None:
                label = getattr(term, "slug", None) or getattr(term, "name", None)
        elif isinstance(entry, dict):
            label = entry.get("slug") or entry.get("name")
        elif isinstance(entry, str):
            label = _normalize_label(entry)
        tag = slugify(label or "")
        if tag and tag not in result:
            result.append(tag)
    return result

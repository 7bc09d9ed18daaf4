from __future__ import annotations

from html import unescape
import re
import unicodedata


_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_TAG_RE = re.compile(r"<[^>]*(?:>|$)")


def strip_accents(text: str) -> str:
    return "".join(
        c for c in unicodedata.normalize("NFD", text) if unicodedata.category(c) != "Mn"
    )


def slugify(value: str, max_length: int = 200) -> str:
    """
    Normalize ``value`` to a URL-safe token.

    Entities are unescaped, accents removed and the text lower-cased; runs
    of anything that is not ``[a-z0-9]`` collapse to a single ``-`` and
    leading/trailing separators are trimmed.
    """
    if not value:
        return ""
    text = strip_accents(unescape(str(value))).lower()
    text = text.replace("&", " ")
    slug = _NON_ALNUM.sub("-", text).strip("-")
    return slug[:max_length].rstrip("-")


def strip_markup(value: str) -> str:
    """Remove tags, unescape entities and collapse whitespace."""
    if not value:
        return ""
    text = unescape(_TAG_RE.sub(" ", value))
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()

"""
Richtext converter orchestration.

Wraps the local HTML to richtext converter with the failure policy of the
field transformer: conversion never raises.  When the converter fails, or
produces no text from markup that clearly has some, the result is a single
paragraph holding the tag-stripped text.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..utils.slugs import strip_markup
from .richtext_local import ImageResolver, LinkResolver, convert_html_to_richtext_local
from .richtext_schema import count_nodes, doc, fallback_doc, iter_text

__all__ = [
    "convert_html_to_richtext",
    "strip_html_text",
]

logger = logging.getLogger(__name__)


def strip_html_text(html: Any) -> str:
    """Plain text of ``html`` used for the fallback paragraph."""
    if html is None:
        return ""
    return strip_markup(str(html))


def convert_html_to_richtext(
    html: Any,
    *,
    link_resolver: Optional[LinkResolver] = None,
    image_resolver: Optional[ImageResolver] = None,
) -> Dict[str, Any]:
    """
    Converts an HTML string to a richtext document.

    Args:
        html: The raw HTML string to be converted.  Non-string values are
              converted with ``str``.
        link_resolver: Optional ``(href, target) -> attrs`` hook for links.
        image_resolver: Optional ``(src, alt, title) -> attrs`` hook for
              images; returning ``None`` drops the image.

    Returns:
        A dictionary ``{"type": "doc", "content": [...]}``.  Empty input
        yields an empty document.
    """
    if html is None or not str(html).strip():
        return doc([])
    html = str(html)

    try:
        document = convert_html_to_richtext_local(
            html, link_resolver=link_resolver, image_resolver=image_resolver
        )
    except Exception as e:
        logger.warning("Richtext conversion failed, using plain text fallback: %s", e)
        return fallback_doc(strip_html_text(html))

    if not "".join(iter_text(document)).strip() and not count_nodes(document, "image"):
        text = strip_html_text(html)
        if text:
            logger.debug("Richtext conversion produced no content, using plain text fallback")
            return fallback_doc(text)
    return document

"""
Host comparison helpers shared by the link resolver and the asset registry.
"""

from __future__ import annotations

from urllib.parse import urlparse


def normalize_host(netloc: str) -> str:
    """Lower-cased host of ``netloc`` without credentials, port or ``www.``."""
    host = netloc.lower().rsplit("@", 1)[-1].split(":", 1)[0]
    return host[4:] if host.startswith("www.") else host


def url_host(url: str) -> str:
    """Normalized host of ``url``; empty for relative or unparsable URLs."""
    try:
        return normalize_host(urlparse(url).netloc)
    except ValueError:
        return ""

"""
Parsers and converters used by the migration pipeline.

Currently this subpackage exposes ``convert_html_to_richtext`` and
``strip_html_text`` from :mod:`wp2storyblok.parsers.richtext_parser`.
"""

from .richtext_parser import convert_html_to_richtext, strip_html_text

__all__ = ["convert_html_to_richtext", "strip_html_text"]

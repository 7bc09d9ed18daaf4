"""
Extractors for WordPress exports.

This subpackage reads a WordPress REST export (posts, pages, custom types,
media, users and taxonomy terms, one folder per language) into the
:class:`~wp2storyblok.models.content.SourceData` the pipeline works on.
"""

from .wordpress_loader import load_source_data

__all__ = ["load_source_data"]

"""
Per-locale registry of assigned slugs.

Slugs are unique within a locale and may repeat across locales.  Besides the
assigned slug the registry indexes every story by source id, by the source's
own slug and by its source path, which is what the link resolver needs to
find the story an internal URL points at.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from ..models.content import TargetStory
from ..utils.slugs import slugify

logger = logging.getLogger(__name__)


class LocaleSlugs:
    """Indexes for one locale."""

    def __init__(self, locale: str) -> None:
        self.locale = locale
        self.assigned: Set[str] = set()
        self.by_slug: Dict[str, TargetStory] = {}
        self.by_source_id: Dict[int, TargetStory] = {}
        self.by_source_slug: Dict[str, TargetStory] = {}
        self.by_path: Dict[str, TargetStory] = {}
        self.order: List[TargetStory] = []


class SlugRegistry:
    """Run-scoped slug set and story lookup, one namespace per locale."""

    def __init__(self) -> None:
        self._locales: Dict[str, LocaleSlugs] = {}

    def _ns(self, locale: str) -> LocaleSlugs:
        ns = self._locales.get(locale)
        if ns is None:
            ns = self._locales[locale] = LocaleSlugs(locale)
        return ns

    def locales(self) -> List[str]:
        return list(self._locales)

    def is_taken(self, locale: str, slug: str) -> bool:
        return slug in self._ns(locale).assigned

    def assign(self, locale: str, base_slug: str) -> str:
        """
        Reserve a unique slug in ``locale``.

        The first caller keeps ``base_slug``; later callers get ``-2``,
        ``-3`` and so on in call order.
        """
        ns = self._ns(locale)
        slug = base_slug
        n = 2
        while slug in ns.assigned:
            slug = f"{base_slug}-{n}"
            n += 1
        ns.assigned.add(slug)
        if slug != base_slug:
            logger.debug("Slug collision in %s: %s -> %s", locale, base_slug, slug)
        return slug

    def register(self, story: TargetStory, source_slug: str = "", source_path: str = "") -> None:
        ns = self._ns(story.locale)
        ns.assigned.add(story.slug)
        ns.by_slug[story.slug] = story
        ns.by_source_id[story.source_id] = story
        key = slugify(source_slug)
        if key:
            ns.by_source_slug.setdefault(key, story)
        path = (source_path or "").strip("/")
        if path:
            ns.by_path.setdefault(path, story)
        ns.order.append(story)

    # ---------------------------------------------------------------- lookups

    def stories(self, locale: Optional[str] = None) -> List[TargetStory]:
        if locale is not None:
            return list(self._ns(locale).order)
        return [s for ns in self._locales.values() for s in ns.order]

    def find_by_source_id(self, locale: str, source_id: int) -> Optional[TargetStory]:
        return self._ns(locale).by_source_id.get(source_id)

    def find_by_slug(self, locale: str, slug: str) -> Optional[TargetStory]:
        ns = self._ns(locale)
        key = slugify(slug)
        return ns.by_source_slug.get(key) or ns.by_slug.get(key)

    def find_by_path(self, locale: str, path: str) -> Optional[TargetStory]:
        """
        Story for a source URL path: exact path first, then the last path
        segment as a source slug, then as an assigned slug.
        """
        path = (path or "").strip("/")
        if not path:
            return None
        ns = self._ns(locale)
        story = ns.by_path.get(path)
        if story is not None:
            return story
        return self.find_by_slug(locale, path.rsplit("/", 1)[-1])

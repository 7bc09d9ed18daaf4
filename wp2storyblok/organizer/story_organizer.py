"""
Story organizer.

Turns one source item plus its transformed fields into a
:class:`~wp2storyblok.models.content.TargetStory` with a collision-free slug
and a locale-aware path.

Slugs come from the source's own slug, or its title when absent, normalized
by :func:`~wp2storyblok.utils.slugs.slugify`.  Collisions within a locale get
``-2``, ``-3`` ... in processing order, so callers must feed items in a
stable order (source id ascending).

Folder selection follows ``stories.organization``:

``path_preserving``
    the source path's directories are kept and the assigned slug replaces
    the last segment;
``folder_mapped``
    the longest configured source prefix wins, the first entry in
    configuration order on ties;
``content_type_folder``
    one folder per content type.  Also the fallback of the other two when
    they find nothing.

With the ``folder_level`` locale strategy the locale prefix is prepended to
the path; ``field_level`` leaves paths bare.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from ..models.config import ContentTypeConfig, MigrationConfig
from ..models.content import SourceItem, StoryContent, TargetStory, stable_uuid
from ..utils.dates import format_datetime, parse_datetime
from ..utils.slugs import slugify
from .slug_registry import SlugRegistry

logger = logging.getLogger(__name__)


def base_slug(item: SourceItem) -> str:
    """Normalized slug candidate for ``item`` before collision handling."""
    slug = slugify(unquote(item.source_slug)) or slugify(item.title)
    if not slug:
        return f"story-{item.id}"
    if slug[0].isdigit():
        return f"story-{slug}"
    return slug


def _join(*segments: Optional[str]) -> str:
    return "/".join(s.strip("/") for s in segments if s and s.strip("/"))


class StoryOrganizer:
    """Assigns slugs and paths, and registers every story it creates."""

    def __init__(self, config: MigrationConfig, registry: SlugRegistry) -> None:
        self.config = config
        self.registry = registry

    def type_folder(self, content_type: str) -> str:
        type_config = self.config.content_types.get(content_type)
        if type_config is not None and type_config.folder is not None:
            return type_config.folder.strip("/")
        return content_type

    def relative_source_path(self, item: SourceItem) -> str:
        """Source path without a leading locale segment."""
        path = unquote(item.source_path)
        segments = [s for s in path.split("/") if s]
        if segments:
            prefixes = {item.locale.lower(), self.config.i18n.path_prefix(item.locale).lower()}
            if segments[0].lower() in prefixes - {""}:
                segments = segments[1:]
        return "/".join(segments)

    def folder_for(self, item: SourceItem) -> str:
        strategy = self.config.stories.organization
        source_path = self.relative_source_path(item)

        if strategy == "path_preserving" and source_path:
            parents = [slugify(s) or s for s in source_path.split("/")[:-1]]
            return _join(*parents)

        if strategy == "folder_mapped" and source_path:
            best = None
            best_len = -1
            for mapping in self.config.stories.folder_mapping:
                prefix = mapping.source_prefix
                matches = not prefix or source_path == prefix or source_path.startswith(prefix + "/")
                if matches and len(prefix) > best_len:
                    best = mapping
                    best_len = len(prefix)
            if best is not None:
                return best.target_folder

        return self.type_folder(item.content_type)

    def full_slug_for(self, item: SourceItem, slug: str) -> str:
        prefix = ""
        if self.config.i18n.strategy == "folder_level":
            prefix = self.config.i18n.path_prefix(item.locale)
        return _join(prefix, self.folder_for(item), slug)

    def organize(self, item: SourceItem, fields: Dict[str, Any], type_config: ContentTypeConfig) -> TargetStory:
        """Create and register the story for ``item``."""
        slug = self.registry.assign(item.locale, base_slug(item))
        full_slug = self.full_slug_for(item, slug)

        story = TargetStory(
            name=item.title or slug,
            slug=slug,
            full_slug=full_slug,
            locale=item.locale,
            uuid=stable_uuid("story", item.locale, item.content_type, item.id),
            content_type=item.content_type,
            content=StoryContent(
                component=type_config.component,
                uid=stable_uuid("content", item.locale, item.content_type, item.id),
                fields=fields,
            ),
            source_id=item.id,
            source_path=item.source_path,
            group_id=stable_uuid("group", item.content_type, self._group_key(item)),
            parent_id=item.parent_id,
            published_at=self._published_at(item),
        )
        self.registry.register(story, item.source_slug, item.source_path)
        logger.debug("Organized %s %s as %s", item.content_type, item.id, full_slug)
        return story

    def link_parents(self, locale: str) -> int:
        """Fill ``parent_full_slug`` from ``parent_id``; returns how many were linked."""
        linked = 0
        for story in self.registry.stories(locale):
            if story.parent_id is None:
                continue
            parent = self.registry.find_by_source_id(locale, story.parent_id)
            if parent is not None:
                story.parent_full_slug = parent.full_slug
                linked += 1
        return linked

    @staticmethod
    def _group_key(item: SourceItem) -> int:
        # every translation shares the smallest id of its translation set
        return min([item.id, *item.translations.values()])

    @staticmethod
    def _published_at(item: SourceItem) -> Optional[str]:
        status = item.raw.get("status")
        if status not in (None, "publish"):
            return None
        dt = parse_datetime(item.raw.get("date_gmt") or item.raw.get("date"))
        return format_datetime(dt) if dt is not None else None


def sort_items(items: List[SourceItem]) -> List[SourceItem]:
    """Deterministic processing order: source id ascending."""
    return sorted(items, key=lambda item: item.id)

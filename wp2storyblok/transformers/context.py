from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from ..assets.deduplicator import AssetDeduplicator
from ..models.config import MigrationConfig
from ..models.content import (
    Author,
    LinkDescriptor,
    MediaItem,
    SourceData,
    SourceItem,
    StoryReference,
    Term,
)
from ..organizer.slug_registry import SlugRegistry
from ..utils.errors import RunReport


@dataclass
class PendingRegistry:
    """Forward references recorded during transforming, per locale."""

    links: Dict[str, List[LinkDescriptor]] = field(default_factory=dict)
    references: Dict[str, List[StoryReference]] = field(default_factory=dict)

    def add_link(self, descriptor: LinkDescriptor) -> None:
        self.links.setdefault(descriptor.locale, []).append(descriptor)

    def add_reference(self, reference: StoryReference) -> None:
        self.references.setdefault(reference.locale, []).append(reference)

    def links_for(self, locale: str) -> List[LinkDescriptor]:
        return self.links.get(locale, [])

    def references_for(self, locale: str) -> List[StoryReference]:
        return self.references.get(locale, [])

    def __len__(self) -> int:
        return sum(len(v) for v in self.links.values()) + sum(len(v) for v in self.references.values())


@dataclass(frozen=True)
class TransformContext:
    """
    What a transform call may look at: the current locale and item, the
    loaded source data, and the run's live registries.

    The context itself is never modified; :meth:`for_item` derives a new one
    per item.  The registries it points at are shared and owned by the
    orchestrator.
    """

    locale: str
    config: MigrationConfig
    data: SourceData
    slugs: SlugRegistry
    assets: Optional[AssetDeduplicator]
    pending: PendingRegistry
    report: RunReport
    item: Optional[SourceItem] = None
    media: Dict[int, MediaItem] = field(default_factory=dict)
    authors: Dict[int, Author] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        locale: str,
        config: MigrationConfig,
        data: SourceData,
        slugs: SlugRegistry,
        assets: Optional[AssetDeduplicator],
        pending: PendingRegistry,
        report: RunReport,
    ) -> "TransformContext":
        return cls(
            locale=locale,
            config=config,
            data=data,
            slugs=slugs,
            assets=assets,
            pending=pending,
            report=report,
            media=data.media_by_id(),
            authors=data.authors_by_id(),
        )

    def for_item(self, item: SourceItem) -> "TransformContext":
        return replace(self, locale=item.locale, item=item)

    def terms_by_id(self, taxonomy: str) -> Dict[int, Term]:
        terms = self.data.terms_for(self.locale, taxonomy) or self.data.terms_for(
            self.config.i18n.default_language, taxonomy
        )
        return {t.id: t for t in terms}

    def media_by_url(self, url: str) -> Optional[MediaItem]:
        for media in self.media.values():
            if media.source_url == url:
                return media
        return None

"""
Link classification and rewriting.

:meth:`LinkResolver.resolve` turns a URL found in content into a
:class:`~wp2storyblok.models.content.LinkDescriptor`.  Classification order,
first match wins:

1. ``mailto:`` links become ``email`` links.
2. Anchors (``#top``), ``tel:`` and other non-HTTP schemes stay ``url``
   links, unchanged.
3. WordPress admin and login URLs stay ``url`` links.
4. A path ending in a configured asset extension is an ``asset`` link,
   staged through the asset deduplicator.
5. Same-host or relative URLs are ``story`` links, looked up in the slug
   registry.  Unknown targets are recorded as pending for the patch pass.
6. Anything else is an external ``url`` link with WordPress-only query
   parameters removed.

:func:`resolve_pending_links` and :func:`resolve_pending_references` are the
patch pass: pure functions from the pending list and the complete slug
registry to resolved values.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import parse_qsl, unquote, urlencode, urljoin, urlparse, urlunparse

from ..models.config import I18nConfig, MigrationConfig
from ..models.content import LinkDescriptor, LinkKind, StoryReference, TargetStory
from ..organizer.slug_registry import SlugRegistry
from ..utils.urls import normalize_host
from .context import TransformContext

logger = logging.getLogger(__name__)

ADMIN_PATHS = ("/wp-admin", "/wp-login.php", "/xmlrpc.php", "/wp-json")
ID_QUERY_PARAMS = ("p", "page_id")


def locale_path_segments(i18n: I18nConfig) -> Dict[str, str]:
    """Leading path segments that mark a locale on the source site."""
    segments: Dict[str, str] = {}
    for locale in i18n.locales:
        for segment in (locale, i18n.path_prefix(locale)):
            if segment:
                segments.setdefault(segment.lower(), locale)
    return segments


def _source_id_from_query(query: str) -> Optional[int]:
    for key, value in parse_qsl(query):
        if key in ID_QUERY_PARAMS and value.isdigit():
            return int(value)
    return None


class LinkResolver:
    """Classifies URLs against the source site and the run's registries."""

    def __init__(
        self,
        site_url: str = "",
        *,
        asset_extensions: Iterable[str] = (),
        strip_query_params: Iterable[str] = (),
        locale_segments: Optional[Dict[str, str]] = None,
    ) -> None:
        self.site_url = (site_url or "").rstrip("/")
        self.site_host = normalize_host(urlparse(self.site_url).netloc) if self.site_url else ""
        self.asset_extensions = {e.lower() for e in asset_extensions}
        self.strip_query_params = set(strip_query_params)
        self.locale_segments = {k.lower(): v for k, v in (locale_segments or {}).items() if k}

    @classmethod
    def from_config(cls, config: MigrationConfig) -> "LinkResolver":
        return cls(
            config.site.url,
            asset_extensions=config.assets.extensions,
            strip_query_params=config.links.strip_query_params,
            locale_segments=locale_path_segments(config.i18n),
        )

    # ----------------------------------------------------------- classification

    def is_internal(self, url: str) -> bool:
        parsed = urlparse(url)
        if parsed.scheme and parsed.scheme not in ("http", "https"):
            return False
        if not parsed.netloc:
            return True
        return bool(self.site_host) and normalize_host(parsed.netloc) == self.site_host

    def is_asset(self, url: str) -> bool:
        ext = os.path.splitext(unquote(urlparse(url).path))[1].lower()
        return bool(ext) and ext in self.asset_extensions

    def classify(self, url: str) -> LinkKind:
        """Link kind of ``url`` without touching any registry."""
        raw = (url or "").strip()
        lower = raw.lower()
        if lower.startswith("mailto:"):
            return LinkKind.EMAIL
        if not raw or raw.startswith("#"):
            return LinkKind.URL
        try:
            parsed = urlparse(raw)
            internal = self.is_internal(raw)
            asset = self.is_asset(raw)
        except ValueError:
            return LinkKind.URL
        if parsed.scheme and parsed.scheme.lower() not in ("http", "https"):
            return LinkKind.URL
        if internal and parsed.path.lower().startswith(ADMIN_PATHS):
            return LinkKind.URL
        if asset:
            return LinkKind.ASSET
        if internal:
            return LinkKind.STORY
        return LinkKind.URL

    def strip_params(self, url: str) -> str:
        """Remove WordPress-only query parameters (pagination, preview)."""
        if not self.strip_query_params:
            return url
        parsed = urlparse(url)
        if not parsed.query:
            return url
        kept = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in self.strip_query_params]
        return urlunparse(parsed._replace(query=urlencode(kept)))

    def absolute(self, url: str) -> str:
        try:
            if urlparse(url).netloc or not self.site_url:
                return url
            return urljoin(self.site_url + "/", url)
        except ValueError:
            return url

    # -------------------------------------------------------------- resolution

    def resolve(self, url: str, context: TransformContext, target: Optional[str] = None) -> LinkDescriptor:
        """
        Classify ``url`` and rewrite it against the registries in ``context``.

        Never raises for odd input; the worst case is a ``url`` link holding
        the input unchanged.
        """
        raw = (url or "").strip()
        try:
            return self._resolve(raw, context, target)
        except ValueError as e:
            logger.debug("Unparsable link %r kept as url: %s", raw, e)
            return LinkDescriptor(LinkKind.URL, url=raw, target=raw, locale=context.locale, link_target=target)

    def link_locale(self, path: str, default: str) -> str:
        """Locale named by the first segment of ``path``, else ``default``."""
        first = path.split("/", 1)[0].lower()
        return self.locale_segments.get(first, default)

    def _resolve(self, raw: str, context: TransformContext, target: Optional[str]) -> LinkDescriptor:
        kind = self.classify(raw)

        if kind is LinkKind.EMAIL:
            address = unquote(raw[len("mailto:"):].split("?", 1)[0])
            return LinkDescriptor(kind, url=raw, target=address, locale=context.locale)

        if kind is LinkKind.ASSET:
            absolute = self.absolute(raw)
            reference = context.assets.reference(absolute) if context.assets is not None else None
            if reference is None and context.assets is not None:
                logger.debug("Asset link %s could not be staged, kept as url", raw)
                return LinkDescriptor(LinkKind.URL, url=raw, target=raw, locale=context.locale, link_target=target)
            return LinkDescriptor(
                kind,
                url=raw,
                target=reference.filename if reference is not None else absolute,
                locale=context.locale,
                asset=reference,
                link_target=target,
            )

        if kind is LinkKind.STORY:
            return self._resolve_story(raw, context, target)

        if raw.startswith("#") or not raw:
            return LinkDescriptor(LinkKind.URL, url=raw, target=raw, locale=context.locale, link_target=target)
        return LinkDescriptor(
            LinkKind.URL, url=raw, target=self.strip_params(raw), locale=context.locale, link_target=target
        )

    def _resolve_story(self, raw: str, context: TransformContext, target: Optional[str]) -> LinkDescriptor:
        parsed = urlparse(raw)
        anchor = parsed.fragment or None
        source_id = _source_id_from_query(parsed.query)
        candidate = unquote(parsed.path).strip("/")

        if source_id is None and not candidate:
            # the site root has no story of its own
            return LinkDescriptor(
                LinkKind.URL, url=raw, target=self.strip_params(self.absolute(raw)), locale=context.locale,
                link_target=target,
            )

        # links into another locale's subtree are looked up there
        locale = self.link_locale(candidate, context.locale)
        story = find_story(context.slugs, locale, candidate, source_id)
        if story is not None:
            return story_link(raw, story, anchor, target)

        descriptor = LinkDescriptor(
            LinkKind.STORY,
            url=raw,
            target=None,
            locale=locale,
            anchor=anchor,
            pending_slug=candidate or None,
            pending_source_id=source_id,
            link_target=target,
        )
        context.pending.add_link(descriptor)
        logger.debug("Link %s pending in %s", raw, locale)
        return descriptor


def find_story(
    registry: SlugRegistry, locale: str, candidate: Optional[str], source_id: Optional[int] = None
) -> Optional[TargetStory]:
    if source_id is not None:
        story = registry.find_by_source_id(locale, source_id)
        if story is not None:
            return story
    if candidate:
        return registry.find_by_path(locale, candidate)
    return None


def story_link(url: str, story: TargetStory, anchor: Optional[str], target: Optional[str] = None) -> LinkDescriptor:
    return LinkDescriptor(
        LinkKind.STORY,
        url=url,
        target=story.full_slug,
        locale=story.locale,
        anchor=anchor,
        story_uuid=story.uuid,
        link_target=target,
    )


def resolve_pending_links(pending: Sequence[LinkDescriptor], registry: SlugRegistry) -> List[LinkDescriptor]:
    """
    Resolve pending story links against the complete registry.

    Returns one new descriptor per input, in order.  A link whose target is
    still unknown becomes a ``url`` link to its original URL.
    """
    resolved: List[LinkDescriptor] = []
    for link in pending:
        story = find_story(registry, link.locale, link.pending_slug, link.pending_source_id)
        if story is not None:
            resolved.append(story_link(link.url, story, link.anchor, link.link_target))
        else:
            resolved.append(
                LinkDescriptor(LinkKind.URL, url=link.url, target=link.url, locale=link.locale, link_target=link.link_target)
            )
    return resolved


def resolve_pending_references(
    pending: Sequence[StoryReference], registry: SlugRegistry
) -> List[Optional[TargetStory]]:
    """Story for each pending reference, or ``None`` when it does not exist."""
    return [registry.find_by_source_id(ref.locale, ref.source_id) for ref in pending]

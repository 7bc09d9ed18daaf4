"""
Field transformer.

Converts one source field value into one target field value.  The transform
spec has already been parsed by the configuration layer into a
:class:`~wp2storyblok.models.config.NamedTransform` or a
:class:`~wp2storyblok.models.config.FunctionTransform`, so dispatch here is a
lookup in a fixed handler table.

Failure policy: a transform never raises.  Errors inside a handler are
logged, recorded as ``FIELD_TRANSFORM_FAILED`` and replaced with the kind's
safe default (see :data:`SAFE_DEFAULTS`), so one malformed field never drops
the whole item.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.config import ContentTypeConfig, FunctionTransform, MigrationConfig, TransformSpec
from ..models.content import (
    AssetReference,
    DatasourceReference,
    LinkDescriptor,
    LinkKind,
    SourceItem,
    StoryReference,
    Term,
    extract_value,
)
from ..parsers.richtext_parser import convert_html_to_richtext, strip_html_text
from ..parsers.richtext_schema import doc, fallback_doc
from ..utils.dates import format_datetime, parse_datetime
from ..utils.slugs import strip_markup
from ..utils.tags import normalize_tags
from .context import TransformContext
from .link_resolver import LinkResolver

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Dict[str, Any], TransformContext], Any]


def _richtext_default(value: Any) -> Dict[str, Any]:
    text = strip_html_text(value) if isinstance(value, str) else ""
    return fallback_doc(text) if text else doc([])


SAFE_DEFAULTS: Dict[str, Callable[[Any], Any]] = {
    "richtext": _richtext_default,
    "asset": lambda value: None,
    "reference": lambda value: None,
    "references": lambda value: [],
    "tags": lambda value: [],
    "datetime": lambda value: "",
    "link": lambda value: LinkDescriptor(LinkKind.URL, url="", target=""),
    "string": lambda value: "",
}


###############################################################################
# Value helpers
###############################################################################

def to_source_id(value: Any) -> Optional[int]:
    """Source id from an int, a numeric string or ``{"id": ...}``."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id", value.get("ID"))
        if isinstance(value, bool) or value is None:
            return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number or None
    return None


def _asset_source(value: Any) -> Tuple[Any, str, str, Optional[str]]:
    """Split an asset-ish value into ``(url or media id, alt, title, focus)``."""
    if isinstance(value, dict):
        url = (
            value.get("url")
            or value.get("src")
            or value.get("source_url")
            or value.get("originUrl")
            or value.get("filename")
            or extract_value(value, "guid")
        )
        alt = value.get("alt") or value.get("alt_text") or value.get("altText") or ""
        title = extract_value(value, "title", "") or ""
        if not url:
            url = to_source_id(value)
        return url, str(alt), str(title), value.get("focus")
    return value, "", "", None


def custom_fields_of(item: SourceItem) -> Optional[Dict[str, Any]]:
    """The record's ACF values, else its ``meta`` object; ``None`` when both are empty."""
    for key in ("acf", "meta"):
        value = item.raw.get(key)
        if isinstance(value, dict) and value:
            return copy.deepcopy(value)
    return None


###############################################################################
# Transformer
###############################################################################

class FieldTransformer:
    """Dispatches field values to the named transforms."""

    def __init__(self, link_resolver: LinkResolver) -> None:
        self.links = link_resolver
        self._handlers: Dict[str, Handler] = {
            "richtext": self.transform_richtext,
            "asset": self.transform_asset,
            "reference": self.transform_reference,
            "references": self.transform_references,
            "tags": self.transform_tags,
            "datetime": self.transform_datetime,
            "link": self.transform_link,
            "string": self.transform_string,
        }

    @classmethod
    def from_config(cls, config: MigrationConfig) -> "FieldTransformer":
        return cls(LinkResolver.from_config(config))

    def transform(self, value: Any, spec: TransformSpec, context: TransformContext, field: str = "") -> Any:
        """Apply ``spec`` to ``value``; never raises."""
        if isinstance(spec, FunctionTransform):
            try:
                return spec.fn(value, context)
            except Exception as e:
                self._report_failure(context, field, spec.name, e)
                return None

        handler = self._handlers[spec.kind]
        try:
            return handler(value, spec.options, context)
        except Exception as e:
            self._report_failure(context, field, spec.kind, e)
            return SAFE_DEFAULTS[spec.kind](value)

    def transform_item(self, item: SourceItem, type_config: ContentTypeConfig, context: TransformContext) -> Dict[str, Any]:
        """Transform every configured field of ``item``, in configuration order."""
        fields: Dict[str, Any] = {}
        for name, mapping in type_config.fields.items():
            value = item.get(mapping.source or name)
            if value is None and mapping.default is not None:
                value = copy.deepcopy(mapping.default)
            if mapping.transform is None:
                fields[name] = value
                continue
            fields[name] = self.transform(value, mapping.transform, context, field=name)
        if type_config.custom_fields and "custom_fields" not in fields:
            custom = custom_fields_of(item)
            if custom:
                fields["custom_fields"] = custom
        return fields

    def _report_failure(self, context: TransformContext, field: str, kind: str, exc: BaseException) -> None:
        logger.warning(
            "Transform '%s' failed for field '%s' of item %s: %s",
            kind,
            field,
            context.item.id if context.item is not None else "-",
            exc,
        )
        context.report.report_error(
            "FIELD_TRANSFORM_FAILED", context.item, exc, extra={"field": field, "transform": kind}
        )

    # ------------------------------------------------------------ named kinds

    def transform_richtext(self, value: Any, options: Dict[str, Any], context: TransformContext) -> Dict[str, Any]:
        if isinstance(value, dict) and value.get("type") == "doc":
            return value
        if value is None or value == "":
            return doc([])
        link_resolver = None
        if options.get("convert_links", True):
            def link_resolver(href: str, target: Optional[str]) -> LinkDescriptor:
                return self.links.resolve(href, context, target)

        image_resolver = None
        if options.get("extract_assets", True) and context.assets is not None:
            def image_resolver(src: str, alt: str, title: str) -> Optional[AssetReference]:
                url = self.links.absolute(src)
                media = context.media_by_url(url)
                if media is not None:
                    alt = alt or media.alt_text
                    title = title or media.title
                return context.assets.reference(url, alt, title)

        return convert_html_to_richtext(value, link_resolver=link_resolver, image_resolver=image_resolver)

    def transform_asset(self, value: Any, options: Dict[str, Any], context: TransformContext) -> Optional[AssetReference]:
        if not value or isinstance(value, bool):
            return None
        source, alt, title, focus = _asset_source(value)
        media_id = to_source_id(source) if not isinstance(source, str) or source.strip().isdigit() else None
        if media_id is not None:
            media = context.media.get(media_id)
            if media is None:
                logger.debug("Media %s not found", media_id)
                return None
            source = media.source_url
            alt = alt or media.alt_text
            title = title or media.title
        if not isinstance(source, str) or not source.strip():
            return None

        url = self.links.absolute(source.strip())
        if not alt or not title:
            media = context.media_by_url(url)
            if media is not None:
                alt = alt or media.alt_text
                title = title or media.title
        if context.assets is None:
            return AssetReference(origin_url=url, target=None, alt_text=alt, title=title, focus=focus)
        return context.assets.reference(url, alt, title, focus)

    def transform_reference(self, value: Any, options: Dict[str, Any], context: TransformContext) -> Any:
        source_id = to_source_id(value)
        if source_id is None:
            return None
        target = options.get("target")
        if target and target in context.config.datasource_names():
            return self._datasource_entry(target, source_id, context)
        return self._story_reference(source_id, context)

    def transform_references(self, value: Any, options: Dict[str, Any], context: TransformContext) -> List[Any]:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            entries: List[Any] = [v.strip() for v in value.split(",")]
        elif isinstance(value, (list, tuple)):
            entries = list(value)
        else:
            entries = [value]
        references: List[Any] = []
        for entry in entries:
            reference = self.transform_reference(entry, options, context)
            if reference is not None:
                references.append(reference)
        return references

    def transform_tags(self, value: Any, options: Dict[str, Any], context: TransformContext) -> List[str]:
        terms: Dict[int, Term] = {}
        for taxonomy in context.config.taxonomies:
            terms.update(context.terms_by_id(taxonomy))
        return normalize_tags(value, terms)

    def transform_datetime(self, value: Any, options: Dict[str, Any], context: TransformContext) -> str:
        dt = parse_datetime(value)
        if dt is None:
            return ""
        return format_datetime(dt, options.get("format"))

    def transform_link(self, value: Any, options: Dict[str, Any], context: TransformContext) -> LinkDescriptor:
        target = None
        url = value
        if isinstance(value, dict):
            url = value.get("url") or value.get("href") or value.get("link")
            target = value.get("target") or None
        if not isinstance(url, str) or not url.strip():
            return LinkDescriptor(LinkKind.URL, url="", target="", locale=context.locale)
        return self.links.resolve(url, context, target)

    def transform_string(self, value: Any, options: Dict[str, Any], context: TransformContext) -> str:
        if value is None:
            return ""
        text = value if isinstance(value, str) else str(value)
        if options.get("strip_markup"):
            text = strip_markup(text)
        elif options.get("trim", True):
            text = text.strip()
        max_length = options.get("max_length")
        if max_length and len(text) > max_length:
            text = text[:max_length].rstrip()
            if options.get("ellipsis"):
                text += "..."
        return text

    # --------------------------------------------------------------- references

    def _story_reference(self, source_id: int, context: TransformContext) -> StoryReference:
        story = context.slugs.find_by_source_id(context.locale, source_id)
        if story is not None:
            return StoryReference(source_id, context.locale, uuid=story.uuid, full_slug=story.full_slug)
        reference = StoryReference(source_id, context.locale)
        context.pending.add_reference(reference)
        return reference

    def _datasource_entry(self, name: str, source_id: int, context: TransformContext) -> Optional[DatasourceReference]:
        if context.config.authors.enabled and name == context.config.authors.name:
            author = context.authors.get(source_id)
            if author is None:
                return None
            return DatasourceReference(name, author.slug, author.name)
        for taxonomy, tax_config in context.config.taxonomies.items():
            if tax_config.name == name:
                term = context.terms_by_id(taxonomy).get(source_id)
                if term is None:
                    return None
                return DatasourceReference(name, term.slug, term.name)
        return None

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.slugs import slugify, strip_markup

_UUID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://github.com/wp2storyblok")


def stable_uuid(*parts: Any) -> str:
    """Deterministic UUID for the given key parts (same input, same UUID)."""
    return str(uuid.uuid5(_UUID_NAMESPACE, ":".join(str(p) for p in parts)))


def _unwrap(value: Any) -> Any:
    # WordPress REST wraps markup fields as {"rendered": "...", "protected": false}
    if isinstance(value, dict) and "rendered" in value:
        return value["rendered"]
    return value


def extract_value(source: Any, path: Optional[str], fallback: Any = None) -> Any:
    """Read a dotted ``path`` from a nested dict, unwrapping ``rendered``."""
    if source is None or not path:
        return fallback
    value = source
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            return fallback
    value = _unwrap(value)
    return fallback if value is None else value


def _optional_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number or None


###############################################################################
# Source side
###############################################################################

class SourceItem(BaseModel):
    """One content record (post, page or custom type) in one locale."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    locale: str
    content_type: str
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], locale: str, content_type: str) -> "SourceItem":
        return cls(id=raw.get("id"), locale=locale, content_type=content_type, raw=raw)

    @property
    def title(self) -> str:
        value = extract_value(self.raw, "title", "")
        return strip_markup(value) if isinstance(value, str) else ""

    @property
    def source_slug(self) -> str:
        value = self.raw.get("slug")
        return value if isinstance(value, str) else ""

    @property
    def link(self) -> str:
        value = self.raw.get("link")
        return value if isinstance(value, str) else ""

    @property
    def source_path(self) -> str:
        """Path of the item on the source site, without surrounding slashes."""
        if self.link:
            try:
                return urlparse(self.link).path.strip("/")
            except ValueError:
                return ""
        value = self.raw.get("path")
        return value.strip("/") if isinstance(value, str) else ""

    @property
    def parent_id(self) -> Optional[int]:
        return _optional_int(self.raw.get("parent"))

    @property
    def translations(self) -> Dict[str, int]:
        value = self.raw.get("translations")
        if not isinstance(value, dict):
            return {}
        result: Dict[str, int] = {}
        for locale, item_id in value.items():
            number = _optional_int(item_id)
            if number is not None:
                result[str(locale)] = number
        return result

    def get(self, path: Optional[str], fallback: Any = None) -> Any:
        return extract_value(self.raw, path, fallback)


class MediaItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    source_url: str
    alt_text: str = ""
    title: str = ""
    width: Optional[int] = None
    height: Optional[int] = None

    @field_validator("title", "alt_text", mode="before")
    @classmethod
    def _unwrap_rendered(cls, v: Any) -> Any:
        v = _unwrap(v)
        return "" if v is None else v

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "MediaItem":
        details = raw.get("media_details") or {}
        return cls(
            id=raw.get("id"),
            source_url=raw.get("source_url") or raw.get("originUrl") or _unwrap(raw.get("guid")) or "",
            alt_text=raw.get("alt_text") or raw.get("altText") or "",
            title=raw.get("title") or "",
            width=raw.get("width") or details.get("width"),
            height=raw.get("height") or details.get("height"),
        )


class Author(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    slug: str

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "Author":
        name = raw.get("name") or raw.get("displayName") or raw.get("display_name") or f"User {raw.get('id')}"
        return cls(id=raw.get("id"), name=name, slug=raw.get("slug") or slugify(name))


class Term(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    slug: str = ""
    parent: int = 0
    taxonomy: str = ""

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], taxonomy: str = "") -> "Term":
        name = strip_markup(str(raw.get("name") or ""))
        return cls(
            id=raw.get("id"),
            name=name,
            slug=raw.get("slug") or slugify(name),
            parent=raw.get("parent") or 0,
            taxonomy=raw.get("taxonomy") or taxonomy,
        )


@dataclass
class SourceData:
    """Everything loaded for one run: flat media/authors, per-locale items and terms."""

    media: List[MediaItem] = field(default_factory=list)
    authors: List[Author] = field(default_factory=list)
    items: Dict[str, Dict[str, List[SourceItem]]] = field(default_factory=dict)
    terms: Dict[str, Dict[str, List[Term]]] = field(default_factory=dict)

    def items_for(self, locale: str, content_type: str) -> List[SourceItem]:
        return self.items.get(locale, {}).get(content_type, [])

    def terms_for(self, locale: str, taxonomy: str) -> List[Term]:
        return self.terms.get(locale, {}).get(taxonomy, [])

    def media_by_id(self) -> Dict[int, MediaItem]:
        return {m.id: m for m in self.media}

    def authors_by_id(self) -> Dict[int, Author]:
        return {a.id: a for a in self.authors}

    def item_count(self) -> int:
        return sum(len(items) for per_type in self.items.values() for items in per_type.values())


###############################################################################
# Target side
###############################################################################

@dataclass(eq=False)
class AssetDescriptor:
    """
    One distinct binary resource staged locally.

    Compared by identity: the deduplicator hands out the same instance for
    every resolution of the same ``origin_url``.
    """

    origin_url: str
    filename: str
    local_path: str
    size: int
    target_id: Optional[str] = None

    def to_manifest_entry(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "local_path": self.local_path,
            "size": self.size,
            "target_id": self.target_id,
        }


@dataclass
class AssetReference:
    """Result of the ``asset`` transform: ``{target, altText, focus}``."""

    origin_url: str
    target: Optional[AssetDescriptor] = None
    alt_text: str = ""
    title: str = ""
    focus: Optional[str] = None

    @property
    def filename(self) -> str:
        # managed media passes through with its source URL
        return self.target.filename if self.target is not None else self.origin_url

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.target.target_id if self.target is not None else None,
            "alt": self.alt_text,
            "title": self.title,
            "focus": self.focus,
            "filename": self.filename,
            "source_url": self.origin_url,
            "fieldtype": "asset",
        }

    def to_image_attrs(self) -> Dict[str, Any]:
        return {
            "id": self.target.target_id if self.target is not None else None,
            "src": self.filename,
            "alt": self.alt_text,
            "title": self.title,
            "source_url": self.origin_url,
        }


class LinkKind(str, Enum):
    STORY = "story"
    ASSET = "asset"
    URL = "url"
    EMAIL = "email"


@dataclass
class LinkDescriptor:
    """
    A classified link.

    ``target`` holds the story's full slug, the asset filename, the URL or
    the e-mail address depending on ``kind``.  A story link whose target was
    not organized yet has ``target=None`` and remembers ``pending_slug``
    (and ``pending_source_id`` for ``?p=<id>`` links) for the patch pass.
    """

    kind: LinkKind
    url: str
    target: Optional[str] = None
    locale: str = ""
    anchor: Optional[str] = None
    story_uuid: Optional[str] = None
    pending_slug: Optional[str] = None
    pending_source_id: Optional[int] = None
    asset: Optional[AssetReference] = None
    link_target: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.kind is LinkKind.STORY and self.target is None

    def patch(self, resolved: "LinkDescriptor") -> None:
        """Overwrite this descriptor in place with a resolved one."""
        self.kind = resolved.kind
        self.target = resolved.target
        self.story_uuid = resolved.story_uuid
        self.anchor = resolved.anchor
        self.pending_slug = None
        self.pending_source_id = None

    def to_dict(self) -> Dict[str, Any]:
        """Multilink field value."""
        data: Dict[str, Any] = {
            "id": self.story_uuid or "",
            "url": "",
            "linktype": self.kind.value,
            "fieldtype": "multilink",
            "cached_url": "",
        }
        if self.kind is LinkKind.STORY:
            data["cached_url"] = self.target or ""
        elif self.kind is LinkKind.EMAIL:
            data["email"] = self.target or ""
            data["url"] = self.target or ""
        else:
            data["url"] = self.target or self.url
            data["cached_url"] = self.target or self.url
        if self.anchor:
            data["anchor"] = self.anchor
        if self.link_target:
            data["target"] = self.link_target
        return data

    def to_mark_attrs(self) -> Dict[str, Any]:
        """Attributes of a richtext ``link`` mark."""
        if self.kind is LinkKind.STORY:
            href = f"/{self.target}" if self.target else self.url
        elif self.kind is LinkKind.EMAIL:
            href = self.target or ""
        else:
            href = self.target or self.url
        return {
            "href": href,
            "uuid": self.story_uuid,
            "anchor": self.anchor,
            "target": self.link_target,
            "linktype": self.kind.value,
        }


@dataclass
class StoryReference:
    """A ``reference`` to another source item, resolved once it is organized."""

    source_id: int
    locale: str
    uuid: Optional[str] = None
    full_slug: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.uuid is not None


class StoryContent(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    component: str
    uid: str
    fields: Dict[str, Any] = Field(default_factory=dict)


class TargetStory(BaseModel):
    """One transformed story, created by the organizer from a source item."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    slug: str
    full_slug: str
    locale: str
    uuid: str
    content_type: str
    content: StoryContent
    source_id: int
    source_path: str = ""
    group_id: Optional[str] = None
    parent_id: Optional[int] = None
    parent_full_slug: Optional[str] = None
    is_startpage: bool = False
    published_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        content = {"component": self.content.component, "_uid": self.content.uid}
        content.update(serialize_value(self.content.fields))
        return {
            "name": self.name,
            "slug": self.slug,
            "full_slug": self.full_slug,
            "uuid": self.uuid,
            "lang": self.locale,
            "is_startpage": self.is_startpage,
            "group_id": self.group_id,
            "published_at": self.published_at,
            "content": content,
            "meta_data": {
                "source_id": self.source_id,
                "source_type": self.content_type,
                "source_path": self.source_path,
                "parent_source_id": self.parent_id,
                "parent_full_slug": self.parent_full_slug,
            },
        }


def serialize_value(value: Any) -> Any:
    """
    Convert transformed content to plain JSON data.

    Descriptors embedded in content stay live objects until persisting so
    the reference patch pass can update them in place; this visitor turns
    them into their target-system shapes.  Unresolved story references
    become ``None`` and are dropped from lists.
    """
    if isinstance(value, LinkDescriptor):
        return value.to_dict()
    if isinstance(value, AssetReference):
        return value.to_dict()
    if isinstance(value, StoryReference):
        return value.uuid
    if isinstance(value, DatasourceReference):
        return value.value
    if isinstance(value, dict):
        node_type = value.get("type")
        attrs = value.get("attrs")
        out: Dict[str, Any] = {}
        for key, item in value.items():
            if key == "attrs" and node_type == "link" and isinstance(attrs, LinkDescriptor):
                out[key] = attrs.to_mark_attrs()
            elif key == "attrs" and node_type == "image" and isinstance(attrs, AssetReference):
                out[key] = attrs.to_image_attrs()
            else:
                out[key] = serialize_value(item)
        return out
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, StoryReference) and not item.resolved:
                continue
            items.append(serialize_value(item))
        return items
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass
class DatasourceReference:
    """An entry of a datasource (authors or a taxonomy) picked by a ``reference``."""

    datasource: str
    value: str
    name: str = ""

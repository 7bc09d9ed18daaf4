"""
Typed migration configuration.

The configuration is a single JSON document (or a Python ``dict`` when the
caller wants to pass function transforms) deep-merged over
:data:`DEFAULT_CONFIG` and validated once by :func:`load_config`.  Every
section rejects unknown keys, and field transform specs are parsed here into
either a :class:`NamedTransform` or a :class:`FunctionTransform` so that the
per-item hot path never inspects raw configuration again.

Example::

    cfg = load_config({
        "site": {"url": "https://blog.example.com"},
        "i18n": {"default_language": "en", "languages": {"en": {}, "es": {}}},
        "content_types": {
            "posts": {
                "component": "article",
                "folder": "articles",
                "fields": {
                    "title": {"source": "title", "transform": "string"},
                    "body": {"source": "content", "transform": "richtext"},
                    "teaser": {"source": "excerpt", "kind": "string",
                               "strip_markup": True, "max_length": 160},
                },
            },
        },
    })
"""

from __future__ import annotations

import copy
import json
import os
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..utils.errors import ConfigurationError

TRANSFORM_KINDS: Tuple[str, ...] = (
    "richtext",
    "asset",
    "reference",
    "references",
    "tags",
    "datetime",
    "link",
    "string",
)

# Accepted option keys per named transform, with their expected types.
_KIND_OPTIONS: Dict[str, Dict[str, type]] = {
    "richtext": {"convert_links": bool, "extract_assets": bool},
    "asset": {},
    "reference": {"target": str},
    "references": {"target": str},
    "tags": {},
    "datetime": {"format": str},
    "link": {},
    "string": {"trim": bool, "strip_markup": bool, "max_length": int, "ellipsis": bool},
}

DEFAULT_ASSET_EXTENSIONS: List[str] = [
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", ".tiff",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".mp4", ".avi", ".mov", ".wmv", ".webm", ".mp3", ".wav", ".ogg",
    ".zip", ".rar", ".tar", ".gz",
]

DEFAULT_CONFIG: Dict[str, Any] = {
    "site": {
        "url": "",
        "target_url": "",
        "managed_media_markers": ["/wp-content/uploads/"],
    },
    "input": {
        "base_dir": "./exported-data",
        "structure": "language_folders",
    },
    "output": {
        "base_dir": "./mapped-data",
        "granularity": "single_collection",
        "pretty": True,
        "stories_dir": "stories",
        "datasources_dir": "datasources",
        "assets_dir": "assets",
        "reports_dir": "reports",
        "components_dir": "components",
    },
    "i18n": {
        "strategy": "field_level",
        "default_language": "en",
        "languages": {},
    },
    "stories": {
        "organization": "content_type_folder",
        "folder_mapping": [],
    },
    "content_types": {},
    "taxonomies": {
        "category": {"name": "categories"},
        "post_tag": {"name": "tags"},
    },
    "authors": {"name": "authors", "enabled": True},
    "transformers": {},
    "assets": {
        "download_dir": None,
        "extensions": DEFAULT_ASSET_EXTENSIONS,
        "max_attempts": 3,
        "backoff_base": 0.5,
        "timeout": 30.0,
        "max_file_size": 10 * 1024 * 1024,
        "workers": 4,
        "prefetch": True,
    },
    "links": {
        "strip_query_params": [
            "p", "page_id", "attachment_id", "preview", "preview_id", "preview_nonce", "paged",
        ],
    },
}


def _check_options(kind: str, options: Dict[str, Any]) -> Dict[str, Any]:
    allowed = _KIND_OPTIONS[kind]
    for key, value in options.items():
        if key not in allowed:
            raise ValueError(
                f"Unknown option '{key}' for transform '{kind}'. "
                f"Valid options: {', '.join(sorted(allowed)) or 'none'}"
            )
        expected = allowed[key]
        # bool is an int subclass; keep the two apart
        if expected is int and isinstance(value, bool):
            raise ValueError(f"Option '{key}' for transform '{kind}' must be {expected.__name__}")
        if not isinstance(value, expected):
            raise ValueError(f"Option '{key}' for transform '{kind}' must be {expected.__name__}")
    return options


class NamedTransform(BaseModel):
    """One of the built-in transforms plus its options."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["richtext", "asset", "reference", "references", "tags", "datetime", "link", "string"]
    options: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_options(self) -> "NamedTransform":
        _check_options(self.kind, self.options)
        return self


class FunctionTransform(BaseModel):
    """A caller-supplied ``(value, context) -> value`` transform."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    fn: Callable[..., Any]
    name: str = "function"


TransformSpec = Union[NamedTransform, FunctionTransform]


def parse_transform_spec(raw: Any) -> TransformSpec:
    """Parse a string, ``{kind, ...options}`` dict or callable into a spec."""
    if isinstance(raw, (NamedTransform, FunctionTransform)):
        return raw
    if isinstance(raw, str):
        if raw not in TRANSFORM_KINDS:
            raise ValueError(
                f"Invalid transform '{raw}'. Valid options: {', '.join(TRANSFORM_KINDS)}"
            )
        return NamedTransform(kind=raw)
    if isinstance(raw, dict):
        options = dict(raw)
        kind = options.pop("kind", None)
        if not isinstance(kind, str):
            raise ValueError("Inline transform configuration needs a string 'kind'")
        if kind not in TRANSFORM_KINDS:
            raise ValueError(
                f"Invalid transform '{kind}'. Valid options: {', '.join(TRANSFORM_KINDS)}"
            )
        return NamedTransform(kind=kind, options=options)
    if callable(raw):
        return FunctionTransform(fn=raw, name=getattr(raw, "__name__", "function"))
    raise ValueError(f"Transform must be a string, an object or a function, got {type(raw).__name__}")


class FieldMapping(BaseModel):
    """How one target field is produced from the source record."""

    model_config = ConfigDict(extra="forbid")

    source: Optional[str] = None
    transform: Optional[TransformSpec] = None
    default: Any = None
    schema_type: Optional[str] = None

    @field_validator("transform", mode="before")
    @classmethod
    def _parse_transform(cls, v: Any) -> Optional[TransformSpec]:
        if v is None:
            return None
        return parse_transform_spec(v)


def _coerce_field_mapping(value: Any) -> Any:
    if isinstance(value, FieldMapping):
        return value
    if isinstance(value, (str, NamedTransform, FunctionTransform)) or (
        callable(value) and not isinstance(value, dict)
    ):
        return {"transform": value}
    if isinstance(value, dict) and "kind" in value:
        inline = dict(value)
        mapping = {
            "source": inline.pop("source", None),
            "default": inline.pop("default", None),
            "schema_type": inline.pop("schema_type", None),
        }
        mapping["transform"] = inline
        return mapping
    return value


class ContentTypeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    component: str
    display_name: Optional[str] = None
    folder: Optional[str] = None
    fields: Dict[str, FieldMapping] = Field(default_factory=dict)
    require_title: bool = True
    # copy the record's ACF values (or its meta) into ``custom_fields``
    custom_fields: bool = True

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        return {name: _coerce_field_mapping(value) for name, value in v.items()}


class LanguageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = ""
    prefix: Optional[str] = None
    suffix: Optional[str] = None


class I18nConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    strategy: Literal["field_level", "folder_level"] = "field_level"
    default_language: str = "en"
    languages: Dict[str, LanguageConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ensure_default_language(self) -> "I18nConfig":
        if not self.languages:
            self.languages = {self.default_language: LanguageConfig()}
        if self.default_language not in self.languages:
            raise ValueError(
                f"Default language '{self.default_language}' not found in languages configuration"
            )
        return self

    @property
    def locales(self) -> List[str]:
        return list(self.languages)

    def path_prefix(self, locale: str) -> str:
        """Folder segment used by the ``folder_level`` strategy."""
        lang = self.languages.get(locale)
        if lang is not None and lang.prefix is not None:
            return lang.prefix.strip("/")
        return "" if locale == self.default_language else locale

    def file_suffix(self, locale: str) -> str:
        """File name suffix used by the ``field_level`` strategy."""
        lang = self.languages.get(locale)
        if lang is not None and lang.suffix is not None:
            return lang.suffix
        return "" if locale == self.default_language else f"_{locale}"


class FolderMapping(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source_prefix: str
    target_folder: str

    @field_validator("source_prefix", "target_folder")
    @classmethod
    def _strip_slashes(cls, v: str) -> str:
        return v.strip().strip("/")


class StoriesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    organization: Literal["path_preserving", "folder_mapped", "content_type_folder"] = "content_type_folder"
    folder_mapping: List[FolderMapping] = Field(default_factory=list)

    @field_validator("folder_mapping", mode="before")
    @classmethod
    def _mapping_from_dict(cls, v: Any) -> Any:
        # {"source/prefix": "target-folder"} keeps insertion order
        if isinstance(v, dict):
            return [{"source_prefix": k, "target_folder": t} for k, t in v.items()]
        return v


class SiteConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = ""
    target_url: str = ""
    managed_media_markers: List[str] = Field(default_factory=list)


class InputConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_dir: str = "./exported-data"
    structure: Literal["language_folders", "single_language"] = "language_folders"


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_dir: str = "./mapped-data"
    granularity: Literal["single_collection", "per_item"] = "single_collection"
    pretty: bool = True
    stories_dir: str = "stories"
    datasources_dir: str = "datasources"
    assets_dir: str = "assets"
    reports_dir: str = "reports"
    components_dir: str = "components"


class TaxonomyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    locale_scoped: bool = True


class AuthorsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "authors"
    enabled: bool = True


class AssetsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    download_dir: Optional[str] = None
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_ASSET_EXTENSIONS))
    max_attempts: int = Field(3, ge=1)
    backoff_base: float = Field(0.5, ge=0)
    timeout: float = Field(30.0, gt=0)
    max_file_size: int = Field(10 * 1024 * 1024, gt=0)
    workers: int = Field(4, ge=1)
    prefetch: bool = True

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, v: List[str]) -> List[str]:
        return [e.lower() if e.startswith(".") else f".{e.lower()}" for e in v if e]


class LinksConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    strip_query_params: List[str] = Field(default_factory=list)


class MigrationConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    site: SiteConfig = Field(default_factory=SiteConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    stories: StoriesConfig = Field(default_factory=StoriesConfig)
    content_types: Dict[str, ContentTypeConfig] = Field(default_factory=dict)
    taxonomies: Dict[str, TaxonomyConfig] = Field(default_factory=dict)
    authors: AuthorsConfig = Field(default_factory=AuthorsConfig)
    transformers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    assets: AssetsConfig = Field(default_factory=AssetsConfig)
    links: LinksConfig = Field(default_factory=LinksConfig)

    @field_validator("taxonomies", mode="before")
    @classmethod
    def _drop_disabled_taxonomies(cls, v: Any) -> Any:
        # a null entry removes a default taxonomy
        if isinstance(v, dict):
            return {k: t for k, t in v.items() if t is not None}
        return v

    @field_validator("transformers")
    @classmethod
    def _check_global_options(cls, v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        for kind, options in v.items():
            if kind not in TRANSFORM_KINDS:
                raise ValueError(
                    f"Invalid transformer section '{kind}'. Valid options: {', '.join(TRANSFORM_KINDS)}"
                )
            _check_options(kind, options)
        return v

    @model_validator(mode="after")
    def _apply_global_transformer_options(self) -> "MigrationConfig":
        if not self.transformers:
            return self
        for type_config in self.content_types.values():
            for mapping in type_config.fields.values():
                spec = mapping.transform
                if isinstance(spec, NamedTransform) and spec.kind in self.transformers:
                    merged = {**self.transformers[spec.kind], **spec.options}
                    mapping.transform = NamedTransform(kind=spec.kind, options=merged)
        return self

    def datasource_names(self) -> List[str]:
        names = [t.name for t in self.taxonomies.values()]
        if self.authors.enabled:
            names.append(self.authors.name)
        return names


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge ``override`` into a copy of ``base``.

    Nested dicts merge key by key; any other value (lists, scalars,
    callables) replaces the base value.  Neither input is modified.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(source: Union[None, str, "os.PathLike[str]", Dict[str, Any], MigrationConfig] = None) -> MigrationConfig:
    """
    Load, merge and validate the migration configuration.

    :param source: path to a JSON file, a configuration dict, an already
        built :class:`MigrationConfig`, or ``None`` for the defaults.
    :raises ConfigurationError: when the file cannot be read or the merged
        document fails validation.
    """
    if isinstance(source, MigrationConfig):
        return source
    if source is None:
        user: Dict[str, Any] = {}
    elif isinstance(source, dict):
        user = source
    else:
        path = os.fspath(source)
        try:
            with open(path, "r", encoding="utf-8") as f:
                user = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file {path} is not valid JSON: {e}") from e
        if not isinstance(user, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a JSON object")

    try:
        return MigrationConfig.model_validate(merge_config(DEFAULT_CONFIG, user))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

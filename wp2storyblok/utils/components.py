"""
Storyblok component schemas derived from the configured content types.

Every content type becomes one root component whose schema lists its mapped
fields in configuration order.  The Storyblok field type follows the
transform kind; a field mapping may force another type with ``schema_type``.
Content types sharing a component contribute to one schema.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List

from ..models.config import ContentTypeConfig, FieldMapping, MigrationConfig, NamedTransform
from .datasources import humanize_name

FIELD_TYPES: Dict[str, str] = {
    "richtext": "richtext",
    "string": "text",
    "datetime": "datetime",
    "tags": "options",
    "reference": "option",
    "references": "options",
    "asset": "asset",
    "link": "multilink",
}


def display_name(name: str) -> str:
    """``featuredImage`` -> ``Featured Image``."""
    return humanize_name(re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name or ""))


def field_schema(name: str, mapping: FieldMapping, pos: int, config: MigrationConfig) -> Dict[str, Any]:
    spec = mapping.transform
    kind = spec.kind if isinstance(spec, NamedTransform) else None
    field: Dict[str, Any] = {
        "type": mapping.schema_type or FIELD_TYPES.get(kind or "", "text"),
        "pos": pos,
        "display_name": display_name(name),
    }
    if mapping.schema_type:
        return field

    if kind in ("reference", "references"):
        target = spec.options.get("target")
        if target and target in config.datasource_names():
            field["source"] = "internal"
            field["datasource_slug"] = target
        else:
            field["source"] = "internal_stories"
    elif kind == "tags":
        tags = config.taxonomies.get("post_tag")
        if tags is not None:
            field["source"] = "internal"
            field["datasource_slug"] = tags.name
    elif kind == "asset":
        field["filetypes"] = ["images"]
    elif kind == "link":
        field["allow_target_blank"] = True
        field["email_link_type"] = True
        field["asset_link_type"] = True
    elif kind == "richtext":
        field["allow_target_blank"] = True
    return field


def component_schema(type_config: ContentTypeConfig, config: MigrationConfig) -> Dict[str, Any]:
    return {
        "name": type_config.component,
        "display_name": type_config.display_name or display_name(type_config.component),
        "is_root": True,
        "is_nestable": False,
        "schema": {
            name: field_schema(name, mapping, pos, config)
            for pos, (name, mapping) in enumerate(type_config.fields.items())
        },
    }


def build_components(config: MigrationConfig) -> List[Dict[str, Any]]:
    """One component per distinct ``component`` name, in configuration order."""
    components: Dict[str, Dict[str, Any]] = {}
    for type_config in config.content_types.values():
        component = component_schema(type_config, config)
        existing = components.get(component["name"])
        if existing is None:
            components[component["name"]] = component
            continue
        for name, field in component["schema"].items():
            if name not in existing["schema"]:
                field["pos"] = len(existing["schema"])
                existing["schema"][name] = field
    return list(components.values())

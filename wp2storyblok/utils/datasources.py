from __future__ import annotations

from html import unescape
import re
from typing import Dict, Iterable, List, Tuple

from ..models.config import MigrationConfig
from ..models.content import Author, SourceData, Term
from .slugs import slugify, strip_accents


def _canonical_key(text: str) -> str:
    # Unescape HTML entities, trim, collapse whitespace, lowercase, strip accents
    t = unescape(text or "").strip()
    t = re.sub(r"\s+", " ", t)
    t = t.lower()
    return strip_accents(t)


def humanize_name(name: str) -> str:
    """``post_tag`` -> ``Post Tag``."""
    return " ".join(part.capitalize() for part in re.split(r"[-_\s]+", name or "") if part)


def datasource_entries(pairs: Iterable[Tuple[str, str]]) -> List[Dict[str, str]]:
    """
    Build ``{name, value}`` entries from ``(name, slug)`` pairs.

    - Fixes HTML entities in names (e.g., '&amp;' -> '&')
    - Values are slugified, falling back to the name
    - Deduplicates on value and on canonical name, first one wins
    """
    seen_values = set()
    seen_names = set()
    entries: List[Dict[str, str]] = []
    for name, slug in pairs:
        label = unescape(name or "").strip()
        value = slugify(slug or "") or slugify(label)
        key = _canonical_key(label)
        if not value or value in seen_values or (key and key in seen_names):
            continue
        seen_values.add(value)
        seen_names.add(key)
        entries.append({"name": label or value, "value": value})
    return entries


def term_datasource(name: str, terms: Iterable[Term]) -> Dict[str, object]:
    ordered = sorted(terms, key=lambda t: t.id)
    return {
        "name": humanize_name(name),
        "slug": slugify(name),
        "datasource_entries": datasource_entries((t.name, t.slug) for t in ordered),
    }


def author_datasource(name: str, authors: Iterable[Author]) -> Dict[str, object]:
    ordered = sorted(authors, key=lambda a: a.id)
    return {
        "name": humanize_name(name),
        "slug": slugify(name),
        "datasource_entries": datasource_entries((a.name, a.slug) for a in ordered),
    }


def build_datasources(config: MigrationConfig, data: SourceData) -> Dict[str, Dict[str, object]]:
    """
    Datasource collections keyed by relative file name.

    Locale-scoped taxonomies produce one file per locale named with the
    locale's file suffix (``tags.json``, ``tags_es.json``); other taxonomies
    and the authors datasource produce a single file from the default
    locale's data.
    """
    i18n = config.i18n
    result: Dict[str, Dict[str, object]] = {}
    for taxonomy, tax_config in config.taxonomies.items():
        if tax_config.locale_scoped:
            for locale in i18n.locales:
                terms = data.terms_for(locale, taxonomy)
                if terms:
                    result[f"{tax_config.name}{i18n.file_suffix(locale)}.json"] = term_datasource(tax_config.name, terms)
        else:
            terms = data.terms_for(i18n.default_language, taxonomy)
            if terms:
                result[f"{tax_config.name}.json"] = term_datasource(tax_config.name, terms)
    if config.authors.enabled and data.authors:
        result[f"{config.authors.name}.json"] = author_datasource(config.authors.name, data.authors)
    return result

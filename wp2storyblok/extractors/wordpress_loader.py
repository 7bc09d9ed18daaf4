"""
Loading of a WordPress REST export from disk.

Expected layout (``input.structure == "language_folders"``)::

    <input>/media.json                 flat media list
    <input>/users.json                 flat author list
    <input>/<locale>/<type>.json       one list per configured content type
    <input>/<locale>/<type>/*.json     ... or one file per item
    <input>/<locale>/<taxonomy>.json   terms, e.g. category.json, post_tag.json
    <input>/<locale>/taxonomies.json   ... or {taxonomy: [terms]}

With ``single_language`` the per-locale files sit directly in ``<input>``
and belong to the default language.

Media, users and taxonomies are optional.  A configured content type with no
file in any locale, an unreadable file, or a missing input directory raise
:class:`~wp2storyblok.utils.errors.InputError`.
"""

from __future__ import annotations

import glob
import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..models.config import MigrationConfig
from ..models.content import Author, MediaItem, SourceData, SourceItem, Term
from ..utils.errors import InputError

logger = logging.getLogger(__name__)


def _read_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise InputError(f"{path} is not valid JSON: {e}") from e
    except OSError as e:
        raise InputError(f"Could not read {path}: {e}") from e


def _as_list(payload: Any, path: str) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        # REST dumps sometimes wrap the list, single item files do not
        for key in ("items", "data", "results"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            payload = [payload]
    if not isinstance(payload, list):
        raise InputError(f"{path} must contain a JSON array of objects")
    return [entry for entry in payload if isinstance(entry, dict)]


def _load_collection(directory: str, name: str) -> Optional[List[Dict[str, Any]]]:
    """Records of ``<name>.json`` or ``<name>/*.json``; ``None`` if neither exists."""
    path = os.path.join(directory, f"{name}.json")
    if os.path.isfile(path):
        return _as_list(_read_json(path), path)
    folder = os.path.join(directory, name)
    if os.path.isdir(folder):
        records: List[Dict[str, Any]] = []
        for file_path in sorted(glob.glob(os.path.join(folder, "*.json"))):
            records.extend(_as_list(_read_json(file_path), file_path))
        return records
    return None


def _parse_records(records: List[Dict[str, Any]], build, what: str) -> List[Any]:
    parsed = []
    for raw in records:
        try:
            parsed.append(build(raw))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed %s record %s: %s", what, raw.get("id", "?"), e)
    return parsed


def load_source_data(input_dir: str, config: MigrationConfig) -> SourceData:
    """Read every collection the configuration asks for into a :class:`SourceData`."""
    if not os.path.isdir(input_dir):
        raise InputError(f"Input directory not found: {input_dir}")

    data = SourceData()
    data.media = _parse_records(_load_collection(input_dir, "media") or [], MediaItem.from_raw, "media")
    users = _load_collection(input_dir, "users")
    if users is None:
        users = _load_collection(input_dir, "authors") or []
    data.authors = _parse_records(users, Author.from_raw, "user")

    if config.input.structure == "single_language":
        locale_dirs = {config.i18n.default_language: input_dir}
    else:
        locale_dirs = {locale: os.path.join(input_dir, locale) for locale in config.i18n.locales}

    found: Dict[str, int] = {content_type: 0 for content_type in config.content_types}
    for locale, directory in locale_dirs.items():
        if not os.path.isdir(directory):
            logger.warning("No export folder for locale %s (%s)", locale, directory)
            continue
        per_type: Dict[str, List[SourceItem]] = {}
        for content_type in config.content_types:
            records = _load_collection(directory, content_type)
            if records is None:
                logger.info("No %s export for locale %s", content_type, locale)
                continue
            found[content_type] += 1
            per_type[content_type] = _parse_records(
                records,
                lambda raw, ct=content_type: SourceItem.from_raw(raw, locale, ct),
                content_type,
            )
        data.items[locale] = per_type
        data.terms[locale] = _load_terms(directory, config)

    missing = [content_type for content_type, count in found.items() if count == 0]
    if missing:
        raise InputError(f"No export found for content type(s): {', '.join(missing)}")

    logger.info(
        "Loaded %d items, %d media, %d authors", data.item_count(), len(data.media), len(data.authors)
    )
    return data


def _load_terms(directory: str, config: MigrationConfig) -> Dict[str, List[Term]]:
    terms: Dict[str, List[Term]] = {}
    combined_path = os.path.join(directory, "taxonomies.json")
    combined = _read_json(combined_path) if os.path.isfile(combined_path) else {}
    if not isinstance(combined, dict):
        raise InputError(f"{combined_path} must contain an object keyed by taxonomy")

    for taxonomy in config.taxonomies:
        records = _load_collection(directory, taxonomy)
        if records is None:
            entry = combined.get(taxonomy)
            if isinstance(entry, dict):
                entry = entry.get("terms")
            records = _as_list(entry, combined_path) if entry is not None else []
        terms[taxonomy] = _parse_records(
            records, lambda raw, tax=taxonomy: Term.from_raw(raw, tax), taxonomy
        )
    return terms

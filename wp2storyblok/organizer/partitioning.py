"""
Output partitioning of organized stories.

``output.granularity`` and ``i18n.strategy`` together pick the file layout
under the stories directory:

=================  ============  ===================================
granularity        strategy      files
=================  ============  ===================================
single_collection  field_level   ``stories<suffix>.json``
single_collection  folder_level  ``<locale>/stories.json``
per_item           field_level   ``<full_slug><suffix>.json``
per_item           folder_level  ``<full_slug>.json``
=================  ============  ===================================

Collections are JSON arrays; per-item files hold a single story object.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Sequence

from ..models.config import MigrationConfig
from ..models.content import TargetStory

logger = logging.getLogger(__name__)


def partition_stories(stories: Sequence[TargetStory], config: MigrationConfig) -> Dict[str, Any]:
    """Map relative file paths to their JSON payloads."""
    i18n = config.i18n
    per_item = config.output.granularity == "per_item"
    folder_level = i18n.strategy == "folder_level"

    partitions: Dict[str, Any] = {}
    for story in stories:
        data = story.to_dict()
        if per_item:
            if folder_level:
                prefix = i18n.path_prefix(story.locale)
                # default-locale stories without a prefix get their own subtree
                path = story.full_slug if prefix else f"{story.locale}/{story.full_slug}"
                partitions[f"{path}.json"] = data
            else:
                partitions[f"{story.full_slug}{i18n.file_suffix(story.locale)}.json"] = data
        else:
            if folder_level:
                name = f"{story.locale}/stories.json"
            else:
                name = f"stories{i18n.file_suffix(story.locale)}.json"
            partitions.setdefault(name, []).append(data)
    return partitions


def write_json(path: str, payload: Any, pretty: bool = True) -> str:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2 if pretty else None)
        f.write("\n")
    return path


def write_partitions(partitions: Dict[str, Any], base_dir: str, pretty: bool = True) -> List[str]:
    """Write every partition under ``base_dir``; returns the written paths."""
    written: List[str] = []
    for relative in sorted(partitions):
        path = os.path.join(base_dir, *relative.split("/"))
        written.append(write_json(path, partitions[relative], pretty))
    logger.info("Wrote %d story files to %s", len(written), base_dir)
    return written

"""
Generation of redirect mapping CSV files.

The :func:`generate_redirects_csv` helper writes a CSV file containing the
mapping of WordPress URLs to the full slugs of the migrated stories.  The
resulting file is used to configure 301 redirects so that existing links
continue to work after migration.
"""

from __future__ import annotations

import csv
import os
from typing import Iterable

from ..models.content import TargetStory


def generate_redirects_csv(
    stories: Iterable[TargetStory], *, old_domain: str, new_base: str, out_path: str = "reports/redirect_map.csv"
) -> str:
    """Generate a CSV mapping old WordPress URLs to new story URLs.

    Parameters
    ----------
    stories:
        Organized stories.  ``source_path`` gives the original path; when it
        is empty the story slug is used instead.
    old_domain:
        The base URL of the legacy WordPress site, combined with the source
        path to build the old URL.
    new_base:
        Base URL of the new site.  Without it the new URL is the bare
        ``/<full_slug>`` path.
    out_path:
        Location of the CSV file to be written.  The parent directory is
        created automatically.

    Returns
    -------
    str
        The path of the generated CSV file.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["OldURL", "NewURL", "Locale"])
        for story in stories:
            old_path = story.source_path.strip("/") or story.slug
            old_url = f"{old_domain.rstrip('/')}/{old_path}" if old_domain else f"/{old_path}"
            new_url = f"{new_base.rstrip('/')}/{story.full_slug}" if new_base else f"/{story.full_slug}"
            writer.writerow([old_url, new_url, story.locale])
    return out_path

"""
Exceptions and structured event reporting for a migration run.

The :mod:`wp2storyblok.utils.errors` module centralizes two things:

* the exception hierarchy raised for unrecoverable problems (bad
  configuration, missing input).  The orchestrator treats every
  :class:`MigrationError` as fatal and aborts before any output is written;
* the event log of recoverable problems and successes.  Each event is kept
  in memory by a :class:`RunReport` and flushed as JSON Lines under the
  output directory once the run reaches the persisting stage.

The ``EVENTS`` dictionary maps event codes to human readable messages.
Codes not present in the dictionary fall back to the code itself.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Base class for errors that abort a migration run."""


class ConfigurationError(MigrationError):
    """Raised when the configuration document fails validation."""


class InputError(MigrationError):
    """Raised when a required input collection is missing or unreadable."""


class PreFlightCheckError(MigrationError):
    """Raised when the environment is not ready for a run."""


# Mapping of event codes used throughout the migration to descriptive messages.
# The keys include both error and success codes as the same lookup is used by
# :meth:`RunReport.report_error` and :meth:`RunReport.report_ok`.
EVENTS: Dict[str, str] = {
    "FIELD_TRANSFORM_FAILED": "Field transform failed, safe default used",
    "ITEM_SKIPPED": "Source item could not be mapped and was skipped",
    "ASSET_DOWNLOAD_FAILED": "External asset could not be downloaded",
    "LINK_DOWNGRADED": "Internal link unresolved, kept as external URL",
    "REFERENCE_UNRESOLVED": "Story reference points to an unknown item",
    "STORY_CREATED": "Story created",
}


def _item_fields(item: Any) -> Dict[str, Any]:
    """Extract the identifying fields of a source item or plain dict."""
    if item is None:
        return {}
    if isinstance(item, dict):
        return {
            "id": item.get("id"),
            "slug": item.get("slug"),
            "title": item.get("title"),
        }
    return {
        "id": getattr(item, "id", None),
        "slug": getattr(item, "source_slug", None),
        "title": getattr(item, "title", None),
        "locale": getattr(item, "locale", None),
        "content_type": getattr(item, "content_type", None),
    }


class RunReport:
    """
    Collects error and success events for one run.

    Events are plain dictionaries so they can be written as JSON Lines
    without further conversion.  Counts per code are kept alongside to feed
    the run summary.
    """

    def __init__(self) -> None:
        self.errors: List[Dict[str, Any]] = []
        self.successes: List[Dict[str, Any]] = []
        self.counts: Counter = Counter()

    def report_error(
        self,
        code: str,
        item: Any = None,
        exc: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an error event for ``item``.

        Parameters
        ----------
        code:
            A key identifying the type of error.  If ``code`` is present in
            :data:`EVENTS` its value will be used as the message.
        item:
            The source item (or a dict with ``id``/``slug``/``title``)
            associated with the error.  May be ``None`` for run-level events.
        exc:
            Optional exception instance that triggered the error.  Its string
            representation is included in the entry.
        extra:
            Optional dictionary of additional fields merged into the entry.
        """
        message = EVENTS.get(code, code)
        entry: Dict[str, Any] = {"code": code, "message": message}
        entry.update(_item_fields(item))
        if exc is not None:
            entry["error"] = str(exc)
        if extra:
            entry.update(extra)
        self.errors.append(entry)
        self.counts[code] += 1
        logger.debug("%s - %s", message, entry.get("slug") or entry.get("id") or "")

    def report_ok(self, code: str, item: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        """Record a successful event for ``item``."""
        message = EVENTS.get(code, code)
        entry: Dict[str, Any] = {"code": code, "message": message}
        entry.update(_item_fields(item))
        if extra:
            entry.update(extra)
        self.successes.append(entry)
        self.counts[code] += 1

    def count(self, code: str) -> int:
        return self.counts.get(code, 0)

    def flush(self, report_dir: str) -> Dict[str, str]:
        """Write buffered events to ``errors.jsonl`` and ``success.jsonl``.

        Files are rewritten rather than appended so that a rerun replaces
        the previous run's logs.
        """
        os.makedirs(report_dir, exist_ok=True)
        paths = {
            "errors": os.path.join(report_dir, "errors.jsonl"),
            "success": os.path.join(report_dir, "success.jsonl"),
        }
        _write_jsonl(paths["errors"], self.errors)
        _write_jsonl(paths["success"], self.successes)
        return paths


def _write_jsonl(path: str, entries: List[Dict[str, Any]]) -> None:
    """Write each entry of ``entries`` as one JSON object per line."""
    with open(path, "w", encoding="utf-8") as f:
        for data in entries:
            json.dump(data, f, ensure_ascii=False)
            f.write("\n")

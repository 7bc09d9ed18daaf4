"""
Run-scoped registry of external assets.

Every external URL met in content goes through :meth:`AssetDeduplicator.resolve`.
The first call stages the binary under ``download_dir`` and records an
:class:`~wp2storyblok.models.content.AssetDescriptor`; later calls with the
same URL return that very object.  Concurrent calls for one URL wait for the
in-flight download instead of starting another, so each URL is downloaded at
most once per run.  A file already staged by a previous run is reused
without a download.

URLs inside the source site's own managed media namespace (by default
``/wp-content/uploads/`` on the host of ``site.url``, or relative) are not
staged: :meth:`AssetDeduplicator.reference` passes them through with no
descriptor.  The same path on another host is external media.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import os
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import unquote, urlparse

import requests

from ..models.config import AssetsConfig, SiteConfig
from ..models.content import AssetDescriptor, AssetReference
from ..utils.slugs import slugify
from ..utils.urls import url_host
from .downloader import (
    AssetDownloadError,
    AssetTooLargeError,
    EmptyDownloadError,
    fetch_url,
    with_retries,
)

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"

MEDIA_FOLDERS: Dict[str, Sequence[str]] = {
    "images": (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", ".tiff", ".ico", ".avif"),
    "videos": (".mp4", ".avi", ".mov", ".wmv", ".webm", ".mkv", ".m4v"),
    "documents": (".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt", ".csv", ".odt"),
}

_EXT_RE = re.compile(r"^\.[a-z0-9]{1,8}$")

Fetcher = Callable[[str], bytes]


def asset_folder(ext: str) -> str:
    for folder, extensions in MEDIA_FOLDERS.items():
        if ext in extensions:
            return folder
    return "other"


def staged_filename(url: str) -> str:
    """
    Deterministic relative path for ``url``:
    ``<folder>/<sha1(url)[:12]>_<sanitized basename><ext>``.

    The hash keeps distinct URLs with equal basenames apart, and the
    lower-cased basename avoids depending on filesystem case sensitivity.
    """
    path = unquote(urlparse(url).path)
    stem, ext = os.path.splitext(os.path.basename(path))
    ext = ext.lower()
    if not _EXT_RE.match(ext):
        ext = ""
    stem = slugify(stem, max_length=60) or "asset"
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]
    return f"{asset_folder(ext)}/{digest}_{stem}{ext}"


class AssetDeduplicator:
    """Thread-safe, idempotent URL to :class:`AssetDescriptor` registry."""

    def __init__(
        self,
        download_dir: str,
        *,
        fetcher: Optional[Fetcher] = None,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        timeout: float = 30.0,
        max_file_size: int = 10 * 1024 * 1024,
        workers: int = 4,
        managed_media_markers: Iterable[str] = ("/wp-content/uploads/",),
        site_url: str = "",
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.download_dir = download_dir
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.max_file_size = max_file_size
        self.workers = max(1, workers)
        self.managed_media_markers = [m for m in managed_media_markers if m]
        self.site_host = url_host(site_url)
        self.fetcher: Fetcher = fetcher or functools.partial(
            fetch_url, timeout=timeout, max_file_size=max_file_size
        )
        self._sleep_fn = sleep_fn

        self._lock = threading.Lock()
        self._descriptors: Dict[str, AssetDescriptor] = {}
        self._in_flight: Dict[str, threading.Event] = {}
        self._failures: Dict[str, str] = {}
        self.download_count = 0
        self.cache_hits = 0
        self._previous = self._load_manifest()

    @classmethod
    def from_config(
        cls,
        assets: AssetsConfig,
        site: SiteConfig,
        download_dir: str,
        **kwargs: Any,
    ) -> "AssetDeduplicator":
        return cls(
            assets.download_dir or download_dir,
            max_attempts=assets.max_attempts,
            backoff_base=assets.backoff_base,
            timeout=assets.timeout,
            max_file_size=assets.max_file_size,
            workers=assets.workers,
            managed_media_markers=site.managed_media_markers,
            site_url=site.url,
            **kwargs,
        )

    # ------------------------------------------------------------------ lookups

    def is_managed(self, url: str) -> bool:
        """
        True for media in the source site's own upload namespace.

        The path must contain a managed marker and the URL must be relative
        or on the ``site_url`` host.  Without a configured site the marker
        alone decides.
        """
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        if not any(marker in parsed.path for marker in self.managed_media_markers):
            return False
        if not parsed.netloc or not self.site_host:
            return True
        return url_host(url) == self.site_host

    def get(self, url: str) -> Optional[AssetDescriptor]:
        with self._lock:
            return self._descriptors.get(url)

    @property
    def failures(self) -> Dict[str, str]:
        """URLs whose download exhausted its retries, with the last error."""
        with self._lock:
            return dict(self._failures)

    def __len__(self) -> int:
        with self._lock:
            return len(self._descriptors)

    # --------------------------------------------------------------- resolution

    def resolve(self, url: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[AssetDescriptor]:
        """
        Return the descriptor for ``url``, staging the binary on first use.

        Returns ``None`` for empty URLs, for URLs that cannot be parsed and
        when every download attempt failed; the failure is remembered and
        not retried again this run.  Never raises.
        ``metadata`` is ignored: descriptors are keyed by URL alone.
        """
        url = (url or "").strip()
        if not url:
            return None

        while True:
            with self._lock:
                descriptor = self._descriptors.get(url)
                if descriptor is not None:
                    return descriptor
                if url in self._failures:
                    return None
                event = self._in_flight.get(url)
                owner = event is None
                if owner:
                    event = threading.Event()
                    self._in_flight[url] = event
            if owner:
                break
            # another worker is downloading this URL
            event.wait()

        descriptor = None
        error = "download failed"
        try:
            descriptor = self._stage(url)
        except (requests.RequestException, AssetDownloadError, OSError, ValueError) as e:
            error = str(e) or e.__class__.__name__
            logger.warning("Asset download failed for %s: %s", url, error)
        except Exception as e:
            error = f"{e.__class__.__name__}: {e}"
            logger.warning("Unexpected error staging %s: %s", url, error, exc_info=True)
        finally:
            with self._lock:
                if descriptor is not None:
                    self._descriptors[url] = descriptor
                else:
                    self._failures[url] = error
                del self._in_flight[url]
            event.set()
        return descriptor

    def reference(
        self,
        url: str,
        alt_text: str = "",
        title: str = "",
        focus: Optional[str] = None,
    ) -> Optional[AssetReference]:
        """
        Asset reference for ``url``: managed media passes through with its
        URL, external media is staged.  ``None`` when staging failed.
        """
        url = (url or "").strip()
        if not url:
            return None
        if self.is_managed(url):
            return AssetReference(origin_url=url, target=None, alt_text=alt_text, title=title, focus=focus)
        descriptor = self.resolve(url)
        if descriptor is None:
            return None
        return AssetReference(origin_url=url, target=descriptor, alt_text=alt_text, title=title, focus=focus)

    def prefetch(self, urls: Iterable[str]) -> int:
        """Stage distinct external ``urls`` with a bounded worker pool."""
        distinct: List[str] = []
        seen = set()
        for url in urls:
            url = (url or "").strip()
            if url and url not in seen and not self.is_managed(url):
                seen.add(url)
                distinct.append(url)
        if not distinct:
            return 0
        logger.info("Prefetching %d assets with %d workers", len(distinct), self.workers)
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            results = list(executor.map(self.resolve, distinct))
        return sum(1 for r in results if r is not None)

    def _stage(self, url: str) -> AssetDescriptor:
        filename = staged_filename(url)
        local_path = os.path.join(self.download_dir, *filename.split("/"))
        previous = self._previous.get(url) or {}

        if os.path.isfile(local_path) and os.path.getsize(local_path) > 0:
            with self._lock:
                self.cache_hits += 1
            logger.debug("Reusing staged asset %s", filename)
            return AssetDescriptor(
                origin_url=url,
                filename=filename,
                local_path=local_path,
                size=os.path.getsize(local_path),
                target_id=previous.get("target_id"),
            )

        data = with_retries(
            functools.partial(self._fetch_once, url),
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base,
            sleep_fn=self._sleep_fn,
        )
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        tmp_path = f"{local_path}.part"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, local_path)
        logger.debug("Staged %s (%d bytes)", filename, len(data))
        return AssetDescriptor(
            origin_url=url,
            filename=filename,
            local_path=local_path,
            size=len(data),
            target_id=previous.get("target_id"),
        )

    def _fetch_once(self, url: str) -> bytes:
        with self._lock:
            self.download_count += 1
        data = self.fetcher(url)
        if not data:
            raise EmptyDownloadError(f"{url} returned an empty body")
        if len(data) > self.max_file_size:
            raise AssetTooLargeError(f"{url} exceeds the {self.max_file_size} bytes limit")
        return data

    # ----------------------------------------------------------------- manifest

    def manifest(self) -> Dict[str, Dict[str, Any]]:
        """``{origin_url: {filename, local_path, size, target_id}}`` sorted by URL."""
        with self._lock:
            return {url: self._descriptors[url].to_manifest_entry() for url in sorted(self._descriptors)}

    def manifest_path(self) -> str:
        return os.path.join(self.download_dir, MANIFEST_NAME)

    def write_manifest(self, path: Optional[str] = None, pretty: bool = True) -> str:
        path = path or self.manifest_path()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.manifest(), f, ensure_ascii=False, indent=2 if pretty else None)
            f.write("\n")
        return path

    def _load_manifest(self) -> Dict[str, Dict[str, Any]]:
        path = self.manifest_path()
        if not os.path.isfile(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable asset manifest %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

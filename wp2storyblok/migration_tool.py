"""
High-level orchestration of the WordPress → Storyblok transformation.

This module defines a :class:`StoryblokMigrationTool` class that ties
together the loader, transformers, asset registry, organizer and utilities
into a complete pipeline.  A run moves through the stages of
:class:`RunStage`::

    CONFIGURING → LOADING → TRANSFORMING → PATCHING_REFERENCES → PERSISTING → DONE

and ends in ``FAILED`` when the configuration is invalid, a required
input collection is missing, or an unexpected error escapes any later
stage.  Configuration and input errors are raised before anything is
written to the output directory.

Configuration is supplied via a JSON file path or directly as a
dictionary, see :func:`wp2storyblok.models.config.load_config`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from bs4 import BeautifulSoup

from .assets.deduplicator import AssetDeduplicator
from .extractors.wordpress_loader import load_source_data
from .models.config import MigrationConfig, NamedTransform, load_config
from .models.content import LinkKind, SourceData, SourceItem, TargetStory
from .organizer.partitioning import partition_stories, write_json, write_partitions
from .organizer.slug_registry import SlugRegistry
from .organizer.story_organizer import StoryOrganizer, sort_items
from .transformers.context import PendingRegistry, TransformContext
from .transformers.field_transformer import FieldTransformer
from .transformers.link_resolver import resolve_pending_links, resolve_pending_references
from .utils.components import build_components
from .utils.datasources import build_datasources
from .utils.errors import MigrationError, RunReport
from .utils.pre_flight_checks import run_pre_flight_checks
from .utils.redirects import generate_redirects_csv

logger = logging.getLogger(__name__)


class RunStage(str, Enum):
    CONFIGURING = "configuring"
    LOADING = "loading"
    TRANSFORMING = "transforming"
    PATCHING_REFERENCES = "patching_references"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Counts reported at the end of a run and written to ``summary.json``."""

    stories: int = 0
    stories_per_locale: Dict[str, int] = field(default_factory=dict)
    skipped_items: int = 0
    transform_failures: int = 0
    links_resolved: int = 0
    links_downgraded: int = 0
    references_resolved: int = 0
    references_unresolved: int = 0
    assets: int = 0
    assets_failed: int = 0
    downloads: int = 0
    cache_hits: int = 0
    files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StoryblokMigrationTool:
    """
    Encapsulates all state required to transform one WordPress export into
    Storyblok stories.  The run-scoped registries (slugs, assets, pending
    references) are created per :meth:`run` and exposed as attributes so
    callers and tests can inspect them afterwards.
    """

    def __init__(
        self,
        config: Union[None, str, Dict[str, Any], MigrationConfig] = None,
        *,
        config_file: Optional[str] = None,
        output_dir: Optional[str] = None,
        fetcher: Optional[Callable[[str], bytes]] = None,
        sleep_fn: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.stage = RunStage.CONFIGURING
        self._config_source = config_file if config_file is not None else config
        self._output_dir = output_dir
        self._fetcher = fetcher
        self._sleep_fn = sleep_fn

        self.config: Optional[MigrationConfig] = None
        self.registry = SlugRegistry()
        self.pending = PendingRegistry()
        self.report = RunReport()
        self.assets: Optional[AssetDeduplicator] = None
        self.transformer: Optional[FieldTransformer] = None
        self.organizer: Optional[StoryOrganizer] = None
        self.summary = RunSummary()

    def log_message(self, message: str, level: str = "INFO") -> None:
        logger.log(logging.getLevelName(level.upper()), message)

    def _enter(self, stage: RunStage) -> None:
        self.stage = stage
        self.log_message(f"Stage: {stage.value}", level="DEBUG")

    @property
    def output_dir(self) -> str:
        return self._output_dir or self.config.output.base_dir

    def _output_path(self, *parts: str) -> str:
        return os.path.join(self.output_dir, *parts)

    # ------------------------------------------------------------------ run

    def run(self, input_dir: Optional[str] = None, data: Optional[SourceData] = None) -> RunSummary:
        """
        Execute the whole pipeline.

        :param input_dir: export directory; defaults to ``input.base_dir``.
            Ignored when ``data`` is given.
        :param data: already loaded source data, used instead of reading
            the export from disk.
        :raises MigrationError: on configuration, pre-flight or input
            failures.  The stage is left at ``FAILED``, as it is for any
            other exception, which is re-raised unchanged.
        """
        try:
            self._enter(RunStage.CONFIGURING)
            self.config = load_config(self._config_source)
            if data is None:
                input_dir = input_dir or self.config.input.base_dir
            else:
                input_dir = None
            run_pre_flight_checks(self.config, input_dir=input_dir, output_dir=self.output_dir)

            self._enter(RunStage.LOADING)
            if data is None:
                data = load_source_data(input_dir, self.config)
        except MigrationError as e:
            self.stage = RunStage.FAILED
            self.log_message(f"Migration aborted: {e}", level="ERROR")
            raise

        try:
            self._reset()
            self._enter(RunStage.TRANSFORMING)
            if self.config.assets.prefetch:
                self.assets.prefetch(self._richtext_asset_urls(data))
            stories = self.transform_all(data)

            self._enter(RunStage.PATCHING_REFERENCES)
            for locale in self.config.i18n.locales:
                self.patch_locale(locale)
            for url, reason in sorted(self.assets.failures.items()):
                self.report.report_error("ASSET_DOWNLOAD_FAILED", extra={"url": url, "error": reason})

            self._enter(RunStage.PERSISTING)
            self.persist(stories, data)
        except Exception as e:
            failed_in = self.stage
            self.stage = RunStage.FAILED
            self.log_message(f"Migration failed during {failed_in.value}: {e!r}", level="ERROR")
            raise

        self._enter(RunStage.DONE)
        self._log_summary()
        return self.summary

    def _reset(self) -> None:
        self.registry = SlugRegistry()
        self.pending = PendingRegistry()
        self.report = RunReport()
        self.summary = RunSummary()
        kwargs: Dict[str, Any] = {}
        if self._fetcher is not None:
            kwargs["fetcher"] = self._fetcher
        if self._sleep_fn is not None:
            kwargs["sleep_fn"] = self._sleep_fn
        self.assets = AssetDeduplicator.from_config(
            self.config.assets,
            self.config.site,
            self._output_path(self.config.output.assets_dir),
            **kwargs,
        )
        self.transformer = FieldTransformer.from_config(self.config)
        self.organizer = StoryOrganizer(self.config, self.registry)

    # ------------------------------------------------------------ transforming

    def transform_all(self, data: SourceData) -> List[TargetStory]:
        """Transform and organize every item, locale by locale."""
        stories: List[TargetStory] = []
        base = TransformContext.create(
            self.config.i18n.default_language,
            self.config,
            data,
            self.registry,
            self.assets,
            self.pending,
            self.report,
        )
        for locale in self.config.i18n.locales:
            for content_type, type_config in self.config.content_types.items():
                items = sort_items(data.items_for(locale, content_type))
                if items:
                    self.log_message(f"Transforming {len(items)} {content_type} ({locale})")
                for item in items:
                    story = self.transform_one(item, base)
                    if story is not None:
                        stories.append(story)
        return stories

    def transform_one(self, item: SourceItem, base: TransformContext) -> Optional[TargetStory]:
        type_config = self.config.content_types[item.content_type]
        if type_config.require_title and not item.title.strip():
            self.log_message(f"Skipping {item.content_type} {item.id} ({item.locale}): missing title", "WARNING")
            self.report.report_error("ITEM_SKIPPED", item, extra={"reason": "missing title"})
            return None
        fields = self.transformer.transform_item(item, type_config, base.for_item(item))
        story = self.organizer.organize(item, fields, type_config)
        self.report.report_ok("STORY_CREATED", item, {"full_slug": story.full_slug, "uuid": story.uuid})
        return story

    def _richtext_asset_urls(self, data: SourceData) -> Iterable[str]:
        """External ``<img src>`` URLs in every richtext field that extracts assets."""
        for locale in self.config.i18n.locales:
            for content_type, type_config in self.config.content_types.items():
                sources = [
                    mapping.source or name
                    for name, mapping in type_config.fields.items()
                    if isinstance(mapping.transform, NamedTransform)
                    and mapping.transform.kind == "richtext"
                    and mapping.transform.options.get("extract_assets", True)
                ]
                if not sources:
                    continue
                for item in data.items_for(locale, content_type):
                    for source in sources:
                        html = item.get(source)
                        if not isinstance(html, str) or "<img" not in html:
                            continue
                        for img in BeautifulSoup(html, "html.parser").find_all("img"):
                            src = (img.get("src") or "").strip()
                            if src.startswith(("http://", "https://")):
                                yield src

    # ---------------------------------------------------------------- patching

    def patch_locale(self, locale: str) -> None:
        """Resolve the locale's pending links and references, then hierarchy."""
        links = self.pending.links_for(locale)
        for link, resolved in zip(links, resolve_pending_links(links, self.registry)):
            link.patch(resolved)
            if resolved.kind is not LinkKind.STORY:
                self.summary.links_downgraded += 1
                self.report.report_error("LINK_DOWNGRADED", extra={"locale": locale, "url": link.url})
            else:
                self.summary.links_resolved += 1

        references = self.pending.references_for(locale)
        for reference, story in zip(references, resolve_pending_references(references, self.registry)):
            if story is None:
                self.summary.references_unresolved += 1
                self.report.report_error(
                    "REFERENCE_UNRESOLVED", extra={"locale": locale, "source_id": reference.source_id}
                )
                continue
            reference.uuid = story.uuid
            reference.full_slug = story.full_slug
            self.summary.references_resolved += 1

        linked = self.organizer.link_parents(locale)
        if links or references or linked:
            self.log_message(
                f"Patched {locale}: {len(links)} links, {len(references)} references, {linked} parents",
                level="DEBUG",
            )

    # -------------------------------------------------------------- persisting

    def persist(self, stories: List[TargetStory], data: SourceData) -> None:
        output = self.config.output
        pretty = output.pretty
        files: List[str] = []

        partitions = partition_stories(stories, self.config)
        files.extend(write_partitions(partitions, self._output_path(output.stories_dir), pretty))

        datasources_dir = self._output_path(output.datasources_dir)
        for name, datasource in sorted(build_datasources(self.config, data).items()):
            files.append(write_json(os.path.join(datasources_dir, name), datasource, pretty))

        components_path = self._output_path(output.components_dir, "components.json")
        files.append(write_json(components_path, {"components": build_components(self.config)}, pretty))

        files.append(self.assets.write_manifest(pretty=pretty))

        reports_dir = self._output_path(output.reports_dir)
        files.extend(self.report.flush(reports_dir).values())
        files.append(
            generate_redirects_csv(
                stories,
                old_domain=self.config.site.url,
                new_base=self.config.site.target_url,
                out_path=os.path.join(reports_dir, "redirect_map.csv"),
            )
        )

        summary = self.summary
        summary.stories = len(stories)
        per_locale: Dict[str, int] = {}
        for story in stories:
            per_locale[story.locale] = per_locale.get(story.locale, 0) + 1
        summary.stories_per_locale = per_locale
        summary.skipped_items = self.report.count("ITEM_SKIPPED")
        summary.transform_failures = self.report.count("FIELD_TRANSFORM_FAILED")
        summary.assets = len(self.assets)
        summary.assets_failed = len(self.assets.failures)
        summary.downloads = self.assets.download_count
        summary.cache_hits = self.assets.cache_hits

        summary_path = self._output_path("summary.json")
        summary.files = sorted(os.path.relpath(path, self.output_dir) for path in files + [summary_path])
        write_json(summary_path, summary.to_dict(), pretty)

    def _log_summary(self) -> None:
        s = self.summary
        self.log_message(f"Stories created: {s.stories} {s.stories_per_locale}")
        self.log_message(f"Items skipped: {s.skipped_items}")
        self.log_message(f"Links resolved: {s.links_resolved}, downgraded to URL: {s.links_downgraded}")
        self.log_message(
            f"References resolved: {s.references_resolved}, unresolved: {s.references_unresolved}"
        )
        self.log_message(f"Assets staged: {s.assets}, failed: {s.assets_failed}, downloads: {s.downloads}")
        if s.skipped_items or s.links_downgraded or s.assets_failed:
            self.log_message("Some content was degraded, see the reports directory for details.", "WARNING")

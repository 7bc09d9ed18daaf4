"""
Top-level package for the WordPress → Storyblok migration utility.

This package bundles all components required to turn a WordPress REST
export into Storyblok stories: loading the export, converting HTML to
Storyblok richtext, resolving internal links and references, staging
external assets exactly once, assigning slugs and paths, and writing the
stories, datasources and reports.  Modules are split into subpackages:

* :mod:`wp2storyblok.extractors` – reading the export from disk
* :mod:`wp2storyblok.parsers` – HTML to richtext converters
* :mod:`wp2storyblok.transformers` – field transforms and link resolution
* :mod:`wp2storyblok.assets` – asset download and deduplication
* :mod:`wp2storyblok.organizer` – slugs, paths and output partitioning
* :mod:`wp2storyblok.models` – configuration and content models
* :mod:`wp2storyblok.utils` – event reporting, datasources and redirects

Each layer has no direct knowledge of execution order; orchestration is
handled in :mod:`wp2storyblok.migration_tool`.
"""

__version__ = "0.1.0"

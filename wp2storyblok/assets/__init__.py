"""
External asset staging.

Downloads go through :mod:`~wp2storyblok.assets.downloader` (streaming,
size limit, retries) and are deduplicated by origin URL in
:class:`~wp2storyblok.assets.deduplicator.AssetDeduplicator`.
"""

"""
Configuration and content models.

:mod:`~wp2storyblok.models.config` holds the validated migration settings,
:mod:`~wp2storyblok.models.content` the source records and the target
stories, assets and links built from them.
"""

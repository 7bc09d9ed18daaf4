"""
Field transforms.

The :class:`~wp2storyblok.transformers.field_transformer.FieldTransformer`
turns one source field into one story field; link classification and the
forward-reference patch pass live in
:mod:`~wp2storyblok.transformers.link_resolver`.
"""

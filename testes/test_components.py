import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp2storyblok.models.config import load_config
from wp2storyblok.utils.components import build_components, display_name


def make_config(content_types, **extra):
    data = {"site": {"url": "https://blog.example.com"}, "content_types": content_types}
    data.update(extra)
    return load_config(data)


def test_display_names_split_words():
    assert display_name("featuredImage") == "Featured Image"
    assert display_name("post_tag") == "Post Tag"
    assert display_name("article") == "Article"


def test_field_types_follow_transform_kinds():
    config = make_config({
        "posts": {
            "component": "article",
            "fields": {
                "title": "string",
                "content": {"transform": "richtext"},
                "date": {"source": "date_gmt", "transform": "datetime"},
                "tags": {"transform": "tags"},
                "cta": {"transform": "link"},
                "hero": {"source": "featured_media", "transform": "asset"},
                "parent": {"kind": "reference"},
                "rating": {"source": "acf.rating"},
            },
        }
    })
    [article] = build_components(config)
    assert article["name"] == "article"
    assert article["display_name"] == "Article"
    assert (article["is_root"], article["is_nestable"]) == (True, False)

    schema = article["schema"]
    assert [schema[name]["pos"] for name in schema] == list(range(8))
    assert {name: field["type"] for name, field in schema.items()} == {
        "title": "text",
        "content": "richtext",
        "date": "datetime",
        "tags": "options",
        "cta": "multilink",
        "hero": "asset",
        "parent": "option",
        "rating": "text",
    }
    assert schema["tags"]["datasource_slug"] == "tags"
    assert schema["parent"]["source"] == "internal_stories"
    assert schema["hero"]["filetypes"] == ["images"]
    assert schema["cta"]["email_link_type"] is True


def test_schema_type_override_and_display_name():
    config = make_config({
        "pages": {
            "component": "page",
            "display_name": "Static Page",
            "fields": {"rating": {"source": "acf.rating", "schema_type": "number"}},
        }
    })
    [page] = build_components(config)
    assert page["display_name"] == "Static Page"
    assert page["schema"]["rating"] == {"type": "number", "pos": 0, "display_name": "Rating"}


def test_content_types_sharing_a_component_are_merged():
    config = make_config({
        "posts": {"component": "article", "fields": {"title": "string", "content": {"transform": "richtext"}}},
        "news": {"component": "article", "fields": {"title": "string", "source": "string"}},
        "pages": {"component": "page", "fields": {"title": "string"}},
    })
    components = build_components(config)
    assert [c["name"] for c in components] == ["article", "page"]
    article = components[0]["schema"]
    assert list(article) == ["title", "content", "source"]
    assert article["source"]["pos"] == 2

import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp2storyblok.models.content import StoryContent, TargetStory
from wp2storyblok.organizer.slug_registry import SlugRegistry
from wp2storyblok.utils.slugs import slugify, strip_markup


def make_story(source_id, slug, locale="en", path=""):
    return TargetStory(
        name=slug,
        slug=slug,
        full_slug=f"posts/{slug}",
        locale=locale,
        uuid=f"uuid-{locale}-{source_id}",
        content_type="posts",
        content=StoryContent(component="article", uid=f"uid-{source_id}"),
        source_id=source_id,
        source_path=path,
    )


def test_slugify():
    assert slugify("Dial In Your Daily Cup") == "dial-in-your-daily-cup"
    assert slugify("  --Crème Brûlée!!  ") == "creme-brulee"
    assert slugify("Tom &amp; Jerry") == "tom-jerry"
    assert slugify("") == ""
    assert slugify("a" * 300) == "a" * 200


def test_strip_markup():
    assert strip_markup("<p>Hello <b>world</b></p>") == "Hello world"
    assert strip_markup("Tom &amp;&nbsp;Jerry") == "Tom & Jerry"
    assert strip_markup("<p>Unclosed <b>tag soup <i") == "Unclosed tag soup"


def test_assign_suffixes_per_locale():
    registry = SlugRegistry()
    assert registry.assign("en", "coffee") == "coffee"
    assert registry.assign("en", "coffee") == "coffee-2"
    assert registry.assign("en", "coffee") == "coffee-3"
    assert registry.assign("es", "coffee") == "coffee"
    assert registry.is_taken("en", "coffee-2")
    assert not registry.is_taken("es", "coffee-2")


def test_suffix_skips_slugs_already_taken():
    registry = SlugRegistry()
    registry.assign("en", "coffee-2")
    registry.assign("en", "coffee")
    assert registry.assign("en", "coffee") == "coffee-3"


def test_lookups():
    registry = SlugRegistry()
    story = make_story(7, "coffee-2", path="2024/02/coffee")
    registry.register(story, source_slug="coffee", source_path="2024/02/coffee")
    assert registry.find_by_source_id("en", 7) is story
    assert registry.find_by_path("en", "/2024/02/coffee/") is story
    # unknown directories fall back to the last segment
    assert registry.find_by_path("en", "blog/coffee") is story
    assert registry.find_by_path("en", "coffee-2") is story
    assert registry.find_by_path("en", "") is None
    assert registry.find_by_path("es", "2024/02/coffee") is None
    assert registry.stories() == [story]

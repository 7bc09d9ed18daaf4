import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import csv
import json
import threading

import pytest
pytest.importorskip("bs4")

from wp2storyblok.migration_tool import RunStage, StoryblokMigrationTool
from wp2storyblok.models.config import load_config
from wp2storyblok.models.content import SourceData, SourceItem
from wp2storyblok.utils.errors import ConfigurationError, InputError

SITE = "https://blog.example.com"

CONFIG = {
    "site": {"url": SITE, "target_url": "https://www.example.com"},
    "i18n": {"default_language": "en", "languages": {"en": {}, "es": {}}},
    "content_types": {
        "posts": {
            "component": "article",
            "fields": {
                "title": "string",
                "content": {"source": "content", "transform": "richtext"},
                "featuredImage": {"source": "featured_media", "transform": "asset"},
                "author": {"source": "author", "kind": "reference", "target": "authors"},
                "categories": {"source": "categories", "kind": "references", "target": "categories"},
                "related": {"source": "acf.related", "transform": "references"},
            },
        }
    },
}


def post(item_id, title, content="", link=None, **extra):
    data = {
        "id": item_id,
        "title": {"rendered": title},
        "content": {"rendered": content},
        "status": "publish",
        "date_gmt": "2024-03-01T09:00:00",
        "link": link or f"{SITE}/2024/03/post-{item_id}/",
    }
    data.update(extra)
    return data


EN_POSTS = [
    post(
        1,
        "Dial In Your Daily Cup",
        '<p>Grind matters.</p><img src="https://ext.example/cup.jpg">',
        featured_media=10,
        author=3,
        categories=[5],
        acf={"related": [5, 404]},
    ),
    post(2, "Morning Routine", f'<p>Read <a href="{SITE}/2024/02/coffee/">this</a> first.</p>'),
    post(4, "Coffee", "<p>Old.</p>", slug="coffee", link=f"{SITE}/2024/01/coffee/"),
    post(5, "Coffee", "<p>New.</p>", slug="coffee", link=f"{SITE}/2024/02/coffee/"),
    post(6, "Broken Link", '<p>See <a href="/2023/gone/">this</a>.</p>'),
    post(7, "", "<p>No title here.</p>"),
]

ES_POSTS = [
    post(20, "Coffee", '<p>Mismo <img src="https://ext.example/cup.jpg"></p>', slug="coffee", link=f"{SITE}/es/2024/03/coffee/"),
]


def write_json(path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


@pytest.fixture
def export_dir(tmp_path):
    base = tmp_path / "export"
    write_json(base / "media.json", [{"id": 10, "source_url": "https://ext.example/hero.jpg", "alt_text": "Hero"}])
    write_json(base / "users.json", [{"id": 3, "name": "Ana Souza", "slug": "ana-souza"}])
    write_json(base / "en" / "posts.json", EN_POSTS)
    write_json(base / "en" / "category.json", [{"id": 5, "name": "Brewing &amp; Tips", "slug": "brewing-tips"}])
    write_json(base / "es" / "posts.json", ES_POSTS)
    return base


class CountingFetcher:
    def __init__(self):
        self.calls = {}
        self._lock = threading.Lock()

    def __call__(self, url):
        with self._lock:
            self.calls[url] = self.calls.get(url, 0) + 1
        return b"jpeg-bytes:" + url.encode()


def run_tool(export_dir, out_dir, config=CONFIG):
    fetcher = CountingFetcher()
    tool = StoryblokMigrationTool(config, output_dir=str(out_dir), fetcher=fetcher, sleep_fn=lambda s: None)
    summary = tool.run(str(export_dir))
    return tool, summary, fetcher


def load(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def by_source_id(stories):
    return {s["meta_data"]["source_id"]: s for s in stories}


def link_marks(node):
    found = []
    if isinstance(node, dict):
        for m in node.get("marks") or []:
            if m.get("type") == "link":
                found.append(m["attrs"])
        for child in node.get("content") or []:
            found.extend(link_marks(child))
    return found


def test_full_run_scenario(export_dir, tmp_path):
    out = tmp_path / "out"
    tool, summary, fetcher = run_tool(export_dir, out)

    assert tool.stage is RunStage.DONE
    assert summary.stories == 6
    assert summary.stories_per_locale == {"en": 5, "es": 1}
    assert summary.skipped_items == 1
    assert summary.links_resolved == 1
    assert summary.links_downgraded == 1
    assert summary.references_unresolved == 1
    assert summary.assets == 2
    assert summary.assets_failed == 0

    # every external URL is downloaded exactly once, across fields and locales
    assert fetcher.calls == {"https://ext.example/cup.jpg": 1, "https://ext.example/hero.jpg": 1}

    en = by_source_id(load(out / "stories" / "stories.json"))
    es = load(out / "stories" / "stories_es.json")
    assert sorted(en) == [1, 2, 4, 5, 6]
    assert [s["slug"] for s in es] == ["coffee"]

    first = en[1]
    assert first["slug"] == "dial-in-your-daily-cup"
    assert first["full_slug"] == "posts/dial-in-your-daily-cup"
    body = first["content"]["content"]
    assert [n["type"] for n in body["content"]] == ["paragraph", "image"]
    assert body["content"][0]["content"] == [{"type": "text", "text": "Grind matters."}]
    image = body["content"][1]["attrs"]
    assert image["source_url"] == "https://ext.example/cup.jpg"
    manifest = load(out / "assets" / "manifest.json")
    assert manifest["https://ext.example/cup.jpg"]["filename"] == image["src"]
    assert manifest["https://ext.example/cup.jpg"]["size"] == len(b"jpeg-bytes:https://ext.example/cup.jpg")

    featured = first["content"]["featuredImage"]
    assert featured["source_url"] == "https://ext.example/hero.jpg"
    assert featured["alt"] == "Hero"
    assert first["content"]["author"] == "ana-souza"
    assert first["content"]["categories"] == ["brewing-tips"]
    # 5 resolves to a post, 404 does not exist and is dropped
    assert first["content"]["related"] == [en[5]["uuid"]]

    assert (en[4]["slug"], en[5]["slug"]) == ("coffee", "coffee-2")

    # forward reference: item 2 links to item 5, organized later
    [forward] = link_marks(en[2]["content"]["content"])
    assert forward["linktype"] == "story"
    assert forward["href"] == "/posts/coffee-2"
    assert forward["uuid"] == en[5]["uuid"]

    # unknown target degrades to its original URL
    [broken] = link_marks(en[6]["content"]["content"])
    assert broken["linktype"] == "url"
    assert broken["href"] == "/2023/gone/"

    categories = load(out / "datasources" / "categories.json")
    assert categories["datasource_entries"] == [{"name": "Brewing & Tips", "value": "brewing-tips"}]
    authors = load(out / "datasources" / "authors.json")
    assert authors["datasource_entries"] == [{"name": "Ana Souza", "value": "ana-souza"}]

    with open(out / "reports" / "errors.jsonl", encoding="utf-8") as f:
        codes = [json.loads(line)["code"] for line in f]
    assert sorted(codes) == ["ITEM_SKIPPED", "LINK_DOWNGRADED", "REFERENCE_UNRESOLVED"]

    with open(out / "reports" / "redirect_map.csv", encoding="utf-8", newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["OldURL", "NewURL", "Locale"]
    assert [SITE + "/2024/03/post-1", "https://www.example.com/posts/dial-in-your-daily-cup", "en"] in rows

    saved = load(out / "summary.json")
    assert saved["stories"] == 6
    assert "stories/stories.json" in saved["files"]


def test_rerun_is_idempotent_against_warm_cache(export_dir, tmp_path):
    out = tmp_path / "out"
    first_tool, _, first_fetcher = run_tool(export_dir, out)
    stories_before = (out / "stories" / "stories.json").read_bytes()
    manifest_before = (out / "assets" / "manifest.json").read_bytes()
    slugs_before = [(s.locale, s.source_id, s.full_slug) for s in first_tool.registry.stories()]

    second_tool, summary, second_fetcher = run_tool(export_dir, out)
    assert second_fetcher.calls == {}
    assert summary.downloads == 0
    assert summary.cache_hits == 2
    assert [(s.locale, s.source_id, s.full_slug) for s in second_tool.registry.stories()] == slugs_before
    assert (out / "assets" / "manifest.json").read_bytes() == manifest_before
    assert (out / "stories" / "stories.json").read_bytes() == stories_before


def test_failed_downloads_are_reported_not_fatal(export_dir, tmp_path):
    def offline(url):
        raise OSError("network unreachable")

    out = tmp_path / "out"
    tool = StoryblokMigrationTool(CONFIG, output_dir=str(out), fetcher=offline, sleep_fn=lambda s: None)
    summary = tool.run(str(export_dir))
    assert summary.stories == 6
    assert summary.assets_failed == 2
    first = by_source_id(load(out / "stories" / "stories.json"))[1]
    # the image is dropped and the asset field is empty
    assert [n["type"] for n in first["content"]["content"]["content"]] == ["paragraph"]
    assert first["content"]["featuredImage"] is None


def test_per_item_folder_level_output(export_dir, tmp_path):
    config = dict(CONFIG)
    config["i18n"] = {"strategy": "folder_level", "default_language": "en", "languages": {"en": {}, "es": {}}}
    config["output"] = {"granularity": "per_item"}
    out = tmp_path / "out"
    run_tool(export_dir, out, config=config)
    assert (out / "stories" / "en" / "posts" / "coffee-2.json").is_file()
    story = load(out / "stories" / "es" / "posts" / "coffee.json")
    assert story["full_slug"] == "es/posts/coffee"


def test_missing_content_type_export_is_fatal(export_dir, tmp_path):
    config = dict(CONFIG)
    config["content_types"] = dict(CONFIG["content_types"], pages={"component": "page"})
    out = tmp_path / "out"
    tool = StoryblokMigrationTool(config, output_dir=str(out), fetcher=CountingFetcher())
    with pytest.raises(InputError):
        tool.run(str(export_dir))
    assert tool.stage is RunStage.FAILED
    assert not (out / "stories").exists()


def test_invalid_configuration_is_fatal(export_dir, tmp_path):
    tool = StoryblokMigrationTool({"content_types": {"posts": {"component": "article", "colour": "red"}}}, output_dir=str(tmp_path / "out"))
    with pytest.raises(ConfigurationError):
        tool.run(str(export_dir))
    assert tool.stage is RunStage.FAILED


def test_run_with_preloaded_data(tmp_path):
    config = load_config({
        "site": {"url": SITE},
        "content_types": {"posts": {"component": "article", "fields": {"title": "string"}}},
    })
    data = SourceData(items={"en": {"posts": [
        SourceItem.from_raw({"id": 2, "title": "Coffee"}, "en", "posts"),
        SourceItem.from_raw({"id": 1, "title": "Coffee"}, "en", "posts"),
    ]}})
    tool = StoryblokMigrationTool(config, output_dir=str(tmp_path / "out"), fetcher=CountingFetcher())
    summary = tool.run(data=data)
    assert summary.stories == 2
    stories = load(tmp_path / "out" / "stories" / "stories.json")
    assert [(s["meta_data"]["source_id"], s["slug"]) for s in stories] == [(1, "coffee"), (2, "coffee-2")]


def test_component_schemas_and_custom_fields(export_dir, tmp_path):
    out = tmp_path / "out"
    _, summary, _ = run_tool(export_dir, out)
    assert "components/components.json" in summary.files

    [article] = load(out / "components" / "components.json")["components"]
    assert article["name"] == "article"
    assert article["is_root"] is True
    schema = article["schema"]
    assert list(schema) == ["title", "content", "featuredImage", "author", "categories", "related"]
    assert schema["title"]["type"] == "text"
    assert schema["content"]["type"] == "richtext"
    assert schema["featuredImage"]["type"] == "asset"
    assert schema["author"] == {
        "type": "option",
        "pos": 3,
        "display_name": "Author",
        "source": "internal",
        "datasource_slug": "authors",
    }
    assert schema["categories"]["datasource_slug"] == "categories"
    assert schema["related"]["source"] == "internal_stories"

    en = by_source_id(load(out / "stories" / "stories.json"))
    assert en[1]["content"]["custom_fields"] == {"related": [5, 404]}
    assert "custom_fields" not in en[2]["content"]


def test_malformed_image_url_does_not_abort_run(export_dir, tmp_path):
    posts = EN_POSTS + [post(8, "Odd Image", '<p>x</p><img src="http://[oops/cup.jpg">')]
    write_json(export_dir / "en" / "posts.json", posts)
    out = tmp_path / "out"
    tool, summary, fetcher = run_tool(export_dir, out)

    assert tool.stage is RunStage.DONE
    assert summary.assets_failed >= 1
    assert "http://[oops/cup.jpg" not in fetcher.calls
    odd = by_source_id(load(out / "stories" / "stories.json"))[8]
    assert [n["type"] for n in odd["content"]["content"]["content"]] == ["paragraph"]


def test_unexpected_error_leaves_failed_stage(export_dir, tmp_path, monkeypatch):
    def broken_persist(self, stories, data):
        raise OSError("disk full")

    monkeypatch.setattr(StoryblokMigrationTool, "persist", broken_persist)
    tool = StoryblokMigrationTool(CONFIG, output_dir=str(tmp_path / "out"), fetcher=CountingFetcher())
    with pytest.raises(OSError, match="disk full"):
        tool.run(str(export_dir))
    assert tool.stage is RunStage.FAILED

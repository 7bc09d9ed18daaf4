import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import json

import pytest

from wp2storyblok.extractors.wordpress_loader import load_source_data
from wp2storyblok.models.config import load_config
from wp2storyblok.utils.datasources import build_datasources, datasource_entries
from wp2storyblok.utils.errors import InputError


def write_json(path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def make_config(**extra):
    cfg = {
        "i18n": {"default_language": "en", "languages": {"en": {}, "pt": {}}},
        "content_types": {"posts": {"component": "article"}, "pages": {"component": "page"}},
    }
    cfg.update(extra)
    return load_config(cfg)


def test_language_folders_layout(tmp_path):
    write_json(tmp_path / "media.json", [{"id": 1, "source_url": "https://x.example/a.jpg", "title": {"rendered": "A"}}])
    write_json(tmp_path / "users.json", [{"id": 2, "name": "Bia"}])
    write_json(tmp_path / "en" / "posts.json", [{"id": 10, "title": {"rendered": "Hello"}}, {"title": "no id"}])
    write_json(tmp_path / "en" / "pages" / "about.json", {"id": 11, "title": {"rendered": "About"}})
    write_json(tmp_path / "en" / "category.json", [{"id": 5, "name": "News"}])
    write_json(tmp_path / "pt" / "posts.json", {"items": [{"id": 20, "title": {"rendered": "Olá"}}]})
    write_json(tmp_path / "pt" / "taxonomies.json", {"post_tag": [{"id": 6, "name": "Café"}]})

    data = load_source_data(str(tmp_path), make_config())
    assert [m.title for m in data.media] == ["A"]
    assert data.authors[0].slug == "bia"
    # the record without an id is skipped
    assert [i.id for i in data.items_for("en", "posts")] == [10]
    assert [i.title for i in data.items_for("en", "pages")] == ["About"]
    assert [i.id for i in data.items_for("pt", "posts")] == [20]
    assert data.items_for("pt", "pages") == []
    assert [t.slug for t in data.terms_for("en", "category")] == ["news"]
    assert [t.slug for t in data.terms_for("pt", "post_tag")] == ["cafe"]
    assert data.item_count() == 3


def test_single_language_layout(tmp_path):
    write_json(tmp_path / "posts.json", [{"id": 1, "title": "Hi"}])
    write_json(tmp_path / "pages.json", [])
    cfg = make_config(input={"structure": "single_language"})
    data = load_source_data(str(tmp_path), cfg)
    assert [i.locale for i in data.items_for("en", "posts")] == ["en"]


def test_missing_inputs_are_fatal(tmp_path):
    with pytest.raises(InputError):
        load_source_data(str(tmp_path / "nowhere"), make_config())

    write_json(tmp_path / "en" / "posts.json", [])
    with pytest.raises(InputError):
        load_source_data(str(tmp_path), make_config())

    write_json(tmp_path / "en" / "pages.json", [])
    (tmp_path / "media.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(InputError):
        load_source_data(str(tmp_path), make_config())


def test_datasource_entries_dedupe():
    entries = datasource_entries([("Dicas &amp; Hacks", "dicas-hacks"), ("dicas & hacks", "other"), ("Novo", "")])
    assert entries == [{"name": "Dicas & Hacks", "value": "dicas-hacks"}, {"name": "Novo", "value": "novo"}]


def test_build_datasources_per_locale(tmp_path):
    write_json(tmp_path / "en" / "posts.json", [])
    write_json(tmp_path / "en" / "pages.json", [])
    write_json(tmp_path / "en" / "post_tag.json", [{"id": 1, "name": "Coffee"}])
    write_json(tmp_path / "pt" / "post_tag.json", [{"id": 2, "name": "Café"}])
    write_json(tmp_path / "en" / "category.json", [{"id": 3, "name": "News"}])
    write_json(tmp_path / "users.json", [{"id": 4, "name": "Bia"}])
    cfg = make_config(taxonomies={"category": {"name": "categories", "locale_scoped": False}})
    datasources = build_datasources(cfg, load_source_data(str(tmp_path), cfg))
    assert sorted(datasources) == ["authors.json", "categories.json", "tags.json", "tags_pt.json"]
    assert datasources["tags_pt.json"]["datasource_entries"] == [{"name": "Café", "value": "cafe"}]
    assert datasources["categories.json"]["name"] == "Categories"

import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp2storyblok.models.content import Term
from wp2storyblok.utils.tags import normalize_tags, parse_tags_field


def test_tags_html_entities_and_whitespace():
    raw = "finanças &amp; gestão |  dicas  "
    assert parse_tags_field(raw) == ["finanças & gestão", "dicas"]


def test_tags_split_on_pipe_then_comma():
    assert parse_tags_field("alpha|beta|gamma") == ["alpha", "beta", "gamma"]
    assert parse_tags_field("one, two") == ["one", "two"]


def test_tags_deduplicate_case_insensitive_preserve_first():
    raw = "Marketing|marketing|MARKETING|MarketIng"
    assert parse_tags_field(raw) == ["Marketing"]


def test_normalize_tags_is_lower_case_and_slug_safe():
    assert normalize_tags("Finanças &amp; Gestão|Dicas Rápidas") == ["financas-gestao", "dicas-rapidas"]
    assert normalize_tags(["Cold Brew", "cold-brew", "COLD  BREW"]) == ["cold-brew"]


def test_normalize_tags_resolves_term_ids_and_dicts():
    terms = {4: Term(id=4, name="Latte Art", slug="latte-art")}
    assert normalize_tags([4, 99, {"slug": "v60"}, {"name": "Pour Over"}], terms) == ["latte-art", "v60", "pour-over"]


def test_normalize_tags_never_raises_on_junk():
    assert normalize_tags(None) == []
    assert normalize_tags("") == []
    assert normalize_tags([None, True, 3.5, [], "!!!"]) == []
    assert normalize_tags(12) == []

import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from wp2storyblok.parsers.richtext_parser import convert_html_to_richtext
from wp2storyblok.parsers.richtext_schema import count_nodes, iter_text


def nodes_of_type(doc, t):
    return [n for n in doc.get("content", []) if n.get("type") == t]


def text_of(node):
    return "".join(iter_text(node))


def test_paragraph_and_image_scenario():
    doc = convert_html_to_richtext('<p>Grind matters.</p><img src="https://ext.example/cup.jpg">')
    assert [n["type"] for n in doc["content"]] == ["paragraph", "image"]
    assert doc["content"][0]["content"] == [{"type": "text", "text": "Grind matters."}]
    assert doc["content"][1]["attrs"]["src"] == "https://ext.example/cup.jpg"


def test_headings_marks_and_links():
    html = """
    <h2>Brewing</h2>
    <p>Use <strong>fresh</strong> beans, <em>always</em>. See <a href="https://ex.com/guide" target="_blank">the guide</a>.</p>
    """
    doc = convert_html_to_richtext(html)
    hs = nodes_of_type(doc, "heading")
    assert len(hs) == 1 and hs[0]["attrs"]["level"] == 2
    texts = nodes_of_type(doc, "paragraph")[0]["content"]
    bold = next(t for t in texts if t.get("text") == "fresh")
    assert bold["marks"] == [{"type": "bold"}]
    italic = next(t for t in texts if t.get("text") == "always")
    assert italic["marks"] == [{"type": "italic"}]
    link = next(t for t in texts if t.get("text") == "the guide")
    assert link["marks"][0]["type"] == "link"
    assert link["marks"][0]["attrs"]["href"] == "https://ex.com/guide"
    assert link["marks"][0]["attrs"]["target"] == "_blank"


def test_lists_quote_rule_and_code():
    html = """
    <ul><li>one</li><li>two<ol><li>nested</li></ol></li></ul>
    <blockquote><p>quoted</p></blockquote>
    <hr/>
    <pre><code class="language-python">print("hi")</code></pre>
    """
    doc = convert_html_to_richtext(html)
    bullets = nodes_of_type(doc, "bullet_list")
    assert len(bullets) == 1
    items = bullets[0]["content"]
    assert [i["type"] for i in items] == ["list_item", "list_item"]
    assert text_of(items[0]) == "one"
    assert count_nodes(items[1], "ordered_list") == 1
    assert text_of(nodes_of_type(doc, "blockquote")[0]) == "quoted"
    assert len(nodes_of_type(doc, "horizontal_rule")) == 1
    code = nodes_of_type(doc, "code_block")[0]
    assert code["attrs"]["class"] == "language-python"
    assert text_of(code) == 'print("hi")'


def test_figure_caption_becomes_italic_paragraph():
    html = '<figure class="wp-block-image"><img src="https://ex.com/a.jpg" alt="A"/><figcaption>Morning cup</figcaption></figure>'
    doc = convert_html_to_richtext(html)
    assert [n["type"] for n in doc["content"]] == ["image", "paragraph"]
    caption = doc["content"][1]["content"][0]
    assert caption["text"] == "Morning cup"
    assert caption["marks"] == [{"type": "italic"}]


def test_platform_only_markup_is_removed():
    html = (
        '[caption id="attachment_1" align="alignnone"]<p>Kept text</p>[/caption]'
        "<script>alert(1)</script><style>p{}</style><!-- wp:paragraph -->"
    )
    doc = convert_html_to_richtext(html)
    assert text_of(doc) == "Kept text"
    assert "[caption" not in text_of(doc)


def test_inline_siblings_are_coalesced():
    doc = convert_html_to_richtext("Hello <b>bold</b> and <i>italic</i>")
    paragraphs = nodes_of_type(doc, "paragraph")
    assert len(paragraphs) == 1
    assert text_of(paragraphs[0]) == "Hello bold and italic"


def test_table_rows_become_paragraphs():
    doc = convert_html_to_richtext("<table><tr><th>Origin</th><th>Roast</th></tr><tr><td>Kenya</td><td>Light</td></tr></table>")
    assert [text_of(p) for p in nodes_of_type(doc, "paragraph")] == ["Origin | Roast", "Kenya | Light"]


def test_embed_becomes_link_paragraph():
    doc = convert_html_to_richtext('<iframe src="https://www.youtube.com/embed/xyz"></iframe>')
    para = nodes_of_type(doc, "paragraph")[0]
    node = para["content"][0]
    assert node["text"] == "https://www.youtube.com/embed/xyz"
    assert node["marks"][0]["type"] == "link"


def test_resolvers_are_used_and_failed_images_dropped():
    seen = []

    def link_resolver(href, target):
        seen.append((href, target))
        return {"href": "/resolved", "uuid": "u-1", "anchor": None, "target": target, "linktype": "story"}

    def image_resolver(src, alt, title):
        if "broken" in src:
            return None
        return {"id": None, "src": "images/" + src.rsplit("/", 1)[-1], "alt": alt, "title": title, "source_url": src}

    html = '<p><a href="/other-post/">read</a></p><p><img src="https://ex.com/ok.png" alt="ok"/><img src="https://ex.com/broken.png"/></p>'
    doc = convert_html_to_richtext(html, link_resolver=link_resolver, image_resolver=image_resolver)
    assert seen == [("/other-post/", None)]
    images = nodes_of_type(doc, "image")
    assert len(images) == 1
    assert images[0]["attrs"]["src"] == "images/ok.png"
    assert images[0]["attrs"]["alt"] == "ok"


def test_raising_resolver_does_not_break_conversion():
    def link_resolver(href, target):
        raise RuntimeError("boom")

    doc = convert_html_to_richtext('<p><a href="https://ex.com">x</a></p>', link_resolver=link_resolver)
    link = nodes_of_type(doc, "paragraph")[0]["content"][0]["marks"][0]
    assert link["attrs"]["href"] == "https://ex.com"


@pytest.mark.parametrize(
    "html",
    [
        "<div><p>Unclosed <b>bold <i>tag soup",
        "<p>text</b></i></span></div></p><<<<",
        "<ul><li>one<li>two</ul></ol><table><tr><td>cell",
        "plain words <a href=",
    ],
)
def test_malformed_markup_never_raises(html):
    doc = convert_html_to_richtext(html)
    assert doc["type"] == "doc"
    paragraphs = [n for n in doc["content"] if count_nodes(n, "text")]
    assert paragraphs, doc
    assert text_of(doc).strip()


def test_fallback_when_converter_fails(monkeypatch):
    from wp2storyblok.parsers import richtext_parser

    def explode(*args, **kwargs):
        raise ValueError("parser crashed")

    monkeypatch.setattr(richtext_parser, "convert_html_to_richtext_local", explode)
    doc = richtext_parser.convert_html_to_richtext("<p>Still <b>here</b></p>")
    assert doc == {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Still here"}]}]}


def test_empty_input_gives_empty_document():
    assert convert_html_to_richtext("") == {"type": "doc", "content": []}
    assert convert_html_to_richtext(None) == {"type": "doc", "content": []}

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Set

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from .richtext_schema import (
    doc,
    paragraph,
    heading,
    blockquote,
    horizontal_rule,
    code_block,
    list_container,
    list_item,
    text_node,
    hard_break,
    mark,
    image_node,
    plain_image_attrs,
    validate_richtext,
)

logger = logging.getLogger(__name__)

Mark = Dict[str, Any]
LinkResolver = Callable[[str, Optional[str]], Any]
ImageResolver = Callable[[str, str, str], Any]

# WordPress shortcodes that only make sense on the source platform
_SHORTCODE_RE = re.compile(
    r"\[/?(?:caption|wp_caption|gallery|embed|audio|video|playlist|vc_[a-z_]+)\b[^\]]*\]",
    re.IGNORECASE,
)
_WS_RE = re.compile(r"[ \t\r\n\f\xa0]+")
_LANGUAGE_RE = re.compile(r"(?:language|lang)-([\w+-]+)")

INLINE_TAGS = {
    "span", "a", "strong", "b", "em", "i", "u", "ins", "s", "strike", "del", "code", "kbd",
    "sup", "sub", "mark", "small", "abbr", "cite", "q", "time", "font", "label", "img", "br",
}
EMBED_TAGS = {"iframe", "video", "audio", "embed", "object"}
SKIP_TAGS = {"script", "style", "noscript", "template", "form", "input", "button", "select", "textarea"}

_MARK_TAGS = {
    "strong": "bold",
    "b": "bold",
    "em": "italic",
    "i": "italic",
    "cite": "italic",
    "u": "underline",
    "ins": "underline",
    "s": "strike",
    "strike": "strike",
    "del": "strike",
    "code": "code",
    "kbd": "code",
    "sup": "superscript",
    "sub": "subscript",
}


def _attr(el: Tag, name: str) -> str:
    value = el.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def convert_html_to_richtext_local(
    html: str,
    *,
    link_resolver: Optional[LinkResolver] = None,
    image_resolver: Optional[ImageResolver] = None,
) -> Dict[str, Any]:
    """
    Convert WordPress HTML to a richtext document.

    Covered:
    - Headings, paragraphs, lists (nested), blockquote, horizontal rule,
      code blocks, hard breaks and inline marks including links.
    - Figures become image nodes followed by an italic caption paragraph;
      galleries become a run of image nodes.
    - Tables are flattened to one paragraph per row.
    - Embeds (iframe/video/audio) become a paragraph linking to the source.

    ``link_resolver(href, target)`` returns the attrs of a link mark and
    ``image_resolver(src, alt, title)`` the attrs of an image node, or
    ``None`` when the asset could not be resolved (the image is dropped).
    Without resolvers links and images keep their raw URLs.
    """
    cleaned_html = _SHORTCODE_RE.sub("", html or "")
    soup = BeautifulSoup(cleaned_html, "html.parser")

    for bad in soup.find_all(list(SKIP_TAGS)):
        bad.decompose()

    def normalize_ws(text: str) -> str:
        return _WS_RE.sub(" ", text or "")

    def link_mark(el: Tag) -> Optional[Mark]:
        href = _attr(el, "href")
        if not href:
            return None
        return resolve_link(href, _attr(el, "target") or None)

    def resolve_link(href: str, target: Optional[str]) -> Mark:
        if link_resolver is not None:
            try:
                attrs = link_resolver(href, target)
            except Exception as e:
                logger.warning("Could not resolve link %s: %s", href, e)
                attrs = None
            if attrs is not None:
                return mark("link", attrs)
        return mark("link", {"href": href, "uuid": None, "anchor": None, "target": target, "linktype": "url"})

    def image_block(el: Tag) -> Optional[Dict[str, Any]]:
        src = _attr(el, "src") or _attr(el, "data-src")
        if not src:
            return None
        alt = _attr(el, "alt")
        title = _attr(el, "title")
        if image_resolver is None:
            return image_node(plain_image_attrs(src, alt, title))
        try:
            attrs = image_resolver(src, alt, title)
        except Exception as e:
            logger.warning("Could not resolve image %s: %s", src, e)
            attrs = None
        if attrs is None:
            return None
        return image_node(attrs)

    def build_inline_from_nodes(children_iter, active: List[Mark], deferred_blocks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = []

        def flush_text(s: str):
            s = normalize_ws(s)
            if not s:
                return
            if not s.strip():
                # keep a single separating space between inline runs
                last = parts[-1] if parts else None
                if last is not None and last.get("type") == "text" and not last["text"].endswith(" "):
                    parts.append(text_node(" ", active.copy() if active else None))
                return
            parts.append(text_node(s, active.copy() if active else None))

        for child in children_iter:
            if isinstance(child, PreformattedString):
                continue
            if isinstance(child, NavigableString):
                flush_text(str(child))
                continue
            if not isinstance(child, Tag):
                continue
            name = (child.name or "").lower()

            if name == "br":
                parts.append(hard_break())
                continue

            if name == "img":
                block = image_block(child)
                if block is not None:
                    deferred_blocks.append(block)
                continue

            if name in EMBED_TAGS:
                embed = embed_block(child)
                if embed is not None:
                    deferred_blocks.append(embed)
                continue

            new_active = active.copy()
            mark_type = _MARK_TAGS.get(name)
            if mark_type and not any(m.get("type") == mark_type for m in new_active):
                new_active.append(mark(mark_type))
            elif name == "a":
                link = link_mark(child)
                if link is not None:
                    new_active = [m for m in new_active if m.get("type") != "link"]
                    new_active.append(link)

            parts.extend(build_inline_from_nodes(child.children, new_active, deferred_blocks))
        return parts

    def finish_inlines(parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        while parts and (parts[0].get("type") == "hard_break" or not parts[0].get("text", "x").strip()):
            parts.pop(0)
        while parts and (parts[-1].get("type") == "hard_break" or not parts[-1].get("text", "x").strip()):
            parts.pop()
        if not parts:
            return parts
        parts[0]["text"] = parts[0]["text"].lstrip()
        parts[-1]["text"] = parts[-1]["text"].rstrip()
        return parts

    def build_inline(node: Tag, active: List[Mark], deferred_blocks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return finish_inlines(build_inline_from_nodes(node.children, active, deferred_blocks))

    def embed_block(el: Tag) -> Optional[Dict[str, Any]]:
        src = _attr(el, "src") or _attr(el, "data")
        if not src:
            source = el.find("source")
            src = _attr(source, "src") if isinstance(source, Tag) else ""
        if not src:
            return None
        return paragraph([text_node(src, [resolve_link(src, "_blank")])])

    def caption_paragraph(el: Tag, out: List[Dict[str, Any]]):
        inlines = build_inline(el, [mark("italic")], [])
        if inlines:
            out.append(paragraph(inlines))

    def handle_figure(el: Tag, out: List[Dict[str, Any]]):
        images = el.find_all("img")
        if not images:
            walk(el, out)
            return
        seen: Set[int] = set()
        for img in images:
            block = image_block(img)
            if block is not None:
                out.append(block)
            inner = img.find_parent("figure")
            if inner is not None and inner is not el and id(inner) not in seen:
                seen.add(id(inner))
                caption = inner.find("figcaption", recursive=False)
                if isinstance(caption, Tag):
                    caption_paragraph(caption, out)
        caption = el.find("figcaption", recursive=False)
        if isinstance(caption, Tag):
            caption_paragraph(caption, out)

    def handle_list(el: Tag, out: List[Dict[str, Any]]):
        ordered = el.name.lower() == "ol"
        items: List[Dict[str, Any]] = []
        for li in el.find_all("li", recursive=False):
            content: List[Dict[str, Any]] = []
            deferred_blocks: List[Dict[str, Any]] = []
            inline_children = [
                c for c in li.children if not (isinstance(c, Tag) and c.name and c.name.lower() in ("ul", "ol"))
            ]
            inlines = finish_inlines(build_inline_from_nodes(inline_children, [], deferred_blocks))
            if inlines:
                content.append(paragraph(inlines))
            content.extend(deferred_blocks)
            for nested in li.find_all(["ul", "ol"], recursive=False):
                handle_list(nested, content)
            if content:
                items.append(list_item(content))
        if items:
            out.append(list_container(ordered, items))

    def handle_table(el: Tag, out: List[Dict[str, Any]]):
        for tr in el.find_all("tr"):
            cells = [cell.get_text(" ", strip=True) for cell in tr.find_all(["td", "th"])]
            cells = [normalize_ws(c).strip() for c in cells if c]
            if any(cells):
                out.append(paragraph([text_node(" | ".join(c for c in cells if c))]))

    def handle_block(el: Tag, out: List[Dict[str, Any]]):
        name = (el.name or "").lower()
        if name == "p":
            deferred_blocks: List[Dict[str, Any]] = []
            inlines = build_inline(el, [], deferred_blocks)
            if inlines:
                out.append(paragraph(inlines))
            out.extend(deferred_blocks)
            return
        if name in {"h1", "h2", "h3", "h4", "h5", "h6"}:
            deferred_blocks = []
            inlines = build_inline(el, [], deferred_blocks)
            if inlines:
                out.append(heading(int(name[1]), inlines))
            out.extend(deferred_blocks)
            return
        if name in {"ul", "ol"}:
            handle_list(el, out)
            return
        if name == "blockquote":
            inner: List[Dict[str, Any]] = []
            walk(el, inner)
            if inner:
                out.append(blockquote(inner))
            return
        if name == "hr":
            out.append(horizontal_rule())
            return
        if name == "pre":
            code_child = el.find("code")
            source = code_child if isinstance(code_child, Tag) else el
            match = _LANGUAGE_RE.search(_attr(source, "class") or _attr(el, "class"))
            text = source.get_text().replace("\xa0", " ").strip("\n")
            out.append(code_block(text, match.group(1) if match else None))
            return
        if name == "figure":
            handle_figure(el, out)
            return
        if name == "figcaption":
            caption_paragraph(el, out)
            return
        if name == "table":
            handle_table(el, out)
            return
        if name in EMBED_TAGS:
            embed = embed_block(el)
            if embed is not None:
                out.append(embed)
            return
        # containers and unknown elements: walk their children
        walk(el, out)

    def is_inline_tag(t: Optional[str]) -> bool:
        if not t:
            return False
        return t.lower() in INLINE_TAGS

    def walk(container: Tag, out: List[Dict[str, Any]]):
        # coalesce inline siblings into a single paragraph
        inline_run: List[Any] = []

        def flush_inline_run():
            nonlocal inline_run
            if not inline_run:
                return
            deferred_blocks: List[Dict[str, Any]] = []
            inlines = finish_inlines(build_inline_from_nodes(inline_run, [], deferred_blocks))
            if inlines:
                out.append(paragraph(inlines))
            out.extend(deferred_blocks)
            inline_run = []

        for child in container.children:
            if isinstance(child, PreformattedString):
                continue
            if isinstance(child, NavigableString):
                if str(child).strip() or inline_run:
                    inline_run.append(child)
                continue
            if isinstance(child, Tag) and is_inline_tag(child.name):
                inline_run.append(child)
                continue
            flush_inline_run()
            if isinstance(child, Tag):
                handle_block(child, out)

        flush_inline_run()

    nodes: List[Dict[str, Any]] = []
    walk(soup, nodes)
    return validate_richtext(doc(nodes))

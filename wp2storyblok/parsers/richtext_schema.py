from __future__ import annotations

from typing import Any, Dict, List, Optional


BLOCK_TYPES = {
    "paragraph",
    "heading",
    "bullet_list",
    "ordered_list",
    "list_item",
    "blockquote",
    "code_block",
    "horizontal_rule",
    "image",
}

MARK_TYPES = {"bold", "italic", "underline", "strike", "code", "link", "superscript", "subscript"}


# --- Builders for richtext nodes ---

def doc(content: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"type": "doc", "content": content or []}


def paragraph(content: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"type": "paragraph", "content": content or []}


def heading(level: int, content: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    lvl = max(1, min(6, int(level or 1)))
    return {"type": "heading", "attrs": {"level": lvl}, "content": content or []}


def blockquote(content: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "blockquote", "content": content}


def horizontal_rule() -> Dict[str, Any]:
    return {"type": "horizontal_rule"}


def code_block(text: str, language: Optional[str] = None) -> Dict[str, Any]:
    return {
        "type": "code_block",
        "attrs": {"class": f"language-{language}" if language else None},
        "content": [text_node(text)] if text else [],
    }


def list_container(ordered: bool, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    node: Dict[str, Any] = {"type": "ordered_list" if ordered else "bullet_list", "content": items}
    if ordered:
        node["attrs"] = {"order": 1}
    return node


def list_item(content: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "list_item", "content": content}


def text_node(text: str, marks: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    node: Dict[str, Any] = {"type": "text", "text": text or ""}
    if marks:
        node["marks"] = marks
    return node


def hard_break() -> Dict[str, Any]:
    return {"type": "hard_break"}


def mark(mark_type: str, attrs: Any = None) -> Dict[str, Any]:
    m: Dict[str, Any] = {"type": mark_type}
    if attrs is not None:
        m["attrs"] = attrs
    return m


def image_node(attrs: Any) -> Dict[str, Any]:
    """Image block; ``attrs`` is a dict or an asset reference serialized later."""
    return {"type": "image", "attrs": attrs}


def plain_image_attrs(src: str, alt: str = "", title: str = "") -> Dict[str, Any]:
    return {"id": None, "src": src, "alt": alt, "title": title, "source_url": src}


def fallback_doc(text: str) -> Dict[str, Any]:
    """Single-paragraph document used when conversion fails."""
    return doc([paragraph([text_node(text)] if text else [])])


# --- Traversal helpers ---

def iter_text(node: Any) -> List[str]:
    """Collect the text of every text node under ``node`` in document order."""
    if not isinstance(node, dict):
        return []
    if node.get("type") == "text":
        return [node.get("text") or ""]
    out: List[str] = []
    for child in node.get("content") or []:
        out.extend(iter_text(child))
    return out


def count_nodes(node: Any, node_type: str) -> int:
    if not isinstance(node, dict):
        return 0
    total = 1 if node.get("type") == node_type else 0
    for child in node.get("content") or []:
        total += count_nodes(child, node_type)
    return total


# --- Minimal validator/normalizer ---

def validate_richtext(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Ensure the document follows basic richtext expectations.
    - Root is a ``doc`` with a ``content`` list.
    - Stray inline nodes at the root are wrapped in a paragraph.
    - Headings carry a valid level; empty paragraphs are dropped.
    """
    content = document.get("content") if isinstance(document, dict) else None
    if not isinstance(content, list):
        return doc([])

    fixed: List[Dict[str, Any]] = []
    for n in content:
        if not isinstance(n, dict):
            continue
        t = n.get("type")
        if t == "heading":
            attrs = n.setdefault("attrs", {})
            lvl = attrs.get("level")
            if not isinstance(lvl, int) or lvl < 1 or lvl > 6:
                attrs["level"] = 1
        if t in ("text", "hard_break"):
            fixed.append(paragraph([n]))
        elif t == "paragraph" and not n.get("content"):
            continue
        elif t in BLOCK_TYPES:
            fixed.append(n)
    return doc(fixed)

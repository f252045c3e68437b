"""Conversions between markup text and the document tree.

* ``looks_like_markup`` / ``strip_markup`` normalise agent supplied snippets
  that arrive as HTML so they can be matched against plain document text.
* ``render_rich_text`` turns a Markdown snippet into inline nodes with marks.
* ``parse_html`` / ``to_html`` load and save the live document.
"""

from __future__ import annotations

import html
import logging
from typing import Any, Iterable, Sequence

from bs4 import BeautifulSoup, NavigableString, Tag
from markdown_it import MarkdownIt

from .document_model import Document, Mark, Node, NodeKind, merge_text_runs

LOGGER = logging.getLogger(__name__)

_BLOCK_TAGS = {"p": NodeKind.PARAGRAPH, "div": NodeKind.PARAGRAPH, "li": NodeKind.PARAGRAPH, "blockquote": NodeKind.PARAGRAPH}
_HEADING_TAGS = {f"h{level}": level for level in range(1, 7)}
_MARK_TAGS = {
    "strong": "bold",
    "b": "bold",
    "em": "italic",
    "i": "italic",
    "code": "code",
    "s": "strike",
    "del": "strike",
    "u": "underline",
}
_MARK_HTML = {"bold": "strong", "italic": "em", "code": "code", "strike": "s", "underline": "u"}
_MARKDOWN_MARKS = {"strong": "bold", "em": "italic", "s": "strike"}
_PLAIN_INLINE_TOKENS = {"text", "text_special", "softbreak", "hardbreak"}


# -----------------------------------------------------------------------------
# Normalisation
# -----------------------------------------------------------------------------


def looks_like_markup(text: str) -> bool:
    """Return ``True`` when ``text`` starts with ``<`` and contains ``>``."""
    return text.startswith("<") and ">" in text


def strip_markup(text: str) -> str:
    """Return the plain text of an HTML snippet."""
    soup = BeautifulSoup(text, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text()


def normalize_for_matching(text: str) -> str:
    """Plain form of an agent supplied span used for document search."""
    if looks_like_markup(text):
        return strip_markup(text)
    return text


# -----------------------------------------------------------------------------
# Markdown -> inline nodes
# -----------------------------------------------------------------------------

_MARKDOWN_RENDERER: MarkdownIt | None = None


def _build_renderer() -> MarkdownIt:
    global _MARKDOWN_RENDERER
    if _MARKDOWN_RENDERER is None:
        renderer = MarkdownIt("commonmark", {"html": False, "typographer": False})
        renderer.enable("strikethrough")
        _MARKDOWN_RENDERER = renderer
    return _MARKDOWN_RENDERER


def render_rich_text(text: str) -> list[Node]:
    """Render a replacement snippet into inline nodes.

    HTML snippets are reduced to plain text first. Markdown emphasis, code
    spans, strikethrough and links become marks; line breaks become hard
    breaks. Text without any of that syntax is kept verbatim, so entities
    and backslash escapes survive; inside formatted text they are decoded.
    """
    if looks_like_markup(text):
        return _plain_nodes(strip_markup(text))
    if not text:
        return []

    tokens = _build_renderer().parseInline(text)
    if all(child.type in _PLAIN_INLINE_TOKENS for token in tokens for child in token.children or ()):
        return _plain_nodes(text)
    nodes: list[Node] = []
    active: list[Mark] = []
    for token in tokens:
        for child in token.children or ():
            kind = child.type
            if kind == "text":
                nodes.append(Node.text_run(child.content, active))
            elif kind == "code_inline":
                nodes.append(Node.text_run(child.content, [*active, Mark("code")]))
            elif kind in ("softbreak", "hardbreak"):
                nodes.append(Node.hard_break())
            elif kind == "link_open":
                href = child.attrGet("href") or ""
                active.append(Mark("link", (("href", href),)))
            elif kind.endswith("_open") and kind[:-5] in _MARKDOWN_MARKS:
                active.append(Mark(_MARKDOWN_MARKS[kind[:-5]]))
            elif kind.endswith("_close") and active:
                active.pop()
            elif child.content:
                nodes.append(Node.text_run(child.content, active))
    return merge_text_runs(nodes)


def _plain_nodes(text: str, marks: Sequence[Mark] = ()) -> list[Node]:
    nodes: list[Node] = []
    for index, line in enumerate(text.split("\n")):
        if index:
            nodes.append(Node.hard_break())
        if line:
            nodes.append(Node.text_run(line, marks))
    return nodes


# -----------------------------------------------------------------------------
# HTML import
# -----------------------------------------------------------------------------


def parse_html(markup: str) -> Node:
    """Parse an HTML fragment into a ``doc`` node.

    Block level elements become paragraphs or headings; loose inline content
    is wrapped in a paragraph. Spans carrying ``data-inline-diff`` become
    inline diff units.
    """
    soup = BeautifulSoup(markup or "", "html.parser")
    blocks: list[Node] = []
    loose: list[Node] = []

    def flush_loose() -> None:
        if loose:
            blocks.append(Node.paragraph(list(loose)))
            loose.clear()

    for element in soup.children:
        if isinstance(element, Tag) and (element.name in _BLOCK_TAGS or element.name in _HEADING_TAGS):
            flush_loose()
            blocks.extend(_parse_block(element))
        elif isinstance(element, Tag) and element.name in ("ul", "ol", "section", "article", "body", "html"):
            flush_loose()
            blocks.extend(parse_html(element.decode_contents()).children)
        elif isinstance(element, NavigableString) and not str(element).strip():
            continue
        else:
            loose.extend(_parse_inline(element, ()))
    flush_loose()

    if not blocks:
        blocks.append(Node.paragraph())
    return Node.doc(blocks)


def _parse_block(element: Tag) -> list[Node]:
    if any(isinstance(child, Tag) and child.name in _BLOCK_TAGS for child in element.children):
        return list(parse_html(element.decode_contents()).children)
    content: list[Node] = []
    for child in element.children:
        content.extend(_parse_inline(child, ()))
    if element.name in _HEADING_TAGS:
        return [Node.heading(content, level=_HEADING_TAGS[element.name])]
    return [Node.paragraph(content)]


def _parse_inline(element: Any, marks: tuple[Mark, ...]) -> list[Node]:
    if isinstance(element, NavigableString):
        text = str(element).replace("\n", " ")
        return [Node.text_run(text, marks)] if text else []
    if not isinstance(element, Tag):
        return []
    if element.name == "br":
        return [Node.hard_break()]
    if element.name == "span" and element.has_attr("data-inline-diff"):
        return [_parse_diff_unit(element)]

    if element.name in _MARK_TAGS:
        marks = (*marks, Mark(_MARK_TAGS[element.name]))
    elif element.name == "a":
        marks = (*marks, Mark("link", (("href", element.get("href", "")),)))

    nodes: list[Node] = []
    for child in element.children:
        nodes.extend(_parse_inline(child, marks))
    return nodes


def _parse_diff_unit(element: Tag) -> Node:
    original = element.get("data-original", "")
    suggested = element.get("data-suggested", "")
    return Node(
        NodeKind.INLINE_DIFF.value,
        attrs={
            "original": original,
            "suggested": suggested,
            "change_id": element.get("data-change-id", ""),
            "reason": element.get("data-reason", ""),
        },
        children=render_rich_text(suggested),
    )


# -----------------------------------------------------------------------------
# HTML export
# -----------------------------------------------------------------------------


def to_html(document: Document | Node) -> str:
    """Serialise the document tree to HTML."""
    root = document.root if isinstance(document, Document) else document
    return "".join(_block_html(block) for block in root.children)


def _block_html(block: Node) -> str:
    inner = "".join(_inline_html(child) for child in block.children)
    if block.kind == NodeKind.HEADING.value:
        level = int(block.attrs.get("level", 1))
        return f"<h{level}>{inner}</h{level}>"
    return f"<p>{inner}</p>"


def _inline_html(node: Node) -> str:
    if node.kind == NodeKind.HARD_BREAK.value:
        return "<br>"
    if node.kind == NodeKind.INLINE_DIFF.value:
        attrs = node.attrs
        parts = [
            'data-inline-diff="true"',
            f'data-original="{html.escape(str(attrs.get("original", "")), quote=True)}"',
            f'data-suggested="{html.escape(str(attrs.get("suggested", "")), quote=True)}"',
            f'data-change-id="{html.escape(str(attrs.get("change_id", "")), quote=True)}"',
        ]
        if attrs.get("reason"):
            parts.append(f'data-reason="{html.escape(str(attrs["reason"]), quote=True)}"')
        label = f"{strip_markup(str(attrs.get('original', '')))} → {node.text_content()}"
        return f"<span {' '.join(parts)}>{html.escape(label)}</span>"
    if not node.is_text:
        return html.escape(node.text_content())
    return _wrap_marks(html.escape(node.text), node.marks)


def _wrap_marks(text: str, marks: Iterable[Mark]) -> str:
    for mark in reversed(tuple(marks)):
        if mark.type == "link":
            href = html.escape(str(mark.attr("href", "")), quote=True)
            text = f'<a href="{href}">{text}</a>'
        elif mark.type in _MARK_HTML:
            tag = _MARK_HTML[mark.type]
            text = f"<{tag}>{text}</{tag}>"
    return text


__all__ = [
    "looks_like_markup",
    "normalize_for_matching",
    "parse_html",
    "render_rich_text",
    "strip_markup",
    "to_html",
]

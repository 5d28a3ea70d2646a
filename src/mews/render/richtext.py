"""Rich text -> HTML.

Rich-text fields arrive as a node tree::

    {"nodeType": "document", "content": [
        {"nodeType": "paragraph", "content": [
            {"nodeType": "text", "value": "Hello", "marks": [{"type": "bold"}]}
        ]}
    ]}

Embedded entries and assets carry a link in ``data.target`` and are rendered
through the same ``module`` / ``asset_src`` helpers templates use, so they
resolve against the fetched batch and the asset folder rules.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from html import escape
from typing import Any

_BLOCK_TAGS: dict[str, str] = {
    "paragraph": "p",
    "heading-1": "h1",
    "heading-2": "h2",
    "heading-3": "h3",
    "heading-4": "h4",
    "heading-5": "h5",
    "heading-6": "h6",
    "unordered-list": "ul",
    "ordered-list": "ol",
    "list-item": "li",
    "blockquote": "blockquote",
    "table": "table",
    "table-row": "tr",
    "table-cell": "td",
    "table-header-cell": "th",
}

_MARK_TAGS: dict[str, str] = {
    "bold": "strong",
    "italic": "em",
    "underline": "u",
    "code": "code",
    "superscript": "sup",
    "subscript": "sub",
    "strikethrough": "s",
}


def render_rich_text(
    document: Any,
    *,
    module: Callable[[Any], str],
    asset_src: Callable[[Any], str],
    entry_href: Callable[[Any], str] | None = None,
) -> str:
    """Render a rich-text document to HTML.

    Args:
        document: The ``document`` node (anything falsy renders as "").
        module: Renders an embedded Entry link.
        asset_src: Resolves an Asset link to a URL.
        entry_href: Resolves an Entry link to a URL for ``entry-hyperlink``
            nodes.  Without it those render as plain text.

    """
    if not document:
        return ""
    renderer = _RichTextRenderer(module, asset_src, entry_href)
    return renderer.node(document)


class _RichTextRenderer:
    __slots__ = ("_asset_src", "_entry_href", "_module")

    def __init__(
        self,
        module: Callable[[Any], str],
        asset_src: Callable[[Any], str],
        entry_href: Callable[[Any], str] | None,
    ) -> None:
        self._module = module
        self._asset_src = asset_src
        self._entry_href = entry_href

    def children(self, node: Mapping[str, Any]) -> str:
        content = node.get("content")
        if not isinstance(content, list | tuple):
            return ""
        return "".join(self.node(child) for child in content)

    def node(self, node: Any) -> str:
        if not isinstance(node, Mapping):
            return ""
        node_type = node.get("nodeType")
        data = node.get("data") or {}

        if node_type == "text":
            return self.text(node)
        if node_type == "document":
            return self.children(node)
        if node_type in _BLOCK_TAGS:
            tag = _BLOCK_TAGS[node_type]
            return f"<{tag}>{self.children(node)}</{tag}>"
        if node_type == "hr":
            return "<hr/>"
        if node_type == "hyperlink":
            uri = escape(str(data.get("uri", "")), quote=True)
            return f'<a href="{uri}">{self.children(node)}</a>'
        if node_type in ("embedded-entry-block", "embedded-entry-inline"):
            return self._module(data.get("target"))
        if node_type == "embedded-asset-block":
            src = escape(self._asset_src(data.get("target")), quote=True)
            return f'<img src="{src}" alt=""/>'
        if node_type == "entry-hyperlink":
            if self._entry_href is None:
                return self.children(node)
            href = escape(self._entry_href(data.get("target")), quote=True)
            return f'<a href="{href}">{self.children(node)}</a>'
        if node_type == "asset-hyperlink":
            href = escape(self._asset_src(data.get("target")), quote=True)
            return f'<a href="{href}">{self.children(node)}</a>'
        # Unknown node types degrade to their children.
        return self.children(node)

    def text(self, node: Mapping[str, Any]) -> str:
        html = escape(str(node.get("value", ""))).replace("\n", "<br/>")
        for mark in node.get("marks") or ():
            tag = _MARK_TAGS.get(mark.get("type") if isinstance(mark, Mapping) else None)
            if tag is not None:
                html = f"<{tag}>{html}</{tag}>"
        return html

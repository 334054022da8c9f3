"""Token tree to ADF document conversion"""

import logging
from typing import Any, Callable

import pydantic

from adfmark.core.inline import MARK_TOKENS
from adfmark.core.models import PANEL_TYPES, Document, Mark, Node, Token, atom, node, text
from adfmark.errors import ParserError


logger = logging.getLogger(__name__)

MEDIA_SCHEME = "adf:media:"
INLINE_ATOMS = ("mention", "date", "status", "emoji", "inlineCard")
CONTAINER_FENCES = ("panel", "expand", "nestedExpand")


def clamp_level(level: Any) -> int:
    """Heading level forced into [1, 6]; non-numeric levels become 1."""
    try:
        value = int(level)
    except (TypeError, ValueError):
        return 1
    return max(1, min(6, value))


def _attrs(token: Token, explicit: dict[str, Any] | None = None) -> dict[str, Any] | None:
    """Comment metadata overlaid by explicitly parsed attributes; None when empty."""
    merged = {**(token.metadata or {}), **(explicit or {})}
    return merged or None


def _is_media_image(token: Token) -> bool:
    return token.type == "image" and str(token.attributes.get("src", "")).startswith(MEDIA_SCHEME)


def build_error_document(message: str) -> Document:
    """Minimal valid document standing in for input that could not be converted."""
    return Document(content=[node("paragraph", text(f"[Conversion error: {message}]"))])


class TreeBuilder:
    """Build a Document from tokenizer output; one conversion method per token type."""

    def __init__(self, strict: bool = False, preserve_unknown_nodes: bool = True):
        self.strict = strict
        self.preserve_unknown_nodes = preserve_unknown_nodes
        self.warnings: list[str] = []
        self._handlers: dict[str, Callable[[Token], list[Node]]] = {
            "frontmatter": lambda token: [],
            "paragraph":   self._paragraph,
            "heading":     self._heading,
            "codeBlock":   self._code_block,
            "list":        self._list,
            "listItem":    self._list_item,
            "blockquote":  self._blockquote,
            "table":       self._table,
            "rule":        lambda token: [atom("rule", _attrs(token))],
            "fence":       self._fence,
        }
        self._fences: dict[str, Callable[[Token, dict[str, Any]], list[Node]]] = {
            "panel":        self._panel,
            "expand":       self._expand,
            "nestedExpand": self._expand,
            "mediaSingle":  self._media_single,
            "mediaGroup":   self._media_group,
        }

    def build(self, tokens: list[Token]) -> Document:
        try:
            return Document(content=self.blocks(tokens))
        except (ParserError, ValueError) as e:
            if self.strict:
                raise
            logger.warning("tree build failed: %s", e)
            self.warnings.append(f"Tree build failed: {e}")
            return build_error_document(str(e))

    def _warn(self, msg: str) -> None:
        self.warnings.append(msg)
        logger.warning(msg)

    def blocks(self, tokens: list[Token]) -> list[Node]:
        nodes: list[Node] = []
        for token in tokens:
            handler = self._handlers.get(token.type)
            nodes.extend(handler(token) if handler else self._unknown(token.type))
        return nodes

    def _unknown(self, type_: str) -> list[Node]:
        if not self.preserve_unknown_nodes:
            logger.info("dropping unknown node type %s", type_)
            return []
        self._warn(f"Unknown node type: {type_}")
        return [node("paragraph", text(f"[Unknown node type: {type_}]"))]

    # --- blocks -------------------------------------------------------------

    def _paragraph(self, token: Token) -> list[Node]:
        """Paragraph, promoting private-scheme images to mediaSingle blocks after it."""
        inline: list[Token] = []
        media: list[Node] = []
        for child in token.children or []:
            if _is_media_image(child):
                media.append(self._media(child))
            elif child.type == "image":
                logger.debug("ignoring web image %s", child.attributes.get("src"))
            else:
                inline.append(child)
        content = self.inline(inline)
        meaningful = any(n.type != "text" or n.text.strip() for n in content)
        nodes: list[Node] = []
        if meaningful or (not media and (content or token.metadata)):
            nodes.append(Node(type="paragraph", attrs=_attrs(token), content=content))
        nodes.extend(node("mediaSingle", m, attrs={"layout": "center"}) for m in media)
        return nodes

    def _heading(self, token: Token) -> list[Node]:
        level = clamp_level(token.attributes.get("level", 1))
        return [Node(type="heading", attrs=_attrs(token, {"level": level}), content=self.inline(token.children or []))]

    def _code_block(self, token: Token) -> list[Node]:
        explicit = {"language": token.attributes["language"]} if token.attributes.get("language") else None
        content = [text(token.content)] if token.content else []
        return [Node(type="codeBlock", attrs=_attrs(token, explicit), content=content)]

    def _list(self, token: Token) -> list[Node]:
        ordered = token.attributes.get("ordered", False)
        explicit = None
        if ordered and token.attributes.get("start", 1) != 1:
            explicit = {"order": token.attributes["start"]}
        items = self.blocks(token.children or [])
        return [Node(type="orderedList" if ordered else "bulletList", attrs=_attrs(token, explicit), content=items)]

    def _list_item(self, token: Token) -> list[Node]:
        return [Node(type="listItem", attrs=_attrs(token), content=self.blocks(token.children or []))]

    def _blockquote(self, token: Token) -> list[Node]:
        return [Node(type="blockquote", attrs=_attrs(token), content=self.blocks(token.children or []))]

    def _table(self, token: Token) -> list[Node]:
        header = token.attributes.get("header", False)
        rows = []
        for index, row in enumerate(token.children or []):
            cell_type = "tableHeader" if header and index == 0 else "tableCell"
            cells = [self._cell(cell, cell_type) for cell in row.children or []]
            rows.append(Node(type="tableRow", attrs=_attrs(row), content=cells))
        return [Node(type="table", attrs=_attrs(token), content=rows)]

    def _cell(self, token: Token, cell_type: str) -> Node:
        explicit = {"colspan": token.attributes["colspan"]} if token.attributes.get("colspan", 1) != 1 else None
        inline = self.inline(token.children or [])
        content = [node("paragraph", *inline)] if inline else []
        return Node(type=cell_type, attrs=_attrs(token, explicit), content=content)

    # --- fences -------------------------------------------------------------

    def _fence(self, token: Token) -> list[Node]:
        keyword = token.attributes.get("keyword", "")
        params = dict(token.attributes.get("params") or {})
        handler = self._fences.get(keyword)
        if handler is None:
            return self._unknown(keyword)
        return handler(token, params)

    def _panel(self, token: Token, params: dict[str, Any]) -> list[Node]:
        panel_type = params.pop("type", None) or (token.metadata or {}).get("panelType", "info")
        if panel_type not in PANEL_TYPES:
            self._warn(f"Unknown panel type {panel_type!r} on line {token.line + 1}, using 'info'")
            panel_type = "info"
        attrs = _attrs(token, {**params, "panelType": panel_type})
        return [Node(type="panel", attrs=attrs, content=self.blocks(token.children or []))]

    def _expand(self, token: Token, params: dict[str, Any]) -> list[Node]:
        type_ = token.attributes["keyword"]
        return [Node(type=type_, attrs=_attrs(token, params), content=self.blocks(token.children or []))]

    def _fence_media(self, token: Token) -> list[Node]:
        found: list[Node] = []
        for child in token.children or []:
            for inline in child.children or []:
                if _is_media_image(inline):
                    found.append(self._media(inline))
        return found

    def _media_single(self, token: Token, params: dict[str, Any]) -> list[Node]:
        media = self._fence_media(token)
        if len(media) > 1:
            self._warn(f"mediaSingle on line {token.line + 1} holds {len(media)} media, keeping the first")
        attrs = {"layout": "center", **(token.metadata or {}), **params}
        return [Node(type="mediaSingle", attrs=attrs, content=media[:1])]

    def _media_group(self, token: Token, params: dict[str, Any]) -> list[Node]:
        return [Node(type="mediaGroup", attrs=_attrs(token, params), content=self._fence_media(token))]

    def _media(self, token: Token) -> Node:
        explicit: dict[str, Any] = {"id": token.attributes["src"][len(MEDIA_SCHEME):]}
        if token.attributes.get("alt"):
            explicit["alt"] = token.attributes["alt"]
        attrs = {"type": "file", **(token.metadata or {}), **explicit}
        return atom("media", attrs)

    # --- inline -------------------------------------------------------------

    def inline(self, tokens: list[Token], marks: tuple[Mark, ...] = ()) -> list[Node]:
        """Flatten inline tokens to leaves; inner marks come first in each leaf's mark list."""
        nodes: list[Node] = []
        for token in tokens:
            if token.type == "text":
                if token.content:
                    nodes.append(text(token.content, *marks))
            elif token.type in MARK_TOKENS:
                mark = self._mark(token)
                nodes.extend(self.inline(token.children or [], (mark, *marks) if mark else marks))
            elif token.type == "hardBreak":
                nodes.append(atom("hardBreak"))
            elif token.type in INLINE_ATOMS:
                nodes.append(atom(token.type, _attrs(token, token.attributes)))
            elif token.type == "image":
                logger.debug("ignoring inline image %s", token.attributes.get("src"))
            else:
                nodes.extend(self._unknown(token.type))
        return _merge_text(nodes)

    def _mark(self, token: Token) -> Mark | None:
        explicit = {k: v for k, v in token.attributes.items() if v is not None}
        try:
            return Mark(type=token.type, attrs=_attrs(token, explicit))
        except pydantic.ValidationError as e:
            self._warn(f"Dropping invalid {token.type} mark on line {token.line + 1}: {e.errors()[0]['msg']}")
            return None


def _merge_text(nodes: list[Node]) -> list[Node]:
    """Join adjacent text leaves that carry identical marks."""
    merged: list[Node] = []
    for n in nodes:
        prev = merged[-1] if merged else None
        if prev is not None and n.type == "text" and prev.type == "text" and prev.marks == n.marks:
            merged[-1] = text(prev.text + n.text, *(n.marks or []))
        else:
            merged.append(n)
    return merged

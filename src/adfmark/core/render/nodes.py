"""Node converters: one class per ADF node type, dispatched through the registry"""

import re
from datetime import datetime, timezone
from typing import Any

from adfmark.core import metadata
from adfmark.core.build import MEDIA_SCHEME, clamp_level
from adfmark.core.models import Node
from adfmark.core.render.registry import ConversionContext
from adfmark.core.tokenize import TABLE_SEP_RE
from adfmark.core.utils.emoji import derived_keys
from adfmark.errors import ConversionError


PLACEHOLDER_START_RE = re.compile(r"\{(?=(?:user|date|status|card):)")
EMOJI_LIKE_RE = re.compile(r"(?<![A-Za-z0-9]):(?=[a-zA-Z0-9_+\-]+:)")
BOUNDARY_UNDERSCORE_RE = re.compile(r"(?<![A-Za-z0-9])_|_(?![A-Za-z0-9])")
BLOCK_START_RE = re.compile(r"^( {0,3})(?:#|>|[-+*](?=\s|$)|\||(?:-{3,}|_{3,})\s*$)")
ORDERED_START_RE = re.compile(r"^( ?\d{1,9})([.)])(?=\s|$)")
PIPE_RE = re.compile(r"(\\*)\|")
BARE_VALUE_RE = re.compile(r"^[A-Za-z_][\w.#:/-]*$")
DAY_MS = 86_400_000


def escape_text(value: str) -> str:
    """Backslash-escape characters the inline grammar would read as syntax."""
    value = value.replace("\\", "\\\\")
    value = re.sub(r"([`*\[\]<~])", r"\\\1", value)
    value = BOUNDARY_UNDERSCORE_RE.sub(r"\\_", value)
    value = PLACEHOLDER_START_RE.sub(r"\\{", value)
    return EMOJI_LIKE_RE.sub(r"\\:", value)


def escape_block_starts(body: str) -> str:
    """Escape paragraph lines that would otherwise open a heading, list, quote, rule or table."""
    lines = body.split("\n")
    for k, line in enumerate(lines):
        m = BLOCK_START_RE.match(line)
        if m:
            lines[k] = line[:m.end(1)] + "\\" + line[m.end(1):]
        elif k and "|" in line and "|" in lines[k - 1] and TABLE_SEP_RE.match(line):
            indent = len(line) - len(line.lstrip())
            lines[k] = line[:indent] + "\\" + line[indent:]
        else:
            lines[k] = ORDERED_START_RE.sub(r"\1\\\2", line)
    return "\n".join(lines)


def escape_pipes(value: str) -> str:
    """Escape every pipe not already escaped, counting backslash runs."""
    return PIPE_RE.sub(lambda m: m.group(0) if len(m.group(1)) % 2 else m.group(1) + "\\|", value)


def fence_value(value: Any, quote: bool = False) -> str:
    """Render a fence attribute value: bare when it re-reads as the same value, quoted otherwise."""
    if isinstance(value, bool) and not quote:
        return "true" if value else "false"
    if isinstance(value, (int, float)) and not quote:
        return str(value)
    text = str(value)
    if not quote and BARE_VALUE_RE.match(text) and text not in ("true", "false"):
        return text
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _rest(node: Node, *native: str) -> dict[str, Any]:
    return {k: v for k, v in (node.attrs or {}).items() if k not in native}


def _inline_tail(node: Node, *native: str) -> str:
    return metadata.encode(node.type, _rest(node, *native))


def _with_trailer(body: str, comment: str) -> str:
    """Append a metadata comment on its own line after a block."""
    return f"{body}\n{comment}" if comment else body


def _with_suffix(body: str, comment: str) -> str:
    """Append a metadata comment at the end of the block's last line."""
    if not comment:
        return body
    return f"{body} {comment}" if body else ""


class DocConverter:
    node_type = "doc"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        return ctx.blocks(node)


class TextConverter:
    """Escape the text, then wrap it in each mark; the first mark is the innermost."""
    node_type = "text"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        marks = list(node.marks or [])
        value = node.text or ""
        code = [m for m in marks if m.type == "code"]
        if not code:
            value = escape_text(value)
        if ctx.in_table:
            value = value.replace("\n", "<br>")
        if not marks:
            return value
        # whitespace at the edges would break delimiter flanking
        core = value if code else value.strip()
        if not core:
            return value
        lead = value[:len(value) - len(value.lstrip())] if not code else ""
        trail = value[len(value.rstrip()):] if not code else ""
        for mark in code + [m for m in marks if m.type != "code"]:
            core = ctx.apply_mark(core, mark)
        return f"{lead}{core}{trail}"


class HardBreakConverter:
    node_type = "hardBreak"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        return "<br>" if ctx.in_table else "\\\n"


class ParagraphConverter:
    node_type = "paragraph"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        body = ctx.inline(node)
        if not ctx.in_table:
            body = escape_block_starts(body)
        return _with_suffix(body, metadata.encode("paragraph", node.attrs))


class HeadingConverter:
    node_type = "heading"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        level = clamp_level(node.attr("level", 1))
        body = ctx.inline(node).replace("\\\n", " ")
        line = f"{'#' * level} {body}".rstrip()
        return _with_suffix(line, _inline_tail(node, "level"))


class RuleConverter:
    node_type = "rule"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        return _with_trailer("---", metadata.encode("rule", node.attrs))


class CodeBlockConverter:
    node_type = "codeBlock"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        code = node.plain_text()
        longest = max((len(run) for run in re.findall(r"^`{3,}", code, re.MULTILINE)), default=2)
        fence = "`" * max(3, longest + 1)
        language = node.attr("language") or ""
        return _with_trailer(f"{fence}{language}\n{code}\n{fence}", _inline_tail(node, "language"))


class BlockquoteConverter:
    node_type = "blockquote"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        body = ctx.blocks(node)
        quoted = "\n".join(f"> {line}" if line else ">" for line in body.split("\n"))
        return _with_trailer(quoted, metadata.encode("blockquote", node.attrs))


class BulletListConverter:
    node_type = "bulletList"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        item_ctx = ctx.child(node, list_marker="-")
        items = "\n".join(item_ctx.render(item) for item in node.children)
        return _with_trailer(items, metadata.encode("bulletList", node.attrs))


class OrderedListConverter:
    node_type = "orderedList"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        start = node.attr("order", 1)
        if not isinstance(start, int) or start < 0:
            start = 1
        rendered = [
            ctx.child(node, list_marker=f"{start + i}.").render(item)
            for i, item in enumerate(node.children)
        ]
        return _with_trailer("\n".join(rendered), _inline_tail(node, "order"))


class ListItemConverter:
    """Marker on the first line, two-space indent on continuation lines."""
    node_type = "listItem"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        body = ctx.blocks(node)
        comment = metadata.encode("listItem", node.attrs)
        if comment:
            body = f"{body}\n{comment}" if body else comment
        lines = body.split("\n")
        first = f"{ctx.list_marker} {lines[0]}".rstrip()
        rest = [f"  {line}" if line else "" for line in lines[1:]]
        return "\n".join([first, *rest])


class TableConverter:
    node_type = "table"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        row_ctx = ctx.child(node, in_table=True)
        rows = [row_ctx.render(row) for row in node.children]
        first = node.children[0] if node.children else None
        if first is not None and first.children and all(c.type == "tableHeader" for c in first.children):
            header, _ = metadata.split_trailing(rows[0])
            columns = len(re.findall(r"(?<!\\)\|", header)) - 1
            rows.insert(1, "| " + " | ".join(["---"] * max(columns, 1)) + " |")
        return _with_trailer("\n".join(rows), metadata.encode("table", node.attrs))


class TableRowConverter:
    node_type = "tableRow"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        cell_ctx = ctx.child(node, in_table=True)
        cells = [cell_ctx.render(cell) for cell in node.children]
        return "| " + " | ".join(cells) + " |" + metadata.encode("tableRow", node.attrs)


class TableCellConverter:
    """Cell content, then the colspan marker, then the JSON comment, with no separator between comments."""
    node_type = "tableCell"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        parts = []
        for child in node.children:
            if child.type == "paragraph":
                parts.append(ctx.inline(child, in_table=True))
            else:
                parts.append(ctx.child(node, in_table=True).render(child).replace("\n", "<br>"))
        content = escape_pipes("<br><br>".join(p for p in parts if p))
        attrs = dict(node.attrs or {})
        colspan = attrs.get("colspan")
        if isinstance(colspan, int) and colspan > 1:
            del attrs["colspan"]
            content += " " + metadata.encode_colspan(colspan)
        return content + metadata.encode(node.type, attrs)


class TableHeaderConverter(TableCellConverter):
    node_type = "tableHeader"


class _FenceConverter:
    """`~~~keyword k=v` fence; attrs the fence line does not carry trail the closing fence."""
    node_type = ""
    quoted: tuple[str, ...] = ()

    def params(self, node: Node) -> dict[str, Any]:
        return {}

    def native(self, node: Node) -> tuple[str, ...]:
        return ()

    def body(self, node: Node, ctx: ConversionContext) -> str:
        return ctx.blocks(node)

    def render(self, node: Node, ctx: ConversionContext) -> str:
        pairs = [f"{k}={fence_value(v, k in self.quoted)}" for k, v in self.params(node).items()]
        head = " ".join([f"~~~{self.node_type}", *pairs])
        return _with_trailer(f"{head}\n{self.body(node, ctx)}\n~~~", _inline_tail(node, *self.native(node)))


class PanelConverter(_FenceConverter):
    node_type = "panel"

    def params(self, node: Node) -> dict[str, Any]:
        return {"type": node.attr("panelType", "info")}

    def native(self, node: Node) -> tuple[str, ...]:
        return ("panelType",)


class ExpandConverter(_FenceConverter):
    node_type = "expand"
    quoted = ("title",)

    def params(self, node: Node) -> dict[str, Any]:
        title = node.attr("title")
        return {} if title is None else {"title": title}

    def native(self, node: Node) -> tuple[str, ...]:
        return ("title",)


class NestedExpandConverter(ExpandConverter):
    node_type = "nestedExpand"


class MediaSingleConverter(_FenceConverter):
    node_type = "mediaSingle"

    def params(self, node: Node) -> dict[str, Any]:
        params = {"layout": node.attr("layout", "center")}
        if self._numeric_width(node):
            params["width"] = node.attr("width")
        return params

    def native(self, node: Node) -> tuple[str, ...]:
        return ("layout", "width") if self._numeric_width(node) else ("layout",)

    def body(self, node: Node, ctx: ConversionContext) -> str:
        return "\n".join(ctx.child(node).render(media) for media in node.children)

    @staticmethod
    def _numeric_width(node: Node) -> bool:
        width = node.attr("width")
        return isinstance(width, (int, float)) and not isinstance(width, bool)


class MediaGroupConverter(_FenceConverter):
    node_type = "mediaGroup"

    def body(self, node: Node, ctx: ConversionContext) -> str:
        return "\n".join(ctx.child(node).render(media) for media in node.children)


class MediaConverter:
    """`![alt](adf:media:ID)` with every other attr in a glued comment; type 'file' is implied."""
    node_type = "media"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        media_id = node.attr("id")
        if not media_id:
            raise ConversionError("media node without an id", "media")
        alt = str(node.attr("alt") or "").replace("\\", "\\\\").replace("]", "\\]").replace("[", "\\[")
        native = ["id", "alt"]
        if node.attr("type") == "file":
            native.append("type")
        return f"![{alt}]({MEDIA_SCHEME}{media_id}){_inline_tail(node, *native)}"


class MentionConverter:
    node_type = "mention"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        user = node.attr("id")
        if not user:
            raise ConversionError("mention node without an id", "mention")
        return f"{{user:{user}}}{_inline_tail(node, 'id')}"


class StatusConverter:
    node_type = "status"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        label = re.sub(r"([\\|{}])", r"\\\1", str(node.attr("text", "")))
        if not label:
            raise ConversionError("status node without text", "status")
        color = node.attr("color")
        native = ["text"]
        if isinstance(color, str) and color.isalpha():
            label += f"|color:{color}"
            native.append("color")
        return f"{{status:{label}}}{_inline_tail(node, *native)}"


class DateConverter:
    """`{date:YYYY-MM-DD}` for midnight-UTC timestamps, the raw timestamp otherwise."""
    node_type = "date"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        timestamp = str(node.attr("timestamp", ""))
        if not timestamp.isdigit():
            raise ConversionError(f"date node with invalid timestamp {timestamp!r}", "date")
        value = timestamp
        if int(timestamp) % DAY_MS == 0:
            value = datetime.fromtimestamp(int(timestamp) / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        return f"{{date:{value}}}{_inline_tail(node, 'timestamp')}"


class EmojiConverter:
    node_type = "emoji"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        attrs = node.attrs or {}
        name = str(attrs.get("shortName", "")).strip(":")
        if not name:
            return escape_text(str(attrs.get("text", "")))
        extra = {k: v for k, v in attrs.items() if k not in derived_keys(attrs)}
        return f":{name}:{metadata.encode('emoji', extra)}"


class InlineCardConverter:
    node_type = "inlineCard"

    def render(self, node: Node, ctx: ConversionContext) -> str:
        url = node.attr("url")
        if not url:
            raise ConversionError("inlineCard node without a url", "inlineCard")
        return f"{{card:{url}}}{_inline_tail(node, 'url')}"


NODE_CONVERTERS = (
    DocConverter(), TextConverter(), HardBreakConverter(), ParagraphConverter(), HeadingConverter(),
    RuleConverter(), CodeBlockConverter(), BlockquoteConverter(), BulletListConverter(),
    OrderedListConverter(), ListItemConverter(), TableConverter(), TableRowConverter(),
    TableCellConverter(), TableHeaderConverter(), PanelConverter(), ExpandConverter(),
    NestedExpandConverter(), MediaSingleConverter(), MediaGroupConverter(), MediaConverter(),
    MentionConverter(), StatusConverter(), DateConverter(), EmojiConverter(), InlineCardConverter(),
)

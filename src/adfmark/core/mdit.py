"""markdown-it-py front end: generic CommonMark/GFM token stream to adfmark tokens"""

import logging

from markdown_it import MarkdownIt
from markdown_it.token import Token as MdToken

from adfmark.core import metadata
from adfmark.core.models import MetadataRecord, Token, TokenizeResult
from adfmark.core.tokenize import ADF_FENCE_RE, Tokenizer


logger = logging.getLogger(__name__)


def make_parser(preset: str = "gfm-like") -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name."""
    return MarkdownIt(preset, options_update={"linkify": False})


def _close_index(tokens: list[MdToken], i: int) -> int:
    """Index of the *_close token pairing tokens[i]."""
    closing = tokens[i].type.replace("_open", "_close")
    level = tokens[i].level
    for j in range(i + 1, len(tokens)):
        if tokens[j].type == closing and tokens[j].level == level:
            return j
    return len(tokens) - 1


class MarkdownItTokenizer(Tokenizer):
    """Block structure from markdown-it; inline text, fences and comments through the shared grammar.

    Agrees with the extended tokenizer on CommonMark-expressible input. Nested ~~~ fences and
    header-less pipe tables are outside what markdown-it can see.
    """

    def __init__(self, strict: bool = False, preset: str = "gfm-like"):
        super().__init__(strict=strict)
        self.md = make_parser(preset)

    def tokenize(self, text: str) -> TokenizeResult:
        lines = text.replace("\r\n", "\n").split("\n")
        tokens: list[Token] = []
        start = 0
        frontmatter = self._frontmatter(lines)
        if frontmatter:
            token, start = frontmatter
            tokens.append(token)
        body = "\n".join(lines[start:])
        blocks, records = self._convert(self.md.parse(body), start)
        orphans = metadata.associate(blocks, records)
        for record in orphans:
            self._warn(f"Metadata comment for {record.node_type} on line {record.line + 1} matches no element")
        tokens.extend(blocks)
        return TokenizeResult(tokens, orphans, self.warnings + self.inline.warnings)

    def _adopt(self, container: Token, children: list[Token], records: list[MetadataRecord], outer: list[MetadataRecord]) -> None:
        """Associate a container body's comments; unplaced ones go to the container or bubble up."""
        for record in metadata.associate(children, records):
            if record.node_type == container.node_type:
                container.merge_metadata(record.attrs)
            else:
                outer.append(record)
        container.children = children

    def _convert(self, tokens: list[MdToken], base: int) -> tuple[list[Token], list[MetadataRecord]]:
        out: list[Token] = []
        records: list[MetadataRecord] = []
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            line = base + (tok.map[0] if tok.map else 0)
            kind = tok.type

            if kind in ("heading_open", "paragraph_open"):
                raw = tokens[i + 1].content if i + 1 < len(tokens) else ""
                out.append(self._textblock(kind, tok, raw, line))
                i = _close_index(tokens, i) + 1
            elif kind == "fence":
                out.append(self._fence(tok, line, records))
                i += 1
            elif kind == "code_block":
                out.append(Token("codeBlock", tok.content.rstrip("\n"), line=line))
                i += 1
            elif kind == "hr":
                out.append(Token("rule", line=line))
                i += 1
            elif kind == "html_block":
                out.extend(self._html_block(tok, line, records))
                i += 1
            elif kind in ("bullet_list_open", "ordered_list_open"):
                end = _close_index(tokens, i)
                out.append(self._list(tokens[i:end + 1], base, line, records))
                i = end + 1
            elif kind == "blockquote_open":
                end = _close_index(tokens, i)
                children, inner = self._convert(tokens[i + 1:end], base)
                quote = Token("blockquote", line=line)
                self._adopt(quote, children, inner, records)
                out.append(quote)
                i = end + 1
            elif kind == "table_open":
                end = _close_index(tokens, i)
                out.append(self._md_table(tokens[i:end + 1], base, line))
                i = end + 1
            else:
                logger.debug("skipping markdown-it token %s", kind)
                i += 1
        return out, records

    def _textblock(self, kind: str, tok: MdToken, raw: str, line: int) -> Token:
        if kind == "heading_open":
            text, meta = self._trailing_meta(raw, "heading", line)
            return Token(
                "heading", text,
                children=self.inline.tokenize(text, line),
                attributes={"level": int(tok.tag[1:])},
                metadata=meta, line=line,
            )
        text, meta = self._trailing_meta(raw, "paragraph", line)
        return Token("paragraph", text, children=self.inline.tokenize(text, line), metadata=meta, line=line)

    def _fence(self, tok: MdToken, line: int, records: list[MetadataRecord]) -> Token:
        m = ADF_FENCE_RE.match(f"{tok.markup}{tok.info}") if tok.markup.startswith("~") else None
        if not m:
            language = tok.info.strip().split(" ")[0]
            attributes = {"language": language} if language else {}
            return Token("codeBlock", tok.content.rstrip("\n"), attributes=attributes, line=line)
        token = Token(
            "fence",
            attributes={"keyword": m.group(1), "params": self._fence_params(m.group(2), line)},
            line=line,
        )
        children, inner = self._convert(self.md.parse(tok.content), line + 1)
        self._adopt(token, children, inner, records)
        return token

    def _html_block(self, tok: MdToken, line: int, records: list[MetadataRecord]) -> list[Token]:
        """Standalone metadata comments are queued; any other HTML stays as paragraph text."""
        literal = []
        for offset, raw in enumerate(tok.content.rstrip("\n").split("\n")):
            if metadata.is_standalone(raw):
                self._queue(raw, line + offset, records)
            elif raw.strip():
                literal.append(raw)
        if not literal:
            return []
        text = "\n".join(literal)
        return [Token("paragraph", text, children=self.inline.tokenize(text, line), line=line)]

    def _list(self, tokens: list[MdToken], base: int, line: int, records: list[MetadataRecord]) -> Token:
        opener = tokens[0]
        ordered = opener.type == "ordered_list_open"
        token = Token("list", attributes={"ordered": ordered, "tight": True}, line=line)
        if ordered:
            token.attributes["start"] = int(opener.attrGet("start") or 1)
        items: list[Token] = []
        i = 1
        while i < len(tokens) - 1:
            if tokens[i].type != "list_item_open":
                i += 1
                continue
            end = _close_index(tokens, i)
            item_line = base + (tokens[i].map[0] if tokens[i].map else 0)
            children, inner = self._convert(tokens[i + 1:end], base)
            item = Token("listItem", line=item_line)
            self._adopt(item, children, inner, records)
            items.append(item)
            i = end + 1
        token.children = items
        return token

    def _md_table(self, tokens: list[MdToken], base: int, line: int) -> Token:
        rows: list[Token] = []
        header = any(t.type == "thead_open" for t in tokens)
        for i, tok in enumerate(tokens):
            if tok.type != "tr_open":
                continue
            end = _close_index(tokens, i)
            row_line = base + (tok.map[0] if tok.map else 0)
            cells = [
                self._cell(tokens[k + 1].content, row_line)
                for k in range(i, end)
                if tokens[k].type in ("th_open", "td_open")
            ]
            rows.append(Token("tableRow", children=cells, line=row_line))
        return Token("table", children=rows, attributes={"header": header}, line=line)

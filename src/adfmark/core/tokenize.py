"""Block grammar for Extended Markdown: line-oriented tokenizer with recursive containers"""

import json
import logging
import re
from typing import Any

from adfmark.core import metadata
from adfmark.core.inline import InlineTokenizer
from adfmark.core.models import MetadataRecord, Token, TokenizeResult
from adfmark.errors import MetadataError, ParserError


logger = logging.getLogger(__name__)

FRONTMATTER_MAX_LINES = 50
ADF_FENCE_RE = re.compile(r"^ {0,3}~~~([a-zA-Z][\w-]*)(?:\s+(.*?))?\s*$")
FENCE_CLOSE_RE = re.compile(r"^ {0,3}~~~\s*$")
CODE_FENCE_RE = re.compile(r"^ {0,3}(`{3,})\s*([^`\s]*)[^`]*$")
HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
RULE_RE = re.compile(r"^ {0,3}(?:-{3,}|\*{3,}|_{3,})\s*$")
LIST_RE = re.compile(r"^ ?([-*+]|\d{1,9}[.)])(?:[ \t]+(.*)|[ \t]*$)")
QUOTE_RE = re.compile(r"^ {0,3}> ?")
TABLE_SEP_RE = re.compile(r"^\s*\|?\s*:?-+:?\s*(?:\|\s*:?-+:?\s*)*\|?\s*$")
ATTR_RE = re.compile(r"""(\w+)=(?:"((?:[^"\\]|\\.)*)"|'([^']*)'|(\S+))""")
INT_RE = re.compile(r"^-?\d+$")
FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


def _coerce(value: str) -> Any:
    """Coerce an unquoted fence attribute value to bool/int/float where it reads as one."""
    if value in ("true", "false"):
        return value == "true"
    if INT_RE.match(value):
        return int(value)
    if FLOAT_RE.match(value):
        return float(value)
    return value


def _split_cells(row: str) -> list[str]:
    """Split a table row on pipes that are not backslash-escaped."""
    row = row.strip()
    cells: list[str] = []
    buf: list[str] = []
    i = 0
    while i < len(row):
        c = row[i]
        if c == "\\" and i + 1 < len(row):
            buf.append(row[i:i + 2])
            i += 2
            continue
        if c == "|":
            cells.append("".join(buf))
            buf = []
        else:
            buf.append(c)
        i += 1
    cells.append("".join(buf))
    if row.startswith("|"):
        cells = cells[1:]
    if len(cells) > 1 and cells[-1] == "":
        cells = cells[:-1]
    return cells


def _is_pipe_row(line: str) -> bool:
    row, _ = metadata.split_trailing(line.strip())
    row = row.strip()
    return len(row) >= 2 and row.startswith("|") and row.endswith("|")


class Tokenizer:
    """Turn Extended Markdown text into a block token tree with inline children."""

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.warnings: list[str] = []
        self.inline = InlineTokenizer(strict=strict)

    def tokenize(self, text: str) -> TokenizeResult:
        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        tokens: list[Token] = []
        start = 0
        frontmatter = self._frontmatter(lines)
        if frontmatter:
            token, start = frontmatter
            tokens.append(token)
        blocks, orphans = self._blocks(lines[start:], start)
        for record in orphans:
            self._warn(f"Metadata comment for {record.node_type} on line {record.line + 1} matches no element")
        tokens.extend(blocks)
        return TokenizeResult(tokens, orphans, self.warnings + self.inline.warnings)

    def _warn(self, msg: str) -> None:
        self.warnings.append(msg)
        logger.warning(msg)

    def _report(self, err: ParserError) -> None:
        if self.strict:
            raise err
        self._warn(str(err))

    def _frontmatter(self, lines: list[str]) -> tuple[Token, int] | None:
        """YAML header: '---' on line 1 and a closing '---' within the first lines."""
        if not lines or lines[0].strip() != "---":
            return None
        for k in range(1, min(len(lines), FRONTMATTER_MAX_LINES + 1)):
            if lines[k].strip() == "---":
                return Token("frontmatter", "\n".join(lines[1:k]), line=0), k + 1
        return None

    def _blocks(self, lines: list[str], base: int) -> tuple[list[Token], list[MetadataRecord]]:
        """Tokenize one nesting level, then associate the level's standalone comments."""
        tokens: list[Token] = []
        records: list[MetadataRecord] = []
        readers = (
            self._adf_fence, self._code_fence, self._heading, self._table,
            self._rule, self._list, self._blockquote,
        )
        i = 0
        while i < len(lines):
            line = lines[i]
            if not line.strip():
                i += 1
                continue
            if metadata.is_standalone(line):
                self._queue(line, base + i, records)
                i += 1
                continue
            for reader in readers:
                result = reader(lines, i, base, records)
                if result:
                    token, i = result
                    break
            else:
                token, i = self._paragraph(lines, i, base)
            tokens.append(token)
        return tokens, metadata.associate(tokens, records)

    def _queue(self, line: str, lineno: int, records: list[MetadataRecord]) -> None:
        try:
            records.append(metadata.decode(line.strip(), lineno))
        except MetadataError as e:
            self._report(e)

    def _nested(self, container: Token, lines: list[str], base: int, records: list[MetadataRecord]) -> list[Token]:
        """Tokenize a container body; comments it cannot place go to the container or bubble up."""
        children, orphans = self._blocks(lines, base)
        for record in orphans:
            if record.node_type == container.node_type:
                container.merge_metadata(record.attrs)
            else:
                records.append(record)
        return children

    def _trailing_meta(self, text: str, node_type: str, lineno: int) -> tuple[str, dict | None]:
        """Split off a trailing comment addressed to node_type; other comments stay for the inline pass."""
        content, raw = metadata.split_trailing(text)
        if raw is None:
            return text, None
        try:
            record = metadata.decode(raw, lineno)
        except MetadataError as e:
            self._report(e)
            return content.rstrip(), None
        if record.node_type != node_type:
            return text, None
        return content.rstrip(), record.attrs

    def _fence_params(self, raw: str | None, lineno: int) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for m in ATTR_RE.finditer(raw or ""):
            key, dq, sq, bare = m.groups()
            if key == "attrs" and sq is not None:
                try:
                    extra = json.loads(sq)
                except json.JSONDecodeError as e:
                    self._report(MetadataError(f"Invalid JSON in fence attrs: {e.msg}", raw=sq, line=lineno))
                    continue
                if isinstance(extra, dict):
                    params.update(extra)
                continue
            if dq is not None:
                params[key] = re.sub(r'\\(["\\])', r"\1", dq)
            elif sq is not None:
                params[key] = sq
            else:
                params[key] = _coerce(bare)
        return params

    def _adf_fence(self, lines, i, base, records):
        m = ADF_FENCE_RE.match(lines[i])
        if not m:
            return None
        keyword = m.group(1)
        depth, in_code, j = 0, False, i + 1
        while j < len(lines):
            line = lines[j]
            if line.lstrip().startswith("```"):
                in_code = not in_code
            elif not in_code and ADF_FENCE_RE.match(line):
                depth += 1
            elif not in_code and FENCE_CLOSE_RE.match(line):
                if depth == 0:
                    break
                depth -= 1
            j += 1
        if j >= len(lines):
            self._report(ParserError(
                f"Unterminated ~~~{keyword} fence", code="UNTERMINATED_FENCE", line=base + i,
            ))
        token = Token(
            "fence",
            attributes={"keyword": keyword, "params": self._fence_params(m.group(2), base + i)},
            line=base + i,
        )
        token.children = self._nested(token, lines[i + 1:j], base + i + 1, records)
        return token, j + 1

    def _code_fence(self, lines, i, base, records):
        m = CODE_FENCE_RE.match(lines[i])
        if not m:
            return None
        fence, language = m.group(1), m.group(2)
        indent = len(lines[i]) - len(lines[i].lstrip())
        close_re = re.compile(rf"^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}\s*$")
        j = i + 1
        while j < len(lines) and not close_re.match(lines[j]):
            j += 1
        if j >= len(lines):
            self._report(ParserError("Unterminated code fence", code="UNTERMINATED_FENCE", line=base + i))
        body = [line[indent:] if not line[:indent].strip() else line.lstrip() for line in lines[i + 1:j]]
        attributes = {"language": language} if language else {}
        return Token("codeBlock", "\n".join(body), attributes=attributes, line=base + i), j + 1

    def _heading(self, lines, i, base, records):
        m = HEADING_RE.match(lines[i])
        if not m:
            return None
        text, meta = self._trailing_meta(m.group(2) or "", "heading", base + i)
        token = Token(
            "heading", text,
            children=self.inline.tokenize(text, base + i),
            attributes={"level": len(m.group(1))},
            metadata=meta,
            line=base + i,
        )
        return token, i + 1

    def _table(self, lines, i, base, records):
        header = lines[i]
        has_header = (
            "|" in header
            and i + 1 < len(lines)
            and "|" in lines[i + 1]
            and bool(TABLE_SEP_RE.match(lines[i + 1]))
        )
        if not has_header and not _is_pipe_row(header):
            return None
        rows = [self._row(header, base + i)]
        j = i + 2 if has_header else i + 1
        while j < len(lines):
            line = lines[j]
            if not line.strip() or metadata.is_standalone(line):
                break
            if not (_is_pipe_row(line) or (has_header and "|" in line)):
                break
            rows.append(self._row(line, base + j))
            j += 1
        token = Token("table", children=rows, attributes={"header": has_header}, line=base + i)
        return token, j

    def _row(self, line: str, lineno: int) -> Token:
        text, meta = self._trailing_meta(line.strip(), "tableRow", lineno)
        cells = [self._cell(raw, lineno) for raw in _split_cells(text)]
        return Token("tableRow", children=cells, metadata=meta, line=lineno)

    def _cell(self, raw: str, lineno: int) -> Token:
        # every pipe left in a split cell is escaped; drop exactly that one backslash
        text, meta = raw.strip().replace("\\|", "|"), None
        content, comment = metadata.split_trailing(text)
        if comment is not None:
            try:
                record = metadata.decode(comment, lineno)
            except MetadataError as e:
                self._report(e)
                text = content
            else:
                if record.node_type in ("tableCell", "tableHeader"):
                    text, meta = content, record.attrs
        text, colspan = metadata.split_colspan(text)
        text = text.strip()
        attributes = {"colspan": colspan} if colspan else {}
        return Token(
            "tableCell", text,
            children=self.inline.tokenize(text, lineno),
            attributes=attributes,
            metadata=meta,
            line=lineno,
        )

    def _rule(self, lines, i, base, records):
        if not RULE_RE.match(lines[i]):
            return None
        return Token("rule", line=base + i), i + 1

    def _list(self, lines, i, base, records):
        m = LIST_RE.match(lines[i])
        if not m:
            return None
        ordered = m.group(1)[0].isdigit()
        token = Token("list", attributes={"ordered": ordered, "tight": True}, line=base + i)
        if ordered:
            token.attributes["start"] = int(m.group(1)[:-1])
        items: list[Token] = []
        j = i
        while j < len(lines):
            m = LIST_RE.match(lines[j])
            if not m or m.group(1)[0].isdigit() != ordered:
                break
            item_start = j
            body = [m.group(2) or ""]
            j += 1
            while j < len(lines):
                line = lines[j]
                if not line.strip():
                    k = j
                    while k < len(lines) and not lines[k].strip():
                        k += 1
                    if k < len(lines) and lines[k].startswith("  "):
                        body.extend("" for _ in range(j, k))
                        j = k
                        continue
                    if k < len(lines) and LIST_RE.match(lines[k]):
                        token.attributes["tight"] = False
                    break
                if line.startswith("  "):
                    body.append(line[2:])
                elif metadata.is_standalone(line) or self._starts_block(line) or not body[-1].strip():
                    break
                else:
                    body.append(line)
                j += 1
            item = Token("listItem", line=base + item_start)
            item.children = self._nested(item, body, base + item_start, records)
            items.append(item)
            if j < len(lines) and not lines[j].strip():
                k = j
                while k < len(lines) and not lines[k].strip():
                    k += 1
                if k < len(lines) and LIST_RE.match(lines[k]) and LIST_RE.match(lines[k]).group(1)[0].isdigit() == ordered:
                    j = k
                    continue
                break
        token.children = items
        return token, j

    def _blockquote(self, lines, i, base, records):
        if not QUOTE_RE.match(lines[i]):
            return None
        j = i
        body = []
        while j < len(lines) and QUOTE_RE.match(lines[j]):
            body.append(QUOTE_RE.sub("", lines[j], count=1))
            j += 1
        token = Token("blockquote", line=base + i)
        token.children = self._nested(token, body, base + i, records)
        return token, j

    def _starts_block(self, line: str) -> bool:
        return bool(
            ADF_FENCE_RE.match(line) or FENCE_CLOSE_RE.match(line) or CODE_FENCE_RE.match(line)
            or HEADING_RE.match(line) or RULE_RE.match(line) or QUOTE_RE.match(line)
            or LIST_RE.match(line) or _is_pipe_row(line)
        )

    def _paragraph(self, lines: list[str], i: int, base: int) -> tuple[Token, int]:
        j = i + 1
        while j < len(lines):
            line = lines[j]
            if not line.strip() or metadata.is_standalone(line) or self._starts_block(line):
                break
            j += 1
        last = base + j - 1
        text = "\n".join(line.lstrip() for line in lines[i:j])
        text, meta = self._trailing_meta(text, "paragraph", last)
        token = Token(
            "paragraph", text,
            children=self.inline.tokenize(text, base + i),
            metadata=meta,
            line=base + i,
        )
        return token, j

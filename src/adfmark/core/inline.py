"""Inline grammar: marks, links, placeholders and inline metadata comments"""

import logging
import re
import string
from datetime import datetime, timezone

from adfmark.core import metadata
from adfmark.core.models import Token
from adfmark.core.utils.emoji import EMOJI, emoji_attrs
from adfmark.errors import MetadataError


logger = logging.getLogger(__name__)

MARK_TOKENS = frozenset({
    "strong", "em", "code", "strike", "link",
    "underline", "textColor", "backgroundColor", "subsup",
})
ESCAPABLE = frozenset(string.punctuation)

MENTION_RE = re.compile(r"\{user:([^{}\s]+)\}")
DATE_RE = re.compile(r"\{date:([^{}\s]+)\}")
STATUS_RE = re.compile(r"\{status:((?:[^{}|\\]|\\.)+)(?:\|color:([a-zA-Z]+))?\}")
CARD_RE = re.compile(r"\{card:([^{}\s]+)\}")
EMOJI_RE = re.compile(r":([a-zA-Z0-9_+\-]+):")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
LINK_TAIL_RE = re.compile(r'\(\s*(<[^>]*>|[^\s()]*)(?:\s+"((?:[^"\\]|\\.)*)")?\s*\)')
HARD_BREAK_RE = re.compile(r" {2,}\n")
BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
SPAN_COLOR_RE = re.compile(r'<span style="color:\s*(#[0-9a-fA-F]{6});?">')
MARK_COLOR_RE = re.compile(r'<mark style="background-color:\s*(#[0-9a-fA-F]{6});?">')
SIMPLE_TAGS = {"<u>": ("underline", "u"), "<sub>": ("subsup", "sub"), "<sup>": ("subsup", "sup")}


def unescape(value: str) -> str:
    """Drop backslashes in front of ASCII punctuation."""
    return re.sub(r"\\([!-/:-@\[-`{-~])", r"\1", value)


def date_to_timestamp(value: str) -> str | None:
    """Turn a YYYY-MM-DD date or a millisecond timestamp into the ADF timestamp string."""
    if value.isdigit():
        return value
    m = ISO_DATE_RE.match(value)
    if not m:
        return None
    try:
        day = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=timezone.utc)
    except ValueError:
        return None
    return str(int(day.timestamp() * 1000))


class InlineTokenizer:
    """Tokenize the inline content of one paragraph, heading or table cell."""

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.warnings: list[str] = []
        self._line = 0

    def tokenize(self, text: str, line: int = 0) -> list[Token]:
        self._line = line
        return self._parse(text)

    def _report(self, err: MetadataError) -> None:
        if self.strict:
            raise err
        self.warnings.append(str(err))
        logger.warning("%s", err)

    def _parse(self, s: str) -> list[Token]:
        out: list[Token] = []
        buf: list[str] = []
        i = 0
        while i < len(s):
            matched = self._match(s, i)
            if matched is None:
                buf.append(s[i])
                i += 1
                continue
            tok, i = matched
            if tok is None:
                continue
            if tok.type == "text":
                buf.append(tok.content)
                continue
            if buf:
                out.append(Token("text", "".join(buf), line=self._line))
                buf = []
            i = self._attach_comment(s, i, tok)
            out.append(tok)
        if buf:
            out.append(Token("text", "".join(buf), line=self._line))
        return out

    def _attach_comment(self, s: str, i: int, tok: Token) -> int:
        """Consume a metadata comment glued to the end of tok and merge it when the type matches."""
        m = metadata.COMMENT_RE.match(s, i)
        if not m:
            return i
        try:
            record = metadata.decode(m.group(0), self._line)
        except MetadataError as e:
            self._report(e)
            return m.end()
        if record.node_type == tok.node_type:
            tok.merge_metadata(record.attrs)
        else:
            self._orphan(record.node_type)
        return m.end()

    def _orphan(self, node_type: str) -> None:
        msg = f"Metadata comment for {node_type} on line {self._line + 1} matches no element"
        self.warnings.append(msg)
        logger.warning(msg)

    def _match(self, s: str, i: int) -> tuple[Token | None, int] | None:
        """Try every inline construct starting at s[i]; None means s[i] is literal text."""
        c = s[i]
        if c == "\\":
            return self._escape(s, i)
        if c == " ":
            m = HARD_BREAK_RE.match(s, i)
            return (Token("hardBreak", line=self._line), m.end()) if m else None
        if c == "`":
            return self._code(s, i)
        if c == "*":
            return self._star(s, i)
        if c == "_":
            return self._underscore(s, i)
        if c == "~" and s.startswith("~~", i):
            return self._delimited(s, i, "~~", "strike")
        if c == "[":
            return self._link(s, i)
        if c == "!" and s.startswith("![", i):
            return self._image(s, i)
        if c == "<":
            return self._html(s, i)
        if c == "{":
            return self._placeholder(s, i)
        if c == ":":
            return self._emoji(s, i)
        return None

    def _escape(self, s: str, i: int) -> tuple[Token, int] | None:
        if i + 1 >= len(s):
            return None
        nxt = s[i + 1]
        if nxt == "\n":
            return Token("hardBreak", line=self._line), i + 2
        if nxt in ESCAPABLE:
            return Token("text", nxt), i + 2
        return None

    def _code(self, s: str, i: int) -> tuple[Token, int]:
        run = len(s[i:]) - len(s[i:].lstrip("`"))
        fence = "`" * run
        j = i + run
        while True:
            close = s.find(fence, j)
            if close < 0:
                # unmatched backtick run stays literal
                return Token("text", fence), i + run
            after = close + run
            if after < len(s) and s[after] == "`":
                j = after + len(s[after:]) - len(s[after:].lstrip("`"))
                continue
            break
        inner = s[i + run:close]
        if len(inner) >= 2 and inner[0] == " " and inner[-1] == " " and inner.strip():
            inner = inner[1:-1]
        return Token("code", children=[Token("text", inner)], line=self._line), close + run

    def _find_close(self, s: str, start: int, delim: str) -> int | None:
        """Index of the closing delimiter, skipping escapes, code spans and nested doubled runs."""
        j = start
        single = len(delim) == 1
        while j < len(s):
            c = s[j]
            if c == "\\":
                j += 2
                continue
            if c == "`":
                run = len(s[j:]) - len(s[j:].lstrip("`"))
                close = s.find("`" * run, j + run)
                j = close + run if close >= 0 else j + run
                continue
            if s.startswith(delim, j):
                if single and s.startswith(delim * 2, j):
                    inner_close = self._find_close(s, j + 2, delim * 2)
                    j = inner_close + 2 if inner_close is not None else j + 2
                    continue
                if j > start and not s[j - 1].isspace():
                    if delim != "_" or j + 1 >= len(s) or not s[j + 1].isalnum():
                        return j
            j += 1
        return None

    def _delimited(self, s: str, i: int, delim: str, mark: str) -> tuple[Token, int] | None:
        start = i + len(delim)
        if start >= len(s) or s[start].isspace():
            return None
        close = self._find_close(s, start, delim)
        if close is None:
            return None
        children = self._parse(s[start:close])
        return Token(mark, children=children, line=self._line), close + len(delim)

    def _star(self, s: str, i: int) -> tuple[Token, int] | None:
        if s.startswith("***", i):
            close = s.find("***", i + 3)
            if close > i + 3 and not s[i + 3].isspace() and not s[close - 1].isspace():
                inner = Token("strong", children=self._parse(s[i + 3:close]), line=self._line)
                return Token("em", children=[inner], line=self._line), close + 3
        if s.startswith("**", i):
            return self._delimited(s, i, "**", "strong")
        return self._delimited(s, i, "*", "em")

    def _underscore(self, s: str, i: int) -> tuple[Token, int] | None:
        if i > 0 and s[i - 1].isalnum():
            return None
        if s.startswith("__", i):
            return self._delimited(s, i, "__", "strong")
        return self._delimited(s, i, "_", "em")

    def _bracket_close(self, s: str, start: int) -> int | None:
        depth = 0
        j = start
        while j < len(s):
            c = s[j]
            if c == "\\":
                j += 2
                continue
            if c == "[":
                depth += 1
            elif c == "]":
                if depth == 0:
                    return j
                depth -= 1
            j += 1
        return None

    def _link(self, s: str, i: int) -> tuple[Token, int] | None:
        close = self._bracket_close(s, i + 1)
        if close is None:
            return None
        m = LINK_TAIL_RE.match(s, close + 1)
        if not m or not m.group(1):
            return None
        href = m.group(1).strip("<>")
        attrs = {"href": href}
        if m.group(2) is not None:
            attrs["title"] = unescape(m.group(2))
        children = self._parse(s[i + 1:close])
        return Token("link", children=children, attributes=attrs, line=self._line), m.end()

    def _image(self, s: str, i: int) -> tuple[Token, int] | None:
        close = self._bracket_close(s, i + 2)
        if close is None:
            return None
        m = LINK_TAIL_RE.match(s, close + 1)
        if not m:
            return None
        attrs = {"alt": unescape(s[i + 2:close]), "src": m.group(1).strip("<>")}
        if m.group(2) is not None:
            attrs["title"] = unescape(m.group(2))
        return Token("image", attributes=attrs, line=self._line), m.end()

    def _tag_close(self, s: str, start: int, name: str) -> int | None:
        """Index of the matching </name>, honouring nested tags of the same name."""
        open_re = re.compile(rf"<{name}[\s>]")
        depth = 0
        j = start
        while j < len(s):
            if open_re.match(s, j):
                depth += 1
            elif s.startswith(f"</{name}>", j):
                if depth == 0:
                    return j
                depth -= 1
            j += 1
        return None

    def _tag_span(self, s: str, open_end: int, name: str, mark: str, attrs: dict):
        close = self._tag_close(s, open_end, name)
        if close is None:
            return None
        children = self._parse(s[open_end:close])
        return Token(mark, children=children, attributes=attrs, line=self._line), close + len(name) + 3

    def _html(self, s: str, i: int) -> tuple[Token | None, int] | None:
        if s.startswith("<!--", i):
            m = metadata.COMMENT_RE.match(s, i)
            if not m:
                return None
            try:
                record = metadata.decode(m.group(0), self._line)
            except MetadataError as e:
                self._report(e)
            else:
                self._orphan(record.node_type)
            return None, m.end()
        m = BR_RE.match(s, i)
        if m:
            return Token("hardBreak", line=self._line), m.end()
        for tag, (mark, name) in SIMPLE_TAGS.items():
            if s.startswith(tag, i):
                attrs = {"type": name} if mark == "subsup" else {}
                return self._tag_span(s, i + len(tag), name, mark, attrs)
        m = SPAN_COLOR_RE.match(s, i)
        if m:
            return self._tag_span(s, m.end(), "span", "textColor", {"color": m.group(1)})
        m = MARK_COLOR_RE.match(s, i)
        if m:
            return self._tag_span(s, m.end(), "mark", "backgroundColor", {"color": m.group(1)})
        return None

    def _placeholder(self, s: str, i: int) -> tuple[Token, int] | None:
        if m := MENTION_RE.match(s, i):
            return Token("mention", attributes={"id": m.group(1)}, line=self._line), m.end()
        if m := DATE_RE.match(s, i):
            timestamp = date_to_timestamp(m.group(1))
            if timestamp is None:
                return None
            return Token("date", attributes={"timestamp": timestamp}, line=self._line), m.end()
        if m := STATUS_RE.match(s, i):
            attrs = {"text": unescape(m.group(1))}
            if m.group(2):
                attrs["color"] = m.group(2)
            return Token("status", attributes=attrs, line=self._line), m.end()
        if m := CARD_RE.match(s, i):
            return Token("inlineCard", attributes={"url": m.group(1)}, line=self._line), m.end()
        return None

    def _emoji(self, s: str, i: int) -> tuple[Token, int] | None:
        if i > 0 and s[i - 1].isalnum():
            return None
        m = EMOJI_RE.match(s, i)
        if not m:
            return None
        name = m.group(1)
        if name not in EMOJI and not any(ch.isalpha() for ch in name):
            return None
        return Token("emoji", attributes=emoji_attrs(name), line=self._line), m.end()

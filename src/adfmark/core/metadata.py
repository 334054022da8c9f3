"""Metadata comment codec: encode attrs as HTML comments and associate them back to tokens"""

import json
import logging
import re
from typing import Any

from adfmark.core.models import MetadataRecord, Token
from adfmark.errors import MetadataError


logger = logging.getLogger(__name__)

# Loose on purpose: anything that looks like an adf comment is decoded, so a bad
# payload is reported instead of leaking into the text as a literal.
COMMENT_RE = re.compile(r"<!--\s*adf:([a-zA-Z][a-zA-Z0-9]*)(.*?)-->", re.DOTALL)
PAYLOAD_RE = re.compile(r"^\s*(?:attrs='(.*)')?\s*$", re.DOTALL)
COLSPAN_RE = re.compile(r"<!--\s*colspan=(\d+)\s*-->")
STANDALONE_RE = re.compile(r"^\s*<!--\s*adf:[a-zA-Z][a-zA-Z0-9]*(?:(?!-->).)*-->\s*$")
TRAILING_RE = re.compile(r"\s*(<!--\s*adf:[a-zA-Z][a-zA-Z0-9]*(?:(?!-->).)*-->)\s*$")


def encode(node_type: str, attrs: dict[str, Any] | None) -> str:
    """Return `<!-- adf:TYPE attrs='JSON' -->`, or '' when there is nothing to preserve."""
    if not attrs:
        return ""
    payload = json.dumps(attrs, ensure_ascii=False, separators=(",", ":"))
    # quote, terminator and pipe stay unambiguous inside attrs='…' and table rows
    payload = payload.replace("'", "\\u0027").replace("-->", "--\\u003e").replace("|", "\\u007c")
    return f"<!-- adf:{node_type} attrs='{payload}' -->"


def encode_colspan(colspan: int) -> str:
    return f"<!-- colspan={colspan} -->"


def decode(comment: str, line: int = 0, column: int = 0) -> MetadataRecord:
    """Decode one metadata comment. Raises MetadataError on a malformed or non-object payload."""
    m = COMMENT_RE.search(comment)
    if not m:
        raise MetadataError("Not a metadata comment", raw=comment, line=line)
    node_type, rest = m.group(1), m.group(2)
    payload = PAYLOAD_RE.match(rest)
    if not payload:
        raise MetadataError(f"Malformed metadata comment for {node_type}", raw=comment, line=line)
    attrs: dict[str, Any] = {}
    if payload.group(1) is not None:
        try:
            attrs = json.loads(payload.group(1))
        except json.JSONDecodeError as e:
            raise MetadataError(
                f"Invalid JSON in {node_type} metadata comment: {e.msg}", raw=comment, line=line
            ) from e
        if not isinstance(attrs, dict):
            raise MetadataError(
                f"Invalid JSON in {node_type} metadata comment: expected an object, "
                f"got {type(attrs).__name__}",
                raw=comment, line=line,
            )
    return MetadataRecord(node_type=node_type, attrs=attrs, raw=m.group(0), line=line, column=column)


def scan(text: str, first_line: int = 0) -> list[MetadataRecord | MetadataError]:
    """Decode every metadata comment in text, sorted by position.

    Failures are returned in place (as MetadataError) so callers decide whether to raise.
    """
    found: list[MetadataRecord | MetadataError] = []
    for m in COMMENT_RE.finditer(text):
        line = first_line + text.count("\n", 0, m.start())
        column = m.start() - (text.rfind("\n", 0, m.start()) + 1)
        try:
            found.append(decode(m.group(0), line, column))
        except MetadataError as e:
            found.append(e)
    return found


def is_standalone(line: str) -> bool:
    """True when the line holds a metadata comment and nothing else."""
    return bool(STANDALONE_RE.match(line))


def _escaped(text: str, pos: int) -> bool:
    """True when text[pos] follows an odd run of backslashes."""
    head = text[:pos]
    return (len(head) - len(head.rstrip("\\"))) % 2 == 1


def split_trailing(line: str) -> tuple[str, str | None]:
    """Split a trailing metadata comment off a line: (content, raw_comment or None).

    A backslash-escaped `\\<!--` is literal text, not a comment.
    """
    m = TRAILING_RE.search(line)
    if not m or _escaped(line, m.start(1)):
        return line, None
    return line[:m.start()], m.group(1)


def strip_trailing(text: str, node_type: str | None = None) -> tuple[str, MetadataRecord | None]:
    """Split and decode the trailing comment of text's last line, if it is for node_type."""
    head, sep, last = text.rpartition("\n")
    content, raw = split_trailing(last)
    if raw is None:
        return text, None
    record = decode(raw, line=text.count("\n"))
    if node_type is not None and record.node_type != node_type:
        return text, None
    return head + sep + content, record


def split_colspan(text: str) -> tuple[str, int | None]:
    """Split a trailing `<!-- colspan=N -->` marker off cell text."""
    m = re.search(r"\s*(" + COLSPAN_RE.pattern + r")\s*$", text)
    if not m or _escaped(text, m.start(1)):
        return text, None
    return text[:m.start()], int(m.group(2))


def _matches(token: Token, record: MetadataRecord) -> bool:
    return token.node_type == record.node_type


def associate(tokens: list[Token], records: list[MetadataRecord]) -> list[MetadataRecord]:
    """Attach each record to the nearest preceding token of its type, else the nearest following one.

    Only ordering decides, never line distance. Returns the records no token matched.
    """
    orphans: list[MetadataRecord] = []
    for record in sorted(records, key=lambda r: (r.line, r.column)):
        target = None
        for token in tokens:
            if token.line > record.line:
                break
            if _matches(token, record):
                target = token
        if target is None:
            target = next(
                (t for t in tokens if t.line > record.line and _matches(t, record)), None
            )
        if target is None:
            orphans.append(record)
            continue
        logger.debug("metadata for %s on line %d -> token on line %d", record.node_type, record.line, target.line)
        target.merge_metadata(record.attrs)
    return orphans

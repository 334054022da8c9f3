"""Unit tests for core/metadata.py"""

import pytest

from adfmark.core import metadata
from adfmark.core.models import MetadataRecord, Token
from adfmark.errors import MetadataError


def test_encode_empty_attrs():
    assert metadata.encode("panel", {}) == ""
    assert metadata.encode("panel", None) == ""


def test_encode_compact_json():
    assert metadata.encode("panel", {"panelType": "info", "n": 1}) == \
        """<!-- adf:panel attrs='{"panelType":"info","n":1}' -->"""


def test_encode_escapes_quote_terminator_and_pipe():
    """Quotes, '-->' and pipes are written as JSON escapes and decode back unchanged."""
    attrs = {"title": "it's | --> done"}
    comment = metadata.encode("expand", attrs)
    assert "'" not in comment[len("<!-- adf:expand attrs='"):-len("' -->")]
    assert "|" not in comment
    assert comment.count("-->") == 1
    assert metadata.decode(comment).attrs == attrs


def test_encode_keeps_non_ascii():
    assert "é" in metadata.encode("paragraph", {"label": "café"})


def test_encode_colspan():
    assert metadata.encode_colspan(3) == "<!-- colspan=3 -->"


def test_decode_without_attrs():
    record = metadata.decode("<!-- adf:rule -->")
    assert record.node_type == "rule"
    assert record.attrs == {}


def test_decode_invalid_json():
    with pytest.raises(MetadataError, match="Invalid JSON in paragraph") as exc:
        metadata.decode("<!-- adf:paragraph attrs='{bad' -->", line=4)
    assert exc.value.code == "INVALID_METADATA"
    assert exc.value.line == 4
    assert exc.value.recoverable is False


def test_decode_rejects_non_object():
    with pytest.raises(MetadataError, match="expected an object"):
        metadata.decode("<!-- adf:paragraph attrs='[1, 2]' -->")


def test_scan_positions_and_failures():
    """scan returns records in source order with line and column, failures in place."""
    text = 'a\n<!-- adf:paragraph attrs=\'{"x":1}\' -->\nb <!-- adf:heading -->\n<!-- adf:rule attrs=\'nope\' -->'
    found = metadata.scan(text, first_line=10)
    assert [type(f) for f in found] == [MetadataRecord, MetadataRecord, MetadataError]
    assert (found[0].line, found[0].column) == (11, 0)
    assert (found[1].line, found[1].column) == (12, 2)


def test_is_standalone():
    assert metadata.is_standalone("  <!-- adf:rule -->  ")
    assert not metadata.is_standalone("text <!-- adf:rule -->")
    assert not metadata.is_standalone("<!-- a plain comment -->")


def test_split_trailing():
    content, raw = metadata.split_trailing("Body <!-- adf:paragraph attrs='{}' -->")
    assert content == "Body"
    assert raw == "<!-- adf:paragraph attrs='{}' -->"
    assert metadata.split_trailing("no comment") == ("no comment", None)


def test_strip_trailing_filters_by_type():
    text = 'a\nb <!-- adf:paragraph attrs=\'{"k":1}\' -->'
    body, record = metadata.strip_trailing(text, "paragraph")
    assert body == "a\nb"
    assert record.attrs == {"k": 1}
    assert metadata.strip_trailing(text, "heading") == (text, None)


def test_split_colspan():
    assert metadata.split_colspan("x <!-- colspan=3 -->") == ("x", 3)
    assert metadata.split_colspan("x") == ("x", None)


def test_escaped_comments_are_text():
    """A backslash before the comment makes it literal; an escaped backslash does not."""
    escaped = r"x \<!-- adf:paragraph attrs='{}' -->"
    assert metadata.split_trailing(escaped) == (escaped, None)
    assert not metadata.is_standalone(r"\<!-- adf:rule -->")
    assert metadata.split_colspan(r"x \<!-- colspan=3 -->") == (r"x \<!-- colspan=3 -->", None)
    content, raw = metadata.split_trailing(r"x \\<!-- adf:paragraph attrs='{}' -->")
    assert content == r"x \\"
    assert raw == "<!-- adf:paragraph attrs='{}' -->"


def _record(node_type, line, **attrs):
    return MetadataRecord(node_type=node_type, attrs=attrs, raw="", line=line)


def test_associate_prefers_preceding_then_following():
    para, heading = Token("paragraph", line=0), Token("heading", line=2)
    orphans = metadata.associate(
        [para, heading],
        [_record("heading", 1, id="h"), _record("paragraph", 5, localId="p")],
    )
    assert orphans == []
    assert heading.metadata == {"id": "h"}
    assert para.metadata == {"localId": "p"}


def test_associate_ignores_line_distance():
    """Blank lines between a comment and its element never change the outcome."""
    para = Token("paragraph", line=0)
    metadata.associate([para], [_record("paragraph", 40, localId="far")])
    assert para.metadata == {"localId": "far"}


def test_associate_returns_unmatched():
    record = _record("panel", 3, x=1)
    assert metadata.associate([Token("paragraph", line=0)], [record]) == [record]


def test_associate_merges_several_in_order():
    para = Token("paragraph", line=0)
    metadata.associate([para], [_record("paragraph", 2, a=2), _record("paragraph", 1, a=1, b=1)])
    assert para.metadata == {"a": 2, "b": 1}

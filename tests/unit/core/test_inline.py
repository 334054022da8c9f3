"""Unit tests for core/inline.py"""

import pytest

from adfmark.core.inline import InlineTokenizer, date_to_timestamp, unescape
from adfmark.errors import MetadataError


@pytest.fixture(name="inline")
def inline_fixture():
    return InlineTokenizer()


def _types(tokens):
    return [t.type for t in tokens]


def test_strong(inline):
    tokens = inline.tokenize("**bold**")
    assert _types(tokens) == ["strong"]
    assert tokens[0].children[0].content == "bold"


def test_em_between_text(inline):
    tokens = inline.tokenize("a *b* c")
    assert _types(tokens) == ["text", "em", "text"]
    assert tokens[0].content == "a "
    assert tokens[2].content == " c"


def test_underscore_em_and_intraword(inline):
    """_x_ is emphasis; snake_case_name is not."""
    assert _types(inline.tokenize("_it_")) == ["em"]
    tokens = inline.tokenize("snake_case_name")
    assert _types(tokens) == ["text"]
    assert tokens[0].content == "snake_case_name"


def test_nested_marks(inline):
    tokens = inline.tokenize("**_x_**")
    assert _types(tokens) == ["strong"]
    assert _types(tokens[0].children) == ["em"]


def test_code_span_keeps_syntax_literal(inline):
    tokens = inline.tokenize("`co*de`")
    assert _types(tokens) == ["code"]
    assert tokens[0].children[0].content == "co*de"


def test_code_span_with_backtick(inline):
    tokens = inline.tokenize("``a ` b``")
    assert tokens[0].children[0].content == "a ` b"


def test_strike(inline):
    assert _types(inline.tokenize("~~gone~~")) == ["strike"]


def test_link_with_title(inline):
    tokens = inline.tokenize('[site](https://x.io "Home")')
    assert _types(tokens) == ["link"]
    assert tokens[0].attributes == {"href": "https://x.io", "title": "Home"}
    assert tokens[0].children[0].content == "site"


def test_image(inline):
    tokens = inline.tokenize("![alt text](adf:media:abc)")
    assert tokens[0].type == "image"
    assert tokens[0].attributes == {"alt": "alt text", "src": "adf:media:abc"}


@pytest.mark.parametrize("source,type_,attrs", [
    ("{user:abc123}", "mention", {"id": "abc123"}),
    ("{date:2024-01-15}", "date", {"timestamp": "1705276800000"}),
    ("{date:1705276800123}", "date", {"timestamp": "1705276800123"}),
    ("{status:Done|color:green}", "status", {"text": "Done", "color": "green"}),
    ("{status:In progress}", "status", {"text": "In progress"}),
    ("{card:https://example.com}", "inlineCard", {"url": "https://example.com"}),
    (":smile:", "emoji", {"shortName": ":smile:", "text": "😄"}),
    (":custom_thing:", "emoji", {"shortName": ":custom_thing:"}),
])
def test_placeholders(inline, source, type_, attrs):
    tokens = inline.tokenize(source)
    assert _types(tokens) == [type_]
    assert tokens[0].attributes == attrs


@pytest.mark.parametrize("source", ["{user:}", "{date:not-a-date}", "{date:2024-02-30}", "10:30:45", "**unclosed"])
def test_invalid_payloads_stay_literal(inline, source):
    tokens = inline.tokenize(source)
    assert _types(tokens) == ["text"]
    assert tokens[0].content == source


def test_html_marks(inline):
    assert inline.tokenize("<u>under</u>")[0].type == "underline"
    span = inline.tokenize('<span style="color: #ff0000">red</span>')[0]
    assert (span.type, span.attributes) == ("textColor", {"color": "#ff0000"})
    mark = inline.tokenize('<mark style="background-color: #00ff00">hi</mark>')[0]
    assert (mark.type, mark.attributes) == ("backgroundColor", {"color": "#00ff00"})


def test_subscript(inline):
    tokens = inline.tokenize("H<sub>2</sub>O")
    assert _types(tokens) == ["text", "subsup", "text"]
    assert tokens[1].attributes == {"type": "sub"}


@pytest.mark.parametrize("source", ["line\\\nnext", "line  \nnext", "line<br>next"])
def test_hard_breaks(inline, source):
    assert _types(inline.tokenize(source)) == ["text", "hardBreak", "text"]


def test_escapes_are_literal(inline):
    tokens = inline.tokenize("\\*not em\\*")
    assert _types(tokens) == ["text"]
    assert tokens[0].content == "*not em*"


def test_glued_comment_attaches_to_span(inline):
    tokens = inline.tokenize("""{user:abc}<!-- adf:mention attrs='{"accessLevel":"CONTAINER"}' -->""")
    assert _types(tokens) == ["mention"]
    assert tokens[0].metadata == {"accessLevel": "CONTAINER"}


def test_mismatched_glued_comment_is_reported(inline):
    tokens = inline.tokenize("""{user:abc}<!-- adf:panel attrs='{"x":1}' -->""")
    assert tokens[0].metadata is None
    assert "matches no element" in inline.warnings[0]


def test_invalid_comment_warns_then_raises_when_strict(inline):
    source = "x <!-- adf:paragraph attrs='{bad' -->"
    tokens = inline.tokenize(source)
    assert _types(tokens) == ["text"]
    assert len(inline.warnings) == 1
    with pytest.raises(MetadataError):
        InlineTokenizer(strict=True).tokenize(source)


def test_unescape():
    assert unescape(r"a\*b\_c\\d") == "a*b_c\\d"


def test_date_to_timestamp():
    assert date_to_timestamp("1970-01-02") == "86400000"
    assert date_to_timestamp("tomorrow") is None

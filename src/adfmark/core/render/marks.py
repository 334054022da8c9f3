"""Mark converters: wrap already-rendered text in Markdown or HTML delimiters"""

import re

from adfmark.core import metadata
from adfmark.core.models import Mark
from adfmark.core.render.registry import ConversionContext


def _extra(mark: Mark, *native: str) -> str:
    """Comment for mark attrs the delimiter syntax cannot carry."""
    attrs = {k: v for k, v in (mark.attrs or {}).items() if k not in native}
    return metadata.encode(mark.type, attrs)


class _Delimited:
    mark_type = ""
    delimiter = ""

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        return f"{self.delimiter}{text}{self.delimiter}{_extra(mark)}"


class StrongConverter(_Delimited):
    mark_type = "strong"
    delimiter = "**"


class EmConverter(_Delimited):
    mark_type = "em"
    delimiter = "_"


class StrikeConverter(_Delimited):
    mark_type = "strike"
    delimiter = "~~"


class CodeConverter:
    """Backtick span sized to outrun any backtick run inside the text."""
    mark_type = "code"

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
        fence = "`" * (longest + 1)
        if text.startswith("`") or text.endswith("`") or (text.startswith(" ") and text.endswith(" ") and text.strip()):
            text = f" {text} "
        return f"{fence}{text}{fence}{_extra(mark)}"


class LinkConverter:
    mark_type = "link"

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        href = str(mark.attrs["href"])
        if re.search(r"[\s()<>]", href):
            href = f"<{href}>"
        title = (mark.attrs or {}).get("title")
        tail = f' "{_quote(title)}"' if title else ""
        return f"[{text}]({href}{tail}){_extra(mark, 'href', 'title')}"


class UnderlineConverter:
    mark_type = "underline"

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        return f"<u>{text}</u>{_extra(mark)}"


class TextColorConverter:
    mark_type = "textColor"

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        return f'<span style="color: {mark.attrs["color"]}">{text}</span>{_extra(mark, "color")}'


class BackgroundColorConverter:
    mark_type = "backgroundColor"

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        return f'<mark style="background-color: {mark.attrs["color"]}">{text}</mark>{_extra(mark, "color")}'


class SubsupConverter:
    mark_type = "subsup"

    def render(self, text: str, mark: Mark, ctx: ConversionContext) -> str:
        tag = "sup" if (mark.attrs or {}).get("type") == "sup" else "sub"
        return f"<{tag}>{text}</{tag}>{_extra(mark, 'type')}"


def _quote(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


MARK_CONVERTERS = (
    StrongConverter(), EmConverter(), StrikeConverter(), CodeConverter(), LinkConverter(),
    UnderlineConverter(), TextColorConverter(), BackgroundColorConverter(), SubsupConverter(),
)

"""Document tree models (ADF) and intermediate tokenizer records"""

import re
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator


COLOR_RE = re.compile(r'^#[0-9a-fA-F]{6}$')
PANEL_TYPES = ('info', 'warning', 'error', 'success', 'note')


class Mark(BaseModel):
    """Inline formatting applied to a text leaf."""
    model_config = ConfigDict(frozen=True)

    type:  str
    attrs: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_attrs(self) -> "Mark":
        attrs = self.attrs or {}
        if self.type == "link" and not attrs.get("href"):
            raise ValueError("link mark requires attrs.href")
        if self.type in ("textColor", "backgroundColor"):
            color = attrs.get("color")
            if not isinstance(color, str) or not COLOR_RE.match(color):
                raise ValueError(f"{self.type} mark requires a #RRGGBB color, got {color!r}")
        return self


class Node(BaseModel):
    """A document tree node: either a text leaf or a container, never both."""
    model_config = ConfigDict(frozen=True)

    type:    str
    attrs:   Optional[dict[str, Any]] = None
    content: Optional[list["Node"]] = None
    text:    Optional[str] = None
    marks:   Optional[list[Mark]] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "Node":
        if self.text is not None and self.content is not None:
            raise ValueError(f"{self.type} node cannot carry both text and content")
        if self.marks and self.text is None:
            raise ValueError(f"only text leaves carry marks, not {self.type}")
        return self

    @property
    def children(self) -> list["Node"]:
        return self.content or []

    def attr(self, name: str, default: Any = None) -> Any:
        return (self.attrs or {}).get(name, default)

    def plain_text(self) -> str:
        """Concatenated text of this subtree, marks ignored."""
        if self.text is not None:
            return self.text
        return "".join(child.plain_text() for child in self.children)

    def to_dict(self) -> dict[str, Any]:
        """ADF JSON shape with unset fields dropped."""
        data: dict[str, Any] = {"type": self.type}
        if self.attrs is not None:
            data["attrs"] = dict(self.attrs)
        if self.content is not None:
            data["content"] = [child.to_dict() for child in self.content]
        if self.text is not None:
            data["text"] = self.text
        if self.marks is not None:
            data["marks"] = [mark.model_dump(exclude_none=True) for mark in self.marks]
        return data


class Document(BaseModel):
    """Root of an ADF tree. Schema version 1 is the only supported version."""
    model_config = ConfigDict(frozen=True)

    version: Literal[1] = 1
    type:    Literal["doc"] = "doc"
    content: list[Node] = []

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        """ADF JSON shape with unset optional fields dropped."""
        return {"version": self.version, "type": self.type, "content": [n.to_dict() for n in self.content]}


def text(value: str, *marks: Mark) -> Node:
    """Build a text leaf."""
    return Node(type="text", text=value, marks=list(marks) or None)


def node(type_: str, *children: Node, attrs: dict[str, Any] | None = None) -> Node:
    """Build a container node; a container with no children gets empty content."""
    return Node(type=type_, attrs=attrs or None, content=list(children))


def atom(type_: str, attrs: dict[str, Any] | None = None) -> Node:
    """Build a childless node (rule, hardBreak, mention, media...)."""
    return Node(type=type_, attrs=attrs or None)


@dataclass
class Token:
    """Intermediate tokenizer output, block or inline."""
    type:       str
    content:    str = ""
    children:   list["Token"] | None = None
    attributes: dict[str, Any] = field(default_factory=dict)   # fence key=value pairs, list/table/link details
    metadata:   dict[str, Any] | None = None                   # attrs recovered from an adjacent comment
    line:       int = 0                                         # absolute 0-based source line

    @property
    def node_type(self) -> str:
        """Node type this token becomes; lists resolve to bullet/ordered, fences to their keyword."""
        if self.type == "list":
            return "orderedList" if self.attributes.get("ordered") else "bulletList"
        if self.type == "fence":
            return self.attributes.get("keyword", "fence")
        if self.type == "image":
            return "media"
        return self.type

    def merge_metadata(self, attrs: dict[str, Any]) -> None:
        self.metadata = {**(self.metadata or {}), **attrs}


@dataclass
class MetadataRecord:
    """A decoded metadata comment awaiting association with a token."""
    node_type: str
    attrs:     dict[str, Any]
    raw:       str
    line:      int = 0
    column:    int = 0


@dataclass
class TokenizeResult:
    tokens:   list[Token]
    orphans:  list[MetadataRecord] = field(default_factory=list)   # comments that matched no token
    warnings: list[str] = field(default_factory=list)


class ParseResult(BaseModel):
    """Markdown-to-ADF outcome."""
    document:    Document
    frontmatter: dict[str, Any] = {}
    warnings:    list[str] = []


class RenderResult(BaseModel):
    """ADF-to-Markdown outcome."""
    markdown: str
    warnings: list[str] = []

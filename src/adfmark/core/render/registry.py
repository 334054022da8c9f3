"""Converter registry and per-call conversion context for ADF-to-Markdown rendering"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Protocol

from adfmark.core.models import Mark, Node
from adfmark.errors import ConversionError


logger = logging.getLogger(__name__)


class NodeConverter(Protocol):
    node_type: str

    def render(self, node: Node, ctx: "ConversionContext") -> str: ...


class MarkConverter(Protocol):
    mark_type: str

    def render(self, text: str, mark: Mark, ctx: "ConversionContext") -> str: ...


class ConverterRegistry:
    """Type tag to converter lookup. Freeze once built; share across calls."""

    def __init__(self):
        self._nodes: dict[str, NodeConverter] = {}
        self._marks: dict[str, MarkConverter] = {}
        self._frozen = False

    def _check_open(self) -> None:
        if self._frozen:
            raise RuntimeError("ConverterRegistry is frozen; build a new one to register converters")

    def register_node(self, converter: NodeConverter) -> None:
        self._check_open()
        self._nodes[converter.node_type] = converter

    def register_mark(self, converter: MarkConverter) -> None:
        self._check_open()
        self._marks[converter.mark_type] = converter

    def register_nodes(self, converters: Iterable[NodeConverter]) -> None:
        for converter in converters:
            self.register_node(converter)

    def register_marks(self, converters: Iterable[MarkConverter]) -> None:
        for converter in converters:
            self.register_mark(converter)

    def node_converter(self, node_type: str) -> NodeConverter | None:
        return self._nodes.get(node_type)

    def mark_converter(self, mark_type: str) -> MarkConverter | None:
        return self._marks.get(mark_type)

    @property
    def node_types(self) -> list[str]:
        return sorted(self._nodes)

    @property
    def mark_types(self) -> list[str]:
        return sorted(self._marks)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "ConverterRegistry":
        self._frozen = True
        return self


@dataclass
class ConversionContext:
    """State threaded through one render call. Child contexts share the warnings list."""
    registry:    ConverterRegistry
    strict:      bool = False
    depth:       int = 0
    parent:      Node | None = None
    in_table:    bool = False
    list_marker: str = "-"
    warnings:    list[str] = field(default_factory=list)

    def child(self, parent: Node, **changes) -> "ConversionContext":
        return replace(self, depth=self.depth + 1, parent=parent, **changes)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)
        logger.warning(msg)

    def render(self, node: Node) -> str:
        """Render one node; a missing converter or a failing subtree yields '' unless strict."""
        converter = self.registry.node_converter(node.type)
        if converter is None:
            self.warn(f"No converter registered for node type {node.type}")
            return ""
        try:
            return converter.render(node, self)
        except ConversionError as e:
            if self.strict:
                raise
            self.warn(str(e))
        except Exception as e:
            if self.strict:
                raise ConversionError(f"Failed to convert {node.type}: {e}", node.type) from e
            self.warn(f"Failed to convert {node.type} at depth {self.depth}: {e}")
        return ""

    render_node = render

    def convert_children(self, nodes: Iterable[Node]) -> str:
        return "".join(self.render(n) for n in nodes)

    def convert_blocks(self, nodes: Iterable[Node]) -> str:
        return join_blocks(self.render(n) for n in nodes)

    def inline(self, parent: Node, **changes) -> str:
        """Concatenate the rendered inline children of parent."""
        return self.child(parent, **changes).convert_children(parent.children)

    def blocks(self, parent: Node, **changes) -> str:
        """Render the block children of parent separated by blank lines."""
        return self.child(parent, **changes).convert_blocks(parent.children)

    def apply_mark(self, text: str, mark: Mark) -> str:
        converter = self.registry.mark_converter(mark.type)
        if converter is None:
            self.warn(f"No converter registered for mark type {mark.type}")
            return text
        return converter.render(text, mark, self)


def join_blocks(parts: Iterable[str]) -> str:
    return "\n\n".join(p for p in parts if p)

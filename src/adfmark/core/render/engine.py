"""ADF-to-Markdown entry points: default registry, document rendering, frontmatter emission"""

from typing import Any

import pydantic
import yaml

from adfmark.core.models import Document, Node, RenderResult
from adfmark.core.render.marks import MARK_CONVERTERS
from adfmark.core.render.nodes import NODE_CONVERTERS
from adfmark.core.render.registry import ConversionContext, ConverterRegistry, join_blocks
from adfmark.errors import ValidationError


def default_registry() -> ConverterRegistry:
    """Registry holding every built-in node and mark converter, frozen."""
    registry = ConverterRegistry()
    registry.register_nodes(NODE_CONVERTERS)
    registry.register_marks(MARK_CONVERTERS)
    return registry.freeze()


def load_document(data: Document | dict[str, Any] | str) -> Document:
    """Accept a Document, an ADF dict or ADF JSON text; raise ValidationError on a bad shape."""
    if isinstance(data, Document):
        return data
    try:
        if isinstance(data, str):
            return Document.model_validate_json(data)
        return Document.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(e) from e


def _frontmatter_block(frontmatter: dict[str, Any]) -> str:
    dumped = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True).strip()
    return f"---\n{dumped}\n---"


def render_document(
    doc: Document | dict[str, Any] | str,
    registry: ConverterRegistry | None = None,
    strict: bool = False,
    frontmatter: dict[str, Any] | None = None,
    ) -> RenderResult:
    """Render a whole document. Failing subtrees become '' with a warning unless strict."""
    document = load_document(doc)
    ctx = ConversionContext(registry or default_registry(), strict=strict)
    body = join_blocks(ctx.render(node) for node in document.content)
    if frontmatter:
        body = join_blocks([_frontmatter_block(frontmatter), body])
    return RenderResult(markdown=body, warnings=ctx.warnings)


def render_node(node: Node, registry: ConverterRegistry | None = None, strict: bool = False) -> str:
    """Render a single node outside of a document."""
    return ConversionContext(registry or default_registry(), strict=strict).render(node)


def to_markdown(doc: Document | dict[str, Any] | str) -> str:
    return render_document(doc).markdown

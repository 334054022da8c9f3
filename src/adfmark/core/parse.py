"""Markdown-to-ADF orchestration: tokenizer choice, frontmatter, tree building, file discovery"""

import logging
from pathlib import Path
from typing import Any

import yaml

from adfmark.config import Settings
from adfmark.core.build import TreeBuilder, build_error_document
from adfmark.core.mdit import MarkdownItTokenizer
from adfmark.core.models import ParseResult, Token
from adfmark.core.tokenize import Tokenizer
from adfmark.errors import ParserError


logger = logging.getLogger(__name__)

MD_EXTENSIONS = {'.md', '.mdx'}
ADF_EXTENSIONS = {'.json'}


def _load_frontmatter(raw: str) -> dict[str, Any]:
    """Parse a YAML header body into a mapping."""
    try:
        fm = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(fm, dict):
        raise ValueError(f"Invalid YAML frontmatter: expected a mapping, got {type(fm).__name__}")
    return fm


def _make_tokenizer(settings: Settings, strict: bool) -> Tokenizer:
    if settings.parser_engine == "markdown-it":
        return MarkdownItTokenizer(strict=strict, preset=settings.markdown_it_preset)
    return Tokenizer(strict=strict)


def _frontmatter(tokens: list[Token], strict: bool, warnings: list[str]) -> dict[str, Any]:
    for token in tokens:
        if token.type != "frontmatter":
            continue
        try:
            return _load_frontmatter(token.content)
        except ValueError as e:
            if strict:
                raise ParserError(str(e), code="INVALID_FRONTMATTER", line=0) from e
            warnings.append(str(e))
            logger.warning("%s", e)
    return {}


def parse_markdown(text: str, settings: Settings | None = None, *, strict: bool | None = None) -> ParseResult:
    """Convert Extended Markdown to an ADF document.

    Non-strict calls never raise: failures degrade to placeholders or a minimal
    error document and are listed in ParseResult.warnings.
    """
    settings = settings or Settings()
    strict = settings.strict if strict is None else strict
    warnings: list[str] = []
    try:
        tokenized = _make_tokenizer(settings, strict).tokenize(text)
        warnings.extend(tokenized.warnings)
        frontmatter = _frontmatter(tokenized.tokens, strict, warnings)
        builder = TreeBuilder(strict=strict, preserve_unknown_nodes=settings.preserve_unknown_nodes)
        document = builder.build(tokenized.tokens)
        warnings.extend(builder.warnings)
    except Exception as e:
        if strict:
            raise
        logger.exception("markdown conversion failed")
        warnings.append(f"Markdown conversion failed: {e}")
        return ParseResult(document=build_error_document(str(e)), warnings=warnings)
    return ParseResult(document=document, frontmatter=frontmatter, warnings=warnings)


def discover_files(path: Path, extensions: set[str] = MD_EXTENSIONS) -> list[Path]:
    """Return sorted files with the given suffixes under path, or [path] if a single file."""
    if path.is_file():
        return [path] if path.suffix in extensions else []
    return sorted(p for p in path.rglob('*') if p.suffix in extensions)


def parse_file(path: Path, settings: Settings | None = None) -> ParseResult:
    """Parse a single markdown file."""
    return parse_markdown(path.read_text(encoding='utf-8'), settings)

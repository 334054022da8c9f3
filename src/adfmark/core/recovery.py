"""Retry and fallback wrapper around both conversion directions"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

import pydantic
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from adfmark.core.models import Document, Node, node, text
from adfmark.errors import MetadataError, ValidationError


logger = logging.getLogger(__name__)

T = TypeVar("T")

STRATEGIES = ("skip", "placeholder", "best-effort", "throw")
SECTION_RE = re.compile(r"(?=^#{1,6}\s)|(?:\n\s*\n)", re.MULTILINE)

TO_MARKDOWN = "to_markdown"
TO_ADF = "to_adf"


@dataclass
class RecoveryContext:
    operation:       str = "unknown"
    input:           Any = None
    attempt:         int = 0
    previous_errors: list[Exception] = field(default_factory=list)
    node_type:       str | None = None


@dataclass
class RecoveryResult(Generic[T]):
    success:  bool
    data:     T | None = None
    error:    Exception | None = None
    strategy: str | None = None
    fallback: bool = False
    warnings: list[str] = field(default_factory=list)
    attempts: int = 0


def is_non_retryable(error: BaseException) -> bool:
    """Bad input fails the same way every time; only other errors are worth another attempt."""
    if isinstance(error, (ValidationError, MetadataError, pydantic.ValidationError, json.JSONDecodeError)):
        return True
    message = str(error)
    return "Invalid JSON" in message or "Syntax error" in message


def split_sections(markdown: str) -> list[str]:
    """Split markdown before each heading and on blank lines, dropping empty pieces."""
    sections = [s for s in SECTION_RE.split(markdown) if s and s.strip()]
    return sections or [markdown]


def text_fallback(value: str) -> Node:
    """A paragraph holding value verbatim, or an empty paragraph for blank input."""
    stripped = value.strip()
    return node("paragraph", text(stripped)) if stripped else node("paragraph")


def node_fallback(item: Node) -> str:
    """Minimal textual stand-in for a top-level node that failed to render."""
    if item.type == "paragraph":
        return item.plain_text() or "[Paragraph]"
    if item.type == "heading":
        level = item.attr("level", 1)
        level = level if isinstance(level, int) and 1 <= level <= 6 else 1
        return "#" * level + " " + (item.plain_text() or "[Heading]")
    if item.type == "codeBlock":
        return "```\n[Code Block]\n```"
    if item.type == "panel":
        return f"> [{item.attr('panelType', 'info')} panel]"
    return f"[{item.type}]"


class ErrorRecoveryManager:
    """Runs an operation with bounded retries, then applies the configured fallback strategy."""

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 0.1,
        fallback_strategy: str = "best-effort",
        sleep: Callable[[float], None] = time.sleep,
        on_error: Callable[[Exception, RecoveryContext], None] | None = None,
        on_recovery: Callable[[str, RecoveryContext], None] | None = None,
        ):
        if fallback_strategy not in STRATEGIES:
            raise ValueError(f"Unknown fallback strategy: {fallback_strategy}")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.fallback_strategy = fallback_strategy
        self.sleep = sleep
        self.on_error = on_error
        self.on_recovery = on_recovery

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ErrorRecoveryManager":
        return cls(
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            fallback_strategy=settings.fallback_strategy,
            **kwargs,
        )

    def _recovered(self, strategy: str, ctx: RecoveryContext) -> None:
        logger.info("recovered %s via %s", ctx.operation, strategy)
        if self.on_recovery:
            self.on_recovery(strategy, ctx)

    def execute(self, operation: Callable[[], T], context: RecoveryContext | dict[str, Any] | None = None) -> RecoveryResult[T]:
        """Run operation until it succeeds, fails for good, or runs out of attempts."""
        ctx = context if isinstance(context, RecoveryContext) else RecoveryContext(**(context or {}))
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception(lambda e: not is_non_retryable(e)),
            sleep=self.sleep,
            reraise=True,
        )

        def attempt() -> T:
            ctx.attempt += 1
            try:
                return operation()
            except Exception as e:
                ctx.previous_errors.append(e)
                logger.warning("%s attempt %d failed: %s", ctx.operation, ctx.attempt, e)
                if self.on_error:
                    self.on_error(e, ctx)
                raise

        try:
            data = retrying(attempt)
        except Exception as e:
            return self._fallback(e, ctx)
        if ctx.attempt > 1:
            self._recovered("retry-success", ctx)
        return RecoveryResult(success=True, data=data, attempts=ctx.attempt)

    def _fallback(self, error: Exception, ctx: RecoveryContext) -> RecoveryResult:
        strategy = self.fallback_strategy
        if strategy == "throw":
            raise error
        if strategy == "skip":
            return RecoveryResult(
                success=False, error=error, strategy="skip",
                warnings=[f"Operation {ctx.operation} skipped: {error}"], attempts=ctx.attempt,
            )
        if strategy == "placeholder":
            result = RecoveryResult(
                success=True, data=self._placeholder(ctx), strategy="placeholder", fallback=True,
                warnings=[f"Used placeholder for {ctx.operation}: {error}"], attempts=ctx.attempt,
            )
            self._recovered("placeholder", ctx)
            return result
        return self._best_effort(error, ctx)

    def _placeholder(self, ctx: RecoveryContext) -> Any:
        if ctx.operation == TO_MARKDOWN:
            return f"[Error converting ADF to Markdown: {ctx.operation}]"
        if ctx.operation == TO_ADF:
            return Document(content=[text_fallback(f"[Error converting Markdown to ADF: {ctx.operation}]")])
        return f"[Error in operation: {ctx.operation}]"

    def _best_effort(self, error: Exception, ctx: RecoveryContext) -> RecoveryResult:
        if ctx.operation == TO_MARKDOWN and isinstance(ctx.input, tuple):
            doc, render = ctx.input
            data, warnings = self._render_by_node(doc, render)
            strategy = "node-by-node-recovery"
        elif ctx.operation == TO_ADF and isinstance(ctx.input, tuple):
            markdown, parse = ctx.input
            data, warnings = self._parse_by_section(markdown, parse)
            strategy = "section-by-section-recovery"
        else:
            return RecoveryResult(
                success=False, error=error, strategy="generic-fallback",
                warnings=[f"No best-effort recovery for {ctx.operation}: {error}"], attempts=ctx.attempt,
            )
        self._recovered(strategy, ctx)
        return RecoveryResult(
            success=True, data=data, error=error, strategy=strategy, fallback=True,
            warnings=warnings, attempts=ctx.attempt,
        )

    def _render_by_node(self, doc: Any, render: Callable[[Document], str]) -> tuple[str, list[str]]:
        warnings: list[str] = []
        if not isinstance(doc, Document):
            try:
                doc = Document.model_validate(doc)
            except pydantic.ValidationError as e:
                return "# Document\n\n[No content]", [f"Used minimal fallback conversion: {e.error_count()} invalid field(s)"]
        parts: list[str] = []
        for item in doc.content:
            try:
                parts.append(render(Document(content=[item])))
            except Exception as e:
                warnings.append(f"Failed to convert node type {item.type}: {e}")
                parts.append(node_fallback(item))
        return "\n\n".join(p for p in parts if p), warnings

    def _parse_by_section(self, markdown: str, parse: Callable[[str], Document]) -> tuple[Document, list[str]]:
        warnings: list[str] = []
        content: list[Node] = []
        for section in split_sections(markdown):
            try:
                content.extend(parse(section).content)
            except Exception as e:
                warnings.append(f"Failed to parse section {section.strip()[:50]!r}: {e}")
                content.append(text_fallback(section))
        return Document(content=content), warnings

    def to_markdown(self, doc: Document | dict[str, Any], render: Callable[[Document], str]) -> RecoveryResult[str]:
        return self.execute(lambda: render(doc), RecoveryContext(operation=TO_MARKDOWN, input=(doc, render)))

    def to_adf(self, markdown: str, parse: Callable[[str], Document]) -> RecoveryResult[Document]:
        return self.execute(lambda: parse(markdown), RecoveryContext(operation=TO_ADF, input=(markdown, parse)))

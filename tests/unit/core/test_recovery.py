"""Unit tests for core/recovery.py"""

import json

import pytest

from adfmark.config import Settings
from adfmark.core.models import Document, node, text
from adfmark.core.parse import parse_markdown
from adfmark.core.recovery import ErrorRecoveryManager, RecoveryContext, is_non_retryable, split_sections
from adfmark.core.render.engine import render_document
from adfmark.errors import MetadataError, ValidationError


@pytest.fixture(name="sleeps")
def sleeps_fixture():
    return []


@pytest.fixture(name="manager_factory")
def manager_factory_fixture(sleeps):
    """Build managers whose sleep only records the requested delay."""
    def make(**kwargs):
        return ErrorRecoveryManager(sleep=sleeps.append, **kwargs)
    return make


def _failing(times, exc=RuntimeError("flaky")):
    calls = {"n": 0}

    def op():
        calls["n"] += 1
        if calls["n"] <= times:
            raise exc
        return "ok"
    return op


def test_success_first_try(manager_factory, sleeps):
    result = manager_factory().execute(lambda: 42, {"operation": "answer"})
    assert (result.success, result.data, result.attempts, result.fallback) == (True, 42, 1, False)
    assert sleeps == []


def test_retries_then_succeeds(manager_factory, sleeps):
    recovered = []
    manager = manager_factory(max_retries=3, on_recovery=lambda strategy, ctx: recovered.append(strategy))
    result = manager.execute(_failing(2), RecoveryContext(operation="flaky"))
    assert (result.success, result.data, result.attempts) == (True, "ok", 3)
    assert sleeps == [0.1, 0.1]
    assert recovered == ["retry-success"]


def test_exhausted_retries_skip(manager_factory, sleeps):
    errors = []
    manager = manager_factory(max_retries=2, fallback_strategy="skip", on_error=lambda e, ctx: errors.append(ctx.attempt))
    result = manager.execute(_failing(10), {"operation": "flaky"})
    assert (result.success, result.strategy, result.attempts) == (False, "skip", 3)
    assert isinstance(result.error, RuntimeError)
    assert len(sleeps) == 2
    assert errors == [1, 2, 3]
    assert "skipped" in result.warnings[0]


@pytest.mark.parametrize("exc", [
    ValidationError("bad doc"),
    MetadataError("bad comment", raw=""),
    RuntimeError("Invalid JSON at line 1"),
    RuntimeError("Syntax error near x"),
])
def test_non_retryable_errors_fail_fast(manager_factory, sleeps, exc):
    result = manager_factory(fallback_strategy="skip").execute(_failing(10, exc), {"operation": "x"})
    assert result.attempts == 1
    assert sleeps == []


def test_library_errors_are_non_retryable():
    with pytest.raises(json.JSONDecodeError) as decode_exc:
        json.loads("{")
    assert is_non_retryable(decode_exc.value)
    with pytest.raises(Exception) as pydantic_exc:
        Document.model_validate({"version": 2})
    assert is_non_retryable(pydantic_exc.value)
    assert not is_non_retryable(RuntimeError("network blip"))


def test_throw_propagates_last_error(manager_factory):
    with pytest.raises(RuntimeError, match="flaky"):
        manager_factory(max_retries=1, fallback_strategy="throw").execute(_failing(10), {"operation": "x"})


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError, match="Unknown fallback strategy"):
        ErrorRecoveryManager(fallback_strategy="pray")


def _explode(*args):
    raise RuntimeError("boom")


def test_placeholder_to_markdown(manager_factory):
    result = manager_factory(max_retries=0, fallback_strategy="placeholder").to_markdown(Document(), _explode)
    assert (result.success, result.fallback, result.strategy) == (True, True, "placeholder")
    assert result.data == "[Error converting ADF to Markdown: to_markdown]"


def test_placeholder_to_adf(manager_factory):
    result = manager_factory(max_retries=0, fallback_strategy="placeholder").to_adf("# x", _explode)
    assert isinstance(result.data, Document)
    assert result.data.content[0].plain_text() == "[Error converting Markdown to ADF: to_adf]"


def test_best_effort_to_markdown_renders_node_by_node(manager_factory):
    def render(doc):
        if any(n.type == "panel" for n in doc.content):
            raise RuntimeError("panel exploded")
        return render_document(doc).markdown

    doc = Document(content=[
        node("paragraph", text("hello")),
        node("panel", node("paragraph", text("x")), attrs={"panelType": "warning"}),
        node("heading", text("Title"), attrs={"level": 1}),
    ])
    result = manager_factory(max_retries=0).to_markdown(doc, render)
    assert (result.success, result.strategy) == (True, "node-by-node-recovery")
    assert result.data == "hello\n\n> [warning panel]\n\n# Title"
    assert result.warnings == ["Failed to convert node type panel: panel exploded"]


def test_best_effort_to_adf_parses_section_by_section(manager_factory):
    def parse(markdown):
        if "BAD" in markdown:
            raise RuntimeError("bad section")
        return parse_markdown(markdown).document

    result = manager_factory(max_retries=0).to_adf("# Title\n\nGood text\n\nBAD stuff", parse)
    assert result.strategy == "section-by-section-recovery"
    assert [n.type for n in result.data.content] == ["heading", "paragraph", "paragraph"]
    assert result.data.content[2].plain_text() == "BAD stuff"
    assert len(result.warnings) == 1


def test_best_effort_without_known_operation(manager_factory):
    result = manager_factory(max_retries=0).execute(_failing(10), {"operation": "other"})
    assert (result.success, result.strategy) == (False, "generic-fallback")


def test_split_sections():
    assert split_sections("# A\ntext\n## B\n\npara\n\n\n") == ["# A\ntext\n", "## B", "para"]
    assert split_sections("   ") == ["   "]


def test_from_settings():
    manager = ErrorRecoveryManager.from_settings(Settings(max_retries=5, retry_delay=0, fallback_strategy="skip"))
    assert (manager.max_retries, manager.retry_delay, manager.fallback_strategy) == (5, 0, "skip")

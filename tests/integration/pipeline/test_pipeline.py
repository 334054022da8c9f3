"""Integration tests for the to-adf -> to-md -> check pipeline.

Each test runs one pipeline step against the canonical document below and
asserts stable expected values.

Canonical document (pipeline-test.md)
--------------------------------------
    ---
    title: Pipeline Test
    date: 2026-01-15
    ---

    # Introduction

    An introductory paragraph with a {status:Draft|color:blue} lozenge.

    ~~~panel type=note
    Remember to review.
    ~~~

ADF layout after to-adf (frontmatter is not part of ADF):
    [heading level 1]  "Introduction"
    [paragraph]        text, status, text
    [panel note]       [paragraph] "Remember to review."
"""

import json

import pytest

from adfmark.config import Settings
from adfmark.core.pipeline import (
    check_markdown, convert_adf, convert_markdown, run_check, run_to_adf, run_to_markdown,
)


CANONICAL_MD = """\
---
title: Pipeline Test
date: 2026-01-15
---

# Introduction

An introductory paragraph with a {status:Draft|color:blue} lozenge.

~~~panel type=note
Remember to review.
~~~
"""

BODY_MD = CANONICAL_MD.split("---\n\n", 1)[1]


# --- fixtures ---

@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(retry_delay=0)


@pytest.fixture(name="source_file")
def source_file_fixture(tmp_path):
    """Write the canonical document to a temp file."""
    f = tmp_path / "pipeline-test.md"
    f.write_text(CANONICAL_MD)
    return f


@pytest.fixture(autouse=True)
def chdir_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


# --- to-adf ---

def test_to_adf_writes_adf_json(source_file, settings, tmp_path):
    """One .adf.json per markdown file, holding a version 1 document."""
    results = run_to_adf(str(source_file), settings, tmp_path / "dist")
    src, out_file, warnings = results[0]
    assert src == source_file
    assert out_file == tmp_path / "dist" / "pipeline-test.adf.json"
    assert warnings == []
    data = json.loads(out_file.read_text())
    assert (data["version"], data["type"]) == (1, "doc")
    assert [n["type"] for n in data["content"]] == ["heading", "paragraph", "panel"]


def test_to_adf_node_details(source_file, settings, tmp_path):
    out_file = run_to_adf(str(source_file), settings, tmp_path / "dist")[0][1]
    heading, paragraph, panel = json.loads(out_file.read_text())["content"]
    assert heading["attrs"] == {"level": 1}
    assert paragraph["content"][1] == {"type": "status", "attrs": {"text": "Draft", "color": "blue"}}
    assert panel["attrs"] == {"panelType": "note"}
    assert panel["content"][0]["content"][0]["text"] == "Remember to review."


def test_to_adf_mirrors_directory_layout(tmp_path, settings):
    (tmp_path / "docs" / "sub").mkdir(parents=True)
    (tmp_path / "docs" / "a.md").write_text("# A\n")
    (tmp_path / "docs" / "sub" / "b.mdx").write_text("# B\n")
    results = run_to_adf("docs", settings, tmp_path / "out")
    assert [r[2] for r in results] == [[], []]
    assert (tmp_path / "out" / "a.adf.json").exists()
    assert (tmp_path / "out" / "sub" / "b.adf.json").exists()


def test_to_adf_skip_strategy(tmp_path):
    """A strict parse failure under the skip strategy writes nothing and reports why."""
    f = tmp_path / "broken.md"
    f.write_text("~~~panel\nnever closed\n")
    settings = Settings(strict=True, max_retries=0, fallback_strategy="skip")
    results = run_to_adf(str(f), settings, tmp_path / "dist")
    assert results[0][1] is None
    assert "skipped" in results[0][2][0]
    assert not (tmp_path / "dist").exists()


# --- to-md ---

def test_adf_back_to_markdown(source_file, settings, tmp_path):
    """ADF written by to-adf renders back to the document body."""
    run_to_adf(str(source_file), settings, tmp_path / "dist")
    results = run_to_markdown(str(tmp_path / "dist"), settings, tmp_path / "md")
    src, out_file, warnings = results[0]
    assert out_file == tmp_path / "md" / "pipeline-test.md"
    assert warnings == []
    assert out_file.read_text() == BODY_MD


def test_convert_adf_rejects_bad_json(settings):
    with pytest.raises(ValueError, match="Invalid JSON"):
        convert_adf("{not json", settings)


def test_convert_adf_invalid_document_best_effort(settings):
    """An unreadable document still yields minimal markdown under best-effort."""
    markdown, warnings = convert_adf({"version": 2, "type": "doc", "content": []}, settings)
    assert markdown == "# Document\n\n[No content]"
    assert warnings


def test_convert_adf_placeholder(settings):
    placeholder = settings.model_copy(update={"fallback_strategy": "placeholder"})
    markdown, warnings = convert_adf({"version": 2}, placeholder)
    assert markdown == "[Error converting ADF to Markdown: to_markdown]"
    assert warnings[0].startswith("Used placeholder for to_markdown")


def test_convert_markdown_collects_parse_warnings(settings):
    doc, warnings = convert_markdown("~~~bogus\nx\n~~~", settings)
    assert doc.content[0].plain_text() == "[Unknown node type: bogus]"
    assert warnings == ["Unknown node type: bogus"]


# --- check ---

def test_check_canonical_is_stable(source_file, settings):
    reports = run_check(str(source_file), settings)
    assert len(reports) == 1
    assert reports[0].ok
    assert reports[0].summary["added"] == reports[0].summary["deleted"] == 0


def test_check_reports_drift(settings):
    """'*' bullets normalize to '-' and show up as a diff."""
    report = check_markdown("* item\n", settings, label="bullets.md")
    assert not report.ok
    assert report.summary == {"added": 1, "deleted": 1, "unchanged": 0}
    assert "-* item\n" in report.diff
    assert "+- item\n" in report.diff


def test_check_without_frontmatter_emission(source_file, settings):
    quiet = settings.model_copy(update={"emit_frontmatter": False})
    report = run_check(str(source_file), quiet)[0]
    assert not report.ok
    assert report.summary["deleted"] == 5


def test_to_adf_deeply_nested_quotes(tmp_path, settings):
    f = tmp_path / "deep.md"
    f.write_text("> " * 300 + "x\n")
    out_file = run_to_adf(str(f), settings, tmp_path / "dist")[0][1]
    current = json.loads(out_file.read_text())["content"][0]
    depth = 0
    while current["type"] == "blockquote":
        depth += 1
        current = current["content"][0]
    assert depth == 300
    assert current["content"][0]["text"] == "x"

"""Pipeline step functions: convert files in both directions and report round-trip drift"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from adfmark.config import Settings
from adfmark.core.models import Document
from adfmark.core.parse import ADF_EXTENSIONS, MD_EXTENSIONS, discover_files, parse_markdown
from adfmark.core.recovery import ErrorRecoveryManager
from adfmark.core.render.engine import default_registry, render_document
from adfmark.core.utils.diff import diff_summary, unified_diff


logger = logging.getLogger(__name__)

ADF_SUFFIX = ".adf.json"


class RoundTripReport(BaseModel):
    path:     Path
    diff:     list[str] = Field(default_factory=list)
    summary:  dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diff


def _output_path(src: Path, root: Path, output_dir: Path, suffix: str) -> Path:
    """Mirror src's position under root into output_dir with a new suffix."""
    rel = Path(src.name) if root.is_file() else src.relative_to(root)
    name = rel.name
    for old in (ADF_SUFFIX, *MD_EXTENSIONS, *ADF_EXTENSIONS):
        if name.endswith(old):
            name = name[: -len(old)]
            break
    return output_dir / rel.parent / f"{name}{suffix}"


def convert_markdown(text: str, settings: Settings, recovery: ErrorRecoveryManager | None = None) -> tuple[Document | None, list[str]]:
    """Markdown text to a Document under the recovery policy. Returns (document or None if skipped, warnings)."""
    recovery = recovery or ErrorRecoveryManager.from_settings(settings)
    warnings: list[str] = []

    def parse(source: str) -> Document:
        result = parse_markdown(source, settings)
        warnings.extend(result.warnings)
        return result.document

    outcome = recovery.to_adf(text, parse)
    warnings.extend(outcome.warnings)
    return (outcome.data if outcome.success else None), warnings


def convert_adf(data: Document | dict | str, settings: Settings, recovery: ErrorRecoveryManager | None = None) -> tuple[str | None, list[str]]:
    """ADF (Document, dict or JSON text) to markdown under the recovery policy. Returns (markdown or None if skipped, warnings)."""
    recovery = recovery or ErrorRecoveryManager.from_settings(settings)
    registry = default_registry()
    warnings: list[str] = []

    def render(doc: Document | dict | str) -> str:
        result = render_document(doc, registry=registry, strict=settings.strict)
        warnings.extend(result.warnings)
        return result.markdown

    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e
    outcome = recovery.to_markdown(data, render)
    warnings.extend(outcome.warnings)
    return (outcome.data if outcome.success else None), warnings


def run_to_adf(path: str, settings: Settings, output_dir: Path) -> list[tuple[Path, Path | None, list[str]]]:
    """Convert markdown files under path to ADF JSON in output_dir. Returns (source, output, warnings)."""
    root = Path(path)
    recovery = ErrorRecoveryManager.from_settings(settings)
    results = []
    for p in discover_files(root, MD_EXTENSIONS):
        try:
            doc, warnings = convert_markdown(p.read_text(encoding="utf-8"), settings, recovery)
        except Exception as e:
            raise RuntimeError(f"Failed to convert {p}: {e}") from e
        if doc is None:
            logger.warning("skipped %s", p)
            results.append((p, None, warnings))
            continue
        out_file = _output_path(p, root, output_dir, ADF_SUFFIX)
        out_file.parent.mkdir(parents=True, exist_ok=True)
        out_file.write_text(json.dumps(doc.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("%s -> %s (%d warning(s))", p, out_file, len(warnings))
        results.append((p, out_file, warnings))
    return results


def run_to_markdown(path: str, settings: Settings, output_dir: Path) -> list[tuple[Path, Path | None, list[str]]]:
    """Convert ADF JSON files under path to markdown in output_dir. Returns (source, output, warnings)."""
    root = Path(path)
    recovery = ErrorRecoveryManager.from_settings(settings)
    results = []
    for p in discover_files(root, ADF_EXTENSIONS):
        try:
            markdown, warnings = convert_adf(p.read_text(encoding="utf-8"), settings, recovery)
        except Exception as e:
            raise RuntimeError(f"Failed to convert {p}: {e}") from e
        if markdown is None:
            logger.warning("skipped %s", p)
            results.append((p, None, warnings))
            continue
        out_file = _output_path(p, root, output_dir, ".md")
        out_file.parent.mkdir(parents=True, exist_ok=True)
        out_file.write_text(markdown + "\n", encoding="utf-8")
        logger.info("%s -> %s (%d warning(s))", p, out_file, len(warnings))
        results.append((p, out_file, warnings))
    return results


def check_markdown(text: str, settings: Settings, label: str = "original") -> RoundTripReport:
    """Parse then re-render text and diff the result against the input."""
    parsed = parse_markdown(text, settings)
    frontmatter = parsed.frontmatter if settings.emit_frontmatter else None
    rendered = render_document(parsed.document, strict=settings.strict, frontmatter=frontmatter)
    return RoundTripReport(
        path=Path(label),
        diff=unified_diff(text, rendered.markdown, from_label=label, to_label=f"{label} (roundtrip)"),
        summary=diff_summary(text.rstrip(), rendered.markdown),
        warnings=parsed.warnings + rendered.warnings,
    )


def run_check(path: str, settings: Settings) -> list[RoundTripReport]:
    """Round-trip every markdown file under path and report differences."""
    reports = []
    for p in discover_files(Path(path), MD_EXTENSIONS):
        try:
            report = check_markdown(p.read_text(encoding="utf-8"), settings, label=str(p))
        except Exception as e:
            raise RuntimeError(f"Failed to check {p}: {e}") from e
        reports.append(report)
    return reports

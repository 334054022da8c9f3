"""CLI command implementations"""

from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml

from adfmark.config import Settings, load_config
from adfmark.core.pipeline import run_check, run_to_adf, run_to_markdown
from adfmark.logging import configure_logging


StrictOpt = Annotated[Optional[bool], typer.Option("--strict/--lenient", help="Raise on malformed input")]
EngineOpt = Annotated[Optional[str], typer.Option("--engine", help="Parser front end: extended | markdown-it")]
OutOpt = Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")]
FallbackOpt = Annotated[Optional[str], typer.Option("--fallback", help="skip | placeholder | best-effort | throw")]


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling, then set up logging."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    configure_logging(settings.log_level)
    return settings


def _echo_results(results: list, verb: str, output_dir: Path) -> None:
    written = 0
    for src, out_file, warnings in results:
        if out_file is None:
            typer.echo(f"  {src} skipped")
        else:
            written += 1
            typer.echo(f"  {src} -> {out_file}")
        for w in warnings:
            typer.echo(f"    warning: {w}", err=True)
    typer.echo(f"{verb} {written} document(s) to {output_dir}/")


def to_adf_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file or directory")],
    out: OutOpt = None,
    strict: StrictOpt = None,
    engine: EngineOpt = None,
    fallback: FallbackOpt = None,
    ):
    """Convert Extended Markdown files to ADF JSON."""
    settings = _settings(overrides={
        "output_dir": out, "strict": strict, "parser_engine": engine, "fallback_strategy": fallback,
    })
    output_dir = Path(settings.output_dir)
    try:
        results = run_to_adf(path, settings, output_dir)
    except RuntimeError as e:
        _fail(str(e))
    if not results:
        typer.echo(f"No markdown files found at {path}.")
        raise typer.Exit(1)
    _echo_results(results, "Converted", output_dir)


def to_md_cmd(
    path: Annotated[str, typer.Argument(help="ADF JSON file or directory")],
    out: OutOpt = None,
    strict: StrictOpt = None,
    fallback: FallbackOpt = None,
    ):
    """Convert ADF JSON files to Extended Markdown."""
    settings = _settings(overrides={"output_dir": out, "strict": strict, "fallback_strategy": fallback})
    output_dir = Path(settings.output_dir)
    try:
        results = run_to_markdown(path, settings, output_dir)
    except RuntimeError as e:
        _fail(str(e))
    if not results:
        typer.echo(f"No ADF files found at {path}.")
        raise typer.Exit(1)
    _echo_results(results, "Converted", output_dir)


def check_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file or directory")],
    strict: StrictOpt = None,
    engine: EngineOpt = None,
    ):
    """Round-trip markdown through ADF and report any drift. Exits 1 on differences."""
    settings = _settings(overrides={"strict": strict, "parser_engine": engine})
    try:
        reports = run_check(path, settings)
    except RuntimeError as e:
        _fail(str(e))
    if not reports:
        typer.echo(f"No markdown files found at {path}.")
        raise typer.Exit(1)

    drifted = [r for r in reports if not r.ok]
    for report in reports:
        s = report.summary
        status = "ok" if report.ok else f"changed (+{s['added']} -{s['deleted']})"
        typer.echo(f"  {report.path}: {status}")
        for w in report.warnings:
            typer.echo(f"    warning: {w}", err=True)
        if not report.ok:
            typer.echo("".join(report.diff), nl=False)
    typer.echo(f"Checked {len(reports)} document(s), {len(drifted)} changed")
    if drifted:
        raise typer.Exit(1)


def config_cmd():
    """Print the effective settings."""
    settings = _settings()
    typer.echo(yaml.safe_dump(settings.model_dump(), sort_keys=False).rstrip())

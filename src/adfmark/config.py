"""Application configuration: settings schema and adfmark.yaml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "adfmark.yaml"


class Settings(BaseModel):
    app_name:               str = "adfmark"
    strict:                 bool = Field(default=False, description="Raise on malformed input instead of degrading")
    preserve_unknown_nodes: bool = Field(default=True,  description="Keep unknown types as placeholder paragraphs")
    parser_engine:          str = Field(default="extended", pattern="^(extended|markdown-it)$", description="Block tokenizer front end")
    markdown_it_preset:     str = Field(default="gfm-like", description="MarkdownIt preset for the markdown-it engine")
    max_retries:            int = Field(default=3,   ge=0, description="Retries before falling back")
    retry_delay:            float = Field(default=0.1, ge=0, description="Seconds between retries")
    fallback_strategy:      str = Field(default="best-effort", pattern="^(skip|placeholder|best-effort|throw)$", description="What to do once retries are exhausted")
    emit_frontmatter:       bool = Field(default=True, description="Write parsed frontmatter back when rendering")
    log_level:              str = Field(default="WARNING", description="Logging level for the adfmark logger")
    output_dir:             str = Field(default="dist", description="Directory for converted files")


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from adfmark.yaml, then ADFMARK_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")

    for name in Settings.model_fields:
        if val := os.getenv(f"ADFMARK_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)

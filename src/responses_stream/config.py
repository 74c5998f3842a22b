"""Configuration management for responses-stream."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

API_KEY_ENV = "OPENAI_API_KEY"


class ReasoningSettings(BaseModel):
    effort: str = "medium"  # none | minimal | low | medium | high
    verbosity: str = "medium"  # low | medium | high
    summary: str = "auto"  # auto | detailed | "null" (explicit no summary)
    auto_collapse: bool = True  # collapse the reasoning window on completion


class ResponsesConfig(BaseModel):
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    model: str | None = None  # currently selected model
    default_model: str = "gpt-5-nano"  # used when nothing usable is selected
    timeout: float = 120
    reasoning: ReasoningSettings = Field(default_factory=ReasoningSettings)

    def resolve_api_key(self) -> str | None:
        """Return the configured key, else ``$OPENAI_API_KEY``, else None."""
        return self.api_key or os.environ.get(API_KEY_ENV) or None


CONFIG_FILENAME = "responses_stream.yaml"


def load_config(
    config_path: str | Path | None = None,
) -> tuple[ResponsesConfig, Path | None]:
    """Load configuration from YAML file.

    Returns (config, resolved_path).  *resolved_path* is ``None`` when
    no file was found and built-in defaults are used.

    Search order (first match wins):
      1. Explicit ``--config`` path
      2. Current working directory: ``./responses_stream.yaml``
      3. User config dir: ``~/.responses_stream/responses_stream.yaml``
    """
    if config_path is None:
        for d in (Path.cwd(), Path.home() / ".responses_stream"):
            p = d / CONFIG_FILENAME
            if p.exists():
                config_path = p
                break

    resolved: Path | None = Path(config_path) if config_path else None
    if resolved and resolved.exists():
        with open(resolved) as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
        return ResponsesConfig.model_validate(raw), resolved.resolve()

    if config_path is not None:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return ResponsesConfig(), None

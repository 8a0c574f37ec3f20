"""Parser options with YAML and environment variable support.

Options are read from ~/.config/org-outline/config.yaml when present, and can
be overridden with ORG_OUTLINE_* environment variables:

- ORG_OUTLINE_TODO_KEYWORDS: Space-separated not-done keywords (e.g. "TODO NEXT")
- ORG_OUTLINE_DONE_KEYWORDS: Space-separated done keywords (e.g. "DONE CANCELLED")
- ORG_OUTLINE_MAX_HEADING_LEVEL: Deepest heading level accepted without a warning
- ORG_OUTLINE_STRICT_LEVELS: "1"/"true" to reject headings deeper than the maximum
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "org-outline" / "config.yaml"


class ParserOptions(BaseModel):
    """Settings that influence how documents are parsed."""

    todo_keywords: list[str] = Field(
        default_factory=lambda: ["TODO"],
        description="Not-done keywords used when a file declares no #+TODO sequence"
    )

    done_keywords: list[str] = Field(
        default_factory=lambda: ["DONE"],
        description="Done keywords used when a file declares no #+TODO sequence"
    )

    default_priorities: list[str] = Field(
        default_factory=lambda: ["A", "B", "C"],
        description="Priority letters recognized when a file declares no #+PRIORITIES"
    )

    max_heading_level: int = Field(
        default=8,
        ge=1,
        description="Deepest heading level accepted without a warning"
    )

    strict_levels: bool = Field(
        default=False,
        description="Reject headings deeper than max_heading_level instead of warning"
    )

    @field_validator("todo_keywords", "done_keywords")
    @classmethod
    def validate_keywords(cls, v: list[str]) -> list[str]:
        """Keywords must be single words."""
        for keyword in v:
            if not keyword or any(ch.isspace() for ch in keyword):
                raise ValueError(f"Invalid TODO keyword: {keyword!r}")
        return v

    @field_validator("default_priorities")
    @classmethod
    def validate_priorities(cls, v: list[str]) -> list[str]:
        """Priorities are single characters."""
        for priority in v:
            if len(priority) != 1:
                raise ValueError(f"Priority must be a single character: {priority!r}")
        return v

    model_config = {"frozen": True}


def load_options(config_path: Optional[Path] = None) -> ParserOptions:
    """Load parser options from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file. If None, uses ~/.config/org-outline/config.yaml

    Returns:
        Validated ParserOptions (defaults when neither file nor variables exist)

    Raises:
        ValueError: If the config file is not a mapping or validation fails
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    data = _apply_env_overrides(data)

    # Pydantic will validate the structure
    return ParserOptions(**data)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration data.

    Args:
        data: Base configuration dictionary from YAML

    Returns:
        Configuration dictionary with environment overrides applied
    """
    if env_todo := os.getenv("ORG_OUTLINE_TODO_KEYWORDS"):
        data["todo_keywords"] = env_todo.split()

    if env_done := os.getenv("ORG_OUTLINE_DONE_KEYWORDS"):
        data["done_keywords"] = env_done.split()

    if env_max_level := os.getenv("ORG_OUTLINE_MAX_HEADING_LEVEL"):
        try:
            data["max_heading_level"] = int(env_max_level)
        except ValueError:
            pass  # Invalid value, ignore

    if env_strict := os.getenv("ORG_OUTLINE_STRICT_LEVELS"):
        data["strict_levels"] = env_strict.strip().lower() in ("1", "true", "yes", "on")

    return data

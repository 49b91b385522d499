"""Generator configuration: ``forge.yaml`` model and environment settings."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .values import freeze, load_yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "forge.yaml"

DEFAULT_INCLUDE_PATTERNS = ["*.j2", "*.jinja", "*.jinja2"]
DEFAULT_EXCLUDE_PATTERNS = ["_*", "**/_*/**"]


class TargetFormat(str, Enum):
    """What markdown-formatted text in the schema is converted into."""

    MARKDOWN = "markdown"
    TEXT = "text"
    HTML = "html"


class WhitespaceControl(BaseModel):
    """Jinja2 whitespace defaults; authors still control each tag with ``-``."""

    model_config = ConfigDict(extra="forbid")

    trim_blocks: bool = True
    lstrip_blocks: bool = True
    keep_trailing_newline: bool = True


class TemplateDirective(BaseModel):
    """Fan-out directive as written in a template header block."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    fan_out: str | None = Field(default=None, description="Selector query")
    file_name: str | None = Field(default=None, description="Output-path template")


class TemplateRule(TemplateDirective):
    """Directive applied to every template whose path matches ``pattern``."""

    pattern: str


class ForgeConfig(BaseModel):
    """Configuration for one generation run."""

    model_config = ConfigDict(extra="forbid")

    template_root: Path
    output_root: Path = Field(default_factory=lambda: Path("output"))
    include_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS)
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS)
    )
    global_parameters: dict[str, Any] = Field(default_factory=dict)
    target_format: TargetFormat = TargetFormat.MARKDOWN
    whitespace_control: WhitespaceControl = Field(default_factory=WhitespaceControl)
    text_maps: dict[str, dict[str, str]] = Field(default_factory=dict)
    acronyms: list[str] = Field(default_factory=list)
    templates: list[TemplateRule] = Field(default_factory=list)
    file_mode: int = Field(default=0o644, description="File permissions (octal)")
    max_workers: int | None = Field(default=None, ge=1)

    @field_validator("include_patterns")
    @classmethod
    def _require_include(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one include pattern is required")
        return value

    @field_validator("global_parameters")
    @classmethod
    def _require_data(cls, value: dict[str, Any]) -> dict[str, Any]:
        try:
            freeze(value)
        except TypeError as e:
            raise ValueError(str(e)) from e
        return value


class ForgeSettings(BaseSettings):
    """Process-level settings read from ``SCHEMAFORGE_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="SCHEMAFORGE_", case_sensitive=False)

    max_workers: int | None = None
    log_level: str = "INFO"
    config_file: str = CONFIG_FILE_NAME


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML configuration file into a mapping.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed mapping (empty when the file is empty)
    """
    try:
        data = load_yaml(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(
    template_root: Path,
    settings: ForgeSettings | None = None,
    **overrides: Any,
) -> ForgeConfig:
    """Build the run configuration for a template root.

    Values from ``<template_root>/forge.yaml`` (when present) are loaded first,
    then environment settings, then every override that is not ``None``.
    ``global_parameters`` overrides are merged into the file's parameters.

    Args:
        template_root: Template directory
        settings: Environment settings (read from the environment when omitted)
        **overrides: Field values taking precedence over the file

    Returns:
        Validated configuration
    """
    settings = settings or ForgeSettings()
    config_path = template_root / settings.config_file

    data: dict[str, Any] = {}
    if config_path.is_file():
        logger.debug(f"Loading configuration from {config_path}")
        data = read_config_file(config_path)

    if settings.max_workers is not None:
        data["max_workers"] = settings.max_workers

    for key, value in overrides.items():
        if value is None:
            continue
        if key == "global_parameters":
            value = {**(data.get(key) or {}), **value}
        data[key] = value
    data["template_root"] = template_root

    try:
        return ForgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration for {template_root}:\n{e}") from e

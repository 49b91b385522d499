"""CLI argument parsers and validators."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import typer
import yaml

from ..core.values import freeze, load_yaml

_INT_PATTERN = re.compile(r"^-?\d+$")
_FLOAT_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")


def coerce_value(value: str) -> bool | int | float | str:
    """Coerce a string value to its appropriate type.

    Args:
        value: String value to coerce

    Returns:
        Coerced value (bool, int, float, or str)
    """
    value_lower = value.lower()

    if value_lower in ("true", "false"):
        return value_lower == "true"

    if _INT_PATTERN.match(value):
        return int(value)

    if _FLOAT_PATTERN.match(value):
        return float(value)

    return value


def parse_assignment(value: str, what: str = "KEY=VALUE") -> tuple[str, Any]:
    """Parse a ``KEY=VALUE`` argument, coercing the value."""
    if "=" not in value:
        raise typer.BadParameter(f"Must be {what}, got: {value!r}")
    key, raw = value.split("=", 1)
    key = key.strip()
    if not key:
        raise typer.BadParameter(f"Empty key in {value!r}")
    return key, coerce_value(raw)


def parse_file_mode(value: str) -> int:
    """Parse octal file mode string."""
    try:
        return int(value, 8)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid octal mode: {value!r}") from e


def load_data_file(path: Path) -> Any:
    """Load a JSON or YAML document (chosen by suffix, YAML otherwise)."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise typer.BadParameter(f"Cannot read {path}: {e.strerror or e}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = load_yaml(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise typer.BadParameter(f"Cannot parse {path}: {e}") from e

    try:
        freeze(data)
    except TypeError as e:
        raise typer.BadParameter(f"Cannot use {path}: {e}") from e
    return data


def load_params_file(path: Path) -> dict[str, Any]:
    data = load_data_file(path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} must contain a mapping of parameters")
    return data

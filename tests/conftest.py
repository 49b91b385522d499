"""Shared pytest fixtures for the schemaforge test suite.

Provides reusable fixtures for:
- Template and output directories
- A small resolved schema
- Configurations and template engines built on them
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from schemaforge.core.config import ForgeConfig
from schemaforge.rendering.engine import TemplateEngine


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def template_root(tmp_path: Path) -> Path:
    """Empty template root directory."""
    root = tmp_path / "templates"
    root.mkdir()
    return root


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    """Output directory (not created; the generator creates it)."""
    return tmp_path / "out"


@pytest.fixture
def write_template(template_root: Path) -> Callable[[str, str], Path]:
    """Write a dedented template file under the template root."""

    def write(relative: str, content: str) -> Path:
        path = template_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path

    return write


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

@pytest.fixture
def groups_schema() -> dict[str, Any]:
    """Two groups, one of which has no attributes."""
    return {
        "groups": [
            {"id": "a", "attrs": ["x", "y"]},
            {"id": "b", "attrs": []},
        ]
    }


@pytest.fixture
def registry_schema() -> dict[str, Any]:
    """A schema shaped like a semantic-convention registry."""
    return {
        "groups": [
            {
                "id": "registry.http",
                "type": "attribute_group",
                "brief": "HTTP *attributes*.",
                "attributes": [
                    {"name": "http.request.method", "type": "string", "stability": "stable"},
                    {"name": "http.response.status_code", "type": "int", "stability": "stable"},
                ],
            },
            {
                "id": "registry.db",
                "type": "attribute_group",
                "brief": "Database attributes.",
                "attributes": [
                    {"name": "db.system", "type": "string", "stability": "experimental"},
                ],
            },
            {
                "id": "metric.http.server.duration",
                "type": "metric",
                "brief": "Duration of HTTP server requests.",
                "attributes": [],
            },
        ]
    }


# ---------------------------------------------------------------------------
# Configuration & Engine
# ---------------------------------------------------------------------------

@pytest.fixture
def make_config(template_root: Path, output_root: Path) -> Callable[..., ForgeConfig]:
    """Build a ForgeConfig rooted at the fixture directories."""

    def make(**overrides: Any) -> ForgeConfig:
        return ForgeConfig(template_root=template_root, output_root=output_root, **overrides)

    return make


@pytest.fixture
def engine(make_config: Callable[..., ForgeConfig]) -> TemplateEngine:
    """Template engine with the default configuration."""
    return TemplateEngine(make_config())

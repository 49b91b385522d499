"""Schemaforge - Schema-driven code and documentation generator.

Renders Jinja2 templates against a resolved schema, with a JQ-style query
language for selecting data and fan-out templates that produce one file
per selected item.
"""

__version__ = "0.1.0"

# Configure logging for library use
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Re-export main CLI entry point
from .cli import main

__all__ = ["main"]

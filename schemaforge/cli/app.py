"""Main CLI application."""

from __future__ import annotations

import json
import logging
import signal
import threading
from itertools import islice
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from typing_extensions import Annotated

from ..core.config import ForgeSettings, TargetFormat, load_config
from ..core.errors import ConfigError, DiscoveryError, EvalError
from ..core.models import GenerationReport
from ..core.values import thaw
from ..generation.diff import UnifiedDiffReporter
from ..generation.generator import Generator
from ..query import builtin_names, evaluate
from .parsers import load_data_file, load_params_file, parse_assignment, parse_file_mode

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="schemaforge",
    help="Generate code and documentation from a resolved schema and Jinja2 templates.",
    no_args_is_help=True,
)


def _configure_logging(verbose: bool, settings: ForgeSettings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="[%(levelname)s] %(message)s",
    )


def _print_report(report: GenerationReport, show_diffs: bool) -> None:
    if show_diffs:
        for path, diff in report.diffs.items():
            console.print(f"[bold]{path}[/bold]")
            console.print(Syntax(diff, "diff", theme="ansi_dark", background_color="default"))

    if report.written:
        title = "Files to write (dry run)" if report.dry_run else "Written files"
        table = Table(title=title)
        table.add_column("Path")
        table.add_column("Template")
        table.add_column("Status")
        for written in report.written:
            template = written.template
            if written.ordinal is not None:
                template += f" #{written.ordinal}"
            table.add_row(written.path, template, written.status.value)
        console.print(table)

    for diagnostic in report.errors:
        err_console.print(diagnostic.render_text(), style="red", markup=False, highlight=False)
    for diagnostic in report.warnings:
        err_console.print(diagnostic.render_text(), style="yellow", markup=False, highlight=False)

    summary = report.render_text().splitlines()[0]
    style = "green" if report.succeeded else "bold red"
    console.print(summary, style=style, markup=False, highlight=False)


@app.command()
def generate(
    templates: Annotated[
        Path,
        typer.Option(
            "--templates",
            "-t",
            help="Template root directory.",
            metavar="DIR",
        ),
    ],
    schema: Annotated[
        Path,
        typer.Option(
            "--schema",
            "-s",
            help="Resolved schema document (.json, .yaml or .yml).",
            metavar="FILE",
        ),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Output root directory (default: from forge.yaml, else ./output).",
            metavar="DIR",
        ),
    ] = None,
    params: Annotated[
        list[str],
        typer.Option(
            "--param",
            "-p",
            help="Global parameter (format: KEY=VALUE, value type coerced). Repeatable.",
            metavar="KEY=VALUE",
        ),
    ] = [],
    params_file: Annotated[
        Optional[Path],
        typer.Option(
            "--params",
            help="YAML or JSON file with global parameters.",
            metavar="FILE",
        ),
    ] = None,
    include: Annotated[
        list[str],
        typer.Option(
            "--include",
            help="Template include glob (replaces the configured list). Repeatable.",
            metavar="GLOB",
        ),
    ] = [],
    exclude: Annotated[
        list[str],
        typer.Option(
            "--exclude",
            help="Template exclude glob (replaces the configured list). Repeatable.",
            metavar="GLOB",
        ),
    ] = [],
    target_format: Annotated[
        Optional[TargetFormat],
        typer.Option(
            "--target-format",
            help="What the markdown filter converts to.",
            case_sensitive=False,
        ),
    ] = None,
    jobs: Annotated[
        Optional[int],
        typer.Option(
            "--jobs",
            "-j",
            help="Worker threads (default: SCHEMAFORGE_MAX_WORKERS or executor default).",
            min=1,
        ),
    ] = None,
    file_mode: Annotated[
        Optional[str],
        typer.Option(
            "--mode",
            help="File permissions in octal (default: 0644).",
            metavar="OCTAL",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            help="Render and compare, but write nothing.",
        ),
    ] = False,
    diff: Annotated[
        bool,
        typer.Option(
            "--diff",
            help="Show a unified diff for every file that changes.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose logging.",
        ),
    ] = False,
) -> None:
    """Render every template under the template root against a schema."""
    settings = ForgeSettings()
    _configure_logging(verbose, settings)

    logger.debug("Starting schemaforge")

    parameters = load_params_file(params_file) if params_file else {}
    parameters.update(parse_assignment(p) for p in params)

    try:
        config = load_config(
            templates,
            settings,
            output_root=output,
            include_patterns=include or None,
            exclude_patterns=exclude or None,
            global_parameters=parameters,
            target_format=target_format,
            max_workers=jobs,
            file_mode=parse_file_mode(file_mode) if file_mode else None,
        )
    except ConfigError as e:
        err_console.print(f"Configuration error: {e}", style="red", markup=False)
        raise typer.Exit(code=1) from e

    schema_data = load_data_file(schema)
    logger.debug(f"Config: templates={config.template_root} output={config.output_root}")

    generator = Generator(
        config,
        diff_reporter=UnifiedDiffReporter() if diff else None,
        dry_run=dry_run,
        config_file=settings.config_file,
    )
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, lambda signum, frame: generator.cancel())

    try:
        report = generator.generate(schema_data)
    except DiscoveryError as e:
        err_console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=1) from e
    finally:
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, signal.default_int_handler)

    _print_report(report, show_diffs=diff)
    if not report.succeeded:
        raise typer.Exit(code=1)


@app.command()
def query(
    expression: Annotated[str, typer.Argument(help="Query expression.")],
    schema: Annotated[
        Path,
        typer.Option(
            "--schema",
            "-s",
            help="Input document (.json, .yaml or .yml).",
            metavar="FILE",
        ),
    ],
    args: Annotated[
        list[str],
        typer.Option(
            "--arg",
            help="Bind $NAME to VALUE (value type coerced). Repeatable.",
            metavar="NAME=VALUE",
        ),
    ] = [],
    limit: Annotated[
        Optional[int],
        typer.Option(
            "--limit",
            "-n",
            help="Stop after N results.",
            min=0,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose logging.",
        ),
    ] = False,
) -> None:
    """Evaluate a query against a document and print each result as JSON."""
    _configure_logging(verbose, ForgeSettings())

    document = load_data_file(schema)
    variables = dict(parse_assignment(a, "NAME=VALUE") for a in args)

    try:
        for value in islice(evaluate(expression, document, variables), limit):
            typer.echo(json.dumps(thaw(value), ensure_ascii=False))
    except EvalError as e:
        err_console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=1) from e


@app.command("builtins")
def list_builtins() -> None:
    """List the query language builtins as NAME/ARITY."""
    for name in builtin_names():
        typer.echo(name)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

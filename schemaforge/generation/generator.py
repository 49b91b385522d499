"""Generation run orchestration.

Phases: discovery (sequential), expansion per template and rendering per
planned output (parallel), the path-conflict barrier over the complete plan,
then materialization (parallel). Results are collected in submission order,
so the report does not depend on which worker finished first.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

from ..core.config import CONFIG_FILE_NAME, ForgeConfig
from ..core.errors import RenderError
from ..core.models import Diagnostic, DiagnosticCode, GenerationReport, OutputUnit
from ..core.values import freeze
from ..rendering.engine import TemplateEngine
from .diagnostics import Diagnostics
from .diff import DiffReporter
from .discovery import discover
from .expansion import Expansion, PlannedOutput, expand, find_path_conflicts
from .materialize import UnitOutcome, build_report, materialize_unit

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Generator:
    """Runs the template pipeline for one configuration.

    Example::

        config = load_config(Path("templates"), output_root=Path("out"))
        report = Generator(config).generate(schema)
        if not report.succeeded:
            print(report.render_text())
    """

    def __init__(
        self,
        config: ForgeConfig,
        *,
        diff_reporter: DiffReporter | None = None,
        dry_run: bool = False,
        config_file: str = CONFIG_FILE_NAME,
    ) -> None:
        self.config = config
        self.diff_reporter = diff_reporter
        self.dry_run = dry_run
        self.config_file = config_file
        self._cancelled = threading.Event()
        self._skipped = 0
        self._skipped_lock = threading.Lock()

    def cancel(self) -> None:
        """Stop starting new work; units already running are finished."""
        logger.info("Cancellation requested")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def generate(self, schema: Any, params: Mapping[str, Any] | None = None) -> GenerationReport:
        """Render every template against ``schema`` and write the results.

        Args:
            schema: Resolved schema (JSON/YAML-like data)
            params: Parameters overriding the configured global parameters

        Returns:
            Report of written files, unchanged files, errors and warnings

        Raises:
            DiscoveryError: When the template root cannot be walked
        """
        config = self.config
        schema = freeze(schema)
        params = freeze({**config.global_parameters, **(params or {})})
        engine = TemplateEngine(config, params)
        diagnostics = Diagnostics()
        self._skipped = 0

        discovery = discover(
            config.template_root,
            config.include_patterns,
            config.exclude_patterns,
            config.templates,
            config_file=self.config_file,
        )
        diagnostics.extend(discovery.errors)

        with ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="schemaforge"
        ) as pool:
            expansions = self._map(
                pool, lambda d: expand(d, schema, params, engine), discovery.templates
            )
            planned = self._collect(expansions, diagnostics)

            units = self._map(pool, lambda p: self._render(engine, p, diagnostics), planned)
            units = [u for u in units if u is not None]

            conflicts = find_path_conflicts(planned)
            if conflicts:
                diagnostics.extend(conflicts)
                logger.error(
                    f"{len(conflicts)} output path conflict(s); no files will be written"
                )
                outcomes: list[UnitOutcome] = []
            else:
                outcomes = [
                    o
                    for o in self._map(pool, self._write, units)
                    if o is not None
                ]

        if self._skipped:
            diagnostics.add(
                Diagnostic(
                    code=DiagnosticCode.CANCELLED,
                    message=f"generation cancelled; {self._skipped} unit(s) skipped",
                )
            )

        report = build_report(outcomes, dry_run=self.dry_run)
        report.errors = sorted(
            report.errors + diagnostics.sorted_errors(), key=Diagnostic.sort_key
        )
        report.warnings = diagnostics.sorted_warnings()
        logger.info(
            f"Generation finished: {len(report.written)} written, "
            f"{report.unchanged} unchanged, {len(report.errors)} error(s)"
        )
        return report

    # -- phases ------------------------------------------------------------

    def _map(
        self, pool: ThreadPoolExecutor, fn: Callable[[T], R], items: Iterable[T]
    ) -> list[R | None]:
        """Run ``fn`` over ``items`` in the pool, skipping items once cancelled."""

        def guarded(item: T) -> R | None:
            if self._cancelled.is_set():
                with self._skipped_lock:
                    self._skipped += 1
                return None
            return fn(item)

        return list(pool.map(guarded, items))

    @staticmethod
    def _collect(
        expansions: list[Expansion | None], diagnostics: Diagnostics
    ) -> list[PlannedOutput]:
        planned: list[PlannedOutput] = []
        for expansion in expansions:
            if expansion is None:
                continue
            planned.extend(expansion.outputs)
            diagnostics.extend(expansion.errors)
            diagnostics.extend(expansion.warnings)
        return planned

    @staticmethod
    def _render(
        engine: TemplateEngine, planned: PlannedOutput, diagnostics: Diagnostics
    ) -> OutputUnit | None:
        try:
            content = engine.render_file(planned.template, planned.context)
        except RenderError as e:
            diagnostics.add_exception(planned.template, planned.ordinal, e, path=planned.path)
            return None
        return OutputUnit(
            template=planned.template,
            ordinal=planned.ordinal,
            path=planned.path,
            content=content,
        )

    def _write(self, unit: OutputUnit) -> UnitOutcome:
        return materialize_unit(
            Path(self.config.output_root),
            unit,
            diff_reporter=self.diff_reporter,
            dry_run=self.dry_run,
            file_mode=self.config.file_mode,
        )


def generate(
    config: ForgeConfig,
    schema: Any,
    params: Mapping[str, Any] | None = None,
    **options: Any,
) -> GenerationReport:
    """One-shot helper: ``Generator(config, **options).generate(schema, params)``."""
    return Generator(config, **options).generate(schema, params)

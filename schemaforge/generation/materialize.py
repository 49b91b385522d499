"""Output materialization: compare rendered output with disk and write on change."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from ..core.models import Diagnostic, GenerationReport, OutputUnit, WriteStatus, WrittenFile
from ..rendering.io import atomic_write_bytes, read_existing
from .diagnostics import diagnostic_from_exception
from .diff import DiffReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitOutcome:
    """What happened to one output unit."""

    unit: OutputUnit
    status: WriteStatus | None = None  # None: identical content, nothing written
    diff: str | None = None
    error: Diagnostic | None = None


def materialize_unit(
    output_root: Path,
    unit: OutputUnit,
    *,
    diff_reporter: DiffReporter | None = None,
    dry_run: bool = False,
    file_mode: int = 0o644,
) -> UnitOutcome:
    """Write one unit unless the file already holds identical bytes."""
    target = output_root / unit.path
    try:
        data = unit.content.encode("utf-8")
        existing = read_existing(target)
        if existing == data:
            logger.debug(f"Unchanged {unit.path}")
            return UnitOutcome(unit)

        diff = None
        if diff_reporter is not None:
            old_text = None if existing is None else existing.decode("utf-8", errors="replace")
            diff = diff_reporter.report(unit.path, old_text, unit.content)
            if diff:
                logger.debug(f"Diff for {unit.path}:\n{diff}")

        status = WriteStatus.CREATED if existing is None else WriteStatus.OVERWRITTEN
        if not dry_run:
            atomic_write_bytes(target, data, mode=file_mode)
        logger.info(f"{'Would write' if dry_run else 'Wrote'} {unit.path} ({status.value})")
        return UnitOutcome(unit, status=status, diff=diff)
    except (OSError, UnicodeError) as e:
        logger.debug(f"Failed to write {unit.path}: {e}")
        return UnitOutcome(
            unit,
            error=diagnostic_from_exception(e, unit.template, unit.ordinal, path=unit.path),
        )


def build_report(outcomes: Sequence[UnitOutcome], dry_run: bool = False) -> GenerationReport:
    """Fold unit outcomes into a report, ordered by output path."""
    outcomes = sorted(outcomes, key=lambda o: o.unit.path)
    written = [
        WrittenFile(
            path=o.unit.path,
            template=o.unit.template,
            ordinal=o.unit.ordinal,
            status=o.status,
        )
        for o in outcomes
        if o.status is not None
    ]
    return GenerationReport(
        written=written,
        unchanged=sum(1 for o in outcomes if o.status is None and o.error is None),
        errors=sorted((o.error for o in outcomes if o.error is not None), key=Diagnostic.sort_key),
        diffs={o.unit.path: o.diff for o in outcomes if o.diff},
        dry_run=dry_run,
    )


def materialize(
    output_root: Path,
    units: Sequence[OutputUnit],
    *,
    diff_reporter: DiffReporter | None = None,
    dry_run: bool = False,
    file_mode: int = 0o644,
    executor: Executor | None = None,
) -> GenerationReport:
    """Write every unit under ``output_root``.

    Identical files are left untouched and tallied as unchanged. Failures
    are captured per unit; the remaining units are still written.

    Args:
        output_root: Directory receiving the outputs
        units: Rendered outputs with distinct paths
        diff_reporter: Called with ``(path, old, new)`` for every change
        dry_run: Compare and diff only, never write
        file_mode: File permissions (octal)
        executor: Runs units concurrently when given

    Returns:
        Report of created, overwritten and unchanged files plus I/O errors
    """
    output_root = Path(output_root)

    def run(unit: OutputUnit) -> UnitOutcome:
        return materialize_unit(
            output_root,
            unit,
            diff_reporter=diff_reporter,
            dry_run=dry_run,
            file_mode=file_mode,
        )

    mapper: Callable = executor.map if executor is not None else map
    outcomes = list(mapper(run, units))
    return build_report(outcomes, dry_run=dry_run)

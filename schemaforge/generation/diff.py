"""Diff reporters called before an output file is overwritten."""

from __future__ import annotations

import difflib
from typing import Protocol


class DiffReporter(Protocol):
    def report(self, path: str, old: str | None, new: str) -> str:
        """Return a displayable diff between the existing and new content of ``path``."""
        ...


class UnifiedDiffReporter:
    """Unified diff as produced by ``diff -u``; new files diff against ``/dev/null``."""

    def __init__(self, context_lines: int = 3) -> None:
        self.context_lines = context_lines

    def report(self, path: str, old: str | None, new: str) -> str:
        old_lines = [] if old is None else old.splitlines(keepends=True)
        new_lines = new.splitlines(keepends=True)
        diff = difflib.unified_diff(
            old_lines,
            new_lines,
            fromfile="/dev/null" if old is None else f"a/{path}",
            tofile=f"b/{path}",
            n=self.context_lines,
        )
        lines = []
        for line in diff:
            lines.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
        return "".join(lines)

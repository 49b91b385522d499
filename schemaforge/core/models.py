"""Domain models for template descriptors, outputs and generation reports."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class SingleOutput(BaseModel):
    """Render the template exactly once."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    file_name: str | None = Field(
        default=None,
        description="Output-path template; defaults to the mirrored template path",
    )


class FanOut(BaseModel):
    """Render the template once per item selected by a query."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fan_out"] = "fan_out"
    selector: str = Field(..., description="Query selecting the items")
    file_name: str = Field(..., description="Output-path template rendered per item")


OutputMode = Annotated[Union[SingleOutput, FanOut], Field(discriminator="kind")]


class TemplateDescriptor(BaseModel):
    """One discovered template file."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Template-root-relative POSIX path")
    source: Path = Field(..., description="Absolute template file path")
    mode: OutputMode = Field(default_factory=SingleOutput)

    @property
    def is_fan_out(self) -> bool:
        return isinstance(self.mode, FanOut)


class OutputUnit(BaseModel):
    """Rendered text destined for one output-root-relative path."""

    model_config = ConfigDict(frozen=True)

    template: str
    ordinal: int | None = None
    path: str
    content: str


class WriteStatus(str, Enum):
    CREATED = "created"
    OVERWRITTEN = "overwritten"


class WrittenFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    template: str
    ordinal: int | None = None
    status: WriteStatus


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class DiagnosticCode(str, Enum):
    QUERY_ERROR = "query_error"
    RENDER_ERROR = "render_error"
    PATH_CONFLICT = "path_conflict"
    INVALID_PATH = "invalid_path"
    IO_ERROR = "io_error"
    DIRECTIVE_ERROR = "directive_error"
    BINDING_SHADOWED = "binding_shadowed"
    CANCELLED = "cancelled"


class Diagnostic(BaseModel):
    """A structured problem report tied to a template and optional item."""

    model_config = ConfigDict(frozen=True)

    code: DiagnosticCode
    severity: Severity = Severity.ERROR
    template: str | None = None
    ordinal: int | None = None
    message: str
    kind: str | None = Field(
        default=None, description="Underlying query or render error kind"
    )
    expression: str | None = None
    position: int | None = None
    line: int | None = None
    column: int | None = None
    path: str | None = None
    stack: tuple[str, ...] = ()
    causes: tuple[str, ...] = ()
    claimants: tuple[str, ...] = Field(
        default=(), description="Outputs claiming a conflicting path, as template or template#ordinal"
    )

    def sort_key(self) -> tuple:
        return (
            self.template or "",
            -1 if self.ordinal is None else self.ordinal,
            self.code.value,
            self.path or "",
            self.message,
        )

    def render_text(self) -> str:
        """Format the diagnostic as a short multi-line message."""
        where = self.template or "<run>"
        if self.ordinal is not None:
            where += f" [item #{self.ordinal}]"
        if self.line is not None:
            where += f" line {self.line}"
            if self.column is not None:
                where += f", column {self.column}"
        label = self.code.value if self.kind is None else f"{self.code.value}/{self.kind}"
        lines = [f"{self.severity.value}: {where}: {label}: {self.message}"]
        if self.expression is not None:
            offset = "" if self.position is None else f" (offset {self.position})"
            lines.append(f"    query: {self.expression}{offset}")
        if self.path is not None:
            lines.append(f"    path: {self.path}")
        for frame in self.stack:
            lines.append(f"    at {frame}")
        for cause in self.causes:
            lines.append(f"    caused by: {cause}")
        return "\n".join(lines)


class GenerationReport(BaseModel):
    """Outcome of one generation run."""

    written: list[WrittenFile] = Field(default_factory=list)
    unchanged: int = Field(default=0, description="Outputs skipped as identical")
    errors: list[Diagnostic] = Field(default_factory=list)
    warnings: list[Diagnostic] = Field(default_factory=list)
    diffs: dict[str, str] = Field(default_factory=dict)
    dry_run: bool = False

    @property
    def created(self) -> int:
        return sum(1 for w in self.written if w.status is WriteStatus.CREATED)

    @property
    def overwritten(self) -> int:
        return sum(1 for w in self.written if w.status is WriteStatus.OVERWRITTEN)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def render_text(self) -> str:
        verb = "would write" if self.dry_run else "wrote"
        lines = [
            f"{verb} {len(self.written)} file(s) "
            f"({self.created} created, {self.overwritten} overwritten), "
            f"{self.unchanged} unchanged, "
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)"
        ]
        lines.extend(d.render_text() for d in self.errors)
        lines.extend(d.render_text() for d in self.warnings)
        return "\n".join(lines)

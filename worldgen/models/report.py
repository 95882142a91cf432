"""
Result types - validation results and the cumulative generation report.

Validation outcomes are returned values, never raised, so the orchestrator
can decide whether to keep an artifact, skip it or abort the run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Where in the pipeline a problem was found"""
    TRANSPORT = "Transport"     # provider/network failure after retries
    PARSE = "Parse"             # response was not a JSON object
    SCHEMA = "Schema"           # parsed, but structurally invalid
    INTEGRITY = "Integrity"     # cross-artifact inconsistency
    CANCELLED = "Cancelled"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationResult:
    """Outcome of validating one raw model response"""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    data: dict | None = None        # parsed JSON object, None on parse failure
    parsed: Any = None              # typed model, None if the shape did not fit

    @property
    def is_valid(self) -> bool:
        """Valid if there are no errors (warnings are OK)"""
        return len(self.errors) == 0

    @property
    def parse_failed(self) -> bool:
        return self.data is None

    def add_error(self, message: str):
        self.errors.append(message)

    def add_warning(self, message: str):
        self.warnings.append(message)


@dataclass
class IntegrityReport:
    """Outcome of the whole-set cross-reference check"""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def extend(self, errors: list[str], warnings: list[str] | None = None):
        self.errors.extend(errors)
        if warnings:
            self.warnings.extend(warnings)


@dataclass
class ReportEntry:
    kind: ErrorKind
    message: str
    artifact_id: str | None = None
    artifact_kind: str | None = None
    severity: Severity = Severity.ERROR

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "artifact_kind": self.artifact_kind,
            "artifact_id": self.artifact_id,
            "message": self.message,
        }

    def __str__(self) -> str:
        where = f" [{self.artifact_kind}:{self.artifact_id}]" if self.artifact_id else ""
        return f"{self.kind.value} {self.severity.value}{where}: {self.message}"


@dataclass
class GenerationReport:
    """Everything that went wrong (or was noteworthy) during one run"""

    world_id: str
    state: str = "Idle"
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: str | None = None
    output_path: str | None = None
    entries: list[ReportEntry] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    tokens_used: int = 0

    @property
    def errors(self) -> list[ReportEntry]:
        return [e for e in self.entries if e.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ReportEntry]:
        return [e for e in self.entries if e.severity == Severity.WARNING]

    @property
    def succeeded(self) -> bool:
        """The run reached Done (errors may still have been reported)"""
        return self.state == "Done"

    def add(
        self,
        kind: ErrorKind,
        message: str,
        artifact_id: str | None = None,
        artifact_kind: str | None = None,
        severity: Severity = Severity.ERROR,
    ) -> ReportEntry:
        entry = ReportEntry(
            kind=kind,
            message=message,
            artifact_id=artifact_id,
            artifact_kind=artifact_kind,
            severity=severity,
        )
        self.entries.append(entry)
        return entry

    def errors_of_kind(self, kind: ErrorKind) -> list[ReportEntry]:
        return [e for e in self.errors if e.kind == kind]

    def count(self, artifact_kind: str, amount: int = 1):
        self.counts[artifact_kind] = self.counts.get(artifact_kind, 0) + amount

    def to_dict(self) -> dict:
        return {
            "world_id": self.world_id,
            "state": self.state,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "output_path": self.output_path,
            "tokens_used": self.tokens_used,
            "counts": dict(self.counts),
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "entries": [e.to_dict() for e in self.entries],
        }

"""Diagnostic models produced by the analyzers.

Diagnostics are immutable once created. The final report orders them with
``diagnostic_sort_key`` so output never depends on task completion order.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Schema version constant
SCHEMA_VERSION = 1

Category = Literal["dependency", "configuration", "architecture", "circular-import"]
Severity = Literal["error", "warning", "info"]

CATEGORIES: tuple[Category, ...] = (
    "architecture",
    "circular-import",
    "configuration",
    "dependency",
)

SEVERITY_RANK: dict[Severity, int] = {"info": 0, "warning": 1, "error": 2}


def severity_at_least(severity: Severity, threshold: Severity) -> bool:
    """Return True when ``severity`` is at or above ``threshold``."""
    return SEVERITY_RANK[severity] >= SEVERITY_RANK[threshold]


def max_severity(first: Severity, second: Severity) -> Severity:
    return first if SEVERITY_RANK[first] >= SEVERITY_RANK[second] else second


class Location(BaseModel):
    """A file position; ``line`` is 1-based and optional."""

    model_config = ConfigDict(frozen=True)

    path: str
    line: int | None = None


class Evidence(BaseModel):
    """A node or edge cited by a diagnostic (e.g. one hop of a cycle)."""

    model_config = ConfigDict(frozen=True)

    path: str
    specifier: str | None = None
    kind: str | None = None
    line: int | None = None
    target: str | None = None


class Diagnostic(BaseModel):
    """A single finding reported by the analyzer."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=SCHEMA_VERSION)
    code: str
    category: Category
    severity: Severity
    message: str
    location: Location
    related: tuple[Evidence, ...] = ()
    suggestion: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    def with_severity(self, severity: Severity) -> Diagnostic:
        if severity == self.severity:
            return self
        return self.model_copy(update={"severity": severity})


def diagnostic_sort_key(diagnostic: Diagnostic) -> tuple[str, str, int, str, str]:
    """Deterministic report order: category, file path, line, code, message."""
    return (
        diagnostic.category,
        diagnostic.location.path,
        diagnostic.location.line or 0,
        diagnostic.code,
        diagnostic.message,
    )


class RunSummary(BaseModel):
    """Counts and timings for one analysis run."""

    total: int
    by_category: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    files_scanned: int = 0
    packages: int = 0
    nodes: int = 0
    edges: int = 0
    elapsed_seconds: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_ratio: float = 0.0
    top_imported: list[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Ordered diagnostics plus the run summary handed to reporters."""

    root: str
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    summary: RunSummary


__all__ = [
    "CATEGORIES",
    "SCHEMA_VERSION",
    "SEVERITY_RANK",
    "AnalysisResult",
    "Category",
    "Diagnostic",
    "Evidence",
    "Location",
    "RunSummary",
    "Severity",
    "diagnostic_sort_key",
    "max_severity",
    "severity_at_least",
]

"""Graph analyzers run after the import graph is built."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from analyzers.architecture import ArchitectureAnalyzer
from analyzers.circular import CircularImportAnalyzer
from analyzers.dependency_usage import DependencyUsageAnalyzer

if TYPE_CHECKING:
    from graph.model import ImportGraph
    from models.diagnostics import Category, Diagnostic
    from rules.config import AnalyzerConfig


class GraphAnalyzer(Protocol):
    """Read-only analysis over an immutable import graph."""

    category: Category

    @property
    def name(self) -> str: ...

    def analyze(self, graph: ImportGraph, config: AnalyzerConfig) -> list[Diagnostic]: ...


def default_analyzers() -> list[GraphAnalyzer]:
    return [
        CircularImportAnalyzer(),
        ArchitectureAnalyzer(),
        DependencyUsageAnalyzer(),
    ]


__all__ = [
    "ArchitectureAnalyzer",
    "CircularImportAnalyzer",
    "DependencyUsageAnalyzer",
    "GraphAnalyzer",
    "default_analyzers",
]

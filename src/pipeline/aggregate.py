"""Diagnostic merging and run summary."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from graph.algos import compute_fan_stats
from models.diagnostics import (
    CATEGORIES,
    Diagnostic,
    RunSummary,
    diagnostic_sort_key,
    max_severity,
    severity_at_least,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from graph.model import ImportGraph
    from rules.config import AnalyzerConfig

TOP_IMPORTED_LIMIT = 10

# Undeclared imports break installs, so configuration may raise them but never hide them.
_SEVERITY_FLOORS = {"missing-dependency": "warning"}


def apply_policy(diagnostic: Diagnostic, config: AnalyzerConfig) -> Diagnostic:
    severity = config.analyzer(diagnostic.category).severity or diagnostic.severity
    floor = _SEVERITY_FLOORS.get(diagnostic.code)
    if floor is not None:
        severity = max_severity(severity, floor)
    return diagnostic.with_severity(severity)


def merge_diagnostics(
    diagnostics: Iterable[Diagnostic], config: AnalyzerConfig
) -> list[Diagnostic]:
    """Apply overrides and filters, then sort into report order.

    Input order is irrelevant; the result depends only on the set of
    diagnostics and the config.
    """
    merged = []
    for diagnostic in diagnostics:
        if not config.is_enabled(diagnostic.category):
            continue
        adjusted = apply_policy(diagnostic, config)
        if severity_at_least(adjusted.severity, config.min_severity):
            merged.append(adjusted)
    return sorted(merged, key=diagnostic_sort_key)


def top_imported(graph: ImportGraph, limit: int = TOP_IMPORTED_LIMIT) -> list[str]:
    """Internal modules with the highest fan-in, ties broken by path."""
    internal = [
        (edge.source, edge.target)
        for edge in graph.edges
        if not graph.nodes[edge.target].external
    ]
    fan_in, _ = compute_fan_stats(dict.fromkeys(internal))
    ranked = sorted(fan_in.items(), key=lambda item: (-item[1], item[0]))
    return [node_id for node_id, _ in ranked[:limit]]


def build_summary(
    diagnostics: list[Diagnostic],
    *,
    graph: ImportGraph,
    files_scanned: int,
    elapsed_seconds: float,
    cache_hits: int,
    cache_misses: int,
) -> RunSummary:
    by_category = Counter(d.category for d in diagnostics)
    by_severity = Counter(d.severity for d in diagnostics)
    lookups = cache_hits + cache_misses
    return RunSummary(
        total=len(diagnostics),
        by_category={category: by_category.get(category, 0) for category in CATEGORIES},
        by_severity={
            severity: by_severity.get(severity, 0)
            for severity in ("error", "warning", "info")
        },
        files_scanned=files_scanned,
        packages=len(graph.packages),
        nodes=len(graph.internal_nodes()),
        edges=len(graph.edges),
        elapsed_seconds=round(elapsed_seconds, 3),
        cache_hits=cache_hits,
        cache_misses=cache_misses,
        cache_hit_ratio=cache_hits / lookups if lookups else 0.0,
        top_imported=top_imported(graph),
    )


__all__ = ["apply_policy", "build_summary", "merge_diagnostics", "top_imported"]

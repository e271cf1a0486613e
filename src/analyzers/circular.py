"""Circular import detection over the import graph."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from graph.algos import back_edge_cycles, find_cycles
from graph.builder import collapse_to_packages
from models.diagnostics import Diagnostic, Evidence, Location

if TYPE_CHECKING:
    from graph.model import ImportEdge, ImportGraph
    from rules.config import AnalyzerConfig, CyclePolicy

logger = logging.getLogger(__name__)


def _cycle_edges(
    graph: ImportGraph, policy: CyclePolicy
) -> dict[tuple[str, str], ImportEdge]:
    """First qualifying edge per (source, target) pair, in discovery order."""
    pairs: dict[tuple[str, str], ImportEdge] = {}
    for edge in graph.edges:
        if graph.nodes[edge.source].external or graph.nodes[edge.target].external:
            continue
        if edge.kind == "type-only" and not policy.include_type_only:
            continue
        pairs.setdefault((edge.source, edge.target), edge)
    return pairs


def _describe(node_ids: list[str]) -> str:
    return " -> ".join([*node_ids, node_ids[0]])


class CircularImportAnalyzer:
    """Finds import cycles with Tarjan's SCC algorithm.

    Inside each strongly connected component a depth-first walk from the
    member scanned first reports one cycle per back edge, so a component
    holding several cycles yields several diagnostics.
    """

    category = "circular-import"

    @property
    def name(self) -> str:
        """Analyzer name for logging and identification."""
        return "circular-import"

    def analyze(self, graph: ImportGraph, config: AnalyzerConfig) -> list[Diagnostic]:
        policy = config.cycles
        view = collapse_to_packages(graph) if policy.granularity == "package" else graph
        pairs = _cycle_edges(view, policy)

        diagnostics: list[Diagnostic] = []
        adjacency: dict[str, list[str]] = {
            node.id: [] for node in view.nodes.values() if not node.external
        }
        for source, target in pairs:
            if source == target:
                diagnostics.append(self._diagnostic([source], pairs, policy))
            else:
                adjacency[source].append(target)

        for scc in find_cycles(adjacency):
            for cycle in back_edge_cycles(adjacency, set(scc), adjacency):
                if len(cycle) > policy.max_length:
                    logger.info(
                        "Skipping %d-node cycle through %s (max_length=%d)",
                        len(cycle),
                        cycle[0],
                        policy.max_length,
                    )
                    continue
                diagnostics.append(self._diagnostic(cycle, pairs, policy))

        logger.debug("Found %d circular import(s)", len(diagnostics))
        return diagnostics

    def _diagnostic(
        self,
        cycle: list[str],
        pairs: dict[tuple[str, str], ImportEdge],
        policy: CyclePolicy,
    ) -> Diagnostic:
        hops = [
            pairs[(node, cycle[(index + 1) % len(cycle)])]
            for index, node in enumerate(cycle)
        ]
        severity = (
            policy.direct_severity if len(cycle) <= 2 else policy.transitive_severity
        )
        if len(cycle) == 1:
            message = f"Module imports itself: {cycle[0]}"
        else:
            message = f"Circular import ({len(cycle)} nodes): {_describe(cycle)}"
        closing = hops[-1]
        return Diagnostic(
            code="circular-import",
            category="circular-import",
            severity=severity,
            message=message,
            location=Location(path=hops[0].path, line=hops[0].line),
            related=tuple(
                Evidence(
                    path=edge.path,
                    specifier=edge.specifier,
                    kind=edge.kind,
                    line=edge.line,
                    target=edge.target,
                )
                for edge in hops
            ),
            suggestion=(
                f"Break the cycle by removing or inverting the import of "
                f"'{closing.specifier}' in {closing.path}:{closing.line}"
            ),
            metadata={"cycle": _describe(cycle), "length": str(len(cycle))},
        )


__all__ = ["CircularImportAnalyzer"]

"""Architecture layer validation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from models.diagnostics import Diagnostic, Evidence, Location
from rules.config import CONFIG_FILENAME
from rules.layers import (
    build_allowed_deps,
    find_layer_cycles,
    is_violation,
)
from utils import is_relative_specifier, match_any, package_name_from_specifier

if TYPE_CHECKING:
    from graph.model import ImportEdge, ImportGraph
    from rules.config import AnalyzerConfig, ArchitectureConfig

logger = logging.getLogger(__name__)


def _edge_evidence(edge: ImportEdge) -> Evidence:
    return Evidence(
        path=edge.path,
        specifier=edge.specifier,
        kind=edge.kind,
        line=edge.line,
        target=edge.target,
    )


def _layer_cycle_diagnostics(architecture: ArchitectureConfig) -> list[Diagnostic]:
    return [
        Diagnostic(
            code="layer-cycle",
            category="configuration",
            severity="warning",
            message=(
                "Allowed-imports relation between layers is cyclic: "
                + " <-> ".join(cycle)
            ),
            location=Location(path=CONFIG_FILENAME),
            suggestion="Layers that may import each other usually belong in one layer",
            metadata={"layers": ",".join(cycle)},
        )
        for cycle in find_layer_cycles(architecture)
    ]


def _bypasses_public_api(edge: ImportEdge, graph: ImportGraph) -> bool:
    source = graph.nodes[edge.source]
    target = graph.nodes[edge.target]
    if target.external or source.package == target.package:
        return False
    if is_relative_specifier(edge.specifier):
        return True
    return edge.specifier != package_name_from_specifier(edge.specifier)


class ArchitectureAnalyzer:
    """Checks every import edge against the declared layer partial order.

    Layers come from the nodes themselves, assigned by the graph builder.
    """

    category = "architecture"

    @property
    def name(self) -> str:
        """Analyzer name for logging and identification."""
        return "architecture"

    def analyze(self, graph: ImportGraph, config: AnalyzerConfig) -> list[Diagnostic]:
        architecture = config.architecture
        diagnostics = _layer_cycle_diagnostics(architecture)

        if architecture.enforce_public_api:
            diagnostics.extend(
                Diagnostic(
                    code="public-api-bypass",
                    category="architecture",
                    severity="warning",
                    message=(
                        f"'{edge.specifier}' reaches into package "
                        f"'{graph.nodes[edge.target].package}' past its entry point"
                    ),
                    location=Location(path=edge.path, line=edge.line),
                    related=(_edge_evidence(edge),),
                    suggestion="Import from the package name and export the symbol "
                    "from its entry point",
                )
                for edge in graph.edges
                if _bypasses_public_api(edge, graph)
            )

        if not architecture.layers:
            return diagnostics

        allowed = build_allowed_deps(architecture)
        exempt = set()
        if architecture.enforce_public_api:
            exempt = {
                node.id
                for node in graph.internal_nodes()
                if node.reexport_only
                and match_any(node.id, architecture.allow_barrel_exports)
            }

        for edge in graph.edges:
            if edge.source in exempt or graph.nodes[edge.target].external:
                continue
            from_layer = graph.nodes[edge.source].layer
            to_layer = graph.nodes[edge.target].layer
            if not is_violation(from_layer, to_layer, allowed):
                continue
            diagnostics.append(
                Diagnostic(
                    code="layer-violation",
                    category="architecture",
                    severity=architecture.violation_severity,
                    message=(
                        f"Layer '{from_layer}' may not import from layer "
                        f"'{to_layer}': {edge.source} imports {edge.target} "
                        f"via '{edge.specifier}'"
                    ),
                    location=Location(path=edge.path, line=edge.line),
                    related=(_edge_evidence(edge),),
                    suggestion=(
                        f"Add '{to_layer}' to the allowed imports of '{from_layer}' "
                        "or move the shared code to a layer both may import"
                    ),
                    metadata={"from_layer": str(from_layer), "to_layer": str(to_layer)},
                )
            )

        logger.debug("Architecture check produced %d diagnostic(s)", len(diagnostics))
        return diagnostics


__all__ = ["ArchitectureAnalyzer"]

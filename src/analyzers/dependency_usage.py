"""Declared-versus-used dependency comparison per package."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from models.diagnostics import Diagnostic, Evidence, Location
from utils import (
    is_builtin_specifier,
    is_relative_specifier,
    match_any,
    package_name_from_specifier,
)

if TYPE_CHECKING:
    from graph.model import ImportEdge, ImportGraph, PackageUnit
    from rules.config import AnalyzerConfig, DependencyPolicy

logger = logging.getLogger(__name__)

_SECTION_LABELS = {
    "dependencies": "dependency",
    "devDependencies": "dev dependency",
    "peerDependencies": "peer dependency",
    "optionalDependencies": "optional dependency",
}


def collect_used_packages(
    graph: ImportGraph, package: str, policy: DependencyPolicy
) -> dict[str, ImportEdge]:
    """Bare package names referenced by ``package``'s files, with first evidence."""
    used: dict[str, ImportEdge] = {}
    for edge in graph.edges:
        if graph.nodes[edge.source].package != package:
            continue
        if edge.kind == "type-only" and not policy.count_type_only:
            continue
        if is_relative_specifier(edge.specifier) or is_builtin_specifier(edge.specifier):
            continue
        used.setdefault(package_name_from_specifier(edge.specifier), edge)
    return used


class DependencyUsageAnalyzer:
    """Reports unused and missing manifest dependencies."""

    category = "dependency"

    @property
    def name(self) -> str:
        """Analyzer name for logging and identification."""
        return "dependency-usage"

    def analyze(self, graph: ImportGraph, config: AnalyzerConfig) -> list[Diagnostic]:
        policy = config.dependencies
        diagnostics: list[Diagnostic] = []
        for unit in sorted(graph.packages.values(), key=lambda u: u.name):
            diagnostics.extend(self._analyze_package(graph, unit, policy))
        return diagnostics

    def _analyze_package(
        self, graph: ImportGraph, unit: PackageUnit, policy: DependencyPolicy
    ) -> list[Diagnostic]:
        used = collect_used_packages(graph, unit.name, policy)
        used.pop(unit.name, None)
        diagnostics: list[Diagnostic] = []

        for dep_name, section in sorted(unit.declared.items()):
            if match_any(dep_name, policy.ignore) or dep_name in used:
                continue
            if match_any(dep_name, policy.implicitly_used):
                continue
            label = _SECTION_LABELS.get(section, "dependency")
            diagnostics.append(
                Diagnostic(
                    code="unused-dependency",
                    category="dependency",
                    severity=policy.unused_severity,
                    message=(
                        f"Package '{unit.name}' declares {label} '{dep_name}' "
                        "but no source file imports it"
                    ),
                    location=Location(path=unit.manifest_path),
                    suggestion=(
                        f"Remove '{dep_name}' from {section} in "
                        f"{unit.manifest_path}, or verify it is used at build time"
                    ),
                    metadata={
                        "package": unit.name,
                        "dependency": dep_name,
                        "section": section,
                    },
                )
            )

        for dep_name, edge in sorted(used.items()):
            if dep_name in unit.declared or match_any(dep_name, policy.ignore):
                continue
            diagnostics.append(
                Diagnostic(
                    code="missing-dependency",
                    category="dependency",
                    severity="warning",
                    message=(
                        f"Package '{unit.name}' imports '{dep_name}' "
                        f"but does not declare it in {unit.manifest_path}"
                    ),
                    location=Location(path=edge.path, line=edge.line),
                    related=(
                        Evidence(
                            path=edge.path,
                            specifier=edge.specifier,
                            kind=edge.kind,
                            line=edge.line,
                            target=edge.target,
                        ),
                    ),
                    suggestion=f"Add '{dep_name}' to dependencies in {unit.manifest_path}",
                    metadata={"package": unit.name, "dependency": dep_name},
                )
            )

        logger.debug(
            "Package %s: %d used, %d declared, %d finding(s)",
            unit.name,
            len(used),
            len(unit.declared),
            len(diagnostics),
        )
        return diagnostics


__all__ = ["DependencyUsageAnalyzer", "collect_used_packages"]

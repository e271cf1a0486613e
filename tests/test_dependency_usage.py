from __future__ import annotations

from analyzers.dependency_usage import DependencyUsageAnalyzer, collect_used_packages
from graph.model import ImportEdge, ImportGraph, ModuleNode, PackageUnit
from models.diagnostics import Diagnostic
from rules.config import AnalyzerConfig, parse_config


def _package(declared: dict[str, str] | None = None) -> PackageUnit:
    return PackageUnit(
        name="app",
        root="packages/app",
        manifest_path="packages/app/package.json",
        declared=declared or {},
    )


def _graph(
    unit: PackageUnit, imports: list[tuple[str, str]]
) -> ImportGraph:
    """One-file package importing ``(specifier, kind)`` pairs."""
    source = "packages/app/src/index.ts"
    nodes = {source: ModuleNode(id=source, package=unit.name)}
    edges = []
    for line, (specifier, kind) in enumerate(imports, start=1):
        if specifier.startswith("."):
            target = "packages/app/src/other.ts"
            nodes.setdefault(target, ModuleNode(id=target, package=unit.name))
        else:
            target = f"external:{specifier.split('/')[0]}"
            nodes.setdefault(
                target, ModuleNode(id=target, package=target[9:], external=True)
            )
        edges.append(
            ImportEdge(
                source=source,
                target=target,
                specifier=specifier,
                kind=kind,
                path=source,
                line=line,
            )
        )
    return ImportGraph(nodes=nodes, edges=tuple(edges), packages={unit.name: unit})


def _analyze(graph: ImportGraph, config: AnalyzerConfig | None = None) -> list[Diagnostic]:
    return DependencyUsageAnalyzer().analyze(graph, config or AnalyzerConfig())


def test_declared_but_unused_dependency_reported_once() -> None:
    unit = _package({"lodash": "dependencies"})
    graph = _graph(unit, [("./other", "static")])

    diagnostics = _analyze(graph)

    assert len(diagnostics) == 1
    diagnostic = diagnostics[0]
    assert diagnostic.code == "unused-dependency"
    assert diagnostic.category == "dependency"
    assert diagnostic.severity == "warning"
    assert diagnostic.location.path == "packages/app/package.json"
    assert diagnostic.metadata == {
        "package": "app",
        "dependency": "lodash",
        "section": "dependencies",
    }


def test_unused_severity_is_configurable() -> None:
    unit = _package({"lodash": "dependencies"})
    config = parse_config({"dependencies": {"unused_severity": "info"}})

    diagnostics = _analyze(_graph(unit, []), config)

    assert [d.severity for d in diagnostics] == ["info"]


def test_imported_but_undeclared_dependency_reported_once() -> None:
    unit = _package()
    graph = _graph(unit, [("lodash", "static"), ("lodash/fp", "static")])

    diagnostics = _analyze(graph)

    assert len(diagnostics) == 1
    diagnostic = diagnostics[0]
    assert diagnostic.code == "missing-dependency"
    assert diagnostic.severity == "warning"
    assert diagnostic.location.path == "packages/app/src/index.ts"
    assert diagnostic.location.line == 1
    assert diagnostic.related[0].specifier == "lodash"


def test_missing_dependency_is_warning_even_when_unused_is_info() -> None:
    unit = _package()
    config = parse_config({"dependencies": {"unused_severity": "info"}})

    diagnostics = _analyze(_graph(unit, [("lodash", "static")]), config)

    assert [d.severity for d in diagnostics] == ["warning"]


def test_scoped_and_deep_specifiers_count_as_usage() -> None:
    unit = _package({"@scope/ui": "dependencies", "date-fns": "peerDependencies"})
    graph = _graph(
        unit,
        [("@scope/ui/button", "static"), ("date-fns/format", "dynamic")],
    )

    assert _analyze(graph) == []


def test_type_only_usage_respects_policy() -> None:
    unit = _package({"zod": "dependencies"})
    graph = _graph(unit, [("zod", "type-only")])

    assert _analyze(graph) == []

    strict = parse_config({"dependencies": {"count_type_only": False}})
    assert [d.code for d in _analyze(graph, strict)] == ["unused-dependency"]


def test_builtins_and_relative_specifiers_are_not_dependencies() -> None:
    unit = _package()
    graph = _graph(unit, [("node:fs", "static"), ("path", "static"), ("./other", "static")])

    assert _analyze(graph) == []


def test_implicitly_used_and_ignored_names_are_skipped() -> None:
    unit = _package(
        {
            "typescript": "devDependencies",
            "@types/node": "devDependencies",
            "left-pad": "dependencies",
        }
    )
    config = parse_config({"dependencies": {"ignore": ["left-*"]}})

    assert _analyze(_graph(unit, []), config) == []


def test_collect_used_packages_keeps_first_edge() -> None:
    unit = _package()
    graph = _graph(unit, [("lodash/fp", "static"), ("lodash", "static")])

    used = collect_used_packages(graph, "app", AnalyzerConfig().dependencies)

    assert list(used) == ["lodash"]
    assert used["lodash"].line == 1

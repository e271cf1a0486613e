from __future__ import annotations

from analyzers.circular import CircularImportAnalyzer
from graph.model import ImportEdge, ImportGraph, ModuleNode, PackageUnit
from rules.config import AnalyzerConfig, parse_config


def _graph(
    nodes: dict[str, str],
    edges: list[tuple[str, str, str]],
) -> ImportGraph:
    """Build a graph from ``{node: package}`` and ``(source, target, kind)`` edges."""
    module_nodes = {
        node_id: ModuleNode(
            id=node_id,
            package=package,
            external=node_id.startswith("external:"),
        )
        for node_id, package in nodes.items()
    }
    import_edges = tuple(
        ImportEdge(
            source=source,
            target=target,
            specifier=f"./{target.rsplit('/', 1)[-1]}",
            kind=kind,
            path=source,
            line=index + 1,
        )
        for index, (source, target, kind) in enumerate(edges)
    )
    packages = {
        name: PackageUnit(name=name, root=name, manifest_path=f"{name}/package.json")
        for name in dict.fromkeys(
            node.package for node in module_nodes.values() if not node.external
        )
    }
    return ImportGraph(nodes=module_nodes, edges=import_edges, packages=packages)


def _analyze(graph: ImportGraph, config: AnalyzerConfig | None = None):
    return CircularImportAnalyzer().analyze(graph, config or AnalyzerConfig())


def test_acyclic_graph_has_no_diagnostics() -> None:
    graph = _graph(
        {"p/a.ts": "p", "p/b.ts": "p", "p/c.ts": "p"},
        [("p/a.ts", "p/b.ts", "static"), ("p/b.ts", "p/c.ts", "static")],
    )

    assert _analyze(graph) == []


def test_three_file_cycle_reported_once_from_first_scanned_node() -> None:
    graph = _graph(
        {"p/a.ts": "p", "p/b.ts": "p", "p/c.ts": "p"},
        [
            ("p/b.ts", "p/c.ts", "static"),
            ("p/c.ts", "p/a.ts", "static"),
            ("p/a.ts", "p/b.ts", "static"),
        ],
    )

    diagnostics = _analyze(graph)

    assert len(diagnostics) == 1
    diagnostic = diagnostics[0]
    assert diagnostic.code == "circular-import"
    assert diagnostic.category == "circular-import"
    assert diagnostic.severity == "warning"
    assert [hop.path for hop in diagnostic.related] == ["p/a.ts", "p/b.ts", "p/c.ts"]
    assert [hop.target for hop in diagnostic.related] == ["p/b.ts", "p/c.ts", "p/a.ts"]
    assert diagnostic.location.path == "p/a.ts"
    assert diagnostic.metadata == {
        "cycle": "p/a.ts -> p/b.ts -> p/c.ts -> p/a.ts",
        "length": "3",
    }


def test_two_node_cycle_is_direct() -> None:
    graph = _graph(
        {"p/a.ts": "p", "p/b.ts": "p"},
        [("p/a.ts", "p/b.ts", "static"), ("p/b.ts", "p/a.ts", "dynamic")],
    )

    diagnostics = _analyze(graph)

    assert [d.severity for d in diagnostics] == ["error"]


def test_self_import_reported_individually() -> None:
    graph = _graph({"p/a.ts": "p"}, [("p/a.ts", "p/a.ts", "static")])

    diagnostics = _analyze(graph)

    assert len(diagnostics) == 1
    assert diagnostics[0].message == "Module imports itself: p/a.ts"
    assert diagnostics[0].metadata["length"] == "1"


def test_type_only_edges_break_cycles_by_default() -> None:
    graph = _graph(
        {"p/a.ts": "p", "p/b.ts": "p"},
        [("p/a.ts", "p/b.ts", "static"), ("p/b.ts", "p/a.ts", "type-only")],
    )

    assert _analyze(graph) == []
    included = parse_config({"cycles": {"include_type_only": True}})
    assert len(_analyze(graph, included)) == 1


def test_external_nodes_never_close_a_cycle() -> None:
    graph = _graph(
        {"p/a.ts": "p", "external:lodash": "lodash"},
        [("p/a.ts", "external:lodash", "static")],
    )

    assert _analyze(graph) == []


def test_cycles_longer_than_max_length_are_skipped() -> None:
    graph = _graph(
        {"p/a.ts": "p", "p/b.ts": "p", "p/c.ts": "p"},
        [
            ("p/a.ts", "p/b.ts", "static"),
            ("p/b.ts", "p/c.ts", "static"),
            ("p/c.ts", "p/a.ts", "static"),
        ],
    )

    assert _analyze(graph, parse_config({"cycles": {"max_length": 2}})) == []


def test_package_granularity_collapses_file_cycles() -> None:
    graph = _graph(
        {"x/a.ts": "x", "x/b.ts": "x", "y/c.ts": "y"},
        [
            ("x/a.ts", "y/c.ts", "static"),
            ("y/c.ts", "x/b.ts", "static"),
        ],
    )

    file_level = _analyze(graph)
    package_level = _analyze(graph, parse_config({"cycles": {"granularity": "package"}}))

    assert file_level == []
    assert len(package_level) == 1
    assert package_level[0].metadata["cycle"] == "x -> y -> x"
    assert [hop.path for hop in package_level[0].related] == ["x/a.ts", "y/c.ts"]


def test_figure_eight_reports_each_loop() -> None:
    graph = _graph(
        {"p/a.ts": "p", "p/b.ts": "p", "p/c.ts": "p"},
        [
            ("p/a.ts", "p/b.ts", "static"),
            ("p/a.ts", "p/c.ts", "static"),
            ("p/b.ts", "p/a.ts", "static"),
            ("p/c.ts", "p/a.ts", "static"),
        ],
    )

    diagnostics = _analyze(graph)

    assert [d.metadata["cycle"] for d in diagnostics] == [
        "p/a.ts -> p/b.ts -> p/a.ts",
        "p/a.ts -> p/c.ts -> p/a.ts",
    ]
    assert [d.severity for d in diagnostics] == ["error", "error"]


def test_long_import_chain_is_analyzed() -> None:
    names = [f"p/m{index:04d}.ts" for index in range(2000)]
    chain = [(a, b, "static") for a, b in zip(names, names[1:], strict=False)]

    assert _analyze(_graph(dict.fromkeys(names, "p"), chain)) == []

    closed = _analyze(
        _graph(dict.fromkeys(names, "p"), [*chain, (names[-1], names[0], "static")]),
        parse_config({"cycles": {"max_length": 5000}}),
    )

    assert len(closed) == 1
    assert closed[0].metadata["length"] == "2000"
    assert closed[0].location.path == names[0]

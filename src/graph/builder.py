"""Import graph construction.

Resolution needs the complete node set (a file may import a module scanned
after it), so the builder runs once, after every parse result is collected.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import orjson

from errors import ResolutionError
from graph.model import (
    ASSET_PREFIX,
    BUILTIN_PREFIX,
    EXTERNAL_PREFIX,
    ImportEdge,
    ImportGraph,
    ModuleNode,
    PackageUnit,
)
from models.diagnostics import Diagnostic, Evidence, Location
from rules.layers import classify_layer
from utils import (
    is_builtin_specifier,
    is_relative_specifier,
    normalize_join,
    package_name_from_specifier,
    parent_dir,
)

if TYPE_CHECKING:
    from pathlib import Path

    from models.parse import ParseResult, RawImport
    from rules.config import AnalyzerConfig
    from scan.packages import ScanResult

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")

# ESM TypeScript sources import siblings by their emitted extension.
_EMITTED_TO_SOURCE = {
    ".js": (".ts", ".tsx"),
    ".jsx": (".tsx",),
    ".mjs": (".mts",),
    ".cjs": (".cts",),
}


@dataclass(frozen=True)
class ParsedFile:
    """A parse result paired with the content hash of the file it came from."""

    result: ParseResult
    content_hash: str


def _candidate_paths(base: str) -> list[str]:
    candidates = [base]
    for emitted, sources in _EMITTED_TO_SOURCE.items():
        if base.endswith(emitted):
            stem = base[: -len(emitted)]
            candidates.extend(stem + ext for ext in sources)
    candidates.extend(base + ext for ext in SOURCE_EXTENSIONS)
    prefix = f"{base}/index" if base else "index"
    candidates.extend(prefix + ext for ext in SOURCE_EXTENSIONS)
    return candidates


class SpecifierResolver:
    """Maps raw specifiers to node ids using the scanned file set."""

    def __init__(
        self,
        files: set[str],
        packages: dict[str, PackageUnit],
        root: Path | None = None,
    ) -> None:
        self._files = files
        self._packages = packages
        self._root = root
        self._entries: dict[str, str | None] = {}

    def _first_existing(self, base: str) -> str | None:
        for candidate in _candidate_paths(base):
            if candidate in self._files:
                return candidate
        return None

    def _relative(self, specifier: str, importer: str, line: int) -> str:
        if specifier.startswith("/"):
            joined = normalize_join("", specifier)
        else:
            joined = normalize_join(parent_dir(importer), specifier)
        if joined is None:
            raise ResolutionError(specifier, importer, line)
        resolved = self._first_existing(joined)
        if resolved is None and self._is_asset(joined):
            resolved = ASSET_PREFIX + joined
        if resolved is None:
            raise ResolutionError(specifier, importer, line)
        return resolved

    def _is_asset(self, path: str) -> bool:
        """Whether ``path`` is an existing non-source file inside the root."""
        if self._root is None or path.endswith(SOURCE_EXTENSIONS):
            return False
        if "." not in path.rsplit("/", 1)[-1]:
            return False
        candidate = self._root / path
        try:
            candidate.resolve().relative_to(self._root.resolve())
        except ValueError:
            return False
        return candidate.is_file()

    def package_entry(self, unit: PackageUnit) -> str | None:
        if unit.name not in self._entries:
            entry = None
            for candidate in unit.entry_points:
                base = normalize_join(unit.root, candidate)
                if base is not None and (entry := self._first_existing(base)):
                    break
            self._entries[unit.name] = entry
        return self._entries[unit.name]

    def _workspace(self, unit: PackageUnit, specifier: str) -> str | None:
        subpath = specifier[len(unit.name) :].lstrip("/")
        if not subpath:
            return self.package_entry(unit)
        for base in (subpath, f"src/{subpath}"):
            joined = normalize_join(unit.root, base)
            if joined is not None and (found := self._first_existing(joined)):
                return found
        return None

    def resolve(self, raw: RawImport, importer: str) -> str:
        """Return the target node id for ``raw`` imported from ``importer``.

        Raises:
            ResolutionError: A relative path names no scanned file, or the
                specifier is not a valid package reference.
        """
        specifier = raw.specifier
        if is_relative_specifier(specifier):
            return self._relative(specifier, importer, raw.line)

        if is_builtin_specifier(specifier):
            return BUILTIN_PREFIX + package_name_from_specifier(specifier).removeprefix(
                "node:"
            )

        if specifier.startswith("#") or ":" in specifier:
            raise ResolutionError(specifier, importer, raw.line)

        package_name = package_name_from_specifier(specifier)
        unit = self._packages.get(package_name)
        if unit is not None and (target := self._workspace(unit, specifier)):
            return target
        return EXTERNAL_PREFIX + package_name


def _unresolved_diagnostic(error: ResolutionError, config: AnalyzerConfig) -> Diagnostic:
    return Diagnostic(
        code="unresolved-import",
        category="dependency",
        severity=config.dependencies.unresolved_severity,
        message=str(error),
        location=Location(path=error.path, line=error.line),
        related=(Evidence(path=error.path, specifier=error.specifier, line=error.line),),
        suggestion="Fix the import path or add the target file to the scanned sources",
    )


def build_graph(
    scan: ScanResult,
    parsed: dict[str, ParsedFile],
    config: AnalyzerConfig,
) -> tuple[ImportGraph, list[Diagnostic]]:
    """Assemble file-level edges into the workspace import graph.

    Unresolvable specifiers become ``unresolved-import`` diagnostics instead
    of failing the build.
    """
    nodes: dict[str, ModuleNode] = {}
    for source_file in scan.files:
        parsed_file = parsed.get(source_file.path)
        result = parsed_file.result if parsed_file else None
        nodes[source_file.path] = ModuleNode(
            id=source_file.path,
            package=source_file.package,
            content_hash=parsed_file.content_hash if parsed_file else "",
            exports=None
            if result is None or result.exports is None
            else tuple(result.exports),
            reexport_only=bool(result and result.reexport_only),
            layer=classify_layer(source_file.path, config.architecture),
        )

    resolver = SpecifierResolver(set(nodes), scan.packages, scan.root)
    external_nodes: dict[str, ModuleNode] = {}
    edges: list[ImportEdge] = []
    diagnostics: list[Diagnostic] = []

    for source_file in scan.files:
        parsed_file = parsed.get(source_file.path)
        if parsed_file is None:
            continue
        for raw in parsed_file.result.imports:
            try:
                target = resolver.resolve(raw, source_file.path)
            except ResolutionError as exc:
                logger.debug("%s", exc)
                diagnostics.append(_unresolved_diagnostic(exc, config))
                continue

            if target not in nodes and target not in external_nodes:
                if target.startswith(ASSET_PREFIX):
                    owner = source_file.package
                else:
                    owner = target.split(":", 1)[1]
                external_nodes[target] = ModuleNode(
                    id=target,
                    package=owner,
                    exports=None,
                    external=True,
                )
            edges.append(
                ImportEdge(
                    source=source_file.path,
                    target=target,
                    specifier=raw.specifier,
                    kind=raw.kind,
                    path=source_file.path,
                    line=raw.line,
                )
            )

    nodes.update(external_nodes)
    graph = ImportGraph(nodes=nodes, edges=tuple(edges), packages=scan.packages)
    logger.info(
        "Built import graph: %d nodes (%d external), %d edges",
        len(nodes),
        len(external_nodes),
        len(edges),
    )
    return graph, diagnostics


def collapse_to_packages(graph: ImportGraph) -> ImportGraph:
    """Collapse a file graph to package granularity.

    One package edge is kept per file edge that crosses a package boundary,
    so every package-level edge still carries its file-level evidence.
    """
    order: dict[str, None] = {}
    for node in graph.internal_nodes():
        order.setdefault(node.package, None)

    nodes = {name: ModuleNode(id=name, package=name) for name in order}
    edges = []
    for edge in graph.edges:
        source = graph.nodes[edge.source]
        target = graph.nodes[edge.target]
        if target.external or source.package == target.package:
            continue
        edges.append(
            ImportEdge(
                source=source.package,
                target=target.package,
                specifier=edge.specifier,
                kind=edge.kind,
                path=edge.path,
                line=edge.line,
            )
        )
    return ImportGraph(
        nodes=nodes,
        edges=tuple(edges),
        packages=graph.packages,
        granularity="package",
    )


def graph_fingerprint(graph: ImportGraph) -> str:
    """Stable hash over every node attribute and edge in the graph."""
    payload = {
        "granularity": graph.granularity,
        "nodes": [
            [
                node.id,
                node.package,
                node.content_hash,
                None if node.exports is None else list(node.exports),
                node.reexport_only,
                node.external,
                node.layer,
            ]
            for node in graph.nodes.values()
        ],
        "edges": [
            [edge.source, edge.target, edge.specifier, edge.kind, edge.path, edge.line]
            for edge in graph.edges
        ],
        "packages": [
            [unit.name, unit.root, sorted(unit.declared.items()), list(unit.entry_points)]
            for unit in graph.packages.values()
        ],
    }
    return hashlib.sha256(orjson.dumps(payload)).hexdigest()


__all__ = [
    "SOURCE_EXTENSIONS",
    "ParsedFile",
    "SpecifierResolver",
    "build_graph",
    "collapse_to_packages",
    "graph_fingerprint",
]

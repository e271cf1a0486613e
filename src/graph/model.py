"""In-memory import graph entities.

Nodes are keyed by canonical workspace-relative POSIX path. External
pseudo-nodes use the ``external:`` prefix (``builtin:`` for Node core
modules, ``asset:`` for non-source files such as stylesheets or JSON) and
never take part in cycle or layer checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from models.parse import EdgeKind

Granularity = Literal["file", "package"]

EXTERNAL_PREFIX = "external:"
BUILTIN_PREFIX = "builtin:"
ASSET_PREFIX = "asset:"


@dataclass(frozen=True)
class PackageUnit:
    """A workspace package discovered from a manifest."""

    name: str
    root: str
    manifest_path: str
    declared: dict[str, str] = field(default_factory=dict)
    entry_points: tuple[str, ...] = ()

    def contains(self, path: str) -> bool:
        return not self.root or path == self.root or path.startswith(f"{self.root}/")


@dataclass(frozen=True)
class ModuleNode:
    """One tracked module (a source file, package, or external pseudo-node).

    ``layer`` is the architecture layer the file was classified into when
    the graph was built, or None when no layer pattern matches.
    """

    id: str
    package: str
    content_hash: str = ""
    exports: tuple[str, ...] | None = ()
    reexport_only: bool = False
    external: bool = False
    layer: str | None = None


@dataclass(frozen=True)
class ImportEdge:
    """A directed reference between two nodes via one import/export statement."""

    source: str
    target: str
    specifier: str
    kind: EdgeKind
    path: str
    line: int


@dataclass(frozen=True)
class ImportGraph:
    """Nodes in scan order plus edges in discovery order."""

    nodes: dict[str, ModuleNode]
    edges: tuple[ImportEdge, ...]
    packages: dict[str, PackageUnit]
    granularity: Granularity = "file"

    def internal_nodes(self) -> list[ModuleNode]:
        return [node for node in self.nodes.values() if not node.external]


__all__ = [
    "ASSET_PREFIX",
    "BUILTIN_PREFIX",
    "EXTERNAL_PREFIX",
    "Granularity",
    "ImportEdge",
    "ImportGraph",
    "ModuleNode",
    "PackageUnit",
]

"""Graph algorithms for import cycle detection and graph statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Iterator, Mapping


class _TarjanState:
    """Mutable state container for Tarjan's SCC algorithm."""

    def __init__(self) -> None:
        self.index = 0
        self.indices: dict[str, int] = {}
        self.low_link: dict[str, int] = {}
        self.on_stack: set[str] = set()
        self.stack: list[str] = []
        self.sccs: list[list[str]] = []

    def visit(self, node: str) -> None:
        self.indices[node] = self.index
        self.low_link[node] = self.index
        self.index += 1
        self.stack.append(node)
        self.on_stack.add(node)


def _extract_scc(state: _TarjanState, root: str) -> list[str]:
    """Extract a strongly connected component from the stack."""
    scc: list[str] = []
    while state.stack:
        w = state.stack.pop()
        state.on_stack.remove(w)
        scc.append(w)
        if w == root:
            break
    if root not in scc:
        msg = (
            f"Tarjan algorithm invariant violated: root node {root!r} "
            "not found in stack during SCC extraction."
        )
        raise RuntimeError(msg)
    return scc


def _strongconnect(
    start: str, graph: Mapping[str, Collection[str]], state: _TarjanState
) -> None:
    """Process every node reachable from ``start`` in Tarjan's algorithm.

    Uses an explicit stack of (node, neighbor iterator) frames, so import
    chains of any length stay within the interpreter's recursion limit.
    """
    state.visit(start)
    frames: list[tuple[str, Iterator[str]]] = [(start, iter(graph.get(start, ())))]

    while frames:
        node, neighbors = frames[-1]
        descended = False
        for neighbor in neighbors:
            if neighbor not in state.indices:
                state.visit(neighbor)
                frames.append((neighbor, iter(graph.get(neighbor, ()))))
                descended = True
                break
            if neighbor in state.on_stack:
                state.low_link[node] = min(state.low_link[node], state.indices[neighbor])
        if descended:
            continue

        frames.pop()
        if frames:
            parent = frames[-1][0]
            state.low_link[parent] = min(state.low_link[parent], state.low_link[node])

        if state.low_link[node] == state.indices[node]:
            scc = _extract_scc(state, node)
            if len(scc) > 1 or node in graph.get(node, ()):
                state.sccs.append(scc)


def find_cycles(graph: Mapping[str, Collection[str]]) -> list[list[str]]:
    """Find cycles in a directed graph using Tarjan's algorithm.

    Args:
        graph: Adjacency mapping; iteration order of keys and neighbor
            collections determines traversal order

    Returns:
        List of strongly connected components that contain a cycle
        (size > 1, or a single node with a self-loop)
    """
    state = _TarjanState()

    for node in graph:
        if node not in state.indices:
            _strongconnect(node, graph, state)

    return state.sccs


def _rotation_key(cycle: list[str]) -> tuple[str, ...]:
    pivot = cycle.index(min(cycle))
    return tuple(cycle[pivot:] + cycle[:pivot])


def back_edge_cycles(
    graph: Mapping[str, Collection[str]],
    members: Collection[str],
    order: Iterable[str],
) -> list[list[str]]:
    """Return one cycle per depth-first back edge within ``members``.

    The walk starts from each unvisited member in ``order`` and expands
    neighbors in adjacency order. A back edge to a node on the current path
    closes the cycle from that node to the top of the path. Rotations of a
    cycle already found are dropped. Each cycle omits its closing repetition.
    """
    visited: set[str] = set()
    seen: set[tuple[str, ...]] = set()
    cycles: list[list[str]] = []

    for root in order:
        if root not in members or root in visited:
            continue
        path: list[str] = [root]
        position: dict[str, int] = {root: 0}
        visited.add(root)
        frames: list[Iterator[str]] = [iter(graph.get(root, ()))]

        while frames:
            for neighbor in frames[-1]:
                if neighbor not in members:
                    continue
                if neighbor in position:
                    cycle = path[position[neighbor] :]
                    key = _rotation_key(cycle)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(cycle)
                    continue
                if neighbor not in visited:
                    visited.add(neighbor)
                    position[neighbor] = len(path)
                    path.append(neighbor)
                    frames.append(iter(graph.get(neighbor, ())))
                    break
            else:
                frames.pop()
                del position[path.pop()]

    return cycles


def compute_fan_stats(
    edges: Iterable[tuple[str, str]],
) -> tuple[dict[str, int], dict[str, int]]:
    """Compute fan-in and fan-out statistics from edges."""
    fan_in: dict[str, int] = {}
    fan_out: dict[str, int] = {}

    for source, target in edges:
        fan_out[source] = fan_out.get(source, 0) + 1
        fan_in[target] = fan_in.get(target, 0) + 1

    return fan_in, fan_out


__all__ = [
    "_TarjanState",
    "_extract_scc",
    "_strongconnect",
    "back_edge_cycles",
    "compute_fan_stats",
    "find_cycles",
]

"""Layer classification and violation detection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from graph.algos import find_cycles
from utils import match_glob

if TYPE_CHECKING:
    from rules.config import ArchitectureConfig


def classify_layer(path: str, architecture: ArchitectureConfig) -> str | None:
    """Classify a file path into an architectural layer.

    Uses first-match-wins semantics in declaration order: the first layer
    whose glob patterns match the path determines the layer, regardless of
    how specific a later layer's pattern is.
    """
    for layer_def in architecture.layers:
        for glob_pattern in layer_def.globs:
            if match_glob(path, glob_pattern):
                return layer_def.name
    return None


def build_allowed_deps(architecture: ArchitectureConfig) -> dict[str, set[str]]:
    """Build a mapping of layer -> set of layers it may import (itself included)."""
    return {
        layer.name: {layer.name, *layer.allowed_imports}
        for layer in architecture.layers
    }


def is_violation(
    from_layer: str | None,
    to_layer: str | None,
    allowed_deps: dict[str, set[str]],
) -> bool:
    """Check if a dependency from one layer to another is a violation.

    Unassigned endpoints are exempt from layer checks.
    """
    if from_layer is None or to_layer is None:
        return False

    if from_layer not in allowed_deps:
        return False

    return to_layer not in allowed_deps[from_layer]


def find_layer_cycles(architecture: ArchitectureConfig) -> list[list[str]]:
    """Return cyclic groups of the allowed-imports relation, in declaration order."""
    order = {layer.name: index for index, layer in enumerate(architecture.layers)}
    graph = {
        layer.name: sorted(
            {name for name in layer.allowed_imports if name != layer.name}
        )
        for layer in architecture.layers
    }
    cycles = [sorted(cycle, key=order.__getitem__) for cycle in find_cycles(graph)]
    cycles.sort(key=lambda cycle: order[cycle[0]])
    return cycles


__all__ = [
    "build_allowed_deps",
    "classify_layer",
    "find_layer_cycles",
    "is_violation",
]

"""Configuration and layer rule definitions."""

from rules.config import (
    AnalyzerConfig,
    ArchitectureConfig,
    LayerDef,
    config_fingerprint,
    load_config,
)
from rules.layers import (
    build_allowed_deps,
    classify_layer,
    find_layer_cycles,
    is_violation,
)

__all__ = [
    "AnalyzerConfig",
    "ArchitectureConfig",
    "LayerDef",
    "build_allowed_deps",
    "classify_layer",
    "config_fingerprint",
    "find_layer_cycles",
    "is_violation",
    "load_config",
]

"""Determinism verification for workspace-analyzer diagnostics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import orjson

from cache.store import MemoryCacheStore
from pipeline.scheduler import run_analysis
from rules.config import load_config

if TYPE_CHECKING:
    from pathlib import Path

    from models.diagnostics import AnalysisResult
    from rules.config import AnalyzerConfig


@dataclass(frozen=True)
class DeterminismResult:
    ok: bool
    mismatches: tuple[str, ...] = field(default_factory=tuple)
    missing: tuple[str, ...] = field(default_factory=tuple)
    extra: tuple[str, ...] = field(default_factory=tuple)


def _serialize(result: AnalysisResult) -> list[str]:
    return [
        orjson.dumps(d.model_dump(mode="json"), option=orjson.OPT_SORT_KEYS).decode()
        for d in result.diagnostics
    ]


def verify_determinism(
    *, root: Path, config: AnalyzerConfig | None = None
) -> DeterminismResult:
    """Verify that analyzing ``root`` twice yields identical diagnostics.

    The first run uses the configured concurrency and the second runs
    single-threaded, each with a cold in-memory cache, so neither worker
    scheduling nor cached state can mask a difference.

    Args:
        root: Workspace root to analyze.
        config: Optional configuration; loaded from the root when omitted.

    Returns:
        DeterminismResult listing diagnostics only the first run produced
        (missing), only the second run produced (extra), and report
        positions whose diagnostic differs (mismatches).
    """
    if config is None:
        config = load_config(root)

    first = _serialize(run_analysis(root, config, cache=MemoryCacheStore()))
    sequential = config.model_copy(update={"concurrency": 1})
    second = _serialize(run_analysis(root, sequential, cache=MemoryCacheStore()))

    missing = sorted(set(first) - set(second))
    extra = sorted(set(second) - set(first))
    mismatches = [
        f"#{index}"
        for index, (before, after) in enumerate(zip(first, second))
        if before != after
    ]
    if len(first) != len(second):
        mismatches.append(f"count {len(first)} != {len(second)}")

    ok = not missing and not extra and not mismatches
    return DeterminismResult(
        ok=ok,
        mismatches=tuple(mismatches),
        missing=tuple(missing),
        extra=tuple(extra),
    )

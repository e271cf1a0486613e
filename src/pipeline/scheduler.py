"""Run orchestration: scan, parallel parse, graph build, parallel analysis.

The graph builder is the only serialization point. Parse tasks share
nothing but the cache store, and analyzers only read the finished graph.
Report order comes from the final sort, never from task completion order.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from analyzers import default_analyzers
from cache.store import (
    FileCacheStore,
    MemoryCacheStore,
    analysis_cache_key,
    content_hash,
    parse_cache_key,
)
from errors import AnalysisCancelled, CacheError, FatalAnalysisError, ParseError
from graph.builder import ParsedFile, build_graph, graph_fingerprint
from models.diagnostics import AnalysisResult, Diagnostic, Location
from models.parse import ParseResult
from parse.treesitter_imports import parse_module
from pipeline.aggregate import build_summary, merge_diagnostics
from rules.config import config_fingerprint, load_config, resolve_cache_dir
from scan.packages import scan_workspace
from utils import to_posix

if TYPE_CHECKING:
    from analyzers import GraphAnalyzer
    from cache.store import CacheStore
    from graph.model import ImportGraph
    from rules.config import AnalyzerConfig
    from scan.packages import SourceFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _ParseOutcome:
    path: str
    parsed: ParsedFile
    cache_key: str | None
    cache_hit: bool


def _check_cancelled(cancel: threading.Event | None, phase: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.info("Cancellation requested before %s phase", phase)
        raise AnalysisCancelled(phase)


def open_cache_store(root: Path, config: AnalyzerConfig) -> CacheStore:
    """Open the configured store, falling back to memory when it is unusable.

    Raises:
        FatalAnalysisError: The cache path is occupied by something other than
            a directory, so neither using nor recreating it is safe.
    """
    if not config.cache.enabled:
        return MemoryCacheStore()

    cache_dir = resolve_cache_dir(root, config)
    if cache_dir.exists() and not cache_dir.is_dir():
        msg = f"Cache path {cache_dir} exists and is not a directory"
        raise FatalAnalysisError(msg)
    try:
        return FileCacheStore(cache_dir, max_age_days=config.cache.max_age_days)
    except CacheError as exc:
        logger.warning("%s; continuing without a persistent cache", exc)
        return MemoryCacheStore()


def _cache_skip_dirs(root: Path, config: AnalyzerConfig) -> frozenset[str]:
    cache_dir = resolve_cache_dir(root, config)
    try:
        return frozenset({to_posix(cache_dir.resolve().relative_to(root))})
    except ValueError:
        return frozenset()


def _parse_one(source_file: SourceFile, store: CacheStore) -> _ParseOutcome:
    try:
        content = source_file.absolute.read_bytes()
    except OSError as exc:
        result = ParseResult(exports=None, error=f"{source_file.path}: unreadable: {exc}")
        return _ParseOutcome(source_file.path, ParsedFile(result, ""), None, False)

    key = parse_cache_key(content, source_file.path)
    digest = content_hash(content)
    cached = store.get(key)
    if cached is not None:
        try:
            result = ParseResult.model_validate(cached)
        except ValidationError as exc:
            logger.warning("Discarding malformed cached parse of %s: %s", source_file.path, exc)
        else:
            return _ParseOutcome(source_file.path, ParsedFile(result, digest), key, True)

    try:
        result = parse_module(content, source_file.path)
    except ParseError as exc:
        result = ParseResult(exports=None, error=str(exc), error_line=exc.line)
    # Committed only after the file is fully parsed.
    store.put(key, result.model_dump(mode="json"))
    return _ParseOutcome(source_file.path, ParsedFile(result, digest), key, False)


def parse_files(
    files: list[SourceFile], store: CacheStore, concurrency: int
) -> list[_ParseOutcome]:
    """Parse every file with at most ``concurrency`` workers, in input order."""
    if concurrency <= 1 or len(files) <= 1:
        return [_parse_one(source_file, store) for source_file in files]

    with concurrent.futures.ThreadPoolExecutor(max_workers=concurrency) as executor:
        futures = [executor.submit(_parse_one, source_file, store) for source_file in files]
        return [future.result() for future in futures]


def _parse_diagnostic(path: str, result: ParseResult) -> Diagnostic:
    return Diagnostic(
        code="parse-error",
        category="configuration",
        severity="warning",
        message=result.error or f"{path}: could not be parsed",
        location=Location(path=path, line=result.error_line),
        suggestion="The file was analyzed as having no imports",
    )


def _run_analyzer(
    analyzer: GraphAnalyzer,
    graph: ImportGraph,
    config: AnalyzerConfig,
    store: CacheStore,
    key: str,
) -> list[Diagnostic]:
    cached = store.get(key)
    if cached is not None:
        try:
            diagnostics = [Diagnostic.model_validate(item) for item in cached]
        except (ValidationError, TypeError) as exc:
            logger.warning("Discarding malformed cached %s result: %s", analyzer.name, exc)
        else:
            logger.debug("Reusing cached %s result", analyzer.name)
            return diagnostics

    started = time.perf_counter()
    diagnostics = analyzer.analyze(graph, config)
    logger.debug(
        "%s produced %d diagnostic(s) in %.3fs",
        analyzer.name,
        len(diagnostics),
        time.perf_counter() - started,
    )
    store.put(key, [d.model_dump(mode="json") for d in diagnostics])
    return diagnostics


def run_analyzers(
    graph: ImportGraph,
    config: AnalyzerConfig,
    store: CacheStore,
    analyzers: list[GraphAnalyzer] | None = None,
) -> tuple[list[Diagnostic], set[str]]:
    """Run every enabled analyzer in parallel over the finished graph.

    Returns the combined diagnostics and the cache keys that were used.
    """
    if analyzers is None:
        analyzers = default_analyzers()
    enabled = [a for a in analyzers if config.is_enabled(a.category)]
    if not enabled:
        return [], set()

    graph_fp = graph_fingerprint(graph)
    config_fp = config_fingerprint(config)
    keys = [analysis_cache_key(graph_fp, config_fp, a.name) for a in enabled]

    workers = max(1, min(config.concurrency, len(enabled)))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(_run_analyzer, analyzer, graph, config, store, key)
            for analyzer, key in zip(enabled, keys, strict=True)
        ]
        diagnostics = [d for future in futures for d in future.result()]
    return diagnostics, set(keys)


def run_analysis(
    root: Path | str,
    config: AnalyzerConfig | None = None,
    *,
    cache: CacheStore | None = None,
    cancel: threading.Event | None = None,
    config_path: Path | None = None,
) -> AnalysisResult:
    """Analyze the workspace at ``root`` and return ordered diagnostics.

    Args:
        root: Workspace root directory
        config: Validated configuration; loaded from the root when omitted
        cache: Store to use instead of the configured one
        cancel: Event checked between phases
        config_path: Explicit config file used when ``config`` is omitted

    Raises:
        ConfigurationError: The configuration file is malformed.
        FatalAnalysisError: No package root exists or the cache cannot be used.
        AnalysisCancelled: ``cancel`` was set before a phase started.
    """
    started = time.perf_counter()
    root = Path(root).resolve()
    if not root.is_dir():
        msg = f"Workspace root {root} is not a directory"
        raise FatalAnalysisError(msg)

    if config is None:
        config = load_config(root, config_path)
    store = cache if cache is not None else open_cache_store(root, config)

    _check_cancelled(cancel, "scan")
    scan = scan_workspace(root, config, skip_dirs=_cache_skip_dirs(root, config))
    diagnostics: list[Diagnostic] = list(scan.diagnostics)

    _check_cancelled(cancel, "parse")
    outcomes = parse_files(scan.files, store, config.concurrency)
    parsed: dict[str, ParsedFile] = {}
    used_keys: set[str] = set()
    hits = misses = 0
    for outcome in outcomes:
        parsed[outcome.path] = outcome.parsed
        if outcome.parsed.result.error is not None:
            diagnostics.append(_parse_diagnostic(outcome.path, outcome.parsed.result))
        if outcome.cache_key is None:
            continue
        used_keys.add(outcome.cache_key)
        if outcome.cache_hit:
            hits += 1
        else:
            misses += 1
    logger.info("Parsed %d files (%d cached)", len(outcomes), hits)

    graph, build_diagnostics = build_graph(scan, parsed, config)
    diagnostics.extend(build_diagnostics)

    _check_cancelled(cancel, "analyze")
    analyzer_diagnostics, analyzer_keys = run_analyzers(graph, config, store)
    diagnostics.extend(analyzer_diagnostics)
    used_keys |= analyzer_keys

    final = merge_diagnostics(diagnostics, config)
    store.prune(used_keys)

    summary = build_summary(
        final,
        graph=graph,
        files_scanned=len(scan.files),
        elapsed_seconds=time.perf_counter() - started,
        cache_hits=hits,
        cache_misses=misses,
    )
    logger.info(
        "Analysis finished: %d diagnostic(s), cache hit ratio %.0f%%",
        summary.total,
        summary.cache_hit_ratio * 100,
    )
    return AnalysisResult(root=root.as_posix(), diagnostics=final, summary=summary)


__all__ = [
    "open_cache_store",
    "parse_files",
    "run_analysis",
    "run_analyzers",
]

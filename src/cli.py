"""Command-line interface for workspace-analyzer."""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path

import orjson

from errors import AnalysisCancelled, ConfigurationError, FatalAnalysisError
from models.diagnostics import SEVERITY_RANK
from pipeline.scheduler import run_analysis
from rules.config import load_config, resolve_cache_dir
from verify.verify import verify_determinism

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_FATAL = 2


def _add_common_paths(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Workspace root (default: .)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Config file (default: <root>/workspace-analyzer.toml if present)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr (-vv for debug output)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="workspace-analyzer")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze", help="Analyze imports, layers and dependencies"
    )
    _add_common_paths(analyze_parser)
    analyze_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore and do not update the on-disk cache",
    )
    analyze_parser.add_argument(
        "--output",
        default=None,
        help="Write the JSON result to this file instead of stdout",
    )

    verify_parser = subparsers.add_parser(
        "verify", help="Verify that two runs produce identical diagnostics"
    )
    _add_common_paths(verify_parser)

    clear_parser = subparsers.add_parser(
        "clear-cache", help="Delete the analysis cache directory"
    )
    _add_common_paths(clear_parser)

    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _config_path(value: str | None) -> Path | None:
    if value is None:
        return None
    return Path(value).expanduser().resolve()


def _handle_analyze(
    root: Path, config_path: Path | None, *, no_cache: bool, output: str | None
) -> int:
    config = load_config(root, config_path)
    if no_cache:
        config = config.model_copy(
            update={"cache": config.cache.model_copy(update={"enabled": False})}
        )
    result = run_analysis(root, config)

    payload = orjson.dumps(
        result.model_dump(mode="json"),
        option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2,
    )
    if output is None:
        sys.stdout.write(payload.decode() + "\n")
    else:
        Path(output).expanduser().write_bytes(payload + b"\n")

    has_errors = any(
        SEVERITY_RANK[d.severity] >= SEVERITY_RANK["error"] for d in result.diagnostics
    )
    return EXIT_FINDINGS if has_errors else EXIT_OK


def _handle_verify(root: Path, config_path: Path | None) -> int:
    config = load_config(root, config_path)
    result = verify_determinism(root=root, config=config)
    if not result.ok:
        for label, entries in (
            ("missing", result.missing),
            ("extra", result.extra),
            ("mismatches", result.mismatches),
        ):
            for entry in entries:
                sys.stderr.write(f"{label}: {entry}\n")
        return EXIT_FINDINGS
    return EXIT_OK


def _handle_clear_cache(root: Path, config_path: Path | None) -> int:
    config = load_config(root, config_path)
    cache_dir = resolve_cache_dir(root, config)
    if cache_dir.is_dir():
        shutil.rmtree(cache_dir)
        logging.getLogger(__name__).info("Removed cache directory %s", cache_dir)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    root = Path(args.root).expanduser().resolve()
    config_path = _config_path(args.config)

    try:
        if args.command == "analyze":
            return _handle_analyze(
                root, config_path, no_cache=args.no_cache, output=args.output
            )

        if args.command == "verify":
            return _handle_verify(root, config_path)

        if args.command == "clear-cache":
            return _handle_clear_cache(root, config_path)
    except ConfigurationError as exc:
        sys.stderr.write(f"configuration error: {exc}\n")
        return EXIT_FATAL
    except (FatalAnalysisError, AnalysisCancelled) as exc:
        sys.stderr.write(f"fatal: {exc}\n")
        return EXIT_FATAL

    raise AssertionError


if __name__ == "__main__":
    raise SystemExit(main())

"""File scanning utilities for workspace source files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

from utils import match_any, to_posix

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


def _should_include_file(
    path: Path,
    directory: Path,
    gitignore_matches: Callable[[str], bool] | None,
    include_patterns: list[str] | None,
    exclude_patterns: list[str] | None,
) -> bool:
    """Check if a file should be included based on all filtering rules.

    Exclusion always wins over inclusion.
    """
    if not path.is_file() or path.is_symlink():
        return False

    if not _is_within_root(path, directory):
        return False

    try:
        rel_path = path.relative_to(directory)
    except ValueError:
        return False

    rel_path_str = rel_path.as_posix()

    if exclude_patterns and match_any(rel_path_str, exclude_patterns):
        return False

    if gitignore_matches is not None and gitignore_matches(str(path)):
        return False

    return not include_patterns or match_any(rel_path_str, include_patterns)


def _is_within_root(path: Path, root: Path) -> bool:
    """Return True when the resolved path stays within the resolved root."""
    try:
        root_resolved = root.resolve()
        path_resolved = path.resolve()
    except OSError:
        return False

    try:
        path_resolved.relative_to(root_resolved)
    except ValueError:
        return False

    return True


def _iter_gitignore_files(root: Path) -> list[Path]:
    """Return sorted list of .gitignore files under root (including root)."""
    gitignore_paths = [root / ".gitignore"]
    gitignore_paths.extend(root.rglob(".gitignore"))
    unique_paths = {path for path in gitignore_paths if path.is_file()}
    return sorted(unique_paths, key=lambda p: p.relative_to(root).as_posix())


def _build_gitignore_matcher(
    root: Path,
    *,
    nested_gitignore: bool,
) -> Callable[[str], bool] | None:
    if not nested_gitignore:
        gitignore_path = root / ".gitignore"
        if gitignore_path.is_file():
            return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
        return None

    gitignore_paths = _iter_gitignore_files(root)
    if not gitignore_paths:
        return None

    matchers = [parse_gitignore(path) for path in gitignore_paths]

    def matches(path_str: str) -> bool:
        for matcher in matchers:
            try:
                if matcher(path_str):
                    return True
            except ValueError:
                continue
        return False

    return matches


def _is_pruned_dir(
    rel_dir: str, skip_dirs: frozenset[str], exclude_patterns: list[str] | None
) -> bool:
    if rel_dir in skip_dirs:
        return True
    return bool(exclude_patterns) and match_any(f"{rel_dir}/", exclude_patterns or [])


def find_source_files(
    directory: Path,
    *,
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
    skip_dirs: frozenset[str] = frozenset(),
    nested_gitignore: bool = False,
) -> Iterator[Path]:
    """Find source files in a directory, respecting .gitignore.

    Args:
        directory: Workspace root to search
        include_patterns: Optional list of glob patterns; if provided,
            files must match at least one pattern to be included
        exclude_patterns: Optional list of glob patterns; files matching
            any pattern are excluded even when an include pattern matches
        skip_dirs: Root-relative directories never descended into (e.g. the
            cache directory)

    Yields:
        Path objects for each file found, sorted lexicographically
        by relative path for deterministic ordering.
    """
    gitignore_matches = _build_gitignore_matcher(
        directory,
        nested_gitignore=nested_gitignore,
    )

    matched_files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(directory):
        current = Path(dirpath)
        rel_dir = to_posix(current.relative_to(directory))
        dirnames[:] = [
            name
            for name in dirnames
            if name != ".git"
            and not _is_pruned_dir(
                f"{rel_dir}/{name}" if rel_dir else name, skip_dirs, exclude_patterns
            )
        ]
        matched_files.extend(
            current / filename
            for filename in filenames
            if _should_include_file(
                current / filename,
                directory,
                gitignore_matches,
                include_patterns,
                exclude_patterns,
            )
        )

    matched_files.sort(key=lambda p: p.relative_to(directory).as_posix())

    yield from matched_files


__all__ = ["_should_include_file", "find_source_files"]

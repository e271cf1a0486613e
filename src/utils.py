"""Shared utilities for path handling and specifier classification."""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

NODE_BUILTINS = frozenset(
    {
        "assert",
        "async_hooks",
        "buffer",
        "child_process",
        "cluster",
        "console",
        "constants",
        "crypto",
        "dgram",
        "diagnostics_channel",
        "dns",
        "domain",
        "events",
        "fs",
        "http",
        "http2",
        "https",
        "inspector",
        "module",
        "net",
        "os",
        "path",
        "perf_hooks",
        "process",
        "punycode",
        "querystring",
        "readline",
        "repl",
        "stream",
        "string_decoder",
        "timers",
        "tls",
        "trace_events",
        "tty",
        "url",
        "util",
        "v8",
        "vm",
        "wasi",
        "worker_threads",
        "zlib",
    }
)


def to_posix(path: str | Path) -> str:
    """Normalize a relative path to forward slashes without empty segments.

    Examples:
        >>> to_posix("packages\\\\core\\\\src/index.ts")
        'packages/core/src/index.ts'
        >>> to_posix(Path("a/b.ts"))
        'a/b.ts'
    """
    path_str = path.as_posix() if isinstance(path, Path) else str(path)
    parts = [part for part in path_str.replace("\\", "/").split("/") if part]
    return "/".join(parts)


def normalize_join(base_dir: str, relative: str) -> str | None:
    """Join a relative specifier onto a directory, collapsing ``.`` and ``..``.

    Returns None when the result would climb above the workspace root.

    Examples:
        >>> normalize_join("pkg/src/a", "../b")
        'pkg/src/b'
        >>> normalize_join("pkg", "../../x") is None
        True
    """
    parts: list[str] = [p for p in base_dir.split("/") if p]
    for segment in relative.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts)


def parent_dir(path: str) -> str:
    parent = PurePosixPath(path).parent.as_posix()
    return "" if parent == "." else parent


def match_glob(path: str, pattern: str) -> bool:
    """fnmatch with a leading ``**/`` that may also match zero directories."""
    if fnmatch(path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch(path, pattern[3:])


def match_any(path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    return any(match_glob(path, pattern) for pattern in patterns)


def is_relative_specifier(specifier: str) -> bool:
    return specifier.startswith((".", "/"))


def package_name_from_specifier(specifier: str) -> str:
    """Extract the package name from a bare module specifier.

    Examples:
        >>> package_name_from_specifier("@scope/pkg/deep/path")
        '@scope/pkg'
        >>> package_name_from_specifier("lodash/fp")
        'lodash'
        >>> package_name_from_specifier("node:fs")
        'node:fs'
    """
    if specifier.startswith("@"):
        parts = specifier.split("/")
        if len(parts) >= 2:
            return f"{parts[0]}/{parts[1]}"
        return specifier

    slash_index = specifier.find("/")
    if slash_index > 0:
        return specifier[:slash_index]
    return specifier


def is_builtin_specifier(specifier: str) -> bool:
    if specifier.startswith("node:"):
        return True
    return package_name_from_specifier(specifier) in NODE_BUILTINS

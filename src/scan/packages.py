"""Package discovery and file-to-package assignment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import orjson

from errors import FatalAnalysisError, ScanError
from graph.model import PackageUnit
from models.diagnostics import Diagnostic, Location
from rules.config import CONFIG_FILENAME
from scan.files import find_source_files
from utils import to_posix

if TYPE_CHECKING:
    from pathlib import Path

    from rules.config import AnalyzerConfig

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.json"

_RUNTIME_SECTIONS = ("dependencies", "peerDependencies", "optionalDependencies")
_DEV_SECTION = "devDependencies"
_ENTRY_FIELDS = ("source", "types", "typings", "module", "main")


@dataclass(frozen=True)
class SourceFile:
    """A scanned file and the package that owns it."""

    path: str
    package: str
    absolute: Path


@dataclass
class ScanResult:
    root: Path | None = None
    files: list[SourceFile] = field(default_factory=list)
    packages: dict[str, PackageUnit] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def _scan_diagnostic(error: ScanError, code: str) -> Diagnostic:
    return Diagnostic(
        code=code,
        category="configuration",
        severity="warning",
        message=str(error),
        location=Location(path=error.path),
    )


def _entry_candidates(manifest: dict) -> tuple[str, ...]:
    candidates: list[str] = []
    for key in _ENTRY_FIELDS:
        value = manifest.get(key)
        if isinstance(value, str):
            candidates.append(value)

    exports = manifest.get("exports")
    if isinstance(exports, dict):
        exports = exports.get(".", exports)
    if isinstance(exports, str):
        candidates.append(exports)
    elif isinstance(exports, dict):
        candidates.extend(
            value
            for key in ("source", "types", "import", "require", "default")
            if isinstance(value := exports.get(key), str)
        )

    candidates.extend(["src/index", "index"])
    normalized = [to_posix(candidate.removeprefix("./")) for candidate in candidates]
    return tuple(dict.fromkeys(normalized))


def read_manifest(
    manifest_path: Path, rel_root: str, *, include_dev: bool
) -> PackageUnit:
    """Read a package.json into a PackageUnit.

    Raises:
        ScanError: The manifest is unreadable, not JSON, or has no name.
    """
    rel_manifest = f"{rel_root}/{MANIFEST_FILENAME}" if rel_root else MANIFEST_FILENAME
    try:
        manifest = orjson.loads(manifest_path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        msg = f"Unreadable package manifest {rel_manifest}: {exc}"
        raise ScanError(msg, rel_manifest) from exc

    if not isinstance(manifest, dict) or not isinstance(manifest.get("name"), str):
        msg = f"Package manifest {rel_manifest} is missing a 'name' field"
        raise ScanError(msg, rel_manifest)

    sections = [*_RUNTIME_SECTIONS, _DEV_SECTION] if include_dev else _RUNTIME_SECTIONS
    declared: dict[str, str] = {}
    for section in sections:
        deps = manifest.get(section)
        if isinstance(deps, dict):
            for dep_name in deps:
                declared.setdefault(dep_name, section)

    return PackageUnit(
        name=manifest["name"],
        root=rel_root,
        manifest_path=rel_manifest,
        declared=declared,
        entry_points=_entry_candidates(manifest),
    )


def discover_packages(
    root: Path, patterns: list[str], *, include_dev: bool = True
) -> tuple[dict[str, PackageUnit], list[Diagnostic]]:
    """Find package roots matching ``patterns`` (plus the root manifest).

    A pattern that matches no package directory is reported as a
    configuration diagnostic; scanning continues with the other patterns.
    """
    diagnostics: list[Diagnostic] = []
    candidates: list[str] = []
    if (root / MANIFEST_FILENAME).is_file():
        candidates.append("")

    for pattern in patterns:
        matched = sorted(
            to_posix(path.relative_to(root))
            for path in root.glob(pattern)
            if path.is_dir() and (path / MANIFEST_FILENAME).is_file()
        )
        if not matched:
            error = ScanError(
                f"Package pattern '{pattern}' matched no package directories",
                CONFIG_FILENAME,
            )
            logger.warning("%s", error)
            diagnostics.append(_scan_diagnostic(error, "package-root-unmatched"))
        candidates.extend(matched)

    packages: dict[str, PackageUnit] = {}
    seen_roots: set[str] = set()
    for rel_root in sorted(dict.fromkeys(candidates)):
        if rel_root in seen_roots:
            continue
        seen_roots.add(rel_root)
        manifest_path = root / rel_root / MANIFEST_FILENAME
        try:
            unit = read_manifest(manifest_path, rel_root, include_dev=include_dev)
        except ScanError as exc:
            logger.warning("%s", exc)
            diagnostics.append(_scan_diagnostic(exc, "invalid-manifest"))
            continue
        if unit.name in packages:
            error = ScanError(
                f"Package name '{unit.name}' is declared by both "
                f"{packages[unit.name].manifest_path} and {unit.manifest_path}",
                unit.manifest_path,
            )
            diagnostics.append(_scan_diagnostic(error, "invalid-manifest"))
            continue
        packages[unit.name] = unit

    return packages, diagnostics


def assign_package(path: str, packages: dict[str, PackageUnit]) -> str | None:
    """Return the package whose root is the longest prefix of ``path``."""
    owner: PackageUnit | None = None
    for unit in packages.values():
        if unit.contains(path) and (owner is None or len(unit.root) > len(owner.root)):
            owner = unit
    return owner.name if owner else None


def scan_workspace(
    root: Path, config: AnalyzerConfig, *, skip_dirs: frozenset[str] = frozenset()
) -> ScanResult:
    """Enumerate candidate files and assign each to its owning package.

    Raises:
        FatalAnalysisError: No package root could be found at all.
    """
    packages, diagnostics = discover_packages(
        root,
        config.packages,
        include_dev=config.dependencies.check_dev_dependencies,
    )
    if not packages:
        msg = f"No package roots found under {root} (patterns: {config.packages})"
        raise FatalAnalysisError(msg)

    result = ScanResult(root=root, packages=packages, diagnostics=diagnostics)
    for file_path in find_source_files(
        root,
        include_patterns=config.include,
        exclude_patterns=config.exclude,
        skip_dirs=skip_dirs,
        nested_gitignore=config.nested_gitignore,
    ):
        rel_path = to_posix(file_path.relative_to(root))
        owner = assign_package(rel_path, packages)
        if owner is None:
            logger.debug("Skipping %s: not under any package root", rel_path)
            continue
        result.files.append(SourceFile(path=rel_path, package=owner, absolute=file_path))

    logger.info(
        "Scanned %d files in %d packages", len(result.files), len(result.packages)
    )
    return result


__all__ = [
    "MANIFEST_FILENAME",
    "ScanResult",
    "SourceFile",
    "assign_package",
    "discover_packages",
    "read_manifest",
    "scan_workspace",
]

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Literal

import orjson
import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from errors import ConfigurationError
from models.diagnostics import Category, Severity

CONFIG_FILENAME = "workspace-analyzer.toml"

DEFAULT_INCLUDE_PATTERNS = [
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.mts",
    "**/*.cts",
    "**/*.mjs",
    "**/*.cjs",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/*.d.ts",
]

DEFAULT_PACKAGE_PATTERNS = ["packages/*", "apps/*"]

DEFAULT_IMPLICITLY_USED = [
    "typescript",
    "@types/*",
    "eslint",
    "prettier",
    "vitest",
    "@vitest/*",
    "tsup",
    "vite",
]

Granularity = Literal["file", "package"]


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class LayerDef(_StrictModel):
    """Definition of a single architectural layer."""

    name: str = Field(description="Layer name (e.g., 'core', 'cli')")
    globs: list[str] = Field(
        description="Glob patterns for files belonging to this layer"
    )
    allowed_imports: list[str] = Field(
        default_factory=list,
        description="Layer names this layer may import from (itself is implied)",
    )


class ArchitectureConfig(_StrictModel):
    """Layer definitions and public-API policy."""

    layers: list[LayerDef] = Field(
        default_factory=list,
        description="Layer definitions (first declared match wins)",
    )
    allow_barrel_exports: list[str] = Field(
        default_factory=list,
        description="Globs of re-export-only files exempt from layer checks",
    )
    enforce_public_api: bool = Field(
        default=False,
        description="Exempt allowed barrels and flag deep imports into packages",
    )
    violation_severity: Severity = "error"

    @model_validator(mode="after")
    def _check_layer_names(self) -> ArchitectureConfig:
        seen: set[str] = set()
        for layer in self.layers:
            if layer.name in seen:
                msg = f"Duplicate layer name '{layer.name}'"
                raise ValueError(msg)
            seen.add(layer.name)
        for layer in self.layers:
            unknown = [name for name in layer.allowed_imports if name not in seen]
            if unknown:
                msg = (
                    f"Layer '{layer.name}' allows imports from undeclared "
                    f"layer(s): {', '.join(unknown)}"
                )
                raise ValueError(msg)
        return self


class AnalyzerSpec(_StrictModel):
    """Per-category switch and severity override."""

    enabled: bool = True
    severity: Severity | None = None


class DependencyPolicy(_StrictModel):
    """Dependency usage policy."""

    count_type_only: bool = Field(
        default=True,
        description="Whether type-only imports count as using a dependency",
    )
    unused_severity: Severity = "warning"
    unresolved_severity: Severity = "warning"
    check_dev_dependencies: bool = True
    implicitly_used: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IMPLICITLY_USED),
        description="Dependency name globs never reported as unused",
    )
    ignore: list[str] = Field(
        default_factory=list,
        description="Dependency name globs skipped entirely",
    )


class CyclePolicy(_StrictModel):
    """Circular import detection policy."""

    include_type_only: bool = False
    max_length: int = Field(default=20, ge=1)
    direct_severity: Severity = "error"
    transitive_severity: Severity = "warning"
    granularity: Granularity = "file"


class CacheConfig(_StrictModel):
    """Analysis cache location and lifetime."""

    enabled: bool = True
    dir: str = ".workspace-analyzer-cache"
    max_age_days: int = Field(default=7, ge=0, description="0 disables expiry")


class AnalyzerConfig(_StrictModel):
    """Validated configuration for one analysis run."""

    include: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS),
        description="Glob patterns for source files to include",
    )
    exclude: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS),
        description="Glob patterns for files to exclude (always wins)",
    )
    packages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PACKAGE_PATTERNS),
        description="Package-root patterns (directories holding package.json)",
    )
    concurrency: int = Field(default=4, ge=1, le=64)
    nested_gitignore: bool = Field(
        default=False,
        description="Enable nested .gitignore composition (default: root-only)",
    )
    min_severity: Severity = "info"
    analyzers: dict[Category, AnalyzerSpec] = Field(default_factory=dict)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    dependencies: DependencyPolicy = Field(default_factory=DependencyPolicy)
    cycles: CyclePolicy = Field(default_factory=CyclePolicy)
    architecture: ArchitectureConfig = Field(default_factory=ArchitectureConfig)

    def analyzer(self, category: Category) -> AnalyzerSpec:
        return self.analyzers.get(category, AnalyzerSpec())

    def is_enabled(self, category: Category) -> bool:
        return self.analyzer(category).enabled


def config_fingerprint(config: AnalyzerConfig) -> str:
    """Stable hash over the full validated config.

    Any change to any setting changes the fingerprint; callers that cannot
    prove a setting is irrelevant must include this value in cache keys.
    """
    payload = orjson.dumps(config.model_dump(mode="json"), option=orjson.OPT_SORT_KEYS)
    return hashlib.sha256(payload).hexdigest()


def resolve_cache_dir(root: Path, config: AnalyzerConfig) -> Path:
    """Resolve the configured cache dir; relative paths are under the root."""
    cache_dir = Path(config.cache.dir).expanduser()
    if not cache_dir.is_absolute():
        cache_dir = root / cache_dir
    return cache_dir


def parse_config(data: dict, source: str = "<config>") -> AnalyzerConfig:
    try:
        return AnalyzerConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid config in {source}: {e}"
        raise ConfigurationError(msg) from e


def load_config(root: Path, config_path: Path | None = None) -> AnalyzerConfig:
    """Load configuration from workspace-analyzer.toml if it exists."""
    if config_path is None:
        config_path = Path(root) / CONFIG_FILENAME
        if not config_path.is_file():
            return AnalyzerConfig()
    elif not config_path.is_file():
        msg = f"Config file not found: {config_path}"
        raise ConfigurationError(msg)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigurationError(msg) from e

    return parse_config(data, str(config_path))


__all__ = [
    "CONFIG_FILENAME",
    "AnalyzerConfig",
    "AnalyzerSpec",
    "ArchitectureConfig",
    "CacheConfig",
    "CyclePolicy",
    "DependencyPolicy",
    "LayerDef",
    "config_fingerprint",
    "load_config",
    "parse_config",
    "resolve_cache_dir",
]

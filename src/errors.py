"""Exceptions raised by the workspace analyzer."""

from __future__ import annotations


class AnalyzerError(Exception):
    """Base exception for all analyzer errors."""


class ConfigurationError(AnalyzerError):
    """Raised when settings are malformed or contradictory."""


class ScanError(ConfigurationError):
    """Raised when a package-root pattern or manifest cannot be used."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class ParseError(AnalyzerError):
    """Raised when a source file cannot be parsed."""

    def __init__(self, path: str, message: str, line: int | None = None) -> None:
        self.path = path
        self.line = line
        super().__init__(f"{path}: {message}")


class ResolutionError(AnalyzerError):
    """Raised when an import specifier maps to no node or external package."""

    def __init__(self, specifier: str, path: str, line: int) -> None:
        self.specifier = specifier
        self.path = path
        self.line = line
        super().__init__(f"Cannot resolve '{specifier}' imported from {path}:{line}")


class CacheError(AnalyzerError):
    """Raised when the cache directory cannot be used."""


class FatalAnalysisError(AnalyzerError):
    """Raised when a run cannot produce a meaningful result."""


class AnalysisCancelled(AnalyzerError):
    """Raised when a run is aborted between phases."""

    def __init__(self, phase: str) -> None:
        self.phase = phase
        super().__init__(f"Analysis cancelled before phase '{phase}'")

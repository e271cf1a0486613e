"""Model namespace for analyzer records."""

from models.diagnostics import (
    AnalysisResult,
    Category,
    Diagnostic,
    Evidence,
    Location,
    RunSummary,
    Severity,
)
from models.parse import PARSER_VERSION, EdgeKind, ParseResult, RawImport

__all__ = [
    "PARSER_VERSION",
    "AnalysisResult",
    "Category",
    "Diagnostic",
    "EdgeKind",
    "Evidence",
    "Location",
    "ParseResult",
    "RawImport",
    "RunSummary",
    "Severity",
]

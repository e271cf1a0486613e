"""Parse result models.

This module contains the per-file records produced by the module parser.
They are plain data so the cache can persist and restore them verbatim.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Bump whenever extraction rules change so cached parse results are invalidated.
PARSER_VERSION = "ts-imports/1"

EdgeKind = Literal["static", "type-only", "dynamic", "re-export"]


class RawImport(BaseModel):
    """An import/export specifier as written in the source (unresolved)."""

    model_config = ConfigDict(frozen=True)

    specifier: str
    kind: EdgeKind
    line: int


class ParseResult(BaseModel):
    """Specifiers and declared exports extracted from one file."""

    imports: list[RawImport] = Field(default_factory=list)
    exports: list[str] | None = Field(
        default_factory=list,
        description="Exported names, or None when not statically determinable",
    )
    reexport_only: bool = Field(
        default=False,
        description="True when every statement is an import or a re-export",
    )
    error: str | None = Field(
        default=None, description="Parse failure message (file treated as edgeless)"
    )
    error_line: int | None = None


__all__ = ["PARSER_VERSION", "EdgeKind", "ParseResult", "RawImport"]

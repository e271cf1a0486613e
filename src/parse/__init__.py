"""Parsing utilities for TypeScript/JavaScript modules."""

from parse.treesitter_imports import grammar_for, parse_module

__all__ = [
    "grammar_for",
    "parse_module",
]

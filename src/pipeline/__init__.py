"""Analysis pipeline orchestration."""

from pipeline.scheduler import open_cache_store, run_analysis

__all__ = ["open_cache_store", "run_analysis"]

"""Content-addressed key/value cache for parse and analyzer results.

Keys are sha256 hex digests over every input that can change a result, so
the store itself never invalidates anything: an entry is either an exact
hit or a miss. Expired and corrupt entries are misses.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import orjson

from errors import CacheError
from models.parse import PARSER_VERSION

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"
ENTRY_VERSION = 1

_SECONDS_PER_DAY = 86400


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    writes: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses


class CacheStore(Protocol):
    """Key/value store shared by all tasks of one run.

    Implementations must allow concurrent reads and serialize writes per key.
    """

    def get(self, key: str) -> Any | None:
        """Return the stored value for ``key``, or None on a miss."""
        ...

    def put(self, key: str, value: Any) -> None:
        """Store ``value`` (JSON-serializable) under ``key``."""
        ...

    def prune(self, keep: set[str]) -> int:
        """Delete every entry whose key is not in ``keep``; return the count."""
        ...

    def clear(self) -> None:
        """Delete every entry."""
        ...

    def stats(self) -> CacheStats:
        """Return hit/miss/write counters for this store instance."""
        ...


def parse_cache_key(content: bytes, path: str) -> str:
    """Key for one file's parse result.

    The grammar is chosen by file suffix, so the suffix is part of the key;
    configuration does not influence extraction and is left out.
    """
    digest = hashlib.sha256()
    digest.update(PARSER_VERSION.encode())
    digest.update(b"\0")
    digest.update(Path(path).suffix.encode())
    digest.update(b"\0")
    digest.update(content)
    return digest.hexdigest()


def analysis_cache_key(graph_fp: str, config_fp: str, analyzer_name: str) -> str:
    """Key for one analyzer's diagnostics over one graph and config."""
    raw = "\0".join((PARSER_VERSION, analyzer_name, graph_fp, config_fp))
    return hashlib.sha256(raw.encode()).hexdigest()


def content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class MemoryCacheStore:
    """In-process store; used when caching is disabled or bypassed."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, key: str) -> Any | None:
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self._stats.misses += 1
            else:
                self._stats.hits += 1
            return value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value
            self._stats.writes += 1

    def prune(self, keep: set[str]) -> int:
        with self._lock:
            stale = [key for key in self._entries if key not in keep]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(**vars(self._stats))

    def __len__(self) -> int:
        return len(self._entries)


class FileCacheStore:
    """One JSON file per key under ``directory``.

    Writes go to a temporary file in the same directory and are renamed into
    place, so readers only ever see complete entries and an interrupted run
    leaves no partial files behind.

    Raises:
        CacheError: The directory cannot be created or is not a directory.
    """

    def __init__(self, directory: Path, *, max_age_days: int = 0) -> None:
        self.directory = directory
        self.max_age_seconds = max_age_days * _SECONDS_PER_DAY
        if directory.exists() and not directory.is_dir():
            msg = f"Cache path {directory} exists and is not a directory"
            raise CacheError(msg)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create cache directory {directory}: {exc}"
            raise CacheError(msg) from exc
        if not os.access(directory, os.R_OK | os.W_OK | os.X_OK):
            msg = f"Cache directory {directory} is not readable and writable"
            raise CacheError(msg)

        self._stats = CacheStats()
        self._stats_lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._key_locks_lock = threading.Lock()

    def _entry_path(self, key: str) -> Path:
        return self.directory / f"{key}{ENTRY_SUFFIX}"

    def _key_lock(self, key: str) -> threading.Lock:
        with self._key_locks_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _count(self, *, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._stats.hits += 1
            else:
                self._stats.misses += 1

    def _read(self, key: str) -> Any | None:
        path = self._entry_path(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Unreadable cache entry %s: %s", path.name, exc)
            return None

        try:
            entry = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            logger.warning("Corrupt cache entry %s, ignoring: %s", path.name, exc)
            return None

        if (
            not isinstance(entry, dict)
            or entry.get("version") != ENTRY_VERSION
            or entry.get("key") != key
            or not isinstance(entry.get("created_at"), (int, float))
            or "value" not in entry
        ):
            logger.warning("Cache entry %s has an unexpected shape, ignoring", path.name)
            return None

        if self.max_age_seconds and time.time() - entry["created_at"] > self.max_age_seconds:
            logger.debug("Cache entry %s expired", path.name)
            return None
        return entry["value"]

    def get(self, key: str) -> Any | None:
        value = self._read(key)
        self._count(hit=value is not None)
        return value

    def put(self, key: str, value: Any) -> None:
        payload = orjson.dumps(
            {
                "version": ENTRY_VERSION,
                "key": key,
                "created_at": time.time(),
                "value": value,
            }
        )
        with self._key_lock(key):
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=f".{key[:16]}-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._entry_path(key))
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        with self._stats_lock:
            self._stats.writes += 1

    def prune(self, keep: set[str]) -> int:
        removed = 0
        for path in sorted(self.directory.glob(f"*{ENTRY_SUFFIX}")):
            if path.stem in keep:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed += 1
        for stray in self.directory.glob(".*.tmp"):
            stray.unlink(missing_ok=True)
        if removed:
            logger.info("Pruned %d stale cache entr%s", removed, "y" if removed == 1 else "ies")
        return removed

    def clear(self) -> None:
        if self.directory.exists():
            shutil.rmtree(self.directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(**vars(self._stats))


__all__ = [
    "CacheStats",
    "CacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    "analysis_cache_key",
    "content_hash",
    "parse_cache_key",
]

#!/usr/bin/env python3
"""
File Cache Facade

Implements:
- get(key, default) → value | default
- set(key, value, duration, dependency)
- add(key, value, duration, dependency) — write only if nothing live is stored
- get_or_set(key, producer, duration, dependency)
- exists(key) — live AND dependency unchanged
- begin_cache(key) / end_cache(capture) — cache a block of rendered text
- delete(key, expired_only) / flush(expired_only)
- get_stats() → {hits, misses, writes, invalidations, hit_rate_percent}

Usage:
    cache = Cache.from_config("config/cache.yml")

    report = cache.get_or_set(
        ["Report", "summary", {"year": 2024}],
        lambda c: build_report(2024),
        360,
        QueryDependency(sql="SELECT MAX(updated_at) FROM reports", db_path="app.db"),
    )

    block = cache.begin_cache(["Page", "sidebar", user_id], 60)
    if block:
        block.write(render_sidebar())
        cache.end_cache(block)

    cache.delete(["Report"])   # everything stored under ["Report", ...]
"""

import io
import logging
import pickle
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO, Union

from .backends import StorageBackend, resolve_backend
from .config import CacheConfig, load_config
from .dependency import Dependency
from .errors import CaptureAlreadyActive, NoActiveCapture, StoreFailure, WriteFailure

logger = logging.getLogger(__name__)

_MISS = object()


class BlockCapture:
    """
    Buffer for one begin_cache/end_cache block.

    Only the facade creates these; holding the capture is what allows the
    matching end_cache call.
    """

    def __init__(self, cache: "Cache", key: Any, duration: int, dependency: Optional[Dependency]):
        self.cache = cache
        self.key = key
        self.duration = duration
        self.dependency = dependency
        self.buffer = io.StringIO()

    def write(self, text: str) -> int:
        return self.buffer.write(text)

    def getvalue(self) -> str:
        return self.buffer.getvalue()

    def end(self) -> str:
        return self.cache.end_cache(self)


class Cache:
    """
    Value-oriented cache over a storage backend.

    Entries are pickled (value, dependency) pairs. A dependency is evaluated
    on write and re-checked on every read; a changed dependency is a miss.

    Concurrency: get_or_set and add are check-then-write with no lock around
    the pair. Two processes can both miss and both write; the last one wins.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        backend: Optional[Union[str, StorageBackend]] = None,
        sink: Optional[TextIO] = None,
    ):
        self.config = config or CacheConfig()
        if isinstance(backend, StorageBackend):
            self.backend = backend
        else:
            self.backend = resolve_backend(backend or self.config.backend, self.config)
        self.sink = sink
        self._capture: Optional[BlockCapture] = None

        self.stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "invalidations": 0,
            "start_time": time.time(),
        }

        logger.info(f"Cache initialized ({type(self.backend).__name__} at {self.config.cache_path})")

    @classmethod
    def from_config(cls, config_path: Optional[Union[str, Path]] = None, **kwargs: Any) -> "Cache":
        return cls(load_config(config_path), **kwargs)

    def _emit(self, text: str) -> None:
        (self.sink or sys.stdout).write(text)

    def _read(self, key: Any) -> Any:
        """Cached value for ``key`` or _MISS. Hits and misses are not counted."""
        payload = self.backend.get_value(key)
        if not payload:
            return _MISS

        try:
            entry = pickle.loads(payload)
        except Exception as e:
            logger.warning(f"Unreadable cache entry for {key!r}: {e}")
            return _MISS

        if not isinstance(entry, tuple) or len(entry) != 2:
            logger.warning(f"Malformed cache entry for {key!r}")
            return _MISS

        value, dependency = entry
        if isinstance(dependency, Dependency):
            try:
                changed = dependency.is_changed(self)
            except Exception as e:
                logger.warning(f"Dependency check failed for {key!r}: {e}")
                changed = True
            if changed:
                logger.debug(f"Dependency changed for {key!r}")
                self.stats["invalidations"] += 1
                return _MISS

        return value

    def _lookup(self, key: Any) -> Any:
        value = self._read(key)
        self.stats["misses" if value is _MISS else "hits"] += 1
        return value

    def get(self, key: Any, default: Any = None) -> Any:
        """
        Retrieve a live, still-valid value.

        Returns ``default`` on a miss. A stored None and a miss look the
        same here; use exists() to tell them apart.
        """
        value = self._lookup(key)
        return default if value is _MISS else value

    def set(self, key: Any, value: Any, duration: int = 0, dependency: Optional[Dependency] = None) -> bool:
        """
        Store ``value`` under ``key``.

        Args:
            key: String or sequence key
            value: Anything picklable
            duration: Seconds to live; <= 0 means the configured default
            dependency: Evaluated now, re-checked on every read

        Raises:
            WriteFailure: the backend could not persist the entry
        """
        if dependency is not None:
            if not isinstance(dependency, Dependency):
                raise TypeError(f"dependency must be a Dependency, got {type(dependency).__name__}")
            dependency.evaluate(self)

        payload = pickle.dumps((value, dependency), protocol=pickle.HIGHEST_PROTOCOL)
        result = self.backend.set_value(key, payload, duration)
        self.stats["writes"] += 1
        return result

    def exists(self, key: Any) -> bool:
        return self._read(key) is not _MISS

    def add(self, key: Any, value: Any, duration: int = 0, dependency: Optional[Dependency] = None) -> bool:
        """Store only if no live, valid entry exists. Otherwise a successful no-op."""
        if not self.exists(key):
            return self.set(key, value, duration, dependency)
        return True

    def get_or_set(
        self,
        key: Any,
        producer: Callable[["Cache"], Any],
        duration: int = 0,
        dependency: Optional[Dependency] = None,
    ) -> Any:
        """
        Return the cached value, or produce, store and return a new one.

        Raises:
            StoreFailure: the produced value could not be stored; it is
                available as ``StoreFailure.value``
        """
        value = self._lookup(key)
        if value is not _MISS:
            return value

        value = producer(self)
        try:
            self.set(key, value, duration, dependency)
        except WriteFailure as e:
            raise StoreFailure(key, value) from e
        return value

    def delete(self, key: Any, expired_only: bool = False) -> bool:
        return self.backend.delete(key, expired_only)

    def flush(self, expired_only: bool = False) -> bool:
        return self.backend.flush(expired_only)

    def begin_cache(
        self, key: Any, duration: int = 0, dependency: Optional[Dependency] = None
    ) -> Optional[BlockCapture]:
        """
        Start caching a block of output.

        Returns None after writing the cached text to the sink when a live
        entry exists; the caller skips rendering. Otherwise returns a
        BlockCapture to render into.
        """
        if self._capture is not None:
            raise CaptureAlreadyActive(self._capture.key)

        cached = self._read(key)
        if cached is not _MISS:
            self._emit(str(cached))
            return None

        self._capture = BlockCapture(self, key, duration, dependency)
        return self._capture

    def end_cache(self, capture: Optional[BlockCapture] = None) -> str:
        """Store the captured text, write it to the sink and return it."""
        if capture is None or capture is not self._capture:
            raise NoActiveCapture()

        self._capture = None
        data = capture.getvalue()
        try:
            self.set(capture.key, data, capture.duration, capture.dependency)
        finally:
            self._emit(data)
        return data

    def get_stats(self) -> Dict[str, Any]:
        """
        Counters since construction.

        hits and misses count get() and get_or_set() lookups only.
        invalidations counts every read that found a changed dependency,
        exists(), add() and begin_cache() included.
        """
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
            "total_requests": total_requests,
            "writes": self.stats["writes"],
            "invalidations": self.stats["invalidations"],
            "uptime_seconds": int(time.time() - self.stats["start_time"]),
        }

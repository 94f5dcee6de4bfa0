"""
Storage Backends

Implements:
- StorageBackend: the contract the cache facade talks to
- FileBackend: the filesystem engine (keys → paths, mtime expiry, purge)
- MemoryBackend: in-process test double with an explicit expires_at
- register_backend / resolve_backend: name → factory registry
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import CacheConfig
from .errors import BackendResolutionFailure, DirectoryRemovalFailure
from .keys import KeyPathResolver
from .purge import PurgeEngine
from .store import EntryStore

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Byte-level cache storage addressed by structured keys."""

    @abstractmethod
    def get_value(self, key: Any) -> Optional[bytes]:
        """Payload of a live entry, or None."""

    @abstractmethod
    def set_value(self, key: Any, data: bytes, duration: int = 0) -> bool:
        """Store ``data`` for ``duration`` seconds (<= 0: default duration)."""

    @abstractmethod
    def delete(self, key: Any, expired_only: bool = False) -> bool:
        """Delete the entry for ``key``, or every entry in the scope ``key`` names."""

    @abstractmethod
    def flush(self, expired_only: bool = False) -> bool:
        """Delete every entry, or only the expired ones."""

    @abstractmethod
    def exists(self, key: Any) -> bool:
        """Whether a live entry is stored for ``key``. Content is not checked."""


class FileBackend(StorageBackend):
    """
    Filesystem cache backend.

    Layout:
        <cache_path>/<sanitized>/<segments>/<sha256(leaf)><suffix>
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        self.config = config or CacheConfig()
        self.resolver = KeyPathResolver(self.config.cache_path, self.config.file_suffix)
        self.store = EntryStore(
            default_duration=self.config.default_duration,
            file_mode=self.config.file_mode,
            dir_mode=self.config.dir_mode,
        )
        self.purger = PurgeEngine(
            self.config.cache_path,
            self.store,
            probability=self.config.purge_probability,
            expired_on_write=self.config.purge_expired_on_write,
        )

    def get_value(self, key: Any) -> Optional[bytes]:
        return self.store.read(self.resolver.to_file_path(key))

    def set_value(self, key: Any, data: bytes, duration: int = 0) -> bool:
        path = self.resolver.to_file_path(key)
        self.purger.maybe_purge()
        return self.store.write(path, data, duration)

    def exists(self, key: Any) -> bool:
        return self.store.exists(self.resolver.to_file_path(key))

    def delete(self, key: Any, expired_only: bool = False) -> bool:
        path = self.resolver.to_file_path(key)
        if path.is_file():
            if expired_only and self.store.exists(path):
                return True
            self.store.remove(path)
            logger.debug(f"Deleted cache entry {path}")
            return True

        scope = self.resolver.to_dir_path(key)
        if scope == self.resolver.root:
            logger.debug(f"Key {key!r} names no scope below {scope}; nothing deleted")
            return True

        removed = self.purger.purge_tree(scope, expired_only)
        if not expired_only and scope.is_dir():
            try:
                scope.rmdir()
            except OSError as e:
                raise DirectoryRemovalFailure(scope, str(e)) from e
        logger.info(f"Cleared {removed} cache entries under {scope} (expired_only={expired_only})")
        return True

    def flush(self, expired_only: bool = False) -> bool:
        self.purger.flush(expired_only)
        return True


class MemoryBackend(StorageBackend):
    """
    In-memory backend for tests.

    Entries are stored as (payload, expires_at) under the same resolved path
    strings the file backend would use, so scope deletion behaves the same.
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        self.config = config or CacheConfig()
        self.resolver = KeyPathResolver(self.config.cache_path, self.config.file_suffix)
        self.entries: Dict[str, Tuple[bytes, float]] = {}

    def _live(self, path: str) -> Optional[bytes]:
        entry = self.entries.get(path)
        if entry is None or entry[1] <= time.time():
            return None
        return entry[0]

    def get_value(self, key: Any) -> Optional[bytes]:
        return self._live(str(self.resolver.to_file_path(key)))

    def set_value(self, key: Any, data: bytes, duration: int = 0) -> bool:
        path = str(self.resolver.to_file_path(key))
        if duration <= 0:
            duration = self.config.default_duration
        self.entries[path] = (bytes(data), time.time() + duration)
        return True

    def exists(self, key: Any) -> bool:
        return self._live(str(self.resolver.to_file_path(key))) is not None

    def _drop(self, paths: List[str], expired_only: bool) -> int:
        now = time.time()
        removed = 0
        for path in paths:
            if expired_only and self.entries[path][1] > now:
                continue
            del self.entries[path]
            removed += 1
        return removed

    def delete(self, key: Any, expired_only: bool = False) -> bool:
        path = str(self.resolver.to_file_path(key))
        if path in self.entries:
            self._drop([path], expired_only)
            return True

        if self.resolver.to_dir_path(key) == self.resolver.root:
            return True

        prefix = self.resolver.to_scope_prefix(key)
        self._drop([p for p in self.entries if p.startswith(prefix)], expired_only)
        return True

    def flush(self, expired_only: bool = False) -> bool:
        self._drop(list(self.entries), expired_only)
        return True


BackendFactory = Callable[[CacheConfig], Any]

_REGISTRY: Dict[str, BackendFactory] = {}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Make ``factory(config)`` available under ``name``. Re-registering replaces."""
    _REGISTRY[name] = factory


def available_backends() -> List[str]:
    return sorted(_REGISTRY)


def resolve_backend(name: str, config: Optional[CacheConfig] = None) -> StorageBackend:
    """
    Instantiate the backend registered as ``name``.

    Raises:
        BackendResolutionFailure: unknown name, or the factory did not
            produce a StorageBackend
    """
    factory = _REGISTRY.get(name)
    if factory is None:
        raise BackendResolutionFailure(name, f"not registered (available: {', '.join(available_backends())})")

    backend = factory(config or CacheConfig())
    if not isinstance(backend, StorageBackend):
        raise BackendResolutionFailure(name, f"{type(backend).__name__} does not implement StorageBackend")

    logger.debug(f"Resolved cache backend '{name}' → {type(backend).__name__}")
    return backend


register_backend("file", FileBackend)
register_backend("memory", MemoryBackend)

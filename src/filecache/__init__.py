"""
File Cache
Filesystem-backed cache with mtime-encoded TTL, key scopes and dependency invalidation
"""

from .backends import FileBackend, MemoryBackend, StorageBackend, register_backend, resolve_backend
from .config import CacheConfig, load_config
from .dependency import Dependency, FileDependency, GitStateDependency, QueryDependency
from .errors import (
    BackendResolutionFailure, CacheError, CaptureAlreadyActive,
    DirectoryRemovalFailure, FileRemovalFailure, InvalidConfiguration,
    InvalidKeyKind, MissingParameter, NoActiveCapture, PurgeFailure,
    StoreFailure, WriteFailure,
)
from .facade import BlockCapture, Cache
from .keys import KeyPathResolver
from .purge import PurgeEngine
from .store import EntryStore

__all__ = [
    'Cache', 'BlockCapture', 'CacheConfig', 'load_config',
    'StorageBackend', 'FileBackend', 'MemoryBackend', 'register_backend', 'resolve_backend',
    'Dependency', 'QueryDependency', 'FileDependency', 'GitStateDependency',
    'KeyPathResolver', 'EntryStore', 'PurgeEngine',
    'CacheError', 'InvalidKeyKind', 'MissingParameter', 'WriteFailure',
    'PurgeFailure', 'FileRemovalFailure', 'DirectoryRemovalFailure',
    'NoActiveCapture', 'CaptureAlreadyActive', 'BackendResolutionFailure',
    'StoreFailure', 'InvalidConfiguration',
]

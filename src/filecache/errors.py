"""Exceptions raised by the file cache."""

from __future__ import annotations

from typing import Any, List


class CacheError(Exception):
    """Base class for every cache error."""


class InvalidKeyKind(CacheError):
    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"Incorrect cache key type: {type(key).__name__}")


class MissingParameter(CacheError):
    def __init__(self, parameter: str) -> None:
        self.parameter = parameter
        super().__init__(f'Parameter "{parameter}" is required')


class WriteFailure(CacheError):
    def __init__(self, path: Any, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Could not create cache file '{path}': {reason}")


class PurgeFailure(CacheError):
    """A purge pass could not remove one of its targets."""

    kind = "entry"

    def __init__(self, path: Any, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Unable to remove {self.kind} '{path}': {reason}")


class FileRemovalFailure(PurgeFailure):
    kind = "file"


class DirectoryRemovalFailure(PurgeFailure):
    kind = "directory"


class NoActiveCapture(CacheError):
    def __init__(self) -> None:
        super().__init__("At first you must call begin_cache")


class CaptureAlreadyActive(CacheError):
    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"A block capture is already active for key {key!r}")


class BackendResolutionFailure(CacheError):
    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        super().__init__(f"Cannot resolve cache backend '{name}': {reason}")


class StoreFailure(CacheError):
    """Raised by get_or_set when the produced value could not be persisted.

    The produced value is still usable and is carried on ``value``.
    """

    def __init__(self, key: Any, value: Any) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Failed to set cache value for key {key!r}")


class InvalidConfiguration(CacheError):
    def __init__(self, messages: List[str]) -> None:
        self.messages = messages
        super().__init__(f"cache config validation failed: {', '.join(messages)}")

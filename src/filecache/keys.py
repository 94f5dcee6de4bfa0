"""
Cache Key → Path Resolution

Implements:
- to_file_path(key) → path of the entry file for a value
- to_dir_path(key) → path of a directory scope for bulk deletion
- Same key = same path (deterministic, no state involved)
- Intermediate segments stay human readable so a key prefix can be deleted
"""

import dataclasses
import hashlib
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, List, Union

from .errors import InvalidKeyKind

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_\-]")


def sanitize_segment(value: Union[str, int]) -> str:
    """Strip every character outside [A-Za-z0-9_-]. Not an escape: "a.b" and "ab" collide."""
    return _UNSAFE_CHARS.sub("", str(value))


def _canonical(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, tuple):
        return [_canonical(item) for item in value]
    return value


def hash_component(value: Any) -> str:
    """
    Content hash of a key element.

    The hashed text is canonical JSON (sorted keys, compact separators) of a
    [type tag, value] pair, so {"a": 1, "b": 2} and {"b": 2, "a": 1} land on
    the same path while 1, "1" and [1] do not.
    """
    if isinstance(value, str):
        tagged = ["s", value]
    elif isinstance(value, int) and not isinstance(value, bool):
        tagged = ["i", value]
    else:
        tagged = ["j", _canonical(value)]
    try:
        data = json.dumps(tagged, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise InvalidKeyKind(value) from e
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _is_primitive(item: Any) -> bool:
    return isinstance(item, (str, int)) and not isinstance(item, bool)


def _is_composite(item: Any) -> bool:
    if isinstance(item, (list, tuple, dict)):
        return True
    return dataclasses.is_dataclass(item) and not isinstance(item, type)


class KeyPathResolver:
    """
    Map structured cache keys onto the cache directory tree.

    Design:
    - String key → <root>/<sha256(key)><suffix>
    - Sequence key → every element but the last is a directory segment
      (sanitized if str/int, hashed if composite); the last element is
      always hashed and becomes the file name
    """

    def __init__(self, root: Union[str, Path], suffix: str = ".cache"):
        self.root = Path(root)
        self.suffix = suffix

    def _segment(self, item: Any) -> str:
        if _is_primitive(item):
            return sanitize_segment(item)
        if _is_composite(item):
            return hash_component(item)
        raise InvalidKeyKind(item)

    def _leaf(self, item: Any) -> str:
        if not (_is_primitive(item) or _is_composite(item)):
            raise InvalidKeyKind(item)
        return hash_component(item) + self.suffix

    def _segments(self, key: Any) -> List[Any]:
        if isinstance(key, str):
            return [key]
        if isinstance(key, (list, tuple)) and key:
            return list(key)
        raise InvalidKeyKind(key)

    def to_file_path(self, key: Any) -> Path:
        """Path of the entry file holding the value for ``key``."""
        items = self._segments(key)
        path = self.root
        for item in items[:-1]:
            segment = self._segment(item)
            if segment:
                path = path / segment
        path = path / self._leaf(items[-1])

        logger.debug(f"Resolved key {key!r} → {path}")
        return path

    def to_dir_path(self, key: Any) -> Path:
        """
        Path of the directory scope named by ``key``.

        The last element is treated like any other directory segment, so
        ["Report", "summary"] addresses everything stored under
        ["Report", "summary", ...].
        """
        path = self.root
        for item in self._segments(key):
            segment = self._segment(item)
            if segment:
                path = path / segment
        return path

    def to_scope_prefix(self, key: Any) -> str:
        """String form of the directory scope, with a trailing separator."""
        return os.path.join(str(self.to_dir_path(key)), "")

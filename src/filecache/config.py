"""Configuration loader for the file cache."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from jsonschema import Draft7Validator

from .errors import InvalidConfiguration
from .purge import DEFAULT_PURGE_PROBABILITY
from .store import DEFAULT_DIR_MODE, DEFAULT_DURATION, DEFAULT_FILE_MODE

_MODE = {"type": ["integer", "string"], "pattern": "^0?o?[0-7]{3,4}$"}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "cache_path": {"type": "string", "minLength": 1},
        "default_duration": {"type": "integer", "minimum": 1},
        "purge_probability": {"type": "integer", "minimum": 0},
        "purge_expired_on_write": {"type": "boolean"},
        "file_suffix": {"type": "string"},
        "file_mode": _MODE,
        "dir_mode": _MODE,
        "backend": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

_validator = Draft7Validator(CONFIG_SCHEMA)


def validate_config(data: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        raise InvalidConfiguration([error.message for error in errors])


def parse_mode(value: Union[int, str]) -> int:
    """0o644, 420 or "0644" → 420."""
    if isinstance(value, int):
        return value
    return int(value.lower().replace("o", ""), 8)


@dataclass(frozen=True)
class CacheConfig:
    cache_path: Path = Path("cache")
    default_duration: int = DEFAULT_DURATION
    purge_probability: int = DEFAULT_PURGE_PROBABILITY
    purge_expired_on_write: bool = True
    file_suffix: str = ".cache"
    file_mode: int = DEFAULT_FILE_MODE
    dir_mode: int = DEFAULT_DIR_MODE
    backend: str = "file"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        return cls(
            cache_path=Path(data.get("cache_path", "cache")),
            default_duration=int(data.get("default_duration", DEFAULT_DURATION)),
            purge_probability=int(data.get("purge_probability", DEFAULT_PURGE_PROBABILITY)),
            purge_expired_on_write=bool(data.get("purge_expired_on_write", True)),
            file_suffix=data.get("file_suffix", ".cache"),
            file_mode=parse_mode(data.get("file_mode", DEFAULT_FILE_MODE)),
            dir_mode=parse_mode(data.get("dir_mode", DEFAULT_DIR_MODE)),
            backend=data.get("backend", "file"),
        )


ENV_MAP = {
    "cache_path": "FILECACHE_PATH",
    "default_duration": "FILECACHE_DEFAULT_DURATION",
    "purge_probability": "FILECACHE_PURGE_PROBABILITY",
    "purge_expired_on_write": "FILECACHE_PURGE_EXPIRED_ON_WRITE",
    "file_suffix": "FILECACHE_FILE_SUFFIX",
    "file_mode": "FILECACHE_FILE_MODE",
    "dir_mode": "FILECACHE_DIR_MODE",
    "backend": "FILECACHE_BACKEND",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key in {"default_duration", "purge_probability"}:
            try:
                value = int(value)
            except ValueError as e:
                raise InvalidConfiguration([f"{env_name}: not an integer: {value!r}"]) from e
        elif key == "purge_expired_on_write":
            value = value.strip().lower() in {"1", "true", "yes", "on"}
        merged[key] = value

    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> CacheConfig:
    """
    Build a CacheConfig from a YAML file plus FILECACHE_* environment overrides.

    Without a path only defaults and the environment are used.
    """
    data: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = load_yaml(path)

    data = merge_env_overrides(data)
    validate_config(data)
    return CacheConfig.from_dict(data)

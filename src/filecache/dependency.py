"""
Cache Dependencies — early invalidation independent of TTL

A dependency computes a fingerprint of some external state. The fingerprint
is captured when the entry is written (evaluate) and recomputed when it is
read (is_changed). Any inequality turns the read into a miss.

The dependency object, snapshot included, is pickled inside the cache entry.
Nothing is stored anywhere else.

Variants:
- QueryDependency: result set of an SQL query against an SQLite database
- FileDependency: mtime + size of a watched file
- GitStateDependency: branch + HEAD commit of a git repository
"""

from __future__ import annotations

import logging
import os
import sqlite3
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .errors import MissingParameter

logger = logging.getLogger(__name__)


class Dependency(ABC):
    """Base class for every dependency variant."""

    data: Any = None

    def evaluate(self, cache: Any) -> Any:
        """Capture the current fingerprint into ``data``."""
        self.data = self.generate(cache)
        return self.data

    def is_changed(self, cache: Any) -> bool:
        return self.generate(cache) != self.data

    @abstractmethod
    def generate(self, cache: Any) -> Any:
        """Compute the current fingerprint. ``cache`` is the facade doing the check."""


@dataclass
class QueryDependency(Dependency):
    """
    Invalidate when the result of ``sql`` changes.

    Usage:
        dep = QueryDependency(
            sql="SELECT MAX(updated_at) FROM reports",
            db_path="app.db",
        )
        cache.set(["Report", "summary", {"year": 2024}], report, 360, dep)
    """
    sql: str = ""
    db_path: str = ""
    params: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if not self.sql:
            raise MissingParameter("sql")
        if not self.db_path:
            raise MissingParameter("db_path")

    def generate(self, cache: Any) -> Any:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        try:
            rows = conn.execute(self.sql, self.params).fetchall()
        finally:
            conn.close()
        return [tuple(row) for row in rows]


@dataclass
class FileDependency(Dependency):
    """Invalidate when a file is modified, created or deleted."""
    file_path: str = ""

    def __post_init__(self) -> None:
        if not self.file_path:
            raise MissingParameter("file_path")

    def generate(self, cache: Any) -> Optional[Tuple[int, int]]:
        try:
            st = os.stat(self.file_path)
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)


@dataclass
class GitStateDependency(Dependency):
    """
    Invalidate when a repository moves to another branch or commit.

    Fingerprint: {branch, commit}. A git failure gives None fields, which is
    itself a stable fingerprint, so a repo that stays broken stays cached.
    """
    repo_path: str = ""
    timeout: int = 5

    def __post_init__(self) -> None:
        if not self.repo_path:
            raise MissingParameter("repo_path")

    def _git(self, *args: str) -> Optional[str]:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Git command timeout for {self.repo_path}")
            return None
        except OSError as e:
            logger.warning(f"Error fetching git state for {self.repo_path}: {e}")
            return None

        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def generate(self, cache: Any) -> Dict[str, Optional[str]]:
        state = {
            "branch": self._git("rev-parse", "--abbrev-ref", "HEAD"),
            "commit": self._git("rev-parse", "HEAD"),
        }
        logger.debug(f"Git state for {self.repo_path}: branch={state['branch']}, commit={state['commit']}")
        return state

"""
Purge Engine — recursive removal of cache entries

Two modes:
- expired_only=True: remove entry files whose expiry instant has passed,
  leave directories in place
- expired_only=False: remove everything below the path, directories included

Every write calls maybe_purge(). With probability 1/probability it wipes
the whole cache root, unrelated live entries included; otherwise it sweeps
expired entries.
"""

import logging
import os
import random
import time
from pathlib import Path
from typing import Union

from .errors import DirectoryRemovalFailure, FileRemovalFailure, PurgeFailure
from .store import EntryStore

logger = logging.getLogger(__name__)

DEFAULT_PURGE_PROBABILITY = 10000  # full purge on 1 write out of 10,000


class PurgeEngine:
    def __init__(
        self,
        root: Union[str, Path],
        store: EntryStore,
        probability: int = DEFAULT_PURGE_PROBABILITY,
        expired_on_write: bool = True,
    ):
        self.root = Path(root)
        self.store = store
        self.probability = probability
        self.expired_on_write = expired_on_write

    def purge_tree(self, path: Union[str, Path], expired_only: bool = True) -> int:
        """
        Recursively remove entries below ``path``.

        Returns:
            Number of entry files removed

        Raises:
            FileRemovalFailure: an entry file could not be unlinked
            DirectoryRemovalFailure: an emptied directory could not be removed,
                e.g. another process wrote into it after it was listed
        """
        try:
            with os.scandir(path) as it:
                children = list(it)
        except (FileNotFoundError, NotADirectoryError):
            return 0
        except OSError as e:
            logger.debug(f"Cannot list {path}: {e}")
            return 0

        removed = 0
        now = time.time()
        for child in children:
            if child.name.startswith("."):
                continue

            if child.is_dir(follow_symlinks=False):
                removed += self.purge_tree(child.path, expired_only)
                if not expired_only:
                    try:
                        os.rmdir(child.path)
                    except OSError as e:
                        raise DirectoryRemovalFailure(child.path, str(e)) from e
                continue

            if expired_only:
                expires = self.store.expires_at(child.path)
                if expires is None or expires > now:
                    continue

            try:
                os.unlink(child.path)
            except FileNotFoundError:
                # removed concurrently
                continue
            except OSError as e:
                raise FileRemovalFailure(child.path, str(e)) from e
            removed += 1
            logger.debug(f"Purged {child.path}")

        return removed

    def flush(self, expired_only: bool = False) -> int:
        removed = self.purge_tree(self.root, expired_only)
        logger.info(f"Flushed {removed} cache entries from {self.root} (expired_only={expired_only})")
        return removed

    def maybe_purge(self) -> int:
        """
        Per-write housekeeping.

        Purge failures are logged, not raised. Returns the number of entry
        files removed.
        """
        try:
            if self.probability > 0 and random.randrange(self.probability) == 0:
                logger.info(f"Probabilistic full purge of {self.root}")
                return self.purge_tree(self.root, expired_only=False)
            if self.expired_on_write:
                return self.purge_tree(self.root, expired_only=True)
        except PurgeFailure as e:
            logger.warning(f"Cache purge incomplete: {e}")
        return 0

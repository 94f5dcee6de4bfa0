"""
Entry Store — raw payloads on disk with mtime-encoded expiry

Implements:
- read(path) → bytes | None
- write(path, data, duration) → True (raises WriteFailure)
- exists(path) → bool
- expires_at(path) → float | None
- remove(path) → bool

The modification time of an entry file is NOT the last write time. It is
set to the absolute instant the entry expires (now + duration), so an entry
is live while mtime > now. Reads never touch the file.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

from .errors import FileRemovalFailure, WriteFailure

logger = logging.getLogger(__name__)

try:
    import fcntl
    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False
    logger.debug("fcntl not available — entry files are read and written without locks")

DEFAULT_DURATION = 86400
DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755

PathLike = Union[str, Path]


class EntryStore:
    """
    Byte-level storage of cache entries.

    Concurrency:
    - Reads hold a shared lock, writes an exclusive lock, each only for the
      duration of the single read/write
    - Directory creation tolerates a concurrent creator
    - Anything going wrong on the read path is a miss, never an error
    """

    def __init__(
        self,
        default_duration: int = DEFAULT_DURATION,
        file_mode: Optional[int] = DEFAULT_FILE_MODE,
        dir_mode: int = DEFAULT_DIR_MODE,
    ):
        self.default_duration = default_duration
        self.file_mode = file_mode
        self.dir_mode = dir_mode

    def expires_at(self, path: PathLike) -> Optional[float]:
        """Stored expiry instant of the entry, or None if there is no entry file."""
        try:
            return os.stat(path).st_mtime
        except OSError:
            return None

    def exists(self, path: PathLike) -> bool:
        expires = self.expires_at(path)
        return expires is not None and expires > time.time()

    def read(self, path: PathLike) -> Optional[bytes]:
        """Return the payload of a live entry, or None."""
        if not os.path.isfile(path) or not self.exists(path):
            return None

        try:
            with open(path, "rb") as handle:
                if HAS_FCNTL:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_SH)
                try:
                    return handle.read()
                finally:
                    if HAS_FCNTL:
                        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.debug(f"Cache read error for {path}: {e}")
            return None

    def write(self, path: PathLike, data: bytes, duration: int = 0) -> bool:
        """
        Write ``data`` to ``path`` and stamp its expiry.

        Args:
            path: Entry file path
            data: Serialized payload
            duration: Seconds to live; <= 0 means the default duration

        Returns:
            True on success

        Raises:
            WriteFailure: directory creation, content write or expiry stamp failed
        """
        path = Path(path)

        try:
            path.parent.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailure(path, str(e)) from e

        self._drop_foreign_file(path)

        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT, self.file_mode or DEFAULT_FILE_MODE)
            with os.fdopen(fd, "wb") as handle:
                if HAS_FCNTL:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    handle.truncate(0)
                    handle.write(data)
                    handle.flush()
                finally:
                    if HAS_FCNTL:
                        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise WriteFailure(path, str(e)) from e

        if self.file_mode is not None:
            try:
                os.chmod(path, self.file_mode)
            except OSError as e:
                logger.warning(f"Could not set mode {oct(self.file_mode)} on {path}: {e}")

        if duration <= 0:
            duration = self.default_duration
        expires = time.time() + duration

        try:
            os.utime(path, (expires, expires))
        except OSError as e:
            raise WriteFailure(path, str(e)) from e

        logger.debug(f"Wrote {len(data)} bytes to {path} (ttl={duration}s)")
        return True

    def remove(self, path: PathLike) -> bool:
        """
        Unlink a single entry file.

        Returns False if the file was already gone.
        """
        try:
            os.unlink(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FileRemovalFailure(path, str(e)) from e
        return True

    def _drop_foreign_file(self, path: Path) -> None:
        """Remove an entry left behind by another OS user (best effort)."""
        if not hasattr(os, "geteuid") or not path.is_file():
            return
        try:
            if path.stat().st_uid != os.geteuid():
                path.unlink()
                logger.debug(f"Removed {path} owned by another user")
        except OSError as e:
            logger.warning(f"Could not remove foreign cache file {path}: {e}")

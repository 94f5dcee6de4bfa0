#!/usr/bin/env python3
"""
File Cache Maintenance Commands

Usage:
    python -m filecache flush [--expired-only] [--config PATH]
    python -m filecache delete SEGMENT [SEGMENT ...] [--expired-only] [--config PATH]
    python -m filecache install-hook [SEGMENT ...] [--config PATH]

install-hook writes a git post-commit hook that deletes the given key scope
(or flushes the whole cache) after every commit, so cached work derived
from the repository does not outlive the code that produced it.
"""

import logging
import shlex
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import CacheError
from .facade import Cache

logger = logging.getLogger(__name__)

USAGE = __doc__.split("Usage:")[1].split("install-hook writes")[0]


def parse_args(argv: List[str]) -> Tuple[str, List[str], bool, Optional[str]]:
    """Split argv into (command, segments, expired_only, config_path)."""
    if not argv:
        raise ValueError("missing command")

    command, rest = argv[0], argv[1:]
    segments: List[str] = []
    expired_only = False
    config_path = None

    i = 0
    while i < len(rest):
        arg = rest[i]
        if arg == "--expired-only":
            expired_only = True
        elif arg == "--config":
            if i + 1 >= len(rest):
                raise ValueError("--config needs a path")
            config_path = rest[i + 1]
            i += 1
        elif arg.startswith("--"):
            raise ValueError(f"unknown option {arg}")
        else:
            segments.append(arg)
        i += 1

    if command not in {"flush", "delete", "install-hook"}:
        raise ValueError(f"unknown command {command}")
    if command == "delete" and not segments:
        raise ValueError("delete needs at least one key segment")

    return command, segments, expired_only, config_path


def segments_to_key(segments: List[str]):
    return segments[0] if len(segments) == 1 else list(segments)


def install_git_hook(segments: List[str], config_path: Optional[str] = None, repo: Path = Path(".")) -> Path:
    """Write .git/hooks/post-commit invalidating the given scope."""
    hook_path = repo / ".git" / "hooks" / "post-commit"
    hook_path.parent.mkdir(parents=True, exist_ok=True)

    args = ["delete", *segments] if segments else ["flush"]
    if config_path:
        args += ["--config", str(Path(config_path).absolute())]
    command = " ".join(shlex.quote(part) for part in [sys.executable, "-m", "filecache", *args])

    hook_content = f"""#!/bin/sh
# File cache invalidation hook
# Invalidates cached entries after git commits

{command}
"""

    hook_path.write_text(hook_content)
    hook_path.chmod(0o755)

    logger.info(f"Installed git hook: {hook_path}")
    return hook_path


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for manual invocation or the git hook."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        command, segments, expired_only, config_path = parse_args(sys.argv[1:] if argv is None else argv)
    except ValueError as e:
        print(f"error: {e}\nUsage:{USAGE}", file=sys.stderr)
        return 2

    if command == "install-hook":
        install_git_hook(segments, config_path)
        return 0

    try:
        cache = Cache.from_config(config_path)
        if command == "flush":
            cache.flush(expired_only)
        else:
            cache.delete(segments_to_key(segments), expired_only)
    except (CacheError, FileNotFoundError) as e:
        logger.error(f"Failed to {command} cache: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

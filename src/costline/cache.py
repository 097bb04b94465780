"""File-based cache with TTL and source-mtime invalidation.

Each key is stored as ``<key>.json`` in the cache directory::

    {"data": ..., "expires_at": "2026-01-01T00:00:00Z", "source_mtime": 1700000000000000000}

An entry is served only while it is unexpired and, when a source path is
given, while that file's mtime still matches ``source_mtime``. Writes go to a
temp file in the same directory and are renamed into place, so readers never
see a partial entry.
"""

import logging
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from .config import CACHE_DIR
from .models import CacheEntry, _utcnow

logger = logging.getLogger("costline")

DIR_PERMS = 0o700
FILE_PERMS = 0o600


def mtime_ns(path: str | os.PathLike | None) -> int:
    """Return the file's mtime in nanoseconds, or 0 if it has none."""
    if not path:
        return 0
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return 0


def atomic_write(dst: Path, data: bytes, mode: int = FILE_PERMS):
    """Write data to dst via a temp file and rename."""
    fd, tmp_name = tempfile.mkstemp(prefix="cache-", suffix=".tmp", dir=dst.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, dst)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class CacheStore:
    def __init__(self, directory: Path | None = None, clock: Callable[[], datetime] | None = None):
        self.directory = Path(directory or CACHE_DIR)
        self._clock = clock or _utcnow

    def path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str, source_path: str | os.PathLike = "") -> Any | None:
        """Return the cached value, or None if missing, expired or stale."""
        try:
            raw = self.path(key).read_bytes()
        except OSError:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.debug("Ignoring corrupt cache entry %s", key)
            return None

        if entry.expires_at.tzinfo is None or self._clock() >= entry.expires_at:
            return None

        if source_path:
            try:
                current = os.stat(source_path).st_mtime_ns
            except OSError:
                return None
            if entry.source_mtime and current != entry.source_mtime:
                return None

        return entry.data

    def set(self, key: str, data: Any, ttl: timedelta, source_mtime: int = 0):
        """Store a JSON-serializable value. Raises OSError if it can't be written."""
        self.directory.mkdir(mode=DIR_PERMS, parents=True, exist_ok=True)
        entry = CacheEntry(data=data, expires_at=self._clock() + ttl, source_mtime=source_mtime)
        atomic_write(self.path(key), entry.model_dump_json().encode())

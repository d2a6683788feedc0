from __future__ import annotations

import hashlib
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable


def md5_bytes(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def content_key(data: bytes, options: dict | None = None) -> str:
    """Key for ``data`` processed with ``options``; same input, same key."""
    h = hashlib.sha256(data)
    if options:
        h.update(json.dumps(options, sort_keys=True).encode("utf-8"))
    return h.hexdigest()


class ContentCache:
    """Content-hash keyed store of derived bytes (key -> bytes) on disk."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def _entry(self, key: str) -> Path:
        return self.directory / key[:2] / key

    def get(self, key: str) -> bytes | None:
        entry = self._entry(key)
        try:
            return entry.read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: str, data: bytes) -> None:
        entry = self._entry(key)
        entry.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so a concurrent reader never sees a partial entry
        fd, tmp = tempfile.mkstemp(dir=entry.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, entry)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_or_compute(self, key: str, compute: Callable[[], bytes]) -> bytes:
        cached = self.get(key)
        if cached is not None:
            with self._lock:
                self.hits += 1
            return cached
        data = compute()
        self.put(key, data)
        with self._lock:
            self.misses += 1
        return data

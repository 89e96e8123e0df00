from __future__ import annotations

import json
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON atomically using a temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w") as f:
            json.dump(data, f)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def evict_old_cache_files(
    cache_dir: Path, pattern: str, max_files: int, keep: Path | None = None
) -> int:
    """Remove oldest cache files if over max_files limit (LRU by mtime).

    `keep` is never evicted, even when it is the oldest file.
    """
    if max_files <= 0:
        return 0
    cache_files = [p for p in cache_dir.glob(pattern) if p != keep]
    budget = max_files - (1 if keep is not None and keep.exists() else 0)
    if len(cache_files) <= budget:
        return 0
    cache_files.sort(key=lambda p: p.stat().st_mtime)
    removed = 0
    for f in cache_files[: len(cache_files) - budget]:
        with suppress(OSError):
            f.unlink()
            removed += 1
    return removed

# src/reproduction_numbers/cache.py
"""Cache for estimator output tables.

A key is a short stable hash of (method tag, full configuration, input series
checksum). Entries are advisory: deleting the cache directory only costs a
recompute. At most one computation per key is in flight within a process.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

NULLABLE_FLOAT_COLUMNS = ("mean", "lower", "upper")
STRING_COLUMNS = ("method", "flag")


def _stable_json(payload: Dict) -> str:
    """Serialize config deterministically for hashing."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def hash_config(payload: Dict, length: int = 16) -> str:
    """Create a short stable hash from a config dict."""
    raw = _stable_json(payload).encode("utf-8")
    digest = hashlib.sha256(raw).hexdigest()
    # Truncate for readable folder names.
    return digest[:length]


def series_checksum(incidence, times=None) -> str:
    """sha256 over the float64 bytes of time and incidence."""
    inc = np.ascontiguousarray(np.asarray(incidence, dtype=np.float64))
    t = np.arange(inc.size, dtype=np.float64) if times is None else np.asarray(times, dtype=np.float64)
    h = hashlib.sha256()
    h.update(np.ascontiguousarray(t).tobytes())
    h.update(inc.tobytes())
    return h.hexdigest()


def make_key(method: str, config: Dict[str, Any], incidence, times=None) -> str:
    return hash_config({
        "method": method,
        "config": config,
        "series": series_checksum(incidence, times),
    })


def cache_paths(base_dir: Path | str, key: str) -> Tuple[Path, Path, Path]:
    """Return (dir, table_path, config_path) for a cache key."""
    base = Path(base_dir) / key
    return base, base / "table.csv", base / "config.json"


def _atomic_write(path: Path, write: Callable[[Any], None]) -> None:
    # Write to a sibling temp file and rename so readers never see half a file
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
            write(fh)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def _restore_dtypes(table: pd.DataFrame) -> pd.DataFrame:
    for col in NULLABLE_FLOAT_COLUMNS:
        if col in table.columns:
            table[col] = table[col].astype("Float64")
    for col in STRING_COLUMNS:
        if col in table.columns:
            table[col] = table[col].astype("string")
    return table


class ResultCache:
    """On-disk table cache keyed by make_key()."""

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def exists(self, key: str) -> bool:
        _, table_path, config_path = cache_paths(self.base_dir, key)
        return table_path.exists() and config_path.exists()

    def load(self, key: str) -> Optional[pd.DataFrame]:
        if not self.exists(key):
            return None
        _, table_path, _ = cache_paths(self.base_dir, key)
        return _restore_dtypes(pd.read_csv(table_path))

    def save(self, key: str, table: pd.DataFrame, config: Dict[str, Any]) -> None:
        cache_dir, table_path, config_path = cache_paths(self.base_dir, key)
        # Keep table and config together to preserve provenance.
        cache_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(table_path, lambda fh: table.to_csv(fh, index=False))
        _atomic_write(config_path, lambda fh: json.dump(config, fh, indent=2, sort_keys=True, default=str))

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], pd.DataFrame],
        config: Optional[Dict[str, Any]] = None,
    ) -> pd.DataFrame:
        """Return the cached table for key, computing and storing it on a miss."""
        with self._lock_for(key):
            table = self.load(key)
            if table is not None:
                logger.info("Cache hit %s", key)
                return table
            logger.info("Cache miss %s; computing", key)
            table = compute()
            self.save(key, table, config or {})
            return table

    def invalidate(self, key: str) -> None:
        cache_dir, table_path, config_path = cache_paths(self.base_dir, key)
        for path in (table_path, config_path):
            if path.exists():
                path.unlink()
        if cache_dir.exists() and not any(cache_dir.iterdir()):
            cache_dir.rmdir()

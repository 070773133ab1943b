"""
Suggestion cache with pluggable persistence backends.

Memoizes engine results keyed by a stable hash of (settings, stash, queue).
The whole cache is persisted as a single entry tagged with a schema version
and the hash of the modifier data it was computed from; an entry with a
different version or data hash is discarded wholesale on load.

Backends:
    FileCacheBackend    one JSON file per key; used by the CLI (--cache-dir)
    SQLiteCacheBackend  pickled blobs in SQLite; a library-only option for
                        long-running hosts that call ``suggest_cached`` from
                        several threads
"""
from __future__ import annotations

import hashlib
import json
import os
import pickle
import platform
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .advisor_logging import AdvisorLogger
from .catalog import MODIFIERS_DATA_PATH, ModifierId
from .combo_search import suggest_combo
from .config import UserSettings

APP_NAME = "QueueAdvisor"

# Name of the single persisted entry holding every suggestion
PERSISTED_KEY = "suggestions"

CachedCombo = Optional[List[ModifierId]]


def get_user_data_dir() -> Path:
    """Per-user application directory for persisted suggestions (created on demand)."""
    system = platform.system()
    if system == "Windows":
        root = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif system == "Darwin":
        root = Path.home() / "Library" / "Application Support"
    else:
        root = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    path = root / APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class CacheMetadata:
    version: str
    timestamp: float
    catalog_hash: str


@dataclass
class CacheEntry:
    metadata: CacheMetadata
    data: Any


class CacheBackend(ABC):
    """Key/value store for persisted suggestion blobs."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry, or None when absent or unreadable."""

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        """Store ``entry`` under ``key``, replacing any previous one."""

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Drop the entry stored under ``key``, if any."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry."""


class FileCacheBackend(CacheBackend):
    """One JSON document per key; writes go through a temp file and an atomic rename."""

    SUFFIX = ".cache.json"

    def __init__(self, cache_dir: Optional[Path] = None):
        self._dir = cache_dir or get_user_data_dir() / "cache"
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        name = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in key)
        return self._dir / (name + self.SUFFIX)

    def get(self, key: str) -> Optional[CacheEntry]:
        path = self._path(key)
        if not path.is_file():
            return None

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            metadata = CacheMetadata(
                version=str(raw["version"]),
                timestamp=float(raw.get("timestamp", 0.0)),
                catalog_hash=str(raw.get("catalog_hash", "")),
            )
        except (OSError, ValueError, KeyError, TypeError):
            self.invalidate(key)
            return None
        return CacheEntry(metadata, raw.get("data"))

    def set(self, key: str, entry: CacheEntry) -> None:
        path = self._path(key)
        document = dict(asdict(entry.metadata), data=entry.data)
        staging = path.with_suffix(".tmp")
        try:
            staging.write_text(json.dumps(document), encoding="utf-8")
            staging.replace(path)
        except OSError:
            staging.unlink(missing_ok=True)
            raise

    def invalidate(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        for path in self._dir.glob("*" + self.SUFFIX):
            path.unlink()


class SQLiteCacheBackend(CacheBackend):
    """
    Pickled blobs in a single SQLite table.

    Each thread gets its own connection; SQLite serialises the writes.
    """

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS suggestion_blobs (
            key TEXT PRIMARY KEY,
            version TEXT NOT NULL,
            timestamp REAL NOT NULL,
            catalog_hash TEXT NOT NULL,
            payload BLOB NOT NULL
        )
    """

    def __init__(self, db_path: Optional[Path] = None):
        self._db_path = db_path or get_user_data_dir() / "suggestions.db"
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connection()

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(str(self._db_path), timeout=10.0)
            with conn:
                conn.execute(self._SCHEMA)
            self._local.conn = conn
        return conn

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            row = self._connection().execute(
                "SELECT version, timestamp, catalog_hash, payload FROM suggestion_blobs WHERE key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            data = pickle.loads(row[3])
        except (sqlite3.Error, pickle.UnpicklingError, EOFError):
            self.invalidate(key)
            return None
        return CacheEntry(CacheMetadata(version=row[0], timestamp=row[1], catalog_hash=row[2]), data)

    def set(self, key: str, entry: CacheEntry) -> None:
        meta = entry.metadata
        payload = pickle.dumps(entry.data, protocol=pickle.HIGHEST_PROTOCOL)
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO suggestion_blobs VALUES (?, ?, ?, ?, ?)",
                (key, meta.version, meta.timestamp, meta.catalog_hash, payload),
            )

    def invalidate(self, key: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM suggestion_blobs WHERE key = ?", (key,))

    def clear(self) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM suggestion_blobs")

    def close(self) -> None:
        """Close the calling thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


def cache_key(
    settings: UserSettings,
    stash: Mapping[ModifierId, int],
    queue: Sequence[ModifierId],
) -> str:
    """Stable SHA-256 key over (settings, stash, queue)."""
    payload = {
        "settings": settings.to_dict(),
        "stash": sorted([int(k), int(v)] for k, v in stash.items()),
        "queue": [int(m) for m in queue],
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _is_valid_combo(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, list) and all(isinstance(m, int) and not isinstance(m, bool) for m in value)


class SuggestionCache:
    """
    Session-owned memo of suggestions.

    Usage:
        cache = SuggestionCache(FileCacheBackend())
        cache.load()
        combo = suggest_cached(cache, settings, stash, queue)
        cache.save_if_modified()
    """

    VERSION = "1.0"  # Increment when the key derivation or engine semantics change

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        catalog_path: Optional[Path] = None,
    ):
        """
        Parameters
        ----------
        backend : CacheBackend, optional
            Persistence backend. Without one the cache lives in memory only.
        catalog_path : Path, optional
            Modifier data file whose hash guards persisted entries.
        """
        self._backend = backend
        self._catalog_path = catalog_path or MODIFIERS_DATA_PATH
        self._suggestions: Dict[str, CachedCombo] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.modified = False
        self.last_suggested_combo: CachedCombo = None

    @staticmethod
    def compute_hash(file_path: Path) -> str:
        """Compute SHA-256 hash of a file."""
        if not file_path.exists():
            return ""

        hasher = hashlib.sha256()
        with file_path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(65536), b""):
                hasher.update(chunk)
        return hasher.hexdigest()

    def __len__(self) -> int:
        return len(self._suggestions)

    def __contains__(self, key: object) -> bool:
        return key in self._suggestions

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], CachedCombo],
        logger: Optional[AdvisorLogger] = None,
    ) -> CachedCombo:
        """Return the stored result for ``key``, computing it at most once."""
        with self._lock_for(key):
            if key in self._suggestions:
                if logger:
                    logger.log_cache(True, key)
                combo = self._suggestions[key]
                return list(combo) if combo is not None else None

            if logger:
                logger.log_cache(False, key)
            combo = compute()
            self._suggestions[key] = list(combo) if combo is not None else None
            self.modified = True
            return combo

    def clear(self) -> None:
        """Forget every stored suggestion (and the persisted blob, if any)."""
        with self._locks_guard:
            self._suggestions.clear()
            self.last_suggested_combo = None
            self.modified = False
        if self._backend is not None:
            self._backend.clear()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """
        Replace in-memory entries with the persisted blob.

        Returns False (leaving the cache empty) when nothing usable is
        persisted. A blob from another version, another catalog, or with any
        malformed entry is discarded as a whole.
        """
        self._suggestions = {}
        self.last_suggested_combo = None
        self.modified = False
        if self._backend is None:
            return False

        entry = self._backend.get(PERSISTED_KEY)
        if entry is None:
            return False

        if (
            entry.metadata.version != self.VERSION
            or entry.metadata.catalog_hash != self.compute_hash(self._catalog_path)
        ):
            self._backend.invalidate(PERSISTED_KEY)
            return False

        data = entry.data
        suggestions = data.get("suggestions") if isinstance(data, dict) else None
        last = data.get("lastSuggestedCombo") if isinstance(data, dict) else None
        if (
            not isinstance(suggestions, dict)
            or not all(isinstance(k, str) and _is_valid_combo(v) for k, v in suggestions.items())
            or not _is_valid_combo(last)
        ):
            self._backend.invalidate(PERSISTED_KEY)
            return False

        self._suggestions = dict(suggestions)
        self.last_suggested_combo = last
        return True

    def save(self) -> None:
        """Persist every entry; no-op without a backend."""
        if self._backend is None:
            return

        with self._locks_guard:
            data = {
                "suggestions": dict(self._suggestions),
                "lastSuggestedCombo": self.last_suggested_combo,
            }
        metadata = CacheMetadata(
            version=self.VERSION,
            timestamp=time.time(),
            catalog_hash=self.compute_hash(self._catalog_path),
        )
        self._backend.set(PERSISTED_KEY, CacheEntry(metadata=metadata, data=data))
        self.modified = False

    def save_if_modified(self) -> bool:
        """Persist only when a new suggestion was computed since the last load/save."""
        if not self.modified:
            return False
        self.save()
        return True


def suggest_cached(
    cache: SuggestionCache,
    settings: UserSettings,
    stash: Mapping[ModifierId, int],
    queue: Sequence[ModifierId],
    **kwargs: Any,
) -> CachedCombo:
    """
    Memoized ``suggest_combo``.

    Extra keyword arguments (catalog, time_budget_ms, logger, ...) are passed
    through on a miss; they are not part of the key.
    """
    key = cache_key(settings, stash, queue)
    combo = cache.get_or_compute(
        key,
        lambda: suggest_combo(settings, stash, queue, **kwargs),
        logger=kwargs.get("logger"),
    )
    cache.last_suggested_combo = combo
    return combo

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Protocol, Sequence

from pydantic import ValidationError

from .config import DEFAULT_CACHE_CONFIG, DEFAULT_ENGINE_CONFIG, CacheConfig, EngineConfig
from .errors import CacheError
from .models import CacheEntry, Property, RecommendationQuery
from .sanitizer import has_valid_coordinates
from .scoring import distance

logger = logging.getLogger(__name__)

_SECONDS_PER_MINUTE = 60.0


def _round_coordinate(value: float, precision: int) -> str:
    # ``+ 0.0`` folds -0.0 into 0.0 so both sides of the equator share a key.
    return f"{round(value, precision) + 0.0:.{precision}f}"


def location_cache_key(
    query: RecommendationQuery,
    precision: int = DEFAULT_ENGINE_CONFIG.coordinate_precision,
) -> str:
    """Key for a location query; nearby points (~110 m at 3 dp) share an entry."""
    lat = _round_coordinate(query.latitude, precision)
    lon = _round_coordinate(query.longitude, precision)
    return f"loc:{lat}:{lon}:{float(query.price)!r}:{query.k}"


def anchor_cache_key(property_id: str) -> str:
    return f"property:{property_id}"


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def size(self) -> int: ...


class MemoryBackend:
    """Process-local backend. Each value is swapped in as one string."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._data)


class SQLiteBackend:
    """Durable backend on a single SQLite table, one row per key."""

    def __init__(self, path: Path | str) -> None:
        path = Path(path)
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS recommendation_cache ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL, updated_at REAL NOT NULL)"
            )

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM recommendation_cache WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO recommendation_cache (key, value, updated_at) "
                "VALUES (?, ?, ?)",
                (key, value, time.time()),
            )

    def delete(self, key: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM recommendation_cache WHERE key = ?", (key,))

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM recommendation_cache")

    def size(self) -> int:
        with self._lock:
            (count,) = self._conn.execute("SELECT COUNT(*) FROM recommendation_cache").fetchone()
        return int(count)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class RecommendationCache:
    """
    Timestamped store of recommendation batches.

    Storage faults never escape: a failed read is a miss and a failed write
    is dropped, both logged.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        config: EngineConfig = DEFAULT_ENGINE_CONFIG,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend if backend is not None else MemoryBackend()
        self.config = config
        self._clock = clock
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _read(self, key: str) -> str | None:
        try:
            return self.backend.get(key)
        except Exception as exc:
            raise CacheError(f"cache read failed for {key!r}") from exc

    def _write(self, key: str, value: str) -> None:
        try:
            self.backend.set(key, value)
        except Exception as exc:
            raise CacheError(f"cache write failed for {key!r}") from exc

    def get(self, key: str) -> CacheEntry | None:
        try:
            raw = self._read(key)
            if raw is None:
                return None
            return CacheEntry.model_validate_json(raw)
        except (CacheError, ValidationError):
            logger.warning("Recommendation cache read failed, treating as miss", exc_info=True)
            return None

    def save(self, key: str, payload: Sequence[Property]) -> None:
        entry = CacheEntry(key=key, timestamp=self._clock(), payload=list(payload))
        try:
            self._write(key, entry.model_dump_json())
        except CacheError:
            logger.warning("Recommendation cache write failed, result not cached", exc_info=True)

    def entry_is_stale(self, entry: CacheEntry | None, ttl_minutes: float) -> bool:
        if entry is None:
            return True
        age_minutes = (self._clock() - entry.timestamp) / _SECONDS_PER_MINUTE
        return age_minutes > ttl_minutes

    def is_stale(self, key: str, ttl_minutes: float | None = None) -> bool:
        if ttl_minutes is None:
            ttl_minutes = self.config.location_ttl_minutes
        return self.entry_is_stale(self.get(key), ttl_minutes)

    def is_plausible(self, entry: CacheEntry, query: RecommendationQuery) -> bool:
        """
        Reject a batch that was computed for somewhere else.

        A batch is implausible when none of its properties lies within
        ``plausible_radius_km`` of the query and their average distance exceeds
        ``implausible_avg_km``. A batch with nothing locatable is implausible.
        """
        distances = [distance(p, query) for p in entry.payload if has_valid_coordinates(p)]
        if not distances:
            return False
        near = sum(1 for d in distances if d <= self.config.plausible_radius_km)
        average = sum(distances) / len(distances)
        return not (near < 1 and average > self.config.implausible_avg_km)

    def lookup(
        self, key: str, query: RecommendationQuery, ttl_minutes: float
    ) -> CacheEntry | None:
        """Return the entry for ``key`` only if it is fresh and plausible for ``query``."""
        entry = self.get(key)
        usable = (
            entry is not None
            and not self.entry_is_stale(entry, ttl_minutes)
            and self.is_plausible(entry, query)
        )
        with self._stats_lock:
            if usable:
                self._hits += 1
            else:
                self._misses += 1
        if entry is not None and not usable:
            logger.debug("Discarding cached batch for %s (stale or implausible)", key)
        return entry if usable else None

    def clear(self, key: str | None = None) -> None:
        try:
            if key is None:
                self.backend.clear()
            else:
                self.backend.delete(key)
        except Exception:
            logger.warning("Recommendation cache clear failed", exc_info=True)
        if key is None:
            with self._stats_lock:
                self._hits = 0
                self._misses = 0

    def stats(self) -> dict:
        try:
            size = self.backend.size()
        except Exception:
            logger.warning("Recommendation cache size unavailable", exc_info=True)
            size = 0
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        total = hits + misses
        return {
            "size": size,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / total * 100, 1) if total > 0 else 0.0,
        }


def build_cache(
    config: CacheConfig = DEFAULT_CACHE_CONFIG,
    engine_config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> RecommendationCache:
    if config.backend == "sqlite":
        backend: CacheBackend = SQLiteBackend(config.sqlite_path)
    else:
        backend = MemoryBackend()
    return RecommendationCache(backend, config=engine_config)

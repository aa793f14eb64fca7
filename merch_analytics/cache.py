"""
Result Cache Module

In-process cache for engine results:
- Namespaced keys
- Content fingerprints for datasets and settings
- Wholesale invalidation when a recompute replaces results
"""

import dataclasses
import hashlib
import json
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


def fingerprint(payload: str) -> str:
    """Stable sha256 hex digest of a string payload"""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def dataset_fingerprint(rows: Union[pl.DataFrame, Iterable[Mapping[str, Any]]]) -> str:
    """Fingerprint of raw input rows (order sensitive)"""
    if isinstance(rows, pl.DataFrame):
        rows = rows.to_dicts()
    payload = [
        dataclasses.asdict(row) if dataclasses.is_dataclass(row) else dict(row)
        for row in rows
    ]
    serialized = json.dumps(payload, default=str, sort_keys=True)
    return fingerprint(serialized)


class CacheManager:
    """
    Cache manager with namespace support.

    Values are kept as live objects; nothing is serialized.

    Example:
        cache = CacheManager("engine")
        result = cache.get_or_set(key, lambda: engine.recompute(rows))
    """

    def __init__(self, namespace: str, max_entries: int = 32):
        self.namespace = namespace
        self.max_entries = max_entries
        self._store: Dict[str, Any] = {}
        self.hits = 0
        self.misses = 0

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{key}"

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self._key(key) in self._store

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        return self._store.get(self._key(key))

    def set(self, key: str, value: Any) -> None:
        """Set value in cache, evicting the oldest entry when full"""
        if len(self._store) >= self.max_entries and self._key(key) not in self._store:
            oldest = next(iter(self._store))
            del self._store[oldest]
            logger.debug("Cache entry evicted", namespace=self.namespace, key=oldest)
        self._store[self._key(key)] = value

    def delete(self, key: str) -> bool:
        """Delete key from cache"""
        return self._store.pop(self._key(key), None) is not None

    def invalidate_all(self) -> int:
        """Invalidate all keys in namespace"""
        count = len(self._store)
        self._store.clear()
        if count:
            logger.info(f"Invalidated {count} cached results", namespace=self.namespace)
        return count

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        """
        Get from cache or compute and cache.

        Args:
            key: Cache key
            factory: Function to compute value if not cached

        Returns:
            Cached or computed value
        """
        full_key = self._key(key)
        if full_key in self._store:
            self.hits += 1
            logger.debug("Cache hit", namespace=self.namespace)
            return self._store[full_key]

        self.misses += 1
        value = factory()
        self.set(key, value)
        return value

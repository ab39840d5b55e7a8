"""In-process TTL cache for prompt lookups, with hit/miss statistics."""

import copy
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

STATES = ("draft", "production", "archived")

_MISSING = object()


class PromptCache:
    """Time-limited cache of prompt versions keyed by name and state or version.

    Keys are ``{namespace}:{name}:version:{n}`` for version lookups and
    ``{namespace}:{name}:state:{state}`` for state lookups. A TTL of 0 or
    less disables caching entirely.

    Attributes:
        ttl: Seconds an entry stays valid.
        namespace: Key prefix.
        monitoring_enabled: Whether hits and misses are counted.
    """

    def __init__(
        self,
        ttl: int = 300,
        namespace: str = "observ:prompt",
        monitoring_enabled: bool = True,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the cache.

        Args:
            ttl: Seconds an entry stays valid. 0 disables caching.
            namespace: Key prefix.
            monitoring_enabled: Whether hits and misses are counted.
            clock: Time source, in seconds.
        """
        self.ttl = ttl
        self.namespace = namespace
        self.monitoring_enabled = monitoring_enabled
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._hits: Dict[str, int] = {}
        self._misses: Dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl is not None and self.ttl > 0

    def key(self, name: str, state: Optional[str] = None, version: Optional[int] = None) -> str:
        """Build the cache key for a lookup. A version takes precedence over a state."""
        if version is not None:
            return f"{self.namespace}:{name}:version:{version}"
        return f"{self.namespace}:{name}:state:{state or 'production'}"

    def get(self, key: str) -> Any:
        """Get a copy of a live entry, or None if absent or expired."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, copy.deepcopy(value))

    def fetch(self, name: str, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` or load and cache it.

        ``None`` results are not cached. Hits and misses are counted per
        prompt name when monitoring is enabled.

        Args:
            name: Prompt name the statistics are recorded under.
            key: Cache key.
            loader: Called on a miss to produce the value.
        """
        if not self.enabled:
            return loader()

        value = self.get(key)
        if value is not None:
            self._track(self._hits, name)
            return value

        value = loader()
        if value is not None:
            self.set(key, value)
            self._track(self._misses, name)
        return value

    def invalidate(self, name: str, version: Optional[int] = None) -> int:
        """Drop cached entries of a prompt.

        Every state key of the name is dropped along with all of its
        version keys; ``version`` only narrows the log message.

        Returns:
            Number of entries removed.
        """
        prefix = f"{self.namespace}:{name}:"
        state_keys = {self.key(name, state=state) for state in STATES}

        with self._lock:
            doomed = [
                k for k in self._entries
                if k in state_keys or k.startswith(prefix + "version:")
            ]
            for k in doomed:
                del self._entries[k]

        logger.info(f"Cache invalidated for {name}{f' v{version}' if version else ''}")
        return len(doomed)

    def clear(self) -> None:
        """Drop every entry, keeping statistics."""
        with self._lock:
            self._entries.clear()

    def stats(self, name: str) -> Dict[str, Any]:
        """Get hit/miss statistics for a prompt.

        Returns:
            Dictionary with name, hits, misses, total and hit_rate (percent,
            rounded to 2 places).
        """
        with self._lock:
            hits = self._hits.get(name, 0)
            misses = self._misses.get(name, 0)
        total = hits + misses
        return {
            "name": name,
            "hits": hits,
            "misses": misses,
            "total": total,
            "hit_rate": round(hits / total * 100, 2) if total > 0 else 0,
        }

    def tracked_names(self) -> List[str]:
        with self._lock:
            return sorted(set(self._hits) | set(self._misses))

    def clear_stats(self) -> None:
        with self._lock:
            self._hits.clear()
            self._misses.clear()
        logger.info("Cache statistics cleared")

    def _track(self, counter: Dict[str, int], name: str) -> None:
        if not self.monitoring_enabled:
            return
        with self._lock:
            counter[name] = counter.get(name, 0) + 1

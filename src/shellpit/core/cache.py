"""LRU cache for per-script lint results.

Analysis is a pure function of the script text for a given linter, so
identical sources (vendored copies, repeated snippets) are analyzed once.
Keys are content digests rather than the text itself, to bound memory.
"""

import hashlib
import threading
from collections import OrderedDict
from typing import Any, Optional


def content_key(text: str) -> str:
    """Digest used as the cache key for a script's text."""
    return hashlib.sha256(text.encode("utf-8", errors="surrogatepass")).hexdigest()


class ResultCache:
    """Thread-safe LRU cache for lint results.

    Shared by all workers of one Linter. Results that timed out are never
    stored, since they are partial.

    Example:
        >>> cache = ResultCache(max_size=100)
        >>> cache.set("echo hi\\n", result)
        >>> cache.get("echo hi\\n") is result
        True
    """

    def __init__(self, max_size: int = 256):
        """Initialize ResultCache with configurable size.

        Args:
            max_size: Maximum number of entries to cache (must be > 0)

        Raises:
            ValueError: If max_size is not positive
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")

        self.max_size = max_size
        self._cache: OrderedDict[str, Any] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, text: str) -> Optional[Any]:
        """Return the cached result for this script text, or None.

        Marks the entry as recently used.
        """
        key = content_key(text)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]
            return None

    def set(self, text: str, result: Any) -> None:
        """Store a result, evicting the least recently used entry when full."""
        key = content_key(text)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                self._cache[key] = result
            else:
                # Evict before inserting so size never exceeds max_size
                if len(self._cache) >= self.max_size:
                    self._cache.popitem(last=False)
                self._cache[key] = result

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._cache)

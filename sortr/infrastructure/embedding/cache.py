"""
Bounded embedding cache keyed by content hash.

Wraps any IEmbeddingProvider. Least recently used entries are evicted once
max_entries is reached; max_entries=0 disables caching.
"""

import hashlib
import threading
from collections import OrderedDict
from typing import List, Optional

from sortr.core.interfaces.ports import IEmbeddingProvider


def content_key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingCache:
    def __init__(self, max_entries: int = 512):
        self.max_entries = max_entries
        self._items: "OrderedDict[str, List[float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[List[float]]:
        with self._lock:
            value = self._items.get(key)
            if value is None:
                self.misses += 1
                return None
            self._items.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: str, embedding: List[float]) -> None:
        if self.max_entries <= 0:
            return
        with self._lock:
            self._items[key] = embedding
            self._items.move_to_end(key)
            while len(self._items) > self.max_entries:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class CachedEmbeddingProvider(IEmbeddingProvider):
    def __init__(self, inner: IEmbeddingProvider, cache: EmbeddingCache):
        self.inner = inner
        self.cache = cache

    def embed(self, text: str) -> List[float]:
        key = content_key(text)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)
        embedding = self.inner.embed(text)
        self.cache.put(key, list(embedding))
        return embedding

    def get_dimension(self) -> int:
        return self.inner.get_dimension()

"""
Query embedding cache.

Repeated queries are common (suggested prompts, retries, follow-ups), and
embedding them again costs a network round-trip. Entries are keyed on the
normalized lowercase text and expire after a multi-day TTL.
"""
import hashlib
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from config import EMBEDDING_CACHE_TTL_SECONDS, EMBEDDING_CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)


def generate_embedding_cache_key(text: str) -> str:
    """Normalize text for cache matching."""
    return text.strip().lower()


class EmbeddingCache:
    """In-process TTL cache mapping normalized text to its embedding."""

    def __init__(
        self,
        ttl_seconds: int = EMBEDDING_CACHE_TTL_SECONDS,
        namespace: str = "embeddings",
        max_entries: int = EMBEDDING_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Time to live for each entry
            namespace: Prefix mixed into every key
            max_entries: Entry count above which the oldest entry is evicted
            clock: Time source, returns seconds
        """
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace
        self.max_entries = max_entries
        self._clock = clock
        # key -> (expires_at, embedding); dict order is insertion order
        self._entries: Dict[str, Tuple[float, List[float]]] = {}

    def _key(self, text: str) -> str:
        normalized = generate_embedding_cache_key(text)
        digest = hashlib.sha256(f"{self.namespace}:{normalized}".encode("utf-8")).hexdigest()
        return f"cache:{self.namespace}:{digest}"

    def get(self, text: str) -> Optional[List[float]]:
        """
        Look up the embedding for text.

        Returns:
            Cached embedding, or None if missing or expired
        """
        key = self._key(text)
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, embedding = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug("Embedding cache entry expired")
            return None

        return list(embedding)

    def set(self, text: str, embedding: List[float]) -> None:
        """Store the embedding for text, evicting the oldest entry when full."""
        key = self._key(text)
        self._entries.pop(key, None)

        while self._entries and len(self._entries) >= self.max_entries:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]

        self._entries[key] = (self._clock() + self.ttl_seconds, list(embedding))

    def delete(self, text: str) -> None:
        self._entries.pop(self._key(text), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

"""Bounded TTL cache of tokens the auth service has confirmed as valid.

One instance is owned by each VerificationBridge. A hit saves a network
round trip but also means a token revoked in the last TTL seconds may
still be accepted here; keep the TTL short.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    cached_until: float


class ValidationCache(Generic[V]):
    """Maps exact token strings to verified identities.

    Entries live for ttl_seconds, or less when put() is given a shorter
    lifetime. When full, the oldest entry is evicted to make room. An
    expired entry is never returned, even if the periodic sweep has not
    removed it yet.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()

    def get(self, token: str) -> V | None:
        entry = self._entries.get(token)
        if entry is None:
            return None
        if entry.cached_until <= self._clock():
            del self._entries[token]
            return None
        return entry.value

    def put(self, token: str, value: V, ttl_seconds: float | None = None) -> None:
        """Cache a value for ttl_seconds, never longer than the cache TTL.

        A non-positive ttl_seconds stores nothing and drops any existing entry.
        """
        ttl = self.ttl_seconds if ttl_seconds is None else min(ttl_seconds, self.ttl_seconds)
        self._entries.pop(token, None)
        if ttl <= 0:
            return
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[token] = CacheEntry(value, self._clock() + ttl)

    def discard(self, token: str) -> None:
        self._entries.pop(token, None)

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [token for token, entry in self._entries.items() if entry.cached_until <= now]
        for token in expired:
            del self._entries[token]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token: object) -> bool:
        return token in self._entries

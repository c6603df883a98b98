"""
Bounded in-memory stores for the keeper pipeline.

TTLCache
~~~~~~~~
Insertion-ordered map with a time-to-live and an optional hard size cap.
At the cap new keys are refused rather than evicting live entries.
``sweep()`` drops expired entries; it is called on a fixed interval by the
owner.

BehaviorHistory
~~~~~~~~~~~~~~~
Per-sender ring of block numbers (fixed length per key) with window counts.

KnownBotSet
~~~~~~~~~~~
Case-normalised address set, mutated only by operator action.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict, deque
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

from core.base_types import Address

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    def __init__(
        self,
        ttl_seconds: float,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[K, tuple[float, V]] = OrderedDict()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        return None if entry is None else entry[1]

    @property
    def full(self) -> bool:
        return self.max_entries is not None and len(self._entries) >= self.max_entries

    def put(self, key: K, value: V) -> bool:
        """Insert or refresh ``key``; False if it is new and the cache is full."""
        if key not in self._entries and self.full:
            return False
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        return True

    def sweep(self) -> int:
        """Evict entries older than the TTL; returns how many were dropped."""
        cutoff = self._clock() - self.ttl_seconds
        evicted = 0
        # Entries are kept in insertion order, so the oldest come first.
        while self._entries:
            key, (inserted_at, _) = next(iter(self._entries.items()))
            if inserted_at > cutoff:
                break
            del self._entries[key]
            evicted += 1
        return evicted


class BehaviorHistory:
    def __init__(self, max_entries_per_sender: int = 100):
        if max_entries_per_sender < 1:
            raise ValueError("max_entries_per_sender must be >= 1")
        self.max_entries_per_sender = max_entries_per_sender
        self._blocks: dict[str, deque[int]] = {}

    def record(self, sender: Address | str, block: int) -> None:
        key = _address_key(sender)
        ring = self._blocks.get(key)
        if ring is None:
            ring = deque(maxlen=self.max_entries_per_sender)
            self._blocks[key] = ring
        ring.append(block)

    def count_within(self, sender: Address | str, current_block: int, window: int) -> int:
        """Entries with ``current_block - block < window``."""
        ring = self._blocks.get(_address_key(sender))
        if not ring:
            return 0
        return sum(1 for block in ring if current_block - block < window)

    def entries(self, sender: Address | str) -> list[int]:
        return list(self._blocks.get(_address_key(sender), ()))

    def __len__(self) -> int:
        return len(self._blocks)


class KnownBotSet:
    def __init__(self, addresses: Optional[list[str]] = None):
        self._addresses: set[str] = set()
        for address in addresses or []:
            self.add(address)

    def add(self, address: Address | str) -> None:
        key = _address_key(address)
        if key not in self._addresses:
            self._addresses.add(key)
            logger.info("known bot added %s", key)

    def remove(self, address: Address | str) -> None:
        key = _address_key(address)
        if key in self._addresses:
            self._addresses.discard(key)
            logger.info("known bot removed %s", key)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, (Address, str)):
            return False
        return _address_key(address) in self._addresses

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._addresses))

    def __len__(self) -> int:
        return len(self._addresses)


def _address_key(address: Address | str) -> str:
    if isinstance(address, Address):
        return address.lower
    return address.lower()

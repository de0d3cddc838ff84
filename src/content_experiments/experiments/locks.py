"""asyncio lock pools used to serialize updates per key."""

import asyncio
import zlib
from typing import Dict, Hashable, List, Optional


class StripedLockPool:
    """Fixed pool of locks shared by hashing keys onto stripes.

    Memory stays bounded however many visitors are seen; two keys landing on
    the same stripe merely serialize with each other.
    """

    def __init__(self, stripes: int = 64):
        if stripes < 1:
            raise ValueError("A lock pool needs at least one stripe")
        # Created on first use so each lock binds to the loop that runs it.
        self._locks: List[Optional[asyncio.Lock]] = [None] * stripes

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, key: str) -> asyncio.Lock:
        # crc32 is stable across processes, unlike hash() on str.
        stripe = zlib.crc32(key.encode("utf-8")) % len(self._locks)
        lock = self._locks[stripe]
        if lock is None:
            lock = self._locks[stripe] = asyncio.Lock()
        return lock


class KeyedLockPool:
    """One lock per key, created on first use.

    Suited to small key spaces such as experiments or (experiment, variant)
    pairs.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def discard(self, key: Hashable) -> None:
        """Forget the lock of a key that is no longer updated."""
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

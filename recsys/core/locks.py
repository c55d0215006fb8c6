"""Sharded per-key asyncio locks for serializing record writes."""

import asyncio
import hashlib

DEFAULT_SHARDS = 64


class KeyedLocks:
    """A fixed pool of asyncio locks selected by a stable hash of the key.

    Writes to the same key always contend on the same lock; writes to
    different keys usually do not. Readers never take a lock.
    """

    def __init__(self, shards: int = DEFAULT_SHARDS) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks = [asyncio.Lock() for _ in range(shards)]

    def _index(self, key: str) -> int:
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "big") % len(self._locks)

    def for_key(self, key: str) -> asyncio.Lock:
        """Return the lock guarding ``key``."""
        return self._locks[self._index(key)]

    def __len__(self) -> int:
        return len(self._locks)

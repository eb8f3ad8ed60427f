"""
Vault Key Derivation — PBKDF2-SHA256 with an explicit memoizing cache.

A master key string is stretched into a 32-byte AES-256 key using
PBKDF2-HMAC-SHA256 with a per-leaf salt and an iteration count stored in
the token. Derivation is deliberately expensive, so callers pass a
:class:`KeyCache` to reuse keys for repeated ``(master_key, salt, iterations)``
tuples.

Security Note:
    Derived keys live only inside the cache for the lifetime of the
    cache object. They are never persisted and never logged.
"""
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger("relic.vault")

KEY_LENGTH = 32  # AES-256


def derive_key(master_key: str, salt: bytes, iterations: int) -> bytes:
    """Derive a 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Args:
        master_key: Master key string (UTF-8 encoded before stretching).
        salt: Random per-leaf salt.
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(master_key.encode("utf-8"))


class KeyCache:
    """Memoizes derived keys on ``(master_key, salt, iterations)``.

    Concurrent requests for the same uncached tuple share a single
    in-flight derivation. With ``max_size`` set, the least recently used
    entries are evicted once the cache grows past it; by default the cache
    is unbounded.
    """

    def __init__(self, max_size: Optional[int] = None):
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be a positive integer or None")
        self._max_size = max_size
        self._entries: "OrderedDict[tuple[str, bytes, int], Future]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return item in self._entries

    def clear(self) -> None:
        """Drop every cached key and reset the counters."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def _evict(self) -> None:
        # caller holds the lock
        if self._max_size is None:
            return
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def derive(self, master_key: str, salt: bytes, iterations: int) -> bytes:
        """Return the derived key, computing it at most once per tuple.

        Args:
            master_key: Master key string.
            salt: Per-leaf salt.
            iterations: PBKDF2 iteration count.

        Returns:
            32-byte derived key.
        """
        cache_key = (master_key, bytes(salt), iterations)
        with self._lock:
            future = self._entries.get(cache_key)
            if future is not None:
                self._entries.move_to_end(cache_key)
                self.hits += 1
                owner = False
            else:
                future = Future()
                self._entries[cache_key] = future
                self.misses += 1
                owner = True
                self._evict()

        if owner:
            try:
                key = derive_key(master_key, cache_key[1], iterations)
            except Exception as err:
                with self._lock:
                    if self._entries.get(cache_key) is future:
                        del self._entries[cache_key]
                future.set_exception(err)
                raise
            future.set_result(key)
        return future.result()

"""Small TTL store used for short-lived, single-use values such as OAuth states."""
from __future__ import annotations

import secrets
from typing import Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class SimpleTTLCache(Generic[T]):
    def __init__(self, ttl: int, maxsize: int = 256) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, key: str) -> Optional[T]:
        return self._cache.get(key)

    def set(self, key: str, value: T) -> None:
        self._cache[key] = value

    def pop(self, key: str) -> Optional[T]:
        return self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()


class NonceStore(Generic[T]):
    """Issues random nonces bound to a value; each nonce can be redeemed once."""

    def __init__(self, ttl: int, maxsize: int = 1024) -> None:
        self._cache: SimpleTTLCache[T] = SimpleTTLCache(ttl=ttl, maxsize=maxsize)

    def issue(self, value: T) -> str:
        nonce = secrets.token_urlsafe(24)
        self._cache.set(nonce, value)
        return nonce

    def redeem(self, nonce: str) -> Optional[T]:
        return self._cache.pop(nonce)

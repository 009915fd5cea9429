from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Protocol


class HostContext:
    """Emulated request host handed to indexers so they can build absolute URLs.

    Owned by a single drain run; ``scoped`` swaps the value in and restores
    the previous one (or clears it) when the block exits, error or not.
    """

    def __init__(self, host: str | None = None) -> None:
        self._host = host

    @property
    def host(self) -> str | None:
        return self._host

    def clear(self) -> None:
        self._host = None

    def absolute_url(self, path: str, scheme: str = "https") -> str:
        if self._host is None:
            raise RuntimeError("no host set for URL generation")
        return f"{scheme}://{self._host}/{path.lstrip('/')}"

    @contextmanager
    def scoped(self, host: str) -> Iterator["HostContext"]:
        previous = self._host
        self._host = host
        try:
            yield self
        finally:
            if previous is None:
                self.clear()
            else:
                self._host = previous


class Cache(Protocol):
    def clear(self) -> None: ...


class RuntimeCaches:
    """Caches that hold data computed under one host and must be dropped between items."""

    def __init__(self) -> None:
        self._caches: list[Cache] = []
        self.invalidations = 0

    def register(self, cache: Cache) -> Cache:
        if not any(existing is cache for existing in self._caches):
            self._caches.append(cache)
        return cache

    def invalidate(self) -> None:
        for cache in self._caches:
            cache.clear()
        self.invalidations += 1

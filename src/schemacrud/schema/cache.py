"""Schema cache primitives.

``SchemaCache`` is the process-wide in-memory tier. Concurrent misses for
the same key run the loader once; every waiter receives that result or that
exception, and failures are never cached.

``CacheStore`` is the optional external tier (shared across processes).
``MemoryCacheStore`` is an in-process implementation with TTL support.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from typing import Any, Protocol, TypeVar, runtime_checkable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class CacheStore(Protocol):
    """External key/value store for normalized schema documents."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    def invalidate(self, key: str) -> None: ...


class MemoryCacheStore:
    """Thread-safe in-process CacheStore with optional per-entry TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class _InFlight:
    """A load in progress that other threads can wait on."""

    __slots__ = ("done", "result", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Any = None
        self.error: BaseException | None = None


class SchemaCache:
    """In-memory map with single-flight population.

    Reads of existing entries take no lock. The lock only guards writes and
    in-flight bookkeeping. Values must be immutable or copied by the caller.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self._inflight: dict[Hashable, _InFlight] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any | None:
        return self._entries.get(key)

    def get_or_load(self, key: Hashable, loader: Callable[[], T]) -> T:
        """Return the entry for ``key``, running ``loader`` once on a miss."""
        value = self._entries.get(key)
        if value is not None:
            return value

        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                return value
            flight = self._inflight.get(key)
            leader = flight is None
            if flight is None:
                flight = _InFlight()
                self._inflight[key] = flight
            generation = self._generation

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result

        try:
            value = loader()
        except BaseException as exc:
            flight.error = exc
            raise
        else:
            flight.result = value
            with self._lock:
                # An invalidate() during the load means the value may be stale
                if generation == self._generation:
                    self._entries[key] = value
                else:
                    logger.debug("Dropping stale load for %s", key)
            return value
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            flight.done.set()

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def put_if_absent(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries.setdefault(key, value)

    def discard(self, predicate: Callable[[Hashable], bool]) -> int:
        """Remove every key matching ``predicate``; returns how many were removed."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for key in doomed:
                del self._entries[key]
            self._generation += 1
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

"""Per-pipeline stage result cache."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable

from tapwater.common.errors import ResolutionError
from tapwater.common.models import Stage


@dataclass(frozen=True)
class CacheEntry:
    stored_at: float
    value: Any = None
    error: ResolutionError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None


class StageCache:
    """
    Outcomes keyed by ``(stage, input key)``.

    Only successful entries are served by :meth:`lookup`; failures are kept
    so callers can observe them and are replaced by the next outcome for the
    same key. Writes are last-writer-wins without locking: concurrent
    producers of one key compute identical values.
    """

    def __init__(
        self,
        ttl_seconds: dict[Stage, float | None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = dict(ttl_seconds or {})
        self.clock = clock
        self._entries: dict[tuple[Stage, Hashable], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, stage: Stage, entry: CacheEntry) -> bool:
        ttl = self.ttl_seconds.get(stage)
        return ttl is not None and self.clock() - entry.stored_at > ttl

    def peek(self, stage: Stage, key: Hashable) -> CacheEntry | None:
        entry = self._entries.get((stage, key))
        if entry is None:
            return None
        if self._expired(stage, entry):
            self._entries.pop((stage, key), None)
            return None
        return entry

    def lookup(self, stage: Stage, key: Hashable) -> CacheEntry | None:
        entry = self.peek(stage, key)
        if entry is None or not entry.ok:
            return None
        return entry

    def put(self, stage: Stage, key: Hashable, value: Any) -> None:
        self._entries[(stage, key)] = CacheEntry(stored_at=self.clock(), value=value)

    def record_failure(self, stage: Stage, key: Hashable, error: ResolutionError) -> None:
        self._entries[(stage, key)] = CacheEntry(stored_at=self.clock(), error=error)

    def invalidate(self, stage: Stage | None = None, key: Hashable | None = None) -> None:
        if stage is None:
            self._entries.clear()
            return
        if key is not None:
            self._entries.pop((stage, key), None)
            return
        for entry_key in [k for k in self._entries if k[0] == stage]:
            del self._entries[entry_key]

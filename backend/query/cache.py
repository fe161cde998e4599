"""In-memory query cache keyed by composite query keys."""

from __future__ import annotations

import asyncio
import enum
import json
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

QueryKey = tuple[Any, ...]


class QueryStatus(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RETRYING = "retrying"
    SUCCESS = "success"
    ERROR = "error"


def hash_query_key(key: Sequence[Any]) -> str:
    """Serialize a query key so equal keys map to the same cache slot."""

    return json.dumps(list(key), sort_keys=True, separators=(",", ":"), default=str)


@dataclass(slots=True)
class QueryEntry:
    key: QueryKey
    key_hash: str
    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: BaseException | None = None
    data_updated_at: float | None = None
    failure_count: int = 0
    invalidated: bool = False
    subscribers: int = 0
    inactive_since: float | None = None
    fetch_task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def has_data(self) -> bool:
        return self.data_updated_at is not None

    @property
    def is_fetching(self) -> bool:
        return self.fetch_task is not None and not self.fetch_task.done()

    def is_stale(self, stale_time: float, now: float) -> bool:
        if not self.has_data or self.invalidated:
            return True
        return now - self.data_updated_at >= stale_time


class QueryCache:
    """Holds one entry per query key; eviction is driven only by inactivity time."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, QueryEntry] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Sequence[Any]) -> bool:
        return hash_query_key(key) in self._entries

    def __iter__(self) -> Iterator[QueryEntry]:
        return iter(list(self._entries.values()))

    def get(self, key: Sequence[Any]) -> QueryEntry | None:
        return self._entries.get(hash_query_key(key))

    def build(self, key: Sequence[Any]) -> QueryEntry:
        key_hash = hash_query_key(key)
        entry = self._entries.get(key_hash)
        if entry is None:
            entry = QueryEntry(key=tuple(key), key_hash=key_hash, inactive_since=self._clock())
            self._entries[key_hash] = entry
        return entry

    def remove(self, key: Sequence[Any]) -> QueryEntry | None:
        return self._entries.pop(hash_query_key(key), None)

    def find_all(self, prefix: Sequence[Any] = ()) -> list[QueryEntry]:
        size = len(prefix)
        wanted = hash_query_key(prefix)
        return [
            entry
            for entry in self._entries.values()
            if hash_query_key(entry.key[:size]) == wanted
        ]

    def collect_garbage(self, gc_time: float) -> int:
        """Evict unobserved, idle entries that have been inactive for ``gc_time``."""

        now = self._clock()
        expired = [
            key_hash
            for key_hash, entry in self._entries.items()
            if entry.subscribers == 0
            and not entry.is_fetching
            and entry.inactive_since is not None
            and now - entry.inactive_since >= gc_time
        ]
        for key_hash in expired:
            del self._entries[key_hash]
        if expired:
            logger.debug("Evicted {} inactive query entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

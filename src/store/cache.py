"""
Process-wide query cache for one session.

Entries are keyed by a ResourceKey: a tuple whose first element is the
logical resource name, e.g. ("products",), ("product", 3),
("products", "search", "abaya"). Invalidation works on the name, so
invalidating "products" also marks the search and category slices stale.

Only the query/mutation layer writes here; screens read through it.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from utils.logger import get_logger

_logger = get_logger(__name__)

ResourceKey = Tuple[Any, ...]
Listener = Callable[[str], None]

# passed to listeners when the whole cache is dropped
ALL = "*"


def _retrieve_error(task: asyncio.Task) -> None:
    # a shielded fetch can outlive every caller awaiting it
    if not task.cancelled() and task.exception() is not None:
        _logger.debug(f"fetch failed: {task.exception()}")


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float
    stale: bool = False


class QueryCache:
    def __init__(self, stale_after: Optional[float] = None):
        """
        :param stale_after: seconds after which an entry counts as stale
            even without an invalidation. None keeps entries until invalidated.
        """
        self.stale_after = stale_after
        self._entries: Dict[ResourceKey, CacheEntry] = {}
        self._inflight: Dict[ResourceKey, Tuple[Tuple[int, int], asyncio.Task]] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._listeners: List[Listener] = []

    # ---------------------------
    # Reading
    # ---------------------------

    def peek(self, key: ResourceKey) -> Optional[CacheEntry]:
        """Current entry for key, fresh or stale, without fetching."""
        return self._entries.get(key)

    def is_fresh(self, key: ResourceKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.stale:
            return False
        if self.stale_after is None:
            return True
        return time.monotonic() - entry.fetched_at < self.stale_after

    def is_fetching(self, key: ResourceKey) -> bool:
        return key in self._inflight

    def _token(self, key: ResourceKey) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key[0], 0)

    async def fetch(self, key: ResourceKey, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached data for key, calling fetcher only when there is no
        fresh entry. Concurrent calls for the same key share one fetch. A call
        made after an invalidation does not join a fetch started before it;
        it starts its own and only the newest result is stored.
        """
        if self.is_fresh(key):
            return self._entries[key].data

        token = self._token(key)
        inflight = self._inflight.get(key)
        if inflight is not None and inflight[0] == token:
            _logger.debug(f"joining in-flight fetch for {key}")
            return await asyncio.shield(inflight[1])

        task = asyncio.ensure_future(self._run(key, token, fetcher))
        task.add_done_callback(_retrieve_error)
        self._inflight[key] = (token, task)
        return await asyncio.shield(task)

    async def _run(self, key: ResourceKey, token, fetcher) -> Any:
        _logger.debug(f"fetching {key}")
        try:
            data = await fetcher()
        finally:
            current = self._inflight.get(key)
            if current is not None and current[1] is asyncio.current_task():
                del self._inflight[key]

        if self._token(key) != token:
            _logger.debug(f"dropping superseded result for {key}")
            return data

        self._entries[key] = CacheEntry(data=data, fetched_at=time.monotonic())
        self._notify(key[0])
        return data

    # ---------------------------
    # Invalidation
    # ---------------------------

    def invalidate(self, name: str) -> None:
        """Mark every entry of resource `name` stale and tell listeners."""
        self._generations[name] = self._generations.get(name, 0) + 1
        for key, entry in self._entries.items():
            if key[0] == name:
                entry.stale = True
        _logger.debug(f"invalidated {name!r}")
        self._notify(name)

    def clear(self) -> None:
        """Drop everything. Results of fetches still in flight are discarded."""
        self._entries.clear()
        self._inflight.clear()
        self._generations.clear()
        self._epoch += 1
        _logger.debug(f"cache cleared (epoch {self._epoch})")
        self._notify(ALL)

    # ---------------------------
    # Change notification
    # ---------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, name: str) -> None:
        for listener in list(self._listeners):
            listener(name)

"""
Live mirror of a filtered, ordered table read.

``RealtimeList`` subscribes to the change feed, loads a snapshot (from the
owned cache when fresh, else from the store) and then patches its local rows
with each committed insert, update and delete, including those that arrived
during the load.  The cache entry is patched in place after every change so a
later list with the same key starts from current data, while still expiring
with the read it came from.

Usage::

    async with RealtimeList(reader, feed, cache, "projects",
                            filter={"status": "active"},
                            order_by="created_at.desc") as projects:
        ...
        projects.data          # current rows
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from agrofund.core.cache import TTLCache
from agrofund.core.config import settings
from agrofund.core.resilience import retry_async
from agrofund.realtime.feed import (
    ChangeEvent,
    ChangeFeed,
    EventType,
    Subscription,
    row_excluded,
    row_matches,
)
from agrofund.repositories.table_reader import OrderBy, ReadQuery

logger = logging.getLogger(__name__)

Reader = Callable[[ReadQuery], Awaitable[List[Dict[str, Any]]]]
ChangeCallback = Callable[[ChangeEvent, "RealtimeList"], Any]

PRIMARY_KEY = "id"


class RealtimeList:
    """
    Mirror of ``table`` filtered by equality ``filter`` and sorted by ``order_by``.

    State is exposed through ``data``, ``loading``, ``error``,
    ``is_connected`` and ``last_fetch``.  Only the first filter entry is
    pushed to the feed subscription; every filter entry is re-checked before
    an inserted row is accepted.  Rows whose column equals an ``exclude``
    value are kept out of the list.
    """

    def __init__(
        self,
        reader: Reader,
        feed: ChangeFeed,
        cache: TTLCache,
        table: str,
        select: str = "*",
        filter: Optional[Dict[str, Any]] = None,
        order_by: Union[OrderBy, str, None] = None,
        exclude: Optional[Dict[str, Any]] = None,
        cache_ttl: Optional[float] = None,
        refetch_interval: Optional[float] = None,
        retry_delay: Optional[float] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.table = table
        self.filter = {k: v for k, v in (filter or {}).items() if v is not None}
        self.order_by = OrderBy.parse(order_by) if isinstance(order_by, str) else order_by
        self.exclude = {k: v for k, v in (exclude or {}).items() if v is not None}
        self.query = ReadQuery(
            table=table,
            select=select,
            filters=self.filter,
            order_by=self.order_by,
            exclude=self.exclude,
        )
        self.cache_ttl = cache_ttl
        self.refetch_interval = refetch_interval
        self.retry_delay = settings.REALTIME_RETRY_DELAY if retry_delay is None else retry_delay

        self.data: List[Dict[str, Any]] = []
        self.loading = True
        self.error: Optional[str] = None
        self.is_connected = False
        self.last_fetch: Optional[datetime] = None
        self.closed = False

        self._reader = reader
        self._feed = feed
        self._cache = cache
        self._callbacks: List[ChangeCallback] = [on_change] if on_change else []
        self._subscription: Optional[Subscription] = None
        self._listener: Optional[asyncio.Task] = None
        self._poller: Optional[asyncio.Task] = None
        self._fetch: Optional[asyncio.Task] = None
        self._generation = 0

    # ── Identity ──

    @property
    def cache_key(self) -> str:
        filters = json.dumps(self.filter, sort_keys=True, default=str)
        order = str(self.order_by) if self.order_by else ""
        key = f"{self.table}:{self.query.select}:{filters}:{order}"
        if self.exclude:
            key += ":not" + json.dumps(self.exclude, sort_keys=True, default=str)
        return key

    # ── Lifecycle ──

    async def start(self) -> "RealtimeList":
        """
        Subscribe, load the initial rows, then start applying changes.

        Changes committed while the first read is in flight wait in the
        subscription queue and are applied on top of the snapshot.
        """
        subscription_filter = next(iter(self.filter.items()), None)
        self._subscription = self._feed.subscribe(self.table, subscription_filter)
        await self._load(use_cache=True)
        if self.closed:
            return self
        self._listener = asyncio.create_task(self._listen(self._subscription))
        if self.refetch_interval:
            self._poller = asyncio.create_task(self._poll(self.refetch_interval))
        self.is_connected = True
        logger.info(
            "Realtime list on %s connected (filter=%s, order=%s)",
            self.table,
            self.filter,
            self.order_by,
            extra={"table": self.table},
        )
        return self

    async def refetch(self) -> None:
        """Drop the cached snapshot and read from the store."""
        self._cache.delete(self.cache_key)
        await self._load(use_cache=False)

    async def close(self) -> None:
        """Unsubscribe and stop background work; later events are ignored."""
        if self.closed:
            return
        self.closed = True
        self.is_connected = False
        if self._subscription is not None:
            self._subscription.close()
        tasks = [t for t in (self._listener, self._poller, self._fetch) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Realtime list on %s closed", self.table, extra={"table": self.table})

    async def __aenter__(self) -> "RealtimeList":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def add_listener(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    # ── Loading ──

    async def _load(self, use_cache: bool, silent: bool = False) -> None:
        if use_cache:
            cached = self._cache.lookup(self.cache_key)
            if cached is not None:
                self.data = list(cached.value)
                self.loading = False
                self.error = None
                self.last_fetch = cached.fetched_at
                logger.debug("Realtime list on %s served from cache", self.table)
                return

        # A newer load supersedes an in-flight one.
        if self._fetch is not None and not self._fetch.done():
            self._fetch.cancel()
        self._generation += 1
        generation = self._generation

        if not silent:
            self.loading = True
        fetch = asyncio.ensure_future(
            retry_async(
                self._reader,
                self.query,
                max_retries=1,
                base_delay=self.retry_delay,
                backoff=1.0,
                jitter=False,
            )
        )
        self._fetch = fetch
        try:
            await asyncio.wait({fetch})
        except asyncio.CancelledError:
            fetch.cancel()
            raise

        if generation != self._generation or fetch.cancelled() or self.closed:
            return
        try:
            rows = fetch.result()
        except Exception as exc:
            logger.error(
                "Realtime list fetch on %s failed: %s",
                self.table,
                exc,
                extra={"table": self.table},
            )
            self.error = str(exc) or type(exc).__name__
            if not silent:
                self.loading = False
            return

        self.data = list(rows)
        self.error = None
        self.loading = False
        self.last_fetch = datetime.now(timezone.utc)
        self._cache.set(self.cache_key, list(self.data), ttl=self.cache_ttl)

    async def _poll(self, interval: float) -> None:
        while not self.closed:
            await asyncio.sleep(interval)
            await self._load(use_cache=False, silent=True)

    # ── Change handling ──

    async def _listen(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                self.apply(event)
            except Exception:
                logger.exception("Realtime update on %s failed", self.table)

    def _accepts(self, row: Optional[Dict[str, Any]]) -> bool:
        return row_matches(row, self.filter) and not row_excluded(row, self.exclude)

    def _index_of(self, row_id: Any) -> Optional[int]:
        for index, row in enumerate(self.data):
            if str(row.get(PRIMARY_KEY)) == str(row_id):
                return index
        return None

    def apply(self, event: ChangeEvent) -> bool:
        """
        Patch local rows with one change; returns True if ``data`` changed.

        - INSERT: rows failing the filter are ignored; otherwise prepended
          for descending order, appended otherwise.
        - UPDATE: replaces the row with the same id, or drops it when it no
          longer matches the filter.
        - DELETE: removes the row with the same id.
        """
        if self.closed or event.table != self.table:
            return False

        changed = False
        if event.event_type == EventType.INSERT:
            row = event.new
            if self._accepts(row):
                index = self._index_of(row.get(PRIMARY_KEY))
                projected = self.query.project(row)
                if index is not None:
                    self.data[index] = projected
                elif self.order_by is not None and not self.order_by.ascending:
                    self.data.insert(0, projected)
                else:
                    self.data.append(projected)
                changed = True
        elif event.event_type == EventType.UPDATE:
            row = event.new or {}
            index = self._index_of(row.get(PRIMARY_KEY))
            if index is not None:
                if self._accepts(row):
                    self.data[index] = self.query.project(row)
                else:
                    del self.data[index]
                changed = True
        elif event.event_type == EventType.DELETE:
            index = self._index_of(event.record_id)
            if index is not None:
                del self.data[index]
                changed = True

        if changed:
            self._cache.replace(self.cache_key, list(self.data))
            for callback in self._callbacks:
                callback(event, self)
        return changed

    def snapshot(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "data": list(self.data),
            "loading": self.loading,
            "error": self.error,
            "is_connected": self.is_connected,
            "last_fetch": self.last_fetch.isoformat() if self.last_fetch else None,
        }

"""
In-process change feed.

Committed row changes are published here (see ``agrofund.db.changes``) and
fanned out to subscribers.  A subscription listens to one table, optionally
narrowed by a single ``column == value`` filter, and buffers events in a
bounded queue.  A slow consumer never blocks the writer: when its queue is
full the oldest buffered event is dropped and a warning logged.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from agrofund.core.config import settings

logger = logging.getLogger(__name__)

EqualityFilter = Tuple[str, Any]


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def normalize_value(value: Any) -> str:
    """Comparable string form of a row or filter value (``True`` → ``"true"``)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def row_matches(row: Optional[Dict[str, Any]], filters: Dict[str, Any]) -> bool:
    """True when ``row`` satisfies every equality in ``filters``."""
    if row is None:
        return False
    for column, expected in filters.items():
        if expected is None:
            continue
        if column not in row or normalize_value(row[column]) != normalize_value(expected):
            return False
    return True


def row_excluded(row: Optional[Dict[str, Any]], exclude: Dict[str, Any]) -> bool:
    """True when any ``exclude`` column of ``row`` holds the excluded value."""
    if row is None:
        return False
    return any(
        column in row and normalize_value(row[column]) == normalize_value(value)
        for column, value in exclude.items()
    )


@dataclass(frozen=True)
class ChangeEvent:
    """
    One committed row change.

    ``new`` is the row after the change (INSERT/UPDATE), ``old`` the row
    before it (UPDATE/DELETE).  Rows are JSON-ready dicts.
    """

    event_type: EventType
    table: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def record(self) -> Optional[Dict[str, Any]]:
        return self.new if self.new is not None else self.old

    @property
    def record_id(self) -> Any:
        record = self.record or {}
        return record.get("id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type.value,
            "table": self.table,
            "new": self.new,
            "old": self.old,
            "commit_timestamp": self.commit_timestamp.isoformat(),
        }


class Subscription:
    """
    A single listener on the feed.

    Iterate it with ``async for event in subscription``; iteration stops
    once :meth:`close` is called.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        filter: Optional[EqualityFilter] = None,
        maxsize: int = 256,
    ):
        self.table = table
        self.filter = filter
        self.dropped = 0
        self.closed = False
        self._feed = feed
        self._queue: "asyncio.Queue[Optional[ChangeEvent]]" = asyncio.Queue(maxsize=maxsize)

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.filter is None:
            return True
        column, value = self.filter
        flt = {column: value}
        # An update that moves a row out of the filtered set must still reach
        # the subscriber so it can drop the row.
        return row_matches(event.new, flt) or row_matches(event.old, flt)

    def offer(self, event: Optional[ChangeEvent]) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Realtime subscriber on '%s' is lagging; dropped oldest event (%d dropped)",
                self.table,
                self.dropped,
                extra={"table": self.table},
            )
        self._queue.put_nowait(event)

    async def get(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None or self.closed:
            raise StopAsyncIteration
        return event

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.get()

    def close(self) -> None:
        """Detach from the feed and wake any pending ``get``."""
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)
        self.offer(None)


class ChangeFeed:
    """Fan-out hub owned by the application (``app.state.change_feed``)."""

    def __init__(self, queue_size: Optional[int] = None):
        self._queue_size = queue_size or settings.REALTIME_QUEUE_SIZE
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._published = 0

    def subscribe(self, table: str, filter: Optional[EqualityFilter] = None) -> Subscription:
        subscription = Subscription(self, table, filter, maxsize=self._queue_size)
        self._subscriptions.setdefault(table, []).append(subscription)
        logger.debug("Realtime subscribe table=%s filter=%s", table, filter)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.table, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.table, None)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every matching subscriber; returns the delivery count."""
        self._published += 1
        delivered = 0
        for subscription in list(self._subscriptions.get(event.table, [])):
            if subscription.matches(event):
                subscription.offer(event)
                delivered += 1
        logger.debug(
            "Published %s on %s to %d subscriber(s)",
            event.event_type.value,
            event.table,
            delivered,
            extra={"table": event.table, "event_type": event.event_type.value},
        )
        return delivered

    def close_all(self) -> None:
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.close()

    def get_stats(self) -> dict:
        return {
            "published": self._published,
            "subscriptions": {table: len(subs) for table, subs in self._subscriptions.items()},
        }

"""
Change capture for the realtime feed.

``TrackedSession`` is the sync session class behind every ``AsyncSession``.
Its flush listener snapshots inserted, updated and deleted rows of the
realtime tables into ``session.info["pending_changes"]``; the commit listener
publishes them to the ``ChangeFeed`` stored in ``session.info["change_feed"]``
and a rollback discards them.  Subscribers therefore only ever see committed
changes.

Bulk ``UPDATE`` statements bypass the unit of work, so code issuing them
calls :func:`record_change` explicitly.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from agrofund.db.base import REALTIME_TABLES
from agrofund.realtime.feed import ChangeEvent, EventType

logger = logging.getLogger(__name__)

PENDING_KEY = "pending_changes"
FEED_KEY = "change_feed"


class TrackedSession(Session):
    """Session whose committed row changes are published to the change feed."""


def row_snapshot(obj: Any) -> Dict[str, Any]:
    """JSON-ready dict of a table model's columns."""
    return obj.model_dump(mode="json")


def _previous_row(obj: Any, current: Dict[str, Any]) -> Dict[str, Any]:
    state = inspect(obj)
    previous = dict(current)
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            previous[attr.key] = to_jsonable_python(history.deleted[0])
    return previous


def _table_of(obj: Any) -> Optional[str]:
    name = getattr(obj, "__tablename__", None)
    return name if name in REALTIME_TABLES else None


def _pending(session: Any) -> List[ChangeEvent]:
    return session.info.setdefault(PENDING_KEY, [])


def record_change(
    session: Any,
    event_type: EventType,
    table: str,
    new: Optional[Dict[str, Any]] = None,
    old: Optional[Dict[str, Any]] = None,
) -> None:
    """Queue a change for publication when ``session`` commits."""
    _pending(session).append(ChangeEvent(event_type=event_type, table=table, new=new, old=old))


@event.listens_for(TrackedSession, "after_flush")
def _collect_changes(session: Session, flush_context: Any) -> None:
    pending = _pending(session)
    for obj in session.new:
        table = _table_of(obj)
        if table:
            pending.append(ChangeEvent(EventType.INSERT, table, new=row_snapshot(obj)))
    for obj in session.dirty:
        table = _table_of(obj)
        if table and session.is_modified(obj, include_collections=False):
            current = row_snapshot(obj)
            pending.append(
                ChangeEvent(EventType.UPDATE, table, new=current, old=_previous_row(obj, current))
            )
    for obj in session.deleted:
        table = _table_of(obj)
        if table:
            pending.append(ChangeEvent(EventType.DELETE, table, old=row_snapshot(obj)))


@event.listens_for(TrackedSession, "after_commit")
def _publish_changes(session: Session) -> None:
    pending = session.info.pop(PENDING_KEY, [])
    feed = session.info.get(FEED_KEY)
    if feed is None or not pending:
        return
    for change in pending:
        feed.publish(change)


@event.listens_for(TrackedSession, "after_rollback")
def _discard_changes(session: Session) -> None:
    discarded = session.info.pop(PENDING_KEY, [])
    if discarded:
        logger.debug("Discarded %d uncommitted change(s) on rollback", len(discarded))

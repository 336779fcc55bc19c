"""
Realtime WebSocket endpoint.

- WS  /realtime/{table}?token=…&filter=col:value&order=col.desc&select=a,b

The socket first receives a ``snapshot`` message with the current rows, then
one ``change`` message for every committed insert, update or delete that
affects the list.  Sending ``{"action": "refetch"}`` forces a fresh read and
a new snapshot.

Access: ``projects`` is open to any signed-in user, but draft projects only
reach their own farmer (filtering on ``farmer_id``) and admins.
``investments``, ``notifications`` and ``kyc_documents`` are pinned to the
caller's own rows unless the caller is an admin.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from agrofund.core.exceptions import PermissionDenied
from agrofund.db.base import REALTIME_TABLES
from agrofund.db.session import open_session
from agrofund.models.auth_session import UserSession
from agrofund.models.project import ProjectStatus
from agrofund.models.user import User, UserRole
from agrofund.realtime.feed import ChangeEvent
from agrofund.realtime.sync import RealtimeList
from agrofund.repositories.session_repo import SessionRepository
from agrofund.repositories.table_reader import TableReader
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.realtime import ChangeMessage, ErrorMessage, SnapshotMessage
from agrofund.schemas.user import PrincipalBase
from agrofund.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()

# Column that ties a row to its owner, per private table.
OWNER_COLUMNS = {
    "investments": "investor_id",
    "notifications": "user_id",
    "kyc_documents": "user_id",
}

# Close codes in the 4000 range mirror the HTTP status they stand for.
CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_NOT_FOUND = 4404
CLOSE_BAD_REQUEST = 4400


def parse_filters(items: List[str]) -> Dict[str, str]:
    """``["status:active", "category:crops"]`` → ``{"status": "active", ...}``."""
    filters: Dict[str, str] = {}
    for item in items:
        column, sep, value = item.partition(":")
        if not sep or not column:
            raise ValueError(f"Malformed filter '{item}', expected column:value")
        filters[column] = value
    return filters


def scoped_filters(
    principal: PrincipalBase, table: str, filters: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Filters the caller may subscribe with.

    For private tables a non-admin's owner column is forced to their own id
    and placed first, so it is the filter the feed subscription uses.
    """
    owner_column = OWNER_COLUMNS.get(table)
    if owner_column is None or principal.role == UserRole.ADMIN:
        return dict(filters)
    requested = filters.get(owner_column)
    if requested is not None and str(requested) != str(principal.id):
        raise PermissionDenied("You can only subscribe to your own records")
    scoped: Dict[str, Any] = {owner_column: str(principal.id)}
    scoped.update((k, v) for k, v in filters.items() if k != owner_column)
    return scoped


def hidden_values(
    principal: PrincipalBase, table: str, filters: Dict[str, Any]
) -> Dict[str, Any]:
    """Column values kept out of the caller's list; drafts stay with their farmer."""
    if table != "projects" or principal.role == UserRole.ADMIN:
        return {}
    if str(filters.get("farmer_id")) == str(principal.id):
        return {}
    return {"status": ProjectStatus.DRAFT.value}


async def _authenticate(token: Optional[str]) -> Optional[PrincipalBase]:
    async with open_session() as db:
        auth = AuthService(UserRepository(User, db), SessionRepository(UserSession, db))
        return (await auth.get_current_user(token)).data


async def _pump(outbox: "asyncio.Queue[Dict[str, Any]]", websocket: WebSocket) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


def _snapshot(live: RealtimeList) -> Dict[str, Any]:
    return SnapshotMessage(
        table=live.table,
        data=live.data,
        last_fetch=live.last_fetch,
        error=live.error,
    ).model_dump(mode="json")


@router.websocket("/realtime/{table}")
async def realtime_list(
    websocket: WebSocket,
    table: str,
    token: Optional[str] = Query(None),
    filter: List[str] = Query(default=[]),
    order: Optional[str] = Query(None),
    select: str = Query("*"),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=CLOSE_UNAUTHENTICATED)
        return
    if table not in REALTIME_TABLES:
        await websocket.close(code=CLOSE_NOT_FOUND)
        return
    try:
        filters = scoped_filters(principal, table, parse_filters(filter))
    except PermissionDenied:
        await websocket.close(code=CLOSE_FORBIDDEN)
        return
    except ValueError:
        await websocket.close(code=CLOSE_BAD_REQUEST)
        return

    await websocket.accept()
    state = websocket.app.state
    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def on_change(event: ChangeEvent, live: RealtimeList) -> None:
        outbox.put_nowait(
            ChangeMessage(table=table, event=event.to_dict(), data=live.data).model_dump(mode="json")
        )

    live = RealtimeList(
        TableReader(open_session),
        state.change_feed,
        state.cache,
        table,
        select=select,
        filter=filters,
        order_by=order,
        exclude=hidden_values(principal, table, filters),
        on_change=on_change,
    )
    sender: Optional[asyncio.Task] = None
    try:
        await live.start()
        if live.error:
            await websocket.send_json(ErrorMessage(message=live.error).model_dump())
        await websocket.send_json(_snapshot(live))
        sender = asyncio.create_task(_pump(outbox, websocket))
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("action") == "refetch":
                await live.refetch()
                outbox.put_nowait(_snapshot(live))
    except WebSocketDisconnect:
        logger.debug("Realtime client on %s disconnected", table)
    finally:
        if sender is not None:
            sender.cancel()
        await live.close()

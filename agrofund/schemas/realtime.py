"""Messages sent over the realtime WebSocket."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel


class SnapshotMessage(BaseModel):
    """First message on a subscription: the current list."""

    type: Literal["snapshot"] = "snapshot"
    table: str
    data: List[Dict[str, Any]]
    last_fetch: Optional[datetime] = None
    error: Optional[str] = None


class ChangeMessage(BaseModel):
    """One applied change plus the list as it now stands."""

    type: Literal["change"] = "change"
    table: str
    event: Dict[str, Any]
    data: List[Dict[str, Any]]


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str

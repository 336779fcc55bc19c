"""
Generic table read used by realtime lists.

A :class:`ReadQuery` names a table, a projection, equality filters, excluded
values and an ordering; :class:`TableReader` runs it in its own short-lived
session and returns JSON-ready row dicts shaped exactly like change-feed
payloads.
"""

import enum
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import Enum as SAEnum
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from agrofund.core.resilience import db_circuit_breaker
from agrofund.db.base import REALTIME_TABLES
from agrofund.db.changes import row_snapshot

logger = logging.getLogger(__name__)


class UnknownTableError(ValueError):
    pass


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = False

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["OrderBy"]:
        """``"created_at.desc"`` → ``OrderBy("created_at", ascending=False)``."""
        if not text:
            return None
        column, _, direction = text.partition(".")
        return cls(column=column, ascending=direction.lower() != "desc")

    def __str__(self) -> str:
        return f"{self.column}.{'asc' if self.ascending else 'desc'}"


@dataclass(frozen=True)
class ReadQuery:
    table: str
    select: str = "*"
    filters: Dict[str, Any] = field(default_factory=dict)
    order_by: Optional[OrderBy] = None
    # column -> value the row must not hold
    exclude: Dict[str, Any] = field(default_factory=dict)

    @property
    def columns(self) -> Optional[Tuple[str, ...]]:
        """Projected column names, or ``None`` for all columns."""
        if self.select.strip() in ("", "*"):
            return None
        return tuple(c.strip() for c in self.select.split(",") if c.strip())

    def project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        columns = self.columns
        if columns is None:
            return row
        return {c: row[c] for c in columns if c in row}


def model_for(table: str) -> Any:
    try:
        return REALTIME_TABLES[table]
    except KeyError:
        raise UnknownTableError(f"Unknown table '{table}'")


def coerce_filter_value(column: Any, value: Any) -> Any:
    """Turn a query-string value into the column's Python type."""
    if not isinstance(value, str):
        return value
    if isinstance(column.type, SAEnum) and column.type.enum_class is not None:
        return column.type.enum_class(value)
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value
    if python_type is bool:
        return value.lower() in ("true", "1", "yes")
    if python_type is uuid.UUID:
        return uuid.UUID(value)
    if python_type in (int, float, Decimal) or issubclass(python_type, enum.Enum):
        return python_type(value)
    return value


class TableReader:
    """
    Callable reader: ``await reader(query) -> list of row dicts``.

    ``session_factory`` is a zero-argument callable returning an
    ``AsyncSession`` (``agrofund.db.session.open_session`` in the app).
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def __call__(self, query: ReadQuery) -> List[Dict[str, Any]]:
        return await db_circuit_breaker.call(self._read, query)

    async def _read(self, query: ReadQuery) -> List[Dict[str, Any]]:
        model = model_for(query.table)
        table = model.__table__
        stmt = select(model)
        for name, value in query.filters.items():
            if value is None:
                continue
            if name not in table.columns:
                raise ValueError(f"Unknown column '{name}' on '{query.table}'")
            column = table.columns[name]
            stmt = stmt.where(column == coerce_filter_value(column, value))
        for name, value in query.exclude.items():
            if name not in table.columns:
                raise ValueError(f"Unknown column '{name}' on '{query.table}'")
            column = table.columns[name]
            stmt = stmt.where(column != coerce_filter_value(column, value))
        if query.order_by is not None:
            if query.order_by.column not in table.columns:
                raise ValueError(f"Unknown column '{query.order_by.column}' on '{query.table}'")
            column = table.columns[query.order_by.column]
            stmt = stmt.order_by(column.asc() if query.order_by.ascending else column.desc())

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = [query.project(row_snapshot(obj)) for obj in result.scalars().all()]
        logger.debug("Read %d row(s) from %s", len(rows), query.table, extra={"table": query.table})
        return rows

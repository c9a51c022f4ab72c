"""
Record Store
Transactional record store used by every service: insert, update, delete,
select_where and realtime change subscriptions.

Two adapters share the RecordStore interface:
- SupabaseRecordStore: production, backed by the Supabase client
- InMemoryRecordStore: local development and tests
"""
import asyncio
import copy
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytz

logger = logging.getLogger(__name__)


# Collections the engine reads and writes
TABLE_LEADS = "leads"
TABLE_FOLLOW_UP_TASKS = "follow_up_tasks"
TABLE_APPOINTMENTS = "appointments"
TABLE_NOTIFICATIONS = "notifications"
TABLE_STATUS_CHANGES = "status_changes"

REALTIME_TABLES = (TABLE_LEADS, TABLE_APPOINTMENTS, TABLE_FOLLOW_UP_TASKS)

FILTER_OPERATORS = {"eq", "neq", "gt", "gte", "lt", "lte", "is_null", "in"}

Filter = Tuple[str, str, Any]


class RecordStoreError(Exception):
    """Any failure talking to the record store"""
    def __init__(self, message: str, table: Optional[str] = None):
        self.message = message
        self.table = table
        super().__init__(self.message)


@dataclass
class ChangeEvent:
    """Realtime change delivered to on_change subscribers"""
    table: str
    event_type: str  # INSERT | UPDATE | DELETE
    record: Dict[str, Any] = field(default_factory=dict)
    old_record: Dict[str, Any] = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _serialize_values(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _serialize(value) for key, value in values.items()}


class RecordStore(ABC):
    """
    Abstract record store.

    All methods raise RecordStoreError on failure; services turn it into a
    failure result.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = {}

    @abstractmethod
    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored."""
        pass

    @abstractmethod
    async def update(self, table: str, match: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Update rows equal on every `match` column; return the updated rows."""
        pass

    @abstractmethod
    async def delete(self, table: str, match: Dict[str, Any]) -> int:
        """Delete matching rows; return how many were removed."""
        pass

    @abstractmethod
    async def select_where(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Select rows.

        Args:
            table: Collection name
            match: Equality conditions
            filters: (column, operator, value) triples, see FILTER_OPERATORS
            order_by: Sort column
            desc: Sort descending
            limit: Max rows
        """
        pass

    async def select_one(self, table: str, match: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.select_where(table, match=match, limit=1)
        return rows[0] if rows else None

    def on_change(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """Subscribe to insert/update/delete events; returns an unsubscribe function."""
        self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(table, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    async def _emit(self, event: ChangeEvent) -> None:
        for callback in list(self._subscribers.get(event.table, [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Change subscriber for {event.table} failed: {e}")

    @staticmethod
    def _validate_filters(filters: Optional[Sequence[Filter]]) -> None:
        for column, op, _ in filters or []:
            if op not in FILTER_OPERATORS:
                raise RecordStoreError(f"Unsupported filter operator {op!r} on {column}")


class SupabaseRecordStore(RecordStore):
    """
    Record store over the Supabase client.

    Writes made through this adapter are echoed to local subscribers right
    away; `start_realtime` additionally forwards Postgres changes made by
    other clients.
    """

    def __init__(self, supabase):
        super().__init__()
        self.supabase = supabase
        self._channel = None

    def _apply_filters(self, query, match: Optional[Dict[str, Any]], filters: Optional[Sequence[Filter]]):
        for column, value in (match or {}).items():
            query = query.eq(column, _serialize(value))
        for column, op, value in filters or []:
            if op == "is_null":
                query = query.is_(column, "null") if value else query.not_.is_(column, "null")
            elif op == "in":
                query = query.in_(column, [_serialize(v) for v in value])
            else:
                query = getattr(query, op)(column, _serialize(value))
        return query

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.supabase.table(table).insert(_serialize_values(values)).execute()
        except Exception as e:
            raise RecordStoreError(f"Insert into {table} failed: {e}", table) from e
        if not response.data:
            raise RecordStoreError(f"Insert into {table} returned no row", table)
        row = response.data[0]
        await self._emit(ChangeEvent(table=table, event_type="INSERT", record=row))
        return row

    async def update(self, table: str, match: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            query = self.supabase.table(table).update(_serialize_values(values))
            response = self._apply_filters(query, match, None).execute()
        except Exception as e:
            raise RecordStoreError(f"Update of {table} failed: {e}", table) from e
        rows = response.data or []
        for row in rows:
            await self._emit(ChangeEvent(table=table, event_type="UPDATE", record=row))
        return rows

    async def delete(self, table: str, match: Dict[str, Any]) -> int:
        try:
            query = self.supabase.table(table).delete()
            response = self._apply_filters(query, match, None).execute()
        except Exception as e:
            raise RecordStoreError(f"Delete from {table} failed: {e}", table) from e
        rows = response.data or []
        for row in rows:
            await self._emit(ChangeEvent(table=table, event_type="DELETE", old_record=row))
        return len(rows)

    async def select_where(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._validate_filters(filters)
        try:
            query = self._apply_filters(self.supabase.table(table).select("*"), match, filters)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit:
                query = query.limit(limit)
            response = query.execute()
        except Exception as e:
            raise RecordStoreError(f"Select from {table} failed: {e}", table) from e
        return response.data or []

    async def start_realtime(self, async_client, tables: Sequence[str] = REALTIME_TABLES) -> None:
        """
        Forward Postgres changes to subscribers.

        Args:
            async_client: supabase AsyncClient (realtime needs the async client)
            tables: Tables to listen on
        """
        channel = async_client.channel("leadflow-changes")
        for table in tables:
            channel = channel.on_postgres_changes(
                "*",
                schema="public",
                table=table,
                callback=self._on_realtime_payload,
            )
        await channel.subscribe()
        self._channel = channel
        logger.info(f"Realtime subscription active for {', '.join(tables)}")

    async def stop_realtime(self) -> None:
        if self._channel is not None:
            await self._channel.unsubscribe()
            self._channel = None

    def _on_realtime_payload(self, payload: Dict[str, Any]) -> None:
        data = payload.get("data", payload)
        event = ChangeEvent(
            table=data.get("table", ""),
            event_type=data.get("type") or data.get("eventType", "UPDATE"),
            record=data.get("record") or {},
            old_record=data.get("old_record") or {},
        )
        asyncio.get_running_loop().create_task(self._emit(event))


def _comparable(value: Any) -> Any:
    """Time-like values become aware UTC datetimes so ISO strings compare correctly."""
    if isinstance(value, datetime):
        return value if value.tzinfo else pytz.UTC.localize(value)
    if isinstance(value, date):
        return pytz.UTC.localize(datetime(value.year, value.month, value.day))
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-" and value[7:8] == "-":
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else pytz.UTC.localize(parsed)
    return value


def _compare(left: Any, op: str, right: Any) -> bool:
    if op == "is_null":
        return (left is None) == bool(right)
    if op == "in":
        return _serialize(left) in [_serialize(v) for v in right]
    if op == "eq":
        return _serialize(left) == _serialize(right)
    if op == "neq":
        return _serialize(left) != _serialize(right)
    if left is None or right is None:
        return False
    a, b = _comparable(left), _comparable(right)
    if type(a) is not type(b):
        a, b = str(_serialize(left)), str(_serialize(right))
    if op == "gt":
        return a > b
    if op == "gte":
        return a >= b
    if op == "lt":
        return a < b
    return a <= b


class InMemoryRecordStore(RecordStore):
    """Process-local record store; rows get a uuid `id` and a `created_at`."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        super().__init__()
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        for table, rows in (tables or {}).items():
            self._tables[table] = [_serialize_values(dict(r)) for r in rows]

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Raw copy of a table (for inspection)."""
        return copy.deepcopy(self._tables.get(table, []))

    @staticmethod
    def _matches(row: Dict[str, Any], match: Optional[Dict[str, Any]], filters: Optional[Sequence[Filter]]) -> bool:
        for column, value in (match or {}).items():
            if not _compare(row.get(column), "eq", value):
                return False
        for column, op, value in filters or []:
            if not _compare(row.get(column), op, value):
                return False
        return True

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        row = _serialize_values(dict(values))
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(pytz.UTC).isoformat())
        self._tables.setdefault(table, []).append(row)
        await self._emit(ChangeEvent(table=table, event_type="INSERT", record=copy.deepcopy(row)))
        return copy.deepcopy(row)

    async def update(self, table: str, match: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        updated = []
        for row in self._tables.get(table, []):
            if self._matches(row, match, None):
                old = copy.deepcopy(row)
                row.update(_serialize_values(values))
                updated.append(copy.deepcopy(row))
                await self._emit(ChangeEvent(table=table, event_type="UPDATE", record=copy.deepcopy(row), old_record=old))
        return updated

    async def delete(self, table: str, match: Dict[str, Any]) -> int:
        rows = self._tables.get(table, [])
        removed = [r for r in rows if self._matches(r, match, None)]
        self._tables[table] = [r for r in rows if not self._matches(r, match, None)]
        for row in removed:
            await self._emit(ChangeEvent(table=table, event_type="DELETE", old_record=row))
        return len(removed)

    async def select_where(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._validate_filters(filters)
        rows = [copy.deepcopy(r) for r in self._tables.get(table, []) if self._matches(r, match, filters)]
        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: _comparable(r[order_by]), reverse=desc)
            rows = present + missing
        if limit:
            rows = rows[:limit]
        return rows

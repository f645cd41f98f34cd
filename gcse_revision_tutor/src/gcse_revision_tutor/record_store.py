"""
Record Store Adapters

The engine only needs four table operations: get one row by key, upsert by
conflict key, insert, and select by equality filters. Two implementations:

- SupabaseRecordStore: production tables through the Supabase client
- InMemoryRecordStore: dict-backed tables for local runs and tests
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional


def conflict_columns(conflict_key: str) -> List[str]:
    """'student_id,session_id,topic_id' -> ['student_id', 'session_id', 'topic_id']"""
    return [column.strip() for column in conflict_key.split(",") if column.strip()]


class RecordStore:
    """Async table interface used by SessionManager."""

    async def get(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def upsert(self, table: str, record: Dict[str, Any], conflict_key: str) -> None:
        raise NotImplementedError

    async def insert(self, table: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def select(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError


class SupabaseRecordStore(RecordStore):
    """
    Record store over Supabase (PostgREST) tables.

    The Supabase client is synchronous, so each call runs in a worker thread
    to keep the event loop free.
    """

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def _filtered(self, table: str, filters: Dict[str, Any]):
        query = self.supabase.table(table).select('*')
        for column, value in filters.items():
            query = query.eq(column, value)
        return query

    async def get(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = await asyncio.to_thread(self._filtered(table, key).limit(1).execute)
        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def upsert(self, table: str, record: Dict[str, Any], conflict_key: str) -> None:
        query = self.supabase.table(table).upsert(record, on_conflict=conflict_key)
        await asyncio.to_thread(query.execute)

    async def insert(self, table: str, record: Dict[str, Any]) -> None:
        query = self.supabase.table(table).insert(record)
        await asyncio.to_thread(query.execute)

    async def select(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        result = await asyncio.to_thread(self._filtered(table, filters).execute)
        return list(result.data or [])


class InMemoryRecordStore(RecordStore):
    """Dict-backed tables. Rows are copied on the way in and out."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in filters.items())

    async def get(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for row in self.rows(table):
            if self._matches(row, key):
                return copy.deepcopy(row)
        return None

    async def upsert(self, table: str, record: Dict[str, Any], conflict_key: str) -> None:
        key = {column: record.get(column) for column in conflict_columns(conflict_key)}
        rows = self.rows(table)
        for index, row in enumerate(rows):
            if self._matches(row, key):
                rows[index] = {**row, **copy.deepcopy(record)}
                return
        rows.append(copy.deepcopy(record))

    async def insert(self, table: str, record: Dict[str, Any]) -> None:
        self.rows(table).append(copy.deepcopy(record))

    async def select(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [copy.deepcopy(row) for row in self.rows(table) if self._matches(row, filters)]

"""
================================================================================
STRIPE SYNC - Record Store Adapter
================================================================================
Single-table key/value-ish access to the customer record store.

Backends:
- SupabaseRecordStore: production, async supabase-py client (URL + key)
- InMemoryRecordStore: tests and single-instance deployments

Every operation is async and may raise StoreError. A lookup that matches
nothing returns an empty list; that is the normal "not created yet" case.
================================================================================
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from storage.naming import ROW_ID_COLUMN

logger = logging.getLogger("stripe_sync.store")

Row = Dict[str, Any]
RowId = Any


class StoreError(Exception):
    """A record store call failed (network, auth or transport)."""

    def __init__(self, operation: str, table: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.table = table
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} on '{table}' failed{detail}")


# =============================================================================
# CONTRACT
# =============================================================================

class RecordStore(ABC):
    """Async record store contract used by the customer record operations."""

    backend = "abstract"

    @abstractmethod
    async def find(self, table: str, field: str, value: Any) -> List[Row]:
        """Return all rows where ``field == value``, oldest first."""

    @abstractmethod
    async def insert(self, table: str, fields: Dict[str, Any]) -> RowId:
        """Insert a row and return its row identifier."""

    @abstractmethod
    async def update(self, table: str, row_id: RowId, fields: Dict[str, Any]) -> None:
        """Overwrite ``fields`` on the row identified by ``row_id``."""

    @abstractmethod
    async def upsert(self, table: str, row_id: Optional[RowId], fields: Dict[str, Any]) -> RowId:
        """Update the row if ``row_id`` resolves, otherwise insert."""

    async def close(self):
        """Release client resources."""


# =============================================================================
# SUPABASE
# =============================================================================

class SupabaseRecordStore(RecordStore):
    """Record store backed by a Supabase (PostgREST) project."""

    backend = "supabase"

    def __init__(self, supabase_url: str, supabase_key: str):
        self.supabase_url = supabase_url
        self.supabase_key = supabase_key
        self._client = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self):
        """Get or create the shared async Supabase client."""
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    from supabase import acreate_client
                    self._client = await acreate_client(self.supabase_url, self.supabase_key)
                    logger.info("Supabase client initialized")
        return self._client

    async def find(self, table: str, field: str, value: Any) -> List[Row]:
        try:
            client = await self._get_client()
            result = await (
                client.table(table)
                .select("*")
                .eq(field, value)
                .order(ROW_ID_COLUMN)
                .execute()
            )
        except Exception as e:
            raise StoreError("find", table, e) from e
        return list(result.data or [])

    async def insert(self, table: str, fields: Dict[str, Any]) -> RowId:
        try:
            client = await self._get_client()
            result = await client.table(table).insert(fields).execute()
        except Exception as e:
            raise StoreError("insert", table, e) from e

        if not result.data:
            raise StoreError("insert", table, ValueError("no row returned"))
        return result.data[0].get(ROW_ID_COLUMN)

    async def update(self, table: str, row_id: RowId, fields: Dict[str, Any]) -> None:
        try:
            client = await self._get_client()
            await client.table(table).update(fields).eq(ROW_ID_COLUMN, row_id).execute()
        except Exception as e:
            raise StoreError("update", table, e) from e

    async def upsert(self, table: str, row_id: Optional[RowId], fields: Dict[str, Any]) -> RowId:
        if row_id is None:
            return await self.insert(table, fields)

        try:
            client = await self._get_client()
            result = await client.table(table).upsert({ROW_ID_COLUMN: row_id, **fields}).execute()
        except Exception as e:
            raise StoreError("upsert", table, e) from e

        if result.data:
            return result.data[0].get(ROW_ID_COLUMN, row_id)
        return row_id

    async def close(self):
        self._client = None


# =============================================================================
# IN-MEMORY (FOR TESTING/SIMPLE DEPLOYMENTS)
# =============================================================================

class InMemoryRecordStore(RecordStore):
    """
    Process-local record store with the same contract as Supabase.
    Row ids are integers starting at 1, per table.
    """

    backend = "in_memory"

    def __init__(self):
        self.tables: Dict[str, List[Row]] = {}
        self.calls: List[tuple] = []
        self._next_id: Dict[str, int] = {}
        self._failures: Dict[str, BaseException] = {}
        self._lock = asyncio.Lock()

    def fail_next(self, operation: str, error: Optional[BaseException] = None):
        """Make the next call of ``operation`` raise StoreError."""
        self._failures[operation] = error or ConnectionError("simulated outage")

    def rows(self, table: str) -> List[Row]:
        """Copy of every row in ``table``, oldest first."""
        return copy.deepcopy(self.tables.get(table, []))

    def _record(self, operation: str, table: str):
        self.calls.append((operation, table))
        error = self._failures.pop(operation, None)
        if error is not None:
            raise StoreError(operation, table, error)

    def _find_row(self, table: str, row_id: RowId) -> Optional[Row]:
        for row in self.tables.get(table, []):
            if row.get(ROW_ID_COLUMN) == row_id:
                return row
        return None

    def _insert_row(self, table: str, fields: Dict[str, Any]) -> RowId:
        row_id = self._next_id.get(table, 1)
        self._next_id[table] = row_id + 1
        row = {ROW_ID_COLUMN: row_id}
        row.update({k: v for k, v in fields.items() if k != ROW_ID_COLUMN})
        self.tables.setdefault(table, []).append(row)
        return row_id

    async def find(self, table: str, field: str, value: Any) -> List[Row]:
        self._record("find", table)
        return [
            copy.deepcopy(row)
            for row in self.tables.get(table, [])
            if field in row and row[field] == value
        ]

    async def insert(self, table: str, fields: Dict[str, Any]) -> RowId:
        self._record("insert", table)
        async with self._lock:
            return self._insert_row(table, fields)

    async def update(self, table: str, row_id: RowId, fields: Dict[str, Any]) -> None:
        self._record("update", table)
        async with self._lock:
            row = self._find_row(table, row_id)
            if row is None:
                raise StoreError("update", table, KeyError(row_id))
            row.update({k: v for k, v in fields.items() if k != ROW_ID_COLUMN})

    async def upsert(self, table: str, row_id: Optional[RowId], fields: Dict[str, Any]) -> RowId:
        self._record("upsert", table)
        async with self._lock:
            row = self._find_row(table, row_id) if row_id is not None else None
            if row is None:
                return self._insert_row(table, fields)
            row.update({k: v for k, v in fields.items() if k != ROW_ID_COLUMN})
            return row_id


# =============================================================================
# FACTORY
# =============================================================================

def create_record_store(supabase_url: str = "", supabase_key: str = "") -> RecordStore:
    """Create the appropriate record store for the given credentials."""
    if supabase_url and supabase_key:
        return SupabaseRecordStore(supabase_url, supabase_key)

    logger.warning("Supabase not configured - running with in-memory record store")
    return InMemoryRecordStore()

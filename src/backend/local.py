"""Local backend: SQLite tables, filesystem storage and SQL procedures.

Mirrors the hosted backend surface closely enough to run both bots and the
smoke tests without network access.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from urllib.parse import quote

import aiosqlite

from database import open_db

from .base import BackendError, BackendNotFoundError


logger = logging.getLogger(__name__)

# Server-side aggregations available through call_procedure(); `{table}` is the
# configured businesses table.
PROCEDURES: dict[str, str] = {
    "get_pending_businesses_with_emails": """
        SELECT b.id, b.name, b.owner_id, p.email AS user_email, b.receipt_url,
               b.payment_status, b.created_at, b.listing_expired_date
          FROM {table} b
          LEFT JOIN profiles p ON p.id = b.owner_id
         WHERE b.payment_status = 'to_be_confirmed'
         ORDER BY b.created_at DESC, b.id
    """,
}


def _quote_ident(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


class LocalBackend:
    backend_name = "local"

    def __init__(
        self,
        *,
        db_path: str,
        storage_dir: str,
        public_base_url: str,
        table: str = "businesses",
        bucket: str = "business-assets",
    ) -> None:
        self.db_path = db_path
        self.storage_dir = Path(storage_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.table = table
        self.bucket = bucket
        self._columns: set[str] | None = None

    async def _table_columns(self, db: aiosqlite.Connection) -> set[str]:
        if self._columns is None:
            async with db.execute(f"PRAGMA table_info({_quote_ident(self.table)})") as cur:
                rows = await cur.fetchall()
            columns = {str(row["name"]) for row in rows}
            if not columns:
                # Not cached: the table may be created later by init_db().
                raise BackendNotFoundError(f"Table {self.table} does not exist")
            self._columns = columns
        return self._columns

    async def _checked_columns(self, db: aiosqlite.Connection, columns: Sequence[str]) -> list[str]:
        known = await self._table_columns(db)
        unknown = [col for col in columns if col not in known]
        if unknown:
            raise BackendError(f"Unknown column(s) for {self.table}: {', '.join(unknown)}", status=400)
        return list(columns)

    async def _select_one(self, db: aiosqlite.Connection, business_id: str, columns: Sequence[str]) -> dict[str, Any]:
        select = ", ".join(_quote_ident(col) for col in columns) if columns else "*"
        async with db.execute(
            f"SELECT {select} FROM {_quote_ident(self.table)} WHERE id = ?",
            (str(business_id),),
        ) as cur:
            row = await cur.fetchone()
        if row is None:
            raise BackendNotFoundError(f"Business {business_id} not found", status=406)
        return dict(row)

    async def fetch_business(self, business_id: str, columns: Sequence[str]) -> dict[str, Any]:
        async with open_db(self.db_path) as db:
            checked = await self._checked_columns(db, columns)
            return await self._select_one(db, business_id, checked)

    async def update_business(self, business_id: str, values: dict[str, Any]) -> dict[str, Any]:
        if not values:
            raise BackendError("Nothing to update", status=400)
        async with open_db(self.db_path) as db:
            checked = await self._checked_columns(db, list(values))
            assignments = ", ".join(f"{_quote_ident(col)} = ?" for col in checked)
            params = [values[col] for col in checked] + [str(business_id)]
            cursor = await db.execute(
                f"UPDATE {_quote_ident(self.table)} SET {assignments} WHERE id = ?",
                params,
            )
            if cursor.rowcount == 0:
                raise BackendNotFoundError(f"Business {business_id} not found")
            await db.commit()
            return await self._select_one(db, business_id, ())

    async def delete_business(self, business_id: str) -> None:
        async with open_db(self.db_path) as db:
            await db.execute(
                f"DELETE FROM {_quote_ident(self.table)} WHERE id = ?",
                (str(business_id),),
            )
            await db.commit()

    def _object_file(self, path: str) -> Path:
        root = (self.storage_dir / self.bucket).resolve()
        target = (root / path.lstrip("/")).resolve()
        if root not in target.parents:
            raise BackendError(f"Invalid object path: {path}", status=400)
        return target

    async def upload_object(self, path: str, data: bytes, *, content_type: str) -> str:
        target = self._object_file(path)
        if target.exists():
            raise BackendError(f"Object already exists: {path}", status=409)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug("Stored object %s (%s, %s bytes)", target, content_type, len(data))
        return path

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(self.bucket)}/{quote(path.lstrip('/'))}"

    async def call_procedure(self, name: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        query = PROCEDURES.get(name)
        if query is None:
            raise BackendNotFoundError(f"Procedure {name} does not exist", status=404)
        query = query.format(table=_quote_ident(self.table))
        async with open_db(self.db_path) as db:
            async with db.execute(query, params or {}) as cur:
                rows = await cur.fetchall()
                return [dict(row) for row in rows]

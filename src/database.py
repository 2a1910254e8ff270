import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import aiosqlite

from config import DB_PATH


SQLITE_BUSY_TIMEOUT_MS = 5000
logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


async def apply_sqlite_pragmas(db: aiosqlite.Connection) -> None:
    """Apply SQLite settings for concurrent access from both bot processes."""
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    await db.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")


@asynccontextmanager
async def open_db(path: str | None = None) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(path or DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        await apply_sqlite_pragmas(db)
        yield db


async def init_db(path: str | None = None) -> None:
    """Create tables for bot state and for the local listings backend."""
    async with open_db(path) as db:
        await db.execute(
            "CREATE TABLE IF NOT EXISTS kv (k TEXT PRIMARY KEY, v TEXT)"
        )
        # Owner profiles: the local counterpart of the hosted auth users table.
        await db.execute(
            """CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                email TEXT DEFAULT NULL
            )"""
        )
        await db.execute(
            """CREATE TABLE IF NOT EXISTS businesses (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                owner_id TEXT DEFAULT NULL,
                receipt_url TEXT DEFAULT NULL,
                payment_status TEXT NOT NULL DEFAULT 'none',
                created_at TEXT NOT NULL,
                last_payment_date TEXT DEFAULT NULL,
                listing_expired_date TEXT DEFAULT NULL,
                odoo_expired_date TEXT DEFAULT NULL,
                "POS+Website" INTEGER NOT NULL DEFAULT 0
            )"""
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_businesses_payment_status ON businesses (payment_status, created_at)"
        )
        await db.commit()
    logger.info("Database initialized at %s", path or DB_PATH)


async def db_get(k: str, path: str | None = None) -> str | None:
    async with open_db(path) as db:
        async with db.execute("SELECT v FROM kv WHERE k=?", (k,)) as cur:
            row = await cur.fetchone()
            return row[0] if row else None


async def db_set(k: str, v: str, path: str | None = None) -> None:
    async with open_db(path) as db:
        await db.execute(
            "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
            (k, v),
        )
        await db.commit()

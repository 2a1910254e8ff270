#!/usr/bin/env python3
"""
Dynamic smoke test: local backend on a temporary SQLite DB and storage dir.

Validates:
- pending aggregation joins owner emails and filters by payment status;
- fetch/update/delete by business id, update returning the full row;
- unknown columns, ids and procedures raise backend errors;
- receipt upload writes the object and builds a public URL;
- the full upgrade submission runs end to end against the local backend;
- a table created after the first call is picked up by the same backend;
- the pending procedure reads the configured businesses table.

Run:
  python3 scripts/smoke_local_backend_runtime.py
"""

from __future__ import annotations

import asyncio
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path


def _resolve_repo_root() -> Path:
    candidates: list[Path] = []
    try:
        candidates.append(Path(__file__).resolve().parents[1])
    except Exception:
        pass
    candidates.append(Path.cwd())
    for root in candidates:
        if (root / "pyproject.toml").exists() and (root / "src").exists():
            return root
    raise FileNotFoundError("Cannot locate repo root with pyproject.toml and src/")


REPO_ROOT = _resolve_repo_root()
if str(REPO_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(REPO_ROOT / "src"))


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


async def _seed(db_path: str) -> None:
    from database import init_db, open_db

    await init_db(db_path)
    async with open_db(db_path) as db:
        await db.executemany(
            "INSERT INTO profiles(id, email) VALUES(?, ?)",
            [("U1", "owner1@example.com"), ("U2", None)],
        )
        await db.executemany(
            """
            INSERT INTO businesses(id, name, owner_id, payment_status, created_at, listing_expired_date)
            VALUES(?, ?, ?, ?, ?, ?)
            """,
            [
                ("B1", "Bakery", "U1", "to_be_confirmed", "2026-10-18T10:00:00+00:00", "2026-01-01"),
                ("B2", "Barber", "U2", "to_be_confirmed", "2026-10-19T10:00:00+00:00", None),
                ("B3", "Cafe", "U1", "none", "2026-10-17T10:00:00+00:00", "2030-01-01"),
                ("B4", "Deli", "missing-owner", "confirmed", "2026-10-16T10:00:00+00:00", None),
            ],
        )
        await db.commit()


def _backend(db_path: str, storage_dir: str):
    from backend import LocalBackend

    return LocalBackend(
        db_path=db_path,
        storage_dir=storage_dir,
        public_base_url="http://localhost:8080/storage/",
    )


async def _check_procedure(backend) -> None:
    from backend import BackendNotFoundError

    rows = await backend.call_procedure("get_pending_businesses_with_emails")
    _assert([row["id"] for row in rows] == ["B2", "B1"], f"newest pending first: {rows}")
    by_id = {row["id"]: row for row in rows}
    _assert(by_id["B1"]["user_email"] == "owner1@example.com", f"email join: {by_id['B1']}")
    _assert(by_id["B2"]["user_email"] is None, f"missing email stays null: {by_id['B2']}")

    try:
        await backend.call_procedure("no_such_procedure")
    except BackendNotFoundError as exc:
        _assert(exc.status == 404, f"unexpected status: {exc.status}")
    else:
        raise AssertionError("unknown procedure must raise")


async def _check_rows(backend) -> None:
    from backend import BackendError, BackendNotFoundError

    row = await backend.fetch_business("B1", ("id", "name", "listing_expired_date"))
    _assert(row == {"id": "B1", "name": "Bakery", "listing_expired_date": "2026-01-01"}, f"fetch: {row}")

    try:
        await backend.fetch_business("B1", ("no_such_column",))
    except BackendNotFoundError:
        raise AssertionError("unknown column is a bad request, not a missing row")
    except BackendError as exc:
        _assert(exc.status == 400, f"unexpected status: {exc.status}")
    else:
        raise AssertionError("unknown column must raise")

    for call in (
        lambda: backend.fetch_business("nope", ("id",)),
        lambda: backend.update_business("nope", {"payment_status": "confirmed"}),
    ):
        try:
            await call()
        except BackendNotFoundError:
            pass
        else:
            raise AssertionError("missing business must raise BackendNotFoundError")

    updated = await backend.update_business("B3", {"payment_status": "confirmed", "POS+Website": 1})
    _assert(updated["payment_status"] == "confirmed" and updated["POS+Website"] == 1, f"update: {updated}")
    _assert(updated["name"] == "Cafe", "update must return the full row")

    await backend.delete_business("B4")
    try:
        await backend.fetch_business("B4", ("id",))
    except BackendNotFoundError:
        pass
    else:
        raise AssertionError("deleted business must be gone")


async def _check_storage(backend, storage_dir: str) -> None:
    from backend import BackendError

    path = await backend.upload_object("receipts/B1-abc.pdf", b"%PDF", content_type="application/pdf")
    stored = Path(storage_dir) / "business-assets" / "receipts" / "B1-abc.pdf"
    _assert(stored.read_bytes() == b"%PDF", "object bytes must be written")
    url = backend.public_url(path)
    _assert(url == "http://localhost:8080/storage/business-assets/receipts/B1-abc.pdf", f"url: {url}")

    for bad_path in ("receipts/B1-abc.pdf", "../escape.pdf"):
        try:
            await backend.upload_object(bad_path, b"x", content_type="application/pdf")
        except BackendError:
            pass
        else:
            raise AssertionError(f"upload to {bad_path!r} must be rejected")


async def _check_end_to_end_submission(backend) -> None:
    from listings.models import ReceiptFile
    from listings.notify import NoteNotifier
    from listings.upgrade import UpgradeSubmissionForm

    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    async def _load() -> bytes:
        return b"\xff\xd8jpeg"

    notifier = NoteNotifier()
    form = UpgradeSubmissionForm("B1", "Bakery", backend=backend, notifier=notifier, clock=lambda: now)
    form.total_amount = "25"
    form.receipt = ReceiptFile(name="receipt.jpg", content_type="image/jpeg", load=_load)
    _assert(await form.submit() is True, f"submission failed: {notifier.render()}")

    row = await backend.fetch_business(
        "B1",
        ("payment_status", "receipt_url", "listing_expired_date", "odoo_expired_date", "POS+Website"),
    )
    _assert(row["payment_status"] == "to_be_confirmed", f"row: {row}")
    _assert(row["receipt_url"].startswith("http://localhost:8080/storage/business-assets/receipts/B1-"), f"row: {row}")
    _assert(row["listing_expired_date"] == (now + timedelta(days=365)).date().isoformat(), f"row: {row}")
    _assert(row["odoo_expired_date"] == (now + timedelta(days=30)).isoformat(), f"row: {row}")
    _assert(row["POS+Website"] == 1, f"row: {row}")


async def _check_table_created_after_first_use(tmp: str) -> None:
    from backend import BackendNotFoundError, LocalBackend
    from database import init_db, open_db

    db_path = str(Path(tmp) / "late.db")
    backend = LocalBackend(db_path=db_path, storage_dir=str(Path(tmp) / "late-storage"), public_base_url="http://files.test")
    try:
        await backend.fetch_business("B1", ("id",))
    except BackendNotFoundError:
        pass
    else:
        raise AssertionError("missing table must raise BackendNotFoundError")

    await init_db(db_path)
    async with open_db(db_path) as db:
        await db.execute(
            "INSERT INTO businesses(id, name, created_at) VALUES(?, ?, ?)",
            ("B1", "Bakery", "2026-10-19T00:00:00+00:00"),
        )
        await db.commit()
    row = await backend.fetch_business("B1", ("id", "name"))
    _assert(row == {"id": "B1", "name": "Bakery"}, f"same backend must see the new table: {row}")


async def _check_custom_table_procedure(tmp: str) -> None:
    from backend import LocalBackend
    from database import init_db, open_db

    db_path = str(Path(tmp) / "custom.db")
    await init_db(db_path)
    async with open_db(db_path) as db:
        await db.execute('CREATE TABLE "shop listings" AS SELECT * FROM businesses WHERE 0')
        await db.execute("INSERT INTO profiles(id, email) VALUES('U9', 'custom@example.com')")
        await db.execute(
            """
            INSERT INTO "shop listings"(id, name, owner_id, payment_status, created_at)
            VALUES('S1', 'Studio', 'U9', 'to_be_confirmed', '2026-10-19T00:00:00+00:00')
            """
        )
        await db.execute(
            """
            INSERT INTO businesses(id, name, payment_status, created_at)
            VALUES('B9', 'Default table row', 'to_be_confirmed', '2026-10-19T00:00:00+00:00')
            """
        )
        await db.commit()

    backend = LocalBackend(
        db_path=db_path,
        storage_dir=str(Path(tmp) / "custom-storage"),
        public_base_url="http://files.test",
        table="shop listings",
    )
    rows = await backend.call_procedure("get_pending_businesses_with_emails")
    _assert([row["id"] for row in rows] == ["S1"], f"procedure must read the configured table: {rows}")
    _assert(rows[0]["user_email"] == "custom@example.com", f"email join on configured table: {rows}")


async def _run_checks() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        await _check_table_created_after_first_use(tmp)
        await _check_custom_table_procedure(tmp)
        db_path = str(Path(tmp) / "listings.db")
        storage_dir = str(Path(tmp) / "storage")
        await _seed(db_path)
        backend = _backend(db_path, storage_dir)
        await _check_procedure(backend)
        await _check_rows(backend)
        await _check_storage(backend, storage_dir)
        await _check_end_to_end_submission(backend)


def test_local_backend_runtime() -> None:
    asyncio.run(_run_checks())


def main() -> None:
    test_local_backend_runtime()
    print("OK: local backend runtime smoke passed.")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Dynamic smoke test: pending confirmation list against a recording backend.

Validates:
- empty aggregation shows no rows and clears the spinner;
- confirm issues exactly one payment_status update and re-fetches;
- a declined delete prompt calls nothing;
- an accepted delete issues exactly one delete and re-fetches;
- failures notify the admin and keep the current rows;
- edit builds the editor URL;
- a second action on a listing already in flight is rejected;
- concurrent actions on one list report into their own notifiers.

Run:
  python3 scripts/smoke_pending_confirmation_flow.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any


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


class _PendingBackend:
    backend_name = "recording"

    def __init__(self, rows: list[dict[str, Any]], *, fail_on: str | None = None) -> None:
        self.rows = rows
        self.fail_on = fail_on
        self.calls: list[tuple[str, Any]] = []
        self.release: asyncio.Event | None = None

    async def _step(self, op: str) -> None:
        if self.release is not None:
            await self.release.wait()
        if self.fail_on == op:
            raise RuntimeError(f"{op} failed")

    async def fetch_business(self, business_id, columns):
        raise AssertionError("pending list must not fetch single rows")

    async def update_business(self, business_id, values):
        self.calls.append(("update", (business_id, dict(values))))
        await self._step("update")
        for row in self.rows:
            if row["id"] == business_id:
                row.update(values)
        self.rows = [row for row in self.rows if row.get("payment_status") == "to_be_confirmed"]
        return {"id": business_id, **values}

    async def delete_business(self, business_id):
        self.calls.append(("delete", business_id))
        await self._step("delete")
        self.rows = [row for row in self.rows if row["id"] != business_id]

    async def upload_object(self, path, data, *, content_type):
        raise AssertionError("pending list must not upload")

    def public_url(self, path):
        return path

    async def call_procedure(self, name, params=None):
        self.calls.append(("rpc", name))
        if self.fail_on == "rpc":
            raise RuntimeError("rpc failed")
        return [dict(row) for row in self.rows]

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]


def _rows() -> list[dict[str, Any]]:
    return [
        {
            "id": "B1",
            "name": "Bakery",
            "owner_id": "U1",
            "user_email": "owner1@example.com",
            "receipt_url": "https://cdn.test/receipts/B1.pdf",
            "payment_status": "to_be_confirmed",
            "created_at": "2026-10-18T10:00:00+00:00",
            "listing_expired_date": "2027-10-18",
        },
        {
            "id": "B2",
            "name": "Barber",
            "owner_id": "U2",
            "user_email": None,
            "receipt_url": None,
            "payment_status": "to_be_confirmed",
            "created_at": "2026-10-17T10:00:00+00:00",
            "listing_expired_date": None,
        },
    ]


def _view(backend, *, site_url: str = "https://listings.test", guard=None):
    from listings.notify import EditNavigator, NoteNotifier
    from listings.pending import PendingConfirmationList

    notifier = NoteNotifier()
    view = PendingConfirmationList(
        backend=backend,
        notifier=notifier,
        navigator=EditNavigator(site_url),
        guard=guard,
    )
    return view, notifier


async def _check_empty_list() -> None:
    backend = _PendingBackend([])
    view, notifier = _view(backend)
    _assert(view.loading, "list starts in loading state")
    await view.load()
    _assert(view.listings == [] and not view.loading, "empty list must clear the spinner")
    _assert(backend.calls == [("rpc", "get_pending_businesses_with_emails")], f"calls: {backend.calls}")
    _assert(not notifier.notes, f"no notes expected: {notifier.notes}")


async def _check_rows_mapping() -> None:
    backend = _PendingBackend(_rows())
    view, _ = _view(backend)
    await view.load()
    _assert([item.id for item in view.listings] == ["B1", "B2"], "rows must keep aggregation order")
    first, second = view.listings
    _assert(first.user_email == "owner1@example.com" and first.receipt_url, f"bad first row: {first}")
    _assert(second.user_email is None and second.receipt_url is None, f"bad second row: {second}")
    _assert(view.find("B2") is second and view.find("missing") is None, "find by id")


async def _check_confirm() -> None:
    from listings.pending import MSG_CONFIRMED

    backend = _PendingBackend(_rows())
    view, notifier = _view(backend)
    await view.load()
    backend.calls.clear()

    _assert(await view.confirm("B1") is True, "confirm must succeed")
    _assert(backend.ops() == ["update", "rpc"], f"confirm must update then re-fetch: {backend.calls}")
    _assert(backend.calls[0][1] == ("B1", {"payment_status": "confirmed"}), f"bad update: {backend.calls[0]}")
    _assert([item.id for item in view.listings] == ["B2"], "confirmed listing must leave the list")
    _assert(notifier.render() == f"✅ {MSG_CONFIRMED}", f"notes: {notifier.notes}")


async def _check_delete() -> None:
    from listings.pending import MSG_DELETED

    backend = _PendingBackend(_rows())
    view, notifier = _view(backend)
    await view.load()
    backend.calls.clear()

    _assert(await view.delete("B2", accepted=False) is False, "declined delete reports False")
    _assert(backend.calls == [] and len(view.listings) == 2, "declined delete must not touch the backend")

    _assert(await view.delete("B2", accepted=True) is True, "accepted delete must succeed")
    _assert(backend.calls == [("delete", "B2"), ("rpc", "get_pending_businesses_with_emails")], f"calls: {backend.calls}")
    _assert([item.id for item in view.listings] == ["B1"], "deleted listing must leave the list")
    _assert(notifier.notes[-1].ok and notifier.notes[-1].text == MSG_DELETED, f"notes: {notifier.notes}")


async def _check_failures() -> None:
    from listings.pending import MSG_CONFIRM_FAILED, MSG_DELETE_FAILED, MSG_FETCH_FAILED

    backend = _PendingBackend(_rows(), fail_on="rpc")
    view, notifier = _view(backend)
    await view.load()
    _assert(view.listings == [] and not view.loading, "failed load leaves an empty list without spinner")
    _assert(notifier.failed and notifier.notes[0].text == MSG_FETCH_FAILED, f"notes: {notifier.notes}")

    for fail_on, message in (("update", MSG_CONFIRM_FAILED), ("delete", MSG_DELETE_FAILED)):
        backend = _PendingBackend(_rows())
        view, notifier = _view(backend)
        await view.load()
        backend.fail_on = fail_on
        backend.calls.clear()
        if fail_on == "update":
            ok = await view.confirm("B1")
        else:
            ok = await view.delete("B1", accepted=True)
        _assert(ok is False, f"{fail_on} failure must report False")
        _assert(backend.ops() == [fail_on], f"{fail_on} failure must not re-fetch: {backend.calls}")
        _assert([item.id for item in view.listings] == ["B1", "B2"], f"{fail_on} failure keeps rows")
        _assert([note.text for note in notifier.notes] == [message], f"notes: {notifier.notes}")


async def _check_edit_url() -> None:
    view, _ = _view(_PendingBackend([]))
    _assert(view.edit("B1") == "https://listings.test/business/B1/edit", f"bad edit url: {view.edit('B1')}")
    _assert(view.navigator.is_absolute(), "absolute site url expected")

    relative, _ = _view(_PendingBackend([]), site_url="")
    _assert(relative.edit("a/b") == "/business/a%2Fb/edit", f"ids must be escaped: {relative.edit('a/b')}")
    _assert(not relative.navigator.is_absolute(), "path-only navigator is not absolute")


async def _check_in_flight_guard() -> None:
    from listings.inflight import InFlightGuard
    from listings.pending import MSG_BUSY

    guard = InFlightGuard()
    backend = _PendingBackend(_rows())
    view, notifier = _view(backend, guard=guard)
    await view.load()
    backend.calls.clear()
    backend.release = asyncio.Event()

    task = asyncio.create_task(view.confirm("B1"))
    for _ in range(10):
        await asyncio.sleep(0)
        if backend.calls:
            break
    _assert(guard.is_busy(("listing", "B1")), "confirm must hold the listing while in flight")
    _assert(await view.delete("B1", accepted=True) is False, "delete during confirm must be rejected")
    _assert(backend.ops() == ["update"], f"rejected delete must not call the backend: {backend.calls}")
    _assert(notifier.notes[-1].text == MSG_BUSY, f"notes: {notifier.notes}")

    backend.release.set()
    _assert(await task is True, "confirm must finish")
    _assert(not guard.is_busy(("listing", "B1")), "guard must be released")


async def _check_concurrent_actions_keep_their_notes() -> None:
    from listings.notify import NoteNotifier
    from listings.pending import MSG_CONFIRMED, MSG_DELETED

    backend = _PendingBackend(_rows())
    view, shared = _view(backend)
    await view.load()
    backend.release = asyncio.Event()

    confirm_notes = NoteNotifier()
    delete_notes = NoteNotifier()
    confirm_task = asyncio.create_task(view.confirm("B1", notifier=confirm_notes))
    delete_task = asyncio.create_task(view.delete("B2", accepted=True, notifier=delete_notes))
    for _ in range(10):
        await asyncio.sleep(0)
        if len(backend.calls) >= 3:
            break
    backend.release.set()
    _assert(await confirm_task is True and await delete_task is True, "both actions must succeed")

    _assert([note.text for note in confirm_notes.notes] == [MSG_CONFIRMED], f"confirm notes: {confirm_notes.notes}")
    _assert([note.text for note in delete_notes.notes] == [MSG_DELETED], f"delete notes: {delete_notes.notes}")
    _assert(not shared.notes, f"list notifier must stay untouched: {shared.notes}")
    _assert(view.listings == [], f"both rows must be gone: {view.listings}")


async def _run_checks() -> None:
    await _check_empty_list()
    await _check_rows_mapping()
    await _check_confirm()
    await _check_delete()
    await _check_failures()
    await _check_edit_url()
    await _check_in_flight_guard()
    await _check_concurrent_actions_keep_their_notes()


def test_pending_confirmation_flow() -> None:
    asyncio.run(_run_checks())


def main() -> None:
    test_pending_confirmation_flow()
    print("OK: pending confirmation flow smoke passed.")


if __name__ == "__main__":
    main()

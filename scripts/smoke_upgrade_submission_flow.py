#!/usr/bin/env python3
"""
Dynamic smoke test: upgrade submission form against a recording backend.

Validates:
- missing amount / missing receipt never reaches the backend;
- expired listing (L1) gets listing expiry today+365, odoo today+30, status to_be_confirmed;
- active listing (L2) update omits listing expiry but has the other four fields;
- fetch/upload/update failures show the generic error and leave the form open;
- close vs confirmation success views;
- a second submit while the first is in flight is rejected without backend calls.

Run:
  python3 scripts/smoke_upgrade_submission_flow.py
"""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
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

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


class _RecordingBackend:
    backend_name = "recording"

    def __init__(self, rows: dict[str, dict[str, Any]], *, fail_on: str | None = None) -> None:
        self.rows = rows
        self.fail_on = fail_on
        self.calls: list[tuple[str, Any]] = []
        self.release_upload: asyncio.Event | None = None

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise RuntimeError(f"{op} failed")

    async def fetch_business(self, business_id, columns):
        self.calls.append(("fetch", (business_id, tuple(columns))))
        self._maybe_fail("fetch")
        row = self.rows[business_id]
        return {col: row.get(col) for col in columns}

    async def update_business(self, business_id, values):
        self.calls.append(("update", (business_id, dict(values))))
        self._maybe_fail("update")
        self.rows[business_id].update(values)
        return dict(self.rows[business_id])

    async def delete_business(self, business_id):
        self.calls.append(("delete", business_id))

    async def upload_object(self, path, data, *, content_type):
        self.calls.append(("upload", (path, len(data), content_type)))
        if self.release_upload is not None:
            await self.release_upload.wait()
        self._maybe_fail("upload")
        return path

    def public_url(self, path):
        return f"https://cdn.test/business-assets/{path}"

    async def call_procedure(self, name, params=None):
        self.calls.append(("rpc", name))
        return []

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]


class _RecordingNotifier:
    def __init__(self) -> None:
        self.errors: list[str] = []
        self.successes: list[str] = []

    async def success(self, text: str) -> None:
        self.successes.append(text)

    async def error(self, text: str) -> None:
        self.errors.append(text)


def _rows() -> dict[str, dict[str, Any]]:
    return {
        "L1": {"id": "L1", "name": "Shop One", "listing_expired_date": (TODAY - timedelta(days=1)).isoformat()},
        "L2": {"id": "L2", "name": "Shop Two", "listing_expired_date": (TODAY + timedelta(days=365)).isoformat()},
    }


def _form(backend, notifier, *, business_id: str = "L1", success_view: str = "close", guard=None, **kwargs):
    from listings.models import ReceiptFile
    from listings.upgrade import UpgradeSubmissionForm

    async def _load() -> bytes:
        return b"%PDF-1.4 receipt"

    form = UpgradeSubmissionForm(
        business_id,
        backend.rows.get(business_id, {}).get("name", ""),
        backend=backend,
        notifier=notifier,
        guard=guard,
        success_view=success_view,
        clock=lambda: NOW,
        **kwargs,
    )
    form.total_amount = "49.99"
    form.receipt = ReceiptFile(name="receipt.pdf", content_type="application/pdf", load=_load)
    return form


async def _check_validation() -> None:
    from listings.upgrade import MSG_MISSING_FIELDS

    backend = _RecordingBackend(_rows())
    notifier = _RecordingNotifier()

    form = _form(backend, notifier)
    form.total_amount = ""
    _assert(await form.submit() is False, "empty amount must not submit")

    form = _form(backend, notifier)
    form.receipt = None
    _assert(await form.submit() is False, "missing receipt must not submit")

    form = _form(backend, notifier)
    form.total_amount = "forty"
    _assert(await form.submit() is False, "non-numeric amount must not submit")

    _assert(backend.calls == [], f"validation failures must not call the backend: {backend.calls}")
    _assert(notifier.errors[:2] == [MSG_MISSING_FIELDS, MSG_MISSING_FIELDS], f"unexpected errors: {notifier.errors}")
    _assert(len(notifier.errors) == 3 and not notifier.successes, f"unexpected notifications: {notifier.__dict__}")


async def _check_expired_listing_scenario() -> None:
    backend = _RecordingBackend(_rows())
    notifier = _RecordingNotifier()
    events: list[str] = []

    async def _on_success() -> None:
        events.append("success")

    async def _on_close() -> None:
        events.append("close")

    form = _form(backend, notifier, on_success=_on_success, on_close=_on_close)
    _assert(await form.submit() is True, f"submission failed: {notifier.errors}")

    _assert(backend.ops() == ["fetch", "upload", "update"], f"unexpected call order: {backend.calls}")
    fetch_args = backend.calls[0][1]
    _assert(fetch_args == ("L1", ("listing_expired_date",)), f"unexpected prefetch: {fetch_args}")
    upload_path, upload_size, upload_type = backend.calls[1][1]
    _assert(upload_path.startswith("receipts/L1-") and upload_path.endswith(".pdf"), f"bad path: {upload_path}")
    _assert(upload_size == len(b"%PDF-1.4 receipt") and upload_type == "application/pdf", "bad upload payload")

    updates = [args for op, args in backend.calls if op == "update"]
    _assert(len(updates) == 1, f"exactly one update expected: {updates}")
    business_id, values = updates[0]
    _assert(business_id == "L1", f"updated wrong business: {business_id}")
    _assert(values["payment_status"] == "to_be_confirmed", f"bad status: {values}")
    _assert(values["listing_expired_date"] == (TODAY + timedelta(days=365)).isoformat(), f"bad listing expiry: {values}")
    odoo = datetime.fromisoformat(values["odoo_expired_date"])
    _assert(odoo.date() == TODAY + timedelta(days=30), f"bad odoo expiry: {values}")
    _assert(values["receipt_url"] == f"https://cdn.test/business-assets/{upload_path}", f"bad url: {values}")
    _assert(values["POS+Website"] == 1, f"add-on flag not enabled: {values}")

    _assert(events == ["close", "success"], f"form must close before the success callback: {events}")
    _assert(not form.is_open and not form.loading, "form must close after success")
    _assert(notifier.successes and not notifier.errors, f"notifications: {notifier.__dict__}")


async def _check_active_listing_scenario() -> None:
    backend = _RecordingBackend(_rows())
    notifier = _RecordingNotifier()
    form = _form(backend, notifier, business_id="L2")
    _assert(await form.submit() is True, f"submission failed: {notifier.errors}")

    (_, (updated_id, values)), = [call for call in backend.calls if call[0] == "update"]
    _assert(updated_id == "L2" and isinstance(values, dict), f"bad update call: {backend.calls}")
    _assert("listing_expired_date" not in values, f"listing expiry must be omitted: {values}")
    for key in ("receipt_url", "payment_status", "last_payment_date", "odoo_expired_date", "POS+Website"):
        _assert(key in values, f"missing {key}: {values}")
    _assert(values["last_payment_date"] == NOW.isoformat(), f"bad last payment date: {values}")


async def _check_failures() -> None:
    from listings.upgrade import MSG_FAILED

    expected_ops = {
        "fetch": ["fetch"],
        "upload": ["fetch", "upload"],
        "update": ["fetch", "upload", "update"],
    }
    for fail_on, ops in expected_ops.items():
        backend = _RecordingBackend(_rows(), fail_on=fail_on)
        notifier = _RecordingNotifier()
        closed: list[bool] = []

        async def _on_close() -> None:
            closed.append(True)

        form = _form(backend, notifier, on_close=_on_close)
        _assert(await form.submit() is False, f"{fail_on} failure must not report success")
        _assert(backend.ops() == ops, f"{fail_on}: unexpected calls {backend.calls}")
        _assert(notifier.errors == [MSG_FAILED], f"{fail_on}: generic error expected, got {notifier.errors}")
        _assert(form.is_open and not closed and not form.loading, f"{fail_on}: form must stay open for retry")
        _assert(not form.submitted, f"{fail_on}: nothing submitted")


async def _check_confirmation_view() -> None:
    backend = _RecordingBackend(_rows())
    notifier = _RecordingNotifier()
    closed: list[bool] = []

    async def _on_close() -> None:
        closed.append(True)

    form = _form(backend, notifier, success_view="confirmation", on_close=_on_close)
    _assert(await form.submit() is True, f"submission failed: {notifier.errors}")
    _assert(form.submitted, "confirmation view must set submitted")
    _assert(form.is_open and not closed, "confirmation view keeps the form open")
    expected = backend.rows["L1"]["odoo_expired_date"]
    _assert(form.odoo_expired_date == expected, f"odoo date must come from update response: {form.odoo_expired_date}")


async def _check_in_flight_guard() -> None:
    from listings.inflight import InFlightGuard
    from listings.upgrade import MSG_IN_PROGRESS

    guard = InFlightGuard()
    backend = _RecordingBackend(_rows())
    backend.release_upload = asyncio.Event()
    notifier = _RecordingNotifier()

    first = _form(backend, notifier, guard=guard)
    second = _form(backend, notifier, guard=guard)

    task = asyncio.create_task(first.submit())
    for _ in range(10):
        await asyncio.sleep(0)
        if "upload" in backend.ops():
            break
    _assert(first.loading, "first submission must be loading while upload is pending")
    calls_before = list(backend.calls)
    _assert(await second.submit() is False, "second submission must be rejected while in flight")
    _assert(backend.calls == calls_before, "rejected submission must not call the backend")
    _assert(MSG_IN_PROGRESS in notifier.errors, f"in-progress notice expected: {notifier.errors}")

    backend.release_upload.set()
    _assert(await task is True, "first submission must finish")
    _assert(not guard.is_busy(("upgrade", "L1")), "guard must be released after submission")


async def _run_checks() -> None:
    await _check_validation()
    await _check_expired_listing_scenario()
    await _check_active_listing_scenario()
    await _check_failures()
    await _check_confirmation_view()
    await _check_in_flight_guard()


def test_upgrade_submission_flow() -> None:
    asyncio.run(_run_checks())


def main() -> None:
    test_upgrade_submission_flow()
    print("OK: upgrade submission flow smoke passed.")


if __name__ == "__main__":
    main()

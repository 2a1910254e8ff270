#!/usr/bin/env python3
"""
Smoke test: expiry rules applied on upgrade submission.

Validates:
- POS+Website expiry is always submission time + 30 days;
- listing expiry is extended to today + 365 (date only) only when already past;
- future, missing and unparseable listing expiries are left untouched;
- amounts and receipt storage keys are normalized;
- ordinal date formatting used by the confirmation screen.

Run:
  python3 scripts/smoke_listing_expiry_rules.py
"""

from __future__ import annotations

import sys
from datetime import date, datetime, timedelta, timezone
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

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def test_odoo_expiry_is_thirty_days_from_submission() -> None:
    from listings.expiry import odoo_expired_at

    _assert(odoo_expired_at(NOW) == NOW + timedelta(days=30), "odoo expiry must be now + 30 days")


def test_listing_expiry_extension_rules() -> None:
    from listings.expiry import extended_listing_expiry

    expected = date(2027, 10, 19)
    yesterday = (NOW - timedelta(days=1)).date().isoformat()
    next_year = (NOW + timedelta(days=365)).date().isoformat()

    _assert(extended_listing_expiry(yesterday, NOW) == expected, "past date-only expiry must be extended")
    _assert(
        extended_listing_expiry("2026-10-19T15:29:00Z", NOW) == expected,
        "expiry one minute in the past must be extended",
    )
    _assert(extended_listing_expiry(next_year, NOW) is None, "future expiry must stay untouched")
    _assert(extended_listing_expiry(None, NOW) is None, "missing expiry must stay untouched")
    _assert(extended_listing_expiry("", NOW) is None, "empty expiry must stay untouched")
    _assert(extended_listing_expiry("not-a-date", NOW) is None, "garbage expiry must stay untouched")
    # Today's date means midnight UTC, which is already behind 15:30.
    _assert(extended_listing_expiry("2026-10-19", NOW) == expected, "today's date-only expiry is in the past")


def test_build_upgrade_update_fields() -> None:
    from listings.upgrade import build_upgrade_update

    expired = build_upgrade_update(
        receipt_url="https://cdn.test/r.pdf",
        now=NOW,
        current_listing_expired_date="2020-01-01",
    )
    _assert(expired["payment_status"] == "to_be_confirmed", f"bad status: {expired}")
    _assert(expired["POS+Website"] == 1, f"add-on flag must be enabled: {expired}")
    _assert(expired["receipt_url"] == "https://cdn.test/r.pdf", f"bad receipt url: {expired}")
    _assert(expired["last_payment_date"] == NOW.isoformat(), f"bad last payment date: {expired}")
    _assert(
        expired["odoo_expired_date"] == (NOW + timedelta(days=30)).isoformat(),
        f"bad odoo expiry: {expired}",
    )
    _assert(expired["listing_expired_date"] == "2027-10-19", f"bad listing expiry: {expired}")

    active = build_upgrade_update(
        receipt_url="https://cdn.test/r.pdf",
        now=NOW,
        current_listing_expired_date="2030-01-01",
    )
    _assert("listing_expired_date" not in active, f"active listing expiry must be omitted: {active}")
    _assert(len(active) == 5, f"unexpected update fields: {sorted(active)}")


def test_amount_parsing() -> None:
    from decimal import Decimal

    from listings.upgrade import parse_amount

    _assert(parse_amount("49.99") == Decimal("49.99"), "plain amount")
    _assert(parse_amount(" $49,99 ") == Decimal("49.99"), "dollar sign and comma decimal")
    _assert(parse_amount("100") == Decimal("100"), "integer amount")
    for raw in ("", "   ", "abc", "0", "-5", "1.999", "NaN", "Infinity", None):
        _assert(parse_amount(raw) is None, f"amount {raw!r} must be rejected")


def test_receipt_object_paths_are_unique() -> None:
    from listings.upgrade import receipt_object_path

    first = receipt_object_path("biz-1", "Receipt.PDF", "application/pdf")
    second = receipt_object_path("biz-1", "Receipt.PDF", "application/pdf")
    _assert(first != second, "two uploads for the same business must not collide")
    _assert(first.startswith("receipts/biz-1-") and first.endswith(".pdf"), f"bad key: {first}")

    photo = receipt_object_path("biz-1", "", "image/jpeg", prefix="custom/")
    _assert(photo.startswith("custom/biz-1-"), f"custom prefix ignored: {photo}")
    _assert(photo.endswith(".jpg"), f"extension must come from content type: {photo}")

    unknown = receipt_object_path("biz-1", "scan", "application/x-unknown-type")
    _assert(unknown.endswith(".bin"), f"unknown types fall back to .bin: {unknown}")


def test_ordinal_date_formatting() -> None:
    from listings.expiry import format_date_with_ordinal

    cases = {
        "2026-11-01": "November 1st, 2026",
        "2026-11-02": "November 2nd, 2026",
        "2026-11-03": "November 3rd, 2026",
        "2026-11-04": "November 4th, 2026",
        "2026-11-11": "November 11th, 2026",
        "2026-11-12": "November 12th, 2026",
        "2026-11-13": "November 13th, 2026",
        "2026-11-21": "November 21st, 2026",
        "2026-11-22T10:00:00+00:00": "November 22nd, 2026",
        "2026-11-23": "November 23rd, 2026",
    }
    for raw, expected in cases.items():
        got = format_date_with_ordinal(raw)
        _assert(got == expected, f"{raw}: expected {expected!r}, got {got!r}")
    _assert(format_date_with_ordinal("") == "", "empty input renders nothing")


def main() -> None:
    test_odoo_expiry_is_thirty_days_from_submission()
    test_listing_expiry_extension_rules()
    test_build_upgrade_update_fields()
    test_amount_parsing()
    test_receipt_object_paths_are_unique()
    test_ordinal_date_formatting()
    print("OK: listing expiry rules smoke passed.")


if __name__ == "__main__":
    main()

"""Expiry date rules applied on every upgrade submission."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any


logger = logging.getLogger(__name__)

ODOO_ACCESS_DAYS = 30
LISTING_EXTENSION_DAYS = 365


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_stored_datetime(raw_value: Any) -> datetime | None:
    """Parse a stored date/timestamp as an aware UTC datetime.

    Date-only values mean midnight UTC, naive timestamps are UTC.
    """
    if raw_value is None:
        return None
    if isinstance(raw_value, datetime):
        parsed = raw_value
    elif isinstance(raw_value, date):
        parsed = datetime(raw_value.year, raw_value.month, raw_value.day)
    else:
        text = str(raw_value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Ignoring unparseable stored date: %r", raw_value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def odoo_expired_at(now: datetime) -> datetime:
    """POS+Website access always runs 30 days from the latest submission."""
    return now + timedelta(days=ODOO_ACCESS_DAYS)


def extended_listing_expiry(current_value: Any, now: datetime) -> date | None:
    """New listing expiry date, or None when the stored one must stay untouched.

    Only a stored expiry that is already in the past gets extended.
    """
    current = parse_stored_datetime(current_value)
    if current is None or current >= now:
        return None
    return (now + timedelta(days=LISTING_EXTENSION_DAYS)).astimezone(timezone.utc).date()


def ordinal_suffix(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def format_date_with_ordinal(value: Any) -> str:
    """Render a date like `November 18th, 2026`; empty string if unparseable."""
    parsed = parse_stored_datetime(value)
    if parsed is None:
        return ""
    return f"{parsed.strftime('%B')} {parsed.day}{ordinal_suffix(parsed.day)}, {parsed.year}"


def format_short_date(value: Any) -> str | None:
    parsed = parse_stored_datetime(value)
    if parsed is None:
        return None
    return parsed.strftime("%d.%m.%Y")

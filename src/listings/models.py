"""Listing domain models used by the upgrade form and the admin list."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any


PAYMENT_STATUS_NONE = "none"
PAYMENT_STATUS_TO_BE_CONFIRMED = "to_be_confirmed"
PAYMENT_STATUS_CONFIRMED = "confirmed"
PAYMENT_STATUSES = {PAYMENT_STATUS_NONE, PAYMENT_STATUS_TO_BE_CONFIRMED, PAYMENT_STATUS_CONFIRMED}

# Column names as they exist in the businesses table.
FIELD_RECEIPT_URL = "receipt_url"
FIELD_PAYMENT_STATUS = "payment_status"
FIELD_LAST_PAYMENT_DATE = "last_payment_date"
FIELD_LISTING_EXPIRED_DATE = "listing_expired_date"
FIELD_ODOO_EXPIRED_DATE = "odoo_expired_date"
FIELD_POS_WEBSITE = "POS+Website"


@dataclass(slots=True)
class PendingListing:
    """One row of the pending-confirmation aggregation."""

    id: str
    name: str
    owner_id: str | None = None
    user_email: str | None = None
    receipt_url: str | None = None
    payment_status: str = PAYMENT_STATUS_TO_BE_CONFIRMED
    created_at: str | None = None
    listing_expired_date: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PendingListing":
        def _opt(key: str) -> str | None:
            value = row.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            id=str(row.get("id") or ""),
            name=str(row.get("name") or "").strip(),
            owner_id=_opt("owner_id"),
            user_email=_opt("user_email"),
            receipt_url=_opt("receipt_url"),
            payment_status=_opt("payment_status") or PAYMENT_STATUS_TO_BE_CONFIRMED,
            created_at=_opt("created_at"),
            listing_expired_date=_opt("listing_expired_date"),
        )


@dataclass(frozen=True)
class ReceiptFile:
    """Proof-of-payment file picked by the owner; bytes are loaded on submit."""

    name: str
    content_type: str
    load: Callable[[], Awaitable[bytes]]

"""Upgrade submission form: receipt upload and payment field update."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import PurePath
from typing import Any

from backend.base import ListingBackend
from config import SUCCESS_VIEW_CLOSE, SUCCESS_VIEW_CONFIRMATION
from listings.expiry import extended_listing_expiry, odoo_expired_at, utc_now
from listings.inflight import InFlightGuard
from listings.models import (
    FIELD_LAST_PAYMENT_DATE,
    FIELD_LISTING_EXPIRED_DATE,
    FIELD_ODOO_EXPIRED_DATE,
    FIELD_PAYMENT_STATUS,
    FIELD_POS_WEBSITE,
    FIELD_RECEIPT_URL,
    PAYMENT_STATUS_TO_BE_CONFIRMED,
    ReceiptFile,
)
from listings.notify import Notifier


logger = logging.getLogger(__name__)

MSG_MISSING_FIELDS = "Please fill in all fields and upload a receipt"
MSG_INVALID_AMOUNT = "Please enter a valid total amount, e.g. 49.99"
MSG_IN_PROGRESS = "Your receipt is already being uploaded. Please wait."
MSG_SUBMITTED = (
    "Receipt uploaded successfully. Your upgrade request has been submitted for admin confirmation."
)
MSG_FAILED = "Failed to upload receipt. Please try again."

DEFAULT_RECEIPTS_PREFIX = "receipts"
FALLBACK_EXTENSION = ".bin"


def parse_amount(raw_value: str | None) -> Decimal | None:
    """Parse a positive money amount with at most two decimals."""
    text = str(raw_value or "").strip().replace(" ", "").lstrip("$").replace(",", ".")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    if amount.as_tuple().exponent < -2:
        return None
    return amount


def receipt_extension(file_name: str, content_type: str) -> str:
    suffix = PurePath(file_name or "").suffix.lower()
    if suffix and len(suffix) <= 10:
        return suffix
    guessed = mimetypes.guess_extension(content_type or "")
    if guessed == ".jpe":
        guessed = ".jpg"
    return guessed or FALLBACK_EXTENSION


def receipt_object_path(
    business_id: str,
    file_name: str,
    content_type: str,
    *,
    prefix: str = DEFAULT_RECEIPTS_PREFIX,
) -> str:
    """Storage key `<prefix>/<business_id>-<uuid><ext>`, unique per upload."""
    key = f"{business_id}-{uuid.uuid4().hex}{receipt_extension(file_name, content_type)}"
    prefix = prefix.strip("/")
    return f"{prefix}/{key}" if prefix else key


def build_upgrade_update(
    *,
    receipt_url: str,
    now: datetime,
    current_listing_expired_date: Any,
) -> dict[str, Any]:
    """Combined record update applied by a successful submission."""
    values: dict[str, Any] = {
        FIELD_RECEIPT_URL: receipt_url,
        FIELD_PAYMENT_STATUS: PAYMENT_STATUS_TO_BE_CONFIRMED,
        FIELD_LAST_PAYMENT_DATE: now.isoformat(),
        FIELD_ODOO_EXPIRED_DATE: odoo_expired_at(now).isoformat(),
        FIELD_POS_WEBSITE: 1,
    }
    new_listing_expiry = extended_listing_expiry(current_listing_expired_date, now)
    if new_listing_expiry is not None:
        values[FIELD_LISTING_EXPIRED_DATE] = new_listing_expiry.isoformat()
    return values


class UpgradeSubmissionForm:
    """State and submit action of the owner's upgrade request form."""

    def __init__(
        self,
        business_id: str,
        business_name: str,
        *,
        backend: ListingBackend,
        notifier: Notifier,
        guard: InFlightGuard | None = None,
        success_view: str = SUCCESS_VIEW_CLOSE,
        receipts_prefix: str = DEFAULT_RECEIPTS_PREFIX,
        clock: Callable[[], datetime] = utc_now,
        on_success: Callable[[], Awaitable[None]] | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.business_id = str(business_id)
        self.business_name = business_name
        self.backend = backend
        self.notifier = notifier
        self.guard = guard or InFlightGuard()
        self.success_view = success_view
        self.receipts_prefix = receipts_prefix
        self.clock = clock
        self.on_success = on_success
        self.on_close = on_close

        self.total_amount = ""
        self.receipt: ReceiptFile | None = None
        self.loading = False
        self.submitted = False
        self.odoo_expired_date = ""
        self.is_open = True

    def validation_error(self) -> str | None:
        if self.receipt is None or not self.total_amount.strip():
            return MSG_MISSING_FIELDS
        if parse_amount(self.total_amount) is None:
            return MSG_INVALID_AMOUNT
        return None

    async def close(self) -> None:
        self.is_open = False
        if self.on_close is not None:
            await self.on_close()

    async def submit(self) -> bool:
        """Run the submission; returns True when the record was updated."""
        error = self.validation_error()
        if error is not None:
            await self.notifier.error(error)
            return False

        with self.guard.claim(("upgrade", self.business_id)) as claimed:
            if not claimed or self.loading:
                await self.notifier.error(MSG_IN_PROGRESS)
                return False
            self.loading = True
            try:
                updated = await self._submit()
            except Exception:
                logger.exception("Error uploading receipt for business %s", self.business_id)
                await self.notifier.error(MSG_FAILED)
                return False
            finally:
                self.loading = False

        await self.notifier.success(MSG_SUBMITTED)
        if self.success_view == SUCCESS_VIEW_CONFIRMATION:
            self.submitted = True
            self.odoo_expired_date = str(updated.get(FIELD_ODOO_EXPIRED_DATE) or "")
        else:
            await self.close()
        # Parent refresh runs after the form is gone.
        if self.on_success is not None:
            await self.on_success()
        return True

    async def _submit(self) -> dict[str, Any]:
        if self.receipt is None:
            raise ValueError("receipt is required")
        current = await self.backend.fetch_business(self.business_id, (FIELD_LISTING_EXPIRED_DATE,))

        path = receipt_object_path(
            self.business_id,
            self.receipt.name,
            self.receipt.content_type,
            prefix=self.receipts_prefix,
        )
        data = await self.receipt.load()
        stored_path = await self.backend.upload_object(path, data, content_type=self.receipt.content_type)
        receipt_url = self.backend.public_url(stored_path)

        values = build_upgrade_update(
            receipt_url=receipt_url,
            now=self.clock(),
            current_listing_expired_date=current.get(FIELD_LISTING_EXPIRED_DATE),
        )
        updated = await self.backend.update_business(self.business_id, values)
        logger.info(
            "Upgrade request submitted: business=%s amount=%s receipt=%s listing_extended=%s",
            self.business_id,
            parse_amount(self.total_amount),
            stored_path,
            FIELD_LISTING_EXPIRED_DATE in values,
        )
        # Some backends return only a subset of columns; keep the computed value then.
        merged = dict(values)
        merged.update({k: v for k, v in (updated or {}).items() if v is not None})
        return merged

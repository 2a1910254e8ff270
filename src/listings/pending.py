"""Admin list of listings whose payment awaits confirmation."""

from __future__ import annotations

import logging

from backend.base import ListingBackend
from listings.inflight import InFlightGuard
from listings.models import FIELD_PAYMENT_STATUS, PAYMENT_STATUS_CONFIRMED, PendingListing
from listings.notify import EditNavigator, Notifier


logger = logging.getLogger(__name__)

DEFAULT_PENDING_PROCEDURE = "get_pending_businesses_with_emails"

MSG_FETCH_FAILED = "Failed to fetch pending listings"
MSG_CONFIRMED = "Payment confirmed successfully"
MSG_CONFIRM_FAILED = "Failed to confirm payment"
MSG_DELETED = "Listing deleted successfully"
MSG_DELETE_FAILED = "Failed to delete listing"
MSG_BUSY = "This listing is already being updated. Please wait."
MSG_DELETE_PROMPT = "Are you sure you want to delete this listing? This action cannot be undone."


class PendingConfirmationList:
    """Loads pending listings and runs confirm/edit/delete row actions.

    Only the first load is shown with a spinner (`loading`); reloads after an
    action are silent and simply replace `listings`.

    Actions report to `notifier` unless the caller passes its own, so
    concurrent actions on one list each keep their notes.
    """

    def __init__(
        self,
        *,
        backend: ListingBackend,
        notifier: Notifier,
        navigator: EditNavigator,
        guard: InFlightGuard | None = None,
        procedure: str = DEFAULT_PENDING_PROCEDURE,
    ) -> None:
        self.backend = backend
        self.notifier = notifier
        self.navigator = navigator
        self.guard = guard or InFlightGuard()
        self.procedure = procedure
        self.listings: list[PendingListing] = []
        self.loading = True

    def find(self, business_id: str) -> PendingListing | None:
        for listing in self.listings:
            if listing.id == str(business_id):
                return listing
        return None

    async def load(self, *, notifier: Notifier | None = None) -> list[PendingListing]:
        notifier = self.notifier if notifier is None else notifier
        try:
            rows = await self.backend.call_procedure(self.procedure)
            self.listings = [PendingListing.from_row(row) for row in rows or []]
        except Exception:
            logger.exception("Error fetching pending listings")
            await notifier.error(MSG_FETCH_FAILED)
        finally:
            self.loading = False
        return self.listings

    async def confirm(self, business_id: str, *, notifier: Notifier | None = None) -> bool:
        notifier = self.notifier if notifier is None else notifier
        with self.guard.claim(("listing", str(business_id))) as claimed:
            if not claimed:
                await notifier.error(MSG_BUSY)
                return False
            try:
                await self.backend.update_business(
                    str(business_id), {FIELD_PAYMENT_STATUS: PAYMENT_STATUS_CONFIRMED}
                )
            except Exception:
                logger.exception("Error confirming payment for business %s", business_id)
                await notifier.error(MSG_CONFIRM_FAILED)
                return False
        logger.info("Payment confirmed for business %s", business_id)
        await notifier.success(MSG_CONFIRMED)
        await self.load(notifier=notifier)
        return True

    def edit(self, business_id: str) -> str:
        """URL of the external editor for the listing."""
        return self.navigator.edit_url(str(business_id))

    async def delete(self, business_id: str, *, accepted: bool, notifier: Notifier | None = None) -> bool:
        """Delete after the interactive prompt; a declined prompt touches nothing."""
        if not accepted:
            return False
        notifier = self.notifier if notifier is None else notifier
        with self.guard.claim(("listing", str(business_id))) as claimed:
            if not claimed:
                await notifier.error(MSG_BUSY)
                return False
            try:
                await self.backend.delete_business(str(business_id))
            except Exception:
                logger.exception("Error deleting business %s", business_id)
                await notifier.error(MSG_DELETE_FAILED)
                return False
        logger.info("Business %s deleted from pending confirmation list", business_id)
        await notifier.success(MSG_DELETED)
        await self.load(notifier=notifier)
        return True

"""Listing upgrade workflow: owner submission form and admin confirmation list."""

from listings.inflight import InFlightGuard
from listings.models import PendingListing, ReceiptFile
from listings.notify import EditNavigator, NoteNotifier
from listings.pending import PendingConfirmationList
from listings.upgrade import UpgradeSubmissionForm

__all__ = [
    "EditNavigator",
    "InFlightGuard",
    "NoteNotifier",
    "PendingConfirmationList",
    "PendingListing",
    "ReceiptFile",
    "UpgradeSubmissionForm",
]

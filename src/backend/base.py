"""Base contracts for the listings backend (tables, storage, procedures)."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol


class BackendError(RuntimeError):
    """Raised when the backend rejects or fails a request."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class BackendNotFoundError(BackendError):
    """Raised when a row/procedure/object addressed by the request doesn't exist."""


class ListingBackend(Protocol):
    """Backend surface consumed by the upgrade form and the admin list."""

    backend_name: str

    async def fetch_business(self, business_id: str, columns: Sequence[str]) -> dict[str, Any]:
        """Return exactly one business row restricted to `columns`."""

    async def update_business(self, business_id: str, values: dict[str, Any]) -> dict[str, Any]:
        """Apply `values` to one business row and return the updated row."""

    async def delete_business(self, business_id: str) -> None:
        """Permanently remove one business row."""

    async def upload_object(self, path: str, data: bytes, *, content_type: str) -> str:
        """Store `data` in the assets bucket under `path`; return the stored path."""

    def public_url(self, path: str) -> str:
        """Public URL of an object stored under `path`."""

    async def call_procedure(self, name: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Call a named remote procedure returning rows."""

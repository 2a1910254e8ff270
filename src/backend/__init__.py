"""Listings backend adapters and the config-driven factory."""

from config import BACKEND_LOCAL, CFG, DB_PATH

from .base import BackendError, BackendNotFoundError, ListingBackend
from .local import LocalBackend
from .supabase import SupabaseBackend


def get_backend() -> ListingBackend:
    """Resolve the backend selected by BACKEND_PROVIDER."""
    if CFG.backend_provider == BACKEND_LOCAL:
        return LocalBackend(
            db_path=DB_PATH,
            storage_dir=CFG.local_storage_dir,
            public_base_url=CFG.local_storage_public_url,
            table=CFG.businesses_table,
            bucket=CFG.storage_bucket,
        )
    return SupabaseBackend(
        url=CFG.supabase_url,
        api_key=CFG.supabase_key,
        table=CFG.businesses_table,
        bucket=CFG.storage_bucket,
        timeout_sec=CFG.backend_timeout_sec,
    )


__all__ = [
    "BackendError",
    "BackendNotFoundError",
    "ListingBackend",
    "LocalBackend",
    "SupabaseBackend",
    "get_backend",
]

import os
from pathlib import Path
from dataclasses import dataclass

from dotenv import load_dotenv

# .env is loaded from the working directory (where the bot is started)
env_path = Path.cwd() / ".env"
load_dotenv(env_path)


BACKEND_SUPABASE = "supabase"
BACKEND_LOCAL = "local"
SUPPORTED_BACKENDS = {BACKEND_SUPABASE, BACKEND_LOCAL}

SUCCESS_VIEW_CLOSE = "close"
SUCCESS_VIEW_CONFIRMATION = "confirmation"
SUPPORTED_SUCCESS_VIEWS = {SUCCESS_VIEW_CLOSE, SUCCESS_VIEW_CONFIRMATION}


@dataclass
class Config:
    # Bots
    owner_bot_api_key: str
    admin_bot_api_key: str
    admin_ids: list[int]
    single_message_mode: bool
    # Backend
    backend_provider: str
    supabase_url: str
    supabase_key: str
    backend_timeout_sec: int
    businesses_table: str
    storage_bucket: str
    receipts_prefix: str
    pending_procedure: str
    # Local backend (development / smoke tests)
    local_storage_dir: str
    local_storage_public_url: str
    # Workflow
    site_url: str
    upgrade_success_view: str
    pending_page_size: int


def _clean(value: str | None, default: str = "") -> str:
    if value is None:
        return default
    return value.strip().strip('"').strip("'") or default


def parse_admin_ids(env_value: str) -> list[int]:
    """Parse admin ids from a comma/space separated string."""
    if not env_value:
        return []
    env_value = env_value.strip().strip('"').strip("'")
    ids = [id.strip() for id in env_value.replace(",", " ").split()]
    return [int(id) for id in ids if id.isdigit()]


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean env value."""
    if value is None:
        return default
    value = value.strip().strip('"').strip("'").lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    return default


def parse_int(value: str | None, default: int) -> int:
    """Parse an int env value, falling back to default on garbage."""
    if value is None:
        return default
    value = value.strip().strip('"').strip("'")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_choice(value: str | None, allowed: set[str], default: str) -> str:
    normalized = _clean(value, default).lower()
    return normalized if normalized in allowed else default


CFG = Config(
    owner_bot_api_key=_clean(os.getenv("OWNER_BOT_API_KEY")),
    admin_bot_api_key=_clean(os.getenv("ADMIN_BOT_API_KEY")),
    admin_ids=parse_admin_ids(os.getenv("ADMIN_IDS", "")),
    single_message_mode=parse_bool(os.getenv("SINGLE_MESSAGE_MODE", "1"), default=True),
    backend_provider=parse_choice(os.getenv("BACKEND_PROVIDER"), SUPPORTED_BACKENDS, BACKEND_SUPABASE),
    supabase_url=_clean(os.getenv("SUPABASE_URL")).rstrip("/"),
    supabase_key=_clean(os.getenv("SUPABASE_KEY")),
    backend_timeout_sec=max(1, parse_int(os.getenv("BACKEND_TIMEOUT_SEC"), 15)),
    businesses_table=_clean(os.getenv("BUSINESSES_TABLE"), "businesses"),
    storage_bucket=_clean(os.getenv("STORAGE_BUCKET"), "business-assets"),
    receipts_prefix=_clean(os.getenv("RECEIPTS_PREFIX"), "receipts").strip("/"),
    pending_procedure=_clean(os.getenv("PENDING_PROCEDURE"), "get_pending_businesses_with_emails"),
    local_storage_dir=_clean(os.getenv("LOCAL_STORAGE_DIR"), str(Path.cwd() / "storage")),
    local_storage_public_url=_clean(os.getenv("LOCAL_STORAGE_PUBLIC_URL"), "http://localhost:8000/storage").rstrip("/"),
    site_url=_clean(os.getenv("SITE_URL")).rstrip("/"),
    upgrade_success_view=parse_choice(
        os.getenv("UPGRADE_SUCCESS_VIEW"), SUPPORTED_SUCCESS_VIEWS, SUCCESS_VIEW_CLOSE
    ),
    pending_page_size=max(1, min(parse_int(os.getenv("PENDING_PAGE_SIZE"), 5), 10)),
)

# Local state DB path: from env or relative to the working directory
DB_PATH = os.getenv("DB_PATH", str(Path.cwd() / "state.db"))


def is_owner_bot_enabled() -> bool:
    """Owner bot process is enabled only with a non-empty token."""
    return bool(CFG.owner_bot_api_key)


def is_admin_bot_enabled() -> bool:
    """Admin bot process is enabled only with a non-empty token."""
    return bool(CFG.admin_bot_api_key)

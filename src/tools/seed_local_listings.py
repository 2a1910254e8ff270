"""Seed the local backend with demo businesses for manual bot testing.

Usage:
    BACKEND_PROVIDER=local python src/tools/seed_local_listings.py [--pending 3] [--reset]
"""

import argparse
import asyncio
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config import DB_PATH
from database import init_db, open_db


async def seed(pending: int, idle: int, reset: bool) -> list[str]:
    await init_db()
    now = datetime.now(timezone.utc)
    created: list[str] = []
    async with open_db() as db:
        if reset:
            await db.execute("DELETE FROM businesses")
            await db.execute("DELETE FROM profiles")
        for idx in range(pending + idle):
            business_id = str(uuid.uuid4())
            owner_id = str(uuid.uuid4())
            is_pending = idx < pending
            await db.execute(
                "INSERT INTO profiles(id, email) VALUES(?, ?)",
                (owner_id, f"owner{idx + 1}@example.com" if idx % 3 != 2 else None),
            )
            # Alternate expired / still active listings so both extension paths can be tried.
            listing_expiry = (now + timedelta(days=-10 if idx % 2 == 0 else 200)).date().isoformat()
            await db.execute(
                """
                INSERT INTO businesses(
                    id, name, owner_id, receipt_url, payment_status, created_at, listing_expired_date
                ) VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    business_id,
                    f"Demo Shop {idx + 1}",
                    owner_id,
                    None,
                    "to_be_confirmed" if is_pending else "none",
                    (now - timedelta(days=idx)).isoformat(),
                    listing_expiry,
                ),
            )
            created.append(business_id)
        await db.commit()
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed local listings backend")
    parser.add_argument("--pending", type=int, default=3, help="Listings awaiting confirmation")
    parser.add_argument("--idle", type=int, default=2, help="Listings without a payment")
    parser.add_argument("--reset", action="store_true", help="Drop existing businesses/profiles first")
    args = parser.parse_args()

    ids = asyncio.run(seed(max(0, args.pending), max(0, args.idle), args.reset))
    print(f"Seeded {len(ids)} businesses into {DB_PATH}:")
    for business_id in ids:
        print(f"  /upgrade {business_id}")


if __name__ == "__main__":
    main()

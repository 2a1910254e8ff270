#!/usr/bin/env python3
"""
Dynamic smoke test: admin bot pending-confirmation handlers on the local backend.

Validates:
- non-admins are rejected before anything is loaded;
- `/pending` renders a spinner, then the paged list with row details;
- confirm updates payment_status, re-fetches and shows the success note;
- edit shows the editor path as an alert, or a URL button for absolute sites;
- delete asks first; declining keeps the row, accepting removes it;
- the empty list renders the empty state;
- overlapping confirm and delete each render their own note.

Run:
  python3 scripts/smoke_admin_pending_handler_flow.py
"""

from __future__ import annotations

import asyncio
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace


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

ADMIN_ID = 42
STRANGER_ID = 777


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _message(user_id: int):
    answers: list[str] = []

    async def _answer(text: str, **_kwargs):
        answers.append(text)

    return SimpleNamespace(
        bot=SimpleNamespace(),
        chat=SimpleNamespace(id=user_id),
        from_user=SimpleNamespace(id=user_id, is_bot=False),
        message_id=10,
        text="/pending",
        answer=_answer,
        answers=answers,
    )


def _callback(data: str, user_id: int = ADMIN_ID):
    answers: list[dict] = []

    async def _answer(text: str | None = None, show_alert: bool = False, **_kwargs):
        answers.append({"text": str(text or ""), "show_alert": show_alert})

    return SimpleNamespace(
        bot=SimpleNamespace(),
        data=data,
        from_user=SimpleNamespace(id=user_id),
        message=SimpleNamespace(chat=SimpleNamespace(id=user_id), message_id=900),
        answer=_answer,
        answers=answers,
    )


async def _seed(db_path: str) -> None:
    from database import init_db, open_db

    await init_db(db_path)
    async with open_db(db_path) as db:
        await db.executemany(
            "INSERT INTO profiles(id, email) VALUES(?, ?)",
            [("U1", "owner1@example.com"), ("U2", None)],
        )
        await db.executemany(
            """
            INSERT INTO businesses(id, name, owner_id, receipt_url, payment_status, created_at, listing_expired_date)
            VALUES(?, ?, ?, ?, ?, ?, ?)
            """,
            [
                ("B1", "Bakery", "U1", "https://cdn.test/r1.pdf", "to_be_confirmed", "2026-10-19T08:00:00+00:00", "2027-10-19"),
                ("B2", "Barber", "U2", None, "to_be_confirmed", "2026-10-18T08:00:00+00:00", None),
                ("B3", "Cafe", None, None, "to_be_confirmed", "2026-10-17T08:00:00+00:00", None),
                ("B4", "Deli", "U1", None, "confirmed", "2026-10-16T08:00:00+00:00", None),
            ],
        )
        await db.commit()


class _GatedBackend:
    """Local backend whose updates wait until `gate` is set."""

    backend_name = "gated"

    def __init__(self, inner) -> None:
        self.inner = inner
        self.gate = asyncio.Event()
        self.waiting = False

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def update_business(self, business_id, values):
        self.waiting = True
        await self.gate.wait()
        return await self.inner.update_business(business_id, values)


def _buttons(markup) -> list:
    if markup is None:
        return []
    return [button for row in markup.inline_keyboard for button in row]


def _callbacks(markup) -> list[str]:
    return [button.callback_data for button in _buttons(markup) if button.callback_data]


async def _run_checks(tmp: Path) -> None:
    import admin.handlers as ah
    from backend import BackendNotFoundError, LocalBackend
    from config import CFG
    from database import open_db
    from listings.pending import MSG_CONFIRMED, MSG_DELETE_PROMPT, MSG_DELETED

    db_path = str(tmp / "listings.db")
    await _seed(db_path)
    local_backend = LocalBackend(db_path=db_path, storage_dir=str(tmp / "storage"), public_base_url="http://files.test")

    renders: list[dict] = []

    async def _fake_ui_render(bot, *, scope: str, chat_id: int, text: str, reply_markup=None, prefer_message_id=None):
        renders.append({"scope": scope, "chat_id": chat_id, "text": text, "reply_markup": reply_markup})
        return 900

    async def _fake_try_delete(_message):
        return None

    originals = (
        ah.backend,
        ah.ui_render,
        ah.try_delete_user_message,
        dict(ah.views),
        list(CFG.admin_ids),
        CFG.pending_page_size,
        CFG.site_url,
    )
    ah.backend = local_backend
    ah.ui_render = _fake_ui_render
    ah.try_delete_user_message = _fake_try_delete
    ah.views.clear()
    CFG.admin_ids = [ADMIN_ID]
    CFG.pending_page_size = 2
    CFG.site_url = ""
    try:
        # Access control
        stranger = _message(STRANGER_ID)
        await ah.cmd_pending(stranger)
        _assert(stranger.answers and "Admins only" in stranger.answers[0], f"stranger must be rejected: {stranger.answers}")
        _assert(not renders, "nothing rendered for strangers")
        denied = _callback(f"{ah.CB_CONFIRM_PREFIX}B1:0", user_id=STRANGER_ID)
        await ah.cb_confirm(denied)
        _assert(denied.answers[-1]["show_alert"], "callback from stranger must alert")

        # Initial load: spinner, then first page
        await ah.cmd_pending(_message(ADMIN_ID))
        _assert("Loading..." in renders[-2]["text"], f"spinner expected first: {renders[-2]['text']}")
        first_page = renders[-1]
        _assert(first_page["scope"] == "admin_ui", "admin scope expected")
        _assert("(3)" in first_page["text"], f"three pending listings expected: {first_page['text']}")
        _assert("Bakery" in first_page["text"] and "Barber" in first_page["text"], "first page rows")
        _assert("Cafe" not in first_page["text"], "third row belongs to page two")
        _assert("owner1@example.com" in first_page["text"] and "View Receipt" in first_page["text"], "B1 details")
        _assert("No email provided" in first_page["text"] and "No receipt" in first_page["text"], "B2 fallbacks")
        _assert("Deli" not in first_page["text"], "confirmed listings are not pending")
        _assert(f"{ah.CB_PAGE_PREFIX}1" in _callbacks(first_page["reply_markup"]), "pager to page two expected")

        await ah.cb_page(_callback(f"{ah.CB_PAGE_PREFIX}1"))
        _assert("3. Cafe" in renders[-1]["text"], f"page two shows row 3: {renders[-1]['text']}")

        # Edit without an absolute site url: alert with the editor path
        edit = _callback(f"{ah.CB_EDIT_PREFIX}B2:0")
        await ah.cb_edit(edit)
        _assert(edit.answers[-1]["show_alert"] and "/business/B2/edit" in edit.answers[-1]["text"], f"edit alert: {edit.answers}")

        # Confirm
        await ah.cb_confirm(_callback(f"{ah.CB_CONFIRM_PREFIX}B1:0"))
        row = await local_backend.fetch_business("B1", ("payment_status",))
        _assert(row["payment_status"] == "confirmed", f"B1 must be confirmed: {row}")
        _assert(MSG_CONFIRMED in renders[-1]["text"] and "(2)" in renders[-1]["text"], f"after confirm: {renders[-1]['text']}")

        # Delete: prompt, decline, accept
        await ah.cb_delete_prompt(_callback(f"{ah.CB_DELETE_PREFIX}B2:0"))
        prompt = renders[-1]
        _assert(MSG_DELETE_PROMPT in prompt["text"] and "Barber" in prompt["text"], f"delete prompt: {prompt['text']}")
        _assert(
            _callbacks(prompt["reply_markup"]) == [f"{ah.CB_DELETE_YES_PREFIX}B2:0", f"{ah.CB_DELETE_NO_PREFIX}B2:0"],
            f"prompt buttons: {_callbacks(prompt['reply_markup'])}",
        )

        await ah.cb_delete_decline(_callback(f"{ah.CB_DELETE_NO_PREFIX}B2:0"))
        await local_backend.fetch_business("B2", ("id",))
        _assert("Barber" in renders[-1]["text"], "declined delete keeps the row")

        await ah.cb_delete_accept(_callback(f"{ah.CB_DELETE_YES_PREFIX}B2:0"))
        try:
            await local_backend.fetch_business("B2", ("id",))
        except BackendNotFoundError:
            pass
        else:
            raise AssertionError("accepted delete must remove B2")
        _assert(MSG_DELETED in renders[-1]["text"] and "(1)" in renders[-1]["text"], f"after delete: {renders[-1]['text']}")

        # Absolute site url: edit is a URL button
        CFG.site_url = "https://listings.test"
        await ah.cb_refresh(_callback(ah.CB_REFRESH))
        urls = [button.url for button in _buttons(renders[-1]["reply_markup"]) if button.url]
        _assert(urls == ["https://listings.test/business/B3/edit"], f"edit url buttons: {urls}")

        # Empty state
        await ah.cb_confirm(_callback(f"{ah.CB_CONFIRM_PREFIX}B3:0"))
        _assert("No listings pending confirmation" in renders[-1]["text"], f"empty state: {renders[-1]['text']}")
        _assert(_callbacks(renders[-1]["reply_markup"]) == [ah.CB_REFRESH], "empty list keeps only Refresh")

        # Confirm and delete overlapping on the same list keep their own notes
        async with open_db(db_path) as db:
            await db.executemany(
                "INSERT INTO businesses(id, name, payment_status, created_at) VALUES(?, ?, 'to_be_confirmed', ?)",
                [("B5", "Florist", "2026-10-19T09:00:00+00:00"), ("B6", "Gym", "2026-10-19T10:00:00+00:00")],
            )
            await db.commit()
        gated = _GatedBackend(local_backend)
        ah.backend = gated
        await ah.cb_refresh(_callback(ah.CB_REFRESH))
        view = ah.views[ADMIN_ID]
        list_notifier = view.notifier

        confirm_task = asyncio.create_task(ah.cb_confirm(_callback(f"{ah.CB_CONFIRM_PREFIX}B5:0")))
        for _ in range(20):
            await asyncio.sleep(0)
            if gated.waiting:
                break
        _assert(gated.waiting, "confirm must be waiting on the backend")
        await ah.cb_delete_accept(_callback(f"{ah.CB_DELETE_YES_PREFIX}B6:0"))
        delete_text = renders[-1]["text"]
        gated.gate.set()
        await confirm_task
        confirm_text = renders[-1]["text"]

        _assert(MSG_DELETED in delete_text and MSG_CONFIRMED not in delete_text, f"delete render: {delete_text}")
        _assert(MSG_CONFIRMED in confirm_text and MSG_DELETED not in confirm_text, f"confirm render: {confirm_text}")
        _assert(view.notifier is list_notifier, "row actions must not replace the list notifier")
    finally:
        (
            ah.backend,
            ah.ui_render,
            ah.try_delete_user_message,
            saved_views,
            CFG.admin_ids,
            CFG.pending_page_size,
            CFG.site_url,
        ) = originals
        ah.views.clear()
        ah.views.update(saved_views)


def test_admin_pending_handler_flow() -> None:
    with tempfile.TemporaryDirectory(prefix="listings-smoke-admin-") as tmp:
        asyncio.run(_run_checks(Path(tmp)))


def main() -> None:
    test_admin_pending_handler_flow()
    print("OK: admin pending handler flow smoke passed.")


if __name__ == "__main__":
    main()

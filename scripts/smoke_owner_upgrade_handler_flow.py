#!/usr/bin/env python3
"""
Dynamic smoke test: owner bot upgrade form handler flow on the local backend.

Validates:
- `/upgrade <id>` opens the form with the business name, unknown ids are reported;
- invalid amounts and non-receipt documents are rejected with a note;
- amount + PDF receipt move the FSM to `ready` and show the Submit button;
- submit downloads the Telegram file, stores it and updates the business row;
- default (close) success view clears the FSM and renders the success note;
- confirmation success view renders the ordinal POS+Website expiry date.

Run:
  python3 scripts/smoke_owner_upgrade_handler_flow.py
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

OWNER_ID = 9001
RECEIPT_BYTES = b"%PDF-1.4 smoke receipt"


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


class _FakeState:
    def __init__(self) -> None:
        self._data: dict = {}
        self._state: str | None = None
        self.cleared = 0

    async def get_data(self):
        return dict(self._data)

    async def update_data(self, **kwargs):
        self._data.update(kwargs)
        return dict(self._data)

    async def set_state(self, state=None):
        self._state = getattr(state, "state", state)

    async def get_state(self):
        return self._state

    async def clear(self):
        self.cleared += 1
        self._data = {}
        self._state = None


class _FakeBot:
    def __init__(self) -> None:
        self.downloads: list[str] = []

    async def download(self, file_id, destination=None, **_kwargs):
        self.downloads.append(str(file_id))
        destination.write(RECEIPT_BYTES)
        return destination


def _message(bot, *, text: str | None = None, photo=None, document=None):
    async def _noop(*_args, **_kwargs):
        return None

    return SimpleNamespace(
        bot=bot,
        chat=SimpleNamespace(id=OWNER_ID),
        from_user=SimpleNamespace(id=OWNER_ID, is_bot=False),
        message_id=100,
        text=text,
        photo=photo,
        document=document,
        answer=_noop,
        delete=_noop,
    )


def _callback(bot, data: str):
    answers: list[str] = []

    async def _answer(text: str | None = None, **_kwargs):
        answers.append(str(text or ""))

    return SimpleNamespace(
        bot=bot,
        data=data,
        from_user=SimpleNamespace(id=OWNER_ID),
        message=SimpleNamespace(chat=SimpleNamespace(id=OWNER_ID), message_id=555),
        answer=_answer,
        answers=answers,
    )


async def _seed(db_path: str) -> None:
    from database import init_db, open_db

    await init_db(db_path)
    async with open_db(db_path) as db:
        await db.executemany(
            "INSERT INTO businesses(id, name, payment_status, created_at, listing_expired_date) VALUES(?, ?, ?, ?, ?)",
            [
                ("B1", "Bakery <Main>", "none", "2026-10-01T00:00:00+00:00", "2020-01-01"),
                ("B2", "Barber", "none", "2026-10-02T00:00:00+00:00", "2099-01-01"),
            ],
        )
        await db.commit()


def _keyboard_callbacks(markup) -> list[str]:
    if markup is None:
        return []
    return [button.callback_data for row in markup.inline_keyboard for button in row if button.callback_data]


async def _run_checks(tmp: Path) -> None:
    import owner.handlers as oh
    from backend import LocalBackend
    from config import CFG, SUCCESS_VIEW_CLOSE, SUCCESS_VIEW_CONFIRMATION
    from listings.upgrade import MSG_SUBMITTED

    db_path = str(tmp / "listings.db")
    storage_dir = tmp / "storage"
    await _seed(db_path)
    local_backend = LocalBackend(db_path=db_path, storage_dir=str(storage_dir), public_base_url="http://files.test")

    renders: list[dict] = []

    async def _fake_ui_render(bot, *, scope: str, chat_id: int, text: str, reply_markup=None, prefer_message_id=None):
        renders.append({"scope": scope, "text": text, "reply_markup": reply_markup, "prefer": prefer_message_id})
        return 555

    async def _fake_try_delete(_message):
        return None

    originals = (oh.backend, oh.ui_render, oh.try_delete_user_message, CFG.upgrade_success_view)
    oh.backend = local_backend
    oh.ui_render = _fake_ui_render
    oh.try_delete_user_message = _fake_try_delete
    try:
        bot = _FakeBot()

        # Unknown business
        state = _FakeState()
        await oh.cmd_upgrade(_message(bot, text="/upgrade nope"), SimpleNamespace(args="nope"), state)
        _assert("Business not found" in renders[-1]["text"], f"unknown id must be reported: {renders[-1]}")
        _assert(await state.get_state() is None, "no form for unknown business")

        # Open form, amount, receipt
        CFG.upgrade_success_view = SUCCESS_VIEW_CLOSE
        state = _FakeState()
        await oh.cmd_upgrade(_message(bot, text="/upgrade B1"), SimpleNamespace(args="B1"), state)
        _assert(await state.get_state() == oh.UpgradeStates.waiting_amount.state, "form must wait for amount")
        _assert("Bakery &lt;Main&gt;" in renders[-1]["text"], f"business name must be escaped: {renders[-1]['text']}")
        _assert(renders[-1]["scope"] == "owner_ui", "owner scope expected")
        _assert(oh.CB_SUBMIT not in _keyboard_callbacks(renders[-1]["reply_markup"]), "submit hidden until ready")

        await oh.msg_amount(_message(bot, text="forty"), state)
        _assert("valid total amount" in renders[-1]["text"], f"invalid amount note expected: {renders[-1]['text']}")
        _assert(await state.get_state() == oh.UpgradeStates.waiting_amount.state, "still waiting for amount")

        await oh.msg_amount(_message(bot, text="$49,99"), state)
        _assert((await state.get_data())["total_amount"] == "49.99", "normalized amount stored")
        _assert(await state.get_state() == oh.UpgradeStates.waiting_receipt.state, "form must wait for receipt")

        bad_doc = SimpleNamespace(file_id="DOC-TXT", file_name="notes.txt", mime_type="text/plain")
        await oh.msg_receipt(_message(bot, document=bad_doc), state)
        _assert("image or PDF" in renders[-1]["text"], f"text documents must be rejected: {renders[-1]['text']}")
        _assert(await state.get_state() == oh.UpgradeStates.waiting_receipt.state, "still waiting for receipt")

        pdf = SimpleNamespace(file_id="DOC-PDF", file_name="invoice.pdf", mime_type="application/pdf")
        await oh.msg_receipt(_message(bot, document=pdf), state)
        _assert(await state.get_state() == oh.UpgradeStates.ready.state, "form must be ready")
        _assert("Selected: invoice.pdf" in renders[-1]["text"], f"selected file shown: {renders[-1]['text']}")
        _assert(oh.CB_SUBMIT in _keyboard_callbacks(renders[-1]["reply_markup"]), "submit shown when ready")

        # Submit (close view)
        before = len(renders)
        callback = _callback(bot, oh.CB_SUBMIT)
        await oh.cb_submit(callback, state)
        texts = [r["text"] for r in renders[before:]]
        _assert(any("Uploading..." in text for text in texts), f"loading render expected: {texts}")
        _assert(MSG_SUBMITTED in texts[-1], f"success note expected: {texts[-1]}")
        _assert(state.cleared >= 1 and await state.get_state() is None, "form must close after success")
        _assert(bot.downloads == ["DOC-PDF"], f"receipt must be downloaded once: {bot.downloads}")

        row = await local_backend.fetch_business("B1", ("payment_status", "receipt_url", "POS+Website"))
        _assert(row["payment_status"] == "to_be_confirmed" and row["POS+Website"] == 1, f"row: {row}")
        stored = list((storage_dir / "business-assets" / "receipts").glob("B1-*.pdf"))
        _assert(len(stored) == 1 and stored[0].read_bytes() == RECEIPT_BYTES, f"stored receipts: {stored}")
        _assert(row["receipt_url"] == f"http://files.test/business-assets/receipts/{stored[0].name}", f"row: {row}")

        # Submit with an expired form
        callback = _callback(bot, oh.CB_SUBMIT)
        await oh.cb_submit(callback, _FakeState())
        _assert("Form expired" in callback.answers[-1], f"expired form alert expected: {callback.answers}")

        # Confirmation view with a photo receipt
        CFG.upgrade_success_view = SUCCESS_VIEW_CONFIRMATION
        state = _FakeState()
        await oh.cmd_upgrade(_message(bot, text="/upgrade B2"), SimpleNamespace(args="B2"), state)
        await oh.msg_amount(_message(bot, text="10"), state)
        photo = [SimpleNamespace(file_id="PHOTO-S"), SimpleNamespace(file_id="PHOTO-L")]
        await oh.msg_receipt(_message(bot, photo=photo), state)
        _assert((await state.get_data())["receipt_file_id"] == "PHOTO-L", "largest photo size must be used")

        await oh.cb_submit(_callback(bot, oh.CB_SUBMIT), state)
        final = renders[-1]
        _assert("Upgrade Request Submitted Successfully" in final["text"], f"confirmation expected: {final['text']}")
        _assert("POS+Website Access Valid Until" in final["text"], f"odoo date expected: {final['text']}")
        _assert(_keyboard_callbacks(final["reply_markup"]) == [oh.CB_CLOSE], "confirmation has only Close")
        row = await local_backend.fetch_business("B2", ("listing_expired_date",))
        _assert(row["listing_expired_date"] == "2099-01-01", f"active listing expiry untouched: {row}")

        await oh.cb_close(_callback(bot, oh.CB_CLOSE), state)
        _assert("/upgrade" in renders[-1]["text"], "close returns to the intro screen")
    finally:
        oh.backend, oh.ui_render, oh.try_delete_user_message, CFG.upgrade_success_view = originals


def test_owner_upgrade_handler_flow() -> None:
    with tempfile.TemporaryDirectory(prefix="listings-smoke-owner-") as tmp:
        asyncio.run(_run_checks(Path(tmp)))


def main() -> None:
    test_owner_upgrade_handler_flow()
    print("OK: owner upgrade handler flow smoke passed.")


if __name__ == "__main__":
    main()

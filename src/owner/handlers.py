"""Handlers for the owner bot: upgrade request form."""

from __future__ import annotations

import html
import io
import logging
from typing import Any

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message

from backend import BackendNotFoundError, ListingBackend, get_backend
from config import CFG, SUCCESS_VIEW_CONFIRMATION
from listings.expiry import format_date_with_ordinal
from listings.inflight import InFlightGuard
from listings.models import ReceiptFile
from listings.notify import NoteNotifier
from listings.upgrade import UpgradeSubmissionForm, parse_amount
from tg_buttons import STYLE_DANGER, STYLE_PRIMARY, ikb
from ui import SCOPE_OWNER, render as ui_render, try_delete_user_message

logger = logging.getLogger(__name__)
router = Router()

# Resolved lazily so importing handlers never requires backend credentials.
backend: ListingBackend | None = None
submit_guard = InFlightGuard()

CB_SUBMIT = "upg:submit"
CB_CANCEL = "upg:cancel"
CB_CLOSE = "upg:close"

DEEPLINK_PREFIX = "upgrade_"
PHOTO_RECEIPT_NAME = "receipt.jpg"
PHOTO_RECEIPT_TYPE = "image/jpeg"

TITLE = "⬆️ <b>Upgrade Business Listing</b>"
INTRO_TEXT = (
    f"{TITLE}\n\n"
    "Open the upgrade link from your business page, or send\n"
    "<code>/upgrade &lt;business id&gt;</code>."
)
PROMPT_AMOUNT = "Send the <b>total amount ($)</b> you paid, e.g. <code>49.99</code>."
PROMPT_RECEIPT = "Now send the <b>receipt</b>: a photo or a PDF/image file."
PROMPT_READY = "Check the details and press <b>Submit Upgrade Request</b>.\nYou can resend the amount or the receipt to replace them."


class UpgradeStates(StatesGroup):
    waiting_amount = State()
    waiting_receipt = State()
    ready = State()


def get_listing_backend() -> ListingBackend:
    global backend
    if backend is None:
        backend = get_backend()
    return backend


def _is_accepted_document(mime_type: str | None, file_name: str | None) -> bool:
    mime = str(mime_type or "").strip().lower()
    if mime.startswith("image/") or mime == "application/pdf":
        return True
    return str(file_name or "").strip().lower().endswith(".pdf")


def _form_text(data: dict[str, Any], *, prompt: str | None = None, note: str | None = None, loading: bool = False) -> str:
    name = html.escape(str(data.get("business_name") or ""))
    amount = html.escape(str(data.get("total_amount") or "")) or "—"
    receipt_name = str(data.get("receipt_name") or "")
    receipt_line = f"Selected: {html.escape(receipt_name)}" if receipt_name else "—"
    lines = [
        TITLE,
        "",
        f"🏢 Business Name: <b>{name}</b>",
        f"💵 Total Amount ($): {amount}",
        f"🧾 Receipt: {receipt_line}",
    ]
    if note:
        lines += ["", note]
    if loading:
        lines += ["", "⏳ Uploading..."]
    elif prompt:
        lines += ["", prompt]
    return "\n".join(lines)


def _form_keyboard(*, ready: bool) -> InlineKeyboardMarkup:
    rows = []
    if ready:
        rows.append([ikb("📤 Submit Upgrade Request", callback_data=CB_SUBMIT, style=STYLE_PRIMARY)])
    rows.append([ikb("❌ Cancel", callback_data=CB_CANCEL, style=STYLE_DANGER)])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def _confirmation_text(business_name: str, odoo_expired_date: str) -> str:
    lines = [
        TITLE,
        "",
        f"🏢 Business Name: <b>{html.escape(business_name)}</b>",
        "",
        "✅ <b>Upgrade Request Submitted Successfully!</b>",
        "Your upgrade request has been submitted for admin confirmation.",
    ]
    formatted = format_date_with_ordinal(odoo_expired_date)
    if formatted:
        lines += ["", f"📅 POS+Website Access Valid Until: <b>{formatted}</b>"]
    return "\n".join(lines)


async def _render(bot: Bot, chat_id: int, text: str, reply_markup: InlineKeyboardMarkup | None = None, *, prefer_message_id: int | None = None) -> None:
    await ui_render(
        bot,
        scope=SCOPE_OWNER,
        chat_id=chat_id,
        text=text,
        reply_markup=reply_markup,
        prefer_message_id=prefer_message_id,
    )


async def _render_form(bot: Bot, chat_id: int, state: FSMContext, *, note: str | None = None, prefer_message_id: int | None = None) -> None:
    data = await state.get_data()
    current = await state.get_state()
    if current == UpgradeStates.ready.state:
        prompt = PROMPT_READY
    elif current == UpgradeStates.waiting_receipt.state:
        prompt = PROMPT_RECEIPT
    else:
        prompt = PROMPT_AMOUNT
    await _render(
        bot,
        chat_id,
        _form_text(data, prompt=prompt, note=note),
        _form_keyboard(ready=current == UpgradeStates.ready.state),
        prefer_message_id=prefer_message_id,
    )


async def _next_state(state: FSMContext) -> None:
    data = await state.get_data()
    if not data.get("total_amount"):
        await state.set_state(UpgradeStates.waiting_amount)
    elif not data.get("receipt_file_id"):
        await state.set_state(UpgradeStates.waiting_receipt)
    else:
        await state.set_state(UpgradeStates.ready)


async def open_upgrade_form(message: Message, state: FSMContext, business_id: str) -> None:
    chat_id = message.chat.id
    business_id = str(business_id or "").strip()
    if not business_id:
        await _render(message.bot, chat_id, INTRO_TEXT)
        return
    try:
        row = await get_listing_backend().fetch_business(business_id, ("id", "name"))
    except BackendNotFoundError:
        await _render(message.bot, chat_id, f"{TITLE}\n\n❌ Business not found.")
        return
    except Exception:
        logger.exception("Failed to load business %s for upgrade form", business_id)
        await _render(message.bot, chat_id, f"{TITLE}\n\n❌ Failed to load business. Please try again.")
        return

    await state.clear()
    await state.update_data(business_id=str(row.get("id") or business_id), business_name=str(row.get("name") or ""))
    await state.set_state(UpgradeStates.waiting_amount)
    await _render_form(message.bot, chat_id, state)


@router.message(CommandStart(deep_link=True))
async def cmd_start_deeplink(message: Message, command: CommandObject, state: FSMContext) -> None:
    await try_delete_user_message(message)
    args = str(command.args or "").strip()
    if not args.startswith(DEEPLINK_PREFIX):
        await _render(message.bot, message.chat.id, INTRO_TEXT)
        return
    await open_upgrade_form(message, state, args[len(DEEPLINK_PREFIX):])


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext) -> None:
    await state.clear()
    await try_delete_user_message(message)
    await _render(message.bot, message.chat.id, INTRO_TEXT)


@router.message(Command("upgrade"))
async def cmd_upgrade(message: Message, command: CommandObject, state: FSMContext) -> None:
    await try_delete_user_message(message)
    await open_upgrade_form(message, state, str(command.args or "").strip())


@router.message(UpgradeStates.waiting_amount, F.text)
@router.message(UpgradeStates.ready, F.text)
async def msg_amount(message: Message, state: FSMContext) -> None:
    raw = (message.text or "").strip()
    await try_delete_user_message(message)
    if raw.startswith("/"):
        return
    amount = parse_amount(raw)
    if amount is None:
        await _render_form(message.bot, message.chat.id, state, note="❌ Please enter a valid total amount, e.g. 49.99")
        return
    await state.update_data(total_amount=str(amount))
    await _next_state(state)
    await _render_form(message.bot, message.chat.id, state)


@router.message(UpgradeStates.waiting_receipt, F.photo | F.document)
@router.message(UpgradeStates.ready, F.photo | F.document)
async def msg_receipt(message: Message, state: FSMContext) -> None:
    await try_delete_user_message(message)
    if message.photo:
        photo = message.photo[-1]
        receipt = {
            "receipt_file_id": photo.file_id,
            "receipt_name": PHOTO_RECEIPT_NAME,
            "receipt_content_type": PHOTO_RECEIPT_TYPE,
        }
    else:
        document = message.document
        if not _is_accepted_document(document.mime_type, document.file_name):
            await _render_form(message.bot, message.chat.id, state, note="❌ Only image or PDF receipts are accepted.")
            return
        receipt = {
            "receipt_file_id": document.file_id,
            "receipt_name": document.file_name or "receipt",
            "receipt_content_type": document.mime_type or "application/octet-stream",
        }
    await state.update_data(**receipt)
    await _next_state(state)
    await _render_form(message.bot, message.chat.id, state)


@router.message(UpgradeStates.waiting_receipt)
async def msg_receipt_invalid(message: Message, state: FSMContext) -> None:
    await try_delete_user_message(message)
    await _render_form(message.bot, message.chat.id, state, note="❌ Please send the receipt as a photo or a file.")


def _receipt_loader(bot: Bot, file_id: str):
    async def _load() -> bytes:
        buffer = io.BytesIO()
        await bot.download(file_id, destination=buffer)
        return buffer.getvalue()

    return _load


def build_form(bot: Bot, data: dict[str, Any], notifier: NoteNotifier, state: FSMContext) -> UpgradeSubmissionForm:
    form = UpgradeSubmissionForm(
        str(data.get("business_id") or ""),
        str(data.get("business_name") or ""),
        backend=get_listing_backend(),
        notifier=notifier,
        guard=submit_guard,
        success_view=CFG.upgrade_success_view,
        receipts_prefix=CFG.receipts_prefix,
        on_close=state.clear,
    )
    form.total_amount = str(data.get("total_amount") or "")
    file_id = str(data.get("receipt_file_id") or "")
    if file_id:
        form.receipt = ReceiptFile(
            name=str(data.get("receipt_name") or ""),
            content_type=str(data.get("receipt_content_type") or "application/octet-stream"),
            load=_receipt_loader(bot, file_id),
        )
    return form


@router.callback_query(F.data == CB_SUBMIT)
async def cb_submit(callback: CallbackQuery, state: FSMContext) -> None:
    data = await state.get_data()
    chat_id = callback.message.chat.id
    message_id = callback.message.message_id
    if not data.get("business_id"):
        await callback.answer("Form expired. Open the upgrade link again.", show_alert=True)
        return
    if submit_guard.is_busy(("upgrade", str(data["business_id"]))):
        await callback.answer("⏳ Uploading...")
        return
    await callback.answer()

    notifier = NoteNotifier()
    form = build_form(callback.bot, data, notifier, state)
    if form.validation_error() is None:
        await _render(callback.bot, chat_id, _form_text(data, loading=True), None, prefer_message_id=message_id)

    ok = await form.submit()
    if not ok:
        await _render_form(callback.bot, chat_id, state, note=notifier.render(), prefer_message_id=message_id)
        return

    if CFG.upgrade_success_view == SUCCESS_VIEW_CONFIRMATION and form.submitted:
        await state.clear()
        kb = InlineKeyboardMarkup(inline_keyboard=[[ikb("Close", callback_data=CB_CLOSE)]])
        await _render(
            callback.bot,
            chat_id,
            _confirmation_text(form.business_name, form.odoo_expired_date),
            kb,
            prefer_message_id=message_id,
        )
        return

    await _render(callback.bot, chat_id, f"{TITLE}\n\n{notifier.render()}", None, prefer_message_id=message_id)


@router.callback_query(F.data == CB_CANCEL)
async def cb_cancel(callback: CallbackQuery, state: FSMContext) -> None:
    data = await state.get_data()
    if data.get("business_id") and submit_guard.is_busy(("upgrade", str(data["business_id"]))):
        await callback.answer("⏳ Uploading...")
        return
    await state.clear()
    await callback.answer("Cancelled")
    await _render(callback.bot, callback.message.chat.id, INTRO_TEXT, prefer_message_id=callback.message.message_id)


@router.callback_query(F.data == CB_CLOSE)
async def cb_close(callback: CallbackQuery, state: FSMContext) -> None:
    await state.clear()
    await callback.answer()
    await _render(callback.bot, callback.message.chat.id, INTRO_TEXT, prefer_message_id=callback.message.message_id)

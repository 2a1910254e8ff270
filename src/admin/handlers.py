"""Handlers for the admin bot: listings awaiting payment confirmation."""

import html
import logging
import math

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message

from backend import ListingBackend, get_backend
from config import CFG
from listings.expiry import format_short_date
from listings.inflight import InFlightGuard
from listings.models import PendingListing
from listings.notify import EditNavigator, NoteNotifier
from listings.pending import MSG_DELETE_PROMPT, PendingConfirmationList
from tg_buttons import CB_NOOP, STYLE_DANGER, STYLE_SUCCESS, ikb, pager_row
from ui import SCOPE_ADMIN, render as ui_render, try_delete_user_message

logger = logging.getLogger(__name__)
router = Router()

backend: ListingBackend | None = None
action_guard = InFlightGuard()
# One mounted list per admin chat; replaced on /start, /pending and refresh.
views: dict[int, PendingConfirmationList] = {}

CB_REFRESH = "pend:refresh"
CB_PAGE_PREFIX = "pend_p:"
CB_CONFIRM_PREFIX = "pend_c:"
CB_EDIT_PREFIX = "pend_e:"
CB_DELETE_PREFIX = "pend_d:"
CB_DELETE_YES_PREFIX = "pend_dy:"
CB_DELETE_NO_PREFIX = "pend_dn:"

TITLE = "⚠️ <b>To Be Confirmed Listings</b>"
EMPTY_TEXT = "No listings pending confirmation"


def is_admin(user_id: int) -> bool:
    return int(user_id) in set(CFG.admin_ids)


def get_listing_backend() -> ListingBackend:
    global backend
    if backend is None:
        backend = get_backend()
    return backend


async def _require_admin_message(message: Message) -> bool:
    if not message.from_user or not is_admin(message.from_user.id):
        try:
            await message.answer("❌ Admins only.")
        except Exception:
            pass
        return False
    return True


async def _require_admin_callback(callback: CallbackQuery) -> bool:
    if not callback.from_user or not is_admin(callback.from_user.id):
        try:
            await callback.answer("❌ Admins only", show_alert=True)
        except Exception:
            pass
        return False
    return True


def _parse_row_callback(data: str, prefix: str) -> tuple[str, int]:
    """`<prefix><business_id>:<page>` -> (business_id, page)."""
    payload = str(data or "")[len(prefix):]
    business_id, _, raw_page = payload.rpartition(":")
    if not business_id:
        return payload, 0
    try:
        page = max(0, int(raw_page))
    except ValueError:
        page = 0
    return business_id, page


def _total_pages(view: PendingConfirmationList) -> int:
    return max(1, math.ceil(len(view.listings) / CFG.pending_page_size))


def _row_text(index: int, listing: PendingListing) -> str:
    name = html.escape(listing.name or "—")
    email = html.escape(listing.user_email) if listing.user_email else "No email provided"
    if listing.receipt_url:
        receipt = f'<a href="{html.escape(listing.receipt_url, quote=True)}">View Receipt</a>'
    else:
        receipt = "No receipt"
    submitted = format_short_date(listing.created_at) or "—"
    expires = format_short_date(listing.listing_expired_date) or "Not set"
    return (
        f"<b>{index}. {name}</b>\n"
        f"📧 {email}\n"
        f"🧾 {receipt}\n"
        f"🟡 To Be Confirmed\n"
        f"📅 Submitted: {submitted}\n"
        f"⏳ Listing expires: {expires}"
    )


def _list_text(view: PendingConfirmationList, *, page: int, note: str | None = None) -> str:
    text = f"{TITLE} ({len(view.listings)})"
    if note:
        text += f"\n\n{note}"
    if not view.listings:
        return f"{text}\n\n{EMPTY_TEXT}"
    start = page * CFG.pending_page_size
    rows = view.listings[start:start + CFG.pending_page_size]
    blocks = [_row_text(start + offset + 1, listing) for offset, listing in enumerate(rows)]
    return text + "\n\n" + "\n\n".join(blocks)


def _list_keyboard(view: PendingConfirmationList, *, page: int) -> InlineKeyboardMarkup:
    buttons = []
    start = page * CFG.pending_page_size
    rows = view.listings[start:start + CFG.pending_page_size]
    for offset, listing in enumerate(rows):
        number = start + offset + 1
        if view.navigator.is_absolute():
            edit_button = ikb(f"✏️ #{number}", url=view.edit(listing.id))
        else:
            edit_button = ikb(f"✏️ #{number}", callback_data=f"{CB_EDIT_PREFIX}{listing.id}:{page}")
        buttons.append(
            [
                ikb(f"✅ Confirm #{number}", callback_data=f"{CB_CONFIRM_PREFIX}{listing.id}:{page}", style=STYLE_SUCCESS),
                edit_button,
                ikb(f"🗑 #{number}", callback_data=f"{CB_DELETE_PREFIX}{listing.id}:{page}", style=STYLE_DANGER),
            ]
        )
    nav = pager_row(page=page, total_pages=_total_pages(view), prefix=CB_PAGE_PREFIX)
    if nav:
        buttons.append(nav)
    buttons.append([ikb("🔄 Refresh", callback_data=CB_REFRESH)])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


async def _render(bot: Bot, chat_id: int, text: str, reply_markup: InlineKeyboardMarkup | None = None, *, prefer_message_id: int | None = None) -> int:
    return await ui_render(
        bot,
        scope=SCOPE_ADMIN,
        chat_id=chat_id,
        text=text,
        reply_markup=reply_markup,
        prefer_message_id=prefer_message_id,
    )


async def render_list(
    bot: Bot,
    chat_id: int,
    view: PendingConfirmationList,
    *,
    page: int = 0,
    note: str | None = None,
    prefer_message_id: int | None = None,
) -> None:
    page = max(0, min(int(page), _total_pages(view) - 1))
    await _render(
        bot,
        chat_id,
        _list_text(view, page=page, note=note),
        _list_keyboard(view, page=page),
        prefer_message_id=prefer_message_id,
    )


async def show_pending(bot: Bot, chat_id: int, *, prefer_message_id: int | None = None) -> PendingConfirmationList:
    """Mount a fresh list: spinner first, then the loaded rows."""
    notifier = NoteNotifier()
    view = PendingConfirmationList(
        backend=get_listing_backend(),
        notifier=notifier,
        navigator=EditNavigator(CFG.site_url),
        guard=action_guard,
        procedure=CFG.pending_procedure,
    )
    views[int(chat_id)] = view
    message_id = await _render(bot, chat_id, f"{TITLE}\n\n⏳ Loading...", None, prefer_message_id=prefer_message_id)
    await view.load()
    await render_list(bot, chat_id, view, page=0, note=notifier.render(), prefer_message_id=message_id)
    return view


async def _mounted_view(callback: CallbackQuery) -> PendingConfirmationList | None:
    view = views.get(int(callback.message.chat.id))
    if view is None:
        await callback.answer()
        await show_pending(callback.bot, callback.message.chat.id, prefer_message_id=callback.message.message_id)
    return view


@router.message(Command("start"))
@router.message(Command("pending"))
async def cmd_pending(message: Message) -> None:
    if not await _require_admin_message(message):
        return
    await try_delete_user_message(message)
    await show_pending(message.bot, message.chat.id)


@router.callback_query(F.data == CB_REFRESH)
async def cb_refresh(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    await callback.answer()
    await show_pending(callback.bot, callback.message.chat.id, prefer_message_id=callback.message.message_id)


@router.callback_query(F.data == CB_NOOP)
async def cb_noop(callback: CallbackQuery) -> None:
    await callback.answer()


@router.callback_query(F.data.startswith(CB_PAGE_PREFIX))
async def cb_page(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    view = await _mounted_view(callback)
    if view is None:
        return
    await callback.answer()
    try:
        page = int(callback.data[len(CB_PAGE_PREFIX):])
    except ValueError:
        page = 0
    await render_list(callback.bot, callback.message.chat.id, view, page=page, prefer_message_id=callback.message.message_id)


@router.callback_query(F.data.startswith(CB_CONFIRM_PREFIX))
async def cb_confirm(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    view = await _mounted_view(callback)
    if view is None:
        return
    business_id, page = _parse_row_callback(callback.data, CB_CONFIRM_PREFIX)
    if action_guard.is_busy(("listing", business_id)):
        await callback.answer("⏳ Already in progress")
        return
    await callback.answer("⏳ Confirming...")
    notifier = NoteNotifier()
    await view.confirm(business_id, notifier=notifier)
    await render_list(
        callback.bot,
        callback.message.chat.id,
        view,
        page=page,
        note=notifier.render(),
        prefer_message_id=callback.message.message_id,
    )


@router.callback_query(F.data.startswith(CB_EDIT_PREFIX))
async def cb_edit(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    view = await _mounted_view(callback)
    if view is None:
        return
    business_id, _page = _parse_row_callback(callback.data, CB_EDIT_PREFIX)
    # Without an absolute SITE_URL Telegram can't open the link; show the path instead.
    await callback.answer(f"✏️ Edit page: {view.edit(business_id)}", show_alert=True)


@router.callback_query(F.data.startswith(CB_DELETE_PREFIX))
async def cb_delete_prompt(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    view = await _mounted_view(callback)
    if view is None:
        return
    business_id, page = _parse_row_callback(callback.data, CB_DELETE_PREFIX)
    await callback.answer()
    listing = view.find(business_id)
    name = html.escape(listing.name) if listing and listing.name else html.escape(business_id)
    kb = InlineKeyboardMarkup(
        inline_keyboard=[
            [ikb("🗑 Yes, delete", callback_data=f"{CB_DELETE_YES_PREFIX}{business_id}:{page}", style=STYLE_DANGER)],
            [ikb("« Cancel", callback_data=f"{CB_DELETE_NO_PREFIX}{business_id}:{page}")],
        ]
    )
    await _render(
        callback.bot,
        callback.message.chat.id,
        f"🗑 <b>{name}</b>\n\n{MSG_DELETE_PROMPT}",
        kb,
        prefer_message_id=callback.message.message_id,
    )


@router.callback_query(F.data.startswith(CB_DELETE_NO_PREFIX))
async def cb_delete_decline(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    view = await _mounted_view(callback)
    if view is None:
        return
    business_id, page = _parse_row_callback(callback.data, CB_DELETE_NO_PREFIX)
    await callback.answer("Cancelled")
    await view.delete(business_id, accepted=False)
    await render_list(callback.bot, callback.message.chat.id, view, page=page, prefer_message_id=callback.message.message_id)


@router.callback_query(F.data.startswith(CB_DELETE_YES_PREFIX))
async def cb_delete_accept(callback: CallbackQuery) -> None:
    if not await _require_admin_callback(callback):
        return
    view = await _mounted_view(callback)
    if view is None:
        return
    business_id, page = _parse_row_callback(callback.data, CB_DELETE_YES_PREFIX)
    if action_guard.is_busy(("listing", business_id)):
        await callback.answer("⏳ Already in progress")
        return
    await callback.answer("⏳ Deleting...")
    notifier = NoteNotifier()
    await view.delete(business_id, accepted=True, notifier=notifier)
    await render_list(
        callback.bot,
        callback.message.chat.id,
        view,
        page=page,
        note=notifier.render(),
        prefer_message_id=callback.message.message_id,
    )

"""Single-message UI helpers shared by the owner and admin bots.

In "single message" mode all navigation edits one persistent inline-menu
message per chat, and user input messages are best-effort deleted to keep the
chat clean. Each bot keeps its own message id under its own kv prefix.
"""

from __future__ import annotations

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, Message

from config import CFG
from database import db_get, db_set


logger = logging.getLogger(__name__)

SCOPE_OWNER = "owner_ui"
SCOPE_ADMIN = "admin_ui"


def _kv_key(scope: str, chat_id: int) -> str:
    return f"{scope}:last_message_id:{int(chat_id)}"


async def bind_ui_message_id(scope: str, chat_id: int, message_id: int) -> None:
    if not chat_id or not message_id:
        return
    try:
        await db_set(_kv_key(scope, chat_id), str(int(message_id)))
    except Exception:
        logger.exception("Failed to bind %s message id for chat %s", scope, chat_id)


async def get_ui_message_id(scope: str, chat_id: int) -> int | None:
    if not chat_id:
        return None
    try:
        raw = await db_get(_kv_key(scope, chat_id))
    except Exception:
        logger.exception("Failed to load %s message id for chat %s", scope, chat_id)
        return None
    if not raw:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value > 0 else None


async def _try_edit(
    bot: Bot,
    *,
    chat_id: int,
    message_id: int,
    text: str,
    reply_markup: InlineKeyboardMarkup | None,
) -> bool:
    try:
        await bot.edit_message_text(
            chat_id=chat_id,
            message_id=message_id,
            text=text,
            reply_markup=reply_markup,
            disable_web_page_preview=True,
        )
        return True
    except TelegramBadRequest as exc:
        # Nothing changed: still counts as rendered.
        if "message is not modified" in str(exc).lower():
            return True
        return False
    except Exception:
        logger.exception("Failed to edit ui message chat=%s msg=%s", chat_id, message_id)
        return False


async def render(
    bot: Bot,
    *,
    scope: str,
    chat_id: int,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    prefer_message_id: int | None = None,
) -> int:
    """Render (send or edit) the bot UI message; returns its message id."""
    if not chat_id:
        raise ValueError("chat_id is required")

    if not CFG.single_message_mode:
        msg = await bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
            disable_web_page_preview=True,
        )
        return int(msg.message_id)

    for message_id in (prefer_message_id, await get_ui_message_id(scope, chat_id)):
        if not message_id:
            continue
        ok = await _try_edit(
            bot,
            chat_id=chat_id,
            message_id=int(message_id),
            text=text,
            reply_markup=reply_markup,
        )
        if ok:
            await bind_ui_message_id(scope, chat_id, int(message_id))
            return int(message_id)

    msg = await bot.send_message(
        chat_id=chat_id,
        text=text,
        reply_markup=reply_markup,
        disable_web_page_preview=True,
    )
    await bind_ui_message_id(scope, chat_id, int(msg.message_id))
    return int(msg.message_id)


async def try_delete_user_message(message: Message) -> None:
    """Best-effort delete of user input in single-message mode."""
    if not CFG.single_message_mode:
        return
    if not message.from_user or message.from_user.is_bot:
        return
    try:
        await message.delete()
    except Exception:
        # Bots can't always delete user messages; the chat just stays noisier.
        pass

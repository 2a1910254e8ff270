"""Telegram inline keyboard helpers.

Telegram Bot API (InlineKeyboardButton.style):
  - "danger"  (red)
  - "success" (green)
  - "primary" (blue)
"""

from __future__ import annotations

from aiogram.types import InlineKeyboardButton

STYLE_DANGER = "danger"
STYLE_SUCCESS = "success"
STYLE_PRIMARY = "primary"

_ALLOWED_STYLES = {STYLE_DANGER, STYLE_SUCCESS, STYLE_PRIMARY}

CB_NOOP = "noop"


def ikb(
    text: str,
    *,
    callback_data: str | None = None,
    url: str | None = None,
    style: str | None = None,
) -> InlineKeyboardButton:
    """Create InlineKeyboardButton with optional `style`.

    Older aiogram versions don't know `style`; the button is created without it.
    """
    kwargs: dict[str, object] = {"text": str(text)}
    if callback_data is not None:
        kwargs["callback_data"] = str(callback_data)
    if url is not None:
        kwargs["url"] = str(url)
    if style and str(style).strip().lower() in _ALLOWED_STYLES:
        kwargs["style"] = str(style).strip().lower()

    try:
        return InlineKeyboardButton(**kwargs)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        kwargs.pop("style", None)
        return InlineKeyboardButton(**kwargs)  # type: ignore[arg-type]


def pager_row(*, page: int, total_pages: int, prefix: str) -> list[InlineKeyboardButton]:
    """⬅️ n/m ➡️ row; empty when everything fits on one page."""
    if total_pages <= 1:
        return []
    nav: list[InlineKeyboardButton] = []
    if page > 0:
        nav.append(ikb("⬅️", callback_data=f"{prefix}{page - 1}"))
    nav.append(ikb(f"{page + 1}/{total_pages}", callback_data=CB_NOOP))
    if page < total_pages - 1:
        nav.append(ikb("➡️", callback_data=f"{prefix}{page + 1}"))
    return nav

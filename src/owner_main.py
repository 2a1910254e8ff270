import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage

from config import CFG, is_owner_bot_enabled
from logging_setup import configure_logging
from database import init_db

configure_logging("ownerbot")

from owner.handlers import router

logger = logging.getLogger(__name__)


async def main() -> None:
    """Entry point for the owner bot runtime."""
    if not is_owner_bot_enabled():
        logger.warning("Owner bot disabled: requires non-empty OWNER_BOT_API_KEY.")
        return

    await init_db()

    bot = Bot(
        token=CFG.owner_bot_api_key,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher(storage=MemoryStorage())
    dp.include_router(router)

    logger.info(
        "Owner bot started (backend=%s, success_view=%s)",
        CFG.backend_provider,
        CFG.upgrade_success_view,
    )
    await dp.start_polling(bot)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

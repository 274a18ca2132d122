"""Точка входа приложения Telegram-бота."""

from __future__ import annotations

import asyncio

import uvicorn
from aiogram import Bot, Dispatcher

from cardbot.config import Settings, get_settings
from cardbot.dialog import DialogSettings
from cardbot.handlers import (
    analytics_router,
    commands_router,
    errors_router,
    registration_router,
)
from cardbot.logging import configure_logging, get_logger
from cardbot.middleware import BotDataMiddleware, LoggingMiddleware
from cardbot.services.crm import CrmClient, create_crm_client
from cardbot.webhook_server import create_webhook_app


logger = get_logger(__name__)


def build_dispatcher(bot_data: dict) -> Dispatcher:
    dp = Dispatcher()

    logging_middleware = LoggingMiddleware()
    dp.message.outer_middleware(logging_middleware)
    dp.callback_query.outer_middleware(logging_middleware)
    dp.inline_query.outer_middleware(logging_middleware)

    bot_data_middleware = BotDataMiddleware(bot_data)
    for router in (registration_router, analytics_router):
        router.message.middleware(bot_data_middleware)
        router.callback_query.middleware(bot_data_middleware)
        router.inline_query.middleware(bot_data_middleware)

    # Диалог регистрации получает команды раньше, чем обработчики команд
    dp.include_router(registration_router)
    dp.include_router(commands_router)
    dp.include_router(analytics_router)
    dp.include_router(errors_router)
    return dp


async def run_webhook(bot: Bot, dp: Dispatcher, settings: Settings) -> None:
    app = create_webhook_app(
        bot,
        dp,
        base_url=settings.webhook_base_url,
        path=settings.webhook_path,
        secret_token=settings.webhook_secret,
    )
    config = uvicorn.Config(
        app,
        host=settings.webhook_host,
        port=settings.webhook_port,
        log_level=settings.log_level.lower(),
    )
    logger.info(
        "bot_webhook_start",
        port=settings.webhook_port,
        secret_token=bool(settings.webhook_secret),
    )
    await uvicorn.Server(config).serve()


async def run_polling(bot: Bot, dp: Dispatcher) -> None:
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("bot_polling_start")
    await dp.start_polling(bot)


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    bot = Bot(token=settings.bot_token)
    crm_client: CrmClient = create_crm_client(settings)

    bot_data = {
        "crm_client": crm_client,
        "dialog_settings": DialogSettings.from_settings(settings),
        "settings": settings,
    }
    dp = build_dispatcher(bot_data)

    async def on_startup_handler() -> None:
        me = await bot.get_me()
        logger.info("bot_startup", username=me.username)

    async def on_shutdown_handler() -> None:
        logger.info("bot_shutdown")

    dp.startup.register(on_startup_handler)
    dp.shutdown.register(on_shutdown_handler)

    try:
        if settings.webhook_base_url:
            await run_webhook(bot, dp, settings)
        else:
            await run_polling(bot, dp)
    finally:
        await crm_client.close()
        await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

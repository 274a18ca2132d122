"""Inline-поиск менеджеров со статистикой конверсии за день."""

from __future__ import annotations

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import (
    CallbackQuery,
    InlineQuery,
    InlineQueryResultArticle,
    InputTextMessageContent,
)

from cardbot.logging import get_logger
from cardbot.services.analytics import filter_managers, managers_stats
from cardbot.services.crm import CrmClient, CrmError
from cardbot.telegram import CALLBACK_SAVE_DEFAULT_MANAGER, save_manager_keyboard


router = Router()
logger = get_logger(__name__)

MAX_RESULTS = 10
DEFAULT_MANAGER_KEY = "default_manager_name"


@router.inline_query()
async def handle_inline_query(
    inline_query: InlineQuery,
    state: FSMContext,
    bot_data: dict,
) -> None:
    data = await state.get_data()
    query = inline_query.query or data.get(DEFAULT_MANAGER_KEY) or ""
    logger.info("manager_stats_query", query=query)

    client: CrmClient = bot_data["crm_client"]
    managers = filter_managers(await managers_stats(client), query)

    results = [
        InlineQueryResultArticle(
            id=manager.id,
            title=manager.name,
            description=(
                f"Скачиваний: {manager.stats.registrations}, "
                f"Использований: {manager.stats.usages}"
            ),
            input_message_content=InputTextMessageContent(
                message_text=(
                    f"Менеджер: {manager.name}\n"
                    f"Кол-во скачиваний: {manager.stats.registrations}\n"
                    f"Кол-во использований: {manager.stats.usages}"
                ),
            ),
            reply_markup=save_manager_keyboard(manager.id),
        )
        for manager in managers[:MAX_RESULTS]
    ]

    await inline_query.answer(results, cache_time=300)


@router.callback_query(F.data.startswith(f"{CALLBACK_SAVE_DEFAULT_MANAGER}:"))
async def save_default_manager(
    callback: CallbackQuery,
    state: FSMContext,
    bot_data: dict,
) -> None:
    _, manager_id = callback.data.split(":", 1)
    client: CrmClient = bot_data["crm_client"]

    try:
        managers = await client.get_managers()
    except CrmError as exc:
        logger.error("default_manager_save_failed", manager_id=manager_id, error=exc.message)
        await callback.answer("Не удалось сохранить менеджера по умолчанию")
        return

    manager = next((item for item in managers if item.id == manager_id), None)
    if manager is None:
        logger.warning("default_manager_not_found", manager_id=manager_id)
        await callback.answer("Не удалось сохранить менеджера по умолчанию")
        return

    await state.update_data({DEFAULT_MANAGER_KEY: manager.name})
    logger.info("default_manager_saved", manager_id=manager_id, name=manager.name)
    await callback.answer("Менеджер сохранен как менеджер по умолчанию")

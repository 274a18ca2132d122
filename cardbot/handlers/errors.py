"""Глобальный обработчик необработанных ошибок."""

from __future__ import annotations

from aiogram import Router
from aiogram.types import ErrorEvent

from cardbot.logging import get_logger


router = Router()
logger = get_logger(__name__)


@router.errors()
async def handle_error(event: ErrorEvent) -> bool:
    logger.error("update_handling_failed", error=str(event.exception), exc_info=event.exception)

    message = event.update.message or (
        event.update.callback_query.message if event.update.callback_query else None
    )
    if message is not None:
        await message.answer(
            "Извините, произошла ошибка при обработке вашего запроса. Попробуйте позже."
        )
    return True

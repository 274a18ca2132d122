"""Middleware для передачи общих объектов в обработчики и логирования апдейтов."""

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, InlineQuery, Message, TelegramObject

from cardbot.logging import get_logger


logger = get_logger(__name__)


class BotDataMiddleware(BaseMiddleware):
    """Добавляет bot_data в контекст обработчика."""

    def __init__(self, bot_data: Dict[str, Any]) -> None:
        super().__init__()
        self.bot_data = bot_data

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        data["bot_data"] = self.bot_data
        return await handler(event, data)


class LoggingMiddleware(BaseMiddleware):
    """Логирует входящие сообщения, нажатия кнопок и inline-запросы."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        if isinstance(event, Message):
            text = event.text or "<нет текста>"
            logger.debug(
                "message_received",
                user_id=event.from_user.id if event.from_user else None,
                chat_id=event.chat.id,
                text=text,
                kind="command" if text.startswith("/") else "text",
            )
        elif isinstance(event, CallbackQuery):
            logger.debug(
                "callback_query_received",
                user_id=event.from_user.id,
                data=event.data,
            )
        elif isinstance(event, InlineQuery):
            logger.debug(
                "inline_query_received",
                user_id=event.from_user.id,
                query=event.query or "<пустой запрос>",
            )
        return await handler(event, data)

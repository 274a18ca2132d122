"""Клавиатуры, форматирование и отправка сообщений в Telegram."""

from __future__ import annotations

from aiogram.types import InlineKeyboardMarkup, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from aiogram.utils.text_decorations import markdown_decoration

from cardbot.schemas import UserRecord


CALLBACK_FIND_CLIENT = "find_client"
CALLBACK_SKIP = "skip"
CALLBACK_SAVE_DEFAULT_MANAGER = "save_default_manager"

BUTTON_FIND_CLIENT = "Найти клиента"
BUTTON_CALC_CONVERSION = "Посчитать конверсию"
BUTTON_SKIP = "Пропустить"
BUTTON_SAVE_DEFAULT_MANAGER = "Сохранить по умолчанию"

MAIN_MENU_TEXT = "Выберите действие или введите номер телефона:"


def main_menu_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text=BUTTON_FIND_CLIENT, callback_data=CALLBACK_FIND_CLIENT)
    builder.button(text=BUTTON_CALC_CONVERSION, switch_inline_query_current_chat="")
    builder.adjust(1)
    return builder.as_markup()


def skip_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text=BUTTON_SKIP, callback_data=CALLBACK_SKIP)
    return builder.as_markup()


def save_manager_keyboard(manager_id: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(
        text=BUTTON_SAVE_DEFAULT_MANAGER,
        callback_data=f"{CALLBACK_SAVE_DEFAULT_MANAGER}:{manager_id}",
    )
    return builder.as_markup()


def escape_markdown(text: str) -> str:
    return markdown_decoration.quote(text)


def format_card(record: UserRecord) -> str:
    """Карточка клиента в MarkdownV2; номер карты копируется нажатием."""
    return (
        f"Номер Карты: `{escape_markdown(record.card_num)}`\n"
        "\\(копируется нажатием\\)\n"
        f"Имя: {escape_markdown(record.name)}\n"
        f"Баланс: {escape_markdown(str(record.balance))}\n"
        f"Средний чек: {escape_markdown(record.avg_bill_display)}"
    )


def is_command(message: Message) -> bool:
    return any(entity.type == "bot_command" for entity in message.entities or [])


class MessageView:
    """Вывод диалога регистрации в чат оператора."""

    def __init__(self, message: Message) -> None:
        self._message = message

    async def ask(self, text: str) -> None:
        await self._message.answer(text, reply_markup=skip_keyboard())

    async def say(self, text: str) -> None:
        await self._message.answer(text)

    async def show_card(self, record: UserRecord) -> None:
        await self._message.answer(format_card(record), parse_mode="MarkdownV2")

    async def show_main_menu(self) -> None:
        await self._message.answer(MAIN_MENU_TEXT, reply_markup=main_menu_keyboard())

"""Обработчики команд /start и /help."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from cardbot.logging import get_logger
from cardbot.telegram import MAIN_MENU_TEXT, main_menu_keyboard


router = Router()
logger = get_logger(__name__)

HELP_TEXT = (
    "Доступные команды:\n"
    "/start - Начать поиск или регистрацию по номеру телефона\n"
    "/help - Показать это сообщение"
)


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext) -> None:
    logger.info("command_start", user_id=message.from_user.id if message.from_user else None)
    await state.set_state(None)
    await state.update_data(registration=None)
    await message.answer(MAIN_MENU_TEXT, reply_markup=main_menu_keyboard())


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    logger.info("command_help", user_id=message.from_user.id if message.from_user else None)
    await message.answer(HELP_TEXT)

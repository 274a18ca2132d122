"""Обработчики поиска клиента по телефону и диалога регистрации."""

from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from cardbot.dialog import (
    CommandInput,
    DialogInput,
    RegistrationDialog,
    SkipSignal,
    TextInput,
    start_registration,
)
from cardbot.logging import get_logger
from cardbot.services.crm import CrmClient
from cardbot.services.lookup import find_user
from cardbot.services.validators import (
    PHONE_FORMATS_HINT,
    ValidationException,
    normalize_phone,
)
from cardbot.states import STEP_STATES, RegistrationStates
from cardbot.telegram import CALLBACK_FIND_CLIENT, CALLBACK_SKIP, MessageView, is_command


router = Router()
logger = get_logger(__name__)

INLINE_RESULT_PREFIX = "Менеджер:"
DIALOG_KEY = "registration"


async def save_dialog(state: FSMContext, dialog: RegistrationDialog) -> None:
    """Сохранить диалог в FSM-хранилище или очистить его после завершения."""
    if dialog.finished:
        logger.info("registration_finished", outcome=dialog.outcome().status.value)
        await state.set_state(None)
        await state.update_data({DIALOG_KEY: None})
        return
    await state.set_state(STEP_STATES[dialog.step])
    await state.update_data({DIALOG_KEY: dialog.snapshot()})


async def _deliver(
    message: Message,
    state: FSMContext,
    bot_data: dict,
    event: DialogInput,
) -> None:
    data = await state.get_data()
    snapshot = data.get(DIALOG_KEY)
    if not snapshot:
        logger.warning("registration_snapshot_missing")
        await state.set_state(None)
        await message.answer("Диалог регистрации не найден. Введите номер телефона ещё раз.")
        return

    dialog = RegistrationDialog.restore(
        snapshot,
        bot_data["crm_client"],
        MessageView(message),
        bot_data["dialog_settings"],
    )
    await dialog.deliver(event)
    await save_dialog(state, dialog)


@router.callback_query(F.data == CALLBACK_FIND_CLIENT)
async def find_client(callback: CallbackQuery) -> None:
    await callback.answer()
    await callback.message.answer("Отправьте номер телефона для поиска информации")
    await callback.message.answer(PHONE_FORMATS_HINT)


@router.message(StateFilter(None), F.text, ~F.text.startswith("/"))
async def handle_phone(message: Message, state: FSMContext, bot_data: dict) -> None:
    text = message.text.strip()
    if text.startswith(INLINE_RESULT_PREFIX):
        logger.debug("inline_result_message_skipped")
        return

    try:
        phone = normalize_phone(text)
    except ValidationException as exc:
        logger.warning("phone_invalid", phone=text)
        await message.answer(exc.message)
        return

    logger.info("phone_lookup", original=text, phone=phone)
    client: CrmClient = bot_data["crm_client"]
    view = MessageView(message)

    record = await find_user(client, phone, max_attempts=1)
    if record is not None:
        await view.show_card(record)
        await view.show_main_menu()
        return

    await message.answer("Пользователь не найден. Начинаем регистрацию...")
    dialog = await start_registration(phone, client, view, bot_data["dialog_settings"])
    await save_dialog(state, dialog)


@router.message(StateFilter(RegistrationStates), F.text)
async def handle_dialog_text(message: Message, state: FSMContext, bot_data: dict) -> None:
    if is_command(message):
        event: DialogInput = CommandInput(message.text)
    else:
        event = TextInput(message.text)
    await _deliver(message, state, bot_data, event)


@router.callback_query(StateFilter(RegistrationStates), F.data == CALLBACK_SKIP)
async def handle_dialog_skip(callback: CallbackQuery, state: FSMContext, bot_data: dict) -> None:
    await callback.answer()
    await _deliver(callback.message, state, bot_data, SkipSignal())


@router.message(StateFilter(RegistrationStates))
async def handle_dialog_unexpected(message: Message) -> None:
    await message.answer(
        "Неожиданный формат ответа. Пожалуйста, введите текст или нажмите кнопку \"Пропустить\"."
    )

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from cardbot.dialog import INPUT_STEPS
from cardbot.handlers import commands, registration
from cardbot.handlers.registration import DIALOG_KEY
from cardbot.states import STEP_STATES, RegistrationStates
from cardbot.telegram import MAIN_MENU_TEXT


def make_message(text, *, command=False):
    message = MagicMock()
    message.text = text
    message.entities = [MagicMock(type="bot_command")] if command else None
    message.from_user = MagicMock(id=42)
    message.answer = AsyncMock()
    return message


def answers(message):
    return [call.args[0] for call in message.answer.call_args_list]


@pytest.fixture
def state():
    return FSMContext(
        storage=MemoryStorage(),
        key=StorageKey(bot_id=1, chat_id=42, user_id=42),
    )


@pytest.fixture
def bot_data(dialog_settings):
    def build(gateway):
        return {"crm_client": gateway, "dialog_settings": dialog_settings}

    return build


async def start_dialog(state, bot_data, gateway):
    message = make_message("+7 (916) 123-45-67")
    await registration.handle_phone(message, state, bot_data(gateway))
    return message


def test_every_input_step_has_fsm_state():
    assert set(STEP_STATES) == set(INPUT_STEPS)


@pytest.mark.asyncio
async def test_unknown_phone_starts_registration_and_saves_snapshot(
    state, bot_data, make_gateway
):
    gateway = make_gateway(search_results=[[]])

    message = await start_dialog(state, bot_data, gateway)

    assert gateway.searched == ["79161234567"]
    assert answers(message)[:2] == [
        "Пользователь не найден. Начинаем регистрацию...",
        "Введите имя клиента:",
    ]
    assert await state.get_state() == RegistrationStates.waiting_for_first_name.state
    snapshot = (await state.get_data())[DIALOG_KEY]
    assert snapshot["step"] == "await_first_name"
    assert snapshot["draft"]["phone"] == "79161234567"


@pytest.mark.asyncio
async def test_known_phone_shows_card_without_dialog(state, bot_data, make_gateway, record):
    gateway = make_gateway(search_results=[[record]])

    message = await start_dialog(state, bot_data, gateway)

    card_call, menu_call = message.answer.call_args_list
    assert card_call.kwargs["parse_mode"] == "MarkdownV2"
    assert menu_call.args == (MAIN_MENU_TEXT,)
    assert await state.get_state() is None
    assert DIALOG_KEY not in await state.get_data()


@pytest.mark.asyncio
async def test_invalid_phone_answers_hint(state, bot_data, make_gateway):
    gateway = make_gateway()
    message = make_message("12345")

    await registration.handle_phone(message, state, bot_data(gateway))

    assert gateway.searched == []
    assert "Неверный формат номера" in answers(message)[0]
    assert await state.get_state() is None


@pytest.mark.asyncio
async def test_answers_are_persisted_between_updates(state, bot_data, make_gateway):
    gateway = make_gateway(search_results=[[]])
    await start_dialog(state, bot_data, gateway)

    reply = make_message("Иван")
    await registration.handle_dialog_text(reply, state, bot_data(gateway))

    assert answers(reply) == ["Введите фамилию клиента:"]
    assert await state.get_state() == RegistrationStates.waiting_for_last_name.state
    snapshot = (await state.get_data())[DIALOG_KEY]
    assert snapshot["draft"]["first_name"] == "Иван"
    assert snapshot["step"] == "await_last_name"


@pytest.mark.asyncio
async def test_skip_buttons_complete_registration_and_clear_state(
    state, bot_data, make_gateway, record
):
    gateway = make_gateway(search_results=[[], [record]])
    await start_dialog(state, bot_data, gateway)
    await registration.handle_dialog_text(make_message("Иван"), state, bot_data(gateway))

    for _ in range(3):
        callback = MagicMock()
        callback.answer = AsyncMock()
        callback.message = make_message(None)
        await registration.handle_dialog_skip(callback, state, bot_data(gateway))
        callback.answer.assert_awaited_once()

    assert [draft.first_name for draft in gateway.registered] == ["Иван"]
    assert "Регистрация прошла успешно! Получаем информацию о карте..." in answers(
        callback.message
    )
    assert await state.get_state() is None
    assert (await state.get_data())[DIALOG_KEY] is None


@pytest.mark.asyncio
async def test_command_during_dialog_cancels_and_clears_state(state, bot_data, make_gateway):
    gateway = make_gateway(search_results=[[]])
    await start_dialog(state, bot_data, gateway)
    await registration.handle_dialog_text(make_message("Иван"), state, bot_data(gateway))

    command = make_message("/start", command=True)
    await registration.handle_dialog_text(command, state, bot_data(gateway))

    assert answers(command) == ["Регистрация отменена", MAIN_MENU_TEXT]
    assert gateway.registered == []
    assert await state.get_state() is None
    assert (await state.get_data())[DIALOG_KEY] is None


@pytest.mark.asyncio
async def test_slash_text_without_command_entity_is_an_answer(state, bot_data, make_gateway):
    gateway = make_gateway(search_results=[[]])
    await start_dialog(state, bot_data, gateway)

    await registration.handle_dialog_text(make_message("/Иван"), state, bot_data(gateway))

    snapshot = (await state.get_data())[DIALOG_KEY]
    assert snapshot["draft"]["first_name"] == "/Иван"


@pytest.mark.asyncio
async def test_missing_snapshot_resets_state(state, bot_data, make_gateway):
    await state.set_state(RegistrationStates.waiting_for_last_name)
    message = make_message("Петров")

    await registration.handle_dialog_text(message, state, bot_data(make_gateway()))

    assert answers(message) == [
        "Диалог регистрации не найден. Введите номер телефона ещё раз."
    ]
    assert await state.get_state() is None


@pytest.mark.asyncio
async def test_start_command_drops_dialog(state, bot_data, make_gateway):
    await start_dialog(state, bot_data, make_gateway(search_results=[[]]))
    message = make_message("/start", command=True)

    await commands.cmd_start(message, state)

    assert answers(message) == [MAIN_MENU_TEXT]
    assert await state.get_state() is None
    assert (await state.get_data())[DIALOG_KEY] is None


def test_registration_router_precedes_commands():
    from cardbot.main import build_dispatcher

    dp = build_dispatcher({})

    routers = dp.sub_routers
    assert routers.index(registration.router) < routers.index(commands.router)

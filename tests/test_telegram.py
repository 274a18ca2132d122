from unittest.mock import AsyncMock, MagicMock

import pytest

from cardbot.schemas import UserRecord
from cardbot.telegram import (
    BUTTON_SKIP,
    CALLBACK_SKIP,
    MAIN_MENU_TEXT,
    MessageView,
    format_card,
    is_command,
    main_menu_keyboard,
)


def test_format_card_escapes_markdown(record):
    text = format_card(record)

    assert text == (
        "Номер Карты: `1234\\-5678`\n"
        "\\(копируется нажатием\\)\n"
        "Имя: Иван Петров\n"
        "Баланс: 150\n"
        "Средний чек: 1234\\.50"
    )


def test_format_card_without_average_bill():
    record = UserRecord(card_num="1", name="A", balance=0, avgBill=None)

    assert format_card(record).endswith("Средний чек: N/A")


def test_main_menu_keyboard():
    markup = main_menu_keyboard()

    buttons = [button for row in markup.inline_keyboard for button in row]
    assert buttons[0].callback_data == "find_client"
    assert buttons[1].switch_inline_query_current_chat == ""


def test_is_command():
    command = MagicMock(entities=[MagicMock(type="bot_command")])
    plain = MagicMock(entities=None)

    assert is_command(command)
    assert not is_command(plain)


@pytest.mark.asyncio
async def test_message_view_ask_shows_skip_button():
    message = MagicMock()
    message.answer = AsyncMock()
    view = MessageView(message)

    await view.ask("Введите имя клиента:")

    message.answer.assert_awaited_once()
    args, kwargs = message.answer.call_args
    assert args == ("Введите имя клиента:",)
    button = kwargs["reply_markup"].inline_keyboard[0][0]
    assert button.text == BUTTON_SKIP
    assert button.callback_data == CALLBACK_SKIP


@pytest.mark.asyncio
async def test_message_view_card_and_menu(record):
    message = MagicMock()
    message.answer = AsyncMock()
    view = MessageView(message)

    await view.show_card(record)
    await view.show_main_menu()

    card_call, menu_call = message.answer.call_args_list
    assert card_call.kwargs["parse_mode"] == "MarkdownV2"
    assert menu_call.args == (MAIN_MENU_TEXT,)

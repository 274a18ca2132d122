"""Общие фикстуры и заглушки CRM и чата для тестов."""

from dataclasses import replace
from datetime import date

import pytest

from cardbot.dialog import DialogSettings
from cardbot.schemas import RegisterResponse, UserRecord


TODAY = date(2026, 10, 19)
MIN_BIRTHDATE = "2008-10-18"


class FakeGateway:
    """CRM, отвечающая заранее заданными результатами по очереди."""

    def __init__(self, register_results=(), search_results=()):
        self.register_results = list(register_results)
        self.search_results = list(search_results)
        self.registered = []
        self.searched = []

    async def register_user(self, draft):
        self.registered.append(replace(draft))
        result = self.register_results.pop(0) if self.register_results else None
        if isinstance(result, Exception):
            raise result
        return RegisterResponse(status="ok")

    async def search_by_phone(self, phone):
        self.searched.append(phone)
        result = self.search_results.pop(0) if self.search_results else []
        if isinstance(result, Exception):
            raise result
        return result


class FakeView:
    def __init__(self):
        self.events = []

    async def ask(self, text):
        self.events.append(("ask", text))

    async def say(self, text):
        self.events.append(("say", text))

    async def show_card(self, record):
        self.events.append(("card", record))

    async def show_main_menu(self):
        self.events.append(("menu", None))

    def texts(self, kind):
        return [payload for event, payload in self.events if event == kind]


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def record():
    return UserRecord(card_num="1234-5678", name="Иван Петров", balance=150, avgBill="1234.5")


@pytest.fixture
def view():
    return FakeView()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def dialog_settings(fake_sleep):
    return DialogSettings(
        max_attempts=3,
        poll_attempts=5,
        poll_delay=1.0,
        sleep=fake_sleep,
        today=TODAY,
    )


@pytest.fixture
def make_gateway():
    return FakeGateway

"""Диалог регистрации нового клиента.

Диалог ведёт оператора по шагам: имя, фамилия, промокод, дата рождения.
Каждое внешнее событие (текст, кнопка «Пропустить» или команда) подаётся
в `RegistrationDialog.deliver`, который продвигает диалог до следующей
точки ожидания ввода или до завершения и возвращает текущий шаг.

После сбора данных диалог отправляет регистрацию в CRM (не более
`max_attempts` засчитанных неудачных попыток), при ошибке промокода
переспрашивает промокод, а после успешной регистрации опрашивает CRM,
пока карта клиента не станет видна.

Ошибки промокода не расходуют попытки регистрации: каждая такая попытка
требует нового ввода оператора, а счётчик засчитанных неудач никогда
не сбрасывается.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union

from cardbot.logging import get_logger
from cardbot.schemas import RegistrationDraft, UserRecord
from cardbot.services.crm import (
    CrmError,
    CrmGateway,
    CrmValidationError,
    PromoCodeError,
)
from cardbot.services.lookup import Sleep, find_user
from cardbot.services.validators import (
    ValidationException,
    format_date_for_api,
    minimum_birthdate,
    normalize_phone,
    parse_birthdate,
)


logger = get_logger(__name__)


class DialogStep(str, Enum):
    AWAIT_FIRST_NAME = "await_first_name"
    AWAIT_LAST_NAME = "await_last_name"
    AWAIT_PROMO_CODE = "await_promo_code"
    AWAIT_BIRTH_DATE = "await_birth_date"
    SUBMITTING = "submitting"
    POLLING = "polling"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


INPUT_STEPS = frozenset(
    {
        DialogStep.AWAIT_FIRST_NAME,
        DialogStep.AWAIT_LAST_NAME,
        DialogStep.AWAIT_PROMO_CODE,
        DialogStep.AWAIT_BIRTH_DATE,
    }
)
TERMINAL_STEPS = frozenset({DialogStep.DONE, DialogStep.CANCELLED, DialogStep.FAILED})

PROMPTS = {
    DialogStep.AWAIT_FIRST_NAME: "Введите имя клиента:",
    DialogStep.AWAIT_LAST_NAME: "Введите фамилию клиента:",
    DialogStep.AWAIT_PROMO_CODE: "Введите промокод (если есть):",
    DialogStep.AWAIT_BIRTH_DATE: "Введите дату рождения клиента (формат: ДД.ММ.ГГГГ):",
}

PROMO_RETRY_PROMPT = (
    "Введите другой промокод или нажмите 'Пропустить' для регистрации без промокода:"
)


@dataclass(frozen=True)
class SkipSignal:
    """Нажатие кнопки «Пропустить»."""


@dataclass(frozen=True)
class TextInput:
    text: str


@dataclass(frozen=True)
class CommandInput:
    text: str


DialogInput = Union[SkipSignal, TextInput, CommandInput]


class OutcomeStatus(str, Enum):
    PENDING = "pending"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REGISTERED = "registered"


@dataclass(frozen=True)
class DialogOutcome:
    status: OutcomeStatus
    record: Optional[UserRecord] = None


class DialogView(Protocol):
    """То, как диалог общается с оператором."""

    async def ask(self, text: str) -> None:
        """Задать вопрос с кнопкой «Пропустить»."""

    async def say(self, text: str) -> None:
        ...

    async def show_card(self, record: UserRecord) -> None:
        ...

    async def show_main_menu(self) -> None:
        ...


class DialogClosedError(RuntimeError):
    """Ввод передан в уже завершённый диалог."""


@dataclass
class DialogSettings:
    max_attempts: int = 3
    poll_attempts: int = 5
    poll_delay: float = 1.0
    sleep: Sleep = asyncio.sleep
    today: Optional[date] = None

    @classmethod
    def from_settings(cls, settings) -> "DialogSettings":
        return cls(
            max_attempts=settings.registration_max_attempts,
            poll_attempts=settings.poll_max_attempts,
            poll_delay=settings.poll_delay_seconds,
        )


class RegistrationDialog:
    """Конечный автомат регистрации одного клиента."""

    def __init__(
        self,
        draft: RegistrationDraft,
        gateway: CrmGateway,
        view: DialogView,
        settings: DialogSettings | None = None,
        *,
        step: DialogStep = DialogStep.AWAIT_FIRST_NAME,
        failed_attempts: int = 0,
        promo_retry: bool = False,
    ) -> None:
        self.draft: Optional[RegistrationDraft] = draft
        self.step = step
        self.failed_attempts = failed_attempts
        self._promo_retry = promo_retry
        self._gateway = gateway
        self._view = view
        self._settings = settings or DialogSettings()
        self._record: Optional[UserRecord] = None

    @classmethod
    def restore(
        cls,
        data: Dict[str, Any],
        gateway: CrmGateway,
        view: DialogView,
        settings: DialogSettings | None = None,
    ) -> "RegistrationDialog":
        """Восстановить диалог из снимка, сохранённого в FSM-хранилище."""
        return cls(
            RegistrationDraft(**data["draft"]),
            gateway,
            view,
            settings,
            step=DialogStep(data["step"]),
            failed_attempts=data.get("failed_attempts", 0),
            promo_retry=data.get("promo_retry", False),
        )

    def snapshot(self) -> Dict[str, Any]:
        if self.draft is None:
            raise DialogClosedError(f"Диалог завершён: {self.step.value}")
        return {
            "step": self.step.value,
            "draft": self.draft.as_dict(),
            "failed_attempts": self.failed_attempts,
            "promo_retry": self._promo_retry,
        }

    @property
    def finished(self) -> bool:
        return self.step in TERMINAL_STEPS

    def outcome(self) -> DialogOutcome:
        if self.step is DialogStep.DONE:
            return DialogOutcome(OutcomeStatus.REGISTERED, self._record)
        if self.step is DialogStep.CANCELLED:
            return DialogOutcome(OutcomeStatus.CANCELLED)
        if self.step is DialogStep.FAILED:
            return DialogOutcome(OutcomeStatus.FAILED)
        return DialogOutcome(OutcomeStatus.PENDING)

    async def begin(self) -> DialogStep:
        """Показать вопрос текущего шага."""
        await self._view.ask(PROMPTS[self.step])
        return self.step

    async def deliver(self, event: DialogInput) -> DialogStep:
        """Обработать одно событие оператора и вернуть новый шаг."""
        if self.step not in INPUT_STEPS:
            raise DialogClosedError(f"Диалог не ожидает ввода: {self.step.value}")

        if isinstance(event, CommandInput):
            logger.info("registration_cancelled", step=self.step.value, command=event.text)
            return await self._cancel("Регистрация отменена")

        if self.step is DialogStep.AWAIT_FIRST_NAME:
            self.draft.first_name = self._optional_value(event)
            logger.debug("registration_first_name", skipped=isinstance(event, SkipSignal))
            return await self._advance(DialogStep.AWAIT_LAST_NAME)

        if self.step is DialogStep.AWAIT_LAST_NAME:
            self.draft.last_name = self._optional_value(event)
            logger.debug("registration_last_name", skipped=isinstance(event, SkipSignal))
            return await self._advance(DialogStep.AWAIT_PROMO_CODE)

        if self.step is DialogStep.AWAIT_PROMO_CODE:
            return await self._on_promo_code(event)

        return await self._on_birth_date(event)

    @staticmethod
    def _optional_value(event: DialogInput) -> str:
        if isinstance(event, SkipSignal):
            return ""
        return event.text

    async def _advance(self, step: DialogStep) -> DialogStep:
        self.step = step
        await self._view.ask(PROMPTS[step])
        return step

    async def _on_promo_code(self, event: DialogInput) -> DialogStep:
        skipped = isinstance(event, SkipSignal)
        self.draft.promo_code = self._optional_value(event)
        logger.debug(
            "registration_promo_code",
            skipped=skipped,
            promo_code=self.draft.promo_code,
            retry=self._promo_retry,
        )

        if self._promo_retry:
            self._promo_retry = False
            if skipped:
                await self._view.say("Продолжаем регистрацию без промокода...")
            else:
                await self._view.say(
                    f"Пробуем регистрацию с промокодом: {self.draft.promo_code}"
                )
            return await self._submit()

        if skipped:
            await self._view.say("Регистрация продолжается без промокода")
        return await self._advance(DialogStep.AWAIT_BIRTH_DATE)

    async def _on_birth_date(self, event: DialogInput) -> DialogStep:
        if isinstance(event, SkipSignal):
            default = minimum_birthdate(self._settings.today)
            self.draft.birth_date = format_date_for_api(default)
            logger.debug("registration_birth_date_default", birth_date=self.draft.birth_date)
            await self._view.say(
                "Установлена минимально допустимая дата рождения (18 лет)"
            )
            return await self._submit()

        try:
            parsed = parse_birthdate(event.text, self._settings.today)
        except ValidationException as exc:
            logger.warning("registration_birth_date_invalid", value=event.text, error=exc.message)
            await self._view.ask(
                f"{exc.message}\nПожалуйста, введите дату еще раз в формате "
                "ДД.ММ.ГГГГ или нажмите кнопку \"Пропустить\":"
            )
            return self.step

        self.draft.birth_date = format_date_for_api(parsed)
        await self._view.say(f"Дата рождения успешно установлена: {event.text.strip()}")
        return await self._submit()

    async def _register(self) -> None:
        notice = asyncio.ensure_future(
            self._view.say("Отправляем данные клиента на регистрацию...")
        )
        try:
            await self._gateway.register_user(self.draft)
        finally:
            await notice

    async def _submit(self) -> DialogStep:
        self.step = DialogStep.SUBMITTING
        max_attempts = self._settings.max_attempts

        while self.failed_attempts < max_attempts:
            logger.info(
                "registration_attempt",
                phone=self.draft.phone,
                failed_attempts=self.failed_attempts,
                max_attempts=max_attempts,
            )
            try:
                await self._register()
            except PromoCodeError as exc:
                logger.warning("registration_promo_code_rejected", error=exc.message)
                await self._view.say(f"Указанный промокод не найден: {exc.message}")
                return await self._ask_promo_code()
            except CrmValidationError as exc:
                logger.warning(
                    "registration_validation_failed",
                    error=exc.message,
                    details=exc.details,
                )
                await self._view.say(f"Проверка данных не пройдена: {exc.message}")
                if not exc.promo_code_only and exc.details:
                    await self._view.say(self._format_details(exc.details))
                if exc.mentions_promo_code:
                    return await self._ask_promo_code()
                self.failed_attempts += 1
                if self.failed_attempts < max_attempts:
                    await self._view.say("Пробуем еще раз...")
            except CrmError as exc:
                logger.error(
                    "registration_failed",
                    kind=exc.kind.value,
                    error=exc.message,
                    failed_attempts=self.failed_attempts + 1,
                )
                self.failed_attempts += 1
                await self._view.say(f"Не удалось выполнить регистрацию: {exc.message}")
                if self.failed_attempts < max_attempts:
                    await self._view.say("Пробуем еще раз...")
            else:
                logger.info("registration_succeeded", phone=self.draft.phone)
                return await self._poll()

        logger.warning("registration_attempts_exhausted", phone=self.draft.phone)
        return await self._cancel(
            "Превышено количество попыток регистрации. Пожалуйста, попробуйте позже."
        )

    @staticmethod
    def _format_details(details: Dict[str, Any]) -> str:
        lines = ["Детали ошибок:"]
        for field, messages in details.items():
            lines.append(f"- {field}: {', '.join(messages)}")
        return "\n".join(lines)

    async def _ask_promo_code(self) -> DialogStep:
        self.step = DialogStep.AWAIT_PROMO_CODE
        self._promo_retry = True
        await self._view.ask(PROMO_RETRY_PROMPT)
        return self.step

    async def _poll(self) -> DialogStep:
        self.step = DialogStep.POLLING
        await self._view.say("Регистрация прошла успешно! Получаем информацию о карте...")

        record = await find_user(
            self._gateway,
            self.draft.phone,
            max_attempts=self._settings.poll_attempts,
            delay=self._settings.poll_delay,
            sleep=self._settings.sleep,
        )
        if record is None:
            await self._view.say(
                "Клиент зарегистрирован, но данные карты пока недоступны. "
                "Попробуйте найти его по номеру телефона позже."
            )
        else:
            await self._view.show_card(record)

        await self._view.show_main_menu()
        self._record = record
        self.step = DialogStep.DONE
        self.draft = None
        return self.step

    async def _cancel(self, message: str) -> DialogStep:
        await self._view.say(message)
        await self._view.show_main_menu()
        self.step = DialogStep.CANCELLED
        self.draft = None
        return self.step


async def start_registration(
    phone: str,
    gateway: CrmGateway,
    view: DialogView,
    settings: DialogSettings | None = None,
) -> RegistrationDialog:
    """Начать диалог регистрации для номера, по которому клиент не найден."""

    settings = settings or DialogSettings()
    try:
        normalized = normalize_phone(phone)
    except ValidationException as exc:
        logger.warning("registration_phone_invalid", phone=phone)
        await view.say(exc.message)
        dialog = RegistrationDialog(
            RegistrationDraft(phone=phone),
            gateway,
            view,
            settings,
            step=DialogStep.FAILED,
        )
        dialog.draft = None
        return dialog

    draft = RegistrationDraft(
        phone=normalized,
        birth_date=format_date_for_api(minimum_birthdate(settings.today)),
    )
    logger.info("registration_started", phone=normalized)
    dialog = RegistrationDialog(draft, gateway, view, settings)
    await dialog.begin()
    return dialog

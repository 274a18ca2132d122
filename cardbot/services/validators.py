"""Помощники для валидации пользовательского ввода."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta


PHONE_CLEAN_PATTERN = re.compile(r"[^\d+]+")
BIRTHDATE_PATTERN = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")

MINIMUM_AGE_YEARS = 18

PHONE_FORMATS_HINT = (
    "Допустимые форматы: 9999999999, +79999999999, 79999999999, 89999999999"
)


class ValidationException(ValueError):
    """Пользовательское исключение валидации с дружественным текстом."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def normalize_phone(raw_phone: str) -> str:
    """Нормализовать номер телефона к 11 цифрам, начинающимся с 7.

    Принимаются 10 цифр (добавляется 7), +7 и 10 цифр, 7 и 10 цифр,
    8 и 10 цифр (8 заменяется на 7). Всё остальное отклоняется целиком.
    """

    cleaned = PHONE_CLEAN_PATTERN.sub("", raw_phone or "")

    if re.fullmatch(r"\d{10}", cleaned):
        return "7" + cleaned
    if re.fullmatch(r"\+7\d{10}", cleaned):
        return cleaned[1:]
    if re.fullmatch(r"7\d{10}", cleaned):
        return cleaned
    if re.fullmatch(r"8\d{10}", cleaned):
        return "7" + cleaned[1:]

    raise ValidationException(
        f"Неверный формат номера телефона. {PHONE_FORMATS_HINT}"
    )


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 февраля в невисокосном году переходит на 1 марта
        return date(day.year - years, 3, 1)


def minimum_birthdate(today: date | None = None) -> date:
    """Самая поздняя допустимая дата рождения: сегодня минус 18 лет и один день."""

    today = today or date.today()
    return _years_before(today, MINIMUM_AGE_YEARS) - timedelta(days=1)


def format_date_for_api(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def parse_birthdate(value: str, today: date | None = None) -> date:
    """Распарсить дату рождения ДД.ММ.ГГГГ и проверить минимальный возраст."""

    match = BIRTHDATE_PATTERN.fullmatch((value or "").strip())
    if not match:
        raise ValidationException(
            "Неверный формат даты. Используйте формат ДД.ММ.ГГГГ (например, 25.12.2000)"
        )

    try:
        parsed = datetime.strptime(match.group(0), "%d.%m.%Y").date()
    except ValueError:
        raise ValidationException("Указана несуществующая дата") from None

    if parsed > minimum_birthdate(today):
        raise ValidationException(
            f"Клиент должен быть старше {MINIMUM_AGE_YEARS} лет"
        )

    return parsed

"""Поиск карты клиента с ограниченным числом попыток."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_fixed

from cardbot.logging import get_logger
from cardbot.schemas import UserRecord
from cardbot.services.crm import CrmError, CrmGateway


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def find_user(
    gateway: CrmGateway,
    phone: str,
    *,
    max_attempts: int = 1,
    delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> Optional[UserRecord]:
    """Найти клиента по телефону, повторяя поиск при промахе.

    Ошибка CRM на отдельной попытке логируется и считается промахом.
    Поиск прекращается на первом непустом ответе; после последней
    попытки задержки нет. Если все попытки исчерпаны, возвращается None.
    """

    attempt_number = 0

    async def attempt_lookup() -> Optional[UserRecord]:
        nonlocal attempt_number
        attempt_number += 1
        logger.debug("user_lookup_attempt", phone=phone, attempt=attempt_number)
        try:
            users = await gateway.search_by_phone(phone)
        except CrmError as exc:
            logger.error(
                "user_lookup_failed",
                phone=phone,
                attempt=attempt_number,
                error=exc.message,
            )
            return None
        if not users:
            logger.info("user_not_found", phone=phone, attempt=attempt_number)
            return None
        return users[0]

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda record: record is None),
        retry_error_callback=lambda retry_state: None,
        sleep=sleep,
    )
    record = await retrying(attempt_lookup)

    if record is None:
        logger.warning("user_lookup_exhausted", phone=phone, attempts=max_attempts)
    else:
        logger.info("user_found", phone=phone, card_num=record.card_num)
    return record

"""Статистика конверсии по менеджерам."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Iterable, List, Sequence

from cardbot.logging import get_logger
from cardbot.schemas import BonusOperation, Manager, ManagerStats, OperationsResult
from cardbot.services.crm import CrmClient, CrmError


logger = get_logger(__name__)

REGISTRATION_BONUS = "-100"
ZERO_PRICE = "0.00"


def _amount(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def calculate_operations(bonus_list: Iterable[BonusOperation]) -> OperationsResult:
    """Посчитать регистрации и использования карт по списку бонусных операций.

    Операции сортируются по дате и id. Списание -100 с нулевой суммой чека,
    за которым идёт начисление, считается регистрацией. Списание с нулевой
    суммой, за которым идёт начисление по оплаченному чеку, и одиночное
    начисление по оплаченному чеку считаются использованием.
    """

    operations = sorted(
        bonus_list,
        key=lambda item: (item.date, _amount(item.id_bonus)),
    )
    result = OperationsResult()

    index = 0
    while index < len(operations):
        current = operations[index]
        following = operations[index + 1] if index + 1 < len(operations) else None

        if (
            following is not None
            and current.value == REGISTRATION_BONUS
            and current.order_price == ZERO_PRICE
            and _amount(following.value) > 0
        ):
            result.registrations += 1
            result.total_operations += 1
            index += 2
            continue

        if (
            following is not None
            and _amount(current.value) < 0
            and current.order_price == ZERO_PRICE
            and _amount(following.value) > 0
            and _amount(following.order_price) > 0
        ):
            result.usages += 1
            result.total_operations += 1
            index += 2
            continue

        if _amount(current.value) > 0 and _amount(current.order_price) > 0:
            result.usages += 1
            result.total_operations += 1

        index += 1

    return result


async def _manager_stats(client: CrmClient, manager: Manager, day: str) -> ManagerStats:
    try:
        bonus_list = await client.get_bonus_list(manager.id, day, day)
    except CrmError as exc:
        logger.error("manager_stats_failed", manager_id=manager.id, error=exc.message)
        return ManagerStats(id=manager.id, name=manager.name, stats=OperationsResult())
    return ManagerStats(
        id=manager.id,
        name=manager.name,
        stats=calculate_operations(bonus_list),
    )


async def managers_stats(client: CrmClient, day: date | None = None) -> List[ManagerStats]:
    """Статистика всех менеджеров за день, самые активные первыми."""

    day_str = (day or date.today()).isoformat()
    logger.info("managers_stats_fetch", date=day_str)

    try:
        managers = await client.get_managers()
    except CrmError as exc:
        logger.error("managers_fetch_failed", error=exc.message)
        return []

    stats = await asyncio.gather(
        *(_manager_stats(client, manager, day_str) for manager in managers)
    )
    return sorted(
        stats,
        key=lambda item: item.stats.registrations + item.stats.usages,
        reverse=True,
    )


def filter_managers(managers: Sequence[ManagerStats], query: str) -> List[ManagerStats]:
    normalized = query.strip().lower()
    if not normalized:
        return list(managers)
    return [manager for manager in managers if normalized in manager.name.lower()]

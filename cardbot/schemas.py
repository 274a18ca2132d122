"""Схемы данных для взаимодействия с CRM."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from pydantic import BaseModel, Field


@dataclass
class RegistrationDraft:
    """Данные нового клиента, накапливаемые диалогом регистрации."""

    phone: str
    first_name: str = ""
    last_name: str = ""
    birth_date: str = ""
    promo_code: str = ""

    def as_dict(self) -> Dict[str, str]:
        return asdict(self)


class UserRecord(BaseModel):
    card_num: str
    name: str = ""
    balance: float | int | str = 0
    avg_bill: str | None = Field(default=None, alias="avgBill")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def avg_bill_display(self) -> str:
        """Средний чек с двумя знаками после запятой или N/A."""
        if not self.avg_bill:
            return "N/A"
        try:
            return f"{float(self.avg_bill):.2f}"
        except ValueError:
            return "N/A"


class UsersResponse(BaseModel):
    users: List[UserRecord] = Field(default_factory=list)
    meta: Dict[str, Any] | None = None


class RegisterRequest(BaseModel):
    phone: str
    firstName: str = ""
    lastName: str = ""
    bDate: str
    promoCode: str = ""
    token: str = ""

    @classmethod
    def from_draft(cls, draft: RegistrationDraft) -> "RegisterRequest":
        """Построить тело запроса регистрации из черновика диалога."""
        return cls(
            phone=draft.phone,
            firstName=draft.first_name,
            lastName=draft.last_name,
            bDate=draft.birth_date,
            promoCode=draft.promo_code,
        )


class RegisterResponse(BaseModel):
    status: str
    message: str | None = None
    androidUrl: str | None = None
    iosUrl: str | None = None
    authToken: str | None = None
    details: Dict[str, Any] | None = None

    model_config = {
        "extra": "allow",
    }

    @property
    def validation_details(self) -> Dict[str, List[str]]:
        """Ошибки валидации по полям, приведённые к спискам строк."""
        raw = (self.details or {}).get("validation") or {}
        result: Dict[str, List[str]] = {}
        for field, messages in raw.items():
            if isinstance(messages, list):
                result[field] = [str(item) for item in messages]
            else:
                result[field] = [str(messages)]
        return result


class Manager(BaseModel):
    id: str = Field(alias="idManager")
    name: str = Field(alias="managerName")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


class BonusOperation(BaseModel):
    id_bonus: str
    value: str
    order_price: str
    date: str

    model_config = {
        "extra": "ignore",
    }


@dataclass
class OperationsResult:
    total_operations: int = 0
    registrations: int = 0
    usages: int = 0


@dataclass
class ManagerStats:
    id: str
    name: str
    stats: OperationsResult

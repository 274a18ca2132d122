"""Асинхронный клиент для работы с REST API CRM программы лояльности."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from cardbot.logging import get_logger
from cardbot.schemas import (
    BonusOperation,
    Manager,
    RegisterRequest,
    RegisterResponse,
    RegistrationDraft,
    UserRecord,
    UsersResponse,
)


logger = get_logger(__name__)

PROMO_CODE_FIELD = "promoCode"


class CrmErrorKind(str, Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    PROMO_CODE = "promo_code"
    UNKNOWN = "unknown"


class CrmError(Exception):
    """Базовое исключение для ошибок CRM."""

    kind = CrmErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CrmNetworkError(CrmError):
    """CRM недоступна: сетевая ошибка или ответ 5xx."""

    kind = CrmErrorKind.NETWORK


class CrmValidationError(CrmError):
    """CRM отклонила данные регистрации."""

    kind = CrmErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}

    @property
    def promo_code_only(self) -> bool:
        return set(self.details) == {PROMO_CODE_FIELD}

    @property
    def mentions_promo_code(self) -> bool:
        return PROMO_CODE_FIELD in self.details


class PromoCodeError(CrmError):
    """CRM не приняла указанный промокод."""

    kind = CrmErrorKind.PROMO_CODE


ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: Type[ModelT], payload: Any, endpoint: str) -> ModelT:
    """Разобрать ответ CRM; несоответствие схеме превращается в `CrmError`."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.error(
            "crm_response_invalid",
            endpoint=endpoint,
            model=model.__name__,
            error=str(exc),
        )
        raise CrmError("Некорректный ответ CRM") from exc


class CrmGateway(Protocol):
    async def search_by_phone(self, phone: str) -> List[UserRecord]:
        ...

    async def register_user(self, draft: RegistrationDraft) -> RegisterResponse:
        ...


class CrmClient:
    """HTTP-клиент для поиска и регистрации клиентов в CRM."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        users_endpoint: str,
        register_endpoint: str,
        managers_endpoint: str = "/rest/mobile/v44-admin/managers",
        bonus_list_endpoint: str = "/rest/base/v33/validator/bonus-list",
        timeout: float = 10.0,
        retries: int = 3,
        retry_wait: wait_base | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._users_endpoint = users_endpoint
        self._register_endpoint = register_endpoint
        self._managers_endpoint = managers_endpoint
        self._bonus_list_endpoint = bonus_list_endpoint
        self._retries = retries
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=8)
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        *,
        retry: bool = True,
    ) -> Dict[str, Any]:
        attempts = self._retries if retry else 1

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=self._retry_wait,
                retry=retry_if_exception_type((httpx.RequestError, CrmNetworkError)),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post(endpoint, json=payload)

                    if response.status_code >= 500:
                        logger.warning(
                            "crm_request_retry",
                            status=response.status_code,
                            endpoint=endpoint,
                        )
                        raise CrmNetworkError(f"Ошибка HTTP: {response.status_code}")

                    if response.status_code >= 400:
                        logger.error(
                            "crm_request_failed",
                            status=response.status_code,
                            body=response.text,
                            endpoint=endpoint,
                        )
                        raise CrmError(f"Ошибка HTTP: {response.status_code}")

                    return self._decode(response, endpoint)
        except httpx.RequestError as exc:
            logger.error("crm_request_unreachable", endpoint=endpoint, error=str(exc))
            raise CrmNetworkError(f"CRM недоступна: {exc}") from exc

    @staticmethod
    def _decode(response: httpx.Response, endpoint: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            logger.error(
                "crm_response_invalid",
                endpoint=endpoint,
                body=response.text,
                error=str(exc),
            )
            raise CrmError("Некорректный ответ CRM") from exc

        if not isinstance(body, dict):
            logger.error("crm_response_invalid", endpoint=endpoint, body=response.text)
            raise CrmError("Некорректный ответ CRM")
        return body

    async def search_by_phone(self, phone: str) -> List[UserRecord]:
        logger.info("crm_user_search", phone=phone)
        response = await self._post(
            self._users_endpoint,
            {"api_key": self._api_key, "limit": 1, "phone": phone},
        )
        return _parse(UsersResponse, response, self._users_endpoint).users

    async def register_user(self, draft: RegistrationDraft) -> RegisterResponse:
        """Зарегистрировать клиента и разобрать ответ CRM.

        CRM отвечает 200 и `status == "error"` при ошибке регистрации.
        Если в деталях валидации упомянут только промокод, поднимается
        `PromoCodeError`, иначе `CrmValidationError` с деталями по полям.
        Повтор на уровне HTTP не выполняется: запрос не идемпотентен.
        """
        request = RegisterRequest.from_draft(draft)
        logger.info(
            "crm_user_register",
            phone=draft.phone,
            first_name=draft.first_name or "<пусто>",
            last_name=draft.last_name or "<пусто>",
            birth_date=draft.birth_date,
            promo_code=draft.promo_code or "<пусто>",
        )
        response = await self._post(
            self._register_endpoint,
            request.model_dump(),
            retry=False,
        )
        result = _parse(RegisterResponse, response, self._register_endpoint)

        if result.status != "error":
            return result

        message = result.message or "Неизвестная ошибка регистрации"
        details = result.validation_details
        logger.error("crm_register_rejected", error=message, details=details)

        if set(details) == {PROMO_CODE_FIELD}:
            raise PromoCodeError(", ".join(details[PROMO_CODE_FIELD]))
        if details:
            raise CrmValidationError(message, details)
        raise CrmError(message)

    async def get_managers(self) -> List[Manager]:
        logger.info("crm_managers_fetch")
        response = await self._post(
            self._managers_endpoint,
            {"api.admin.key": self._api_key, "limit": 500},
        )
        return [
            _parse(Manager, item, self._managers_endpoint)
            for item in response.get("managers") or []
        ]

    async def get_bonus_list(
        self,
        manager_id: str,
        date_start: str,
        date_end: str,
    ) -> List[BonusOperation]:
        logger.info(
            "crm_bonus_list_fetch",
            manager_id=manager_id,
            date_start=date_start,
            date_end=date_end,
        )
        response = await self._post(
            self._bonus_list_endpoint,
            {
                "api_key": self._api_key,
                "date_start": date_start,
                "dateEnd": date_end,
                "id_manager": manager_id,
            },
        )
        return [
            _parse(BonusOperation, item, self._bonus_list_endpoint)
            for item in response.get("bonus_list") or []
        ]


def create_crm_client(settings) -> CrmClient:
    return CrmClient(
        base_url=str(settings.api_base_url),
        api_key=settings.api_key,
        users_endpoint=settings.api_endpoint_users,
        register_endpoint=settings.api_endpoint_register,
        managers_endpoint=settings.api_endpoint_managers,
        bonus_list_endpoint=settings.api_endpoint_bonus_list,
        timeout=settings.crm_timeout,
    )

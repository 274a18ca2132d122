"""Управление конфигурацией приложения (загрузка переменных окружения)."""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings


load_dotenv()


class Settings(BaseSettings):
    """Настройки приложения, загружаемые из переменных окружения."""

    bot_token: str = Field(alias="BOT_TOKEN")
    api_key: str = Field(alias="API_KEY")
    api_base_url: AnyHttpUrl = Field(alias="API_BASE_URL")
    api_endpoint_users: str = Field(alias="API_ENDPOINT_USERS")
    api_endpoint_register: str = Field(alias="API_ENDPOINT_REGISTER")
    api_endpoint_managers: str = Field(
        default="/rest/mobile/v44-admin/managers",
        alias="API_ENDPOINT_MANAGERS",
    )
    api_endpoint_bonus_list: str = Field(
        default="/rest/base/v33/validator/bonus-list",
        alias="API_ENDPOINT_BONUS_LIST",
    )
    crm_timeout: float = Field(default=10.0, alias="CRM_TIMEOUT")

    # Webhook-режим включается, если задан внешний адрес
    webhook_base_url: Optional[str] = Field(default=None, alias="WEBHOOK_BASE_URL")
    webhook_host: str = Field(default="0.0.0.0", alias="WEBHOOK_HOST")
    webhook_port: int = Field(default=8000, alias="WEBHOOK_PORT")
    webhook_secret: Optional[str] = Field(default=None, alias="WEBHOOK_SECRET")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    registration_max_attempts: int = Field(default=3, alias="REGISTRATION_MAX_ATTEMPTS")
    poll_max_attempts: int = Field(default=5, alias="POLL_MAX_ATTEMPTS")
    poll_delay_seconds: float = Field(default=1.0, alias="POLL_DELAY_SECONDS")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def webhook_path(self) -> str:
        """Путь, на который Telegram присылает обновления."""
        return f"/{self.bot_token}"


@lru_cache
def get_settings() -> Settings:
    """Вернуть кэшированный экземпляр настроек."""

    return Settings()

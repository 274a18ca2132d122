"""Webhook-сервер: принимает обновления Telegram и передаёт их диспетчеру."""

from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from aiogram import Bot, Dispatcher
from aiogram.types import Update
from fastapi import FastAPI, Header, HTTPException, Request

from cardbot.logging import get_logger


logger = get_logger(__name__)


def verify_secret_token(expected: Optional[str], received: Optional[str]) -> bool:
    if not expected:
        return True
    if not received:
        return False
    return hmac.compare_digest(expected, received)


def create_webhook_app(
    bot: Bot,
    dispatcher: Dispatcher,
    *,
    base_url: str,
    path: str,
    secret_token: Optional[str] = None,
) -> FastAPI:
    """Собрать FastAPI-приложение, которое регистрирует webhook при старте.

    Если задан `secret_token`, Telegram передаёт его в заголовке
    `X-Telegram-Bot-Api-Secret-Token`; запросы без него отклоняются.
    """

    webhook_url = f"{base_url.rstrip('/')}{path}"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await dispatcher.emit_startup(bot=bot)
        await bot.set_webhook(webhook_url, secret_token=secret_token)
        logger.info("webhook_set", url=base_url)
        yield
        await bot.delete_webhook()
        logger.info("webhook_deleted")
        await dispatcher.emit_shutdown(bot=bot)

    app = FastAPI(title="Loyalty Card Bot Webhook", lifespan=lifespan)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = datetime.now()
        response = await call_next(request)
        logger.info(
            "http_request_completed",
            method=request.method,
            status_code=response.status_code,
            process_time=(datetime.now() - start_time).total_seconds(),
        )
        return response

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post(path)
    async def telegram_webhook(
        request: Request,
        x_telegram_secret: Optional[str] = Header(
            None, alias="X-Telegram-Bot-Api-Secret-Token"
        ),
    ) -> Dict[str, Any]:
        if not verify_secret_token(secret_token, x_telegram_secret):
            logger.warning("telegram_webhook_invalid_secret")
            raise HTTPException(status_code=401, detail="Invalid secret token")

        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON")

        update = Update.model_validate(payload, context={"bot": bot})
        await dispatcher.feed_update(bot, update)
        return {"ok": True}

    return app

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from cardbot.webhook_server import create_webhook_app, verify_secret_token


SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def make_app(secret_token=None):
    bot = MagicMock()
    bot.set_webhook = AsyncMock()
    bot.delete_webhook = AsyncMock()
    dispatcher = MagicMock()
    dispatcher.feed_update = AsyncMock()
    dispatcher.emit_startup = AsyncMock()
    dispatcher.emit_shutdown = AsyncMock()
    app = create_webhook_app(
        bot,
        dispatcher,
        base_url="https://bot.example/",
        path="/token",
        secret_token=secret_token,
    )
    return app, bot, dispatcher


def test_verify_secret_token():
    assert verify_secret_token(None, None)
    assert verify_secret_token("s3cret", "s3cret")
    assert not verify_secret_token("s3cret", None)
    assert not verify_secret_token("s3cret", "other")


def test_update_with_valid_secret_is_fed_to_dispatcher():
    app, _, dispatcher = make_app(secret_token="s3cret")
    client = TestClient(app)

    response = client.post("/token", json={"update_id": 1}, headers={SECRET_HEADER: "s3cret"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    dispatcher.feed_update.assert_awaited_once()
    update = dispatcher.feed_update.call_args.args[1]
    assert update.update_id == 1


def test_update_without_secret_is_rejected():
    app, _, dispatcher = make_app(secret_token="s3cret")
    client = TestClient(app)

    missing = client.post("/token", json={"update_id": 1})
    wrong = client.post("/token", json={"update_id": 1}, headers={SECRET_HEADER: "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    dispatcher.feed_update.assert_not_awaited()


def test_secret_is_optional():
    app, _, dispatcher = make_app()
    client = TestClient(app)

    response = client.post("/token", json={"update_id": 7})

    assert response.status_code == 200
    dispatcher.feed_update.assert_awaited_once()


def test_invalid_json_is_bad_request():
    app, _, dispatcher = make_app()
    client = TestClient(app)

    response = client.post(
        "/token", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    dispatcher.feed_update.assert_not_awaited()


def test_lifespan_registers_webhook_with_secret():
    app, bot, dispatcher = make_app(secret_token="s3cret")

    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}

    bot.set_webhook.assert_awaited_once_with(
        "https://bot.example/token", secret_token="s3cret"
    )
    bot.delete_webhook.assert_awaited_once()
    dispatcher.emit_startup.assert_awaited_once()
    dispatcher.emit_shutdown.assert_awaited_once()

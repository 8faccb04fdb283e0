"""Shared fixtures: a scripted Bot API behind httpx.MockTransport."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from bot_bridge.config import Settings
from bot_bridge.main import create_app
from bot_bridge.services.container import BridgeServices
from bot_bridge.services.message_cache import NotificationCache
from bot_bridge.telegram.client import TelegramClient
from bot_bridge.utils.logging import HANDLER_NAME

BOT_TOKEN = "123456:TEST-token"

OK_REPLY = {"ok": True, "result": True}
BLOCKED_REPLY = {"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"}
SERVER_ERROR_REPLY = {"ok": False, "error_code": 502, "description": "Bad Gateway"}


@dataclass
class FakeBotAPI:
    """Records every Bot API call and answers from a queue (default: ok)."""

    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    replies: list[Any] = field(default_factory=list)
    default: Any = field(default_factory=lambda: OK_REPLY)

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        content_type = request.headers.get("content-type", "")
        body = json.loads(request.content) if content_type.startswith("application/json") else {}
        self.calls.append((method, body))

        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        status = 200 if reply.get("ok") else int(reply.get("error_code", 400))
        return httpx.Response(status, json=reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _detach_json_logging():
    """create_app installs a stdout handler bound to the per-test capture stream."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)


@pytest.fixture
def fake_api() -> FakeBotAPI:
    return FakeBotAPI()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        bot_token=BOT_TOKEN,
        server_url="https://bridge.example",
        web_app_url="https://app.example",
        community_url="https://t.me/community",
        welcome_photo_path="",
        static_dir=str(tmp_path / "no-static"),
        admin_token="admin-secret",
        retry_timeout=10,
        max_retries=3,
        rate_limit_max_requests=1000,
    )


@pytest.fixture
def telegram(fake_api: FakeBotAPI) -> TelegramClient:
    return TelegramClient(BOT_TOKEN, transport=fake_api.transport)


@pytest.fixture
def services(settings: Settings, telegram: TelegramClient, clock: FakeClock) -> BridgeServices:
    return BridgeServices.build(
        settings,
        telegram=telegram,
        cache=NotificationCache(clock=clock),
        probe_transport=httpx.MockTransport(lambda request: httpx.Response(200, text="ok")),
    )


@pytest.fixture
def make_client(settings: Settings, services: BridgeServices) -> Callable[..., TestClient]:
    def _make(app_settings: Settings | None = None, app_services: BridgeServices | None = None) -> TestClient:
        app = create_app(app_settings or settings, app_services or services)
        # Not entered as a context manager: lifespan jobs stay off in unit tests
        return TestClient(app, raise_server_exceptions=False)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()

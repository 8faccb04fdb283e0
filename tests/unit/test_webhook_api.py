"""Tests for the webhook, health and banner endpoints."""

import asyncio
from types import SimpleNamespace

import pytest
from conftest import BOT_TOKEN
from starlette.requests import Request
from starlette.routing import Mount

from bot_bridge.middleware.metrics import path_label
from bot_bridge.services.health import Component

START_UPDATE = {
    "update_id": 1,
    "message": {
        "message_id": 1,
        "from": {"id": 42, "first_name": "Rex", "username": "rex"},
        "chat": {"id": 42, "type": "private"},
        "text": "/start 7",
    },
}


class TestBasicRoutes:
    def test_root_banner(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Hello, I am working fine."
        assert "/api/sendWelcomeMessage" in data["endpoints"]["api"]

    def test_webhook_liveness(self, client):
        response = client.get("/webhook")

        assert response.status_code == 200
        assert response.text == "Hey, Bot is awake!"

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_request_id_is_generated(self, client):
        assert client.get("/").headers["X-Request-ID"]

    def test_metrics_exposed(self, client):
        client.get("/webhook")

        response = client.get("/metrics/")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_secret_never_reaches_metrics(self, client):
        client.post(f"/webhook/{BOT_TOKEN}", json={"update_id": 5})

        body = client.get("/metrics/").text

        assert BOT_TOKEN not in body
        assert 'path="/webhook/{secret}"' in body


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data

    def test_unhealthy_is_503(self, client, services):
        services.health.mark_unhealthy(Component.WEBHOOK_REGISTRATION, "exhausted")

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["components"]["webhook_registration"]["detail"] == "exhausted"


class TestReceiveUpdate:
    def test_start_update_is_dispatched(self, client, fake_api):
        response = client.post(f"/webhook/{BOT_TOKEN}", json=START_UPDATE)

        assert response.status_code == 200
        assert response.text == "OK"
        assert fake_api.methods() == ["sendMessage"]
        assert fake_api.calls[0][1]["chat_id"] == 42

    def test_unhandled_update_is_acknowledged(self, client, fake_api):
        response = client.post(f"/webhook/{BOT_TOKEN}", json={"update_id": 2, "edited_message": {}})

        assert response.status_code == 200
        assert fake_api.calls == []

    def test_wrong_secret_is_404(self, client, fake_api):
        response = client.post("/webhook/not-the-token", json=START_UPDATE)

        assert response.status_code == 404
        assert fake_api.calls == []

    def test_secret_header_enforced_when_configured(self, client, services, settings, fake_api):
        services.settings = settings.model_copy(update={"webhook_secret": "hook-secret"})

        rejected = client.post("/webhook/hook-secret", json=START_UPDATE)
        accepted = client.post(
            "/webhook/hook-secret",
            json=START_UPDATE,
            headers={"X-Telegram-Bot-Api-Secret-Token": "hook-secret"},
        )

        assert rejected.status_code == 403
        assert accepted.status_code == 200
        assert len(fake_api.calls) == 1

    def test_invalid_body_is_400(self, client):
        response = client.post(
            f"/webhook/{BOT_TOKEN}",
            content=b"not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400

        assert client.post(f"/webhook/{BOT_TOKEN}", json=[1, 2]).status_code == 400

    def test_handler_exception_is_500_and_degrades_health(self, client, services, monkeypatch):
        async def broken(update):
            raise RuntimeError("handler crashed")

        monkeypatch.setattr(services.dispatcher, "dispatch", broken)

        response = client.post(f"/webhook/{BOT_TOKEN}", json=START_UPDATE)

        assert response.status_code == 500
        assert response.text == "Webhook processing error"
        assert not services.health.component(Component.REQUEST_HANDLING).healthy

    def test_timeout_is_504_and_cancels_processing(self, client, services, settings, monkeypatch):
        services.settings = settings.model_copy(update={"webhook_timeout_seconds": 0.05})
        state = {"cancelled": False, "finished": False}

        async def slow(update):
            try:
                await asyncio.sleep(5)
                state["finished"] = True
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        monkeypatch.setattr(services.dispatcher, "dispatch", slow)

        response = client.post(f"/webhook/{BOT_TOKEN}", json=START_UPDATE)

        assert response.status_code == 504
        assert response.text == "Webhook processing timeout"
        assert state == {"cancelled": True, "finished": False}

    def test_successful_probe_clears_request_handling(self, client, services):
        services.health.mark_unhealthy(Component.REQUEST_HANDLING, "earlier crash")

        asyncio.run(services.probe.probe_once())

        assert services.health.is_healthy
        assert client.get("/health").status_code == 200


def _request(path: str, route=None) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("bridge", 80),
        "root_path": "",
        "path": path,
        "query_string": b"",
        "headers": [],
    }
    if route is not None:
        scope["route"] = route
    return Request(scope)


class TestPathLabel:
    @pytest.mark.parametrize("template", ["/{secret}", "/webhook/{secret}"])
    def test_webhook_template_with_or_without_prefix(self, template):
        label = path_label(_request(f"/webhook/{BOT_TOKEN}", SimpleNamespace(path=template)))

        assert label == "/webhook/{secret}"

    @pytest.mark.parametrize("template", ["/sendWelcomeMessage", "/api/sendWelcomeMessage"])
    def test_api_routes_keep_prefix(self, template):
        label = path_label(_request("/api/sendWelcomeMessage", SimpleNamespace(path=template)))

        assert label == "/api/sendWelcomeMessage"

    def test_liveness_route_with_empty_template(self):
        assert path_label(_request("/webhook", SimpleNamespace(path=""))) == "/webhook"

    def test_unrouted_paths(self):
        assert path_label(_request(f"/webhook/{BOT_TOKEN}")) == "/webhook/{secret}"
        assert path_label(_request("/img/logo.png")) == "/{static}"
        assert path_label(_request("/img/logo.png", Mount("", routes=[]))) == "/{static}"

    def test_api_series_in_exposition(self, client):
        client.post("/api/sendWelcomeMessage", json={"userId": 42})

        body = client.get("/metrics/").text

        assert 'path="/api/sendWelcomeMessage"' in body

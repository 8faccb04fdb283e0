"""
Minimal async client for the Telegram Bot API.

Only the handful of methods the bridge needs are wrapped. Every reply is
checked for the Bot API `ok` flag; failures surface as TelegramAPIError so
callers can tell a blocked recipient apart from a transient outage.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TelegramAPIError(Exception):
    """The Bot API rejected a call, or could not be reached (error_code=0)."""

    def __init__(self, error_code: int, description: str) -> None:
        super().__init__(f"[{error_code}] {description}")
        self.error_code = error_code
        self.description = description


class BotBlockedError(TelegramAPIError):
    """The recipient blocked the bot or deleted their account; do not retry."""


_BLOCKED_MARKERS = (
    "bot was blocked by the user",
    "user is deactivated",
)


def _raise_for_reply(method: str, status_code: int, payload: dict[str, Any]) -> None:
    if payload.get("ok"):
        return
    error_code = int(payload.get("error_code") or status_code)
    description = str(payload.get("description") or f"HTTP {status_code}")
    if error_code == 403 and any(m in description.lower() for m in _BLOCKED_MARKERS):
        raise BotBlockedError(error_code, description)
    logger.debug(
        "Bot API call rejected",
        extra={"method": method, "error_code": error_code, "description": description},
    )
    raise TelegramAPIError(error_code, description)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TelegramClient:
    def __init__(
        self,
        token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=f"{api_base.rstrip('/')}/bot{token}/",
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def _call(
        self,
        method: str,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any:
        try:
            if files:
                response = await self._http.post(method, data=_form_fields(data), files=files)
            else:
                response = await self._http.post(method, json=data or {})
        except httpx.HTTPError as exc:
            raise TelegramAPIError(0, f"{type(exc).__name__}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {"ok": False, "description": response.text[:200]}

        _raise_for_reply(method, response.status_code, payload)
        return payload.get("result")

    # --- Webhook management ---

    async def set_webhook(self, url: str, secret_token: str | None = None) -> Any:
        data: dict[str, Any] = {"url": url}
        if secret_token:
            data["secret_token"] = secret_token
        return await self._call("setWebhook", data)

    async def delete_webhook(self) -> Any:
        return await self._call("deleteWebhook")

    # --- Messaging ---

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> Any:
        data: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        return await self._call("sendMessage", data)

    async def send_photo(
        self,
        chat_id: int | str,
        photo: Path | bytes,
        caption: str | None = None,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        filename: str = "photo.jpg",
    ) -> Any:
        """Upload `photo` (raw bytes, or a file read off the event loop)."""
        data: dict[str, Any] = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        if isinstance(photo, Path):
            filename = photo.name
            photo = await asyncio.to_thread(photo.read_bytes)
        files = {"photo": (filename, photo)}
        return await self._call("sendPhoto", data, files=files)


def _form_fields(data: dict[str, Any] | None) -> dict[str, str]:
    """Multipart uploads need flat string fields; nested objects go as JSON."""
    fields: dict[str, str] = {}
    for key, value in (data or {}).items():
        fields[key] = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
    return fields

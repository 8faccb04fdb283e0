"""
Handling of inbound Telegram updates delivered through the webhook.

Only `/start` is acted on: the user gets the welcome card with a web-app
button whose URL carries the start payload as a referral code. Everything
else is acknowledged and dropped.

The first reply attempt runs inside the webhook request. If it fails for a
reason other than a blocked user, further attempts run in a background task
so the webhook can answer Telegram promptly; those tasks are cancelled on
shutdown.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from bot_bridge.metrics import NOTIFICATIONS
from bot_bridge.telegram import messages
from bot_bridge.telegram.client import BotBlockedError, TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)


def parse_start_command(text: str | None) -> str | None:
    """Return the start payload ("" when absent) or None if this is not /start."""
    if not text:
        return None
    command, _, payload = text.strip().partition(" ")
    # "/start@MyBot" is what group chats send
    if command.split("@", 1)[0] != "/start":
        return None
    return payload.strip()


class UpdateDispatcher:
    def __init__(
        self,
        client: TelegramClient,
        web_app_url: str,
        community_url: str,
        welcome_photo: Path | None = None,
        max_retries: int = 5,
        retry_delay_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._web_app_url = web_app_url
        self._community_url = community_url
        self._welcome_photo = welcome_photo
        self._photo_bytes: bytes | None = None
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

    async def dispatch(self, update: dict[str, Any]) -> bool:
        """Process one update. Returns True when it was handled."""
        message = update.get("message")
        if not isinstance(message, dict):
            logger.debug("Ignoring update without message", extra={"update_id": update.get("update_id")})
            return False

        payload = parse_start_command(message.get("text"))
        if payload is None:
            return False

        user = message.get("from") or {}
        chat_id = (message.get("chat") or {}).get("id", user.get("id"))
        if chat_id is None:
            logger.warning("Start command without chat id", extra={"update_id": update.get("update_id")})
            return False

        name = messages.display_name(user.get("username"), user.get("first_name"))
        logger.info(
            "Start command received",
            extra={"chat_id": chat_id, "user_id": user.get("id"), "ref": payload or None},
        )
        if not await self._send_start(chat_id, name, payload, attempt=0):
            self._retry_in_background(chat_id, name, payload)
        return True

    async def _load_photo(self) -> bytes | None:
        """Welcome photo bytes, read once in a worker thread. None sends text instead."""
        if self._photo_bytes is None and self._welcome_photo is not None:
            try:
                self._photo_bytes = await asyncio.to_thread(self._welcome_photo.read_bytes)
            except OSError:
                # Not cached, so a photo added later is picked up
                return None
        return self._photo_bytes

    async def _send_start(self, chat_id: int, name: str, payload: str, attempt: int) -> bool:
        """One delivery attempt. True when finished (sent or blocked), False to retry."""
        keyboard = messages.start_keyboard(self._web_app_url, self._community_url, payload)
        caption = messages.start_caption(name, self._community_url)
        try:
            photo = await self._load_photo()
            if photo is not None:
                await self._client.send_photo(
                    chat_id,
                    photo,
                    caption=caption,
                    parse_mode="HTML",
                    reply_markup=keyboard,
                    filename=self._welcome_photo.name,
                )
            else:
                await self._client.send_message(chat_id, caption, parse_mode="HTML", reply_markup=keyboard)
        except BotBlockedError:
            NOTIFICATIONS.labels("start", "blocked").inc()
            logger.info("User %s (%s) has blocked the bot", name, chat_id)
            return True
        except TelegramAPIError as exc:
            NOTIFICATIONS.labels("start", "failed").inc()
            logger.error(
                "Error sending start message to %s (%s)",
                name,
                chat_id,
                extra={"attempt": attempt + 1, "error": str(exc)},
            )
            return False

        NOTIFICATIONS.labels("start", "sent").inc()
        return True

    async def _retry_start(self, chat_id: int, name: str, payload: str) -> None:
        for attempt in range(1, self.max_retries + 1):
            logger.info(
                "Retrying start message in %.1fs",
                self.retry_delay_seconds,
                extra={"chat_id": chat_id, "attempt": attempt + 1},
            )
            await self._sleep(self.retry_delay_seconds)
            if await self._send_start(chat_id, name, payload, attempt=attempt):
                return
        logger.error("Giving up on start message", extra={"chat_id": chat_id})

    def _retry_in_background(self, chat_id: int, name: str, payload: str) -> None:
        if self.max_retries <= 0:
            return
        task = asyncio.create_task(self._retry_start(chat_id, name, payload))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @property
    def pending_retries(self) -> int:
        return len(self._background)

    async def aclose(self) -> None:
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

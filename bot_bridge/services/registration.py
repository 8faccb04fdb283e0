"""
Webhook registration with a bounded, fixed-delay retry loop.

Registration runs once at startup, after the listener is bound, so Telegram
can reach the callback as soon as setWebhook succeeds. Attempts are numbered
from 0; attempt `max_retries` is the last one, after which the registrar gives
up and leaves the webhook_registration component unhealthy until an operator
steps in.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from bot_bridge.metrics import REGISTRATION_ATTEMPTS
from bot_bridge.services.health import Component, HealthTracker
from bot_bridge.telegram.client import TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)


class RegistrationState(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class WebhookRegistrar:
    def __init__(
        self,
        client: TelegramClient,
        health: HealthTracker,
        webhook_url: str,
        secret_token: str | None = None,
        max_retries: int = 5,
        retry_delay_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._health = health
        self._webhook_url = webhook_url
        self._secret_token = secret_token
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._task: asyncio.Task | None = None

        self.state = RegistrationState.PENDING
        self.attempts = 0
        self.last_error: str | None = None

    async def register(self) -> RegistrationState:
        """Run the retry loop to completion. Never raises for API failures."""
        for attempt in range(self.max_retries + 1):
            self.attempts = attempt + 1
            try:
                result = await self._client.set_webhook(
                    self._webhook_url, secret_token=self._secret_token
                )
            except TelegramAPIError as exc:
                self.last_error = str(exc)
                REGISTRATION_ATTEMPTS.labels("failure").inc()
                self._health.mark_unhealthy(Component.WEBHOOK_REGISTRATION, self.last_error)
                logger.error(
                    "Webhook initialization failed (attempt %d/%d)",
                    attempt + 1,
                    self.max_retries + 1,
                    extra={"attempt": attempt + 1, "error": self.last_error},
                )
                if attempt < self.max_retries:
                    self.state = RegistrationState.RETRYING
                    logger.info(
                        "Retrying webhook registration in %.1fs",
                        self.retry_delay_seconds,
                        extra={"attempt": attempt + 1},
                    )
                    await self._sleep(self.retry_delay_seconds)
                continue

            REGISTRATION_ATTEMPTS.labels("success").inc()
            self.state = RegistrationState.SUCCEEDED
            self.last_error = None
            self._health.mark_healthy(Component.WEBHOOK_REGISTRATION, "webhook registered")
            logger.info(
                "Webhook set successfully",
                extra={"attempt": attempt + 1, "response": result},
            )
            return self.state

        self.state = RegistrationState.EXHAUSTED
        logger.error(
            "Max retries reached; webhook is not registered. Please check your configuration.",
            extra={"attempts": self.attempts, "error": self.last_error},
        )
        return self.state

    # --- Background lifecycle ---

    def start(self) -> asyncio.Task:
        """Schedule register() on the running loop and return immediately."""
        self._task = asyncio.create_task(self.register(), name="webhook-registration")
        return self._task

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

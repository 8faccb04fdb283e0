"""
Explicitly owned service graph for one running bridge.

Lifecycle: build() creates everything empty; start() launches webhook
registration and the periodic jobs once the listener is up; stop() cancels
background work and closes HTTP clients.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from bot_bridge.config import Settings
from bot_bridge.metrics import CACHE_ENTRIES, CACHE_EVICTIONS
from bot_bridge.services.health import HealthTracker
from bot_bridge.services.message_cache import NotificationCache
from bot_bridge.services.notification_service import NotificationService
from bot_bridge.services.periodic import PeriodicTask
from bot_bridge.services.registration import WebhookRegistrar
from bot_bridge.services.self_probe import HealthProbe
from bot_bridge.telegram.client import TelegramClient
from bot_bridge.telegram.updates import UpdateDispatcher

logger = logging.getLogger(__name__)


@dataclass
class BridgeServices:
    settings: Settings
    telegram: TelegramClient
    cache: NotificationCache
    health: HealthTracker
    notifications: NotificationService
    dispatcher: UpdateDispatcher
    registrar: WebhookRegistrar
    probe: HealthProbe
    probe_job: PeriodicTask
    sweep_job: PeriodicTask

    @classmethod
    def build(
        cls,
        settings: Settings,
        telegram: TelegramClient | None = None,
        cache: NotificationCache | None = None,
        probe_transport: httpx.AsyncBaseTransport | None = None,
    ) -> "BridgeServices":
        if telegram is None:
            telegram = TelegramClient(settings.bot_token, settings.telegram_api_base)
        # An empty cache is falsy, so compare against None
        if cache is None:
            cache = NotificationCache()
        health = HealthTracker()
        probe = HealthProbe(
            health,
            f"{settings.server_url.rstrip('/')}{settings.health_probe_path}",
            transport=probe_transport,
        )

        async def sweep_cache() -> int:
            removed = cache.sweep(settings.cache_retention_seconds)
            CACHE_EVICTIONS.labels("sweep").inc(removed)
            CACHE_ENTRIES.set(len(cache))
            return removed

        return cls(
            settings=settings,
            telegram=telegram,
            cache=cache,
            health=health,
            notifications=NotificationService(
                telegram,
                cache,
                web_app_url=settings.web_app_url,
                community_url=settings.community_url,
                welcome_window_seconds=settings.welcome_dedup_window_seconds,
                referral_window_seconds=settings.referral_dedup_window_seconds,
            ),
            dispatcher=UpdateDispatcher(
                telegram,
                web_app_url=settings.web_app_url,
                community_url=settings.community_url,
                welcome_photo=Path(settings.welcome_photo_path) if settings.welcome_photo_path else None,
                max_retries=settings.max_retries,
                retry_delay_seconds=settings.retry_delay_seconds,
            ),
            registrar=WebhookRegistrar(
                telegram,
                health,
                webhook_url=settings.webhook_url,
                secret_token=settings.webhook_secret or None,
                max_retries=settings.max_retries,
                retry_delay_seconds=settings.retry_delay_seconds,
            ),
            probe=probe,
            probe_job=PeriodicTask(
                "health-self-probe", probe.probe_once, settings.health_probe_interval_seconds
            ),
            sweep_job=PeriodicTask(
                "notification-cache-sweep", sweep_cache, settings.cache_sweep_interval_seconds
            ),
        )

    def start(self) -> None:
        self.registrar.start()
        self.probe_job.start()
        self.sweep_job.start()
        logger.info("Background jobs started")

    async def stop(self) -> None:
        await self.registrar.stop()
        await self.probe_job.stop()
        await self.sweep_job.stop()
        await self.dispatcher.aclose()
        await self.probe.close()
        await self.telegram.close()
        logger.info("Background jobs stopped")

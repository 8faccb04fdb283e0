"""Tests for service wiring and the scheduled cache sweep."""

import pytest
from prometheus_client import REGISTRY

from bot_bridge.services.container import BridgeServices
from bot_bridge.services.message_cache import NotificationCache

DAY = 24 * 3600.0


def _evictions() -> float:
    return REGISTRY.get_sample_value("bot_notification_cache_evictions_total", {"reason": "sweep"}) or 0.0


class TestBuild:
    def test_keeps_injected_empty_cache(self, settings, telegram, clock):
        cache = NotificationCache(clock=clock)
        assert len(cache) == 0

        services = BridgeServices.build(settings, telegram=telegram, cache=cache)

        assert services.cache is cache
        assert services.telegram is telegram
        assert services.notifications._cache is cache

    def test_builds_defaults(self, settings):
        services = BridgeServices.build(settings)

        assert isinstance(services.cache, NotificationCache)
        assert services.registrar._webhook_url == settings.webhook_url


class TestSweepJob:
    @pytest.mark.asyncio
    async def test_sweep_uses_retention_and_updates_metrics(self, services, clock):
        retention = services.settings.cache_retention_seconds
        services.cache.mark_sent("welcome_old", timestamp=clock() - retention - 1)
        services.cache.mark_sent("welcome_edge", timestamp=clock() - retention)
        services.cache.mark_sent("referral_7_42", timestamp=clock() - DAY)
        before = _evictions()

        removed = await services.sweep_job._job()

        assert removed == 1
        assert services.cache.should_send("welcome_old", DAY)
        assert not services.cache.should_send("referral_7_42", 2 * DAY)
        assert len(services.cache) == 2
        assert _evictions() - before == 1
        assert REGISTRY.get_sample_value("bot_notification_cache_entries") == 2

    @pytest.mark.asyncio
    async def test_sweep_interval_from_settings(self, services):
        assert services.sweep_job.interval_seconds == services.settings.cache_sweep_interval_seconds
        assert services.probe_job.interval_seconds == services.settings.health_probe_interval_seconds

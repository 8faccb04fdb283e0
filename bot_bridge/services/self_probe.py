"""
Keep-alive self-probe.

Periodically requests this server's own liveness endpoint through its public
URL. A 2xx answer proves the listener is serving and clears the transient
health components; anything else marks the self_probe component unhealthy.
"""

import logging

import httpx

from bot_bridge.services.health import Component, HealthTracker

logger = logging.getLogger(__name__)


class HealthProbe:
    def __init__(
        self,
        health: HealthTracker,
        url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._health = health
        self.url = url
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def probe_once(self) -> bool:
        try:
            response = await self._http.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            self._health.mark_unhealthy(Component.SELF_PROBE, f"{type(exc).__name__}: {exc}")
            logger.warning("Self-probe failed", extra={"url": self.url, "error": str(exc)})
            return False

        self._health.mark_healthy(Component.SELF_PROBE, f"HTTP {response.status_code}")
        self._health.reset_transient()
        logger.debug("Self-probe succeeded", extra={"url": self.url})
        return True

    async def close(self) -> None:
        await self._http.aclose()

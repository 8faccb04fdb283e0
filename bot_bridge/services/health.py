"""
Process health, split into independently tracked components.

The service is healthy only while every component is. Components:

  webhook_registration  set by the startup registrar
  self_probe            set by the keep-alive probe
  rate_limiter          degraded when a client is throttled
  request_handling      degraded by an unhandled exception in a route

The last two are transient: a successful self-probe clears them.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from bot_bridge.metrics import HEALTH_COMPONENT

logger = logging.getLogger(__name__)


class Component(str, Enum):
    WEBHOOK_REGISTRATION = "webhook_registration"
    SELF_PROBE = "self_probe"
    RATE_LIMITER = "rate_limiter"
    REQUEST_HANDLING = "request_handling"


TRANSIENT_COMPONENTS = (Component.RATE_LIMITER, Component.REQUEST_HANDLING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ComponentStatus:
    healthy: bool = True
    detail: str | None = None
    updated_at: datetime = field(default_factory=_utcnow)


class HealthTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._components: dict[Component, ComponentStatus] = {
            component: ComponentStatus() for component in Component
        }
        for component in Component:
            HEALTH_COMPONENT.labels(component.value).set(1)

    def _set(self, component: Component, healthy: bool, detail: str | None) -> None:
        with self._lock:
            previous = self._components[component]
            self._components[component] = ComponentStatus(healthy=healthy, detail=detail)
        HEALTH_COMPONENT.labels(component.value).set(1 if healthy else 0)
        if previous.healthy != healthy:
            log = logger.info if healthy else logger.warning
            log(
                "Health component changed",
                extra={"component": component.value, "healthy": healthy, "detail": detail},
            )

    def mark_healthy(self, component: Component, detail: str | None = None) -> None:
        self._set(component, True, detail)

    def mark_unhealthy(self, component: Component, detail: str | None = None) -> None:
        self._set(component, False, detail)

    def reset_transient(self) -> None:
        for component in TRANSIENT_COMPONENTS:
            if not self.component(component).healthy:
                self.mark_healthy(component, "cleared by self-probe")

    def component(self, component: Component) -> ComponentStatus:
        with self._lock:
            return self._components[component]

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return all(status.healthy for status in self._components.values())

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            components = dict(self._components)
        healthy = all(status.healthy for status in components.values())
        return {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": _utcnow().isoformat(),
            "components": {
                component.value: {
                    "healthy": status.healthy,
                    "detail": status.detail,
                    "updated_at": status.updated_at.isoformat(),
                }
                for component, status in components.items()
            },
        }

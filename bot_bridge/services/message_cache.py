"""
In-memory de-duplication cache for outbound notifications.

Maps a notification key (e.g. "welcome_42", "referral_7_42") to the epoch
time of its last successful send. Process-local and non-durable: a restart
forgets everything.

Every public method takes the same lock, so a reserve() from one request and
a mark_sent()/sweep()/clear() from another never interleave.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


def welcome_key(user_id: int | str) -> str:
    return f"welcome_{user_id}"


def referral_key(referrer_id: int | str, new_user_id: int | str) -> str:
    return f"referral_{referrer_id}_{new_user_id}"


@dataclass
class CacheEntry:
    key: str
    sent_at: datetime
    age_seconds: float


@dataclass
class CacheStats:
    total: int
    sample: list[CacheEntry] = field(default_factory=list)


class NotificationCache:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._sent: dict[str, float] = {}
        self._in_flight: set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)

    def _is_recent(self, key: str, window_seconds: float, now: float) -> bool:
        sent_at = self._sent.get(key)
        return sent_at is not None and now - sent_at < window_seconds

    def should_send(self, key: str, window_seconds: float) -> bool:
        """False while a send for `key` is recorded within the last `window_seconds`."""
        with self._lock:
            return not self._is_recent(key, window_seconds, self._clock())

    def reserve(self, key: str, window_seconds: float) -> bool:
        """
        Atomic should_send() that also claims the key until mark_sent() or
        release() is called, so concurrent callers cannot both send.
        """
        with self._lock:
            if key in self._in_flight:
                return False
            if self._is_recent(key, window_seconds, self._clock()):
                return False
            self._in_flight.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard(key)

    def mark_sent(self, key: str, timestamp: float | None = None) -> None:
        with self._lock:
            self._sent[key] = self._clock() if timestamp is None else timestamp
            self._in_flight.discard(key)

    def sweep(self, retention_seconds: float) -> int:
        """Evict records older than `retention_seconds`; returns how many were removed."""
        with self._lock:
            cutoff = self._clock() - retention_seconds
            expired = [key for key, sent_at in self._sent.items() if sent_at < cutoff]
            for key in expired:
                del self._sent[key]
        if expired:
            logger.info(
                "Swept expired notification records",
                extra={"removed": len(expired), "retention_seconds": retention_seconds},
            )
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._sent)
            self._sent.clear()
        logger.info("Notification cache cleared", extra={"removed": count})
        return count

    def stats(self, sample_size: int = 10) -> CacheStats:
        with self._lock:
            now = self._clock()
            items = list(self._sent.items())
        sample = [
            CacheEntry(
                key=key,
                sent_at=datetime.fromtimestamp(sent_at, tz=timezone.utc),
                age_seconds=round(now - sent_at, 3),
            )
            for key, sent_at in items[:sample_size]
        ]
        return CacheStats(total=len(items), sample=sample)

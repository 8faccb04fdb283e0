import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs `job` every `interval_seconds` until stopped.

    The first run happens one interval after start(). A failing job is logged
    and the loop keeps going.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[object]],
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self._job = job
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval_seconds)
            try:
                await self._job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic job failed", extra={"job": self.name})

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(
            "Periodic job scheduled",
            extra={"job": self.name, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

import asyncio
from typing import Awaitable, Callable, Optional, Set
from pipelog.utils.logging import get_logger
from pipelog.utils.metrics import MetricsManager

class PeriodicTask:
    """
    Runs an async callable on a fixed interval, never overlapping with itself.

    A tick that fires while the previous run is still active is skipped
    rather than queued. Failures are logged and the next tick retries.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[object]],
                 stop_when: Optional[Callable[[], Awaitable[bool]]] = None):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.func = func
        self.stop_when = stop_when
        self.logger = get_logger(f"PeriodicTask({name})")
        self.metrics = MetricsManager()
        self._run_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.runs = 0
        self.failures = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """Execute one run unless another is active. Returns False if skipped."""
        if self._run_lock.locked():
            self.skipped += 1
            self.metrics.record_skipped_tick()
            self.logger.debug("Previous run still active, skipping tick")
            return False

        async with self._run_lock:
            try:
                await self.func()
                self.runs += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failures += 1
                self.logger.exception(f"{self.name} run failed; retrying on next tick")
        return True

    async def _loop(self) -> None:
        self.logger.info(f"Started with interval {self.interval}s")
        while True:
            if self.stop_when is not None and not self._run_lock.locked():
                try:
                    if await self.stop_when():
                        self.logger.info("Completion condition met, stopping")
                        return
                except Exception:
                    self.logger.exception("Completion check failed; retrying on next tick")
            # Each run is its own task so a slow run doesn't delay the tick clock
            run = asyncio.create_task(self.run_once())
            self._inflight.add(run)
            run.add_done_callback(self._inflight.discard)
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._loop(), name=self.name)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        # Let an in-flight run finish so its batch is never cut mid-commit
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

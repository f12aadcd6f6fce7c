"""Task scheduler — named, cancellable asyncio jobs.

The ``TaskScheduler`` owns every timer a component needs (heartbeat,
reconnect backoff, per-session polling). Each job runs on its own asyncio
task and is keyed by name: scheduling a name again replaces the previous
job, and ``shutdown()`` cancels and awaits all of them so no job can fire
after its owner is disposed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine
    from typing import Any

logger = logging.getLogger(__name__)


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class TaskScheduler:
    """Runs periodic and one-shot jobs on asyncio tasks.

    Usage::

        scheduler = TaskScheduler()
        scheduler.schedule_periodic("heartbeat", 30.0, send_ping)
        scheduler.schedule_once("reconnect", 3.0, reconnect)
        ...
        await scheduler.shutdown()

    A job may cancel itself (directly or through its owner) from inside its
    handler; the cancellation takes effect once the handler returns.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def names(self) -> list[str]:
        """Names of the currently scheduled jobs."""
        return list(self._tasks)

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    def schedule_periodic(
        self,
        name: str,
        period: float,
        handler: Callable[[], Awaitable[None]],
    ) -> None:
        """Run *handler* every *period* seconds until cancelled.

        The first run happens one period after scheduling.
        """
        self._start(name, self._run_periodic(name, period, handler))

    def schedule_once(
        self,
        name: str,
        delay: float,
        handler: Callable[[], Awaitable[None]],
    ) -> None:
        """Run *handler* once after *delay* seconds unless cancelled first."""
        self._start(name, self._run_once(name, delay, handler))

    def cancel(self, name: str) -> bool:
        """Cancel the job called *name*. Returns whether one was scheduled."""
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        if task is not _current_task():
            task.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every job without waiting for them to unwind."""
        for name in list(self._tasks):
            self.cancel(name)

    async def shutdown(self) -> None:
        """Cancel every job and wait for cleanup."""
        tasks = [t for t in self._tasks.values() if t is not _current_task()]
        self.cancel_all()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and not isinstance(r, asyncio.CancelledError):
                logger.error("Scheduled job error during shutdown: %s", r)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _start(self, name: str, coro: Coroutine[Any, Any, None]) -> None:
        self.cancel(name)
        self._tasks[name] = asyncio.create_task(coro, name=name)

    def _owns(self, name: str, task: asyncio.Task[Any] | None) -> bool:
        return task is not None and self._tasks.get(name) is task

    async def _run_periodic(
        self,
        name: str,
        period: float,
        handler: Callable[[], Awaitable[None]],
    ) -> None:
        me = _current_task()
        while self._owns(name, me):
            await asyncio.sleep(period)
            if not self._owns(name, me):
                break
            try:
                await handler()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled job %r failed", name)

    async def _run_once(
        self,
        name: str,
        delay: float,
        handler: Callable[[], Awaitable[None]],
    ) -> None:
        me = _current_task()
        await asyncio.sleep(delay)
        if not self._owns(name, me):
            return
        # No longer pending once it fires; the handler may schedule a successor.
        del self._tasks[name]
        try:
            await handler()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled job %r failed", name)

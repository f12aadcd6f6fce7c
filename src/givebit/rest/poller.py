"""Fallback poller — periodic REST pull of donation session state.

Approximates the push channel's event stream for sessions whose updates
might otherwise be missed. Each polled session gets its own job on the
poller's :class:`TaskScheduler`; a session stops being polled as soon as it
reaches a terminal status. Fetch failures are logged and retried on the
next tick with no attempt limit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from givebit.config.settings import POLL_INTERVAL
from givebit.errors.api_errors import APIError
from givebit.taskmanager.manager import TaskScheduler

if TYPE_CHECKING:
    from collections.abc import Callable

    from givebit.metrics.collector import DeliveryMetrics
    from givebit.models.session import DonationSession
    from givebit.rest.client import RestClient

logger = logging.getLogger(__name__)


def _job_name(session_id: str) -> str:
    return f"poll:{session_id}"


class FallbackPoller:
    """Polls donation sessions on a fixed cadence.

    Usage::

        poller = FallbackPoller(rest, interval=5.0)
        poller.start_polling(session.id, on_update)
        ...
        await poller.close()
    """

    def __init__(
        self,
        rest: RestClient,
        *,
        interval: float = POLL_INTERVAL,
        metrics: DeliveryMetrics | None = None,
    ) -> None:
        self._rest = rest
        self._interval = interval
        self._metrics = metrics
        self._scheduler = TaskScheduler()
        self._sessions: set[str] = set()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def polling_sessions(self) -> frozenset[str]:
        """Ids of the sessions currently being polled."""
        return frozenset(self._sessions)

    def is_polling(self, session_id: str) -> bool:
        return session_id in self._sessions

    def start_polling(
        self,
        session_id: str,
        callback: Callable[[DonationSession], object],
    ) -> None:
        """Poll *session_id* every interval, passing each snapshot to *callback*.

        No-op if the session is already being polled. Must be called from
        inside the running event loop.
        """
        if session_id in self._sessions:
            return

        async def _tick() -> None:
            await self._poll_once(session_id, callback)

        self._sessions.add(session_id)
        self._scheduler.schedule_periodic(_job_name(session_id), self._interval, _tick)
        logger.debug("Started polling donation session %s", session_id)

    def stop_polling(self, session_id: str) -> None:
        """Stop polling *session_id*. Idempotent."""
        if session_id not in self._sessions:
            return
        self._sessions.discard(session_id)
        self._scheduler.cancel(_job_name(session_id))
        logger.debug("Stopped polling donation session %s", session_id)

    def stop_all_polling(self) -> None:
        """Stop polling every session. Idempotent."""
        self._sessions.clear()
        self._scheduler.cancel_all()

    async def close(self) -> None:
        """Stop all polling and wait for in-flight ticks to unwind."""
        self._sessions.clear()
        await self._scheduler.shutdown()

    async def _poll_once(
        self,
        session_id: str,
        callback: Callable[[DonationSession], object],
    ) -> None:
        try:
            session = await self._rest.get_donation_session(session_id)
        except APIError as exc:
            logger.error("Polling error for %s: %s", session_id, exc)
            if self._metrics:
                self._metrics.record_poll(ok=False)
            return

        if self._metrics:
            self._metrics.record_poll(ok=True)
        if session_id not in self._sessions:
            # Stopped while the fetch was in flight.
            return

        try:
            callback(session)
        except Exception:
            logger.exception("Polling callback failed for %s", session_id)

        if session.is_terminal:
            self.stop_polling(session_id)

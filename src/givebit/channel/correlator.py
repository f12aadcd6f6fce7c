"""Request correlator — match outbound channel requests to their replies.

Each request gets a locally unique, monotonically increasing id. The reply
carrying that id settles the request's future; a timer armed on the event
loop rejects it with :class:`RequestTimeoutError` if no reply arrives in
time. Whichever comes first removes the pending entry, exactly once.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any

from givebit.errors.channel_errors import (
    ChannelError,
    RemoteRequestError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """An outstanding request awaiting its correlated reply."""

    request_id: str
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle


class RequestCorrelator:
    """Tracks pending requests keyed by id."""

    def __init__(self, *, timeout: float) -> None:
        self._timeout = timeout
        self._ids = itertools.count(1)
        self._pending: dict[str, PendingRequest] = {}

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    def register(self) -> PendingRequest:
        """Allocate the next id and arm its timeout.

        Must be called from inside the running event loop.
        """
        loop = asyncio.get_running_loop()
        request_id = str(next(self._ids))
        future: asyncio.Future[Any] = loop.create_future()
        timer = loop.call_later(self._timeout, self._expire, request_id)
        pending = PendingRequest(request_id=request_id, future=future, timer=timer)
        self._pending[request_id] = pending
        return pending

    def resolve(self, frame: dict[str, Any]) -> bool:
        """Settle the request matching ``frame["id"]``.

        Returns:
            True if the frame was a reply to a pending request.
        """
        request_id = frame.get("id")
        if request_id is None:
            return False
        pending = self._take(str(request_id))
        if pending is None:
            return False
        if pending.future.done():
            return True
        error = frame.get("error")
        if error:
            pending.future.set_exception(RemoteRequestError(str(error)))
        else:
            pending.future.set_result(frame.get("data"))
        return True

    def discard(self, request_id: str, error: ChannelError | None = None) -> None:
        """Drop a pending request, optionally failing its future."""
        pending = self._take(request_id)
        if pending is not None and error is not None and not pending.future.done():
            pending.future.set_exception(error)

    def reject_all(self, error: ChannelError) -> None:
        """Fail and drop every pending request."""
        for request_id in list(self._pending):
            self.discard(request_id, error)

    def _take(self, request_id: str) -> PendingRequest | None:
        pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.timer.cancel()
        return pending

    def _expire(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        logger.warning("WebSocket request %s timed out after %.1fs", request_id, self._timeout)
        if not pending.future.done():
            pending.future.set_exception(RequestTimeoutError())

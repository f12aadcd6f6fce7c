"""WebSocket channel manager — connect, heartbeat, route, reconnect.

Maintains exactly one logical push connection to the GiveBit backend and
presents it as:
- a broadcast event feed (``on`` / ``off``), and
- a request/response primitive (``send``) built on the correlator.

State machine::

    DISCONNECTED → CONNECTING → OPEN → (closed) → RECONNECTING → CONNECTING …

Unexpected closures (and failed open attempts) are retried with exponential
backoff, ``reconnect_delay * 2 ** (attempt - 1)``, until the attempt budget
is spent; a successful open resets the budget.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
from typing import TYPE_CHECKING, Any

import websockets
from websockets.protocol import State

from givebit.channel.correlator import RequestCorrelator
from givebit.config.settings import (
    HEARTBEAT_INTERVAL,
    RECONNECT_ATTEMPTS,
    RECONNECT_DELAY,
    REQUEST_TIMEOUT,
)
from givebit.errors.channel_errors import (
    ChannelClosedError,
    ChannelConnectError,
    ChannelError,
    NotConnectedError,
    ProtocolError,
)
from givebit.notifications.events import DonationEvent, EventType
from givebit.notifications.registry import SubscriptionRegistry
from givebit.taskmanager.manager import TaskScheduler

if TYPE_CHECKING:
    from givebit.config.settings import GiveBitConfig
    from givebit.metrics.collector import DeliveryMetrics
    from givebit.notifications.registry import EventCallback

logger = logging.getLogger(__name__)

_HEARTBEAT_JOB = "heartbeat"
_RECONNECT_JOB = "reconnect"


class ChannelState(enum.StrEnum):
    """Lifecycle state of the push connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"


class ChannelManager:
    """Owns the WebSocket push connection.

    Usage::

        channel = ChannelManager.from_config(config)
        channel.on("donation_finalized", handle)
        await channel.connect()
        try:
            result = await channel.send({"action": "subscribe", "session_id": sid})
        finally:
            await channel.disconnect()
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        project_id: str,
        *,
        max_reconnect_attempts: int = RECONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_DELAY,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        request_timeout: float = REQUEST_TIMEOUT,
        metrics: DeliveryMetrics | None = None,
    ) -> None:
        """Initialize the channel manager.

        Args:
            url: WebSocket endpoint (``wss://...``).
            api_key: Bearer token sent in the ``Authorization`` header.
            project_id: Project identifier sent as ``X-Project-Id``.
            max_reconnect_attempts: Reconnect budget after unexpected closure.
            reconnect_delay: Backoff base delay in seconds.
            heartbeat_interval: Seconds between pings while open.
            request_timeout: Seconds to wait for a correlated reply.
            metrics: Optional Prometheus metrics sink.
        """
        self._url = url
        self._api_key = api_key
        self._project_id = project_id
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_delay = reconnect_delay
        self._heartbeat_interval = heartbeat_interval
        self._metrics = metrics

        self._ws: Any = None
        self._state = ChannelState.DISCONNECTED
        self._reconnect_attempts = 0
        self._receive_task: asyncio.Task[None] | None = None
        self._connecting: asyncio.Task[None] | None = None
        self._closed_ws: Any = None
        self._listeners = SubscriptionRegistry(metrics=metrics)
        self._correlator = RequestCorrelator(timeout=request_timeout)
        self._scheduler = TaskScheduler()

    @classmethod
    def from_config(
        cls, config: GiveBitConfig, *, metrics: DeliveryMetrics | None = None
    ) -> ChannelManager:
        """Build a channel manager from SDK settings."""
        return cls(
            config.resolved_ws_endpoint,
            config.api_key,
            config.project_id,
            max_reconnect_attempts=config.reconnect_attempts,
            reconnect_delay=config.reconnect_delay,
            heartbeat_interval=config.heartbeat_interval,
            request_timeout=config.request_timeout,
            metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        """Reconnects scheduled since the last successful open."""
        return self._reconnect_attempts

    @property
    def pending_requests(self) -> int:
        return self._correlator.pending_count

    def reset_reconnect_attempts(self) -> None:
        """Restore the full reconnect budget after it has been exhausted."""
        self._reconnect_attempts = 0

    def is_connected(self) -> bool:
        """True iff a connection handle exists and reports the open state."""
        return self._ws is not None and self._ws.state is State.OPEN

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the channel.

        Returns once the connection is open. A failed open attempt raises
        :class:`ChannelConnectError` and schedules a reconnect if the budget
        allows. Calls made while an attempt is in flight wait for that same
        attempt and share its outcome.

        Raises:
            ChannelConnectError: The open attempt failed.
        """
        if self.is_connected():
            return
        if self._connecting is None:
            self._connecting = asyncio.create_task(self._open())
            self._connecting.add_done_callback(self._connect_finished)
        task = self._connecting
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                msg = "WebSocket connection attempt cancelled by disconnect"
                raise ChannelConnectError(msg) from None
            raise

    async def _open(self) -> None:
        self._scheduler.cancel(_RECONNECT_JOB)
        self._state = ChannelState.CONNECTING
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "X-Project-Id": self._project_id,
        }
        try:
            ws = await websockets.connect(
                self._url,
                additional_headers=headers,
                ping_interval=None,
            )
        except (OSError, TimeoutError, websockets.WebSocketException) as exc:
            logger.error("WebSocket error: %s", exc)
            self._state = ChannelState.DISCONNECTED
            self._schedule_reconnect()
            msg = f"WebSocket connection to {self._url} failed: {exc}"
            raise ChannelConnectError(msg) from exc

        logger.info("WebSocket connected")
        self._ws = ws
        self._state = ChannelState.OPEN
        self._reconnect_attempts = 0
        if self._metrics:
            self._metrics.set_channel_open(True)
        self._scheduler.schedule_periodic(
            _HEARTBEAT_JOB, self._heartbeat_interval, self._send_heartbeat
        )
        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        self._emit(DonationEvent(type=EventType.CONNECTION_OPEN))

    async def disconnect(self) -> None:
        """Close the channel without scheduling a reconnect.

        ``connection_lost`` is still emitted once the connection unwinds.
        """
        connecting, self._connecting = self._connecting, None
        if connecting is not None and not connecting.done():
            connecting.cancel()
            with contextlib.suppress(asyncio.CancelledError, ChannelConnectError):
                await connecting

        self._scheduler.cancel(_HEARTBEAT_JOB)
        self._scheduler.cancel(_RECONNECT_JOB)
        ws, self._ws = self._ws, None
        self._reconnect_attempts = 0
        self._state = ChannelState.DISCONNECTED

        if ws is not None:
            try:
                await ws.close()
            except (OSError, websockets.WebSocketException) as exc:
                logger.debug("Error while closing WebSocket: %s", exc)

        task, self._receive_task = self._receive_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if ws is not None and ws is not self._closed_ws:
            # The receive task was cancelled before it could unwind.
            self._handle_closed(ws)
        self._correlator.reject_all(ChannelClosedError("WebSocket disconnected"))
        await self._scheduler.shutdown()

    # ------------------------------------------------------------------
    # Request / response
    # ------------------------------------------------------------------

    async def send(self, payload: dict[str, Any]) -> Any:
        """Send a request and wait for its correlated reply.

        Args:
            payload: Request body; a fresh ``id`` is merged in.

        Returns:
            The reply's ``data`` field.

        Raises:
            NotConnectedError: The channel is not open (no request is created).
            RemoteRequestError: The reply carried an ``error`` field.
            RequestTimeoutError: No reply arrived within the timeout.
            ChannelClosedError: The channel went away before the reply.
            ProtocolError: The payload cannot be encoded as JSON.
        """
        if not self.is_connected():
            raise NotConnectedError()

        ws = self._ws
        pending = self._correlator.register()
        frame = {**payload, "id": pending.request_id}
        try:
            message = json.dumps(frame)
            await ws.send(message)
        except (TypeError, ValueError) as exc:
            self._correlator.discard(pending.request_id)
            msg = f"Request payload is not JSON serializable: {exc}"
            raise ProtocolError(msg) from exc
        except (OSError, websockets.WebSocketException) as exc:
            self._correlator.discard(pending.request_id)
            msg = f"WebSocket send failed: {exc}"
            raise ChannelError(msg) from exc

        try:
            if self._metrics:
                with self._metrics.track_request():
                    return await pending.future
            return await pending.future
        finally:
            self._correlator.discard(pending.request_id)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, kind: str, callback: EventCallback) -> None:
        """Subscribe *callback* to events of *kind*."""
        self._listeners.add(kind, callback)

    def off(self, kind: str, callback: EventCallback) -> None:
        """Unsubscribe the first registration of *callback* from *kind*."""
        self._listeners.remove(kind, callback)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _emit(self, event: DonationEvent) -> None:
        if self._metrics:
            self._metrics.record_event(event.source, event.type)
        self._listeners.emit(event)

    async def _receive_loop(self, ws: Any) -> None:
        """Background task that routes inbound frames until the connection ends."""
        try:
            async for message in ws:
                self._route(message)
        except websockets.ConnectionClosed as exc:
            logger.info("Connection closed: code=%s reason=%s", exc.code, exc.reason)
        except (OSError, websockets.WebSocketException):
            logger.exception("Unexpected error in WebSocket receive loop")
        finally:
            self._handle_closed(ws)

    def _route(self, message: str | bytes) -> None:
        """Dispatch one inbound frame: correlated reply, pushed event, or ignored."""
        try:
            frame = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Failed to parse WebSocket message: %s", exc)
            return
        if not isinstance(frame, dict):
            logger.error("Failed to parse WebSocket message: not a JSON object")
            return

        if self._correlator.resolve(frame):
            return
        if "type" not in frame:
            return
        try:
            event = DonationEvent.from_frame(frame)
        except ProtocolError as exc:
            logger.warning("Dropping WebSocket frame: %s", exc)
            return
        self._emit(event)

    def _handle_closed(self, ws: Any) -> None:
        """Run once per connection when it ends, deliberately or not."""
        if ws is self._closed_ws:
            return
        self._closed_ws = ws
        logger.info("WebSocket disconnected")
        deliberate = self._ws is not ws
        self._scheduler.cancel(_HEARTBEAT_JOB)
        if self._metrics:
            self._metrics.set_channel_open(False)
        if not deliberate:
            self._ws = None
            self._receive_task = None
            self._state = ChannelState.DISCONNECTED
            self._correlator.reject_all(ChannelClosedError())

        self._emit(DonationEvent(type=EventType.CONNECTION_LOST))

        if not deliberate:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_attempts >= self._max_reconnect_attempts:
            logger.error(
                "Max reconnection attempts reached (%d)", self._max_reconnect_attempts
            )
            self._state = ChannelState.DISCONNECTED
            return

        self._reconnect_attempts += 1
        delay = self._reconnect_delay * 2 ** (self._reconnect_attempts - 1)
        logger.info(
            "Reconnecting in %.1fs (attempt %d/%d)",
            delay,
            self._reconnect_attempts,
            self._max_reconnect_attempts,
        )
        if self._metrics:
            self._metrics.record_reconnect()
        self._state = ChannelState.RECONNECTING
        self._scheduler.schedule_once(_RECONNECT_JOB, delay, self._reconnect)

    def _connect_finished(self, task: asyncio.Task[None]) -> None:
        if self._connecting is task:
            self._connecting = None
        if not task.cancelled():
            # Marks the failure retrieved; waiters still receive it.
            task.exception()

    async def _reconnect(self) -> None:
        # A failure has already scheduled the next attempt.
        with contextlib.suppress(ChannelConnectError):
            await self.connect()

    async def _send_heartbeat(self) -> None:
        if not self.is_connected():
            return
        try:
            await self._ws.ping()
        except (OSError, websockets.WebSocketException) as exc:
            logger.debug("Heartbeat ping failed: %s", exc)

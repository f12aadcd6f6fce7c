"""GiveBit — the single entry point owning the channel, REST client and poller.

``GiveBit`` merges the WebSocket push channel and the REST fallback poller
into one event stream. It is constructed and owned explicitly by the caller;
there is no process-wide instance.

Delivery contract: events are at-least-once. A session's status transition
may be delivered once from the channel and once from the poller; wrap a
listener with :func:`givebit.notifications.deduplicate` when exactly-once
handling is needed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

from givebit.channel.manager import ChannelManager
from givebit.errors.channel_errors import ChannelError
from givebit.notifications.events import DonationEvent, EventSource, EventType
from givebit.notifications.registry import SubscriptionRegistry
from givebit.rest.client import RestClient
from givebit.rest.poller import FallbackPoller

if TYPE_CHECKING:
    from decimal import Decimal
    from types import TracebackType

    from givebit.config.settings import GiveBitConfig
    from givebit.metrics.collector import DeliveryMetrics
    from givebit.models.session import DonationSession
    from givebit.notifications.registry import EventCallback

logger = logging.getLogger(__name__)

# Channel event kinds re-broadcast unchanged to GiveBit listeners
FORWARDED_EVENTS: tuple[EventType, ...] = tuple(EventType)


class GiveBit:
    """Event-driven donation session client.

    Usage::

        async with GiveBit(GiveBitConfig(project_id="p", api_key="k")) as gb:
            gb.on("donation_finalized", on_finalized)
            session = await gb.create_donation_session(
                creator_wallet="0xabc...", amount="0.01", currency="ETH", network="holesky"
            )
    """

    def __init__(
        self,
        config: GiveBitConfig,
        *,
        channel: ChannelManager | None = None,
        rest: RestClient | None = None,
        poller: FallbackPoller | None = None,
        metrics: DeliveryMetrics | None = None,
    ) -> None:
        """Initialize the client with configuration.

        Args:
            config: SDK configuration (credentials, environment, timings).
            channel: Pre-built channel manager (defaults to one from *config*).
            rest: Pre-built REST client (defaults to one from *config*).
            poller: Pre-built poller (defaults to one over *rest*).
            metrics: Optional Prometheus metrics sink shared by all components.
        """
        self._config = config
        self._metrics = metrics
        self._channel = channel or ChannelManager.from_config(config, metrics=metrics)
        self._rest = rest or RestClient.from_config(config)
        self._poller = poller or FallbackPoller(
            self._rest, interval=config.poll_interval, metrics=metrics
        )
        self._listeners = SubscriptionRegistry(metrics=metrics)
        self._active_sessions: set[str] = set()

        for kind in FORWARDED_EVENTS:
            self._channel.on(kind, self._broadcast)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> GiveBitConfig:
        return self._config

    @property
    def channel(self) -> ChannelManager:
        """Direct access to the WebSocket channel manager."""
        return self._channel

    @property
    def active_sessions(self) -> frozenset[str]:
        """Ids of sessions currently tracked for fallback polling."""
        return frozenset(self._active_sessions)

    def is_connected(self) -> bool:
        """Whether the push channel is currently open."""
        return self._channel.is_connected()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the REST client and try the push channel.

        A channel failure is logged and never raised: the client degrades to
        REST polling and the channel keeps retrying in the background.
        """
        await self._rest.connect()
        try:
            await self._channel.connect()
        except ChannelError as exc:
            logger.warning("WebSocket connection failed, falling back to REST polling: %s", exc)

    async def disconnect(self) -> None:
        """Tear down the channel and all polling, and forget active sessions."""
        await self._channel.disconnect()
        await self._poller.close()
        self._active_sessions.clear()
        self._update_active_gauge()
        await self._rest.close()

    # ------------------------------------------------------------------
    # Donation sessions
    # ------------------------------------------------------------------

    async def create_donation_session(
        self,
        *,
        creator_wallet: str,
        amount: int | float | str | Decimal,
        currency: str,
        network: str,
        donor_wallet: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> DonationSession:
        """Create a donation session and start tracking it.

        The new session is always polled, whether or not the channel is
        open, so its updates survive channel loss.

        Args:
            creator_wallet: REQUIRED wallet address where the funds will go.
            amount: Donation amount.
            currency: Token symbol (e.g. ``ETH``, ``USDT``).
            network: Chain name (e.g. ``holesky``, ``ethereum``, ``polygon``).
            donor_wallet: Optional donor wallet address.
            metadata: Optional additional metadata.

        Raises:
            ValidationError: ``creator_wallet`` is blank (no request is sent).
            APIError: The backend rejected the request.
        """
        await self._rest.connect()
        session = await self._rest.create_donation_session(
            creator_wallet=creator_wallet,
            amount=amount,
            currency=currency,
            network=network,
            donor_wallet=donor_wallet,
            metadata=metadata,
        )

        self.track_session(session.id)
        return session

    def track_session(self, session_id: str) -> None:
        """Track an existing session: poll it until it reaches a terminal status.

        Idempotent; a session already being tracked keeps its single poller.
        """
        self._active_sessions.add(session_id)
        self._update_active_gauge()
        self._poller.start_polling(session_id, self._on_polled)

    async def get_donation_session(self, session_id: str) -> DonationSession:
        await self._rest.connect()
        return await self._rest.get_donation_session(session_id)

    async def get_donation_history(self, limit: int | None = None) -> list[DonationSession]:
        await self._rest.connect()
        return await self._rest.get_donation_history(limit)

    async def request(self, payload: dict[str, Any]) -> Any:
        """Send a request over the push channel and return the reply data."""
        return await self._channel.send(payload)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, kind: str, callback: EventCallback) -> None:
        """Subscribe *callback* to events of *kind* from either source."""
        self._listeners.add(kind, callback)

    def off(self, kind: str, callback: EventCallback) -> None:
        """Unsubscribe the first registration of *callback* from *kind*."""
        self._listeners.remove(kind, callback)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _broadcast(self, event: DonationEvent) -> None:
        self._listeners.emit(event)

    def _on_polled(self, session: DonationSession) -> None:
        try:
            kind = EventType.for_status(session.status)
        except ValueError:
            logger.warning("Unknown status %r polled for session %s", session.status, session.id)
        else:
            event = DonationEvent(type=kind, session=session, source=EventSource.POLL)
            if self._metrics:
                self._metrics.record_event(event.source, event.type)
            self._broadcast(event)

        if session.is_terminal:
            self._active_sessions.discard(session.id)
            self._update_active_gauge()

    def _update_active_gauge(self) -> None:
        if self._metrics:
            self._metrics.set_active_sessions(len(self._active_sessions))

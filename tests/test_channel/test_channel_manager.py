"""Tests for the WebSocket channel manager."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, patch

import pytest

from givebit.channel.manager import ChannelManager, ChannelState
from givebit.errors.channel_errors import (
    ChannelClosedError,
    ChannelConnectError,
    NotConnectedError,
    ProtocolError,
    RemoteRequestError,
    RequestTimeoutError,
)
from givebit.metrics.collector import DeliveryMetrics
from givebit.notifications.events import EventSource, EventType

if TYPE_CHECKING:
    from collections.abc import Callable

    from givebit.config.settings import GiveBitConfig
    from givebit.notifications.events import DonationEvent


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until *predicate* holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


def _collect(channel: ChannelManager, *kinds: EventType) -> list[DonationEvent]:
    events: list[DonationEvent] = []
    for kind in kinds:
        channel.on(kind, events.append)
    return events


def _echo(frame: dict[str, Any]) -> dict[str, Any]:
    return {"id": frame["id"], "data": {"echo": frame.get("action")}}


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------


class TestConnect:
    async def test_connect_sends_credentials(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        connect = AsyncMock(return_value=fake_ws)
        with patch("websockets.connect", connect):
            await channel.connect()
            try:
                connect.assert_awaited_once()
                args, kwargs = connect.call_args
                assert args[0] == config.resolved_ws_endpoint
                assert kwargs["additional_headers"] == {
                    "Authorization": "Bearer test-key",
                    "X-Project-Id": "proj-1",
                }
            finally:
                await channel.disconnect()

    async def test_connect_emits_open(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        events = _collect(channel, EventType.CONNECTION_OPEN)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            assert channel.is_connected()
            assert channel.state is ChannelState.OPEN
            await channel.disconnect()

        assert len(events) == 1
        assert events[0].session is None

    async def test_connect_when_open_is_noop(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        connect = AsyncMock(return_value=fake_ws)
        with patch("websockets.connect", connect):
            await channel.connect()
            await channel.connect()
            assert connect.await_count == 1
            await channel.disconnect()

    async def test_concurrent_connects_share_one_socket(
        self, config: GiveBitConfig, fake_ws
    ) -> None:
        async def slow_connect(*args: Any, **kwargs: Any) -> Any:
            await asyncio.sleep(0.02)
            return fake_ws

        channel = ChannelManager.from_config(config)
        opened = _collect(channel, EventType.CONNECTION_OPEN)
        connect = AsyncMock(side_effect=slow_connect)
        with patch("websockets.connect", connect):
            await asyncio.gather(channel.connect(), channel.connect())

            assert connect.await_count == 1
            assert len(opened) == 1
            assert channel.is_connected()
            await channel.disconnect()

        assert fake_ws.closed

    async def test_concurrent_connects_share_failure(self, config: GiveBitConfig) -> None:
        async def slow_failure(*args: Any, **kwargs: Any) -> Any:
            await asyncio.sleep(0.02)
            raise OSError("refused")

        channel = ChannelManager.from_config(config)
        connect = AsyncMock(side_effect=slow_failure)
        with patch("websockets.connect", connect):
            results = await asyncio.gather(
                channel.connect(), channel.connect(), return_exceptions=True
            )

        assert connect.await_count == 1
        assert all(isinstance(r, ChannelConnectError) for r in results)

    async def test_disconnect_cancels_pending_connect(
        self, config: GiveBitConfig, fake_ws
    ) -> None:
        async def slow_connect(*args: Any, **kwargs: Any) -> Any:
            await asyncio.sleep(0.05)
            return fake_ws

        channel = ChannelManager.from_config(config)
        opened = _collect(channel, EventType.CONNECTION_OPEN)
        with patch("websockets.connect", AsyncMock(side_effect=slow_connect)):
            pending = asyncio.create_task(channel.connect())
            await asyncio.sleep(0.01)
            await channel.disconnect()

            with pytest.raises(ChannelConnectError):
                await pending
            await asyncio.sleep(0.06)

        assert opened == []
        assert not channel.is_connected()
        assert channel.state is ChannelState.DISCONNECTED

    async def test_failed_connect_raises(self, config: GiveBitConfig) -> None:
        channel = ChannelManager.from_config(config)
        lost = _collect(channel, EventType.CONNECTION_LOST)
        with patch("websockets.connect", AsyncMock(side_effect=OSError("refused"))):
            with pytest.raises(ChannelConnectError):
                await channel.connect()

        assert not channel.is_connected()
        assert channel.state is ChannelState.DISCONNECTED
        assert lost == []

    async def test_disconnect_emits_lost_without_reconnect(self, fake_ws) -> None:
        channel = ChannelManager("wss://x", "k", "p", max_reconnect_attempts=3, reconnect_delay=0.01)
        lost = _collect(channel, EventType.CONNECTION_LOST)
        connect = AsyncMock(return_value=fake_ws)
        with patch("websockets.connect", connect):
            await channel.connect()
            await channel.disconnect()
            await asyncio.sleep(0.05)

        assert fake_ws.closed
        assert len(lost) == 1
        assert connect.await_count == 1
        assert channel.reconnect_attempts == 0
        assert channel.state is ChannelState.DISCONNECTED

    async def test_disconnect_when_never_connected(self, config: GiveBitConfig) -> None:
        channel = ChannelManager.from_config(config)
        await channel.disconnect()
        assert channel.state is ChannelState.DISCONNECTED


# ---------------------------------------------------------------------------
# Inbound routing
# ---------------------------------------------------------------------------


class TestRouting:
    async def test_pushed_event_delivered(
        self, config: GiveBitConfig, fake_ws, session_payload
    ) -> None:
        channel = ChannelManager.from_config(config)
        events = _collect(channel, EventType.DONATION_FINALIZED)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            fake_ws.push(
                {"type": "donation_finalized", "session": session_payload("abc", "finalized")}
            )
            await _until(lambda: len(events) == 1)
            await channel.disconnect()

        event = events[0]
        assert event.type is EventType.DONATION_FINALIZED
        assert event.source is EventSource.CHANNEL
        assert event.session is not None
        assert event.session.id == "abc"
        assert event.session.status == "finalized"

    async def test_malformed_frames_dropped(
        self, config: GiveBitConfig, fake_ws, session_payload
    ) -> None:
        channel = ChannelManager.from_config(config)
        events = _collect(channel, *EventType)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            events.clear()
            fake_ws.push("{not json")
            fake_ws.push(json.dumps([1, 2, 3]))
            fake_ws.push({"type": "donation_refunded"})
            fake_ws.push({"type": "donation_pending", "session": "abc"})
            fake_ws.push({"hello": "world"})
            fake_ws.push({"type": "donation_pending", "session": session_payload()})
            await _until(lambda: len(events) == 1)
            assert channel.is_connected()
            await channel.disconnect()

        assert events[0].type is EventType.DONATION_PENDING

    async def test_failing_listener_isolated(
        self, config: GiveBitConfig, fake_ws, session_payload
    ) -> None:
        channel = ChannelManager.from_config(config)
        received: list[DonationEvent] = []

        def broken(event: DonationEvent) -> None:
            raise RuntimeError("listener bug")

        channel.on("donation_confirmed", broken)
        channel.on("donation_confirmed", received.append)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            fake_ws.push({"type": "donation_confirmed", "session": session_payload()})
            fake_ws.push({"type": "donation_confirmed", "session": session_payload()})
            await _until(lambda: len(received) == 2)
            await channel.disconnect()

    async def test_off_stops_delivery(
        self, config: GiveBitConfig, fake_ws, session_payload
    ) -> None:
        channel = ChannelManager.from_config(config)
        received: list[DonationEvent] = []
        sentinel: list[DonationEvent] = []
        channel.on("donation_pending", received.append)
        channel.on("donation_pending", sentinel.append)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            channel.off("donation_pending", received.append)
            fake_ws.push({"type": "donation_pending", "session": session_payload()})
            await _until(lambda: len(sentinel) == 1)
            await channel.disconnect()

        assert received == []


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------


class TestSend:
    async def test_send_not_connected(self, config: GiveBitConfig) -> None:
        channel = ChannelManager.from_config(config)
        with pytest.raises(NotConnectedError):
            await channel.send({"action": "ping"})
        assert channel.pending_requests == 0

    async def test_send_unserializable_payload(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            with pytest.raises(ProtocolError, match="not JSON serializable"):
                await channel.send({"action": "subscribe", "blob": object()})

            assert channel.pending_requests == 0
            assert fake_ws.sent == []
            await channel.disconnect()

    async def test_send_resolves_reply(self, config: GiveBitConfig, fake_ws_factory) -> None:
        ws = fake_ws_factory(responder=_echo)
        channel = ChannelManager.from_config(config)
        with patch("websockets.connect", AsyncMock(return_value=ws)):
            await channel.connect()
            result = await channel.send({"action": "subscribe"})
            await channel.disconnect()

        assert result == {"echo": "subscribe"}
        assert ws.sent == [{"action": "subscribe", "id": "1"}]
        assert channel.pending_requests == 0

    async def test_send_error_reply(self, config: GiveBitConfig, fake_ws_factory) -> None:
        ws = fake_ws_factory(responder=lambda f: {"id": f["id"], "error": "forbidden"})
        channel = ChannelManager.from_config(config)
        with patch("websockets.connect", AsyncMock(return_value=ws)):
            await channel.connect()
            with pytest.raises(RemoteRequestError, match="forbidden"):
                await channel.send({"action": "subscribe"})
            await channel.disconnect()

    async def test_send_timeout_then_fresh_id(
        self, config: GiveBitConfig, fake_ws_factory
    ) -> None:
        replies: list[dict[str, Any] | None] = [None, {"id": "2", "data": "ok"}]
        ws = fake_ws_factory(responder=lambda f: replies.pop(0))
        channel = ChannelManager.from_config(config)
        with patch("websockets.connect", AsyncMock(return_value=ws)):
            await channel.connect()
            with pytest.raises(RequestTimeoutError):
                await channel.send({"action": "slow"})
            assert channel.pending_requests == 0

            # A late reply to the expired request is ignored.
            ws.push({"id": "1", "data": "late"})
            assert await channel.send({"action": "fast"}) == "ok"
            await channel.disconnect()

        assert [f["id"] for f in ws.sent] == ["1", "2"]

    async def test_unmatched_reply_ignored(
        self, config: GiveBitConfig, fake_ws, session_payload
    ) -> None:
        channel = ChannelManager.from_config(config)
        events = _collect(channel, EventType.DONATION_PENDING)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            fake_ws.push({"id": "77", "data": "stray"})
            fake_ws.push({"type": "donation_pending", "session": session_payload()})
            await _until(lambda: len(events) == 1)
            assert channel.is_connected()
            await channel.disconnect()

    async def test_pending_rejected_on_close(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            request = asyncio.create_task(channel.send({"action": "wait"}))
            await _until(lambda: channel.pending_requests == 1)
            fake_ws.drop()
            with pytest.raises(ChannelClosedError):
                await request
            await channel.disconnect()

    async def test_request_metrics(self, config: GiveBitConfig, fake_ws_factory) -> None:
        metrics = DeliveryMetrics()
        ws = fake_ws_factory(responder=_echo)
        channel = ChannelManager.from_config(config, metrics=metrics)
        with patch("websockets.connect", AsyncMock(return_value=ws)):
            await channel.connect()
            await channel.send({"action": "subscribe"})
            await channel.disconnect()

        sample = metrics.registry.get_sample_value
        assert sample("givebit_request_duration_seconds_count") == 1
        assert sample("givebit_events_total", {"source": "channel", "type": "connection_open"}) == 1


# ---------------------------------------------------------------------------
# Reconnect and heartbeat
# ---------------------------------------------------------------------------


class TestReconnect:
    async def test_reconnects_after_drop(self, fake_ws_factory) -> None:
        first = fake_ws_factory()
        second = fake_ws_factory()
        channel = ChannelManager("wss://x", "k", "p", max_reconnect_attempts=3, reconnect_delay=0.05)
        opened = _collect(channel, EventType.CONNECTION_OPEN)
        lost = _collect(channel, EventType.CONNECTION_LOST)
        connect = AsyncMock(side_effect=[first, second])
        with patch("websockets.connect", connect):
            await channel.connect()
            first.drop()
            await _until(lambda: len(lost) == 1)
            assert channel.reconnect_attempts == 1
            await _until(lambda: len(opened) == 2)

            assert channel.is_connected()
            assert channel.reconnect_attempts == 0
            await channel.disconnect()

        assert connect.await_count == 2

    async def test_attempts_exhausted(self, fake_ws) -> None:
        metrics = DeliveryMetrics()
        channel = ChannelManager(
            "wss://x", "k", "p", max_reconnect_attempts=2, reconnect_delay=0.01, metrics=metrics
        )
        connect = AsyncMock(side_effect=[fake_ws, OSError("down"), OSError("down")])
        with patch("websockets.connect", connect):
            await channel.connect()
            fake_ws.drop()
            await _until(lambda: connect.await_count == 3)
            await asyncio.sleep(0.1)

            assert connect.await_count == 3
            assert channel.reconnect_attempts == 2
            assert channel.state is ChannelState.DISCONNECTED
            assert not channel.is_connected()
            await channel.disconnect()

        assert metrics.registry.get_sample_value("givebit_reconnect_attempts_total") == 2

    async def test_reset_reconnect_attempts(self) -> None:
        channel = ChannelManager("wss://x", "k", "p", max_reconnect_attempts=1, reconnect_delay=0.01)
        connect = AsyncMock(side_effect=OSError("down"))
        with patch("websockets.connect", connect):
            with pytest.raises(ChannelConnectError):
                await channel.connect()
            await _until(lambda: connect.await_count == 2)
            assert channel.reconnect_attempts == 1

            channel.reset_reconnect_attempts()
            assert channel.reconnect_attempts == 0
            await channel.disconnect()

    async def test_no_reconnect_with_zero_budget(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        lost = _collect(channel, EventType.CONNECTION_LOST)
        connect = AsyncMock(return_value=fake_ws)
        with patch("websockets.connect", connect):
            await channel.connect()
            fake_ws.drop()
            await _until(lambda: len(lost) == 1)
            await asyncio.sleep(0.05)

        assert connect.await_count == 1
        assert channel.state is ChannelState.DISCONNECTED


class TestHeartbeat:
    async def test_pings_while_open(self, config: GiveBitConfig, fake_ws) -> None:
        channel = ChannelManager.from_config(config)
        with patch("websockets.connect", AsyncMock(return_value=fake_ws)):
            await channel.connect()
            await _until(lambda: fake_ws.pings >= 2)
            await channel.disconnect()

        pings = fake_ws.pings
        await asyncio.sleep(0.12)
        assert fake_ws.pings == pings

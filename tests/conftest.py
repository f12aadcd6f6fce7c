"""Shared test fixtures for the GiveBit SDK test suite."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from websockets.protocol import State

from givebit.config.settings import GiveBitConfig
from givebit.rest.client import RestClient

if TYPE_CHECKING:
    from collections.abc import Callable

_CLOSED = object()

API_URL = "https://api.givebit.test"
WS_URL = "wss://ws.givebit.test/ws"


class FakeConnection:
    """In-memory stand-in for a ``websockets`` client connection.

    ``push`` queues an inbound frame, ``drop`` simulates the server closing
    the connection. An optional ``responder`` answers outbound requests.
    """

    def __init__(self, responder: Callable[[dict[str, Any]], Any] | None = None) -> None:
        self.state = State.OPEN
        self.sent: list[dict[str, Any]] = []
        self.pings = 0
        self.closed = False
        self.responder = responder
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        frame = json.loads(message)
        self.sent.append(frame)
        if self.responder is not None:
            reply = self.responder(frame)
            if reply is not None:
                self.push(reply)

    async def ping(self) -> None:
        self.pings += 1

    async def close(self) -> None:
        self.closed = True
        self.drop()

    def push(self, frame: dict[str, Any] | str) -> None:
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        if self.state is State.CLOSED:
            return
        self.state = State.CLOSED
        self._inbox.put_nowait(_CLOSED)

    def __aiter__(self) -> FakeConnection:
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


def session_json(session_id: str = "s1", status: str = "pending", **overrides: Any) -> dict:
    data = {
        "id": session_id,
        "project_id": "proj-1",
        "creator_wallet": "0xCreator",
        "donor_wallet": "",
        "chain_id": 17000,
        "contract_address": "0x5081968D6D4a1124D0B61C5E01F60dF928110ECE",
        "amount": "0.01",
        "memo": "",
        "status": status,
        "created_at": "2026-01-01T00:00:00Z",
        "tx_hash": "",
        "session_id_hash": "0xhash",
        "requires_confirmation": True,
        "estimated_confirmation_time": 30,
    }
    data.update(overrides)
    return data


def mock_rest(handler: Callable[[httpx.Request], httpx.Response]) -> RestClient:
    """Create a RestClient whose HTTP client is backed by an httpx MockTransport."""
    rest = RestClient(API_URL, "test-key", "proj-1")
    rest._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url=API_URL,
        headers=rest._headers(),
    )
    return rest


@pytest.fixture
def config() -> GiveBitConfig:
    """Provide a GiveBitConfig with fast timers and no background reconnects."""
    return GiveBitConfig(
        project_id="proj-1",
        api_key="test-key",
        ws_endpoint=WS_URL,
        api_endpoint=API_URL,
        reconnect_attempts=0,
        reconnect_delay=0.01,
        heartbeat_interval=0.05,
        request_timeout=0.1,
        poll_interval=0.01,
    )


@pytest.fixture
def fake_ws() -> FakeConnection:
    """Provide a fresh open FakeConnection."""
    return FakeConnection()


@pytest.fixture
def fake_ws_factory() -> type[FakeConnection]:
    """Provide the FakeConnection class for tests needing several connections."""
    return FakeConnection


@pytest.fixture
def session_payload() -> Callable[..., dict]:
    """Provide a builder for backend donation session JSON."""
    return session_json


@pytest.fixture
def rest_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], RestClient]:
    """Provide a builder for RestClients backed by a mock transport."""
    return mock_rest

"""Metrics collector — Prometheus counters, gauges, histograms.

- ``givebit_events_total`` counter-vec (source, type)
- ``givebit_listener_errors_total`` counter-vec (type)
- ``givebit_reconnect_attempts_total`` counter
- ``givebit_channel_open`` gauge
- ``givebit_poll_ticks_total`` counter-vec (outcome)
- ``givebit_request_duration_seconds`` histogram
- ``givebit_active_sessions`` gauge
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "givebit"


class DeliveryMetrics:
    """Metrics for the push channel, poller and facade.

    Each instance registers its metrics on its own ``CollectorRegistry``
    unless one is passed in, so several SDK clients can coexist.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._events = Counter(
            f"{_PREFIX}_events",
            "Events broadcast to listeners",
            ("source", "type"),
            registry=self._registry,
        )
        self._listener_errors = Counter(
            f"{_PREFIX}_listener_errors",
            "Listener callbacks that raised",
            ("type",),
            registry=self._registry,
        )
        self._reconnects = Counter(
            f"{_PREFIX}_reconnect_attempts",
            "Scheduled WebSocket reconnect attempts",
            registry=self._registry,
        )
        self._channel_open = Gauge(
            f"{_PREFIX}_channel_open",
            "1 while the WebSocket channel is open",
            registry=self._registry,
        )
        self._poll_ticks = Counter(
            f"{_PREFIX}_poll_ticks",
            "Fallback polling ticks",
            ("outcome",),
            registry=self._registry,
        )
        self._request_duration = Histogram(
            f"{_PREFIX}_request_duration_seconds",
            "Duration of WebSocket request/response round trips",
            registry=self._registry,
        )
        self._active_sessions = Gauge(
            f"{_PREFIX}_active_sessions",
            "Donation sessions tracked for fallback polling",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def record_event(self, source: str, event_type: str) -> None:
        self._events.labels(source=source, type=event_type).inc()

    def record_listener_error(self, event_type: str) -> None:
        self._listener_errors.labels(type=event_type).inc()

    def record_reconnect(self) -> None:
        self._reconnects.inc()

    def set_channel_open(self, is_open: bool) -> None:
        self._channel_open.set(1 if is_open else 0)

    def record_poll(self, *, ok: bool) -> None:
        self._poll_ticks.labels(outcome="ok" if ok else "error").inc()

    def set_active_sessions(self, count: int) -> None:
        self._active_sessions.set(count)

    @contextmanager
    def track_request(self) -> Iterator[None]:
        """Track the duration of a request/response round trip."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._request_duration.observe(time.monotonic() - start)

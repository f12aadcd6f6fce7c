"""Event types for the unified donation event stream.

- ``EventType`` — the closed set of event kinds (wire values)
- ``EventSource`` — which channel detected the event
- ``DonationEvent`` — immutable envelope broadcast to listeners

Both the push channel and the fallback poller produce ``DonationEvent``.
Delivery is at-least-once: the same status transition may arrive once from
each source.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any

from givebit.errors.channel_errors import ProtocolError
from givebit.models.session import DonationSession

_DONATION_PREFIX = "donation_"


class EventType(enum.StrEnum):
    """Event kinds carried in the ``type`` field of a frame."""

    CONNECTION_OPEN = "connection_open"
    CONNECTION_LOST = "connection_lost"
    DONATION_PENDING = "donation_pending"
    DONATION_CONFIRMED = "donation_confirmed"
    DONATION_FINALIZED = "donation_finalized"
    DONATION_FAILED = "donation_failed"
    DONATION_EXPIRED = "donation_expired"

    @classmethod
    def for_status(cls, status: str) -> EventType:
        """Map a session status string to its ``donation_<status>`` kind.

        Raises:
            ValueError: If the status has no matching event kind.
        """
        return cls(f"{_DONATION_PREFIX}{status}")


class EventSource(enum.StrEnum):
    """Which delivery path produced an event."""

    CHANNEL = "channel"
    POLL = "poll"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class DonationEvent:
    """A notification of a connection or session state change."""

    type: EventType
    session: DonationSession | None = None
    timestamp: int = field(default_factory=now_ms)
    error: str | None = None
    source: EventSource = EventSource.CHANNEL

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> DonationEvent:
        """Validate a server-pushed frame and build the event it describes.

        Raises:
            ProtocolError: Unknown event kind or malformed session payload.
        """
        raw_type = frame.get("type")
        try:
            event_type = EventType(raw_type)
        except ValueError as exc:
            msg = f"Unknown event type: {raw_type!r}"
            raise ProtocolError(msg) from exc

        session_data = frame.get("session")
        if session_data is not None and not isinstance(session_data, dict):
            msg = f"Malformed session payload in {event_type} frame"
            raise ProtocolError(msg)

        try:
            session = DonationSession.from_dict(session_data) if session_data else None
            timestamp = int(frame["timestamp"]) if frame.get("timestamp") else now_ms()
        except (TypeError, ValueError) as exc:
            msg = f"Malformed {event_type} frame: {exc}"
            raise ProtocolError(msg) from exc

        error = frame.get("error")
        return cls(
            type=event_type,
            session=session,
            timestamp=timestamp,
            error=str(error) if error is not None else None,
            source=EventSource.CHANNEL,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the frame shape used on the wire."""
        data: dict[str, Any] = {"type": self.type.value, "timestamp": self.timestamp}
        if self.session is not None:
            data["session"] = self.session.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data

"""GiveBit SDK — event-driven crypto donation notifications.

Real-time donation session updates over a WebSocket push channel, with
automatic REST polling fallback, unified behind :class:`GiveBit`.
"""

from __future__ import annotations

from givebit.client import GiveBit
from givebit.config.settings import SDK_VERSION, GiveBitConfig, GiveBitMode
from givebit.models.session import DonationSession, DonationStatus
from givebit.notifications.events import DonationEvent, EventSource, EventType
from givebit.notifications.registry import EventCallback, deduplicate

__version__ = SDK_VERSION

__all__ = [
    "SDK_VERSION",
    "DonationEvent",
    "DonationSession",
    "DonationStatus",
    "EventCallback",
    "EventSource",
    "EventType",
    "GiveBit",
    "GiveBitConfig",
    "GiveBitMode",
    "deduplicate",
]

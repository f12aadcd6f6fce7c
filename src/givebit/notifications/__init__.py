"""Notifications — the unified donation event stream.

Provides:
- ``DonationEvent`` / ``EventType`` — the closed event envelope
- ``SubscriptionRegistry`` — ordered listener fan-out with error isolation
- ``deduplicate`` — listener wrapper for exactly-once consumers
"""

from __future__ import annotations

from givebit.notifications.events import DonationEvent, EventSource, EventType, now_ms
from givebit.notifications.registry import EventCallback, SubscriptionRegistry, deduplicate

__all__ = [
    "DonationEvent",
    "EventCallback",
    "EventSource",
    "EventType",
    "SubscriptionRegistry",
    "deduplicate",
    "now_ms",
]

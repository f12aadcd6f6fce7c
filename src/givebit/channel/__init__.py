"""Channel — the persistent WebSocket push connection.

Provides:
- ``ChannelManager`` — connect / heartbeat / reconnect / route
- ``RequestCorrelator`` — id-based request/reply matching with timeouts
"""

from __future__ import annotations

from givebit.channel.correlator import PendingRequest, RequestCorrelator
from givebit.channel.manager import ChannelManager, ChannelState

__all__ = ["ChannelManager", "ChannelState", "PendingRequest", "RequestCorrelator"]

"""REST — the pull interface and the fallback poller built on it."""

from __future__ import annotations

from givebit.rest.client import RestClient
from givebit.rest.poller import FallbackPoller

__all__ = ["FallbackPoller", "RestClient"]

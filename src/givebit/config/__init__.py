"""Configuration — settings models and named network environments."""

from __future__ import annotations

from givebit.config.settings import (
    NETWORKS,
    SDK_VERSION,
    GiveBitConfig,
    GiveBitMode,
    NetworkProfile,
)

__all__ = [
    "NETWORKS",
    "SDK_VERSION",
    "GiveBitConfig",
    "GiveBitMode",
    "NetworkProfile",
]

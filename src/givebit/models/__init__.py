"""Models — observed donation session snapshots."""

from __future__ import annotations

from givebit.models.session import (
    TERMINAL_STATUSES,
    DonationSession,
    DonationStatus,
    is_terminal_status,
)

__all__ = [
    "TERMINAL_STATUSES",
    "DonationSession",
    "DonationStatus",
    "is_terminal_status",
]

"""Donation session models — DonationSession, DonationStatus.

Data classes representing the backend's donation session payload
(snake_case JSON). The SDK only ever holds observed copies of a session;
the backend owns its lifecycle.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import Any

# ---------------------------------------------------------------------------
# Status enum
# ---------------------------------------------------------------------------


class DonationStatus(enum.StrEnum):
    """Donation session lifecycle status.

    Lifecycle: PENDING → CONFIRMED → FINALIZED
               PENDING | CONFIRMED → FAILED | EXPIRED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_STATUSES: frozenset[str] = frozenset(
    {DonationStatus.FINALIZED, DonationStatus.FAILED, DonationStatus.EXPIRED}
)


def is_terminal_status(status: str) -> bool:
    """Whether *status* admits no further transitions."""
    return status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# DonationSession
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DonationSession:
    """A snapshot of one donation session as reported by the backend.

    Attributes:
        id: Session UUID.
        project_id: Owning project.
        creator_wallet: Wallet where funds will be sent.
        donor_wallet: Donor's wallet (may be empty).
        chain_id: Blockchain chain ID (e.g. 17000 for Holesky).
        contract_address: Donation contract address.
        amount: Donation amount as a decimal string.
        memo: Optional memo.
        status: Lifecycle status string (maps to DonationStatus).
        created_at: ISO-8601 creation timestamp.
        tx_hash: On-chain transaction hash once known.
        session_id_hash: Hash of the session id used on-chain.
        requires_confirmation: Whether the donation waits for confirmations.
        estimated_confirmation_time: Estimated confirmation time in seconds.
    """

    id: str = ""
    project_id: str = ""
    creator_wallet: str = ""
    donor_wallet: str = ""
    chain_id: int = 0
    contract_address: str = ""
    amount: str = ""
    memo: str = ""
    status: str = DonationStatus.PENDING.value
    created_at: str = ""
    tx_hash: str = ""
    session_id_hash: str = ""
    requires_confirmation: bool = False
    estimated_confirmation_time: int = 0

    @property
    def is_terminal(self) -> bool:
        """Check if the session reached finalized, failed or expired."""
        return is_terminal_status(self.status)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DonationSession:
        """Create a DonationSession from a backend JSON dict."""
        return cls(
            id=str(data.get("id", "")),
            project_id=data.get("project_id") or "",
            creator_wallet=data.get("creator_wallet") or "",
            donor_wallet=data.get("donor_wallet") or "",
            chain_id=int(data.get("chain_id") or 0),
            contract_address=data.get("contract_address") or "",
            amount=str(data.get("amount", "")),
            memo=data.get("memo") or "",
            status=data.get("status") or DonationStatus.PENDING.value,
            created_at=data.get("created_at") or "",
            tx_hash=data.get("tx_hash") or "",
            session_id_hash=data.get("session_id_hash") or "",
            requires_confirmation=bool(data.get("requires_confirmation", False)),
            estimated_confirmation_time=int(data.get("estimated_confirmation_time") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dict matching the backend JSON format."""
        return asdict(self)

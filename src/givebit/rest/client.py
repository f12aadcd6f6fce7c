"""GiveBit REST client — create, query and list donation sessions.

Provides an async HTTP client for the GiveBit v1 API:
- POST /donation/session — Create a donation session
- GET /donation/{id} — Query a donation session
- GET /donation/history — List past donation sessions
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx

from givebit.config.settings import HTTP_TIMEOUT
from givebit.errors.api_errors import APIError, ValidationError
from givebit.models.session import DonationSession

if TYPE_CHECKING:
    from givebit.config.settings import GiveBitConfig


class RestClient:
    """Async HTTP client for the GiveBit REST API.

    Usage::

        rest = RestClient.from_config(config)
        await rest.connect()
        try:
            session = await rest.get_donation_session("uuid")
        finally:
            await rest.close()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        project_id: str,
        *,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        """Initialize the REST client.

        Args:
            base_url: API root (e.g. ``https://testnet.zidanmutaqin.dev/api``).
            api_key: Bearer token.
            project_id: Project identifier sent as ``X-Project-Id``.
            timeout: HTTP timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._project_id = project_id
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: GiveBitConfig) -> RestClient:
        return cls(
            config.resolved_api_endpoint,
            config.api_key,
            config.project_id,
            timeout=config.http_timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            "X-Project-Id": self._project_id,
        }

    async def connect(self) -> None:
        """Create the underlying HTTP client. No-op if already connected."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers(),
            timeout=self._timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_donation_session(
        self,
        *,
        creator_wallet: str,
        amount: int | float | str | Decimal,
        currency: str,
        network: str,
        donor_wallet: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> DonationSession:
        """Create a new donation session.

        Args:
            creator_wallet: REQUIRED wallet address that receives the funds.
            amount: Donation amount; sent as a decimal string.
            currency: Token symbol (e.g. ``ETH``, ``USDT``).
            network: Chain name (e.g. ``holesky``, ``ethereum``).
            donor_wallet: Optional donor wallet address.
            metadata: Optional free-form metadata.

        Returns:
            The newly created DonationSession.

        Raises:
            ValidationError: ``creator_wallet`` is missing or blank.
            APIError: On HTTP or API errors.
        """
        if not creator_wallet or not creator_wallet.strip():
            msg = (
                "creator_wallet is required. This is the wallet address where donation "
                "funds will be sent. Please provide a valid Ethereum address."
            )
            raise ValidationError(msg)

        client = self._ensure_connected()
        body = {
            "amount": str(amount),
            "currency": currency,
            "network": network,
            "creator_wallet": creator_wallet,
            "donor_wallet": donor_wallet,
            "metadata": metadata or {},
        }
        try:
            response = await client.post("/donation/session", json=body)
        except httpx.HTTPError as exc:
            msg = f"Failed to create donation session: {exc}"
            raise APIError(msg) from exc

        if response.is_success:
            return self._parse_session(response)

        self._raise_for_status(response, "create donation session", detail=response.text)
        return DonationSession()  # unreachable

    async def get_donation_session(self, session_id: str) -> DonationSession:
        """Fetch the current state of a donation session.

        Raises:
            APIError: On HTTP or API errors.
        """
        client = self._ensure_connected()
        try:
            response = await client.get(f"/donation/{session_id}")
        except httpx.HTTPError as exc:
            msg = f"Failed to get donation session: {exc}"
            raise APIError(msg) from exc

        if response.is_success:
            return self._parse_session(response)

        self._raise_for_status(response, "get donation session")
        return DonationSession()  # unreachable

    async def get_donation_history(self, limit: int | None = None) -> list[DonationSession]:
        """List the project's donation sessions, most recent first.

        Args:
            limit: Optional maximum number of sessions.

        Raises:
            APIError: On HTTP or API errors.
        """
        client = self._ensure_connected()
        params = {"limit": str(limit)} if limit else None
        try:
            response = await client.get("/donation/history", params=params)
        except httpx.HTTPError as exc:
            msg = f"Failed to get donation history: {exc}"
            raise APIError(msg) from exc

        if response.is_success:
            try:
                data = response.json()
                return [DonationSession.from_dict(item) for item in data.get("donations") or []]
            except (ValueError, TypeError, AttributeError) as exc:
                msg = f"Malformed donation history response: {exc}"
                raise APIError(msg, status_code=response.status_code) from exc

        self._raise_for_status(response, "get donation history")
        return []  # unreachable

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "REST client not connected. Call connect() first."
            raise APIError(msg, status_code=500)
        return self._client

    def _parse_session(self, response: httpx.Response) -> DonationSession:
        """Decode a session body, mapping malformed JSON to APIError."""
        try:
            return DonationSession.from_dict(response.json())
        except (ValueError, TypeError, AttributeError) as exc:
            msg = f"Malformed donation session response: {exc}"
            raise APIError(msg, status_code=response.status_code) from exc

    def _raise_for_status(
        self, response: httpx.Response, operation: str, *, detail: str | None = None
    ) -> None:
        """Raise an APIError from a non-2xx response."""
        status = response.status_code
        reason = detail if detail else response.reason_phrase
        msg = f"Failed to {operation} ({status}): {reason}"
        raise APIError(msg, status_code=status)

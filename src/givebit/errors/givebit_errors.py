"""GiveBitError — base exception class for all SDK errors."""

from __future__ import annotations


class GiveBitError(Exception):
    """Base error for all GiveBit SDK operations.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code when the failure came from the backend.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "givebit-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

"""REST API errors."""

from __future__ import annotations

from givebit.errors.givebit_errors import GiveBitError


class APIError(GiveBitError):
    """Error from the GiveBit REST API (non-2xx response or transport failure)."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, status_code=status_code, code="api-error")


class ValidationError(GiveBitError):
    """Request rejected locally before any network call."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400, code="validation-error")

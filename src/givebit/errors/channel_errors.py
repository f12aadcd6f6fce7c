"""Push channel errors — transport, correlation and framing failures."""

from __future__ import annotations

from givebit.errors.givebit_errors import GiveBitError


class ChannelError(GiveBitError):
    """Error from the WebSocket push channel."""

    def __init__(self, message: str, *, code: str = "channel-error") -> None:
        super().__init__(message, status_code=503, code=code)


class ChannelConnectError(ChannelError):
    """The channel could not be opened."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="channel-connect-failed")


class NotConnectedError(ChannelError):
    """A request was issued while the channel is not open."""

    def __init__(self, message: str = "WebSocket not connected") -> None:
        super().__init__(message, code="channel-not-connected")


class ChannelClosedError(ChannelError):
    """The channel closed while a request was awaiting its reply."""

    def __init__(self, message: str = "WebSocket closed before reply") -> None:
        super().__init__(message, code="channel-closed")


class RequestTimeoutError(ChannelError):
    """No correlated reply arrived within the request timeout."""

    def __init__(self, message: str = "WebSocket request timeout") -> None:
        super().__init__(message, code="request-timeout")


class RemoteRequestError(ChannelError):
    """The correlated reply carried an ``error`` field."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="remote-error")


class ProtocolError(ChannelError):
    """A frame could not be encoded or parsed, or names an unknown event kind."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="protocol-error")

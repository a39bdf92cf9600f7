"""Exception types raised inside the relay."""


class RelayError(Exception):
    """Base class for relay errors."""


class StoreUnavailableError(RelayError):
    """The key-value backend could not serve a request."""


class TransportError(RelayError):
    """An outbound delivery call failed."""


class RateLimitedError(TransportError):
    """The transport rejected a send with a rate-limit signal (HTTP 429)."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after

"""
Error taxonomy for the exchange session gateway.

Every failure path of the vault and the exchange adapters ends in one of
these classes; transport exceptions never leak past an adapter.
"""
from typing import Any, Optional


class ExchangeSessionError(Exception):
    """Base class for all gateway errors."""

    def __init__(self, message: str = '', **kwargs) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict = kwargs

    def __str__(self) -> str:
        return self.message or self.__class__.__name__


class ValidationError(ExchangeSessionError):
    """Missing or malformed input, raised before any store or adapter call."""


class SessionNotFoundOrExpired(ExchangeSessionError):
    """Token is unknown, expired or no longer usable."""


class DecryptionError(ExchangeSessionError):
    """Stored ciphertext cannot be read with the current key."""


class UpstreamError(ExchangeSessionError):
    """Base class for errors produced by an upstream exchange."""

    def __init__(
        self,
        message: str = '',
        *,
        exchange: Optional[str] = None,
        status: Optional[int] = None,
        payload: Any = None,
        **kwargs
    ) -> None:
        super().__init__(message, **kwargs)
        self.exchange = exchange
        self.status = status
        self.payload = payload


class UpstreamAuthError(UpstreamError):
    """Exchange rejected the credentials (4xx)."""


class UpstreamRateLimited(UpstreamError):
    """Exchange is throttling this client (429/418)."""

    def __init__(self, message: str = '', *, retry_after: Optional[float] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class UpstreamUnavailable(UpstreamError):
    """Timeout, DNS or connection failure, or a 5xx from the exchange."""

    def __init__(self, message: str = '', *, reason: str = 'unavailable', **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason


class UpstreamProtocolError(UpstreamError):
    """Exchange answered with an unexpected response shape."""


UpstreamUnavailableError = UpstreamUnavailable

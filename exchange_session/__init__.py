"""Exchange Session.

Keeps exchange API credentials encrypted behind an opaque session token and
serves normalized account reads from Binance and Hyperliquid.
"""
from .version import __version__
from .exceptions import (
    ExchangeSessionError,
    ValidationError,
    SessionNotFoundOrExpired,
    DecryptionError,
    UpstreamError,
    UpstreamAuthError,
    UpstreamRateLimited,
    UpstreamUnavailable,
    UpstreamUnavailableError,
    UpstreamProtocolError,
)
from .models import Exchange, ExchangeCredentials, Session
from .conf import GatewayConfig
from .vault import CredentialCipher, SessionStore
from .exchanges import BinanceAdapter, HyperliquidAdapter, RequestSigner
from .gateway import ExchangeGateway

__all__ = (
    "__version__",
    "ExchangeSessionError",
    "ValidationError",
    "SessionNotFoundOrExpired",
    "DecryptionError",
    "UpstreamError",
    "UpstreamAuthError",
    "UpstreamRateLimited",
    "UpstreamUnavailable",
    "UpstreamUnavailableError",
    "UpstreamProtocolError",
    "Exchange",
    "ExchangeCredentials",
    "Session",
    "GatewayConfig",
    "CredentialCipher",
    "SessionStore",
    "BinanceAdapter",
    "HyperliquidAdapter",
    "RequestSigner",
    "ExchangeGateway",
)

"""Exchange adapters and the registry mapping exchange identifiers to them."""
from typing import Optional

from ..conf import GatewayConfig
from ..exceptions import ValidationError
from ..models import Exchange
from .base import ExchangeAdapter, PriceBook, STABLE_ASSETS
from .binance import BinanceAdapter
from .hyperliquid import HyperliquidAdapter
from .signer import RequestSigner

SUPPORTED_EXCHANGES = {
    Exchange.BINANCE: {"id": "binance", "name": "Binance", "logo": "/exchanges/binance.svg"},
    Exchange.HYPERLIQUID: {"id": "hyperliquid", "name": "Hyperliquid", "logo": "/exchanges/hyperliquid.svg"},
}


def parse_exchange(value: Optional[str]) -> Exchange:
    """Return the Exchange for value, rejecting anything outside the closed set."""
    if not value or not isinstance(value, str):
        raise ValidationError("Missing exchange identifier")
    try:
        return Exchange(value.strip().lower())
    except ValueError:
        raise ValidationError(f"Unsupported exchange: {value}") from None


def create_adapters(config: GatewayConfig) -> dict[Exchange, ExchangeAdapter]:
    """Build one adapter per supported exchange."""
    return {
        Exchange.BINANCE: BinanceAdapter(
            config.binance_url,
            config.binance_futures_url,
            timeout=config.upstream_timeout,
        ),
        Exchange.HYPERLIQUID: HyperliquidAdapter(
            config.hyperliquid_url,
            timeout=config.upstream_timeout,
        ),
    }


__all__ = [
    "ExchangeAdapter",
    "BinanceAdapter",
    "HyperliquidAdapter",
    "RequestSigner",
    "PriceBook",
    "STABLE_ASSETS",
    "SUPPORTED_EXCHANGES",
    "parse_exchange",
    "create_adapters",
]

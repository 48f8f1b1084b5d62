"""
ExchangeAdapter — normalized verify/read contract over heterogeneous exchange APIs.

Each adapter declares its capabilities (``signs_requests``,
``address_keyed``, ``has_derivatives``) and implements the upstream calls.
Transport handling, error classification and portfolio valuation live
here so every adapter produces the same error taxonomy and the same
valuation rules.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp
import orjson
from yarl import URL

from ..exceptions import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamProtocolError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from ..models import (
    AccountSnapshot,
    Balance,
    Exchange,
    ExchangeCredentials,
    Portfolio,
    PortfolioAsset,
    PositionsResult,
)

logger = logging.getLogger("exchange_session.exchanges")

STABLE_ASSETS = frozenset({"USDT", "USDC", "BUSD", "DAI"})
RATE_LIMIT_STATUSES = (418, 429)


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce an upstream numeric field (often a string) to float."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class PriceBook:
    """Quotes used to value assets in USD-stable units.

    ``usd`` maps an asset to its price against the stable quote, ``btc``
    maps an asset to its price in BTC.
    """

    usd: dict[str, float] = field(default_factory=dict)
    btc: dict[str, float] = field(default_factory=dict)

    @property
    def btc_usd(self) -> Optional[float]:
        return self.usd.get("BTC")

    def value(self, asset: str, amount: float) -> float:
        """Value amount of asset: stable face value, direct quote, via BTC, else 0."""
        if amount == 0:
            return 0.0
        if asset in STABLE_ASSETS:
            return amount
        price = self.usd.get(asset)
        if price:
            return amount * price
        btc_price = self.btc.get(asset)
        btc_usd = self.btc_usd
        if btc_price and btc_usd:
            return amount * btc_price * btc_usd
        return 0.0


class ExchangeAdapter(ABC):
    """Base class of the per-exchange adapters.

    Adapters are stateless with respect to credentials: every call receives
    the credentials it needs and forgets them when it returns. The only
    state is a lazily created :class:`aiohttp.ClientSession`.
    """

    exchange: Exchange
    signs_requests: bool = False
    address_keyed: bool = False
    has_derivatives: bool = False

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.base_url}>"

    @property
    def name(self) -> str:
        return self.exchange.value

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this adapter created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _decode(self, status: int, body: bytes) -> Any:
        if not body:
            return None
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as err:
            if status >= 400:
                return body.decode("utf-8", errors="replace")
            raise UpstreamProtocolError(
                f"{self.name} returned a non-JSON response",
                exchange=self.name,
                status=status,
            ) from err

    async def _request(
        self,
        method: str,
        url: str,
        *,
        query: Optional[str] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Issue a request and return the decoded JSON body.

        ``query`` is sent exactly as given, so a signed query string reaches
        the exchange byte-for-byte.

        Raises:
            UpstreamError: Classified by :meth:`map_upstream_error` or by the
                transport failure kind.
        """
        target = URL(f"{url}?{query}" if query else url, encoded=True)
        session = await self._get_session()
        try:
            async with session.request(
                method, target, json=json, headers=headers, timeout=self._timeout,
            ) as response:
                body = await response.read()
                payload = self._decode(response.status, body)
                if response.status >= 400:
                    raise self.map_upstream_error(
                        response.status, payload, response.headers,
                    )
                return payload
        except UpstreamError:
            raise
        except asyncio.TimeoutError as err:
            raise UpstreamUnavailable(
                f"Connection to {self.name} timed out",
                exchange=self.name,
                reason="timeout",
            ) from err
        except aiohttp.ClientConnectorError as err:
            raise UpstreamUnavailable(
                f"Unable to reach {self.name}",
                exchange=self.name,
                reason="unreachable",
            ) from err
        except aiohttp.ClientError as err:
            raise UpstreamUnavailable(
                f"{self.name} request failed: {err}",
                exchange=self.name,
                reason="transport",
            ) from err

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def error_message(self, payload: Any) -> Optional[str]:
        """Extract a human-readable message from an upstream error body."""
        if isinstance(payload, str):
            return payload.strip() or None
        if isinstance(payload, Mapping):
            for key in ("msg", "message", "error"):
                if payload.get(key):
                    return str(payload[key])
        return None

    def map_upstream_error(
        self,
        status: int,
        payload: Any,
        headers: Optional[Mapping[str, str]] = None,
    ) -> UpstreamError:
        """Translate an upstream HTTP error into the error taxonomy."""
        message = self.error_message(payload) or f"HTTP {status}"
        logger.warning("%s upstream error %s: %s", self.name, status, message)
        if status in RATE_LIMIT_STATUSES:
            return UpstreamRateLimited(
                f"{self.name} rate limit exceeded, try again later",
                exchange=self.name,
                status=status,
                payload=payload,
                retry_after=to_float((headers or {}).get("Retry-After"), None),
            )
        if 400 <= status < 500:
            return UpstreamAuthError(
                message, exchange=self.name, status=status, payload=payload,
            )
        return UpstreamUnavailable(
            f"{self.name} is experiencing issues ({message})",
            exchange=self.name,
            status=status,
            payload=payload,
            reason="server_error",
        )

    def protocol_error(self, message: str, payload: Any = None) -> UpstreamProtocolError:
        return UpstreamProtocolError(
            f"Invalid response from {self.name}: {message}",
            exchange=self.name,
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    @abstractmethod
    async def verify(self, credentials: ExchangeCredentials) -> AccountSnapshot:
        """Prove the credentials against the exchange."""

    @abstractmethod
    async def fetch_balances(self, credentials: ExchangeCredentials) -> list[Balance]:
        """Return balances with free > 0 or locked > 0."""

    @abstractmethod
    async def fetch_price_book(self, credentials: ExchangeCredentials) -> PriceBook:
        """Return the quotes used for portfolio valuation."""

    @abstractmethod
    async def fetch_positions(self, credentials: ExchangeCredentials) -> PositionsResult:
        """Return open derivative positions, never failing on a missing endpoint."""

    async def fetch_portfolio_value(self, credentials: ExchangeCredentials) -> Portfolio:
        """Value every positive balance in USD-stable units.

        Assets are sorted by value, highest first.
        """
        balances = await self.fetch_balances(credentials)
        if any(b.asset not in STABLE_ASSETS for b in balances):
            book = await self.fetch_price_book(credentials)
        else:
            book = PriceBook()
        assets = [
            PortfolioAsset(
                asset=b.asset,
                free=b.free,
                locked=b.locked,
                total=b.total,
                value_usdt=book.value(b.asset, b.total),
            )
            for b in balances
        ]
        assets.sort(key=lambda a: a.value_usdt, reverse=True)
        return Portfolio(
            total_value_usdt=sum(a.value_usdt for a in assets),
            assets=assets,
        )

    def positions_unavailable(self, reason: str) -> PositionsResult:
        logger.info("%s positions unavailable: %s", self.name, reason)
        return PositionsResult(positions=[], note=reason)

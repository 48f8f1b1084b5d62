"""
Binance adapter: HMAC-signed REST API.

Every authenticated request carries a signed query string (see
:class:`RequestSigner`) and the API key in the ``X-MBX-APIKEY`` header.
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional

from ..exceptions import UpstreamError, UpstreamRateLimited
from ..models import (
    AccountSnapshot,
    Balance,
    Exchange,
    ExchangeCredentials,
    Position,
    PositionsResult,
)
from .base import ExchangeAdapter, PriceBook, to_float
from .signer import RequestSigner

logger = logging.getLogger("exchange_session.exchanges")

API_KEY_HEADER = "X-MBX-APIKEY"
ACCOUNT_PATH = "/api/v3/account"
TICKER_PRICE_PATH = "/api/v3/ticker/price"
POSITION_RISK_PATH = "/fapi/v2/positionRisk"

# Binance error codes returned with a 4xx that mean "too many requests"
_RATE_LIMIT_CODES = {-1003, -1015}


class BinanceAdapter(ExchangeAdapter):
    """Spot account reads plus USD-M futures positions."""

    exchange = Exchange.BINANCE
    signs_requests = True
    has_derivatives = True

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        futures_url: str = "https://fapi.binance.com",
        *,
        recv_window: Optional[int] = None,
        **kwargs
    ):
        super().__init__(base_url, **kwargs)
        self.futures_url = futures_url.rstrip("/")
        self.recv_window = recv_window

    async def _signed_get(
        self,
        base_url: str,
        path: str,
        credentials: ExchangeCredentials,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        signer = RequestSigner(credentials.secret_key)
        params = dict(params or {})
        if self.recv_window:
            params.setdefault("recvWindow", self.recv_window)
        return await self._request(
            "GET",
            f"{base_url}{path}",
            query=signer.signed_query(params),
            headers={API_KEY_HEADER: credentials.api_key},
        )

    async def _account(self, credentials: ExchangeCredentials) -> dict:
        account = await self._signed_get(self.base_url, ACCOUNT_PATH, credentials)
        if not isinstance(account, dict) or not isinstance(account.get("balances"), list):
            raise self.protocol_error("account payload has no balances", account)
        return account

    def map_upstream_error(
        self,
        status: int,
        payload: Any,
        headers: Optional[Mapping[str, str]] = None,
    ) -> UpstreamError:
        """Binance errors are ``{"code": <int>, "msg": <str>}``."""
        code = payload.get("code") if isinstance(payload, Mapping) else None
        if code in _RATE_LIMIT_CODES:
            return UpstreamRateLimited(
                f"{self.name} rate limit exceeded, try again later",
                exchange=self.name,
                status=status,
                payload=payload,
                retry_after=to_float((headers or {}).get("Retry-After"), None),
            )
        err = super().map_upstream_error(status, payload, headers)
        err.details["code"] = code
        return err

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    async def verify(self, credentials: ExchangeCredentials) -> AccountSnapshot:
        account = await self._account(credentials)
        logger.debug("Binance credentials verified")
        return AccountSnapshot(exchange=self.exchange, account=account)

    async def fetch_balances(self, credentials: ExchangeCredentials) -> list[Balance]:
        account = await self._account(credentials)
        balances = [
            Balance(
                asset=str(item.get("asset", "")),
                free=to_float(item.get("free")),
                locked=to_float(item.get("locked")),
            )
            for item in account["balances"]
            if isinstance(item, Mapping)
        ]
        return [b for b in balances if b.asset and b.is_positive]

    async def fetch_price_book(self, credentials: ExchangeCredentials) -> PriceBook:
        tickers = await self._request("GET", f"{self.base_url}{TICKER_PRICE_PATH}")
        if not isinstance(tickers, list):
            raise self.protocol_error("ticker prices are not a list", tickers)
        book = PriceBook()
        for ticker in tickers:
            if not isinstance(ticker, Mapping):
                continue
            symbol = str(ticker.get("symbol", ""))
            price = to_float(ticker.get("price"))
            if price <= 0:
                continue
            if symbol.endswith("USDT") and len(symbol) > 4:
                book.usd[symbol[:-4]] = price
            elif symbol.endswith("BTC") and len(symbol) > 3:
                book.btc[symbol[:-3]] = price
        return book

    async def fetch_positions(self, credentials: ExchangeCredentials) -> PositionsResult:
        try:
            risks = await self._signed_get(
                self.futures_url, POSITION_RISK_PATH, credentials,
            )
        except UpstreamError as err:
            return self.positions_unavailable(
                f"Futures positions are not available for this account: {err}"
            )
        if not isinstance(risks, list):
            return self.positions_unavailable("Futures endpoint returned no positions")
        positions = []
        for risk in risks:
            if not isinstance(risk, Mapping):
                continue
            size = to_float(risk.get("positionAmt"))
            if size == 0:
                continue
            positions.append(
                Position(
                    symbol=str(risk.get("symbol", "")),
                    side="long" if size > 0 else "short",
                    size=abs(size),
                    entry_price=to_float(risk.get("entryPrice"), None),
                    mark_price=to_float(risk.get("markPrice"), None),
                    unrealized_pnl=to_float(risk.get("unRealizedProfit"), None),
                    leverage=to_float(risk.get("leverage"), None),
                )
            )
        return PositionsResult(positions=positions)

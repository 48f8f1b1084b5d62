"""
Hyperliquid adapter: address-keyed REST API.

Reads are unsigned POSTs to ``/info``; the API-key field carries the wallet
address. The secret key is accepted so the capability set matches the other
adapters, but it is not used by any read.
"""
import logging
from collections.abc import Mapping
from typing import Any

from ..exceptions import UpstreamError
from ..models import (
    AccountSnapshot,
    Balance,
    Exchange,
    ExchangeCredentials,
    Position,
    PositionsResult,
)
from .base import ExchangeAdapter, PriceBook, to_float

logger = logging.getLogger("exchange_session.exchanges")

INFO_PATH = "/info"
USER_STATE = "userState"
ALL_MIDS = "allMids"
MARGIN_ASSET = "USDC"


class HyperliquidAdapter(ExchangeAdapter):
    """Perpetuals margin account, spot balances and open positions."""

    exchange = Exchange.HYPERLIQUID
    address_keyed = True
    has_derivatives = True

    def __init__(self, base_url: str = "https://api.hyperliquid.xyz", **kwargs):
        super().__init__(base_url, **kwargs)

    async def _post_info(self, request_type: str, **payload) -> Any:
        data = {"type": request_type, **payload}
        return await self._request("POST", f"{self.base_url}{INFO_PATH}", json=data)

    async def _user_state(self, credentials: ExchangeCredentials) -> dict:
        state = await self._post_info(USER_STATE, user=credentials.api_key)
        if not state or not isinstance(state, dict):
            raise self.protocol_error("empty user state", state)
        return state

    def error_message(self, payload: Any) -> str | None:
        """Hyperliquid errors are plain text or ``{"error": <str>}``."""
        if isinstance(payload, Mapping) and payload.get("error"):
            return f"Hyperliquid error: {payload['error']}"
        return super().error_message(payload)

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    async def verify(self, credentials: ExchangeCredentials) -> AccountSnapshot:
        state = await self._user_state(credentials)
        logger.debug("Hyperliquid address verified")
        return AccountSnapshot(exchange=self.exchange, account=state)

    async def fetch_balances(self, credentials: ExchangeCredentials) -> list[Balance]:
        state = await self._user_state(credentials)
        balances: list[Balance] = []

        summary = state.get("marginSummary") or {}
        account_value = to_float(summary.get("accountValue"))
        withdrawable = to_float(state.get("withdrawable"), account_value)
        balances.append(
            Balance(
                asset=MARGIN_ASSET,
                free=withdrawable,
                locked=max(account_value - withdrawable, 0.0),
            )
        )

        for item in state.get("balances") or []:
            if not isinstance(item, Mapping) or not item.get("coin"):
                continue
            total = to_float(item.get("total"))
            hold = to_float(item.get("hold"))
            balances.append(
                Balance(
                    asset=str(item["coin"]),
                    free=max(total - hold, 0.0),
                    locked=hold,
                )
            )
        return [b for b in balances if b.is_positive]

    async def fetch_price_book(self, credentials: ExchangeCredentials) -> PriceBook:
        mids = await self._post_info(ALL_MIDS)
        if not isinstance(mids, Mapping):
            raise self.protocol_error("mid prices are not a mapping", mids)
        # perpetual mids are quoted in USDC
        return PriceBook(
            usd={
                str(coin): price
                for coin, price in ((c, to_float(p)) for c, p in mids.items())
                if price > 0
            }
        )

    async def fetch_positions(self, credentials: ExchangeCredentials) -> PositionsResult:
        try:
            state = await self._user_state(credentials)
        except UpstreamError as err:
            return self.positions_unavailable(
                f"Perpetual positions are not available: {err}"
            )
        positions = []
        for entry in state.get("assetPositions") or []:
            position = entry.get("position") if isinstance(entry, Mapping) else None
            if not isinstance(position, Mapping):
                continue
            size = to_float(position.get("szi"))
            if size == 0:
                continue
            leverage = position.get("leverage")
            if isinstance(leverage, Mapping):
                leverage = leverage.get("value")
            position_value = to_float(position.get("positionValue"), None)
            positions.append(
                Position(
                    symbol=str(position.get("coin", "")),
                    side="long" if size > 0 else "short",
                    size=abs(size),
                    entry_price=to_float(position.get("entryPx"), None),
                    mark_price=(
                        position_value / abs(size)
                        if position_value is not None else None
                    ),
                    unrealized_pnl=to_float(position.get("unrealizedPnl"), None),
                    leverage=to_float(leverage, None),
                )
            )
        return PositionsResult(positions=positions)

"""
Tests for HyperliquidAdapter against a fake ``/info`` endpoint.
"""
import pytest

from exchange_session.exceptions import (
    UpstreamAuthError,
    UpstreamProtocolError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from exchange_session.exchanges import HyperliquidAdapter
from exchange_session.models import ExchangeCredentials

from .conftest import HL_ADDRESS


def test_capabilities():
    assert HyperliquidAdapter.signs_requests is False
    assert HyperliquidAdapter.address_keyed is True


class TestVerify:

    async def test_address_keyed_request(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        snapshot = await hyperliquid.verify(hyperliquid_credentials)
        assert snapshot.exchange == "hyperliquid"
        assert "marginSummary" in snapshot.account
        assert hyperliquid_upstream.requests[-1] == {"type": "userState", "user": HL_ADDRESS}

    async def test_secret_is_not_sent(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        await hyperliquid.verify(hyperliquid_credentials)
        assert "unused-secret" not in str(hyperliquid_upstream.requests)

    async def test_invalid_address(self, hyperliquid):
        creds = ExchangeCredentials(exchange="hyperliquid", api_key="not-an-address", secret_key="s")
        with pytest.raises(UpstreamAuthError) as exc_info:
            await hyperliquid.verify(creds)
        assert exc_info.value.status == 422
        assert "deserialize" in str(exc_info.value)

    async def test_forbidden(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.force = (403, {"error": "Access denied"})
        with pytest.raises(UpstreamAuthError) as exc_info:
            await hyperliquid.verify(hyperliquid_credentials)
        assert str(exc_info.value) == "Hyperliquid error: Access denied"

    async def test_null_response(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.force = (200, None)
        with pytest.raises(UpstreamProtocolError):
            await hyperliquid.verify(hyperliquid_credentials)

    async def test_non_json_response(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.force = (200, "<html>maintenance</html>")
        with pytest.raises(UpstreamProtocolError):
            await hyperliquid.verify(hyperliquid_credentials)

    async def test_rate_limited(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.force = (429, "Too many requests")
        with pytest.raises(UpstreamRateLimited):
            await hyperliquid.verify(hyperliquid_credentials)

    async def test_server_error(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.force = (500, "internal")
        with pytest.raises(UpstreamUnavailable):
            await hyperliquid.verify(hyperliquid_credentials)


class TestBalances:

    async def test_margin_and_spot(self, hyperliquid, hyperliquid_credentials):
        balances = {b.asset: b for b in await hyperliquid.fetch_balances(hyperliquid_credentials)}
        assert set(balances) == {"USDC", "HYPE"}
        assert balances["USDC"].free == pytest.approx(750)
        assert balances["USDC"].locked == pytest.approx(250)
        assert balances["HYPE"].free == pytest.approx(8)
        assert balances["HYPE"].locked == pytest.approx(2)

    async def test_empty_account(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.state = {
            "assetPositions": [],
            "marginSummary": {"accountValue": "0.0"},
            "withdrawable": "0.0",
        }
        assert await hyperliquid.fetch_balances(hyperliquid_credentials) == []


class TestPortfolio:

    async def test_valuation(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        portfolio = await hyperliquid.fetch_portfolio_value(hyperliquid_credentials)
        assert [a.asset for a in portfolio.assets] == ["USDC", "HYPE"]
        assert portfolio.assets[0].value_usdt == pytest.approx(1000)
        assert portfolio.assets[1].value_usdt == pytest.approx(200)
        assert portfolio.total_value_usdt == pytest.approx(1200)
        assert {"type": "allMids"} in hyperliquid_upstream.requests

    async def test_stable_only_skips_quotes(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.state["balances"] = []
        portfolio = await hyperliquid.fetch_portfolio_value(hyperliquid_credentials)
        assert portfolio.total_value_usdt == pytest.approx(1000)
        assert {"type": "allMids"} not in hyperliquid_upstream.requests


class TestPositions:

    async def test_non_zero_positions(self, hyperliquid, hyperliquid_credentials):
        result = await hyperliquid.fetch_positions(hyperliquid_credentials)
        assert result.note is None
        eth, sol = result.positions
        assert (eth.symbol, eth.side, eth.size) == ("ETH", "long", 0.5)
        assert eth.mark_price == pytest.approx(3000)
        assert eth.leverage == 10
        assert (sol.symbol, sol.side, sol.size) == ("SOL", "short", 10)
        assert sol.mark_price == pytest.approx(140)
        assert sol.unrealized_pnl == pytest.approx(100)

    async def test_upstream_error_returns_note(self, hyperliquid, hyperliquid_credentials, hyperliquid_upstream):
        hyperliquid_upstream.force = (500, "internal")
        result = await hyperliquid.fetch_positions(hyperliquid_credentials)
        assert result.positions == []
        assert "not available" in result.note

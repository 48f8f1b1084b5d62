"""
Shared fixtures: deterministic clock, cipher/store, and fake exchange
upstreams served by aiohttp test servers.
"""
import asyncio
import base64

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from exchange_session.exchanges import BinanceAdapter, HyperliquidAdapter, RequestSigner
from exchange_session.models import Exchange, ExchangeCredentials
from exchange_session.vault import CredentialCipher, SessionStore

TEST_KEY = bytes(range(32))
OTHER_KEY = bytes(range(32, 64))
T0 = 1_700_000_000_000

BINANCE_API_KEY = "binance-api-key"
BINANCE_SECRET = "binance-secret"
HL_ADDRESS = "0x" + "ab" * 20


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeBinance:
    """Minimal Binance spot + futures REST API."""

    def __init__(self):
        self.api_key = BINANCE_API_KEY
        self.secret_key = BINANCE_SECRET
        self.balances = [
            {"asset": "BTC", "free": "0.5", "locked": "0.1"},
            {"asset": "ETH", "free": "2", "locked": "0"},
            {"asset": "USDT", "free": "100", "locked": "0"},
            {"asset": "XRP", "free": "0", "locked": "0"},
        ]
        self.tickers = [
            {"symbol": "BTCUSDT", "price": "50000"},
            {"symbol": "ETHUSDT", "price": "3000"},
            {"symbol": "ETHBTC", "price": "0.06"},
            {"symbol": "NEOBTC", "price": "0.0002"},
        ]
        self.positions = [
            {
                "symbol": "BTCUSDT", "positionAmt": "0.010", "entryPrice": "48000",
                "markPrice": "50000", "unRealizedProfit": "20", "leverage": "10",
            },
            {
                "symbol": "ETHUSDT", "positionAmt": "-1.5", "entryPrice": "3100",
                "markPrice": "3000", "unRealizedProfit": "150", "leverage": "5",
            },
            {
                "symbol": "XRPUSDT", "positionAmt": "0.0", "entryPrice": "0",
                "markPrice": "0.5", "unRealizedProfit": "0", "leverage": "20",
            },
        ]
        self.force: tuple[int, object] | None = None
        self.futures_enabled = True
        self.delay = 0.0
        self.queries: list[str] = []
        self.url = ""

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/v3/account", self.account)
        app.router.add_get("/api/v3/ticker/price", self.ticker_price)
        app.router.add_get("/fapi/v2/positionRisk", self.position_risk)
        return app

    def _authenticate(self, request: web.Request):
        self.queries.append(request.query_string)
        if self.force is not None:
            status, body = self.force
            return web.json_response(body, status=status)
        if request.headers.get("X-MBX-APIKEY") != self.api_key:
            return web.json_response(
                {"code": -2015, "msg": "Invalid API-key, IP, or permissions for action."},
                status=401,
            )
        if not RequestSigner(self.secret_key).verify(request.query_string):
            return web.json_response(
                {"code": -1022, "msg": "Signature for this request is not valid."},
                status=400,
            )
        return None

    async def account(self, request: web.Request) -> web.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        rejected = self._authenticate(request)
        if rejected is not None:
            return rejected
        return web.json_response({"canTrade": True, "balances": self.balances})

    async def ticker_price(self, request: web.Request) -> web.Response:
        return web.json_response(self.tickers)

    async def position_risk(self, request: web.Request) -> web.Response:
        rejected = self._authenticate(request)
        if rejected is not None:
            return rejected
        if not self.futures_enabled:
            return web.json_response(
                {"code": -2015, "msg": "Futures are not enabled."}, status=401,
            )
        return web.json_response(self.positions)


class FakeHyperliquid:
    """Minimal Hyperliquid ``/info`` endpoint."""

    def __init__(self):
        self.state = {
            "assetPositions": [
                {
                    "type": "oneWay",
                    "position": {
                        "coin": "ETH", "szi": "0.5", "entryPx": "2900",
                        "positionValue": "1500", "unrealizedPnl": "50",
                        "leverage": {"type": "cross", "value": 10},
                    },
                },
                {
                    "type": "oneWay",
                    "position": {
                        "coin": "SOL", "szi": "-10", "entryPx": "150",
                        "positionValue": "1400", "unrealizedPnl": "100",
                        "leverage": {"type": "isolated", "value": 3},
                    },
                },
                {
                    "type": "oneWay",
                    "position": {"coin": "DOGE", "szi": "0.0", "entryPx": "0.1"},
                },
            ],
            "marginSummary": {"accountValue": "1000.0", "totalMarginUsed": "250.0"},
            "withdrawable": "750.0",
            "balances": [
                {"coin": "HYPE", "total": "10", "hold": "2"},
                {"coin": "PURR", "total": "0", "hold": "0"},
            ],
        }
        self.mids = {"BTC": "60000", "ETH": "3000", "HYPE": "20"}
        self.force: tuple[int, object] | None = None
        self.requests: list[dict] = []
        self.url = ""

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/info", self.info)
        return app

    async def info(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append(body)
        if self.force is not None:
            status, payload = self.force
            if isinstance(payload, str):
                return web.Response(text=payload, status=status)
            return web.json_response(payload, status=status)
        if body.get("type") == "userState":
            if not str(body.get("user", "")).startswith("0x"):
                return web.Response(
                    text="Failed to deserialize the JSON body into the target type",
                    status=422,
                )
            return web.json_response(self.state)
        if body.get("type") == "allMids":
            return web.json_response(self.mids)
        return web.json_response({"error": "unknown request type"}, status=400)


async def _serve(fake):
    server = TestServer(fake.app())
    await server.start_server()
    fake.url = f"http://{server.host}:{server.port}"
    return server


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cipher():
    return CredentialCipher(TEST_KEY)


@pytest.fixture
def store(cipher, clock):
    return SessionStore(cipher, clock=clock)


@pytest.fixture
def encoded_key():
    return base64.b64encode(TEST_KEY).decode("ascii")


@pytest.fixture
def binance_credentials():
    return ExchangeCredentials(
        exchange=Exchange.BINANCE, api_key=BINANCE_API_KEY, secret_key=BINANCE_SECRET,
    )


@pytest.fixture
def hyperliquid_credentials():
    return ExchangeCredentials(
        exchange=Exchange.HYPERLIQUID, api_key=HL_ADDRESS, secret_key="unused-secret",
    )


@pytest.fixture
async def binance_upstream():
    fake = FakeBinance()
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest.fixture
async def hyperliquid_upstream():
    fake = FakeHyperliquid()
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest.fixture
async def binance(binance_upstream):
    adapter = BinanceAdapter(binance_upstream.url, binance_upstream.url, timeout=2)
    yield adapter
    await adapter.close()


@pytest.fixture
async def hyperliquid(hyperliquid_upstream):
    adapter = HyperliquidAdapter(hyperliquid_upstream.url, timeout=2)
    yield adapter
    await adapter.close()

"""
HTTP layer exposing the gateway over aiohttp.web.

Clients connect once with their exchange credentials and then present the
returned token as ``Authorization: Bearer <token>``.
"""
import argparse
import logging
from typing import Any, Optional

import orjson
from aiohttp import web
from pydantic import BaseModel

from .conf import GatewayConfig
from .exceptions import (
    ExchangeSessionError,
    SessionNotFoundOrExpired,
    UpstreamAuthError,
    UpstreamProtocolError,
    UpstreamRateLimited,
    UpstreamUnavailable,
    ValidationError,
)
from .exchanges import SUPPORTED_EXCHANGES
from .gateway import ExchangeGateway

logger = logging.getLogger("exchange_session.web")

GATEWAY_KEY = web.AppKey("gateway", ExchangeGateway)
AUTH_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "
SUPPORTED_EXCHANGES_NAMES = {
    info["id"]: info["name"] for info in SUPPORTED_EXCHANGES.values()
}

_ERROR_STATUS = (
    (ValidationError, 400),
    (SessionNotFoundOrExpired, 401),
    (UpstreamRateLimited, 429),
    (UpstreamAuthError, 400),
    (UpstreamUnavailable, 503),
    (UpstreamProtocolError, 502),
)


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def _dumps(data: Any) -> str:
    return orjson.dumps(data, default=_default).decode("utf-8")


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def success(data: Any = None, **extra) -> web.Response:
    return json_response({"success": True, "data": data, **extra})


def status_for(err: ExchangeSessionError) -> int:
    for cls, status in _ERROR_STATUS:
        if isinstance(err, cls):
            return status
    return 500


def bearer_token(request: web.Request) -> Optional[str]:
    """Extract the session token from the Authorization header."""
    header = request.headers.get(AUTH_HEADER, "")
    if not header.startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):].strip() or None


# ----------------------------------------------------------------------
# Middlewares
# ----------------------------------------------------------------------

@web.middleware
async def logging_middleware(request: web.Request, handler):
    logger.info("Incoming request: %s %s", request.method, request.path)
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Translate gateway errors into JSON responses."""
    try:
        return await handler(request)
    except ExchangeSessionError as err:
        status = status_for(err)
        body = {"success": False, "message": str(err)}
        payload = getattr(err, "payload", None)
        if payload is not None:
            body["error"] = payload
        headers = {}
        retry_after = getattr(err, "retry_after", None)
        if retry_after:
            headers["Retry-After"] = str(int(retry_after))
        logger.warning(
            "%s %s failed: %s (%s)",
            request.method, request.path, err.__class__.__name__, err,
        )
        response = json_response(body, status=status)
        response.headers.update(headers)
        return response


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------

async def health(request: web.Request) -> web.Response:
    return json_response({"status": "ok", "message": "Backend server is running"})


async def exchanges(request: web.Request) -> web.Response:
    return json_response({"exchanges": list(SUPPORTED_EXCHANGES.values())})


async def connect(request: web.Request) -> web.Response:
    try:
        body = orjson.loads(await request.read())
    except orjson.JSONDecodeError:
        raise ValidationError("Request body must be JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    result = await request.app[GATEWAY_KEY].connect(
        body.get("exchange"), body.get("apiKey"), body.get("secretKey"),
    )
    exchange = result["exchange"]
    return success(
        result,
        message=f"Successfully connected to {SUPPORTED_EXCHANGES_NAMES.get(exchange, exchange)}",
    )


async def session_info(request: web.Request) -> web.Response:
    session = request.app[GATEWAY_KEY].session(bearer_token(request))
    return success({
        "exchange": session.exchange,
        "expiresAt": session.expires_at,
    })


async def balances(request: web.Request) -> web.Response:
    return success(await request.app[GATEWAY_KEY].balances(bearer_token(request)))


async def portfolio(request: web.Request) -> web.Response:
    return success(await request.app[GATEWAY_KEY].portfolio(bearer_token(request)))


async def positions(request: web.Request) -> web.Response:
    result = await request.app[GATEWAY_KEY].positions(bearer_token(request))
    return success(result.positions, note=result.note)


async def disconnect(request: web.Request) -> web.Response:
    token = bearer_token(request)
    if not token:
        raise SessionNotFoundOrExpired("Missing session token")
    removed = request.app[GATEWAY_KEY].disconnect(token)
    return success({"disconnected": removed})


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------

def create_app(gateway: ExchangeGateway) -> web.Application:
    """Build the aiohttp application around gateway."""
    app = web.Application(middlewares=[logging_middleware, error_middleware])
    app[GATEWAY_KEY] = gateway

    async def on_startup(app: web.Application) -> None:
        await app[GATEWAY_KEY].start()

    async def on_cleanup(app: web.Application) -> None:
        await app[GATEWAY_KEY].close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    app.router.add_get("/api/health", health)
    app.router.add_get("/api/exchanges", exchanges)
    app.router.add_post("/api/exchange/connect", connect)
    app.router.add_get("/api/exchange/balances", balances)
    app.router.add_get("/api/exchange/portfolio", portfolio)
    app.router.add_get("/api/exchange/positions", positions)
    app.router.add_get("/api/session", session_info)
    app.router.add_delete("/api/session", disconnect)
    return app


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Exchange session gateway")
    parser.add_argument("--host", help="Interface to bind (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: PORT or 3000)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = GatewayConfig.from_env()
    app = create_app(ExchangeGateway.from_config(config))
    host = args.host or config.host
    port = args.port or config.port
    logger.info("Backend server running on %s:%s", host, port)
    web.run_app(app, host=host, port=port, print=None)


if __name__ == "__main__":
    main()

"""
ExchangeGateway — the operations the HTTP layer calls.

Validates input, verifies credentials upstream, mints session tokens and
serves authenticated reads. Credentials are decrypted from the store for one
upstream call and dropped afterwards; the store lock is never held while an
adapter talks to the exchange.
"""
import logging
from typing import Any, Optional

from .conf import DEFAULT_USER_ID, GatewayConfig
from .exceptions import (
    DecryptionError,
    SessionNotFoundOrExpired,
    ValidationError,
)
from .exchanges import ExchangeAdapter, create_adapters, parse_exchange
from .models import (
    Balance,
    Exchange,
    ExchangeCredentials,
    Portfolio,
    PositionsResult,
    Session,
)
from .vault import CredentialCipher, SessionStore
from .vault.session_store import token_hint

logger = logging.getLogger("exchange_session.gateway")


def _require(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required parameter: {name}")
    return value


class ExchangeGateway:
    """Facade over the session store and the exchange adapters."""

    def __init__(
        self,
        store: SessionStore,
        adapters: dict[Exchange, ExchangeAdapter],
        *,
        sweep_interval: float = 0,
    ):
        self.store = store
        self.adapters = adapters
        self._sweep_interval = sweep_interval

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "ExchangeGateway":
        store = SessionStore(CredentialCipher(config.encryption_key))
        return cls(
            store,
            create_adapters(config),
            sweep_interval=config.sweep_interval,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._sweep_interval > 0:
            self.store.start_sweeper(self._sweep_interval)

    async def close(self) -> None:
        await self.store.stop_sweeper()
        for adapter in self.adapters.values():
            await adapter.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def adapter_for(self, exchange: str) -> ExchangeAdapter:
        exchange = parse_exchange(exchange)
        try:
            return self.adapters[exchange]
        except KeyError:
            raise ValidationError(f"Unsupported exchange: {exchange.value}") from None

    def _credentials(self, token: Optional[str]) -> ExchangeCredentials:
        if not token:
            raise SessionNotFoundOrExpired("Missing session token")
        try:
            credentials = self.store.get_api_keys(token)
        except DecryptionError as err:
            logger.error(
                "Session %s is not usable: %s", token_hint(token), err.__cause__ or err,
            )
            raise SessionNotFoundOrExpired("Session is no longer valid") from err
        if credentials is None:
            raise SessionNotFoundOrExpired("Session not found or expired")
        return credentials

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def connect(
        self,
        exchange: Optional[str],
        api_key: Optional[str],
        secret_key: Optional[str],
        user_id: str = DEFAULT_USER_ID,
    ) -> dict:
        """Verify credentials upstream and open a session for them.

        Returns:
            ``{"token", "expiresAt", "exchange", "account"}``.

        Raises:
            ValidationError: Before any upstream call, on bad input.
            UpstreamError: When the exchange rejects or cannot be reached.
        """
        exchange_id = parse_exchange(exchange)
        credentials = ExchangeCredentials(
            exchange=exchange_id,
            api_key=_require(api_key, "apiKey"),
            secret_key=_require(secret_key, "secretKey"),
        )
        adapter = self.adapter_for(exchange_id)
        snapshot = await adapter.verify(credentials)
        grant = self.store.create_session(user_id, credentials)
        logger.info("Connected to %s for user=%s", exchange_id.value, user_id)
        return {
            **grant.model_dump(by_alias=True),
            "exchange": exchange_id.value,
            "account": snapshot.account,
        }

    def session(self, token: Optional[str]) -> Session:
        """Validation-only lookup, without decrypting credentials."""
        session = self.store.get_session(token) if token else None
        if session is None or not session.usable:
            raise SessionNotFoundOrExpired("Session not found or expired")
        return session

    async def balances(self, token: Optional[str]) -> list[Balance]:
        credentials = self._credentials(token)
        return await self.adapter_for(credentials.exchange).fetch_balances(credentials)

    async def portfolio(self, token: Optional[str]) -> Portfolio:
        credentials = self._credentials(token)
        return await self.adapter_for(credentials.exchange).fetch_portfolio_value(credentials)

    async def positions(self, token: Optional[str]) -> PositionsResult:
        credentials = self._credentials(token)
        return await self.adapter_for(credentials.exchange).fetch_positions(credentials)

    def disconnect(self, token: Optional[str]) -> bool:
        return self.store.delete_session(token) if token else False

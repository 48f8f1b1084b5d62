"""
Data records shared by the vault, the exchange adapters and the HTTP layer.

Wire-facing models serialize with camelCase aliases
(``model_dump(by_alias=True)``).
"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Exchange(str, Enum):
    """Closed set of supported exchanges."""

    BINANCE = "binance"
    HYPERLIQUID = "hyperliquid"


class WireModel(BaseModel):
    """Base model for records that cross the HTTP boundary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class ExchangeCredentials(BaseModel):
    """Plaintext credentials, held only for a single verify or read."""

    exchange: Exchange
    api_key: str = Field(repr=False)
    secret_key: str = Field(repr=False)

    model_config = ConfigDict(use_enum_values=True)


class Session(BaseModel):
    """Server-side record binding a token to encrypted credentials."""

    token: str = Field(repr=False)
    user_id: str
    exchange: Exchange
    encrypted_api_key: str = Field(repr=False)
    encrypted_secret_key: str = Field(repr=False)
    created_at: int
    expires_at: int
    usable: bool = True

    model_config = ConfigDict(use_enum_values=True)

    @model_validator(mode="after")
    def validate_expiry(self) -> "Session":
        """Ensure the session expires strictly after it was created."""
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be greater than created_at")
        return self

    def is_expired(self, now: int) -> bool:
        return self.expires_at < now


class SessionGrant(WireModel):
    token: str
    expires_at: int


class SessionInfo(WireModel):
    token: str
    exchange: Exchange
    expires_at: int


class AccountSnapshot(WireModel):
    exchange: Exchange
    account: Any = None


class Balance(WireModel):
    asset: str
    free: float = 0.0
    locked: float = 0.0

    @property
    def total(self) -> float:
        return self.free + self.locked

    @property
    def is_positive(self) -> bool:
        return self.free > 0 or self.locked > 0


class PortfolioAsset(WireModel):
    asset: str
    free: float
    locked: float
    total: float
    value_usdt: float = Field(default=0.0, alias="valueUSDT")


class Portfolio(WireModel):
    total_value_usdt: float = Field(default=0.0, alias="totalValueUSDT")
    assets: list[PortfolioAsset] = Field(default_factory=list)


class Position(WireModel):
    symbol: str
    side: str
    size: float
    entry_price: Optional[float] = None
    mark_price: Optional[float] = None
    unrealized_pnl: Optional[float] = None
    leverage: Optional[float] = None


class PositionsResult(WireModel):
    positions: list[Position] = Field(default_factory=list)
    note: Optional[str] = None

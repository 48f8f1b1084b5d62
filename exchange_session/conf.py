"""
Gateway Configuration — validated settings loaded from the environment.

    ENCRYPTION_KEY             base64-encoded 32-byte key (required)
    VAULT_ALLOW_EPHEMERAL_KEY  generate a throwaway key when unset (development)
    SESSION_SWEEP_INTERVAL     seconds between expired-session sweeps (0 disables)
    UPSTREAM_TIMEOUT           seconds before an exchange call is aborted
    BINANCE_API_URL / BINANCE_FUTURES_URL / HYPERLIQUID_API_URL
    HOST / PORT                HTTP listener
"""
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .vault.config import load_encryption_key, KEY_LENGTH

DEFAULT_USER_ID = "user123"
BINANCE_API_URL = "https://api.binance.com"
BINANCE_FUTURES_URL = "https://fapi.binance.com"
HYPERLIQUID_API_URL = "https://api.hyperliquid.xyz"


def _env(name: str) -> Optional[str]:
    """Return a stripped environment value, or None when unset or empty."""
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


class GatewayConfig(BaseModel):
    """Validated gateway configuration."""

    encryption_key: bytes = Field(repr=False)
    sweep_interval: float = Field(default=300.0, ge=0)
    upstream_timeout: float = Field(default=10.0, gt=0, le=120)
    binance_url: str = BINANCE_API_URL
    binance_futures_url: str = BINANCE_FUTURES_URL
    hyperliquid_url: str = HYPERLIQUID_API_URL
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)

    @field_validator("encryption_key")
    @classmethod
    def validate_key(cls, v: bytes) -> bytes:
        """Validate the key length."""
        if len(v) != KEY_LENGTH:
            raise ValueError(f"encryption_key must be {KEY_LENGTH} bytes")
        return v

    @field_validator("binance_url", "binance_futures_url", "hyperliquid_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize upstream base URLs."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Upstream URL must be http(s): {v}")
        return v.rstrip("/")

    @classmethod
    def from_env(cls, allow_ephemeral: Optional[bool] = None) -> "GatewayConfig":
        """Create GatewayConfig by loading values from environment.

        Raises:
            RuntimeError: If no encryption key is configured.

        Returns:
            Populated GatewayConfig instance.
        """
        values = {"encryption_key": load_encryption_key(allow_ephemeral)}
        for field, name in (
            ("sweep_interval", "SESSION_SWEEP_INTERVAL"),
            ("upstream_timeout", "UPSTREAM_TIMEOUT"),
            ("binance_url", "BINANCE_API_URL"),
            ("binance_futures_url", "BINANCE_FUTURES_URL"),
            ("hyperliquid_url", "HYPERLIQUID_API_URL"),
            ("host", "HOST"),
            ("port", "PORT"),
        ):
            value = _env(name)
            if value is not None:
                values[field] = value
        return cls(**values)

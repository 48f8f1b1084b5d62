"""
Vault Configuration — Encryption key loading.

Reads the process-wide encryption key from the environment:
    ENCRYPTION_KEY = <base64-encoded 32-byte key>

There is no built-in fallback key. Without ``ENCRYPTION_KEY`` the vault
refuses to start, unless ``VAULT_ALLOW_EPHEMERAL_KEY`` is explicitly enabled
for local development, in which case a random key lives for the process only.

Security Note:
    Never log key material.
"""
import os
import base64
import binascii
import secrets
import logging

logger = logging.getLogger("exchange_session.vault")

KEY_ENV_NAME = "ENCRYPTION_KEY"
EPHEMERAL_ENV_NAME = "VAULT_ALLOW_EPHEMERAL_KEY"
KEY_LENGTH = 32  # AES-256

_TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag from the environment."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def decode_key(value: str) -> bytes:
    """Decode a base64 key string into exactly 32 raw bytes.

    Raises:
        ValueError: If the value is not base64 or has the wrong length.
    """
    try:
        key_bytes = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"{KEY_ENV_NAME} is not valid base64") from err
    if len(key_bytes) != KEY_LENGTH:
        raise ValueError(
            f"{KEY_ENV_NAME} must decode to exactly {KEY_LENGTH} bytes, "
            f"got {len(key_bytes)}"
        )
    return key_bytes


def load_encryption_key(allow_ephemeral: bool | None = None) -> bytes:
    """Load the encryption key from the ENCRYPTION_KEY environment variable.

    Args:
        allow_ephemeral: Generate a throwaway key when none is configured.
            Defaults to the VAULT_ALLOW_EPHEMERAL_KEY environment flag.

    Returns:
        Raw 32-byte key.

    Raises:
        RuntimeError: If no key is configured and ephemeral keys are not allowed.
        ValueError: If the configured key does not decode to 32 bytes.
    """
    raw = os.environ.get(KEY_ENV_NAME)
    if raw and raw.strip():
        return decode_key(raw)
    if allow_ephemeral is None:
        allow_ephemeral = env_flag(EPHEMERAL_ENV_NAME)
    if not allow_ephemeral:
        raise RuntimeError(
            f"{KEY_ENV_NAME} environment variable is not set. "
            f"Set {KEY_ENV_NAME}=<base64-encoded-32-byte-key>"
        )
    logger.warning(
        "%s is not set; using an ephemeral key, sessions will not survive a restart",
        KEY_ENV_NAME,
    )
    return secrets.token_bytes(KEY_LENGTH)


def generate_encryption_key() -> str:
    """Generate a random 32-byte key and return it as a base64 string.

    This is a utility for operators to generate new keys.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")

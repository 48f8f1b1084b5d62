"""
Vault Crypto Core — Key derivation and credential encryption/decryption.

Implements the at-rest encryption of session credentials:
- HKDF(ENCRYPTION_KEY, "exchange-session-cbc") → AES-256-CBC key
- HKDF(ENCRYPTION_KEY, "exchange-session-mac") → HMAC-SHA256 key

Blob format: ``<ivHex>:<cipherHex>`` where cipherHex is
``ciphertext || HMAC-SHA256(iv || ciphertext)``.

Security Note:
    Never log plaintext or ciphertext values.
    IVs are random 128-bit, drawn per encryption.
"""
import os
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..exceptions import DecryptionError
from .config import KEY_LENGTH

logger = logging.getLogger("exchange_session.vault")

IV_SIZE = 16  # AES block size
TAG_SIZE = 32  # HMAC-SHA256
BLOCK_BITS = 128
SEPARATOR = ":"

_ENC_CONTEXT = "exchange-session-cbc"
_MAC_CONTEXT = "exchange-session-mac"


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte key using HKDF-SHA256.

    Args:
        seed: Input key material (the process encryption key).
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # deterministic: the same key must always decrypt
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------

class CredentialCipher:
    """Symmetric encryption of short secrets.

    Every call to :meth:`encrypt` uses a fresh random IV, embedded in the
    blob so that :meth:`decrypt` needs nothing else. Blobs are authenticated:
    a wrong key, a corrupted or a truncated blob raises
    :class:`DecryptionError` instead of returning garbage.
    """

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise ValueError(f"Encryption key must be exactly {KEY_LENGTH} bytes")
        self._enc_key = derive_key(bytes(key), _ENC_CONTEXT)
        self._mac_key = derive_key(bytes(key), _MAC_CONTEXT)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} aes-256-cbc+hmac-sha256>"

    def _tag(self, iv: bytes, ciphertext: bytes) -> hmac.HMAC:
        mac = hmac.HMAC(self._mac_key, hashes.SHA256())
        mac.update(iv)
        mac.update(ciphertext)
        return mac

    def encrypt(self, plaintext: bytes) -> str:
        """Encrypt plaintext into a self-describing ``<ivHex>:<cipherHex>`` blob."""
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        tag = self._tag(iv, ciphertext).finalize()
        return iv.hex() + SEPARATOR + (ciphertext + tag).hex()

    def decrypt(self, blob: str) -> bytes:
        """Decrypt a blob produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the blob is malformed, truncated, corrupted or
                was produced with a different key.
        """
        if not isinstance(blob, str) or blob.count(SEPARATOR) != 1:
            raise DecryptionError("Malformed ciphertext blob")
        iv_hex, body_hex = blob.split(SEPARATOR)
        try:
            iv = bytes.fromhex(iv_hex)
            body = bytes.fromhex(body_hex)
        except ValueError as err:
            raise DecryptionError("Ciphertext blob is not valid hex") from err
        if len(iv) != IV_SIZE:
            raise DecryptionError(
                f"IV must be {IV_SIZE} bytes, got {len(iv)}"
            )
        _min = IV_SIZE + TAG_SIZE  # one padded block + tag
        if len(body) < _min or (len(body) - TAG_SIZE) % IV_SIZE:
            raise DecryptionError(
                f"Ciphertext truncated: {len(body)} bytes (minimum {_min})"
            )
        ciphertext, tag = body[:-TAG_SIZE], body[-TAG_SIZE:]
        try:
            self._tag(iv, ciphertext).verify(tag)
        except InvalidSignature as err:
            raise DecryptionError(
                "Ciphertext authentication failed (wrong key or corrupted data)"
            ) from err
        decryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as err:
            raise DecryptionError("Invalid padding in ciphertext") from err

    def encrypt_text(self, text: str) -> str:
        return self.encrypt(text.encode("utf-8"))

    def decrypt_text(self, blob: str) -> str:
        data = self.decrypt(blob)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionError("Decrypted value is not valid UTF-8") from err

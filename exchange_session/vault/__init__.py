"""Credential Vault — Encrypted exchange credentials bound to session tokens.

Security Note (Threat Model):
    Credentials are decrypted in process memory for the duration of a single
    upstream call. A memory dump of the application process exposes the
    encryption key and the ciphertexts, from which plaintext can be recovered.
    This is an accepted limitation — mitigation requires HSM/secure
    enclave integration which is out of scope.
"""

from .crypto import CredentialCipher, derive_key
from .session_store import SessionStore, SESSION_TTL_MS, now_ms
from .key_rotation import rotate_encryption_key
from .config import load_encryption_key, generate_encryption_key

__all__ = [
    "CredentialCipher",
    "derive_key",
    "SessionStore",
    "SESSION_TTL_MS",
    "now_ms",
    "rotate_encryption_key",
    "load_encryption_key",
    "generate_encryption_key",
]

"""
SessionStore — Token-keyed table of encrypted exchange credentials.

Provides the public API of the credential vault:
- ``create_session(user_id, credentials)`` — mint a token bound to encrypted credentials
- ``get_session(token)`` — session metadata, no decryption
- ``get_api_keys(token)`` — decrypted credentials for a single use
- ``delete_session(token)`` — revoke a token
- ``get_user_sessions(user_id)`` — enumerate live sessions of a user
- ``purge_expired()`` / ``start_sweeper()`` — optional background eviction

Expiry is lazy: every accessor evicts a record once ``expires_at`` is in the
past, so the sweeper is only needed to bound memory.

Security Note:
    Never log plaintext, ciphertext or full tokens. Decrypted credentials are
    returned to the caller and never kept by the store.
"""
import time
import asyncio
import secrets
import logging
import threading
from typing import Callable, Optional

from ..exceptions import DecryptionError
from ..models import (
    ExchangeCredentials,
    Session,
    SessionGrant,
    SessionInfo,
)
from .crypto import CredentialCipher

logger = logging.getLogger("exchange_session.vault")

SESSION_TTL_MS = 7 * 24 * 60 * 60 * 1000  # 7 days
TOKEN_BYTES = 32  # 256-bit tokens


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def token_hint(token: str) -> str:
    """Short token prefix, safe to log."""
    return f"{token[:8]}…" if token else "<empty>"


def _same_ciphertext(a: Session, b: Session) -> bool:
    return (
        a.encrypted_api_key == b.encrypted_api_key
        and a.encrypted_secret_key == b.encrypted_secret_key
    )


class SessionStore:
    """In-memory, lock-guarded session table.

    A single mutex protects the table. It is only held for map lookups and
    mutations; encryption and decryption run outside of it and no network
    call is ever made while holding it.

    While a key rotation runs, the previous cipher stays available as a
    fallback for records not yet re-encrypted.
    """

    def __init__(
        self,
        cipher: CredentialCipher,
        *,
        ttl_ms: int = SESSION_TTL_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._cipher = cipher
        self._previous_cipher: Optional[CredentialCipher] = None
        self._ttl = ttl_ms
        self._clock = clock or now_ms
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._sessions

    @property
    def cipher(self) -> CredentialCipher:
        return self._cipher

    @property
    def ttl(self) -> int:
        return self._ttl

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_token(self) -> str:
        """Return a random token not present in the table (lock held)."""
        while True:
            token = secrets.token_hex(TOKEN_BYTES)
            if token not in self._sessions:
                return token

    def _lookup(self, token: str) -> Optional[Session]:
        """Return the live record for token, evicting it if expired."""
        if not token:
            return None
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_expired(now):
                del self._sessions[token]
                logger.debug("Session %s expired, evicted", token_hint(token))
                return None
            return session

    def _decrypt(self, session: Session) -> tuple[str, str]:
        with self._lock:
            ciphers = [c for c in (self._cipher, self._previous_cipher) if c is not None]
        for cipher in ciphers:
            try:
                return (
                    cipher.decrypt_text(session.encrypted_api_key),
                    cipher.decrypt_text(session.encrypted_secret_key),
                )
            except DecryptionError as err:
                failure = err
        raise failure

    def mark_unusable(self, token: str, session: Session) -> bool:
        """Flag the record for token unusable if it still holds session's ciphertext.

        Returns False when the record was deleted or re-encrypted meanwhile.
        """
        with self._lock:
            current = self._sessions.get(token)
            if current is None or not _same_ciphertext(current, session):
                return False
            self._sessions[token] = current.model_copy(update={"usable": False})
            return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_session(
        self, user_id: str, credentials: ExchangeCredentials
    ) -> SessionGrant:
        """Encrypt credentials and bind them to a new random token.

        Args:
            user_id: Logical owner of the session.
            credentials: Verified exchange credentials.

        Returns:
            The token and its absolute expiry (epoch ms).
        """
        created_at = self._clock()
        while True:
            cipher = self._cipher
            encrypted_api_key = cipher.encrypt_text(credentials.api_key)
            encrypted_secret_key = cipher.encrypt_text(credentials.secret_key)
            with self._lock:
                if cipher is not self._cipher:
                    # key switched while encrypting
                    continue
                token = self._new_token()
                session = Session(
                    token=token,
                    user_id=user_id,
                    exchange=credentials.exchange,
                    encrypted_api_key=encrypted_api_key,
                    encrypted_secret_key=encrypted_secret_key,
                    created_at=created_at,
                    expires_at=created_at + self._ttl,
                )
                self._sessions[token] = session
            break
        logger.info(
            "Session created: user=%s exchange=%s token=%s",
            user_id, session.exchange, token_hint(token),
        )
        return SessionGrant(token=token, expires_at=session.expires_at)

    def get_session(self, token: str) -> Optional[Session]:
        """Return session metadata without decrypting credentials.

        Returns:
            The session record, or None if unknown or expired.
        """
        return self._lookup(token)

    def get_api_keys(self, token: str) -> Optional[ExchangeCredentials]:
        """Decrypt and return the credentials bound to token.

        Returns:
            Plaintext credentials, or None if unknown or expired.

        Raises:
            DecryptionError: If the stored ciphertext cannot be decrypted.
                The session is marked unusable and kept for diagnostics.
        """
        failure = None
        for _ in range(2):
            session = self._lookup(token)
            if session is None:
                return None
            if not session.usable:
                raise DecryptionError(
                    "Session credentials are unreadable", token=token_hint(token)
                )
            try:
                api_key, secret_key = self._decrypt(session)
            except DecryptionError as err:
                if self.mark_unusable(token, session):
                    raise DecryptionError(
                        "Session credentials are unreadable", token=token_hint(token)
                    ) from err
                # record was re-encrypted under us, read it again
                failure = err
                continue
            return ExchangeCredentials(
                exchange=session.exchange,
                api_key=api_key,
                secret_key=secret_key,
            )
        raise DecryptionError(
            "Session credentials are unreadable", token=token_hint(token)
        ) from failure

    def delete_session(self, token: str) -> bool:
        """Remove a session.

        Returns:
            True if a record was removed, False if the token was unknown.
        """
        with self._lock:
            removed = self._sessions.pop(token, None) is not None
        if removed:
            logger.info("Session deleted: token=%s", token_hint(token))
        return removed

    def get_user_sessions(self, user_id: str) -> list[SessionInfo]:
        """List the live sessions owned by user_id."""
        now = self._clock()
        with self._lock:
            return [
                SessionInfo(
                    token=token,
                    exchange=session.exchange,
                    expires_at=session.expires_at,
                )
                for token, session in self._sessions.items()
                if session.user_id == user_id
                and session.usable
                and not session.is_expired(now)
            ]

    def replace(
        self, token: str, session: Session, expected: Optional[Session] = None
    ) -> bool:
        """Swap the record for token if it is still present.

        When expected is given, the swap only happens if the stored record
        still holds expected's ciphertext.

        Returns:
            False when the token was deleted or its record changed meanwhile.
        """
        with self._lock:
            current = self._sessions.get(token)
            if current is None:
                return False
            if expected is not None and not _same_ciphertext(current, expected):
                return False
            self._sessions[token] = session
            return True

    def snapshot(self) -> list[Session]:
        """Return a copy of all records currently in the table."""
        with self._lock:
            return list(self._sessions.values())

    def use_cipher(self, cipher: CredentialCipher) -> None:
        with self._lock:
            self._cipher = cipher

    def begin_rotation(self, cipher: CredentialCipher) -> CredentialCipher:
        """Switch new writes to cipher, keeping the current one for reads.

        Returns:
            The cipher being rotated away from.

        Raises:
            RuntimeError: If a rotation is already in progress.
        """
        with self._lock:
            if self._previous_cipher is not None:
                raise RuntimeError("Key rotation already in progress")
            previous = self._cipher
            self._previous_cipher = previous
            self._cipher = cipher
        return previous

    def finish_rotation(self) -> None:
        """Drop the fallback cipher once every record is re-encrypted."""
        with self._lock:
            self._previous_cipher = None

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Remove every expired or unusable record.

        Returns:
            Number of records removed.
        """
        now = self._clock()
        with self._lock:
            stale = [
                token for token, session in self._sessions.items()
                if session.is_expired(now) or not session.usable
            ]
            for token in stale:
                del self._sessions[token]
        if stale:
            logger.info("Purged %d stale session(s)", len(stale))
        return len(stale)

    async def _sweep(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.purge_expired()
            except Exception as err:  # keep the sweeper alive
                logger.error("Session sweep failed: %s", err)

    def start_sweeper(self, interval: float) -> asyncio.Task:
        """Start a background task purging stale sessions every interval seconds.

        Must be called from a running event loop.
        """
        if interval <= 0:
            raise ValueError("Sweep interval must be positive")
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep(interval), name="session-sweeper"
        )
        logger.debug("Session sweeper started (interval=%ss)", interval)
        return self._sweeper

    async def stop_sweeper(self) -> None:
        """Cancel the background sweeper, if running."""
        task, self._sweeper = self._sweeper, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Session sweeper stopped")

"""
Vault Key Rotation — Re-encryption of live sessions under a new key.

Re-encrypts the credentials of every session in the store from the current
cipher to a new one, in batches. Sessions whose ciphertext cannot be read
with the current key are marked unusable (and later purged) instead of
aborting the rotation. The store writes new sessions with the new cipher as
soon as the rotation starts and keeps the old one as a read fallback until
every record is re-encrypted, so reads and creates may run concurrently.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext or ciphertext values.
"""
import logging

from ..exceptions import DecryptionError
from ..models import Session
from .crypto import CredentialCipher
from .session_store import SessionStore, token_hint

logger = logging.getLogger("exchange_session.vault")


def _is_readable(cipher: CredentialCipher, session: Session) -> bool:
    try:
        cipher.decrypt(session.encrypted_api_key)
    except DecryptionError:
        return False
    return True


def _rotate_session(
    store: SessionStore,
    session: Session,
    old_cipher: CredentialCipher,
    new_cipher: CredentialCipher,
    stats: dict,
) -> None:
    stats["total"] += 1
    if not session.usable:
        stats["skipped"] += 1
        return
    try:
        api_key = old_cipher.decrypt(session.encrypted_api_key)
        secret_key = old_cipher.decrypt(session.encrypted_secret_key)
    except DecryptionError as err:
        if _is_readable(new_cipher, session):
            # created after the rotation began
            stats["skipped"] += 1
            return
        logger.error(
            "Error rotating session token=%s: %s", token_hint(session.token), err,
        )
        store.mark_unusable(session.token, session)
        stats["errors"] += 1
        return
    rotated = session.model_copy(update={
        "encrypted_api_key": new_cipher.encrypt(api_key),
        "encrypted_secret_key": new_cipher.encrypt(secret_key),
    })
    if store.replace(session.token, rotated, expected=session):
        stats["rotated"] += 1
    else:
        # deleted or changed while rotating
        stats["skipped"] += 1


def rotate_encryption_key(
    store: SessionStore,
    new_cipher: CredentialCipher,
    batch_size: int = 100,
) -> dict:
    """Re-encrypt all sessions in store with new_cipher.

    Args:
        store: Session store to rotate.
        new_cipher: Cipher built from the new encryption key.
        batch_size: Number of records re-encrypted per batch.

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    old_cipher = store.begin_rotation(new_cipher)
    sessions = store.snapshot()
    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}

    logger.info(
        "Starting key rotation of %d session(s) (batch_size=%d)",
        len(sessions), batch_size,
    )

    try:
        for offset in range(0, len(sessions), batch_size):
            batch = sessions[offset:offset + batch_size]
            logger.debug(
                "Processing batch %d (%d sessions)",
                (offset // batch_size) + 1, len(batch),
            )
            for session in batch:
                _rotate_session(store, session, old_cipher, new_cipher, stats)
    finally:
        store.finish_rotation()

    logger.info("Key rotation complete: %s", stats)
    return stats

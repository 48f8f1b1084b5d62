"""
Request signing for HMAC-authenticated exchange APIs.

Canonical string: caller parameters in insertion order, then
``timestamp=<epoch_ms>`` last, URL-encoded and joined with ``&``. The
HMAC-SHA256 hex digest of that exact string is appended as ``signature``.
"""
import hmac
import hashlib
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urlencode

from ..vault.session_store import now_ms


class RequestSigner:
    """Builds signed query strings with an account's secret key."""

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("secret_key is required for signing")
        self._secret = secret_key.encode("utf-8")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} hmac-sha256>"

    @staticmethod
    def canonical_string(
        params: Optional[Mapping[str, Any]] = None,
        timestamp: Optional[int] = None,
    ) -> str:
        """Return the order-fixed parameter string that gets signed."""
        items = [
            (key, value) for key, value in (params or {}).items()
            if value is not None and key not in ("timestamp", "signature")
        ]
        items.append(("timestamp", now_ms() if timestamp is None else int(timestamp)))
        return urlencode(items)

    def sign(self, canonical: str) -> str:
        """HMAC-SHA256 hex digest of canonical. Deterministic."""
        return hmac.new(
            self._secret, canonical.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def signed_query(
        self,
        params: Optional[Mapping[str, Any]] = None,
        timestamp: Optional[int] = None,
    ) -> str:
        """Canonical string with ``&signature=<hex>`` appended."""
        canonical = self.canonical_string(params, timestamp)
        return f"{canonical}&signature={self.sign(canonical)}"

    def verify(self, query: str) -> bool:
        """Check the trailing signature of a signed query string."""
        canonical, sep, signature = query.rpartition("&signature=")
        if not sep:
            return False
        return hmac.compare_digest(self.sign(canonical), signature)

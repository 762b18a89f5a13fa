"""Credential storage and session-invalidation events.

The bearer token used by every backend call lives in one ``CredentialStore``
that is passed to the clients that need it. When the backend rejects the
token, ``invalidate()`` clears it and tells every listener at once.
"""

import base64
import binascii
import json
import threading
from pathlib import Path
from typing import Optional

from pyee.base import EventEmitter

from ..logger import logger

AUTH_EXPIRED = "auth_expired"


class CredentialStore:
    """Bearer credentials, optionally persisted to a JSON file."""

    def __init__(
        self,
        path: Optional[Path] = None,
        events: Optional[EventEmitter] = None,
    ):
        """Initialize the store and load persisted tokens.

        Args:
            path: File the tokens persist to (None keeps them in memory only)
            events: Emitter for session events (a new one if not provided)
        """
        self.path = Path(path) if path else None
        self.events = events or EventEmitter()
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._load()

    def _load(self) -> None:
        if not self.path or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable credential file {self.path}: {e}")
            return
        if data.get("token") and data.get("refresh_token"):
            self._token = data["token"]
            self._refresh_token = data["refresh_token"]

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    def is_logged_in(self) -> bool:
        return bool(self._token)

    def set_tokens(self, token: str, refresh_token: str) -> None:
        """Store and persist a new token pair."""
        with self._lock:
            self._token = token
            self._refresh_token = refresh_token
            if self.path:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(
                    json.dumps({"token": token, "refresh_token": refresh_token}),
                    encoding="utf-8",
                )

    def clear(self) -> None:
        """Forget tokens in memory and on disk."""
        with self._lock:
            self._token = None
            self._refresh_token = None
            if self.path and self.path.exists():
                self.path.unlink()

    def invalidate(self) -> None:
        """Clear credentials, then emit ``AUTH_EXPIRED`` synchronously."""
        self.clear()
        logger.warning("Session expired; credentials cleared")
        self.events.emit(AUTH_EXPIRED)

    def auth_headers(self) -> dict[str, str]:
        """Authorization header for the current token, or an empty dict."""
        token = self._token
        return {"Authorization": f"Bearer {token}"} if token else {}

    def current_user_id(self) -> Optional[str]:
        """Return the ``sub`` claim of the current JWT (unverified)."""
        token = self._token
        if not token:
            return None
        parts = token.split(".")
        if len(parts) != 3:
            return None
        payload = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(payload))
        except (binascii.Error, ValueError):
            return None
        if not isinstance(claims, dict):
            return None
        return claims.get("sub")

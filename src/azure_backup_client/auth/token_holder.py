from __future__ import annotations

import threading

from azure_backup_client.auth.types import BearerToken
from azure_backup_client.rest.errors import AuthenticationError
from azure_backup_client.utils import get_logger


logger = get_logger(__name__)


class TokenHolder:
    """Single token slot shared between an authenticator and the clients reading it."""

    def __init__(self, name: str, *, expiry_leeway: float = 0.0) -> None:
        self._name = name
        self._expiry_leeway = expiry_leeway
        self._token: BearerToken | None = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def store(self, token: BearerToken) -> None:
        with self._lock:
            self._token = token
        logger.debug(
            "Stored access token",
            holder=self._name,
            token_type=token.token_type,
            expires_at=token.expires_at.isoformat() if token.expires_at else None,
        )

    def get(self) -> BearerToken | None:
        return self._token

    def require(self) -> BearerToken:
        """Return the held token or raise if the caller has not authenticated."""

        token = self._token
        if token is None:
            raise AuthenticationError(
                f"No {self._name} token available; authenticate first."
            )
        if token.is_expired(self._expiry_leeway):
            raise AuthenticationError(
                f"The {self._name} token has expired; authenticate again."
            )
        return token

    def authorization_header(self) -> str:
        return self.require().authorization_header

    def clear(self) -> None:
        with self._lock:
            self._token = None
        logger.debug("Cleared access token", holder=self._name)


__all__ = ["TokenHolder"]

"""Authentication type definitions."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class BearerToken(BaseModel):
    """OAuth2 token as returned by a token endpoint.

    Both Entra ID and Veeam return ``token_type``/``access_token``/``expires_in``;
    Veeam additionally sends a refresh token, the absolute ``.issued``/``.expires``
    timestamps and some user metadata.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    token_type: str = "Bearer"
    access_token: str = Field(repr=False)
    expires_in: int | None = None
    expires: datetime | None = Field(default=None, alias=".expires")
    issued: datetime | None = Field(default=None, alias=".issued")
    refresh_token: str | None = Field(default=None, repr=False)
    username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("username", "userName"),
    )
    role_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("roleName", "role_name", "role"),
    )
    obtained_at: float = Field(default_factory=time.time, exclude=True)

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> Self:
        """Hydrate a token from a raw token-endpoint JSON payload."""
        return cls.model_validate(payload)

    @field_validator("expires", "issued", mode="before")
    @classmethod
    def _parse_http_date(cls, value: object) -> object:
        # Veeam sends RFC 1123 dates ("Thu, 21 Apr 2022 10:29:18 GMT")
        if isinstance(value, str) and value and not value[0].isdigit():
            try:
                return parsedate_to_datetime(value)
            except (TypeError, ValueError):
                return value
        return value

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"

    @property
    def expires_at(self) -> datetime | None:
        if self.expires is not None:
            if self.expires.tzinfo is None:
                return self.expires.replace(tzinfo=timezone.utc)
            return self.expires
        if self.expires_in is not None:
            obtained = datetime.fromtimestamp(self.obtained_at, tz=timezone.utc)
            return obtained + timedelta(seconds=self.expires_in)
        return None

    def is_expired(self, leeway: float = 0.0, *, now: datetime | None = None) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        return current >= expires_at - timedelta(seconds=leeway)


@dataclass(slots=True)
class MfaChallenge:
    """Intermediate result of a Veeam password grant for MFA-enabled accounts."""

    mfa_token: str
    username: str | None = None


__all__ = ["BearerToken", "MfaChallenge"]

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from azure_backup_client.auth import BearerToken, TokenHolder
from azure_backup_client.rest.errors import AuthenticationError

from tests.factories import make_bearer_token


def test_require_without_token_asks_caller_to_authenticate() -> None:
    holder = TokenHolder("Veeam")

    with pytest.raises(AuthenticationError) as excinfo:
        holder.require()

    assert "authenticate first" in str(excinfo.value)
    assert holder.has_token is False


def test_store_then_require_returns_same_token() -> None:
    holder = TokenHolder("Azure Storage")
    token = make_bearer_token("abc")

    holder.store(token)

    assert holder.require() is token
    assert holder.authorization_header() == "Bearer abc"


def test_expired_token_is_refused() -> None:
    holder = TokenHolder("Azure Storage")
    holder.store(make_bearer_token(expires_in=-5))

    with pytest.raises(AuthenticationError, match="expired"):
        holder.require()


def test_expiry_leeway_rejects_nearly_expired_token() -> None:
    holder = TokenHolder("Azure Storage", expiry_leeway=120)
    holder.store(make_bearer_token(expires_in=60))

    with pytest.raises(AuthenticationError):
        holder.require()


def test_clear_empties_holder() -> None:
    holder = TokenHolder("Azure Storage")
    holder.store(make_bearer_token())

    holder.clear()

    assert holder.get() is None
    with pytest.raises(AuthenticationError):
        holder.require()


def test_authorization_header_uses_token_type_verbatim() -> None:
    token = BearerToken(token_type="bearer", access_token="eyJ0.x.y")

    assert token.authorization_header == "bearer eyJ0.x.y"


def test_veeam_payload_parses_absolute_expiry_and_metadata() -> None:
    token = BearerToken.from_response(
        {
            "access_token": "veeam-access",
            "token_type": "Bearer",
            "refresh_token": "veeam-refresh",
            "expires_in": 3600,
            ".issued": "Mon, 19 Oct 2026 10:00:00 GMT",
            ".expires": "Mon, 19 Oct 2026 11:00:00 GMT",
            "username": "restadmin",
            "roleName": "PortalAdmin",
            "mfa_enabled": False,
        }
    )

    assert token.refresh_token == "veeam-refresh"
    assert token.role_name == "PortalAdmin"
    assert token.username == "restadmin"
    assert token.expires_at == datetime(2026, 10, 19, 11, 0, tzinfo=timezone.utc)
    assert token.is_expired(now=datetime(2026, 10, 19, 10, 30, tzinfo=timezone.utc)) is False
    assert token.is_expired(now=datetime(2026, 10, 19, 11, 0, tzinfo=timezone.utc)) is True


def test_relative_expiry_counts_from_obtained_time() -> None:
    token = BearerToken(access_token="a", expires_in=600, obtained_at=1_000_000.0)
    obtained = datetime.fromtimestamp(1_000_000.0, tz=timezone.utc)

    assert token.expires_at == obtained + timedelta(seconds=600)


def test_token_without_expiry_never_expires() -> None:
    token = BearerToken(access_token="a")

    assert token.expires_at is None
    assert token.is_expired() is False


def test_repr_hides_secrets() -> None:
    token = make_bearer_token("super-secret", refresh_token="also-secret")

    assert "super-secret" not in repr(token)
    assert "also-secret" not in repr(token)

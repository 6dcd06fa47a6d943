from __future__ import annotations

import threading
from typing import Any, Sequence

import msal

from azure_backup_client.auth.token_holder import TokenHolder
from azure_backup_client.auth.types import BearerToken
from azure_backup_client.config.settings import Settings
from azure_backup_client.rest.errors import AuthenticationError
from azure_backup_client.utils import get_logger


logger = get_logger(__name__)


class EntraTokenClient:
    """Acquires Azure Storage tokens with the OAuth2 client-credentials grant.

    MSAL ``ConfidentialClientApplication`` posts to
    ``https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token``; the
    resulting token is written to the shared :class:`TokenHolder` that the
    blob client reads. Tokens are never refreshed behind the caller's back.
    """

    def __init__(self, token_holder: TokenHolder | None = None) -> None:
        self._token_holder = token_holder or TokenHolder("Azure Storage")
        self._app: msal.ConfidentialClientApplication | None = None
        self._scopes: list[str] = []
        self._lock = threading.Lock()

    @property
    def token_holder(self) -> TokenHolder:
        return self._token_holder

    @property
    def is_configured(self) -> bool:
        return self._app is not None

    def configure(self, settings: Settings, *, client_secret: str | None = None) -> None:
        """Create the MSAL confidential client for the configured app registration.

        Args:
            settings: Settings carrying tenant, client id and storage scope.
            client_secret: Overrides ``settings.client_secret`` (e.g. read from keyring).

        Raises:
            AuthenticationError: If tenant, client id or secret is missing, or MSAL
                rejects the authority.
        """
        secret = client_secret or settings.client_secret
        if not settings.tenant_id:
            raise AuthenticationError("Tenant ID must be configured to request a token")
        if not settings.client_id:
            raise AuthenticationError("Client ID must be configured to request a token")
        if not secret:
            raise AuthenticationError(
                "Client secret must be configured to request a token"
            )

        authority = settings.derive_authority()
        try:
            self._app = msal.ConfidentialClientApplication(
                client_id=settings.client_id,
                client_credential=secret,
                authority=authority,
                verify=settings.verify_ssl,
                timeout=settings.timeout,
            )
        except ValueError as exc:
            logger.error("Invalid MSAL configuration", authority=authority, error=str(exc))
            raise AuthenticationError(f"Invalid authority: {exc}") from exc
        self._scopes = [settings.storage_scope]
        logger.info("Configured MSAL ConfidentialClientApplication", authority=authority)

    def acquire_token(self, scopes: Sequence[str] | None = None) -> BearerToken:
        """Run the client-credentials grant and store the resulting token."""

        app = self._ensure_app()
        requested = list(scopes or self._scopes)
        with self._lock:
            result = app.acquire_token_for_client(scopes=requested)
            token = self._process_result(result)
            self._token_holder.store(token)
        logger.info(
            "Acquired Azure Storage token",
            scopes=requested,
            expires_in=token.expires_in,
        )
        return token

    def sign_out(self) -> None:
        self._token_holder.clear()

    # Internal --------------------------------------------------------

    def _process_result(self, result: dict[str, Any] | None) -> BearerToken:
        if not result:
            raise AuthenticationError("Token endpoint returned an empty response")
        if "error" in result:
            error_code = result.get("error")
            error_desc = result.get("error_description", error_code)
            raise AuthenticationError(
                f"MSAL error: {error_desc}",
                code=error_code if isinstance(error_code, str) else None,
            )
        if not isinstance(result.get("access_token"), str):
            raise AuthenticationError("MSAL response missing access token")
        payload = {
            "token_type": result.get("token_type") or "Bearer",
            "access_token": result["access_token"],
            "expires_in": result.get("expires_in"),
        }
        return BearerToken.from_response(payload)

    def _ensure_app(self) -> msal.ConfidentialClientApplication:
        if not self._app:
            raise AuthenticationError("Authentication has not been configured")
        return self._app


__all__ = ["EntraTokenClient"]

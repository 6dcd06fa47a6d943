from __future__ import annotations

from typing import Any

from azure_backup_client.auth.token_holder import TokenHolder
from azure_backup_client.auth.types import BearerToken, MfaChallenge
from azure_backup_client.rest.client import RestClient
from azure_backup_client.rest.errors import ApiError, AuthenticationError
from azure_backup_client.utils import get_logger


logger = get_logger(__name__)

TOKEN_PATH = "/api/oauth2/token"

VEEAM_HOLDER_NAME = "Veeam Backup for Microsoft Azure"


class VeeamAuthenticator:
    """Password, MFA and refresh grants against ``/api/oauth2/token``.

    Accounts with MFA enabled authenticate in two steps: :meth:`sign_in`
    returns an :class:`MfaChallenge` and leaves the holder empty, and only
    :meth:`complete_mfa` stores a usable token.
    """

    def __init__(
        self,
        rest_client: RestClient,
        token_holder: TokenHolder | None = None,
    ) -> None:
        self._rest = rest_client
        self._token_holder = token_holder or rest_client.token_holder or TokenHolder(
            VEEAM_HOLDER_NAME
        )

    @property
    def token_holder(self) -> TokenHolder:
        return self._token_holder

    def sign_in(self, username: str, password: str) -> BearerToken | MfaChallenge:
        if not username or not password:
            raise AuthenticationError("Username and password are required")
        # A new sign-in replaces the session even when it fails or stops at MFA.
        self._token_holder.clear()
        payload = self._grant(
            {
                "grant_type": "Password",
                "Username": username,
                "Password": password,
            }
        )

        if payload.get("mfa_enabled"):
            mfa_token = payload.get("mfa_token")
            if not isinstance(mfa_token, str) or not mfa_token:
                raise AuthenticationError(
                    "Veeam requested MFA but did not return an MFA token"
                )
            logger.info("Veeam account requires MFA", username=username)
            return MfaChallenge(mfa_token=mfa_token, username=username)

        token = self._store(payload)
        logger.info("Signed in to Veeam", username=username, role=token.role_name)
        return token

    def complete_mfa(self, challenge: MfaChallenge | str, code: str) -> BearerToken:
        mfa_token = challenge.mfa_token if isinstance(challenge, MfaChallenge) else challenge
        if not code:
            raise AuthenticationError("An MFA code is required")
        payload = self._grant(
            {
                "grant_type": "Mfa",
                "mfa_token": mfa_token,
                "mfa_code": code,
            }
        )
        token = self._store(payload)
        logger.info("Completed Veeam MFA sign-in", username=token.username)
        return token

    def refresh(self) -> BearerToken:
        """Exchange the held refresh token for a new access token."""

        current = self._token_holder.get()
        if current is None or not current.refresh_token:
            raise AuthenticationError(
                "No Veeam refresh token available; authenticate first."
            )
        payload = self._grant(
            {
                "grant_type": "Refresh_token",
                "refresh_token": current.refresh_token,
            }
        )
        token = self._store(payload)
        logger.info("Refreshed Veeam token")
        return token

    def sign_out(self) -> None:
        self._token_holder.clear()

    # Internal --------------------------------------------------------

    def _grant(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            payload = self._rest.request_json(
                "POST",
                TOKEN_PATH,
                data=form,
                headers={"Accept": "application/json"},
                authenticated=False,
            )
        except ApiError as exc:
            if exc.status_code in {400, 401}:
                raise AuthenticationError(
                    f"Veeam rejected the {form['grant_type']} grant: {exc.message}",
                    status_code=exc.status_code,
                    code=exc.code,
                ) from exc
            raise
        if not isinstance(payload, dict):
            raise AuthenticationError("Veeam token endpoint returned an unexpected body")
        return payload

    def _store(self, payload: dict[str, Any]) -> BearerToken:
        if not isinstance(payload.get("access_token"), str):
            raise AuthenticationError("Veeam token response is missing an access token")
        token = BearerToken.from_response(payload)
        self._token_holder.store(token)
        return token


__all__ = ["TOKEN_PATH", "VEEAM_HOLDER_NAME", "VeeamAuthenticator"]

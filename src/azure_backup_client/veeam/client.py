from __future__ import annotations

from typing import Any

import httpx

from azure_backup_client.auth.token_holder import TokenHolder
from azure_backup_client.auth.veeam import VEEAM_HOLDER_NAME, VeeamAuthenticator
from azure_backup_client.config.settings import Settings
from azure_backup_client.rest.client import RestClient, RestClientConfig
from azure_backup_client.utils import get_logger
from azure_backup_client.veeam.models import PolicyPage


logger = get_logger(__name__)

POLICIES_PATH = "/api/v3/policies"


class VeeamClient:
    """Veeam Backup for Microsoft Azure REST calls that need a signed-in session."""

    def __init__(self, rest_client: RestClient) -> None:
        if rest_client.token_holder is None:
            raise ValueError("VeeamClient requires a RestClient bound to a token holder")
        self._rest = rest_client
        self._auth = VeeamAuthenticator(rest_client)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        token_holder: TokenHolder | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> "VeeamClient":
        if not settings.veeam_uri:
            raise ValueError("Veeam URI is not configured")
        config = RestClientConfig(
            base_url=settings.veeam_uri.rstrip("/"),
            timeout=settings.timeout,
            verify_ssl=settings.verify_ssl,
            default_headers={"Accept": "application/json"},
        )
        holder = token_holder or TokenHolder(VEEAM_HOLDER_NAME)
        return cls(RestClient(config, holder, transport=transport))

    @property
    def auth(self) -> VeeamAuthenticator:
        return self._auth

    @property
    def token_holder(self) -> TokenHolder:
        return self._auth.token_holder

    def list_policies(
        self,
        *,
        offset: int | None = None,
        limit: int | None = None,
        params: dict[str, Any] | None = None,
    ) -> PolicyPage:
        query: dict[str, Any] = dict(params or {})
        if offset is not None:
            query["Offset"] = offset
        if limit is not None:
            query["Limit"] = limit
        payload = self._rest.request_json(
            "GET",
            POLICIES_PATH,
            params=query or None,
        )
        page = PolicyPage.from_response(payload)
        logger.info(
            "Listed Veeam backup policies",
            count=len(page.results),
            total=page.total_count,
        )
        return page

    def close(self) -> None:
        self._rest.close()

    def __enter__(self) -> "VeeamClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["POLICIES_PATH", "VeeamClient"]

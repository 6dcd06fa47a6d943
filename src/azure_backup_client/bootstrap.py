from __future__ import annotations

from dataclasses import dataclass

import httpx

from azure_backup_client.auth import EntraTokenClient, SecretStore, TokenHolder
from azure_backup_client.auth.secret_store import CLIENT_SECRET_KEY, veeam_password_key
from azure_backup_client.config import Settings
from azure_backup_client.storage import BlobStorageClient
from azure_backup_client.utils import get_logger
from azure_backup_client.veeam import VeeamClient


logger = get_logger(__name__)


@dataclass(slots=True)
class StorageServices:
    tokens: EntraTokenClient
    blobs: BlobStorageClient

    def close(self) -> None:
        self.blobs.close()


def resolve_client_secret(
    settings: Settings,
    secret_store: SecretStore | None = None,
) -> str | None:
    """Prefer an explicit environment secret, then the OS keyring."""

    if settings.client_secret:
        return settings.client_secret
    if secret_store is None:
        return None
    return secret_store.get_secret(CLIENT_SECRET_KEY)


def resolve_veeam_password(
    settings: Settings,
    username: str,
    secret_store: SecretStore | None = None,
) -> str | None:
    if settings.veeam_password:
        return settings.veeam_password
    if secret_store is None:
        return None
    return secret_store.get_secret(veeam_password_key(username))


def build_storage_services(
    settings: Settings,
    *,
    secret_store: SecretStore | None = None,
    transport: httpx.BaseTransport | None = None,
) -> StorageServices:
    """Wire the Entra token client and the blob client around one token holder.

    Raises:
        AuthenticationError: If the app registration is incomplete.
        ValueError: If no storage account is configured.
    """

    holder = TokenHolder("Azure Storage", expiry_leeway=60.0)
    tokens = EntraTokenClient(holder)
    tokens.configure(
        settings,
        client_secret=resolve_client_secret(settings, secret_store),
    )
    blobs = BlobStorageClient.from_settings(settings, holder, transport=transport)
    logger.debug(
        "Storage services initialised",
        account=settings.storage_account,
        api_version=blobs.api_version,
    )
    return StorageServices(tokens=tokens, blobs=blobs)


def build_veeam_client(
    settings: Settings,
    *,
    transport: httpx.BaseTransport | None = None,
) -> VeeamClient:
    client = VeeamClient.from_settings(settings, transport=transport)
    logger.debug("Veeam client initialised", uri=settings.veeam_uri)
    return client


__all__ = [
    "StorageServices",
    "build_storage_services",
    "build_veeam_client",
    "resolve_client_secret",
    "resolve_veeam_password",
]

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from platformdirs import user_cache_dir, user_config_dir

APP_NAME = "AzureBackupClient"
ENV_PREFIX = "AZURE_BACKUP_CLIENT_"
ENV_FILE_NAME = "settings.env"

DEFAULT_STORAGE_SCOPE = "https://storage.azure.com/.default"
DEFAULT_STORAGE_API_VERSION = "2021-04-10"
DEFAULT_TIMEOUT_SECONDS = 30.0

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _config_dir() -> Path:
    path = Path(user_config_dir(APP_NAME, roaming=True))
    path.mkdir(parents=True, exist_ok=True)
    return path


def _cache_dir() -> Path:
    path = Path(user_cache_dir(APP_NAME))
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return _config_dir()


def cache_dir() -> Path:
    return _cache_dir()


def log_dir() -> Path:
    path = cache_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _env_file_path(explicit: Path | None) -> Path:
    if explicit is not None:
        return explicit
    return _config_dir() / ENV_FILE_NAME


@dataclass(slots=True)
class Settings:
    """Connection details for the Azure Storage account and the Veeam appliance.

    Secrets (the app registration client secret and the Veeam password) are
    only read from the environment here; persisted copies live in the OS
    keyring via :class:`~azure_backup_client.auth.SecretStore`.
    """

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    authority: str | None = None
    storage_account: str | None = None
    storage_scope: str = DEFAULT_STORAGE_SCOPE
    storage_api_version: str = DEFAULT_STORAGE_API_VERSION
    veeam_uri: str | None = None
    veeam_username: str | None = None
    veeam_password: str | None = None
    verify_ssl: bool = True
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def is_storage_configured(self) -> bool:
        """True when tenant, client and storage account are all known."""
        return bool(self.tenant_id and self.client_id and self.storage_account)

    @property
    def is_veeam_configured(self) -> bool:
        return bool(self.veeam_uri)

    def derive_authority(self) -> str:
        """Return configured authority, defaulting to the tenant's login endpoint."""
        if self.authority:
            return self.authority
        tenant = self.tenant_id or "organizations"
        return f"https://login.microsoftonline.com/{tenant}"

    @property
    def storage_endpoint(self) -> str:
        if not self.storage_account:
            raise ValueError("Storage account name is not configured")
        account = self.storage_account.strip()
        if account.startswith(("http://", "https://")):
            return account.rstrip("/")
        return f"https://{account}.blob.core.windows.net"


class SettingsManager:
    """Load and persist settings with environment overrides."""

    def __init__(self, env_file: Path | None = None) -> None:
        self._env_file = _env_file_path(env_file)

    @property
    def env_file(self) -> Path:
        return self._env_file

    def load(self) -> Settings:
        """Load settings from environment, falling back to the persisted file."""
        load_dotenv(self._env_file, override=False)

        settings = Settings(
            tenant_id=self._get_env("TENANT_ID"),
            client_id=self._get_env("CLIENT_ID"),
            client_secret=self._get_env("CLIENT_SECRET"),
            authority=self._get_env("AUTHORITY"),
            storage_account=self._get_env("STORAGE_ACCOUNT"),
            veeam_uri=self._get_env("VEEAM_URI"),
            veeam_username=self._get_env("VEEAM_USERNAME"),
            veeam_password=self._get_env("VEEAM_PASSWORD"),
        )

        scope = self._get_env("STORAGE_SCOPE")
        if scope:
            settings.storage_scope = scope
        api_version = self._get_env("STORAGE_API_VERSION")
        if api_version:
            settings.storage_api_version = api_version

        verify = self._get_bool("VERIFY_SSL")
        if verify is not None:
            settings.verify_ssl = verify

        timeout = self._get_env("TIMEOUT")
        if timeout:
            try:
                settings.timeout = float(timeout)
            except ValueError as exc:
                raise ValueError(
                    f"{ENV_PREFIX}TIMEOUT must be a number of seconds, got {timeout!r}"
                ) from exc

        return settings

    def save(self, settings: Settings) -> None:
        """Persist non-secret configuration fields to the managed env file."""
        self._env_file.parent.mkdir(parents=True, exist_ok=True)
        content = [
            f"{ENV_PREFIX}TENANT_ID={settings.tenant_id or ''}",
            f"{ENV_PREFIX}CLIENT_ID={settings.client_id or ''}",
            f"{ENV_PREFIX}AUTHORITY={settings.authority or ''}",
            f"{ENV_PREFIX}STORAGE_ACCOUNT={settings.storage_account or ''}",
            f"{ENV_PREFIX}STORAGE_SCOPE={settings.storage_scope}",
            f"{ENV_PREFIX}STORAGE_API_VERSION={settings.storage_api_version}",
            f"{ENV_PREFIX}VEEAM_URI={settings.veeam_uri or ''}",
            f"{ENV_PREFIX}VEEAM_USERNAME={settings.veeam_username or ''}",
            f"{ENV_PREFIX}VERIFY_SSL={'true' if settings.verify_ssl else 'false'}",
            f"{ENV_PREFIX}TIMEOUT={settings.timeout:g}",
        ]
        self._env_file.write_text("\n".join(content) + "\n", encoding="utf-8")

    def _get_env(self, name: str) -> str | None:
        return os.getenv(f"{ENV_PREFIX}{name}") or None

    def _get_bool(self, name: str) -> bool | None:
        raw = self._get_env(name)
        if raw is None:
            return None
        lowered = raw.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
        raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


__all__ = [
    "APP_NAME",
    "DEFAULT_STORAGE_API_VERSION",
    "DEFAULT_STORAGE_SCOPE",
    "ENV_PREFIX",
    "Settings",
    "SettingsManager",
    "cache_dir",
    "config_dir",
    "log_dir",
]

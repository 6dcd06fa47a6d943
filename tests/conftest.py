from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from azure_backup_client.config import SettingsManager
from azure_backup_client.config.settings import ENV_PREFIX
from azure_backup_client.utils import LoggingOptions, configure_logging


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop any developer configuration so tests only see what they set."""

    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True, scope="session")
def console_only_logging() -> None:
    """Keep test runs from writing into the user's cache directory."""

    configure_logging(LoggingOptions(level="ERROR", file_logging=False))


@pytest.fixture
def settings_manager(tmp_path) -> SettingsManager:
    """SettingsManager bound to a throwaway env file."""

    return SettingsManager(env_file=tmp_path / "settings.env")

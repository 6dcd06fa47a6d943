"""Command line entry point.

Usage:
    azure-backup-client storage list-containers
    azure-backup-client storage upload backups report.txt ./report.txt --access-tier Cool
    azure-backup-client veeam policies --username admin
"""

from __future__ import annotations

import argparse
import getpass
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Sequence, TextIO

import httpx
from pydantic import BaseModel

from azure_backup_client.auth import MfaChallenge, SecretStore
from azure_backup_client.auth.secret_store import CLIENT_SECRET_KEY, veeam_password_key
from azure_backup_client.bootstrap import (
    build_storage_services,
    build_veeam_client,
    resolve_veeam_password,
)
from azure_backup_client.config import Settings, SettingsManager
from azure_backup_client.utils import LoggingOptions, configure_logging, get_logger
from azure_backup_client.utils.errors import describe_exception


logger = get_logger(__name__)

Prompt = Callable[[str], str]

_SECRET_FIELDS = {"client_secret", "veeam_password"}


class CommandContext:
    """Dependencies shared by subcommands; overridable from tests."""

    def __init__(
        self,
        *,
        settings_manager: SettingsManager | None = None,
        secret_store_factory: Callable[[], SecretStore] | None = None,
        transport: httpx.BaseTransport | None = None,
        stdout: TextIO | None = None,
        prompt: Prompt | None = None,
        secret_prompt: Prompt | None = None,
    ) -> None:
        self.settings_manager = settings_manager or SettingsManager()
        self._secret_store_factory = secret_store_factory or SecretStore
        self._secret_store: SecretStore | None = None
        self.transport = transport
        self.stdout = stdout or sys.stdout
        self.prompt = prompt or input
        self.secret_prompt = secret_prompt or getpass.getpass
        self._settings: Settings | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = self.settings_manager.load()
        return self._settings

    def secret_store(self) -> SecretStore:
        if self._secret_store is None:
            self._secret_store = self._secret_store_factory()
        return self._secret_store

    def emit(self, payload: Any) -> None:
        self.stdout.write(json.dumps(_to_jsonable(payload), indent=2, default=str))
        self.stdout.write("\n")


def _to_jsonable(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if isinstance(payload, list):
        return [_to_jsonable(item) for item in payload]
    if isinstance(payload, dict):
        return {key: _to_jsonable(value) for key, value in payload.items()}
    return payload


def _parse_metadata(pairs: Sequence[str] | None) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for pair in pairs or ():
        key, separator, value = pair.partition("=")
        if not separator or not key:
            raise ValueError(f"Metadata must be given as key=value, got {pair!r}")
        metadata[key] = value
    return metadata


# ---------------------------------------------------------------- storage


def _storage_services(ctx: CommandContext):
    settings = ctx.settings
    store = None if settings.client_secret else ctx.secret_store()
    services = build_storage_services(
        settings,
        secret_store=store,
        transport=ctx.transport,
    )
    services.tokens.acquire_token()
    return services


def cmd_create_container(args: argparse.Namespace, ctx: CommandContext) -> int:
    services = _storage_services(ctx)
    try:
        result = services.blobs.create_container(
            args.name,
            metadata=_parse_metadata(args.metadata),
        )
    finally:
        services.close()
    ctx.emit(result)
    return 0


def cmd_list_containers(args: argparse.Namespace, ctx: CommandContext) -> int:
    services = _storage_services(ctx)
    try:
        containers = services.blobs.list_containers(
            prefix=args.prefix,
            max_results=args.max_results,
            include_metadata=args.include_metadata,
        )
    finally:
        services.close()
    ctx.emit(containers)
    return 0


def cmd_upload(args: argparse.Namespace, ctx: CommandContext) -> int:
    data = Path(args.file).read_bytes()
    services = _storage_services(ctx)
    try:
        result = services.blobs.upload_blob(
            args.container,
            args.blob,
            data,
            access_tier=args.access_tier,
            content_disposition=args.content_disposition,
            content_type=args.content_type,
            metadata=_parse_metadata(args.metadata),
        )
    finally:
        services.close()
    ctx.emit(result)
    return 0


def cmd_list_blobs(args: argparse.Namespace, ctx: CommandContext) -> int:
    services = _storage_services(ctx)
    try:
        blobs = services.blobs.list_blobs(
            args.container,
            prefix=args.prefix,
            max_results=args.max_results,
        )
    finally:
        services.close()
    ctx.emit(blobs)
    return 0


# ------------------------------------------------------------------ veeam


def cmd_veeam_policies(args: argparse.Namespace, ctx: CommandContext) -> int:
    settings = ctx.settings
    username = args.username or settings.veeam_username
    if not username:
        username = ctx.prompt("Veeam username: ").strip()
    password = resolve_veeam_password(
        settings,
        username,
        None if settings.veeam_password else _optional_secret_store(ctx),
    )
    if not password:
        password = ctx.secret_prompt(f"Password for {username}: ")

    with build_veeam_client(settings, transport=ctx.transport) as client:
        result = client.auth.sign_in(username, password)
        if isinstance(result, MfaChallenge):
            code = args.mfa_code or ctx.prompt("MFA code: ").strip()
            client.auth.complete_mfa(result, code)
        page = client.list_policies(offset=args.offset, limit=args.limit)
    ctx.emit(page)
    return 0


def _optional_secret_store(ctx: CommandContext) -> SecretStore | None:
    try:
        return ctx.secret_store()
    except RuntimeError as exc:
        logger.warning("Keyring unavailable; falling back to prompt", error=str(exc))
        return None


# ----------------------------------------------------------------- config


def cmd_config_show(args: argparse.Namespace, ctx: CommandContext) -> int:
    values = asdict(ctx.settings)
    for key in _SECRET_FIELDS:
        if values.get(key):
            values[key] = "***"
    values["env_file"] = str(ctx.settings_manager.env_file)
    ctx.emit(values)
    return 0


def cmd_config_save(args: argparse.Namespace, ctx: CommandContext) -> int:
    settings = ctx.settings
    for field_name in (
        "tenant_id",
        "client_id",
        "authority",
        "storage_account",
        "veeam_uri",
        "veeam_username",
    ):
        value = getattr(args, field_name)
        if value is not None:
            setattr(settings, field_name, value)
    ctx.settings_manager.save(settings)
    logger.info("Saved settings", path=str(ctx.settings_manager.env_file))
    ctx.emit({"saved": str(ctx.settings_manager.env_file)})
    return 0


def cmd_config_set_secret(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.name == "client-secret":
        key = CLIENT_SECRET_KEY
        label = "Client secret: "
    else:
        username = args.username or ctx.settings.veeam_username
        if not username:
            raise ValueError("--username is required to store a Veeam password")
        key = veeam_password_key(username)
        label = f"Password for {username}: "
    value = ctx.secret_prompt(label)
    if not value:
        raise ValueError("Refusing to store an empty secret")
    ctx.secret_store().set_secret(key, value)
    ctx.emit({"stored": key})
    return 0


# ----------------------------------------------------------------- parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="azure-backup-client",
        description="Call the Azure Storage Blob and Veeam Backup for Microsoft Azure REST APIs.",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose console logging")
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Do not write the rotating log file",
    )
    groups = parser.add_subparsers(dest="group", required=True)

    storage = groups.add_parser("storage", help="Azure Storage Blob operations")
    storage_cmds = storage.add_subparsers(dest="command", required=True)

    create = storage_cmds.add_parser("create-container", help="Create a container")
    create.add_argument("name")
    create.add_argument("--metadata", action="append", metavar="KEY=VALUE")
    create.set_defaults(handler=cmd_create_container)

    list_containers = storage_cmds.add_parser("list-containers", help="List containers")
    list_containers.add_argument("--prefix")
    list_containers.add_argument(
        "--max-results",
        type=int,
        help="Stop after this many items (pages are followed until then)",
    )
    list_containers.add_argument("--include-metadata", action="store_true")
    list_containers.set_defaults(handler=cmd_list_containers)

    upload = storage_cmds.add_parser("upload", help="Upload a file as a block blob")
    upload.add_argument("container")
    upload.add_argument("blob")
    upload.add_argument("file")
    upload.add_argument(
        "--access-tier", choices=["Hot", "Cool", "Cold", "Archive"], default=None
    )
    upload.add_argument("--content-disposition")
    upload.add_argument("--content-type")
    upload.add_argument("--metadata", action="append", metavar="KEY=VALUE")
    upload.set_defaults(handler=cmd_upload)

    list_blobs = storage_cmds.add_parser("list-blobs", help="List blobs in a container")
    list_blobs.add_argument("container")
    list_blobs.add_argument("--prefix")
    list_blobs.add_argument(
        "--max-results",
        type=int,
        help="Stop after this many items (pages are followed until then)",
    )
    list_blobs.set_defaults(handler=cmd_list_blobs)

    veeam = groups.add_parser("veeam", help="Veeam Backup for Microsoft Azure")
    veeam_cmds = veeam.add_subparsers(dest="command", required=True)
    policies = veeam_cmds.add_parser("policies", help="List backup policies")
    policies.add_argument("--username")
    policies.add_argument("--mfa-code")
    policies.add_argument("--offset", type=int)
    policies.add_argument("--limit", type=int)
    policies.set_defaults(handler=cmd_veeam_policies)

    config = groups.add_parser("config", help="Inspect or persist settings")
    config_cmds = config.add_subparsers(dest="command", required=True)
    show = config_cmds.add_parser("show", help="Print the effective settings")
    show.set_defaults(handler=cmd_config_show)
    save = config_cmds.add_parser("save", help="Persist non-secret settings")
    for option in (
        "--tenant-id",
        "--client-id",
        "--authority",
        "--storage-account",
        "--veeam-uri",
        "--veeam-username",
    ):
        save.add_argument(option)
    save.set_defaults(handler=cmd_config_save)
    set_secret = config_cmds.add_parser(
        "set-secret", help="Store a secret in the OS keyring"
    )
    set_secret.add_argument("name", choices=["client-secret", "veeam-password"])
    set_secret.add_argument("--username")
    set_secret.set_defaults(handler=cmd_config_set_secret)

    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    context: CommandContext | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(
        LoggingOptions(debug=args.debug, file_logging=not args.no_log_file)
    )
    ctx = context or CommandContext()
    try:
        return args.handler(args, ctx)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:  # noqa: BLE001 - report every failure to the user
        descriptor = describe_exception(exc)
        logger.debug("Command failed", exc_info=True)
        sys.stderr.write(f"error: {descriptor.headline}\n  {descriptor.detail}\n")
        if descriptor.suggestion:
            sys.stderr.write(f"  hint: {descriptor.suggestion}\n")
        return 1


__all__ = ["CommandContext", "build_parser", "main"]

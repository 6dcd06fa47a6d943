from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime

from pydantic import BaseModel, ConfigDict, Field


class StorageBaseModel(BaseModel):
    """Base class for Blob service listing helpers."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class _ListedResource(StorageBaseModel):
    name: str
    properties: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def etag(self) -> str | None:
        return self.properties.get("Etag")

    @property
    def last_modified(self) -> datetime | None:
        raw = self.properties.get("Last-Modified")
        if not raw:
            return None
        return parsedate_to_datetime(raw)


class ContainerItem(_ListedResource):
    @property
    def public_access(self) -> str | None:
        return self.properties.get("PublicAccess")

    @property
    def lease_state(self) -> str | None:
        return self.properties.get("LeaseState")


class BlobItem(_ListedResource):
    @property
    def blob_type(self) -> str | None:
        return self.properties.get("BlobType")

    @property
    def access_tier(self) -> str | None:
        return self.properties.get("AccessTier")

    @property
    def content_type(self) -> str | None:
        return self.properties.get("Content-Type")

    @property
    def content_length(self) -> int | None:
        raw = self.properties.get("Content-Length")
        return int(raw) if raw else None


class ContainerListing(StorageBaseModel):
    service_endpoint: str | None = None
    prefix: str | None = None
    next_marker: str | None = None
    containers: list[ContainerItem] = Field(default_factory=list)


class BlobListing(StorageBaseModel):
    service_endpoint: str | None = None
    container_name: str | None = None
    prefix: str | None = None
    next_marker: str | None = None
    blobs: list[BlobItem] = Field(default_factory=list)
    blob_prefixes: list[str] = Field(default_factory=list)


class OperationResult(StorageBaseModel):
    """Headers returned by a successful container or blob write."""

    status_code: int
    etag: str | None = None
    last_modified: str | None = None
    request_id: str | None = None
    version: str | None = None
    content_md5: str | None = None
    request_server_encrypted: bool | None = None


__all__ = [
    "BlobItem",
    "BlobListing",
    "ContainerItem",
    "ContainerListing",
    "OperationResult",
    "StorageBaseModel",
]

from __future__ import annotations

import re
import time
from email.utils import formatdate
from typing import Any, Callable, Iterator, Literal, Mapping, TypeVar
from urllib.parse import quote

import httpx

from azure_backup_client.auth.token_holder import TokenHolder
from azure_backup_client.config.settings import DEFAULT_STORAGE_API_VERSION, Settings
from azure_backup_client.rest.client import RestClient, RestClientConfig
from azure_backup_client.storage.listing import (
    parse_blob_listing,
    parse_container_listing,
)
from azure_backup_client.storage.models import (
    BlobItem,
    BlobListing,
    ContainerItem,
    ContainerListing,
    OperationResult,
)
from azure_backup_client.utils import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

AccessTier = Literal["Hot", "Cool", "Cold", "Archive"]

MAX_PAGE_SIZE = 5000

_CONTAINER_NAME = re.compile(r"^(?!.*--)[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")
_METADATA_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_container_name(name: str) -> str:
    """Reject names the Blob service would refuse (3-63 chars, lowercase, single hyphens)."""

    if name == "$root" or _CONTAINER_NAME.match(name):
        return name
    raise ValueError(
        f"Invalid container name {name!r}: use 3-63 lowercase letters, digits "
        "or single hyphens, starting and ending with a letter or digit"
    )


def _paginate(
    fetch: Callable[[str | None, int | None], tuple[list[T], str | None]],
    limit: int | None,
) -> Iterator[T]:
    """Follow ``NextMarker`` until the listing ends or ``limit`` items were yielded."""

    if limit is not None and limit < 1:
        raise ValueError("max_results must be at least 1")
    marker: str | None = None
    remaining = limit
    while True:
        page_size = None if remaining is None else min(remaining, MAX_PAGE_SIZE)
        items, next_marker = fetch(marker, page_size)
        if remaining is not None:
            items = items[:remaining]
            remaining -= len(items)
        yield from items
        if not next_marker or remaining == 0:
            return
        marker = next_marker


def _metadata_headers(metadata: Mapping[str, str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for key, value in (metadata or {}).items():
        if not _METADATA_NAME.match(key):
            raise ValueError(f"Invalid metadata name {key!r}")
        headers[f"x-ms-meta-{key}"] = value
    return headers


class BlobStorageClient:
    """Container and block blob operations against ``{account}.blob.core.windows.net``.

    Every request carries ``Authorization: Bearer <token>`` from the shared
    token holder plus ``x-ms-date`` and ``x-ms-version``.
    """

    def __init__(
        self,
        rest_client: RestClient,
        *,
        api_version: str = DEFAULT_STORAGE_API_VERSION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._rest = rest_client
        self._api_version = api_version
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        token_holder: TokenHolder,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> "BlobStorageClient":
        config = RestClientConfig(
            base_url=settings.storage_endpoint,
            timeout=settings.timeout,
            verify_ssl=settings.verify_ssl,
        )
        return cls(
            RestClient(config, token_holder, transport=transport),
            api_version=settings.storage_api_version,
        )

    @property
    def api_version(self) -> str:
        return self._api_version

    def create_container(
        self,
        name: str,
        *,
        metadata: Mapping[str, str] | None = None,
    ) -> OperationResult:
        validate_container_name(name)
        headers = self._headers(_metadata_headers(metadata))
        response = self._rest.request(
            "PUT",
            f"/{quote(name)}",
            params={"restype": "container"},
            headers=headers,
        )
        logger.info("Created container", container=name)
        return self._operation_result(response)

    def list_containers_page(
        self,
        *,
        prefix: str | None = None,
        max_results: int | None = None,
        marker: str | None = None,
        include_metadata: bool = False,
    ) -> ContainerListing:
        params = self._listing_params(prefix, max_results, marker)
        if include_metadata:
            params["include"] = "metadata"
        text = self._rest.request_text(
            "GET",
            "/",
            params=params,
            headers=self._headers(),
        )
        return parse_container_listing(text)

    def iter_containers(
        self,
        *,
        limit: int | None = None,
        **filters: Any,
    ) -> Iterator[ContainerItem]:
        def fetch(
            marker: str | None, page_size: int | None
        ) -> tuple[list[ContainerItem], str | None]:
            page = self.list_containers_page(
                marker=marker, max_results=page_size, **filters
            )
            return page.containers, page.next_marker

        return _paginate(fetch, limit)

    def list_containers(
        self,
        *,
        prefix: str | None = None,
        max_results: int | None = None,
        include_metadata: bool = False,
    ) -> list[ContainerItem]:
        """Return containers across ``NextMarker`` pages.

        ``max_results`` caps the total number of containers returned, not
        the size of each page.
        """

        return list(
            self.iter_containers(
                limit=max_results,
                prefix=prefix,
                include_metadata=include_metadata,
            )
        )

    def upload_blob(
        self,
        container: str,
        blob_name: str,
        data: bytes | str,
        *,
        access_tier: AccessTier | None = None,
        content_disposition: str | None = None,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> OperationResult:
        validate_container_name(container)
        if not blob_name:
            raise ValueError("Blob name cannot be empty")
        body = data.encode("utf-8") if isinstance(data, str) else bytes(data)

        extra = {"x-ms-blob-type": "BlockBlob"}
        if access_tier:
            extra["x-ms-access-tier"] = access_tier
        if content_disposition:
            extra["x-ms-blob-content-disposition"] = content_disposition
        if content_type is None:
            content_type = (
                "text/plain; charset=UTF-8"
                if isinstance(data, str)
                else "application/octet-stream"
            )
        extra["Content-Type"] = content_type
        extra.update(_metadata_headers(metadata))

        response = self._rest.request(
            "PUT",
            self._blob_path(container, blob_name),
            headers=self._headers(extra),
            content=body,
        )
        logger.info(
            "Uploaded block blob",
            container=container,
            blob=blob_name,
            size=len(body),
            access_tier=access_tier,
        )
        return self._operation_result(response)

    def list_blobs_page(
        self,
        container: str,
        *,
        prefix: str | None = None,
        max_results: int | None = None,
        marker: str | None = None,
        delimiter: str | None = None,
    ) -> BlobListing:
        validate_container_name(container)
        params = self._listing_params(prefix, max_results, marker)
        if delimiter:
            params["delimiter"] = delimiter
        text = self._rest.request_text(
            "GET",
            f"/{quote(container)}",
            params=params,
            headers=self._headers(),
        )
        return parse_blob_listing(text)

    def iter_blobs(
        self,
        container: str,
        *,
        limit: int | None = None,
        **filters: Any,
    ) -> Iterator[BlobItem]:
        def fetch(
            marker: str | None, page_size: int | None
        ) -> tuple[list[BlobItem], str | None]:
            page = self.list_blobs_page(
                container, marker=marker, max_results=page_size, **filters
            )
            return page.blobs, page.next_marker

        return _paginate(fetch, limit)

    def list_blobs(
        self,
        container: str,
        *,
        prefix: str | None = None,
        max_results: int | None = None,
    ) -> list[BlobItem]:
        """Return blobs in ``container`` across pages, at most ``max_results`` of them."""

        return list(self.iter_blobs(container, limit=max_results, prefix=prefix))

    def close(self) -> None:
        self._rest.close()

    def __enter__(self) -> "BlobStorageClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------- Internals

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "x-ms-date": formatdate(self._clock(), usegmt=True),
            "x-ms-version": self._api_version,
        }
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _listing_params(
        prefix: str | None,
        max_results: int | None,
        marker: str | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"restype": "container", "comp": "list"}
        if prefix:
            params["prefix"] = prefix
        if max_results is not None:
            if max_results < 1 or max_results > MAX_PAGE_SIZE:
                raise ValueError(f"max_results must be between 1 and {MAX_PAGE_SIZE}")
            params["maxresults"] = max_results
        if marker:
            params["marker"] = marker
        return params

    @staticmethod
    def _blob_path(container: str, blob_name: str) -> str:
        return f"/{quote(container)}/{quote(blob_name, safe='/')}"

    @staticmethod
    def _operation_result(response: httpx.Response) -> OperationResult:
        encrypted = response.headers.get("x-ms-request-server-encrypted")
        return OperationResult(
            status_code=response.status_code,
            etag=response.headers.get("ETag"),
            last_modified=response.headers.get("Last-Modified"),
            request_id=response.headers.get("x-ms-request-id"),
            version=response.headers.get("x-ms-version"),
            content_md5=response.headers.get("Content-MD5"),
            request_server_encrypted=(
                encrypted.lower() == "true" if encrypted is not None else None
            ),
        )


__all__ = ["AccessTier", "BlobStorageClient", "validate_container_name"]

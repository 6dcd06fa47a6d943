from __future__ import annotations

import httpx
import pytest
import respx

from azure_backup_client.auth import TokenHolder
from azure_backup_client.rest import ApiError, AuthenticationError, ConflictError
from azure_backup_client.storage import BlobStorageClient, validate_container_name

from tests.factories import (
    STORAGE_URL,
    blob_listing_xml,
    container_listing_xml,
    holder_with_token,
    make_settings,
)


EPOCH_DATE = "Thu, 01 Jan 1970 00:00:00 GMT"


def _client(holder: TokenHolder | None = None) -> BlobStorageClient:
    client = BlobStorageClient.from_settings(
        make_settings(),
        holder or holder_with_token(access_token="storage-token"),
    )
    client._clock = lambda: 0.0
    return client


def _assert_service_headers(request: httpx.Request) -> None:
    assert request.headers["Authorization"] == "Bearer storage-token"
    assert request.headers["x-ms-date"] == EPOCH_DATE
    assert request.headers["x-ms-version"] == "2021-04-10"


def test_create_container_sends_put_with_restype(respx_mock: respx.Router) -> None:
    route = respx_mock.put(f"{STORAGE_URL}/backups").mock(
        return_value=httpx.Response(
            201,
            headers={
                "ETag": '"0x8D1"',
                "Last-Modified": "Mon, 19 Oct 2026 10:00:00 GMT",
                "x-ms-request-id": "req-1",
                "x-ms-version": "2021-04-10",
            },
        )
    )

    with _client() as client:
        result = client.create_container("backups", metadata={"owner": "ops"})

    request = route.calls.last.request
    _assert_service_headers(request)
    assert request.url.params["restype"] == "container"
    assert request.headers["x-ms-meta-owner"] == "ops"
    assert result.status_code == 201
    assert result.etag == '"0x8D1"'
    assert result.request_id == "req-1"


def test_create_existing_container_raises_conflict(respx_mock: respx.Router) -> None:
    respx_mock.put(f"{STORAGE_URL}/backups").mock(
        return_value=httpx.Response(
            409,
            content=(
                b"\xef\xbb\xbf<?xml version=\"1.0\" encoding=\"utf-8\"?>"
                b"<Error><Code>ContainerAlreadyExists</Code>"
                b"<Message>The specified container already exists.</Message></Error>"
            ),
            headers={"Content-Type": "application/xml"},
        )
    )

    with pytest.raises(ConflictError) as excinfo:
        _client().create_container("backups")

    assert excinfo.value.code == "ContainerAlreadyExists"
    assert excinfo.value.request_url.endswith("/backups?restype=container")


@pytest.mark.parametrize("name", ["ab", "Backups", "bad--name", "-lead", "trail-", "a" * 64])
def test_invalid_container_names_are_rejected_before_sending(name: str) -> None:
    with pytest.raises(ValueError):
        _client().create_container(name)


def test_root_container_name_is_allowed() -> None:
    assert validate_container_name("$root") == "$root"


@pytest.mark.respx(assert_all_called=False)
def test_operations_without_token_send_nothing(respx_mock: respx.Router) -> None:
    route = respx_mock.route(host="contosobackups.blob.core.windows.net")
    client = _client(TokenHolder("Azure Storage"))

    with pytest.raises(AuthenticationError):
        client.create_container("backups")
    with pytest.raises(AuthenticationError):
        client.list_containers()
    with pytest.raises(AuthenticationError):
        client.upload_blob("backups", "a.txt", b"x")
    with pytest.raises(AuthenticationError):
        client.list_blobs("backups")

    assert not route.called


def test_list_containers_parses_bom_prefixed_listing(respx_mock: respx.Router) -> None:
    route = respx_mock.get(f"{STORAGE_URL}/").mock(
        return_value=httpx.Response(
            200,
            content=container_listing_xml(["alpha", "beta"]),
            headers={"Content-Type": "application/xml"},
        )
    )

    containers = _client().list_containers()

    request = route.calls.last.request
    _assert_service_headers(request)
    assert dict(request.url.params) == {"restype": "container", "comp": "list"}
    assert [container.name for container in containers] == ["alpha", "beta"]
    assert containers[0].lease_state == "available"
    assert containers[0].etag == '"0x8D0"'


def test_list_containers_follows_next_marker(respx_mock: respx.Router) -> None:
    route = respx_mock.get(f"{STORAGE_URL}/").mock(
        side_effect=[
            httpx.Response(200, content=container_listing_xml(["alpha"], next_marker="page2")),
            httpx.Response(200, content=container_listing_xml(["beta"])),
        ]
    )

    names = [container.name for container in _client().list_containers()]

    assert names == ["alpha", "beta"]
    first, second = (call.request.url.params for call in route.calls)
    assert "maxresults" not in first
    assert "marker" not in first
    assert second["marker"] == "page2"


def test_list_containers_stops_after_max_results(respx_mock: respx.Router) -> None:
    route = respx_mock.get(f"{STORAGE_URL}/").mock(
        side_effect=[
            httpx.Response(
                200, content=container_listing_xml(["alpha", "beta"], next_marker="page2")
            ),
            httpx.Response(
                200, content=container_listing_xml(["gamma"], next_marker="page3")
            ),
        ]
    )

    containers = _client().list_containers(max_results=3)

    assert [container.name for container in containers] == ["alpha", "beta", "gamma"]
    assert route.call_count == 2
    first, second = (call.request.url.params for call in route.calls)
    assert first["maxresults"] == "3"
    assert second["maxresults"] == "1"
    assert second["marker"] == "page2"


def test_list_blobs_truncates_oversized_page(respx_mock: respx.Router) -> None:
    route = respx_mock.get(f"{STORAGE_URL}/backups").mock(
        return_value=httpx.Response(
            200,
            content=blob_listing_xml(
                "backups", [("a", 1), ("b", 2), ("c", 3)], next_marker="more"
            ),
        )
    )

    blobs = _client().list_blobs("backups", max_results=2)

    assert [blob.name for blob in blobs] == ["a", "b"]
    assert route.call_count == 1


@pytest.mark.parametrize("max_results", [0, -1])
def test_list_containers_rejects_non_positive_cap(max_results: int) -> None:
    with pytest.raises(ValueError):
        _client().list_containers(max_results=max_results)


def test_list_containers_page_passes_filters(respx_mock: respx.Router) -> None:
    route = respx_mock.get(f"{STORAGE_URL}/").mock(
        return_value=httpx.Response(200, content=container_listing_xml([], next_marker="m"))
    )

    page = _client().list_containers_page(prefix="bk", include_metadata=True)

    params = route.calls.last.request.url.params
    assert params["prefix"] == "bk"
    assert params["include"] == "metadata"
    assert page.containers == []
    assert page.next_marker == "m"


def test_max_results_is_bounded() -> None:
    with pytest.raises(ValueError):
        _client().list_containers_page(max_results=5001)


def test_upload_blob_sends_block_blob_headers(respx_mock: respx.Router) -> None:
    route = respx_mock.put(f"{STORAGE_URL}/backups/daily/report.txt").mock(
        return_value=httpx.Response(
            201,
            headers={"Content-MD5": "abc==", "x-ms-request-server-encrypted": "true"},
        )
    )

    result = _client().upload_blob(
        "backups",
        "daily/report.txt",
        "hello world",
        access_tier="Cool",
        content_disposition='attachment; filename="report.txt"',
    )

    request = route.calls.last.request
    _assert_service_headers(request)
    assert request.headers["x-ms-blob-type"] == "BlockBlob"
    assert request.headers["x-ms-access-tier"] == "Cool"
    assert request.headers["x-ms-blob-content-disposition"] == 'attachment; filename="report.txt"'
    assert request.headers["Content-Type"] == "text/plain; charset=UTF-8"
    assert request.content == b"hello world"
    assert result.content_md5 == "abc=="
    assert result.request_server_encrypted is True


def test_upload_binary_blob_omits_optional_headers(respx_mock: respx.Router) -> None:
    route = respx_mock.put(f"{STORAGE_URL}/backups/image.bin").mock(
        return_value=httpx.Response(201)
    )

    _client().upload_blob("backups", "image.bin", b"\x00\x01")

    request = route.calls.last.request
    assert request.headers["Content-Type"] == "application/octet-stream"
    assert "x-ms-access-tier" not in request.headers
    assert "x-ms-blob-content-disposition" not in request.headers
    assert request.headers["Content-Length"] == "2"


def test_upload_rejects_empty_blob_name() -> None:
    with pytest.raises(ValueError):
        _client().upload_blob("backups", "", b"x")


def test_list_blobs_parses_listing_and_pages(respx_mock: respx.Router) -> None:
    route = respx_mock.get(f"{STORAGE_URL}/backups").mock(
        side_effect=[
            httpx.Response(
                200,
                content=blob_listing_xml("backups", [("a.txt", 5)], next_marker="n1"),
            ),
            httpx.Response(200, content=blob_listing_xml("backups", [("b.txt", 7)])),
        ]
    )

    blobs = _client().list_blobs("backups", prefix="")

    assert [(blob.name, blob.content_length) for blob in blobs] == [("a.txt", 5), ("b.txt", 7)]
    assert blobs[0].blob_type == "BlockBlob"
    assert blobs[0].access_tier == "Hot"
    first = route.calls[0].request
    _assert_service_headers(first)
    assert first.url.params["restype"] == "container"
    assert first.url.params["comp"] == "list"
    assert route.calls[1].request.url.params["marker"] == "n1"


def test_missing_container_surfaces_not_found(respx_mock: respx.Router) -> None:
    respx_mock.get(f"{STORAGE_URL}/missing").mock(
        return_value=httpx.Response(
            404,
            content=b"<Error><Code>ContainerNotFound</Code><Message>gone</Message></Error>",
        )
    )

    with pytest.raises(ApiError) as excinfo:
        _client().list_blobs("missing")

    assert excinfo.value.code == "ContainerNotFound"
    assert excinfo.value.status_code == 404

from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest
import respx

from azure_backup_client.rest import AuthenticationError, PermissionError
from azure_backup_client.rest.client import RestClient, RestClientConfig
from azure_backup_client.veeam import POLICIES_PATH, PolicyPage, VeeamClient

from tests.factories import VEEAM_URL, make_settings


TOKEN_URL = f"{VEEAM_URL}/api/oauth2/token"
POLICIES_URL = f"{VEEAM_URL}{POLICIES_PATH}"

POLICIES = {
    "offset": 0,
    "limit": 2,
    "totalCount": 3,
    "results": [
        {"id": "p-1", "name": "Daily VMs", "isEnabled": True},
        {"id": "p-2", "name": "SQL hourly", "isEnabled": False},
    ],
    "_links": {"self": {"href": "/api/v3/policies"}},
}


@pytest.fixture
def client() -> Iterator[VeeamClient]:
    veeam = VeeamClient.from_settings(make_settings())
    yield veeam
    veeam.close()


def _sign_in(client: VeeamClient, respx_mock: respx.Router) -> None:
    respx_mock.post(TOKEN_URL).mock(
        return_value=httpx.Response(
            200,
            json={"access_token": "veeam-access", "token_type": "Bearer", "expires_in": 3600},
        )
    )
    client.auth.sign_in("restadmin", "P@ssw0rd")


def test_list_policies_sends_bearer_and_parses_page(
    client: VeeamClient,
    respx_mock: respx.Router,
) -> None:
    _sign_in(client, respx_mock)
    route = respx_mock.get(POLICIES_URL).mock(return_value=httpx.Response(200, json=POLICIES))

    page = client.list_policies(offset=0, limit=2)

    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer veeam-access"
    assert request.headers["Accept"] == "application/json"
    assert dict(request.url.params) == {"Offset": "0", "Limit": "2"}
    assert page.total_count == 3
    assert page.names() == ["Daily VMs", "SQL hourly"]
    assert page.has_more is True


def test_list_policies_without_filters_sends_no_query(
    client: VeeamClient,
    respx_mock: respx.Router,
) -> None:
    _sign_in(client, respx_mock)
    route = respx_mock.get(POLICIES_URL).mock(
        return_value=httpx.Response(200, json={"results": [], "totalCount": 0})
    )

    page = client.list_policies()

    assert route.calls.last.request.url.query == b""
    assert page.results == []
    assert page.has_more is False


@pytest.mark.respx(assert_all_called=False)
def test_list_policies_before_sign_in_sends_nothing(
    client: VeeamClient,
    respx_mock: respx.Router,
) -> None:
    route = respx_mock.get(POLICIES_URL)

    with pytest.raises(AuthenticationError, match="authenticate first"):
        client.list_policies()

    assert not route.called


@pytest.mark.respx(assert_all_called=False)
def test_list_policies_while_mfa_pending_sends_nothing(
    client: VeeamClient,
    respx_mock: respx.Router,
) -> None:
    respx_mock.post(TOKEN_URL).mock(
        return_value=httpx.Response(200, json={"mfa_enabled": True, "mfa_token": "m"})
    )
    route = respx_mock.get(POLICIES_URL)

    client.auth.sign_in("restadmin", "P@ssw0rd")
    with pytest.raises(AuthenticationError):
        client.list_policies()

    assert not route.called


@pytest.mark.respx(assert_all_called=False)
def test_second_sign_in_pending_mfa_blocks_policies(
    client: VeeamClient,
    respx_mock: respx.Router,
) -> None:
    respx_mock.post(TOKEN_URL).mock(
        side_effect=[
            httpx.Response(200, json={"access_token": "veeam-access", "expires_in": 3600}),
            httpx.Response(200, json={"mfa_enabled": True, "mfa_token": "m"}),
        ]
    )
    route = respx_mock.get(POLICIES_URL)

    client.auth.sign_in("restadmin", "P@ssw0rd")
    client.auth.sign_in("operator", "P@ssw0rd")
    with pytest.raises(AuthenticationError, match="authenticate first"):
        client.list_policies()

    assert not route.called


def test_forbidden_policies_map_to_permission_error(
    client: VeeamClient,
    respx_mock: respx.Router,
) -> None:
    _sign_in(client, respx_mock)
    respx_mock.get(POLICIES_URL).mock(
        return_value=httpx.Response(
            403,
            json={"title": "Forbidden", "detail": "Role cannot view policies"},
        )
    )

    with pytest.raises(PermissionError, match="Role cannot view policies"):
        client.list_policies()


def test_policy_page_accepts_bare_list() -> None:
    page = PolicyPage.from_response([{"name": "A"}, {"id": "no-name"}])

    assert page.total_count == 2
    assert page.names() == ["A"]
    assert page.has_more is False


def test_policy_page_keeps_unknown_fields() -> None:
    page = PolicyPage.from_response({"results": [], "links": {"next": None}})

    assert page.model_extra == {"links": {"next": None}}


def test_client_requires_token_holder() -> None:
    with pytest.raises(ValueError):
        VeeamClient(RestClient(RestClientConfig(base_url=VEEAM_URL)))


def test_from_settings_requires_uri() -> None:
    with pytest.raises(ValueError, match="Veeam URI"):
        VeeamClient.from_settings(make_settings(veeam_uri=None))

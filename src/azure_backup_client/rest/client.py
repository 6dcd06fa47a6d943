from __future__ import annotations

import json
import shlex
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping

import httpx

from azure_backup_client.rest.errors import (
    ApiError,
    ApiErrorCategory,
    map_response_to_error,
    strip_bom,
)
from azure_backup_client.utils import get_logger

if TYPE_CHECKING:
    from azure_backup_client.auth.token_holder import TokenHolder


logger = get_logger(__name__)

_SENSITIVE_FIELD_MARKERS = ("password", "token", "code", "secret")


def _is_sensitive_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in _SENSITIVE_FIELD_MARKERS)


@dataclass(slots=True)
class RequestTelemetryEvent:
    method: str
    url: str
    status_code: int | None
    duration_ms: float
    category: ApiErrorCategory | None
    success: bool


class TelemetryClient(httpx.Client):
    """httpx client that maps failures to :class:`ApiError` and reports timings."""

    def __init__(
        self,
        *args: Any,
        telemetry_callback: Callable[[RequestTelemetryEvent], None] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._telemetry_callback = telemetry_callback

    def send(
        self,
        request: httpx.Request,
        *,
        stream: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        start = time.perf_counter()
        try:
            response = super().send(request, stream=stream, **kwargs)
        except httpx.TimeoutException as exc:
            self._publish_telemetry(
                request,
                duration=time.perf_counter() - start,
                status_code=None,
                success=False,
                category=ApiErrorCategory.NETWORK,
            )
            raise ApiError(
                message=f"Timed out waiting for {request.url.host}",
                category=ApiErrorCategory.NETWORK,
                inner_error=exc,
            ) from exc
        except httpx.RequestError as exc:
            self._publish_telemetry(
                request,
                duration=time.perf_counter() - start,
                status_code=None,
                success=False,
                category=ApiErrorCategory.NETWORK,
            )
            raise ApiError(
                message=f"Network error communicating with {request.url.host}: {exc}",
                category=ApiErrorCategory.NETWORK,
                inner_error=exc,
            ) from exc

        if response.status_code >= 400:
            if stream:
                response.read()
            error = map_response_to_error(response)
            self._publish_telemetry(
                request,
                duration=time.perf_counter() - start,
                status_code=response.status_code,
                success=False,
                category=error.category,
            )
            raise error

        self._publish_telemetry(
            request,
            duration=time.perf_counter() - start,
            status_code=response.status_code,
            success=True,
            category=None,
        )
        return response

    def _publish_telemetry(
        self,
        request: httpx.Request,
        *,
        duration: float,
        status_code: int | None,
        success: bool,
        category: ApiErrorCategory | None,
    ) -> None:
        if not self._telemetry_callback:
            return
        event = RequestTelemetryEvent(
            method=request.method,
            url=str(request.url),
            status_code=status_code,
            duration_ms=duration * 1000,
            category=category,
            success=success,
        )
        try:
            self._telemetry_callback(event)
        except Exception:  # pragma: no cover - telemetry shouldn't break requests
            logger.warning("Telemetry callback raised an exception", exc_info=True)


@dataclass(slots=True)
class RestClientConfig:
    base_url: str
    user_agent: str = "AzureBackupClient-Python"
    timeout: float = 30.0
    verify_ssl: bool = True
    default_headers: Mapping[str, str] = field(default_factory=dict)
    enable_telemetry: bool = True
    telemetry_callback: Callable[[RequestTelemetryEvent], None] | None = None


class RestClient:
    """Synchronous REST client that signs requests from a :class:`TokenHolder`.

    Protected calls read the holder on every request and fail with
    :class:`AuthenticationError` before anything is sent when it is empty.
    Pass ``authenticated=False`` for token endpoints.
    """

    def __init__(
        self,
        config: RestClientConfig,
        token_holder: TokenHolder | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._token_holder = token_holder
        self._transport = transport
        self._http_client: TelemetryClient | None = None

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def token_holder(self) -> TokenHolder | None:
        return self._token_holder

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        json_body: Any | None = None,
        data: Mapping[str, Any] | None = None,
        content: bytes | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        client = self._get_http_client()
        request_headers = dict(headers or {})
        extra: dict[str, Any] = {} if authenticated else {"auth": None}
        try:
            response = client.request(
                method,
                path,
                params=params,
                headers=request_headers,
                json=json_body,
                data=data,
                content=content,
                **extra,
            )
        except ApiError as exc:
            self._enrich_error(
                exc,
                method=method,
                path=path,
                params=params,
                headers=request_headers,
                json_body=json_body,
                data=data,
                content=content,
            )
            raise
        return response

    def request_json(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        response = self.request(method, path, **kwargs)
        if not response.content:
            return {}
        try:
            return json.loads(strip_bom(response.text))
        except ValueError as exc:
            raise ApiError(
                message=(
                    f"Expected a JSON body from {method.upper()} {path} "
                    f"but received {response.headers.get('Content-Type', 'no content type')}"
                ),
                category=ApiErrorCategory.UNKNOWN,
                status_code=response.status_code,
                request_id=response.headers.get("x-ms-request-id"),
                inner_error=exc,
                request_method=method.upper(),
                request_url=str(response.request.url),
            ) from exc

    def request_text(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> str:
        """Return the decoded body with any leading byte-order mark removed."""

        response = self.request(method, path, **kwargs)
        return strip_bom(response.text)

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "RestClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------- Internals

    def _bearer_auth(self, request: httpx.Request) -> httpx.Request:
        if self._token_holder is None:
            return request
        request.headers["Authorization"] = self._token_holder.authorization_header()
        return request

    def _get_http_client(self) -> TelemetryClient:
        if self._http_client is None:
            callback = self._config.telemetry_callback
            if callback is None and self._config.enable_telemetry:
                callback = self._default_telemetry_callback
            headers = {"User-Agent": self._config.user_agent}
            headers.update(self._config.default_headers)
            self._http_client = TelemetryClient(
                base_url=self._config.base_url,
                headers=headers,
                auth=self._bearer_auth,
                telemetry_callback=callback,
                verify=self._config.verify_ssl,
                transport=self._transport,
                timeout=httpx.Timeout(self._config.timeout, connect=10.0),
            )
        return self._http_client

    def _enrich_error(
        self,
        error: ApiError,
        *,
        method: str,
        path: str,
        params: Mapping[str, Any] | None,
        headers: Mapping[str, str] | None,
        json_body: Any | None,
        data: Mapping[str, Any] | None,
        content: bytes | None,
    ) -> None:
        url = path
        if not path.startswith(("http://", "https://")):
            url = f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"
        if params:
            query = str(httpx.QueryParams(dict(params)))
            if query:
                separator = "&" if "?" in url else "?"
                url = f"{url}{separator}{query}"
        error.request_method = method.upper()
        error.request_url = url
        logger.debug(
            "Request failed",
            method=error.request_method,
            url=url,
            status_code=error.status_code,
            code=error.code,
            category=error.category.value,
            cli=self.build_cli_example(
                method=method,
                url=url,
                headers=headers,
                json_body=json_body,
                data=data,
                content=content,
            ),
        )

    def build_cli_example(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        json_body: Any | None = None,
        data: Mapping[str, Any] | None = None,
        content: bytes | None = None,
    ) -> str:
        """Render a curl command that reproduces the request without its credentials."""

        tokens: list[str] = ["curl", "-X", method.upper(), url]
        for key, value in self._sanitize_headers(headers).items():
            tokens.extend(["-H", f"{key}: {value}"])
        body = self._serialise_body(json_body, data, content)
        if body is not None:
            tokens.extend(["--data", body])
        return shlex.join(tokens)

    @staticmethod
    def _sanitize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
        if not headers:
            return {}
        sanitized: dict[str, str] = {}
        for key, value in headers.items():
            if key.lower() == "authorization":
                continue
            sanitized[key] = str(value)
        return sanitized

    @staticmethod
    def _serialise_body(
        json_body: Any | None,
        data: Mapping[str, Any] | None,
        content: bytes | None,
    ) -> str | None:
        if json_body is not None:
            try:
                body_text = json.dumps(
                    json_body, ensure_ascii=True, separators=(",", ":")
                )
            except TypeError:
                body_text = repr(json_body)
            return RestClient._truncate_cli_value(body_text)
        if data is not None:
            redacted = {
                key: "***" if _is_sensitive_field(key) else value
                for key, value in data.items()
            }
            return RestClient._truncate_cli_value(str(httpx.QueryParams(redacted)))
        if content is not None:
            return "<binary content>"
        return None

    @staticmethod
    def _truncate_cli_value(value: str, limit: int = 800) -> str:
        compact = value.replace("\n", " ").strip()
        if len(compact) <= limit:
            return compact
        return f"{compact[: limit - 3]}..."

    def _default_telemetry_callback(self, event: RequestTelemetryEvent) -> None:
        logger.debug(
            "HTTP request",
            method=event.method,
            url=event.url,
            status_code=event.status_code,
            duration_ms=round(event.duration_ms, 2),
            success=event.success,
            category=event.category.value if event.category else None,
        )


__all__ = [
    "RequestTelemetryEvent",
    "RestClient",
    "RestClientConfig",
    "TelemetryClient",
]

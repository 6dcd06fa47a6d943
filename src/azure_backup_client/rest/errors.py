from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum

import httpx


UTF8_BOM = "\ufeff"


class ApiErrorCategory(str, Enum):
    PERMISSION = "permission"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    SERVER = "server"
    UNKNOWN = "unknown"


@dataclass
class ApiError(Exception):
    message: str
    category: ApiErrorCategory = ApiErrorCategory.UNKNOWN
    status_code: int | None = None
    code: str | None = None
    request_id: str | None = None
    retry_after: str | None = None
    inner_error: Exception | None = None
    request_method: str | None = None
    request_url: str | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message

    @property
    def recovery_suggestion(self) -> str | None:
        if self.category is ApiErrorCategory.AUTHENTICATION:
            return "Authenticate again and retry the command."
        if self.category is ApiErrorCategory.PERMISSION:
            return (
                "Grant the identity a data-plane role (for example Storage Blob Data "
                "Contributor) or a Veeam role that can read policies."
            )
        if self.category is ApiErrorCategory.RATE_LIMIT:
            if self.retry_after:
                return f"The service throttled the request. Retry after {self.retry_after} seconds."
            return "The service throttled the request. Wait a moment and retry."
        if self.category is ApiErrorCategory.NETWORK:
            return "Check your network connection and the configured endpoint."
        if self.category is ApiErrorCategory.CONFLICT:
            return "The resource already exists or is being deleted."
        if self.category is ApiErrorCategory.NOT_FOUND:
            return "Verify the account, container or endpoint name."
        if self.category is ApiErrorCategory.VALIDATION:
            return "The request was rejected as invalid. Review names and parameters."
        if self.category is ApiErrorCategory.SERVER:
            return "The service reported an internal error. Retry later."
        return None

    @property
    def is_retriable(self) -> bool:
        if self.category in {
            ApiErrorCategory.RATE_LIMIT,
            ApiErrorCategory.NETWORK,
            ApiErrorCategory.SERVER,
        }:
            return True
        if self.status_code and 500 <= self.status_code <= 599:
            return True
        return False


class AuthenticationError(ApiError):
    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ApiErrorCategory.AUTHENTICATION,
            status_code=status_code,
            code=code,
        )


class PermissionError(ApiError):
    def __init__(
        self,
        message: str = "Insufficient permissions",
        *,
        status_code: int | None = 403,
        code: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ApiErrorCategory.PERMISSION,
            status_code=status_code,
            code=code,
        )


class NotFoundError(ApiError):
    def __init__(self, message: str = "Resource not found", *, code: str | None = None) -> None:
        super().__init__(
            message=message,
            category=ApiErrorCategory.NOT_FOUND,
            status_code=404,
            code=code,
        )


class ConflictError(ApiError):
    def __init__(self, message: str = "Resource conflict", *, code: str | None = None) -> None:
        super().__init__(
            message=message,
            category=ApiErrorCategory.CONFLICT,
            status_code=409,
            code=code,
        )


def strip_bom(text: str) -> str:
    """Drop a leading UTF-8 byte-order mark if the service sent one."""

    if text.startswith(UTF8_BOM):
        return text[len(UTF8_BOM) :]
    return text


def _parse_error_body(response: httpx.Response) -> tuple[str | None, str | None]:
    """Extract ``(code, message)`` from an XML or JSON error payload."""

    text = strip_bom(response.text or "").strip()
    if not text:
        return None, None

    content_type = response.headers.get("Content-Type", "")
    if text.startswith("<") or "xml" in content_type:
        try:
            root = ET.fromstring(text)
        except ET.ParseError:
            return None, text
        return root.findtext("Code"), root.findtext("Message")

    try:
        body = json.loads(text)
    except ValueError:
        return None, text
    if not isinstance(body, dict):
        return None, text

    error_info = body.get("error")
    if isinstance(error_info, dict):
        return error_info.get("code"), error_info.get("message")
    if isinstance(error_info, str):
        # OAuth2 token endpoint style
        return error_info, body.get("error_description") or error_info

    code = body.get("errorCode") or body.get("code") or body.get("title")
    message = body.get("message") or body.get("detail") or body.get("title")
    return (
        code if isinstance(code, str) else None,
        message if isinstance(message, str) else None,
    )


def map_response_to_error(response: httpx.Response) -> ApiError:
    status = response.status_code
    retry_after = response.headers.get("Retry-After")
    request_id = response.headers.get("x-ms-request-id") or response.headers.get(
        "x-request-id"
    )
    code, message = _parse_error_body(response)
    message = message or f"Request failed with status {status}"

    error: ApiError
    if status == 401:
        error = AuthenticationError(message=message, status_code=status, code=code)
    elif status == 403:
        error = PermissionError(message=message, status_code=status, code=code)
    elif status == 404:
        error = NotFoundError(message=message, code=code)
    elif status == 409:
        error = ConflictError(message=message, code=code)
    else:
        category = ApiErrorCategory.UNKNOWN
        if status == 429:
            category = ApiErrorCategory.RATE_LIMIT
        elif 500 <= status <= 599:
            category = ApiErrorCategory.SERVER
        elif 400 <= status <= 499:
            category = ApiErrorCategory.VALIDATION
        error = ApiError(
            message=message,
            category=category,
            status_code=status,
            code=code,
        )

    error.request_id = request_id
    error.retry_after = retry_after
    return error


__all__ = [
    "ApiError",
    "ApiErrorCategory",
    "AuthenticationError",
    "ConflictError",
    "NotFoundError",
    "PermissionError",
    "UTF8_BOM",
    "map_response_to_error",
    "strip_bom",
]

from __future__ import annotations

import socket
from dataclasses import dataclass
from enum import Enum

import httpx

from azure_backup_client.rest.errors import ApiError, ApiErrorCategory


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class ErrorDescriptor:
    headline: str
    detail: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    transient: bool = False
    suggestion: str | None = None


def describe_exception(error: Exception) -> ErrorDescriptor:
    """Summarise an exception for display on the command line."""

    descriptor = ErrorDescriptor(
        headline="Operation failed.",
        detail=f"{type(error).__name__}: {error}",
    )

    api_error = _locate_api_error(error)
    if api_error is not None:
        descriptor.headline = _api_headline(api_error)
        descriptor.detail = _format_api_detail(api_error)
        descriptor.suggestion = api_error.recovery_suggestion
        descriptor.transient = api_error.is_retriable
        if api_error.is_retriable:
            descriptor.severity = ErrorSeverity.WARNING
        return descriptor

    if isinstance(error, httpx.TimeoutException):
        descriptor.headline = "The request timed out."
        descriptor.severity = ErrorSeverity.WARNING
        descriptor.transient = True
        descriptor.suggestion = "Check your network connection and retry shortly."
        return descriptor

    if isinstance(error, socket.gaierror):
        descriptor.headline = "DNS lookup failed."
        descriptor.severity = ErrorSeverity.WARNING
        descriptor.transient = True
        descriptor.suggestion = "Verify the configured account name or Veeam URI."
        return descriptor

    if isinstance(error, ValueError):
        descriptor.headline = "Invalid input."
        descriptor.detail = str(error)
        return descriptor

    return descriptor


def _locate_api_error(error: Exception) -> ApiError | None:
    current: BaseException | None = error
    visited: set[int] = set()
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        if isinstance(current, ApiError):
            return current
        current = current.__cause__ or current.__context__
    return None


def _api_headline(error: ApiError) -> str:
    match error.category:
        case ApiErrorCategory.AUTHENTICATION:
            return "Authentication is required."
        case ApiErrorCategory.PERMISSION:
            return "The identity lacks permission for this operation."
        case ApiErrorCategory.NOT_FOUND:
            return "The requested resource was not found."
        case ApiErrorCategory.CONFLICT:
            return "The requested change conflicts with existing data."
        case ApiErrorCategory.VALIDATION:
            return "The service rejected the request."
        case ApiErrorCategory.RATE_LIMIT:
            return "The service throttled the request."
        case ApiErrorCategory.NETWORK:
            return "Network issue contacting the service."
        case ApiErrorCategory.SERVER:
            return "The service reported an internal error."
        case _:
            return "Request failed."


def _format_api_detail(error: ApiError) -> str:
    detail = f"{error.code}: {error}" if error.code else str(error)
    if error.request_method and error.request_url:
        detail = f"{detail} ({error.request_method} {error.request_url})"
    if error.request_id:
        detail = f"{detail} [request id {error.request_id}]"
    return detail


__all__ = ["ErrorDescriptor", "ErrorSeverity", "describe_exception"]

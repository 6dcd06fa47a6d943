"""HTTP client and error utilities shared by the storage and Veeam clients."""

from .client import RequestTelemetryEvent, RestClient, RestClientConfig
from .errors import (
    ApiError,
    ApiErrorCategory,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionError,
    strip_bom,
)

__all__ = [
    "ApiError",
    "ApiErrorCategory",
    "AuthenticationError",
    "ConflictError",
    "NotFoundError",
    "PermissionError",
    "RequestTelemetryEvent",
    "RestClient",
    "RestClientConfig",
    "strip_bom",
]

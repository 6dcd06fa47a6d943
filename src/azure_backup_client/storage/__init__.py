"""Azure Storage Blob REST client."""

from .blobs import AccessTier, BlobStorageClient, validate_container_name
from .listing import parse_blob_listing, parse_container_listing
from .models import (
    BlobItem,
    BlobListing,
    ContainerItem,
    ContainerListing,
    OperationResult,
)

__all__ = [
    "AccessTier",
    "BlobItem",
    "BlobListing",
    "BlobStorageClient",
    "ContainerItem",
    "ContainerListing",
    "OperationResult",
    "parse_blob_listing",
    "parse_container_listing",
    "validate_container_name",
]

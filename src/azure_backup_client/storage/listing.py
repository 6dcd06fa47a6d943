from __future__ import annotations

import xml.etree.ElementTree as ET

from azure_backup_client.rest.errors import ApiError, ApiErrorCategory, strip_bom
from azure_backup_client.storage.models import (
    BlobItem,
    BlobListing,
    ContainerItem,
    ContainerListing,
)


def parse_enumeration_results(text: str) -> ET.Element:
    """Parse an ``EnumerationResults`` document.

    The Blob service prefixes listing bodies with a UTF-8 byte-order mark,
    which the XML parser rejects when handed a decoded string, so it is
    removed first.
    """

    try:
        root = ET.fromstring(strip_bom(text).strip())
    except ET.ParseError as exc:
        raise ApiError(
            message=f"Malformed listing response from the Blob service: {exc}",
            category=ApiErrorCategory.UNKNOWN,
            inner_error=exc,
        ) from exc
    if root.tag != "EnumerationResults":
        raise ApiError(
            message=f"Unexpected listing document root <{root.tag}>",
            category=ApiErrorCategory.UNKNOWN,
        )
    return root


def _children_as_dict(element: ET.Element | None) -> dict[str, str]:
    if element is None:
        return {}
    return {child.tag: child.text or "" for child in element}


def _optional_text(root: ET.Element, tag: str) -> str | None:
    value = root.findtext(tag)
    return value or None


def parse_container_listing(text: str) -> ContainerListing:
    root = parse_enumeration_results(text)
    containers = [
        ContainerItem(
            name=element.findtext("Name") or "",
            properties=_children_as_dict(element.find("Properties")),
            metadata=_children_as_dict(element.find("Metadata")),
        )
        for element in root.iterfind("Containers/Container")
    ]
    return ContainerListing(
        service_endpoint=root.get("ServiceEndpoint"),
        prefix=_optional_text(root, "Prefix"),
        next_marker=_optional_text(root, "NextMarker"),
        containers=containers,
    )


def parse_blob_listing(text: str) -> BlobListing:
    root = parse_enumeration_results(text)
    blobs = [
        BlobItem(
            name=element.findtext("Name") or "",
            properties=_children_as_dict(element.find("Properties")),
            metadata=_children_as_dict(element.find("Metadata")),
        )
        for element in root.iterfind("Blobs/Blob")
    ]
    prefixes = [
        element.findtext("Name") or ""
        for element in root.iterfind("Blobs/BlobPrefix")
    ]
    return BlobListing(
        service_endpoint=root.get("ServiceEndpoint"),
        container_name=root.get("ContainerName"),
        prefix=_optional_text(root, "Prefix"),
        next_marker=_optional_text(root, "NextMarker"),
        blobs=blobs,
        blob_prefixes=prefixes,
    )


__all__ = [
    "parse_blob_listing",
    "parse_container_listing",
    "parse_enumeration_results",
]

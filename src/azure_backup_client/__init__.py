"""Minimal authenticated clients for the Azure Storage Blob and Veeam Backup REST APIs."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]

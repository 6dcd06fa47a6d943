"""Veeam Backup for Microsoft Azure REST client."""

from .client import POLICIES_PATH, VeeamClient
from .models import PolicyPage

__all__ = ["POLICIES_PATH", "PolicyPage", "VeeamClient"]

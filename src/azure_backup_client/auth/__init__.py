"""Authentication utilities for Azure Storage and Veeam."""

from .entra import EntraTokenClient
from .secret_store import InsecureKeyringError, SecretStore
from .token_holder import TokenHolder
from .types import BearerToken, MfaChallenge
from .veeam import VeeamAuthenticator

__all__ = [
    "BearerToken",
    "EntraTokenClient",
    "InsecureKeyringError",
    "MfaChallenge",
    "SecretStore",
    "TokenHolder",
    "VeeamAuthenticator",
]

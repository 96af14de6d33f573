"""
Credential acquisition for batch runs.
"""

from .credentials import CredentialProvider, ENV_ACCESS_TOKEN

__all__ = ["CredentialProvider", "ENV_ACCESS_TOKEN"]

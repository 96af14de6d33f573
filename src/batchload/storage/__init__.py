"""
Run store implementations and result redaction.
"""

from .redaction import ResultRedactor, REDACTED_VALUE
from .rest_store import RestRunStore
from .sqlite_store import SqliteRunStore

__all__ = ["ResultRedactor", "REDACTED_VALUE", "RestRunStore", "SqliteRunStore"]

"""
HTTP transport.
"""

from .http_transport import HttpTransport

__all__ = ["HttpTransport"]

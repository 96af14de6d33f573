"""
Transports for outbound calls.
"""

from .http import HttpTransport

__all__ = ["HttpTransport"]

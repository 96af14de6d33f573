"""
Input sources for the batchload engine.
"""

from .line_source import LineSource

__all__ = ["LineSource"]

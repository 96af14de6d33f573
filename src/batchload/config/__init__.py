"""
Configuration management for batchload.
"""

from .config_loader import BatchConfig, parse_headers_env, parse_result_log_items
from .options import Credentials, RunnerConfig, RunOptions, RESULT_LOG_ITEMS

__all__ = [
    "BatchConfig",
    "Credentials",
    "RunnerConfig",
    "RunOptions",
    "RESULT_LOG_ITEMS",
    "parse_headers_env",
    "parse_result_log_items",
]

"""Utilities and helper functions.

Consolidated utilities:
- cache_manager: Per-adapter TTL cache
- title_utils: Rating/type/status/quality normalization and title matching
- logging: loguru configuration
- exceptions: Error hierarchy
"""

from utils import cache_manager, exceptions, title_utils

__all__ = [
    "cache_manager",
    "exceptions",
    "title_utils",
]

"""
Utilities module for mergetraj.

This module provides filename ordering helpers and configuration management.
"""

from .config_manager import ConfigManager, MergeConfig
from .helpers import (
    scanf_key,
    regex_key,
    sort_by_numeric_key,
    update_dict_recursively,
    invocation_header,
)

__all__ = [
    'ConfigManager',
    'MergeConfig',
    'scanf_key',
    'regex_key',
    'sort_by_numeric_key',
    'update_dict_recursively',
    'invocation_header',
]

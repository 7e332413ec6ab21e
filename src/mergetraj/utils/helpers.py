"""
Utility functions for mergetraj.

This module provides helper functions for ordering input trajectories and
handling configuration dictionaries.
"""
import re
import shlex
import logging
from typing import Callable, List, Sequence

from ..core.exceptions import ConfigurationError, SortKeyError

logger = logging.getLogger(__name__)

DEFAULT_SORT_REGEX = r'(\d+)\D*$'

SortKey = Callable[[str], int]


def scanf_key(fmt: str) -> SortKey:
    """
    Build a sort key from a scanf-style format with one integer conversion.

    Supports literal text, whitespace (matching any run of whitespace), '%%'
    and a single '%d', '%i' or '%u' with optional width. Like sscanf, only the
    part of the name up to the conversion has to match.

    Args:
        fmt: Format string, e.g. 'traj.%d.dcd'

    Returns:
        Function mapping a filename to its integer token

    Raises:
        ConfigurationError: If the format has no, several, or unsupported conversions
    """
    pattern = ''
    prefix_end = 0
    conversions = 0
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch == '%':
            m = re.match(r'%(%|(\d*)([a-zA-Z]))', fmt[i:])
            if m is None:
                raise ConfigurationError(f"Unsupported conversion in scanf format '{fmt}'")
            if m.group(1) == '%':
                pattern += '%'
            else:
                width, conv = m.group(2), m.group(3)
                if conv not in ('d', 'i', 'u'):
                    raise ConfigurationError(f"Unsupported conversion '%{conv}' in scanf format '{fmt}'")
                conversions += 1
                if conversions > 1:
                    raise ConfigurationError(f"Scanf format '{fmt}' must contain exactly one integer conversion")
                digits = r'\d{1,%s}' % width if width else r'\d+'
                sign = '' if conv == 'u' else '[-+]?'
                pattern += r'\s*(' + sign + digits + ')'
                prefix_end = len(pattern)
            i += m.end()
        elif ch.isspace():
            pattern += r'\s*'
            while i < len(fmt) and fmt[i].isspace():
                i += 1
        else:
            pattern += re.escape(ch)
            i += 1
    if conversions != 1:
        raise ConfigurationError(f"Scanf format '{fmt}' must contain exactly one integer conversion")

    # Text after the conversion does not affect the parsed value.
    regexp = re.compile(pattern[:prefix_end])

    def key(name: str) -> int:
        m = regexp.match(name)
        if m is None:
            raise SortKeyError(name, fmt, kind='format')
        return int(m.group(1))

    return key


def regex_key(expr: str = DEFAULT_SORT_REGEX) -> SortKey:
    """
    Build a sort key from a regular expression.

    The first of the whole match and its groups that is entirely numeric is
    used as the key.
    """
    try:
        regexp = re.compile(expr)
    except re.error as e:
        raise ConfigurationError(f"Invalid sort regexp '{expr}': {e}") from e

    def key(name: str) -> int:
        m = regexp.search(name)
        if m is not None:
            for sub in (m.group(0),) + m.groups():
                if sub and sub.isdigit():
                    return int(sub)
        raise SortKeyError(name, expr)

    return key


def sort_by_numeric_key(names: Sequence[str], key: SortKey) -> List[str]:
    """Sort filenames in ascending order of their numeric token (stable for ties)."""
    keyed = [(key(name), name) for name in names]
    keyed.sort(key=lambda item: item[0])
    return [name for _, name in keyed]


def update_dict_recursively(base_dict: dict, update_with: dict) -> dict:
    """
    Recursively update a dictionary with another dictionary.

    Args:
        base_dict: Base dictionary to update
        update_with: Dictionary containing updates

    Returns:
        Updated dictionary
    """
    for k, v_update in update_with.items():
        if isinstance(v_update, dict) and k in base_dict and isinstance(base_dict[k], dict):
            update_dict_recursively(base_dict[k], v_update)
        else:
            base_dict[k] = v_update
    return base_dict


def invocation_header(argv: Sequence[str]) -> str:
    """Shell-quoted command line, used as a trajectory title."""
    return ' '.join(shlex.quote(str(a)) for a in argv)

#!/usr/bin/env python3
"""Utility functions for seedbox maintenance."""

import logging
import math
import os
import re
from typing import Optional, Union
from urllib.parse import urlparse

from .constants import SECONDS_PER_DAY, SECONDS_PER_HOUR, SECONDS_PER_MINUTE, SECONDS_PER_WEEK

logger = logging.getLogger(__name__)


_BOOL_TRUE = frozenset(('true', '1', 'yes', 'on'))
_BOOL_FALSE = frozenset(('false', '0', 'no', 'off'))

_DURATION_UNITS = {
    's': 1, 'sec': 1, 'secs': 1, 'second': 1, 'seconds': 1,
    'm': SECONDS_PER_MINUTE, 'min': SECONDS_PER_MINUTE, 'mins': SECONDS_PER_MINUTE,
    'minute': SECONDS_PER_MINUTE, 'minutes': SECONDS_PER_MINUTE,
    'h': SECONDS_PER_HOUR, 'hr': SECONDS_PER_HOUR, 'hrs': SECONDS_PER_HOUR,
    'hour': SECONDS_PER_HOUR, 'hours': SECONDS_PER_HOUR,
    'd': SECONDS_PER_DAY, 'day': SECONDS_PER_DAY, 'days': SECONDS_PER_DAY,
    'w': SECONDS_PER_WEEK, 'week': SECONDS_PER_WEEK, 'weeks': SECONDS_PER_WEEK,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)\s*([a-z]+)')


def parse_bool(env_var: str, default: bool = False) -> bool:
    """
    Parse boolean environment variable.

    Args:
        env_var: Environment variable name
        default: Default value if not set

    Returns:
        Parsed boolean value
    """
    raw = os.environ.get(env_var)
    if raw is None:
        return default
    lower = raw.strip().lower()
    if lower not in _BOOL_TRUE and lower not in _BOOL_FALSE:
        logger.warning(f"{env_var}='{raw}' is not a recognized boolean, treating as False")
    return lower in _BOOL_TRUE


def parse_float(env_var: str, default: float, min_val: Optional[float] = None) -> float:
    """
    Parse float environment variable with optional minimum value.

    Args:
        env_var: Environment variable name
        default: Default value if not set
        min_val: Minimum allowed value

    Returns:
        Parsed float value
    """
    try:
        value = float(os.environ.get(env_var, str(default)))
        if min_val is not None and value < min_val:
            logger.warning(f"{env_var}={value} is below minimum {min_val}, using minimum")
            return min_val
        return value
    except (ValueError, TypeError):
        logger.warning(f"Invalid float value for {env_var}, using default {default}")
        return default


def parse_duration(value: Union[str, int, float]) -> int:
    """
    Parse a human duration into whole seconds.

    Accepts plain numbers (seconds) and strings such as ``"90s"``,
    ``"12h"``, ``"365d"`` or ``"1d 12h"``.

    Args:
        value: Duration to parse

    Returns:
        Number of seconds

    Raises:
        ValueError: If the value cannot be interpreted as a duration
    """
    if isinstance(value, bool):
        raise ValueError(f"not a duration: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"duration must be finite: {value!r}")
        if value < 0:
            raise ValueError(f"duration must not be negative: {value!r}")
        return int(value)

    text = str(value).strip().lower()
    if not text:
        raise ValueError("empty duration")
    if re.fullmatch(r'\d+(?:\.\d+)?', text):
        return int(float(text))

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if text[position:match.start()].strip(' ,'):
            raise ValueError(f"not a duration: {value!r}")
        amount, unit = match.groups()
        if unit not in _DURATION_UNITS:
            raise ValueError(f"unknown duration unit '{unit}' in {value!r}")
        total += float(amount) * _DURATION_UNITS[unit]
        position = match.end()
    if position == 0 or text[position:].strip(' ,'):
        raise ValueError(f"not a duration: {value!r}")
    return int(total)


def format_duration(seconds: float) -> str:
    """Format seconds as a compact ``1d02h03m`` string for log lines."""
    seconds = int(seconds)
    days, rem = divmod(seconds, SECONDS_PER_DAY)
    hours, rem = divmod(rem, SECONDS_PER_HOUR)
    minutes, secs = divmod(rem, SECONDS_PER_MINUTE)
    if days:
        return f"{days}d{hours:02d}h{minutes:02d}m"
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def tracker_hostname(announce: str) -> Optional[str]:
    """
    Extract the lower-cased hostname from a tracker announce URL.

    Bare hostnames are accepted as-is. qBittorrent's pseudo trackers
    (``** [DHT] **`` and friends) yield None.

    Args:
        announce: Announce URL or hostname

    Returns:
        Hostname, or None if there is none
    """
    if not announce:
        return None
    announce = announce.strip()
    if not announce or announce.startswith('**'):
        return None
    if '://' not in announce:
        announce = f"//{announce}"
    try:
        return urlparse(announce).hostname
    except ValueError:
        return None


def truncate_name(name: str, max_length: int = 60) -> str:
    """
    Truncate a torrent name for display.

    Args:
        name: Torrent name to truncate
        max_length: Maximum length

    Returns:
        Truncated name with ellipsis if needed
    """
    if len(name) <= max_length:
        return name
    return name[:max_length - 3] + "..."

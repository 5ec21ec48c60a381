"""Human-readable time and size formatting shared by the CLI and error messages."""

from __future__ import annotations

import re
from typing import Optional

__all__ = [
    'format_time',
    'parse_time',
    'format_file_size',
]

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')
_SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB']


def format_time(seconds: float) -> str:
    """Format seconds as zero-padded MM:SS (fractions are truncated)."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def parse_time(time_string: str) -> Optional[int]:
    """Parse 'M:SS' or 'MM:SS' into seconds; None when malformed or seconds >= 60."""
    match = _TIME_PATTERN.match((time_string or '').strip())
    if not match:
        return None
    minutes, secs = int(match.group(1)), int(match.group(2))
    if secs >= 60:
        return None
    return minutes * 60 + secs


def format_file_size(size_bytes: int) -> str:
    """Format a byte count with binary units, e.g. 1536 -> '1.5 KB'."""
    if size_bytes <= 0:
        return '0 Bytes'
    index = 0
    value = float(size_bytes)
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip('0').rstrip('.')
    return f"{text} {_SIZE_UNITS[index]}"

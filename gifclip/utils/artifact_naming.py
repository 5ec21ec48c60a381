"""Utilities for generating traceable, filesystem-safe artifact filenames."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

INVALID_FILENAME_CHARS = {'<', '>', ':', '"', '/', '\\', '|', '?', '*', ' '}
FALLBACK_BASE_NAME = 'clip'
MAX_BASE_LENGTH = 80
UPLOAD_MARKER = 'upload'

__all__ = [
    'sanitize_base_name',
    'format_seconds_token',
    'artifact_filename',
]


def sanitize_base_name(name: Optional[Union[str, Path]]) -> str:
    """
    Normalize a user-supplied or remote name into a filesystem-safe base name.

    - Replaces path separators, reserved characters and spaces with underscores.
    - Collapses non-ASCII glyphs into underscores for portability.
    - Trims leading/trailing dots and underscores, enforcing a deterministic fallback.
    """
    text = str(name or '').strip()
    if not text:
        return FALLBACK_BASE_NAME

    safe_chars: list[str] = []
    for char in text:
        codepoint = ord(char)
        if codepoint < 32:
            continue
        elif char in INVALID_FILENAME_CHARS or codepoint >= 128:
            safe_chars.append('_')
        else:
            safe_chars.append(char)

    sanitized = ''.join(safe_chars).strip('._ ')
    while '..' in sanitized:
        sanitized = sanitized.replace('..', '.')
    if not sanitized:
        return FALLBACK_BASE_NAME

    if len(sanitized) > MAX_BASE_LENGTH:
        sanitized = sanitized[:MAX_BASE_LENGTH].rstrip('._ ') or FALLBACK_BASE_NAME

    return sanitized


def format_seconds_token(value: float) -> str:
    """Compact number for filenames: 10.0 -> '10', 2.5 -> '2.5', 1.25 -> '1.25'."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.3f}".rstrip('0').rstrip('.')


def artifact_filename(source_kind: str, source_name: Union[str, Path], start_time: float,
                      duration: float, timestamp_ms: int, suffix: Optional[str] = None) -> str:
    """
    Build '<identifier>_<start>_<duration>_<timestamp>.gif' for remote sources and
    'upload_<base>_<start>_<duration>_<timestamp>.gif' for uploads.

    suffix is appended before the extension to break same-millisecond collisions.
    """
    if source_kind == UPLOAD_MARKER:
        base = f"{UPLOAD_MARKER}_{sanitize_base_name(Path(str(source_name)).stem)}"
    else:
        base = sanitize_base_name(source_name)

    parts = [base, format_seconds_token(start_time), format_seconds_token(duration), str(int(timestamp_ms))]
    if suffix:
        parts.append(sanitize_base_name(suffix))
    return '_'.join(parts) + '.gif'

"""
Request Validation Module
Checks remote video identifiers/URLs, timing parameters and uploaded files
before any disk or network work begins
"""

import math
import os
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse, parse_qs

from .config_manager import ConfigManager

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')
WATCH_HOSTS = ('youtube.com', 'm.youtube.com', 'music.youtube.com', 'youtube-nocookie.com')
PATH_PREFIXES = ('/embed/', '/shorts/', '/live/', '/v/')


@dataclass
class ValidationResult:
    """Outcome of request validation with one message per violated field"""
    errors: Dict[str, str] = field(default_factory=dict)
    identifier: Optional[str] = None
    data: Optional[bytes] = None
    start_time: Optional[float] = None
    duration: Optional[float] = None

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, field_name: str, message: str):
        # Keep the first problem reported for a field
        self.errors.setdefault(field_name, message)

    def message(self) -> str:
        return '; '.join(f"{name}: {text}" for name, text in self.errors.items())


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the canonical video identifier from a URL or bare identifier.

    Handles:
    - https://www.youtube.com/watch?v=VIDEO_ID
    - https://youtu.be/VIDEO_ID
    - https://www.youtube.com/embed/VIDEO_ID (also /shorts/, /live/, /v/)
    - VIDEO_ID on its own

    Returns:
        Identifier string, or None if the input is not a recognised shape.
    """
    if not isinstance(url, str):
        return None
    text = url.strip()
    if not text:
        return None

    if IDENTIFIER_PATTERN.match(text):
        return text

    if '://' not in text:
        text = f"https://{text}"
    try:
        parsed = urlparse(text)
    except ValueError:
        return None
    hostname = (parsed.hostname or '').lower()
    if hostname.startswith('www.'):
        hostname = hostname[4:]

    candidate = None
    if hostname in WATCH_HOSTS:
        if parsed.path.rstrip('/') == '/watch':
            ids = parse_qs(parsed.query).get('v')
            if ids:
                candidate = ids[0]
        else:
            for prefix in PATH_PREFIXES:
                if parsed.path.startswith(prefix):
                    candidate = parsed.path[len(prefix):].split('/')[0]
                    break
    elif hostname == 'youtu.be':
        candidate = parsed.path.lstrip('/').split('/')[0]

    if candidate and IDENTIFIER_PATTERN.match(candidate):
        return candidate
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


class RequestValidator:
    """Validates conversion requests against the configured limits"""

    def __init__(self, config_manager: ConfigManager):
        self.config = config_manager
        self.min_duration = float(config_manager.get('pipeline.limits.min_duration_seconds', 1))
        self.max_duration = float(config_manager.get('pipeline.limits.max_duration_seconds', 30))
        self.max_upload_bytes = int(config_manager.get('pipeline.limits.max_upload_bytes', 100 * 1024 * 1024))
        self.allowed_extensions = {
            str(ext).lower().lstrip('.') for ext in config_manager.get('pipeline.limits.allowed_extensions', []) or []
        }
        self.allowed_mime_types = {
            str(mime).lower() for mime in config_manager.get('pipeline.limits.allowed_mime_types', []) or []
        }

    def validate_timing(self, start_time: Any, duration: Any, result: ValidationResult):
        """Check that start is a non-negative number and duration lies within the allowed range"""
        start = _as_number(start_time)
        if start is None:
            result.add_error('startTime', 'Start time must be a number')
        elif start < 0:
            result.add_error('startTime', 'Start time must be positive')
        else:
            result.start_time = start

        length = _as_number(duration)
        if length is None:
            result.add_error('duration', 'Duration must be a number')
        elif length < self.min_duration:
            result.add_error('duration', f"Duration must be at least {self.min_duration:g} second(s)")
        elif length > self.max_duration:
            result.add_error('duration', f"Duration cannot exceed {self.max_duration:g} seconds")
        else:
            result.duration = length

    def validate_remote(self, identifier: Any, start_time: Any, duration: Any) -> ValidationResult:
        """Validate a remote request; the canonical identifier is set on success"""
        result = ValidationResult()
        if not isinstance(identifier, str) or not identifier.strip():
            result.add_error('identifier', 'Video ID is required')
        else:
            video_id = extract_video_id(identifier)
            if video_id is None:
                result.add_error('identifier', 'Invalid video URL. Please use a valid video link.')
            else:
                result.identifier = video_id
        self.validate_timing(start_time, duration, result)
        return result

    def validate_upload(self, file_body: Any, file_name: Any, declared_mime_type: Any,
                        start_time: Any, duration: Any) -> ValidationResult:
        """
        Validate an uploaded file's size, extension and declared type.

        file_body may be bytes-like or a readable binary stream. Stream read
        errors (OSError) propagate; every other problem is reported in the result.
        """
        result = ValidationResult()
        self.validate_timing(start_time, duration, result)

        data = self._read_body(file_body, result)
        if data is not None:
            if len(data) == 0:
                result.add_error('file', 'Uploaded file is empty')
            elif len(data) > self.max_upload_bytes:
                result.add_error(
                    'file',
                    f"File size exceeds maximum of {self.max_upload_bytes / 1024 / 1024:g}MB"
                )
            else:
                result.data = data

        if not isinstance(file_name, str) or not file_name.strip():
            result.add_error('fileName', 'File name is required')
        else:
            ext = os.path.splitext(file_name.strip())[1].lower().lstrip('.')
            if ext not in self.allowed_extensions:
                result.add_error(
                    'fileName',
                    f"File type not allowed. Supported formats: {', '.join(sorted(self.allowed_extensions))}"
                )

        mime = declared_mime_type.strip().lower() if isinstance(declared_mime_type, str) else ''
        if mime not in self.allowed_mime_types:
            result.add_error('declaredMimeType', 'Invalid file MIME type')

        if not result.valid:
            logger.debug(f"Upload rejected: {result.message()}")
        return result

    def _read_body(self, file_body: Any, result: ValidationResult) -> Optional[bytes]:
        if file_body is None:
            result.add_error('file', 'No file provided')
            return None
        if isinstance(file_body, (bytes, bytearray, memoryview)):
            return bytes(file_body)
        if hasattr(file_body, 'read'):
            # Read one byte past the ceiling so oversized streams are detected without loading them whole
            data = file_body.read(self.max_upload_bytes + 1)
            if isinstance(data, str):
                result.add_error('file', 'File body must be binary')
                return None
            return bytes(data or b'')
        result.add_error('file', 'File body must be bytes or a binary stream')
        return None

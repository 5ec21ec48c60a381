"""
Data model for conversion requests, acquired sources and produced artifacts
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class SourceKind(Enum):
    REMOTE = "remote"
    UPLOAD = "upload"


class SourceOrigin(Enum):
    REMOTE_CACHE = "remote-cache"
    TRANSIENT_UPLOAD = "transient-upload"


@dataclass
class ConversionRequest:
    """A single clip request as received from the boundary layer.

    Values are kept as received; range and type checks belong to the
    request validator so that malformed input becomes a structured error.
    """
    source_kind: SourceKind
    start_time: Any
    duration: Any
    identifier: Optional[str] = None
    file_bytes: Any = None
    file_name: Optional[str] = None
    declared_mime_type: Optional[str] = None

    @classmethod
    def remote(cls, identifier: str, start_time: Any, duration: Any) -> 'ConversionRequest':
        return cls(SourceKind.REMOTE, start_time, duration, identifier=identifier)

    @classmethod
    def upload(cls, file_bytes: Any, file_name: str, declared_mime_type: str,
               start_time: Any, duration: Any) -> 'ConversionRequest':
        return cls(SourceKind.UPLOAD, start_time, duration, file_bytes=file_bytes,
                   file_name=file_name, declared_mime_type=declared_mime_type)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'ConversionRequest':
        """Build a request from the camelCase dictionary used at the boundary.

        Raises ValueError when sourceKind is missing or unknown.
        """
        try:
            kind = SourceKind(payload.get('sourceKind'))
        except ValueError:
            raise ValueError(f"sourceKind must be 'remote' or 'upload', got {payload.get('sourceKind')!r}")

        if kind == SourceKind.REMOTE:
            return cls.remote(payload.get('identifier'), payload.get('startTime'), payload.get('duration'))
        return cls.upload(
            payload.get('fileBytes'),
            payload.get('fileName'),
            payload.get('declaredMimeType'),
            payload.get('startTime'),
            payload.get('duration'),
        )


@dataclass
class SourceFile:
    """A local, playable source owned by one pipeline invocation"""
    path: Path
    origin: SourceOrigin
    size_bytes: int
    probed_duration: Optional[float] = None
    probed_is_video: bool = False

    @property
    def is_transient(self) -> bool:
        return self.origin == SourceOrigin.TRANSIENT_UPLOAD


@dataclass(frozen=True)
class ConversionResult:
    """A finished artifact. Never mutated after it is written."""
    public_path: str
    byte_size: int
    file_path: Path
    source_kind: SourceKind
    tier: str
    frame_count: int

    def to_response(self) -> Dict[str, Any]:
        return {
            'success': True,
            'outputUrl': self.public_path,
            'fileSizeBytes': self.byte_size,
            'source': self.source_kind.value,
        }

"""
Artifact Store
Flat public directory of finished GIFs. Names are reserved atomically so two
requests can never be handed the same output file.
"""

import os
import uuid
import logging
from pathlib import Path
from typing import List, Optional, Union

from .models import SourceKind
from .utils.artifact_naming import artifact_filename

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 8


class ArtifactStore:
    """Allocates, resolves and lists GIF artifacts under the public output directory"""

    def __init__(self, output_dir: Union[str, Path], public_prefix: str = '/gifs'):
        self.output_dir = Path(output_dir)
        self.public_prefix = '/' + public_prefix.strip('/') if public_prefix.strip('/') else ''

    def allocate(self, source_kind: SourceKind, source_name: str, start_time: float,
                 duration: float, timestamp_ms: int) -> Path:
        """
        Reserve a unique output path by creating an empty placeholder file.

        A short random suffix is added only when the plain name is already taken
        (same source, window and millisecond).

        Raises:
            OSError: when the output directory cannot be created or written
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        suffix: Optional[str] = None
        for _ in range(MAX_ALLOCATION_ATTEMPTS):
            name = artifact_filename(source_kind.value, source_name, start_time, duration, timestamp_ms, suffix)
            path = self.output_dir / name
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
            except FileExistsError:
                logger.debug(f"Artifact name collision on {name}, retrying with suffix")
                suffix = uuid.uuid4().hex[:6]
                continue
            os.close(fd)
            return path
        raise FileExistsError(f"Could not allocate a unique artifact name in {self.output_dir}")

    def public_path(self, path: Union[str, Path]) -> str:
        """Public URL path for an artifact inside the store"""
        return f"{self.public_prefix}/{Path(path).name}"

    def resolve(self, public_path: str) -> Optional[Path]:
        """Map a public path back to a file in the store; None for anything outside it"""
        if not public_path:
            return None
        name = public_path
        if self.public_prefix and name.startswith(self.public_prefix + '/'):
            name = name[len(self.public_prefix) + 1:]
        if not name or '/' in name or '\\' in name or name in ('.', '..') or '\x00' in name:
            return None

        candidate = (self.output_dir / name).resolve()
        if candidate.parent != self.output_dir.resolve():
            return None
        if not candidate.is_file() or candidate.stat().st_size == 0:
            return None
        return candidate

    def discard(self, path: Union[str, Path]):
        """Remove a reserved or failed artifact"""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove artifact {path}: {e}")

    def list_artifacts(self) -> List[Path]:
        """Finished GIFs, newest first; partial encoder output and empty reservations are excluded"""
        if not self.output_dir.is_dir():
            return []
        artifacts = [
            entry for entry in self.output_dir.iterdir()
            if entry.is_file() and entry.suffix == '.gif' and not entry.name.endswith('.part.gif')
            and entry.stat().st_size > 0
        ]
        return sorted(artifacts, key=lambda p: p.stat().st_mtime, reverse=True)

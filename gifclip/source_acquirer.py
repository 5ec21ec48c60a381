"""
Source Acquisition Module
Resolves a local playable file for a request: downloads remote videos into an
identifier-keyed cache, or persists validated upload bytes as transient files
"""

import contextlib
import os
import re
import threading
import uuid
import logging
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from .config_manager import ConfigManager
from .error_handler import ConversionError, ErrorCategory
from .models import SourceFile, SourceOrigin
from .request_validator import IDENTIFIER_PATTERN
from .tool_runner import ToolCommand, ToolRunner, ToolStatus

logger = logging.getLogger(__name__)

# Diagnostic fragments yt-dlp prints when the site refuses to serve this client
BLOCKED_PATTERNS = [
    re.compile(r'sign in to confirm', re.IGNORECASE),
    re.compile(r'not a bot', re.IGNORECASE),
    re.compile(r'http error 403', re.IGNORECASE),
    re.compile(r'\b403\b.*forbidden', re.IGNORECASE),
    re.compile(r'http error 429', re.IGNORECASE),
    re.compile(r'too many requests', re.IGNORECASE),
    re.compile(r'has blocked it', re.IGNORECASE),
    re.compile(r'(ip|client) (address )?(is |has been )?blocked', re.IGNORECASE),
]
FILTER_REJECTED_PATTERN = re.compile(r'does not pass filter', re.IGNORECASE)


def classify_fetch_failure(diagnostic: str) -> ErrorCategory:
    """Map fetcher diagnostics to 'upstream blocked the client' or a generic source failure"""
    for pattern in BLOCKED_PATTERNS:
        if pattern.search(diagnostic or ''):
            return ErrorCategory.SOURCE_BLOCKED
    return ErrorCategory.SOURCE_INVALID


class _InFlight:
    __slots__ = ('lock', 'waiters')

    def __init__(self):
        self.lock = threading.Lock()
        self.waiters = 0


class SourceAcquirer:
    """Remote download cache plus transient upload storage"""

    def __init__(self, config_manager: ConfigManager, runner: Optional[ToolRunner] = None):
        self.config = config_manager
        self.runner = runner or ToolRunner()
        self.cache_dir = config_manager.resolve_storage_dir('cache_dir', 'temp')
        self.upload_dir = config_manager.resolve_storage_dir('upload_dir', 'uploads')
        self.max_source_duration = float(config_manager.get('pipeline.limits.max_source_duration_seconds', 600))
        self._inflight: Dict[str, _InFlight] = {}
        self._inflight_lock = threading.Lock()

    # Remote sources

    def cache_path_for(self, identifier: str) -> Path:
        """Deterministic cache location for a remote identifier"""
        if not IDENTIFIER_PATTERN.match(identifier or ''):
            raise ConversionError(ErrorCategory.INVALID_REQUEST, f"Invalid video identifier: {identifier!r}",
                                  details={'identifier': 'Invalid video identifier'})
        return self.cache_dir / f"{identifier}.mp4"

    @contextlib.contextmanager
    def _single_flight(self, identifier: str) -> Iterator[None]:
        """Serialize work on one identifier; entries are dropped once nobody waits on them"""
        with self._inflight_lock:
            entry = self._inflight.setdefault(identifier, _InFlight())
            entry.waiters += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._inflight_lock:
                entry.waiters -= 1
                if entry.waiters == 0:
                    self._inflight.pop(identifier, None)

    def fetch_remote(self, identifier: str,
                     cancel_checker: Optional[Callable[[], bool]] = None) -> SourceFile:
        """
        Return the cached file for identifier, downloading it at most once.

        Raises:
            ConversionError: SourceBlocked when the site refused the client,
                SourceInvalid for any other fetch failure
        """
        cache_path = self.cache_path_for(identifier)

        with self._single_flight(identifier):
            if cache_path.exists() and cache_path.stat().st_size > 0:
                logger.info(f"Using cached download for {identifier}: {cache_path}")
                return self._source_for(cache_path)

            cache_path.parent.mkdir(parents=True, exist_ok=True)
            command = self.build_fetch_command(identifier, cache_path)
            logger.info(f"Downloading remote video {identifier}")
            result = self.runner.run(command, cancel_checker=cancel_checker)

            if result.ok and cache_path.exists() and cache_path.stat().st_size > 0:
                logger.info(f"Downloaded {identifier} ({cache_path.stat().st_size} bytes)")
                return self._source_for(cache_path)

            self._discard_partial_download(cache_path)
            self._raise_fetch_failure(identifier, result)

    def evict_remote(self, identifier: str):
        """Drop a cached download that turned out to be unusable so the next request fetches it again"""
        cache_path = self.cache_path_for(identifier)
        with self._single_flight(identifier):
            logger.info(f"Evicting rejected download for {identifier}")
            self._discard_partial_download(cache_path)

    def build_fetch_command(self, identifier: str, output_path: Path) -> ToolCommand:
        url_template = self.config.get('pipeline.fetch.url_template', 'https://www.youtube.com/watch?v={identifier}')
        args: List[str] = [
            '--no-playlist',
            '--no-progress',
            '--no-mtime',
            '--user-agent', self.config.get('pipeline.fetch.user_agent', 'Mozilla/5.0'),
        ]
        extractor_args = self.config.get('pipeline.fetch.extractor_args')
        if extractor_args:
            args.extend(['--extractor-args', extractor_args])
        args.extend(['-f', self.config.get('pipeline.fetch.format', 'best[height<=720][ext=mp4]/best[height<=720]/best')])
        if self.config.get('pipeline.fetch.enforce_duration_ceiling', True):
            # Refuse over-long videos from metadata before any media is downloaded
            args.extend(['--match-filter', f"duration <=? {int(self.max_source_duration)}"])
        args.extend(['-o', str(output_path), url_template.format(identifier=identifier)])

        return ToolCommand(
            program=self.config.get('pipeline.fetch.binary', 'yt-dlp'),
            args=args,
            timeout=float(self.config.get('pipeline.fetch.timeout_seconds', 600)),
            description=f"fetch {identifier}"
        )

    def _raise_fetch_failure(self, identifier: str, result):
        diagnostic = result.diagnostic()
        if result.status == ToolStatus.MISSING:
            raise ConversionError(ErrorCategory.SOURCE_INVALID,
                                  'Remote download is unavailable: video fetcher is not installed')
        if result.status == ToolStatus.CANCELLED:
            raise ConversionError(ErrorCategory.SOURCE_INVALID, f"Download of {identifier} was cancelled")
        if result.status == ToolStatus.TIMEOUT:
            raise ConversionError(ErrorCategory.SOURCE_INVALID, f"Download of {identifier} timed out")
        if FILTER_REJECTED_PATTERN.search(f"{result.stdout}\n{result.stderr}"):
            raise ConversionError(
                ErrorCategory.SOURCE_INVALID,
                f"Video {identifier} is longer than the {self.max_source_duration:g} second limit"
            )

        category = classify_fetch_failure(f"{result.stderr}\n{result.stdout}")
        if category == ErrorCategory.SOURCE_BLOCKED:
            logger.warning(f"Video site blocked download of {identifier}: {diagnostic}")
            raise ConversionError.blocked(f"The video site blocked the download of {identifier}: {diagnostic}")
        logger.error(f"Failed to download {identifier}: {diagnostic}")
        raise ConversionError(ErrorCategory.SOURCE_INVALID, f"Failed to download video: {diagnostic}")

    @staticmethod
    def _discard_partial_download(cache_path: Path):
        for leftover in (cache_path, cache_path.with_name(cache_path.name + '.part')):
            try:
                leftover.unlink()
                logger.debug(f"Removed partial download {leftover}")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove partial download {leftover}: {e}")

    # Uploaded sources

    def save_upload(self, data: bytes, original_name: str) -> SourceFile:
        """Persist validated upload bytes under an opaque, collision-proof name"""
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        ext = os.path.splitext(original_name or '')[1].lower()
        if not re.match(r'^\.[a-z0-9]{1,5}$', ext):
            ext = ''
        path = self.upload_dir / f"upload_{uuid.uuid4().hex}{ext}"

        # O_EXCL: never overwrite another request's file
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            with os.fdopen(fd, 'wb') as handle:
                handle.write(data)
        except BaseException:
            self._unlink_quietly(path)
            raise

        logger.debug(f"Saved upload {original_name!r} as {path.name} ({len(data)} bytes)")
        return SourceFile(path=path, origin=SourceOrigin.TRANSIENT_UPLOAD, size_bytes=len(data))

    @contextlib.contextmanager
    def transient_upload(self, data: bytes, original_name: str) -> Iterator[SourceFile]:
        """Scoped upload file, deleted on every exit path"""
        source = self.save_upload(data, original_name)
        try:
            yield source
        finally:
            self.release(source)

    def release(self, source: SourceFile):
        """Delete a transient upload; cached remote sources are kept"""
        if source.is_transient:
            self._unlink_quietly(source.path)

    @staticmethod
    def _unlink_quietly(path: Path):
        try:
            Path(path).unlink()
            logger.debug(f"Removed transient file {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove transient file {path}: {e}")

    @staticmethod
    def _source_for(path: Path) -> SourceFile:
        return SourceFile(path=path, origin=SourceOrigin.REMOTE_CACHE, size_bytes=path.stat().st_size)

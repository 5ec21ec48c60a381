"""
File Validation Module
Probes acquired source files with ffprobe to confirm they hold a decodable
video stream and to read their duration, ignoring names and declared types
"""

import os
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import cv2

from .config_manager import ConfigManager
from .ffmpeg_utils import FFmpegUtils
from .tool_runner import ToolCommand, ToolRunner

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    is_video: bool
    duration: Optional[float] = None
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.is_video and self.error is None


class FileValidator:
    """Validates source video files for integrity and duration constraints"""

    def __init__(self, config_manager: ConfigManager, runner: Optional[ToolRunner] = None):
        self.runner = runner or ToolRunner()
        self.ffprobe = config_manager.get('pipeline.probe.ffprobe_binary', 'ffprobe')
        self.timeout = float(config_manager.get('pipeline.probe.timeout_seconds', 30))
        self.decode_check = bool(config_manager.get('pipeline.probe.decode_check', True))

    def _ffprobe(self, args, description: str) -> ToolCommand:
        return ToolCommand(program=self.ffprobe, args=['-v', 'error'] + list(args),
                           timeout=self.timeout, description=description)

    def is_valid_video(self, video_path: str,
                       cancel_checker: Optional[Callable[[], bool]] = None) -> Tuple[bool, Optional[str]]:
        """
        Check that a file contains at least one decodable video stream

        Args:
            video_path: Path to the video file

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not os.path.exists(video_path):
            return False, "File does not exist"

        if os.path.getsize(video_path) == 0:
            return False, "File is empty"

        command = self._ffprobe(
            ['-select_streams', 'v:0', '-show_entries', 'stream=codec_type',
             '-of', 'default=noprint_wrappers=1:nokey=1', FFmpegUtils.safe_file_path(video_path)],
            description='probe streams'
        )
        result = self.runner.run(command, cancel_checker=cancel_checker)
        if not result.ok:
            return False, f"FFprobe validation failed: {result.diagnostic()}"

        codec_types = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if 'video' not in codec_types:
            return False, "No video streams found"

        if self.decode_check and not self._decodes_first_frame(video_path):
            return False, "Cannot read video frames"

        return True, None

    @staticmethod
    def _decodes_first_frame(video_path: str) -> bool:
        cap = cv2.VideoCapture(str(video_path))
        try:
            if not cap.isOpened():
                return False
            ret, frame = cap.read()
            return bool(ret) and frame is not None
        except cv2.error as e:
            logger.debug(f"OpenCV could not decode {video_path}: {e}")
            return False
        finally:
            cap.release()

    def get_video_duration(self, video_path: str,
                           cancel_checker: Optional[Callable[[], bool]] = None) -> Optional[float]:
        """Total duration in seconds, or None when ffprobe cannot report one"""
        command = self._ffprobe(
            ['-show_entries', 'format=duration', '-of', 'default=noprint_wrappers=1:nokey=1',
             FFmpegUtils.safe_file_path(video_path)],
            description='probe duration'
        )
        result = self.runner.run(command, cancel_checker=cancel_checker)
        if not result.ok:
            logger.warning(f"FFprobe failed for {video_path}: {result.diagnostic()}")
            return None
        return FFmpegUtils.parse_duration(result.stdout)

    def probe(self, video_path: str, max_duration: Optional[float] = None,
              cancel_checker: Optional[Callable[[], bool]] = None) -> ProbeResult:
        """Run the stream and duration checks; the first failing check decides the error"""
        is_video, error = self.is_valid_video(video_path, cancel_checker=cancel_checker)
        if not is_video:
            return ProbeResult(is_video=False, error=error)

        duration = self.get_video_duration(video_path, cancel_checker=cancel_checker)
        if duration is None or duration <= 0:
            return ProbeResult(is_video=True, duration=duration, error="Video has no valid duration")
        if max_duration is not None and duration > max_duration:
            return ProbeResult(
                is_video=True,
                duration=duration,
                error=f"Video is {duration:.1f}s long; the maximum is {max_duration:g}s"
            )
        return ProbeResult(is_video=True, duration=duration)

"""
GIF Generation Module
Renders a [start, start + duration) window of a source video into an optimized GIF.

Two encode tiers run as an explicit state machine:

    TRY_OPTIMIZED -> DONE | BASELINE
    BASELINE      -> DONE | FAILED

The optimized tier decodes the window into numbered PNG frames and encodes them
with gifski. The baseline tier is a single ffmpeg palettegen/paletteuse pass and
is always available. Both tiers read the window through the same input
arguments, so trimming is identical whichever tier produced the file.
"""

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config_manager import ConfigManager
from ..error_handler import ConversionError, ErrorCategory
from ..ffmpeg_utils import FFmpegUtils
from ..tool_runner import ToolCommand, ToolRunner, ToolStatus
from .gif_config import GifConfigHelper
from .gif_utils import temp_dir_context, partial_path_for, discard_file, list_frames, validate_gif

logger = logging.getLogger(__name__)

TIER_OPTIMIZED = 'optimized'
TIER_BASELINE = 'baseline'


class TranscodeState(Enum):
    TRY_OPTIMIZED = "try_optimized"
    BASELINE = "baseline"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _Attempt:
    ok: bool
    info: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    cancelled: bool = False


@dataclass(frozen=True)
class TranscodeOutcome:
    output_path: str
    tier: str
    frame_count: int
    byte_size: int
    states: Tuple[TranscodeState, ...]


class GifGenerator:
    """Segment transcoder with an optimized tier and a guaranteed baseline fallback"""

    def __init__(self, config_manager: ConfigManager, runner: Optional[ToolRunner] = None,
                 shutdown_checker: Optional[Callable[[], bool]] = None):
        self.config = config_manager
        self.config_helper = GifConfigHelper(config_manager)
        self.settings = self.config_helper.get_render_settings()
        self.optimizer_settings = self.config_helper.get_optimizer_settings()
        self.runner = runner or ToolRunner(shutdown_checker=shutdown_checker)
        self.temp_dir = str(config_manager.get_temp_dir())

    def optimizer_available(self) -> bool:
        """True when the optimized tier is enabled and its encoder is on PATH"""
        return self.optimizer_settings['enabled'] and self.runner.is_available(self.optimizer_settings['binary'])

    def create_gif(self, input_video: str, output_path: str, start_time: float, duration: float,
                   cancel_checker: Optional[Callable[[], bool]] = None,
                   progress_callback: Optional[Callable[[float], None]] = None) -> TranscodeOutcome:
        """
        Render the requested window of input_video to output_path.

        The caller has already checked start_time + duration against the probed
        source duration.

        Raises:
            ConversionError: ConversionFailed when the baseline tier fails or the
                conversion is cancelled
        """
        state = TranscodeState.TRY_OPTIMIZED if self.optimizer_available() else TranscodeState.BASELINE
        states: List[TranscodeState] = [state]
        attempt = _Attempt(ok=False)
        tier = TIER_BASELINE

        while state not in (TranscodeState.DONE, TranscodeState.FAILED):
            if state == TranscodeState.TRY_OPTIMIZED:
                attempt = self._create_with_optimizer(input_video, output_path, start_time, duration,
                                                      cancel_checker, progress_callback)
                if attempt.ok:
                    tier = TIER_OPTIMIZED
                    state = TranscodeState.DONE
                elif attempt.cancelled:
                    state = TranscodeState.FAILED
                else:
                    logger.info(f"Optimized encode unavailable ({attempt.error}), using palette encode")
                    state = TranscodeState.BASELINE
            else:
                attempt = self._create_with_palette(input_video, output_path, start_time, duration,
                                                    cancel_checker, progress_callback)
                state = TranscodeState.DONE if attempt.ok else TranscodeState.FAILED
            states.append(state)

        if state == TranscodeState.FAILED:
            if attempt.cancelled:
                raise ConversionError(ErrorCategory.CONVERSION_FAILED, "Conversion cancelled")
            logger.error(f"GIF conversion failed for {input_video}: {attempt.error}")
            raise ConversionError(ErrorCategory.CONVERSION_FAILED, f"GIF conversion failed: {attempt.error}")

        byte_size = os.path.getsize(output_path)
        logger.info(
            f"Created GIF via {tier} tier: {os.path.basename(output_path)} "
            f"({attempt.info.get('frame_count', 0)} frames, {byte_size} bytes)"
        )
        return TranscodeOutcome(
            output_path=output_path,
            tier=tier,
            frame_count=int(attempt.info.get('frame_count', 0)),
            byte_size=byte_size,
            states=tuple(states)
        )

    # Command builders

    def _ffmpeg_command(self, args: List[str], timeout: float, description: str,
                        with_progress: bool = False) -> ToolCommand:
        if with_progress:
            args = ['-progress', 'pipe:1', '-nostats'] + args
        return ToolCommand(
            program=self.settings['ffmpeg_binary'],
            args=FFmpegUtils.add_ffmpeg_perf_flags(['-y'] + args),
            timeout=timeout,
            description=description
        )

    def _scale_chain(self) -> str:
        return FFmpegUtils.build_scale_chain(self.settings['fps'], self.settings['width'], self.settings['scale_flags'])

    def build_palette_command(self, input_video: str, output_path: str, start_time: float,
                              duration: float, with_progress: bool = False) -> ToolCommand:
        """Single pass: seek, read the window, scale, build one palette and map every frame through it"""
        graph = FFmpegUtils.build_palette_graph(self._scale_chain(), self.settings['palette'])
        args = FFmpegUtils.segment_input_args(input_video, start_time, duration) + [
            '-filter_complex', graph,
            '-loop', '0',
            '-f', 'gif',
            output_path,
        ]
        return self._ffmpeg_command(args, self.settings['encode_timeout'], 'palette encode', with_progress)

    def build_frame_extract_command(self, input_video: str, frames_dir: str, start_time: float,
                                    duration: float, with_progress: bool = False) -> ToolCommand:
        args = FFmpegUtils.segment_input_args(input_video, start_time, duration) + [
            '-vf', self._scale_chain(),
            os.path.join(frames_dir, 'frame-%05d.png'),
        ]
        return self._ffmpeg_command(args, self.settings['frame_extract_timeout'], 'frame extract', with_progress)

    def build_gifski_command(self, frames: List[str], output_path: str) -> ToolCommand:
        return ToolCommand(
            program=self.optimizer_settings['binary'],
            args=['--fps', str(self.settings['fps']),
                  '--quality', str(self.optimizer_settings['quality']),
                  '-o', output_path] + frames,
            timeout=self.settings['gifski_timeout'],
            description='gifski encode'
        )

    # Tiers

    def _progress_handler(self, duration: float,
                          progress_callback: Optional[Callable[[float], None]]) -> Optional[Callable[[str], None]]:
        if not progress_callback:
            return None

        def on_line(line: str):
            seconds = FFmpegUtils.parse_progress_time(line)
            if seconds is not None and seconds >= 0:
                progress_callback(min(seconds, duration))
        return on_line

    def _finish(self, partial: str, output_path: str) -> _Attempt:
        valid, error, info = validate_gif(partial)
        if not valid:
            return _Attempt(ok=False, error=error)
        os.replace(partial, output_path)
        return _Attempt(ok=True, info=info)

    def _create_with_palette(self, input_video: str, output_path: str, start_time: float, duration: float,
                             cancel_checker: Optional[Callable[[], bool]],
                             progress_callback: Optional[Callable[[float], None]]) -> _Attempt:
        partial = partial_path_for(output_path)
        discard_file(partial)
        attempt = _Attempt(ok=False)
        try:
            command = self.build_palette_command(input_video, partial, start_time, duration,
                                                 with_progress=progress_callback is not None)
            result = self.runner.run(command, cancel_checker=cancel_checker,
                                     line_callback=self._progress_handler(duration, progress_callback))
            if not result.ok:
                attempt = _Attempt(ok=False, error=f"ffmpeg {result.status.value}: {result.diagnostic()}",
                                   cancelled=result.status == ToolStatus.CANCELLED)
                return attempt
            attempt = self._finish(partial, output_path)
            return attempt
        finally:
            if not attempt.ok:
                discard_file(partial)

    def _create_with_optimizer(self, input_video: str, output_path: str, start_time: float, duration: float,
                               cancel_checker: Optional[Callable[[], bool]],
                               progress_callback: Optional[Callable[[float], None]]) -> _Attempt:
        partial = partial_path_for(output_path)
        discard_file(partial)
        attempt = _Attempt(ok=False)
        try:
            with temp_dir_context('frames', self.temp_dir) as frames_dir:
                extract = self.build_frame_extract_command(input_video, frames_dir, start_time, duration,
                                                           with_progress=progress_callback is not None)
                result = self.runner.run(extract, cancel_checker=cancel_checker,
                                         line_callback=self._progress_handler(duration, progress_callback))
                if not result.ok:
                    attempt = _Attempt(ok=False, error=f"frame extraction {result.status.value}: {result.diagnostic()}",
                                       cancelled=result.status == ToolStatus.CANCELLED)
                    return attempt

                frames = list_frames(frames_dir)
                if not frames:
                    attempt = _Attempt(ok=False, error="frame extraction produced no frames")
                    return attempt
                logger.debug(f"Extracted {len(frames)} frames for gifski")

                result = self.runner.run(self.build_gifski_command(frames, partial), cancel_checker=cancel_checker)
                if not result.ok:
                    attempt = _Attempt(ok=False, error=f"gifski {result.status.value}: {result.diagnostic()}",
                                       cancelled=result.status == ToolStatus.CANCELLED)
                    return attempt

                attempt = self._finish(partial, output_path)
                return attempt
        except OSError as e:
            attempt = _Attempt(ok=False, error=f"scratch directory error: {e}")
            return attempt
        finally:
            if not attempt.ok:
                discard_file(partial)

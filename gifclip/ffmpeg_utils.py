"""
FFmpeg Utilities Module
Shared helpers for building ffmpeg/ffprobe argument lists and parsing their output
"""

import os
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class FFmpegUtils:
    """Shared utilities for FFmpeg operations"""

    @staticmethod
    def safe_file_path(file_path: str) -> str:
        """Absolute, normalized path so tool arguments never depend on the working directory"""
        return os.path.abspath(os.fspath(file_path))

    @staticmethod
    def format_seconds(value: float) -> str:
        """Render a time offset with millisecond precision, e.g. 10 -> '10.000'"""
        return f"{float(value):.3f}"

    @staticmethod
    def segment_input_args(input_path: str, start_time: float, duration: float) -> List[str]:
        """Input-side seek and read window shared by every encode of a segment.

        Both encode tiers build their input from this so the trimmed window is
        identical whichever tier runs.
        """
        return [
            '-ss', FFmpegUtils.format_seconds(start_time),
            '-t', FFmpegUtils.format_seconds(duration),
            '-i', FFmpegUtils.safe_file_path(input_path),
        ]

    @staticmethod
    def build_scale_chain(fps: int, width: int, scale_flags: str = 'lanczos') -> str:
        """Frame-rate and scaling filters; width is capped at the source width so nothing is upscaled"""
        return f"fps={fps},scale='min({width},iw)':-1:flags={scale_flags}"

    @staticmethod
    def build_palette_graph(scale_chain: str, palette: Dict[str, Any]) -> str:
        """Two-pass palette filter graph: one palette from the whole segment, then every frame mapped through it"""
        max_colors = int(palette.get('max_colors', 256))
        stats_mode = palette.get('stats_mode', 'diff')
        dither = palette.get('dither', 'bayer')
        paletteuse = f"paletteuse=dither={dither}"
        if dither == 'bayer':
            paletteuse += f":bayer_scale={int(palette.get('bayer_scale', 5))}"
        return (
            f"{scale_chain},split[s0][s1];"
            f"[s0]palettegen=max_colors={max_colors}:stats_mode={stats_mode}[p];"
            f"[s1][p]{paletteuse}"
        )

    @staticmethod
    def get_default_thread_counts() -> Tuple[int, int]:
        """Return sensible defaults for FFmpeg thread and filter thread counts.

        Caps threads to avoid contention on machines with many cores.
        """
        cpu_count = os.cpu_count() or 4
        threads = min(8, max(2, cpu_count))
        filter_threads = min(8, max(2, cpu_count // 2 or 1))
        return threads, filter_threads

    @staticmethod
    def add_ffmpeg_perf_flags(args: List[str]) -> List[str]:
        """Prepend banner/log suppression and thread flags to an ffmpeg argument list.

        Mutates and returns the same list for convenience.
        """
        threads, filter_threads = FFmpegUtils.get_default_thread_counts()
        perf_flags = ['-hide_banner', '-loglevel', 'error', '-nostdin']
        if '-threads' not in args:
            perf_flags.extend(['-threads', str(threads)])
        if '-filter_threads' not in args:
            perf_flags.extend(['-filter_threads', str(filter_threads)])
        args[0:0] = perf_flags
        return args

    @staticmethod
    def parse_progress_time(line: str) -> Optional[float]:
        """Parse an `out_time=HH:MM:SS.micro` line from `-progress` output into seconds"""
        if not line.startswith('out_time='):
            return None
        time_str = line.split('=', 1)[1].strip()
        time_parts = time_str.split(':')
        if len(time_parts) != 3:
            return None
        try:
            hours = float(time_parts[0])
            minutes = float(time_parts[1])
            seconds = float(time_parts[2])
        except ValueError:
            return None
        return hours * 3600 + minutes * 60 + seconds

    @staticmethod
    def parse_duration(text: str) -> Optional[float]:
        """Parse ffprobe's bare `format=duration` output"""
        value = (text or '').strip().splitlines()
        if not value:
            return None
        candidate = value[0].strip()
        if not candidate or candidate == 'N/A':
            return None
        try:
            return float(candidate)
        except ValueError:
            return None

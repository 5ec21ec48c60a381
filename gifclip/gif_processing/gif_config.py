"""
GIF Configuration Helper
Provides centralized config access with validation and sensible defaults
"""

from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)


class GifConfigHelper:
    """Helper class for accessing GIF configuration with validation and defaults"""

    def __init__(self, config_manager):
        """
        Initialize config helper.

        Args:
            config_manager: ConfigManager instance
        """
        self.config = config_manager

    def get_render_settings(self) -> Dict[str, Any]:
        """
        Get the fixed rendering policy for generated clips.

        Returns:
            Dictionary with frame rate, width, palette and timeout settings
        """
        gif_config = self.config.get('gif_settings', {}) or {}
        palette = gif_config.get('palette', {}) or {}
        timeouts = gif_config.get('timeouts', {}) or {}

        max_colors = int(palette.get('max_colors', 256))
        if not 2 <= max_colors <= 256:
            logger.warning(f"Palette size {max_colors} out of range, clamping to 2-256")
            max_colors = max(2, min(256, max_colors))

        return {
            'fps': int(gif_config.get('fps', 15)),
            'width': int(gif_config.get('width', 480)),
            'scale_flags': str(gif_config.get('scale_flags', 'lanczos')),
            'palette': {
                'max_colors': max_colors,
                'stats_mode': str(palette.get('stats_mode', 'diff')),
                'dither': str(palette.get('dither', 'bayer')),
                'bayer_scale': int(palette.get('bayer_scale', 5)),
            },
            'encode_timeout': float(timeouts.get('encode_seconds', 180)),
            'frame_extract_timeout': float(timeouts.get('frame_extract_seconds', 180)),
            'gifski_timeout': float(timeouts.get('gifski_seconds', 180)),
            'ffmpeg_binary': str(self.config.get('pipeline.tools.ffmpeg_binary', 'ffmpeg')),
        }

    def get_optimizer_settings(self) -> Dict[str, Any]:
        """
        Get settings for the dedicated GIF encoder used by the optimized tier.

        Returns:
            Dictionary with enabled flag, binary name and quality target
        """
        gifski = self.config.get('gif_settings.gifski', {}) or {}
        quality = int(gifski.get('quality', 90))
        return {
            'enabled': bool(gifski.get('enabled', True)),
            'binary': str(gifski.get('binary', 'gifski')),
            'quality': max(1, min(100, quality)),
        }

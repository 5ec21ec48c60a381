"""
GIF Processing Utilities
Provides scoped scratch directories, partial-output handling and GIF inspection
"""

import os
import uuid
import shutil
import contextlib
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from PIL import Image, ImageSequence, UnidentifiedImageError

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def temp_dir_context(prefix: str, temp_dir: str, cleanup: bool = True) -> Iterator[str]:
    """
    Context manager for scratch directories that ensures cleanup even on exceptions.

    Args:
        prefix: Prefix for scratch dir name
        temp_dir: Parent directory for scratch dir
        cleanup: Whether to cleanup on exit (default: True)

    Yields:
        Path to the new, empty scratch directory
    """
    os.makedirs(temp_dir, exist_ok=True)
    temp_path = os.path.join(temp_dir, f"{prefix}_{uuid.uuid4().hex}")
    os.makedirs(temp_path)
    try:
        yield temp_path
    finally:
        if cleanup and os.path.exists(temp_path):
            shutil.rmtree(temp_path, ignore_errors=True)
            if os.path.exists(temp_path):
                logger.warning(f"Failed to cleanup scratch dir {temp_path}")


def partial_path_for(output_path: str) -> str:
    """Sibling path an encoder writes to before the result is moved into place"""
    base, ext = os.path.splitext(output_path)
    return f"{base}.part{ext or '.gif'}"


def discard_file(path: str):
    """Remove a file if present; a missing file is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")


def list_frames(frames_dir: str, suffix: str = '.png') -> List[str]:
    """Numbered frame files in encode order"""
    return sorted(
        os.path.join(frames_dir, name)
        for name in os.listdir(frames_dir)
        if name.endswith(suffix)
    )


def get_gif_info(gif_path: str) -> Dict[str, Any]:
    """
    Extract basic information from a GIF file with Pillow.

    Args:
        gif_path: Path to the GIF file

    Returns:
        Dictionary with width, height, frame_count, duration (seconds) and file_size_bytes

    Raises:
        OSError / UnidentifiedImageError when the file is not a readable GIF
    """
    info: Dict[str, Any] = {
        'width': 0,
        'height': 0,
        'frame_count': 0,
        'duration': 0.0,
        'file_size_bytes': os.path.getsize(gif_path),
    }
    with Image.open(gif_path) as img:
        if img.format != 'GIF':
            raise UnidentifiedImageError(f"{gif_path} is {img.format}, not GIF")
        info['width'], info['height'] = img.size
        total_ms = 0
        frame_count = 0
        for frame in ImageSequence.Iterator(img):
            frame_count += 1
            total_ms += int(frame.info.get('duration', 0) or 0)
        info['frame_count'] = frame_count
        info['duration'] = total_ms / 1000.0
    return info


def validate_gif(gif_path: str) -> Tuple[bool, Optional[str], Dict[str, Any]]:
    """
    Validate that an encoder produced a readable, non-empty GIF.

    Returns:
        Tuple of (is_valid, error_message, info). error_message is None if valid.
    """
    if not os.path.exists(gif_path):
        return False, "File does not exist", {}
    if os.path.getsize(gif_path) == 0:
        return False, "File is empty", {}
    try:
        info = get_gif_info(gif_path)
    except (OSError, UnidentifiedImageError, ValueError) as e:
        return False, f"Invalid GIF format: {e}", {}
    if info['frame_count'] == 0:
        return False, "GIF has no frames", info
    return True, None, info

import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pytest
from PIL import Image

from gifclip.config_manager import ConfigManager
from gifclip.tool_runner import ToolCommand, ToolResult, ToolStatus


def write_gif(path, frames: int = 3, size=(32, 24)):
    """Write a small animated GIF whose frames all differ, so none are merged on save"""
    images = [Image.new('RGB', size, ((i * 70) % 256, (i * 40) % 256, 200)) for i in range(frames)]
    images[0].save(path, format='GIF', save_all=True, append_images=images[1:], duration=67, loop=0)


def arg_after(command: ToolCommand, flag: str) -> str:
    return command.args[command.args.index(flag) + 1]


def ok(stdout: str = '') -> ToolResult:
    return ToolResult(ToolStatus.OK, returncode=0, stdout=stdout)


def failed(stderr: str, returncode: int = 1) -> ToolResult:
    return ToolResult(ToolStatus.FAILED, returncode=returncode, stderr=stderr)


class FakeRunner:
    """Stands in for ToolRunner: records commands and answers them from per-program handlers"""

    def __init__(self, available: Iterable[str] = ('ffmpeg', 'ffprobe', 'yt-dlp')):
        self.available = set(available)
        self.handlers: Dict[str, Callable[[ToolCommand], ToolResult]] = {}
        self.progress_lines: Dict[str, List[str]] = {}
        self.calls: List[ToolCommand] = []
        self.shutdown_requested = False
        self._lock = threading.Lock()

    def on(self, program: str, handler: Callable[[ToolCommand], ToolResult]):
        self.handlers[program] = handler

    def is_available(self, program: str) -> bool:
        return program in self.available

    def run(self, command: ToolCommand, cancel_checker=None, line_callback=None) -> ToolResult:
        with self._lock:
            self.calls.append(command)
        if self.shutdown_requested or (cancel_checker and cancel_checker()):
            return ToolResult(ToolStatus.CANCELLED, stderr='Cancelled before execution')
        if command.program not in self.available:
            return ToolResult(ToolStatus.MISSING, stderr=f"{command.program}: command not found")
        if line_callback:
            for line in self.progress_lines.get(command.program, []):
                line_callback(line)
        handler = self.handlers.get(command.program)
        if handler is None:
            return ok()
        return handler(command)

    def request_shutdown(self):
        self.shutdown_requested = True

    def programs(self) -> List[str]:
        return [call.program for call in self.calls]

    def calls_to(self, program: str) -> List[ToolCommand]:
        return [call for call in self.calls if call.program == program]


def install_media_tools(runner: FakeRunner, source_duration: float = 60.0, gif_frames: int = 3,
                        codec_type: str = 'video'):
    """Handlers that behave like working yt-dlp/ffprobe/ffmpeg/gifski binaries"""

    def ytdlp(command):
        Path(arg_after(command, '-o')).write_bytes(b'\x00\x00\x00\x18ftypmp42' + b'\x00' * 64)
        return ok()

    def ffprobe(command):
        if 'stream=codec_type' in command.args:
            return ok(f"{codec_type}\n")
        return ok(f"{source_duration:.6f}\n")

    def ffmpeg(command):
        target = command.args[-1]
        if target.endswith('.gif'):
            write_gif(target, gif_frames)
        elif target.endswith('frame-%05d.png'):
            frames_dir = os.path.dirname(target)
            for index in range(1, gif_frames + 1):
                Image.new('RGB', (32, 24), (index * 50 % 256, 0, 0)).save(
                    os.path.join(frames_dir, f"frame-{index:05d}.png"))
        return ok()

    def gifski(command):
        write_gif(arg_after(command, '-o'), gif_frames)
        return ok()

    runner.on('yt-dlp', ytdlp)
    runner.on('ffprobe', ffprobe)
    runner.on('ffmpeg', ffmpeg)
    runner.on('gifski', gifski)
    return runner


def make_config(storage_root: Path, overrides: Optional[Dict] = None) -> ConfigManager:
    config = ConfigManager()
    config.update_from_args({
        'pipeline.storage_root': str(storage_root),
        'pipeline.probe.decode_check': False,
    })
    if overrides:
        config.update_from_args(overrides)
    return config


@pytest.fixture
def storage_root(tmp_path) -> Path:
    return tmp_path / 'storage'


@pytest.fixture
def config(storage_root) -> ConfigManager:
    return make_config(storage_root)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def media_runner() -> FakeRunner:
    return install_media_tools(FakeRunner())

"""
External Tool Runner
Runs command-line media tools (ffmpeg, ffprobe, yt-dlp, gifski) as typed
commands with bounded output capture, timeouts and cooperative cancellation.
Outcomes are returned as tagged results; process errors never escape as exceptions.
"""

import os
import shutil
import subprocess
import threading
import time
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional

import psutil

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_CHARS = 64 * 1024


class ToolStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    MISSING = "missing"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ToolCommand:
    """A single external tool invocation, built as an argument list (never a shell string)"""
    program: str
    args: List[str] = field(default_factory=list)
    timeout: float = 120.0
    description: str = ''

    def argv(self) -> List[str]:
        return [self.program] + [str(arg) for arg in self.args]

    def __str__(self) -> str:
        return ' '.join(self.argv())


@dataclass
class ToolResult:
    """Tagged outcome of a tool invocation"""
    status: ToolStatus
    returncode: Optional[int] = None
    stdout: str = ''
    stderr: str = ''
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == ToolStatus.OK

    def diagnostic(self, max_lines: int = 5) -> str:
        """Last few non-empty stderr lines, falling back to the status name."""
        lines = [line.strip() for line in (self.stderr or '').splitlines() if line.strip()]
        if lines:
            return ' | '.join(lines[-max_lines:])
        if self.status == ToolStatus.FAILED:
            return f"exited with code {self.returncode}"
        return self.status.value


class BoundedBuffer:
    """Keeps the tail of a text stream up to max_chars characters"""

    def __init__(self, max_chars: int = DEFAULT_MAX_OUTPUT_CHARS):
        self.max_chars = max_chars
        self._chunks: Deque[str] = deque()
        self._size = 0
        self.truncated = False

    def append(self, text: str):
        if not text:
            return
        self._chunks.append(text)
        self._size += len(text)
        while self._size > self.max_chars and self._chunks:
            dropped = self._chunks.popleft()
            self._size -= len(dropped)
            self.truncated = True

    def getvalue(self) -> str:
        return ''.join(self._chunks)


class ToolRunner:
    """Runs tool commands with the ability to terminate early on shutdown or cancellation."""

    def __init__(self, shutdown_checker: Optional[Callable[[], bool]] = None,
                 max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
                 poll_interval: float = 0.1):
        self._shutdown_checker: Callable[[], bool] = shutdown_checker or (lambda: False)
        self.max_output_chars = max_output_chars
        self.poll_interval = poll_interval
        self.shutdown_requested = False
        self._processes: List[subprocess.Popen] = []
        self._lock = threading.Lock()

    def is_available(self, program: str) -> bool:
        return shutil.which(program) is not None

    def _is_shutdown_requested(self) -> bool:
        return bool(self.shutdown_requested or self._shutdown_checker())

    def run(self, command: ToolCommand,
            cancel_checker: Optional[Callable[[], bool]] = None,
            line_callback: Optional[Callable[[str], None]] = None) -> ToolResult:
        """
        Run a command to completion, timeout or cancellation.

        Args:
            command: The tool invocation
            cancel_checker: Request-scoped cancellation flag, polled while the tool runs
            line_callback: Receives each stdout line (used for progress reporting)

        Returns:
            ToolResult tagged with the outcome
        """
        def cancelled() -> bool:
            return self._is_shutdown_requested() or bool(cancel_checker and cancel_checker())

        if cancelled():
            return ToolResult(ToolStatus.CANCELLED, stderr='Cancelled before execution')

        logger.debug(f"Running {command.description or command.program}: {command}")
        start = time.monotonic()
        try:
            process = subprocess.Popen(
                command.argv(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace'
            )
        except FileNotFoundError:
            logger.debug(f"Tool not found on PATH: {command.program}")
            return ToolResult(ToolStatus.MISSING, stderr=f"{command.program}: command not found")
        except OSError as e:
            logger.error(f"Could not start {command.program}: {e}")
            return ToolResult(ToolStatus.FAILED, stderr=str(e))

        with self._lock:
            self._processes.append(process)

        stdout_buffer = BoundedBuffer(self.max_output_chars)
        stderr_buffer = BoundedBuffer(self.max_output_chars)
        readers = [
            threading.Thread(target=self._drain, args=(process.stdout, stdout_buffer, line_callback), daemon=True),
            threading.Thread(target=self._drain, args=(process.stderr, stderr_buffer, None), daemon=True),
        ]
        for reader in readers:
            reader.start()

        status = None
        try:
            while process.poll() is None:
                if cancelled():
                    logger.info(f"Cancellation requested, terminating {command.program}")
                    self._terminate(process)
                    status = ToolStatus.CANCELLED
                    break
                if time.monotonic() - start > command.timeout:
                    logger.warning(f"{command.program} timeout after {command.timeout}s, terminating...")
                    self._terminate(process)
                    status = ToolStatus.TIMEOUT
                    break
                time.sleep(self.poll_interval)
        finally:
            if process.poll() is None:
                self._terminate(process)
            for reader in readers:
                reader.join(timeout=5)
            with self._lock:
                if process in self._processes:
                    self._processes.remove(process)

        if status is None:
            status = ToolStatus.OK if process.returncode == 0 else ToolStatus.FAILED

        result = ToolResult(
            status=status,
            returncode=process.returncode,
            stdout=stdout_buffer.getvalue(),
            stderr=stderr_buffer.getvalue(),
            elapsed=time.monotonic() - start
        )
        if not result.ok:
            logger.debug(f"{command.program} finished with {status.value}: {result.diagnostic()}")
        return result

    @staticmethod
    def _drain(stream, buffer: BoundedBuffer, line_callback: Optional[Callable[[str], None]]):
        try:
            for line in stream:
                buffer.append(line)
                if line_callback:
                    try:
                        line_callback(line.rstrip('\n'))
                    except Exception as e:
                        logger.debug(f"Progress callback failed: {e}")
        except (OSError, ValueError):
            pass
        finally:
            try:
                stream.close()
            except OSError:
                pass

    @staticmethod
    def _terminate(process: subprocess.Popen, grace_seconds: float = 5.0):
        """Terminate a process and any children it spawned, killing whatever ignores SIGTERM"""
        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.Error:
            children = []

        for child in children:
            try:
                child.terminate()
            except psutil.Error:
                pass
        try:
            process.terminate()
            process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} did not terminate gracefully, forcing kill...")
            process.kill()
            process.wait()
        except OSError as e:
            logger.debug(f"Error terminating process {process.pid}: {e}")

        if children:
            _, alive = psutil.wait_procs(children, timeout=grace_seconds)
            for child in alive:
                try:
                    child.kill()
                except psutil.Error:
                    pass

    def request_shutdown(self):
        """Stop accepting work and terminate every running tool process."""
        with self._lock:
            self.shutdown_requested = True
            processes = list(self._processes)
        if processes:
            logger.info(f"Terminating {len(processes)} running tool process(es)...")
        for process in processes:
            if process.poll() is None:
                self._terminate(process)


def tool_on_path(program: str) -> Optional[str]:
    """Absolute path of a tool on PATH, or None."""
    found = shutil.which(program)
    return os.path.abspath(found) if found else None

"""
Retention Sweeper
Age-based deletion of stale uploads, cached downloads, scratch leftovers and
generated GIFs, plus a background scheduler that runs sweeps periodically or
on demand.
"""

import shutil
import threading
import time
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config_manager import ConfigManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    directory: Path
    max_age_seconds: float
    name: str = ''


@dataclass
class SweepReport:
    directory: Path
    scanned: int = 0
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def sweep(policy: RetentionPolicy, now: Optional[float] = None) -> SweepReport:
    """
    Delete direct children of policy.directory whose mtime is older than max_age_seconds.

    Entries that vanish mid-sweep are skipped silently; any other per-entry
    error is logged and the sweep continues. A missing directory is an empty sweep.
    """
    now = time.time() if now is None else now
    directory = Path(policy.directory)
    report = SweepReport(directory=directory)
    cutoff = now - policy.max_age_seconds

    try:
        entries = list(directory.iterdir())
    except FileNotFoundError:
        return report
    except OSError as e:
        logger.error(f"Cannot list {directory} for retention sweep: {e}")
        report.errors.append(str(e))
        return report

    for entry in entries:
        report.scanned += 1
        try:
            if entry.lstat().st_mtime >= cutoff:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            report.deleted.append(entry.name)
            logger.debug(f"Retention removed {entry}")
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Retention could not remove {entry}: {e}")
            report.errors.append(f"{entry.name}: {e}")

    if report.deleted:
        logger.info(f"Retention sweep of {directory} removed {len(report.deleted)} of {report.scanned} entries")
    return report


def policies_from_config(config: ConfigManager) -> List[RetentionPolicy]:
    """One policy per storage directory, with ages from pipeline.retention"""
    retention = config.get('pipeline.retention', {}) or {}
    return [
        RetentionPolicy(config.resolve_storage_dir('upload_dir', 'uploads'),
                        float(retention.get('upload_max_age_seconds', 3600)), 'uploads'),
        RetentionPolicy(config.resolve_storage_dir('scratch_dir', 'scratch'),
                        float(retention.get('scratch_max_age_seconds', 3600)), 'scratch'),
        RetentionPolicy(config.resolve_storage_dir('cache_dir', 'temp'),
                        float(retention.get('cache_max_age_seconds', 86400)), 'cache'),
        RetentionPolicy(config.resolve_storage_dir('output_dir', 'public/gifs'),
                        float(retention.get('output_max_age_seconds', 86400)), 'output'),
    ]


class RetentionScheduler:
    """Runs sweeps over a set of policies on a daemon thread"""

    def __init__(self, policies: List[RetentionPolicy], interval_seconds: float = 600):
        self.policies = list(policies)
        self.interval_seconds = interval_seconds
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sweep_lock = threading.Lock()
        self.last_reports: List[SweepReport] = []

    def run_once(self, now: Optional[float] = None) -> List[SweepReport]:
        """Sweep every policy now, on the calling thread"""
        with self._sweep_lock:
            reports = [sweep(policy, now) for policy in self.policies]
            self.last_reports = reports
        return reports

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name='retention-sweeper', daemon=True)
        self._thread.start()
        logger.info(f"Retention scheduler started (every {self.interval_seconds:g}s, {len(self.policies)} directories)")

    def trigger(self):
        """Request an immediate sweep without waiting for it"""
        self._wake.set()

    def stop(self, timeout: float = 5.0):
        self._stopping.set()
        self._wake.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self):
        while not self._stopping.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in retention scheduler thread: {e}")
            self._wake.wait(self.interval_seconds)
            self._wake.clear()

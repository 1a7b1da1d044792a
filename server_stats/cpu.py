"""System-wide CPU utilization sampling.

Two acquisition strategies sit behind one ``sample()`` call:

* ``CounterBasedStrategy`` reads the kernel's cumulative tick counters
  from ``/proc/stat`` twice, one second apart, and derives the busy
  share of the elapsed ticks.
* ``ToolDerivedStrategy`` asks ``top`` for its own short sampling window
  and converts the printed idle percentage.

Neither strategy raises. Any failure to read or parse the source is
logged and reported as ``0.00`` since the figure is advisory.
"""
import logging
import platform
import re
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

logger = logging.getLogger('ServerStats.cpu')

PROC_STAT_PATH = '/proc/stat'
DEFAULT_INTERVAL = 1.0


class TopProfile(NamedTuple):
    """How to run ``top`` for one short window and find its summary line"""
    command: Tuple[str, ...]
    marker: str


# Two displays one second apart; the first is not a windowed measurement
TOP_PROFILES = {
    'darwin': TopProfile(('top', '-l', '2', '-n', '0', '-s', '1'), 'CPU usage'),
    'freebsd': TopProfile(('top', '-b', '-d', '2', '-s', '1', '0'), 'CPU:'),
}
TOP_COMMAND = list(TOP_PROFILES['darwin'].command)

_IDLE_PATTERN = re.compile(r'(\d+(?:[.,]\d+)?)\s*%\s*idle', re.IGNORECASE)


class CpuSnapshot(NamedTuple):
    """Cumulative CPU tick counters at one instant"""
    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0

    @property
    def idle_time(self) -> int:
        return self.idle + self.iowait

    @property
    def busy_time(self) -> int:
        return (self.user + self.nice + self.system +
                self.irq + self.softirq + self.steal)

    @property
    def total(self) -> int:
        return self.idle_time + self.busy_time


def parse_proc_stat(text: str) -> Optional[CpuSnapshot]:
    """Build a snapshot from the aggregate ``cpu`` line of /proc/stat.

    Returns None when the line is missing or its fields are not integers.
    Kernels that predate some counters simply omit them; those count as 0.
    """
    for line in text.splitlines():
        fields = line.split()
        if not fields or fields[0] != 'cpu':
            continue
        try:
            values = [int(v) for v in fields[1:len(CpuSnapshot._fields) + 1]]
        except ValueError:
            return None
        if len(values) < 4:
            return None
        return CpuSnapshot(*values)
    return None


def compute_utilization(first: CpuSnapshot, second: CpuSnapshot) -> float:
    """Busy percentage of the ticks elapsed between two snapshots"""
    delta_total = second.total - first.total
    delta_idle = second.idle_time - first.idle_time
    if delta_total <= 0:
        logger.debug(f"No counter progress over the window ({first.total} -> {second.total})")
        return 0.0
    return round((delta_total - delta_idle) * 100 / delta_total, 2)


def parse_idle_percent(output: str, marker: str = 'CPU usage') -> Optional[float]:
    """Idle percentage from ``top`` output, or None if no summary line.

    The last line containing ``marker`` wins. A summary line without a
    readable idle field yields 0.0, which the caller turns into 100% busy.
    """
    summary = None
    for line in output.splitlines():
        if marker in line:
            summary = line

    if summary is None:
        return None

    match = _IDLE_PATTERN.search(summary)
    if not match:
        return 0.0
    try:
        return float(match.group(1).replace(',', '.'))
    except ValueError:
        return 0.0


class CpuSampleStrategy(ABC):
    """One platform-specific way of measuring CPU busyness"""

    name = 'abstract'

    @abstractmethod
    def sample(self) -> float:
        """Utilization percentage over a short window; 0.0 on failure"""


class CounterBasedStrategy(CpuSampleStrategy):
    """Two reads of /proc/stat separated by a wall-clock sleep.

    When ``cancel_event`` is given the wait is done on the event instead
    of ``sleep``; setting it ends the window early and the sample is 0.0.
    """

    name = 'proc-stat'

    def __init__(self, stat_path: str = PROC_STAT_PATH,
                 interval: float = DEFAULT_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep,
                 cancel_event: Optional[threading.Event] = None):
        if interval <= 0:
            raise ValueError(f"Sampling interval must be positive, got {interval}")
        self.stat_path = stat_path
        self.interval = interval
        self._sleep = sleep
        self._cancel_event = cancel_event

    def read_snapshot(self) -> Optional[CpuSnapshot]:
        try:
            with open(self.stat_path) as f:
                text = f.read()
        except OSError as e:
            logger.warning(f"Cannot read CPU counters from {self.stat_path}: {e}")
            return None

        snapshot = parse_proc_stat(text)
        if snapshot is None:
            logger.warning(f"Malformed CPU counters in {self.stat_path}")
        return snapshot

    def _wait(self) -> bool:
        """Sleep for the sampling interval; False if cancelled"""
        if self._cancel_event is not None:
            return not self._cancel_event.wait(self.interval)
        self._sleep(self.interval)
        return True

    def sample(self) -> float:
        first = self.read_snapshot()
        if first is None:
            return 0.0

        if not self._wait():
            logger.info("CPU sampling cancelled before the window elapsed")
            return 0.0

        second = self.read_snapshot()
        if second is None:
            return 0.0
        return compute_utilization(first, second)


class ToolDerivedStrategy(CpuSampleStrategy):
    """Idle percentage reported by ``top`` over its own window"""

    name = 'top'

    def __init__(self, command: Sequence[str] = TOP_COMMAND,
                 timeout: float = 10.0,
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 marker: str = 'CPU usage'):
        self.command: List[str] = list(command)
        self.marker = marker
        self.timeout = timeout
        self._runner = runner

    def sample(self) -> float:
        try:
            result = self._runner(
                self.command,
                capture_output=True, text=True, timeout=self.timeout
            )
        except FileNotFoundError:
            logger.warning(f"{self.command[0]} not found on PATH")
            return 0.0
        except (subprocess.SubprocessError, OSError) as e:
            logger.warning(f"{self.command[0]} failed: {e}")
            return 0.0

        if result.returncode != 0:
            logger.warning(
                f"{self.command[0]} exited with status {result.returncode}"
            )
            return 0.0

        idle = parse_idle_percent(result.stdout, self.marker)
        if idle is None:
            logger.warning(f"No '{self.marker}' line in {self.command[0]} output")
            return 0.0
        return round(100 - idle, 2)


def detect_strategy(system: Optional[str] = None,
                    tool_timeout: float = 10.0,
                    cancel_event: Optional[threading.Event] = None) -> CpuSampleStrategy:
    """Pick the sampling strategy for the running platform.

    Hosts without a known ``top`` dialect fall back to the counter file,
    which reports 0.0 where /proc/stat does not exist.
    """
    system = (system or platform.system()).lower()

    profile = TOP_PROFILES.get(system)
    if profile is not None:
        return ToolDerivedStrategy(profile.command, timeout=tool_timeout,
                                   marker=profile.marker)
    return CounterBasedStrategy(cancel_event=cancel_event)


class CpuSampler:
    """Platform-agnostic CPU utilization reading"""

    def __init__(self, strategy: Optional[CpuSampleStrategy] = None):
        self.strategy = strategy or detect_strategy()
        logger.debug(f"Using CPU sampling strategy: {self.strategy.name}")

    def sample(self) -> float:
        try:
            value = self.strategy.sample()
        except Exception as e:
            logger.warning(f"CPU sampling failed: {e}")
            return 0.0
        return min(max(value, 0.0), 100.0)

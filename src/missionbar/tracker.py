"""Per-process CPU percentage from cumulative CPU time deltas."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

log = structlog.get_logger()


@dataclass
class _PrevSample:
    """Previous measurement for one pid."""

    cpu_time_ns: int  # Cumulative CPU time (user + system)
    timestamp: float  # Wall-clock seconds when measured


class ProcessCPUTracker:
    """Converts cumulative CPU time into a percentage of total machine capacity.

    Each call to sample() reports usage over the interval since the previous
    call for the same pid, never a running average. The first observation of
    a pid reports 0.0 because there is nothing to compare against.

    State is owned by the sampler and only touched during a sampling pass.
    """

    def __init__(self, cpu_count: float | Callable[[], float | None] | None = None):
        """
        Args:
            cpu_count: Logical CPU count, or a callable returning it. Resolved
                once here. None, a failing query or a non-positive value
                falls back to 1.0.
        """
        self._prev_samples: dict[int, _PrevSample] = {}
        self.cpu_count = self._resolve_cpu_count(cpu_count)

    @staticmethod
    def _resolve_cpu_count(cpu_count: float | Callable[[], float | None] | None) -> float:
        if callable(cpu_count):
            try:
                cpu_count = cpu_count()
            except (OSError, ValueError) as e:
                log.warning("cpu_count_query_failed", error=str(e))
                cpu_count = None
        if cpu_count is None or cpu_count <= 0:
            log.warning("cpu_count_defaulted", value=1.0)
            return 1.0
        return float(cpu_count)

    @property
    def tracked_pids(self) -> frozenset[int]:
        """Pids with a stored baseline."""
        return frozenset(self._prev_samples)

    def sample(self, pid: int, cpu_time_ns: int, now: float) -> float:
        """Record a measurement and return CPU% since the previous one.

        Args:
            pid: Process ID
            cpu_time_ns: Cumulative CPU time consumed by the process
            now: Wall-clock timestamp of the measurement, in seconds

        Returns:
            CPU percentage in [0.0, 100.0].
        """
        prev = self._prev_samples.get(pid)
        self._prev_samples[pid] = _PrevSample(cpu_time_ns=cpu_time_ns, timestamp=now)
        if prev is None:
            return 0.0

        delta_time = now - prev.timestamp
        if delta_time <= 0:
            return 0.0
        # Counter went backwards: report idle rather than a negative percentage
        delta_cpu = max(0, cpu_time_ns - prev.cpu_time_ns)

        percent = (delta_cpu / 1e9) / delta_time * 100.0 / self.cpu_count
        return max(0.0, min(100.0, percent))

    def retain(self, pids: Iterable[int]) -> int:
        """Drop baselines for pids absent from the live set.

        Must run every pass: a reused pid would otherwise inherit a stale
        baseline.

        Returns:
            Number of pids evicted.
        """
        live = set(pids)
        stale = [pid for pid in self._prev_samples if pid not in live]
        for pid in stale:
            del self._prev_samples[pid]
        return len(stale)

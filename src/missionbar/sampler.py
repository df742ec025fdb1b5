"""Running process sampler."""

import os
import time
from collections.abc import Callable

import psutil
import structlog

from missionbar.config import Config
from missionbar.models import ProcessEntry
from missionbar.probe import Probe, RunningApplication
from missionbar.tracker import ProcessCPUTracker

log = structlog.get_logger()

# Per-process lookups that mean "skip this one", not "abort the pass"
_ITEM_ERRORS = (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess, OSError)


def estimate_memory(
    resident: int,
    virtual: int,
    virtual_divisor: int = 8,
    resident_divisor: int = 4,
) -> int:
    """Estimate user-visible memory from resident and virtual sizes.

    Resident size alone undercounts what activity monitors usually show, so a
    share of the non-resident address space is added, capped at a fraction of
    the resident size:

        resident + min((virtual - resident) / virtual_divisor, resident / resident_divisor)

    The result always lies in [resident, resident + resident / resident_divisor].
    """
    if virtual > resident:
        return resident + min((virtual - resident) // virtual_divisor, resident // resident_divisor)
    return resident


def is_own_process(pid: int, bundle_id: str | None, config: Config, own_pid: int) -> bool:
    """True for the monitor itself, by pid or by its configured bundle id."""
    return pid == own_pid or bundle_id == config.processes.self_bundle_id


class ProcessSampler:
    """Lists user-facing processes with CPU%, memory estimate and killability.

    sample() blocks on OS calls and is meant to run in an executor thread.
    It must not run concurrently with itself: the CPU tracker is not locked.
    """

    def __init__(
        self,
        config: Config,
        probe: Probe,
        tracker: ProcessCPUTracker | None = None,
        clock: Callable[[], float] = time.time,
        own_pid: int | None = None,
    ):
        self.config = config
        self.probe = probe
        self.tracker = tracker or ProcessCPUTracker(probe.logical_cpu_count)
        self._clock = clock
        self._own_pid = os.getpid() if own_pid is None else own_pid

    def is_killable(self, app: RunningApplication) -> bool:
        """The monitor must never be able to terminate itself."""
        return not is_own_process(app.pid, app.bundle_id, self.config, self._own_pid)

    def measure(self, pid: int, now: float) -> tuple[float, int]:
        """CPU% and memory estimate for one process.

        Prefers the full task info. Without it, CPU% is 0.0 and memory falls
        back to the basic resident size, then to 0.
        """
        try:
            info = self.probe.task_info(pid)
        except _ITEM_ERRORS:
            info = None

        if info is not None:
            mem = self.config.memory
            memory = estimate_memory(
                info.resident_size,
                info.virtual_size,
                virtual_divisor=mem.virtual_divisor,
                resident_divisor=mem.resident_divisor,
            )
            return self.tracker.sample(pid, info.cpu_time_ns, now), memory

        try:
            resident = self.probe.resident_size(pid)
        except _ITEM_ERRORS:
            resident = None
        return 0.0, resident or 0

    def sample(self) -> list[ProcessEntry]:
        """Sample all user-facing processes, sorted by name (case-insensitive)."""
        start = time.monotonic()
        processes: list[ProcessEntry] = []

        for app in self.probe.running_applications():
            if app.activation_policy == "prohibited" or not app.name:
                continue

            cpu_percent, memory_bytes = self.measure(app.pid, self._clock())
            processes.append(
                ProcessEntry(
                    pid=app.pid,
                    name=app.name,
                    bundle_id=app.bundle_id,
                    cpu_percent=cpu_percent,
                    memory_bytes=memory_bytes,
                    icon_path=app.icon_path,
                    killable=self.is_killable(app),
                )
            )

        evicted = self.tracker.retain(p.pid for p in processes)
        processes.sort(key=lambda p: p.name.casefold())

        log.debug(
            "processes_sampled",
            count=len(processes),
            evicted=evicted,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return processes

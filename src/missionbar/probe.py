"""OS integration: process enumeration, task metrics, signals and trash.

Everything the monitoring engine needs from the operating system goes through
a probe object, so the engine can be exercised with a fake probe in tests.
"""

import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

import psutil
import structlog
from send2trash import send2trash

from missionbar.bundles import BundleInfo, enclosing_bundle, read_bundle_info

log = structlog.get_logger()

# Mirrors NSApplicationActivationPolicy
ActivationPolicy = Literal["regular", "accessory", "prohibited"]


@dataclass(frozen=True)
class RunningApplication:
    """A running process as reported by the OS, before measurement."""

    pid: int
    name: str | None  # None when no display name can be resolved
    bundle_id: str | None
    activation_policy: ActivationPolicy
    icon_path: str | None = None


@dataclass(frozen=True)
class TaskInfo:
    """Per-process task metrics."""

    resident_size: int  # Bytes
    virtual_size: int  # Bytes
    cpu_time_ns: int  # Cumulative user + system CPU time


class Probe(Protocol):
    """What the sampler, scanner and actions need from the OS."""

    def running_applications(self) -> list[RunningApplication]: ...

    def task_info(self, pid: int) -> TaskInfo | None: ...

    def resident_size(self, pid: int) -> int | None: ...

    def logical_cpu_count(self) -> float | None: ...

    def send_signal(self, pid: int, sig: signal.Signals) -> None: ...

    def move_to_trash(self, path: str) -> None: ...


def activation_policy(bundle: BundleInfo | None) -> ActivationPolicy:
    """Derive the activation policy from bundle metadata.

    Processes outside any bundle are never user-facing.
    """
    if bundle is None or bundle.background_only:
        return "prohibited"
    if bundle.ui_element:
        return "accessory"
    return "regular"


class SystemProbe:
    """Probe backed by psutil, with libproc task info on macOS.

    On macOS task_info() reads the combined task record and resident_size()
    the smaller task-only record, so the sampler's fallback uses a different
    kernel call than its first choice.
    """

    def __init__(self) -> None:
        # bundle path -> (Info.plist mtime, metadata)
        self._bundles: dict[str, tuple[float, BundleInfo | None]] = {}
        self._darwin = None
        if sys.platform == "darwin":
            from missionbar import darwin

            self._darwin = darwin

    def _bundle_info(self, bundle: Path) -> BundleInfo | None:
        """Read bundle metadata, cached until its Info.plist changes."""
        try:
            mtime = (bundle / "Contents" / "Info.plist").stat().st_mtime
        except OSError:
            return None
        cached = self._bundles.get(str(bundle))
        if cached is not None and cached[0] == mtime:
            return cached[1]
        info = read_bundle_info(bundle)
        self._bundles[str(bundle)] = (mtime, info)
        return info

    def running_applications(self) -> list[RunningApplication]:
        """Enumerate running processes with their bundle metadata."""
        apps: list[RunningApplication] = []
        seen_bundles: set[str] = set()

        for proc in psutil.process_iter(attrs=["pid", "name", "exe"]):
            info = proc.info
            bundle_dir = enclosing_bundle(info.get("exe"))
            bundle = self._bundle_info(bundle_dir) if bundle_dir else None
            if bundle_dir is not None:
                seen_bundles.add(str(bundle_dir))

            name = bundle.name if bundle else None
            apps.append(
                RunningApplication(
                    pid=info["pid"],
                    name=name or info.get("name") or None,
                    bundle_id=bundle.identifier if bundle else None,
                    activation_policy=activation_policy(bundle),
                    icon_path=bundle.icon_path if bundle else None,
                )
            )

        # Forget bundles that no longer have a running process
        for stale in set(self._bundles) - seen_bundles:
            del self._bundles[stale]

        return apps

    def task_info(self, pid: int) -> TaskInfo | None:
        """Resident size, virtual size and cumulative CPU time for a process."""
        if self._darwin is not None:
            return self._darwin.task_info(pid)

        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                mem = proc.memory_info()
                times = proc.cpu_times()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return None
        return TaskInfo(
            resident_size=mem.rss,
            virtual_size=mem.vms,
            cpu_time_ns=int((times.user + times.system) * 1e9),
        )

    def resident_size(self, pid: int) -> int | None:
        """Basic resident set size lookup, for when task_info() is refused."""
        if self._darwin is not None:
            resident = self._darwin.resident_size(pid)
            if resident is not None:
                return resident
        try:
            return psutil.Process(pid).memory_info().rss
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return None

    def logical_cpu_count(self) -> float | None:
        """Number of logical CPUs, or None if it cannot be determined."""
        if self._darwin is not None:
            count = self._darwin.sysctl_int("hw.logicalcpu")
            if count:
                return float(count)
        count = psutil.cpu_count(logical=True)
        return float(count) if count else None

    def send_signal(self, pid: int, sig: signal.Signals) -> None:
        """Send a signal to a process.

        Raises:
            psutil.NoSuchProcess, psutil.AccessDenied: on failure.
        """
        psutil.Process(pid).send_signal(sig)

    def move_to_trash(self, path: str) -> None:
        """Move a file or bundle to the user's trash.

        Raises:
            OSError: if the path cannot be trashed.
        """
        if not os.path.lexists(path):
            raise FileNotFoundError(path)
        send2trash(path)

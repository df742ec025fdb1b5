"""Shared test fixtures for missionbar."""

import plistlib
import signal
from pathlib import Path

import pytest

from missionbar.config import Config
from missionbar.models import InstalledApplication, ProcessEntry
from missionbar.probe import RunningApplication, TaskInfo


class FakeProbe:
    """In-memory probe. Tests edit `apps`, `tasks` and `residents` between ticks."""

    def __init__(self, cpu_count: float | None = 4.0):
        self.apps: list[RunningApplication] = []
        self.tasks: dict[int, TaskInfo] = {}
        self.residents: dict[int, int] = {}
        self.cpu_count = cpu_count
        self.signals: list[tuple[int, signal.Signals]] = []
        self.trashed: list[str] = []
        self.signal_error: Exception | None = None
        self.trash_error: Exception | None = None

    def add_app(
        self,
        pid: int,
        name: str | None,
        bundle_id: str | None = None,
        policy: str = "regular",
        cpu_time_ns: int = 0,
        resident: int = 1000,
        virtual: int = 1000,
    ) -> None:
        self.apps.append(
            RunningApplication(
                pid=pid, name=name, bundle_id=bundle_id, activation_policy=policy
            )
        )
        self.tasks[pid] = TaskInfo(
            resident_size=resident, virtual_size=virtual, cpu_time_ns=cpu_time_ns
        )

    def remove_app(self, pid: int) -> None:
        self.apps = [a for a in self.apps if a.pid != pid]
        self.tasks.pop(pid, None)

    def running_applications(self) -> list[RunningApplication]:
        return list(self.apps)

    def task_info(self, pid: int) -> TaskInfo | None:
        return self.tasks.get(pid)

    def resident_size(self, pid: int) -> int | None:
        return self.residents.get(pid)

    def logical_cpu_count(self) -> float | None:
        return self.cpu_count

    def send_signal(self, pid: int, sig: signal.Signals) -> None:
        if self.signal_error is not None:
            raise self.signal_error
        self.signals.append((pid, sig))

    def move_to_trash(self, path: str) -> None:
        if self.trash_error is not None:
            raise self.trash_error
        self.trashed.append(path)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_bundle(
    root: Path,
    name: str,
    bundle_id: str | None = None,
    display_name: str | None = None,
    bundle_name: str | None = None,
    version: str | None = None,
    files: dict[str, bytes] | None = None,
    extra: dict | None = None,
) -> Path:
    """Create a minimal .app bundle directory with an Info.plist."""
    bundle = root / f"{name}.app"
    contents = bundle / "Contents"
    contents.mkdir(parents=True)

    plist: dict = dict(extra or {})
    if bundle_id is not None:
        plist["CFBundleIdentifier"] = bundle_id
    if display_name is not None:
        plist["CFBundleDisplayName"] = display_name
    if bundle_name is not None:
        plist["CFBundleName"] = bundle_name
    if version is not None:
        plist["CFBundleShortVersionString"] = version
    (contents / "Info.plist").write_bytes(plistlib.dumps(plist))

    for rel, data in (files or {}).items():
        target = contents / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return bundle


def make_process(
    pid: int = 100,
    name: str = "Safari",
    bundle_id: str | None = "com.apple.Safari",
    cpu_percent: float = 0.0,
    memory_bytes: int = 1024,
    killable: bool = True,
) -> ProcessEntry:
    """Create a ProcessEntry for testing."""
    return ProcessEntry(
        pid=pid,
        name=name,
        bundle_id=bundle_id,
        cpu_percent=cpu_percent,
        memory_bytes=memory_bytes,
        icon_path=None,
        killable=killable,
    )


def make_application(
    path: str = "/Applications/Safari.app",
    name: str = "Safari",
    bundle_id: str = "com.apple.Safari",
    size_bytes: int = 100,
    is_running: bool = False,
    can_uninstall: bool = True,
    version: str | None = "1.0",
) -> InstalledApplication:
    """Create an InstalledApplication for testing."""
    return InstalledApplication(
        bundle_id=bundle_id,
        path=path,
        name=name,
        version=version,
        size_bytes=size_bytes,
        icon_path=None,
        is_running=is_running,
        can_uninstall=can_uninstall,
    )


@pytest.fixture
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def apps_root(tmp_path: Path) -> Path:
    """An empty directory used as the only application search root."""
    root = tmp_path / "Applications"
    root.mkdir()
    return root


@pytest.fixture
def config(apps_root: Path) -> Config:
    """Config scanning only the temporary applications root."""
    cfg = Config()
    cfg.applications.search_roots = [str(apps_root)]
    cfg.monitor.interval = 0.05
    return cfg

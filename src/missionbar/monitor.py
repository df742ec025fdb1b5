"""SystemMonitor: the handle presentation code holds."""

import asyncio
from collections.abc import Callable

from missionbar.actions import LifecycleActions
from missionbar.config import Config
from missionbar.models import InstalledApplication, ProcessEntry, Snapshot
from missionbar.probe import Probe, SystemProbe
from missionbar.sampler import ProcessSampler
from missionbar.scanner import ApplicationScanner
from missionbar.scheduler import MonitorScheduler, SnapshotCallback


class SystemMonitor:
    """Wires sampler, scanner, scheduler and actions together.

    Collaborators read `snapshot`, call `refresh()` and the action methods,
    and never see the components behind them.

    Usage:
        async with SystemMonitor(config) as monitor:
            snapshot = await monitor.refresh()
    """

    def __init__(self, config: Config | None = None, probe: Probe | None = None):
        self.config = config or Config()
        self.probe = probe or SystemProbe()
        self.sampler = ProcessSampler(self.config, self.probe)
        self.scanner = ApplicationScanner(self.config)
        self.scheduler = MonitorScheduler(self.config, self.sampler, self.scanner)
        self.actions = LifecycleActions(self.config, self.probe, self.scheduler)

    @property
    def snapshot(self) -> Snapshot:
        """Current processes, applications and loading flag."""
        return self.scheduler.snapshot

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Receive every published snapshot."""
        return self.scheduler.subscribe(callback)

    def start(self) -> None:
        """Begin periodic refreshes."""
        self.scheduler.start()

    async def stop(self) -> None:
        """Stop periodic refreshes, letting an in-flight one publish."""
        await self.scheduler.stop()

    async def refresh(self) -> Snapshot:
        """Refresh now and return the new snapshot."""
        return await self.scheduler.refresh()

    def terminate(self, process: ProcessEntry) -> None:
        """Gracefully terminate a process."""
        self.actions.terminate(process)

    def force_kill(self, process: ProcessEntry) -> None:
        """Kill a process immediately."""
        self.actions.force_kill(process)

    async def uninstall(self, app: InstalledApplication) -> None:
        """Move an application to the trash without blocking the event loop."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.actions.uninstall, app)

    def find_process(self, pid: int) -> ProcessEntry | None:
        """Look up a process in the current snapshot."""
        return next((p for p in self.snapshot.processes if p.pid == pid), None)

    def find_application(self, key: str) -> InstalledApplication | None:
        """Look up an application by bundle identifier or path."""
        for app in self.snapshot.applications:
            if key in (app.bundle_id, app.path):
                return app
        return None

    async def __aenter__(self) -> "SystemMonitor":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

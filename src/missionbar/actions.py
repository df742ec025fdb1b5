"""Lifecycle actions: terminate, force-kill and uninstall.

Preconditions are checked before any OS call. A rejected action raises
PreconditionError and touches nothing; an OS failure raises ActionFailed and
leaves the published snapshot unchanged so the action can be retried.
"""

import os
import signal

import psutil
import structlog

from missionbar.config import Config
from missionbar.models import InstalledApplication, ProcessEntry
from missionbar.probe import Probe
from missionbar.sampler import is_own_process
from missionbar.scanner import is_protected_path
from missionbar.scheduler import MonitorScheduler

log = structlog.get_logger()


class ActionError(Exception):
    """Base class for lifecycle action errors."""


class PreconditionError(ActionError):
    """The target is not eligible for the requested action."""


class ActionFailed(ActionError):
    """The OS refused or failed to carry out the action."""


class LifecycleActions:
    """Acts on entries from the published snapshot."""

    def __init__(
        self,
        config: Config,
        probe: Probe,
        scheduler: MonitorScheduler,
        own_pid: int | None = None,
    ):
        self.config = config
        self.probe = probe
        self.scheduler = scheduler
        self._own_pid = os.getpid() if own_pid is None else own_pid

    def _signal(self, process: ProcessEntry, sig: signal.Signals) -> None:
        # killable is caller-supplied; the monitor itself is always refused
        own = is_own_process(process.pid, process.bundle_id, self.config, self._own_pid)
        if own or not process.killable:
            log.warning("signal_rejected", pid=process.pid, name=process.name, signal=sig.name)
            raise PreconditionError(f"{process.name} (PID {process.pid}) cannot be terminated")

        try:
            self.probe.send_signal(process.pid, sig)
        except (psutil.Error, OSError) as e:
            log.warning(
                "signal_failed",
                pid=process.pid,
                name=process.name,
                signal=sig.name,
                error=str(e),
            )
            raise ActionFailed(
                f"Failed to send {sig.name} to {process.name} (PID {process.pid}): {e}"
            ) from e

        log.info("signal_sent", pid=process.pid, name=process.name, signal=sig.name)

    def terminate(self, process: ProcessEntry) -> None:
        """Ask a process to exit (SIGTERM).

        Raises:
            PreconditionError: process is not killable; nothing was sent.
            ActionFailed: the signal could not be delivered.
        """
        self._signal(process, signal.SIGTERM)

    def force_kill(self, process: ProcessEntry) -> None:
        """Kill a process immediately (SIGKILL).

        Raises:
            PreconditionError: process is not killable; nothing was sent.
            ActionFailed: the signal could not be delivered.
        """
        self._signal(process, signal.SIGKILL)

    def check_uninstallable(self, app: InstalledApplication) -> str:
        """Verify uninstall eligibility against the cached flag and the live path.

        Returns:
            The canonical path of the bundle as it exists now.

        Raises:
            PreconditionError: the application must not be uninstalled.
        """
        prefixes = self.config.applications.protected_prefixes
        live_path = os.path.realpath(app.path)
        if not app.can_uninstall or is_protected_path(app.path, prefixes):
            reason = "protected system application"
        elif is_protected_path(live_path, prefixes):
            reason = f"resolves to protected location {live_path}"
        else:
            return live_path

        log.warning("uninstall_rejected", name=app.name, path=app.path, reason=reason)
        raise PreconditionError(f"{app.name} cannot be uninstalled: {reason}")

    def uninstall(self, app: InstalledApplication) -> None:
        """Move an application bundle to the trash and drop it from the snapshot.

        Raises:
            PreconditionError: application is protected; filesystem untouched.
            ActionFailed: the bundle could not be moved; snapshot unchanged.
        """
        self.check_uninstallable(app)

        try:
            self.probe.move_to_trash(app.path)
        except OSError as e:
            log.warning("uninstall_failed", name=app.name, path=app.path, error=str(e))
            raise ActionFailed(f"Failed to uninstall {app.name}: {e}") from e

        log.info("application_trashed", name=app.name, bundle_id=app.bundle_id, path=app.path)
        self.scheduler.remove_application(app.path)

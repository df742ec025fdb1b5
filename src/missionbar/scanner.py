"""Installed application scanner."""

import os
import time
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import Path

import structlog

from missionbar.bundles import BundleInfo, read_bundle_info
from missionbar.config import Config
from missionbar.models import InstalledApplication
from missionbar.sizing import directory_size

log = structlog.get_logger()


def is_protected_path(path: str, protected_prefixes: Iterable[str]) -> bool:
    """True if path lives under a protected system location."""
    return any(path.startswith(prefix) for prefix in protected_prefixes)


def sort_by_name(apps: Iterable[InstalledApplication]) -> list[InstalledApplication]:
    """Canonical order: display name, case-insensitive."""
    return sorted(apps, key=lambda a: a.name.casefold())


class ApplicationScanner:
    """Finds application bundles under the configured search roots.

    Scanning is split in two so the scheduler can walk the disk while
    processes are sampled, then mark running state against the process set
    of the same tick:

        discover()      -> bundles with sizes, is_running=False
        mark_running()  -> join against running bundle identifiers
    """

    def __init__(
        self,
        config: Config,
        size_of: Callable[[Path], int] = directory_size,
        bundle_reader: Callable[[Path], BundleInfo | None] = read_bundle_info,
    ):
        self.config = config
        self._size_of = size_of
        self._read_bundle = bundle_reader

    def candidate_bundles(self, root: Path) -> list[Path]:
        """Bundles directly inside root. Nested bundles are not visited."""
        extension = self.config.applications.bundle_extension
        try:
            with os.scandir(root) as it:
                return [
                    Path(entry.path)
                    for entry in it
                    if not entry.name.startswith(".") and entry.name.endswith(extension)
                ]
        except OSError as e:
            log.debug("search_root_skipped", root=str(root), error=str(e))
            return []

    def can_uninstall(self, path: str) -> bool:
        """Uninstall policy by path prefix."""
        return not is_protected_path(path, self.config.applications.protected_prefixes)

    def read_application(self, bundle: Path) -> InstalledApplication | None:
        """Build an InstalledApplication, or None if the bundle is unidentifiable.

        The stored path is absolute and normalized but not resolved, so a
        symlinked bundle is listed, tombstoned and trashed by its link path.
        Uninstall resolves it separately before the protected-path check.
        """
        info = self._read_bundle(bundle)
        if info is None or not info.identifier or not info.name:
            log.debug("bundle_skipped", bundle=str(bundle), reason="no identifier or name")
            return None

        path = os.path.abspath(bundle)
        return InstalledApplication(
            bundle_id=info.identifier,
            path=path,
            name=info.name,
            version=info.version,
            size_bytes=self._size_of(bundle),
            icon_path=info.icon_path,
            is_running=False,
            can_uninstall=self.can_uninstall(path),
        )

    def discover(self) -> list[InstalledApplication]:
        """Find all installed applications, sorted by name."""
        start = time.monotonic()
        apps: list[InstalledApplication] = []

        for root in self.config.applications.expanded_roots():
            for bundle in self.candidate_bundles(root):
                try:
                    app = self.read_application(bundle)
                except OSError as e:
                    log.debug("bundle_skipped", bundle=str(bundle), error=str(e))
                    continue
                if app is not None:
                    apps.append(app)

        log.debug(
            "applications_discovered",
            count=len(apps),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return sort_by_name(apps)

    @staticmethod
    def mark_running(
        apps: Iterable[InstalledApplication],
        running_bundle_ids: Iterable[str],
    ) -> list[InstalledApplication]:
        """Set is_running from the given bundle identifiers."""
        running = set(running_bundle_ids)
        return [replace(app, is_running=app.bundle_id in running) for app in apps]

    def scan(self, running_bundle_ids: Iterable[str]) -> list[InstalledApplication]:
        """Discover applications and mark the running ones."""
        return self.mark_running(self.discover(), running_bundle_ids)

"""Data models for missionbar."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProcessEntry:
    """One running, user-facing process.

    Rebuilt wholesale on every tick. Only the pid links it to the previous
    tick (through the CPU tracker), and pids can be reused by the OS.
    """

    pid: int
    name: str
    bundle_id: str | None
    cpu_percent: float  # 0.0 - 100.0, normalized by logical CPU count
    memory_bytes: int
    icon_path: str | None
    killable: bool

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "pid": self.pid,
            "name": self.name,
            "bundle_id": self.bundle_id,
            "cpu_percent": self.cpu_percent,
            "memory_bytes": self.memory_bytes,
            "icon_path": self.icon_path,
            "killable": self.killable,
        }


@dataclass(frozen=True)
class InstalledApplication:
    """One application bundle on disk."""

    bundle_id: str
    path: str  # Absolute, normalized path; symlinks are not resolved
    name: str
    version: str | None
    size_bytes: int
    icon_path: str | None
    is_running: bool
    can_uninstall: bool

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "bundle_id": self.bundle_id,
            "path": self.path,
            "name": self.name,
            "version": self.version,
            "size_bytes": self.size_bytes,
            "icon_path": self.icon_path,
            "is_running": self.is_running,
            "can_uninstall": self.can_uninstall,
        }


@dataclass(frozen=True)
class Snapshot:
    """Everything collaborators may observe, published as one unit.

    Never mutated: the scheduler swaps in a new instance instead.
    """

    processes: tuple[ProcessEntry, ...] = ()
    applications: tuple[InstalledApplication, ...] = ()
    is_loading: bool = False
    generation: int = 0  # Number of completed ticks
    updated_at: float | None = None

    @property
    def running_bundle_ids(self) -> frozenset[str]:
        """Bundle identifiers of the listed processes."""
        return frozenset(p.bundle_id for p in self.processes if p.bundle_id)

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "processes": [p.to_dict() for p in self.processes],
            "applications": [a.to_dict() for a in self.applications],
            "is_loading": self.is_loading,
            "generation": self.generation,
            "updated_at": self.updated_at,
        }
